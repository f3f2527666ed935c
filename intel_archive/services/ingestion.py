"""
Ingestion Orchestrator

Drives paginated fetch -> extract -> merge cycles per source.

Per source the scan moves through
    idle -> connecting -> fetching_page(n) -> extracting(n) -> idle | aborted | failed

- A page with zero messages is the natural end of history.
- The abort flag is polled before every page; an in-flight fetch or
  extraction always completes first.
- A fixed courtesy delay separates pages, and a cooldown separates sources
  during a background sync.
- Rate-limited extraction is retried with exponential backoff, then fails
  the scan. Any other extraction failure counts the page as zero events.
- A fetch failure stops the remaining pages of that source. Archived data is
  never touched by a failed scan.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from enum import Enum

from loguru import logger
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from intel_archive.exceptions import (
    CrowdAnalysisFailure,
    ExtractionFailure,
    FetchFailure,
    IntelArchiveError,
    RateLimited,
)
from intel_archive.models import MANUAL_UPLOAD_ORIGIN, CrowdEstimate, SourceType
from intel_archive.services.archive import ArchiveStore, UpsertResult
from intel_archive.services.crowd import crowd_to_candidate
from intel_archive.services.fetcher import source_name_from_url
from intel_archive.services.state import SyncStateStore


ExtractFn = Callable[[str, SourceType, str | None], Awaitable[list[dict]]]
AnalyzeFn = Callable[[bytes, str, str], Awaitable[CrowdEstimate]]
SleepFn = Callable[[float], Awaitable[None]]

STOPPED_MESSAGE = "Scan stopped by user."


class ScanDepth(str, Enum):
    """How far back a scan reads."""

    LATEST = "LATEST_20"
    ONE_MONTH = "1_MONTH"
    THREE_MONTHS = "3_MONTHS"
    SIX_MONTHS = "6_MONTHS"
    TWELVE_MONTHS = "12_MONTHS"
    ALL = "ALL"
    RESUME = "RESUME"  # One page, continuing from the persisted cursor

    @property
    def max_pages(self) -> int:
        return PAGE_LIMITS[self]


PAGE_LIMITS = {
    ScanDepth.LATEST: 1,
    ScanDepth.ONE_MONTH: 10,
    ScanDepth.THREE_MONTHS: 30,
    ScanDepth.SIX_MONTHS: 60,
    ScanDepth.TWELVE_MONTHS: 120,
    ScanDepth.ALL: 300,
    ScanDepth.RESUME: 1,
}


class ScanState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    FETCHING_PAGE = "fetching_page"
    EXTRACTING = "extracting"
    ABORTED = "aborted"
    FAILED = "failed"


class ScanReport(BaseModel):
    """Outcome of one ingestion run."""

    source_url: str
    state: ScanState = ScanState.IDLE
    pages: int = 0
    candidates: int = 0
    inserted: int = 0
    merged: int = 0
    extraction_errors: int = 0
    message: str = ""
    error: str | None = None

    def add(self, result: UpsertResult) -> None:
        self.inserted += result.inserted
        self.merged += result.merged


class IngestionOrchestrator:
    """Runs scans against the archive store and the sync state."""

    def __init__(
        self,
        store: ArchiveStore,
        state: SyncStateStore,
        fetcher,
        extract: ExtractFn,
        analyze_media: AnalyzeFn | None = None,
        page_delay: float = 2.0,
        source_cooldown: float = 3.0,
        max_retries: int = 3,
        backoff_seconds: float = 2.0,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.store = store
        self.state = state
        self.fetcher = fetcher
        self.extract = extract
        self.analyze_media = analyze_media
        self.page_delay = page_delay
        self.source_cooldown = source_cooldown
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

        self._abort = False
        self._sync_lock = asyncio.Lock()
        self.scan_state = ScanState.IDLE
        self.status_message = ""
        self.current_source: str | None = None
        self.current_page = 0

    # =========================================================================
    # STATUS
    # =========================================================================

    def _set_state(self, scan_state: ScanState, message: str | None = None) -> None:
        self.scan_state = scan_state
        if message is not None:
            self.status_message = message

    @property
    def status(self) -> dict:
        return {
            "state": self.scan_state.value,
            "message": self.status_message,
            "current_source": self.current_source,
            "page": self.current_page,
            "sync_running": self._sync_lock.locked(),
        }

    def request_abort(self) -> None:
        """Ask the running scan to stop at the next page boundary."""
        self._abort = True
        logger.info("[INGEST] Abort requested")

    @property
    def abort_requested(self) -> bool:
        return self._abort

    def _finish(self, report: ScanReport, scan_state: ScanState, message: str) -> ScanReport:
        report.state = scan_state
        report.message = message
        self._set_state(scan_state, message)
        return report

    def _fail(self, report: ScanReport, error: Exception) -> ScanReport:
        report.error = str(error)
        logger.error(f"[INGEST] {report.source_url}: {type(error).__name__}: {error}")
        return self._finish(report, ScanState.FAILED, f"Operation failed: {error}")

    def _complete(self, report: ScanReport, name: str) -> ScanReport:
        message = f"Scan complete: {name}"
        if report.extraction_errors:
            message += f" ({report.extraction_errors} extraction errors)"
        return self._finish(report, ScanState.IDLE, message)

    # =========================================================================
    # BACKOFF
    # =========================================================================

    def _retrying(self) -> AsyncRetrying:
        """Exponential backoff on rate limits only."""
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.backoff_seconds, min=self.backoff_seconds, max=60),
            retry=retry_if_exception_type(RateLimited),
            sleep=self._sleep,
            before_sleep=lambda retry_state: logger.warning(
                f"[INGEST] Rate limited, retry {retry_state.attempt_number}/{self.max_retries}"
            ),
            reraise=True,
        )

    async def _extract_with_backoff(
        self,
        raw_content: str,
        source_type: SourceType,
        region: str | None,
    ) -> list[dict]:
        async for attempt in self._retrying():
            with attempt:
                records = await self.extract(raw_content, source_type, region)
        return records

    async def _analyze_with_backoff(self, data: bytes, mime_type: str, context: str) -> CrowdEstimate:
        if self.analyze_media is None:
            raise CrowdAnalysisFailure("No media analyzer configured")
        async for attempt in self._retrying():
            with attempt:
                estimate = await self.analyze_media(data, mime_type, context)
        return estimate

    async def _upsert(self, records: list[dict], origin_url: str | None, is_manual: bool = False) -> UpsertResult:
        if not records:
            return UpsertResult()
        return await asyncio.to_thread(self.store.upsert_many, records, origin_url, is_manual)

    # =========================================================================
    # SOURCE SCAN
    # =========================================================================

    async def scan_source(
        self,
        url: str,
        depth: ScanDepth = ScanDepth.LATEST,
        region: str | None = None,
    ) -> ScanReport:
        """
        Scan a source page by page and merge the extracted events.

        Args:
            url: Channel or web page URL
            depth: Page budget (RESUME continues from the persisted cursor)
            region: Optional focus region for extraction

        Returns:
            ScanReport with the terminal state and counts
        """
        self._abort = False
        return await self._scan(url.strip(), depth, region)

    async def _scan(self, url: str, depth: ScanDepth, region: str | None) -> ScanReport:
        report = ScanReport(source_url=url)
        channel = source_name_from_url(url)

        self.current_source = url
        self.current_page = 0
        self._set_state(ScanState.CONNECTING, f"Connecting to {channel}...")

        metadata = self.state.get_metadata(url)
        cursor = metadata.last_cursor if depth is ScanDepth.RESUME and metadata else None
        max_pages = depth.max_pages

        logger.info(f"[INGEST] Scanning {url} ({depth.value}, up to {max_pages} pages, cursor {cursor or 'latest'})")

        try:
            for page_number in range(1, max_pages + 1):
                if self._abort:
                    logger.info(f"[INGEST] {url}: stopped by user after {report.pages} pages")
                    return self._finish(report, ScanState.ABORTED, STOPPED_MESSAGE)

                self.current_page = page_number
                self._set_state(ScanState.FETCHING_PAGE, f"Fetching page {page_number}/{max_pages} of {channel}")
                page = await self.fetcher.fetch_page(url, cursor)

                if page.message_count == 0:
                    logger.info(f"[INGEST] {url}: end of history at page {page_number}")
                    break

                self._set_state(ScanState.EXTRACTING, f"Extracting page {page_number} of {channel}")
                try:
                    records = await self._extract_with_backoff(page.raw_content, page.source_type, region)
                except RateLimited:
                    raise
                except ExtractionFailure as e:
                    report.extraction_errors += 1
                    self.status_message = f"Extraction failed on page {page_number}: {e}"
                    logger.warning(f"[INGEST] {url} page {page_number}: extraction failed, continuing: {e}")
                    records = []

                result = await self._upsert(records, url)
                report.pages += 1
                report.candidates += len(records)
                report.add(result)
                self.state.record_page(url, page.next_cursor, result.total, page.source_type)

                cursor = page.next_cursor
                if not cursor:
                    break
                if page_number < max_pages:
                    await self._sleep(self.page_delay)

        except (IntelArchiveError, OSError) as e:
            return self._fail(report, e)

        logger.info(
            f"[INGEST] {url}: {report.pages} pages, {report.inserted} new, "
            f"{report.merged} merged, {report.extraction_errors} extraction errors"
        )
        return self._complete(report, channel)

    # =========================================================================
    # MANUAL INGESTION
    # =========================================================================

    async def ingest_text(self, text: str, region: str | None = None) -> ScanReport:
        """Extract events from operator-pasted text and merge them as manual origin."""
        self._abort = False
        report = ScanReport(source_url=MANUAL_UPLOAD_ORIGIN)
        self.current_source = MANUAL_UPLOAD_ORIGIN
        self._set_state(ScanState.EXTRACTING, "Extracting pasted text...")

        try:
            records = await self._extract_with_backoff(text, SourceType.MANUAL, region)
            for record in records:
                record.setdefault("origin_url", MANUAL_UPLOAD_ORIGIN)
            result = await self._upsert(records, None, is_manual=True)
        except (IntelArchiveError, OSError) as e:
            return self._fail(report, e)

        report.pages = 1
        report.candidates = len(records)
        report.add(result)
        return self._complete(report, MANUAL_UPLOAD_ORIGIN)

    async def ingest_crowd_media(
        self,
        data: bytes,
        mime_type: str,
        context: str = "",
        origin_url: str | None = None,
    ) -> ScanReport:
        """
        Analyze one photo or video and merge the crowd estimate.

        Without an origin URL the media is an operator upload: the candidate is
        manual-origin and, being crowd-derived, overrides the matched event's
        position and count.
        """
        is_manual = origin_url is None
        origin = origin_url or MANUAL_UPLOAD_ORIGIN
        report = ScanReport(source_url=origin)
        self.current_source = origin
        self._set_state(ScanState.EXTRACTING, "Analyzing media...")

        try:
            estimate = await self._analyze_with_backoff(data, mime_type, context)
            candidate = crowd_to_candidate(estimate, origin_url=origin, is_manual=is_manual)
            if candidate is None:
                return self._finish(report, ScanState.IDLE, "No crowd detected.")
            result = await self._upsert([candidate], None if is_manual else origin, is_manual=is_manual)
        except (IntelArchiveError, OSError) as e:
            return self._fail(report, e)

        report.pages = 1
        report.candidates = 1
        report.add(result)
        return self._complete(report, source_name_from_url(origin))

    async def scan_crowd_channel(self, url: str, limit: int | None = None) -> ScanReport:
        """
        Crowd-analyze the photos and videos of a channel's latest posts.

        Posts whose media cannot be downloaded or analyzed are skipped. The
        estimates are merged as one batch, also when the scan is stopped.
        """
        self._abort = False
        url = url.strip()
        channel = source_name_from_url(url)
        report = ScanReport(source_url=url)
        self.current_source = url
        self.current_page = 0
        self._set_state(ScanState.CONNECTING, f"Connecting to {channel}...")

        candidates: list[dict] = []
        aborted = False

        try:
            posts = [post for post in await self.fetcher.fetch_channel_posts(url) if post.media_url]
            if limit is not None:
                posts = posts[:limit]

            for index, post in enumerate(posts, start=1):
                if self._abort:
                    aborted = True
                    break

                self.current_page = index
                self._set_state(ScanState.EXTRACTING, f"Analyzing media {index}/{len(posts)} of {channel}")
                try:
                    media = await self.fetcher.download_media(post.media_url)
                    if media is None:
                        continue
                    estimate = await self._analyze_with_backoff(media[0], media[1], post.text)
                except RateLimited:
                    raise
                except (FetchFailure, CrowdAnalysisFailure) as e:
                    report.extraction_errors += 1
                    logger.warning(f"[CROWD] Skipping post {post.url}: {e}")
                    continue

                candidate = crowd_to_candidate(estimate, origin_url=url)
                if candidate is not None:
                    candidate["external_source_id"] = post.id
                    candidates.append(candidate)

                if index < len(posts):
                    await self._sleep(self.page_delay)

            result = await self._upsert(candidates, url)
        except (IntelArchiveError, OSError) as e:
            return self._fail(report, e)

        report.pages = self.current_page
        report.candidates = len(candidates)
        report.add(result)
        if aborted:
            return self._finish(report, ScanState.ABORTED, STOPPED_MESSAGE)
        return self._complete(report, channel)

    # =========================================================================
    # BACKGROUND SYNC
    # =========================================================================

    async def sync_all(self) -> list[ScanReport]:
        """
        Scan every monitored source at LATEST depth, one after the other.

        Returns an empty list when another sync is already running.
        """
        if self._sync_lock.locked():
            logger.warning("[SYNC] Sync already running, skipping")
            return []

        async with self._sync_lock:
            self._abort = False
            sources = self.state.sync_config.monitored_sources
            logger.info(f"[SYNC] Starting sync of {len(sources)} sources")

            reports = []
            for index, source in enumerate(sources):
                if self._abort:
                    logger.info("[SYNC] Stopped by user")
                    break
                if index > 0:
                    await self._sleep(self.source_cooldown)
                reports.append(await self._scan(source.url, ScanDepth.LATEST, None))

            self.state.mark_synced()
            inserted = sum(report.inserted for report in reports)
            logger.info(f"[SYNC] Finished: {len(reports)} sources, {inserted} new events")
            return reports

    async def sync_if_due(self, now: datetime | None = None) -> list[ScanReport] | None:
        """Run sync_all when enabled and the interval elapsed. None when not due."""
        if not self.state.is_sync_due(now):
            return None
        return await self.sync_all()

    # =========================================================================
    # SOURCE REMOVAL
    # =========================================================================

    async def remove_source(self, url: str) -> int:
        """Purge a source's events, monitored entry and cursor. Returns the removed count."""
        url = url.strip()
        removed = await asyncio.to_thread(self.store.remove_by_source, url)
        self.state.remove_source(url)
        logger.info(f"[INGEST] Source {url} removed ({removed} events purged)")
        return removed


# Singleton instance
_orchestrator: IngestionOrchestrator | None = None


def get_orchestrator() -> IngestionOrchestrator:
    """Get the singleton orchestrator wired from settings."""
    global _orchestrator
    if _orchestrator is None:
        from intel_archive.config import get_settings
        from intel_archive.database import get_archive_store, get_state_store
        from intel_archive.services.crowd import analyze_crowd_media_async
        from intel_archive.services.extraction import extract_events_async
        from intel_archive.services.fetcher import SourceFetcher

        settings = get_settings()
        _orchestrator = IngestionOrchestrator(
            store=get_archive_store(),
            state=get_state_store(),
            fetcher=SourceFetcher(proxies=settings.fetch_proxies, timeout=settings.fetch_timeout_seconds),
            extract=extract_events_async,
            analyze_media=analyze_crowd_media_async,
            page_delay=settings.page_delay_seconds,
            source_cooldown=settings.source_cooldown_seconds,
            max_retries=settings.rate_limit_max_retries,
            backoff_seconds=settings.rate_limit_backoff_seconds,
        )
    return _orchestrator
