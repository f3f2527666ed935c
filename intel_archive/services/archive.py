"""
Archive Store

Ordered collection of archived events keyed by identifier, with full-scan
matching. Every mutation re-serializes the whole archive to storage.

Batches are atomic: the archive is rebuilt in memory, persisted, then
swapped in. A failure anywhere leaves the store exactly as it was. Within a
batch each candidate is also matched against candidates inserted earlier in
the same batch.

One batch at a time: upsert_many, insert, remove_by_source and
import_events hold a single lock (callers queue behind it).
"""

import json
import threading
from collections.abc import Iterable
from contextlib import contextmanager
from dataclasses import dataclass, field

from loguru import logger

from intel_archive.exceptions import StoreBusy
from intel_archive.models import ArchivedEvent, CandidateEvent, new_event_id
from intel_archive.services.merge import merge_events
from intel_archive.services.normalizer import normalize_candidate
from intel_archive.services.resolver import (
    SPATIAL_MANUAL_THRESHOLD,
    SPATIAL_TIGHT_THRESHOLD,
    MatchTier,
    resolve,
)
from intel_archive.services.storage import ArchiveStorage, serialize_events


def _same_record(existing: ArchivedEvent, candidate: CandidateEvent) -> bool:
    return existing.model_dump() == candidate.model_dump()


@dataclass
class UpsertResult:
    """Outcome of one batch."""

    inserted: int = 0
    merged: int = 0
    event_ids: list[str] = field(default_factory=list)  # Archived id per candidate, in order

    @property
    def total(self) -> int:
        return self.inserted + self.merged


class ArchiveStore:
    """The durable, deduplicated archive."""

    def __init__(
        self,
        storage: ArchiveStorage | None = None,
        tight_threshold: float = SPATIAL_TIGHT_THRESHOLD,
        manual_threshold: float = SPATIAL_MANUAL_THRESHOLD,
        lock_timeout: float | None = None,
    ):
        self.storage = storage
        self.tight_threshold = tight_threshold
        self.manual_threshold = manual_threshold
        self.lock_timeout = lock_timeout
        self._events: dict[str, ArchivedEvent] = {}
        self._lock = threading.Lock()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def load(self) -> int:
        """Load the archive wholesale from storage. Returns the event count."""
        if self.storage is None:
            return 0
        events = self.storage.load()
        with self._batch():
            self._events = {event.id: event for event in events}
        return len(self._events)

    def _persist(self, events: dict[str, ArchivedEvent]) -> None:
        if self.storage is not None:
            self.storage.save(list(events.values()))

    @contextmanager
    def _batch(self):
        """Acquire the store for one batch, or raise StoreBusy on timeout."""
        timeout = -1 if self.lock_timeout is None else self.lock_timeout
        if not self._lock.acquire(timeout=timeout):
            raise StoreBusy("Archive store is busy with another batch")
        try:
            yield
        finally:
            self._lock.release()

    # =========================================================================
    # READ
    # =========================================================================

    def all(self) -> list[ArchivedEvent]:
        """Read-only snapshot in archive order."""
        return list(self._events.values())

    def get(self, event_id: str) -> ArchivedEvent | None:
        return self._events.get(event_id)

    def __len__(self) -> int:
        return len(self._events)

    # =========================================================================
    # WRITE
    # =========================================================================

    def insert(self, event: CandidateEvent | dict) -> ArchivedEvent:
        """Append an event with a freshly assigned identifier, bypassing matching."""
        candidate = normalize_candidate(event)
        archived = ArchivedEvent.from_candidate(candidate, event_id=new_event_id())

        with self._batch():
            working = dict(self._events)
            working[archived.id] = archived
            self._persist(working)
            self._events = working

        logger.info(f"[ARCHIVE] Inserted {archived.id}: {archived.title[:60]}")
        return archived

    def upsert_many(
        self,
        candidates: Iterable[CandidateEvent | dict],
        origin_url: str | None = None,
        is_manual: bool = False,
        source_agnostic: bool | None = None,
    ) -> UpsertResult:
        """
        Normalize, resolve and insert-or-merge a batch of candidates.

        Args:
            candidates: Loose records or CandidateEvents
            origin_url: Source the batch came from. None makes the
                external-source-id tier source-agnostic.
            is_manual: Mark every candidate as operator-supplied
            source_agnostic: Override the external-source-id scoping. Defaults
                to True only when origin_url is None.

        Returns:
            UpsertResult with inserted/merged counts
        """
        result = UpsertResult()
        if source_agnostic is None:
            source_agnostic = origin_url is None

        with self._batch():
            working = dict(self._events)

            for raw in candidates:
                candidate = normalize_candidate(raw, origin_url=origin_url, is_manual=is_manual)
                # Identifiers are unique, so an id already in the archive wins outright
                if candidate.id in working:
                    match = working[candidate.id], MatchTier.IDENTIFIER
                else:
                    match = resolve(
                        candidate,
                        working.values(),
                        source_agnostic=source_agnostic,
                        tight_threshold=self.tight_threshold,
                        manual_threshold=self.manual_threshold,
                    )

                if match:
                    existing, tier = match
                    # A record re-imported verbatim is already folded in
                    if not (tier is MatchTier.IDENTIFIER and _same_record(existing, candidate)):
                        working[existing.id] = merge_events(existing, candidate)
                    result.merged += 1
                    result.event_ids.append(existing.id)
                else:
                    archived = ArchivedEvent.from_candidate(candidate)
                    working[archived.id] = archived
                    result.inserted += 1
                    result.event_ids.append(archived.id)

            if result.total:
                self._persist(working)
                self._events = working

        if result.total:
            logger.info(
                f"[ARCHIVE] Batch from {origin_url or 'any source'}: "
                f"{result.inserted} new, {result.merged} merged (archive size {len(self._events)})"
            )
        return result

    def remove_by_source(self, origin_url: str) -> int:
        """Purge every event whose origin URL equals the removed source."""
        with self._batch():
            working = {
                event_id: event
                for event_id, event in self._events.items()
                if event.origin_url != origin_url
            }
            removed = len(self._events) - len(working)
            if removed:
                self._persist(working)
                self._events = working

        logger.info(f"[ARCHIVE] Removed {removed} events from source {origin_url}")
        return removed

    # =========================================================================
    # EXPORT / IMPORT
    # =========================================================================

    def export(self) -> list[dict]:
        """Full archive as JSON-ready records."""
        return serialize_events(self.all())

    def export_json(self) -> str:
        return json.dumps(self.export(), ensure_ascii=False, indent=2)

    def import_events(self, records: Iterable[dict]) -> UpsertResult:
        """
        Merge an exported archive back in. Importing the same export twice is a no-op.

        Records carry their own origin URLs, so external ids stay scoped to
        their source: two channels reusing a message number never collide.
        """
        return self.upsert_many(records, origin_url=None, source_agnostic=False)
