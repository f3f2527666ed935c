"""
Sync state store.

Persists the operator's SyncConfiguration and the per-source cursor metadata
as one JSON document. Preferred sources are always present in the monitored
list.
"""

import json
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from intel_archive.models import MonitoredSource, SourceMetadata, SourceType, SyncConfiguration
from intel_archive.services.storage import atomic_write_text, quarantine_file


class SyncState(BaseModel):
    """Serialized document."""

    sync_config: SyncConfiguration = Field(default_factory=SyncConfiguration)
    sources: dict[str, SourceMetadata] = Field(default_factory=dict)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncStateStore:
    """Sync configuration and source metadata, saved on every change."""

    def __init__(
        self,
        path: Path | str,
        preferred_sources: list[str] | None = None,
        default_interval_minutes: int = 120,
    ):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._state = self._load(default_interval_minutes)

        missing = [url for url in (preferred_sources or []) if url not in self._state.sync_config.monitored_urls()]
        if missing:
            for url in missing:
                self._state.sync_config.monitored_sources.append(
                    MonitoredSource(url=url, source_type=SourceType.TELEGRAM)
                )
            self._save()

    # === Persistence ===

    def _load(self, default_interval_minutes: int) -> SyncState:
        if not self.path.exists():
            return SyncState(sync_config=SyncConfiguration(interval_minutes=default_interval_minutes))
        try:
            return SyncState.model_validate(json.loads(self.path.read_text(encoding="utf-8")))
        except (ValueError, ValidationError) as e:
            moved = quarantine_file(self.path)
            logger.warning(f"[SYNC] Unreadable sync state moved to {moved}, resetting: {e}")
            return SyncState(sync_config=SyncConfiguration(interval_minutes=default_interval_minutes))

    def _save(self) -> None:
        atomic_write_text(self.path, self._state.model_dump_json(indent=2))

    # === Sync configuration ===

    @property
    def sync_config(self) -> SyncConfiguration:
        return self._state.sync_config.model_copy(deep=True)

    def update_sync_config(self, **changes) -> SyncConfiguration:
        """Apply operator changes (enabled, interval_minutes, monitored_sources)."""
        with self._lock:
            data = self._state.sync_config.model_dump()
            data.update({key: value for key, value in changes.items() if value is not None})
            self._state.sync_config = SyncConfiguration.model_validate(data)
            self._save()
            return self.sync_config

    def add_source(self, url: str, source_type: SourceType = SourceType.TELEGRAM) -> bool:
        """Add a monitored source. Returns False if it was already monitored."""
        url = url.strip()
        with self._lock:
            if url in self._state.sync_config.monitored_urls():
                return False
            self._state.sync_config.monitored_sources.append(MonitoredSource(url=url, source_type=source_type))
            self._save()
        logger.info(f"[SYNC] Monitoring {url}")
        return True

    def mark_synced(self, when: datetime | None = None) -> None:
        with self._lock:
            self._state.sync_config.last_sync_at = when or _utcnow()
            self._save()

    def is_sync_due(self, now: datetime | None = None) -> bool:
        """Enabled, has sources, and the interval elapsed since the last sync."""
        config = self._state.sync_config
        if not config.enabled or not config.monitored_sources:
            return False
        if config.last_sync_at is None:
            return True
        now = now or _utcnow()
        last = config.last_sync_at
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        return now - last >= timedelta(minutes=config.interval_minutes)

    # === Source metadata ===

    def get_metadata(self, url: str) -> SourceMetadata | None:
        metadata = self._state.sources.get(url)
        return metadata.model_copy() if metadata else None

    def all_metadata(self) -> dict[str, SourceMetadata]:
        return {url: metadata.model_copy() for url, metadata in self._state.sources.items()}

    def record_page(
        self,
        url: str,
        next_cursor: str | None,
        event_count: int,
        source_type: SourceType,
    ) -> SourceMetadata:
        """Advance a source's cursor after a successfully ingested page."""
        with self._lock:
            previous = self._state.sources.get(url) or SourceMetadata()
            metadata = SourceMetadata(
                last_cursor=next_cursor or previous.last_cursor,
                total_events=previous.total_events + event_count,
                last_update=_utcnow(),
                source_type=source_type,
            )
            self._state.sources[url] = metadata
            self._save()
            return metadata.model_copy()

    def remove_source(self, url: str) -> None:
        """Forget a source: monitored list and cursor metadata."""
        with self._lock:
            config = self._state.sync_config
            config.monitored_sources = [s for s in config.monitored_sources if s.url != url]
            self._state.sources.pop(url, None)
            self._save()
