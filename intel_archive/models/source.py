"""Source models - monitored channels, cursor state and fetched pages."""

from datetime import datetime

from pydantic import BaseModel, Field

from intel_archive.models.event import SourceType


class MonitoredSource(BaseModel):
    """A channel URL watched by the background sync."""

    url: str
    source_type: SourceType = SourceType.TELEGRAM


class SyncConfiguration(BaseModel):
    """Operator-controlled background sync settings."""

    enabled: bool = True
    interval_minutes: int = Field(default=120, ge=1)
    monitored_sources: list[MonitoredSource] = Field(default_factory=list)
    last_sync_at: datetime | None = None

    def monitored_urls(self) -> list[str]:
        return [source.url for source in self.monitored_sources]


class SourceMetadata(BaseModel):
    """Per-source pagination cursor and counters."""

    last_cursor: str | None = None
    total_events: int = 0
    last_update: datetime | None = None
    source_type: SourceType = SourceType.WEB


class SourcePage(BaseModel):
    """One page fetched from a source, ready for extraction."""

    raw_content: str
    next_cursor: str | None = None
    source_name: str | None = None
    message_count: int = 0  # 0 is the authoritative end-of-history signal
    source_type: SourceType = SourceType.WEB
    oldest_post_date: str | None = None


class ChannelPost(BaseModel):
    """A single channel post with optional attached media (crowd bulk scan)."""

    id: str
    text: str = ""
    url: str
    media_url: str | None = None
