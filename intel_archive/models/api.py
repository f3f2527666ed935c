"""Request and response schemas of the HTTP API."""

from pydantic import BaseModel, Field

from intel_archive.models.event import ArchivedEvent, SourceType
from intel_archive.models.source import MonitoredSource, SourceMetadata, SyncConfiguration
from intel_archive.services.ingestion import ScanDepth


class EventPage(BaseModel):
    items: list[ArchivedEvent]
    total: int
    page: int
    per_page: int
    pages: int


class UpsertRequest(BaseModel):
    """A batch of loose candidate records."""

    candidates: list[dict]
    origin_url: str | None = None
    is_manual: bool = False


class UpsertResponse(BaseModel):
    inserted: int
    merged: int
    event_ids: list[str]


class SourceAdd(BaseModel):
    url: str = Field(..., min_length=1)
    source_type: SourceType = SourceType.TELEGRAM


class SyncConfigUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    enabled: bool | None = None
    interval_minutes: int | None = Field(None, ge=1)
    monitored_sources: list[MonitoredSource] | None = None


class SourcesOverview(BaseModel):
    sync_config: SyncConfiguration
    sources: dict[str, SourceMetadata]


class TextIngestRequest(BaseModel):
    text: str = Field(..., min_length=1)
    region: str | None = None


class SourceScanRequest(BaseModel):
    url: str = Field(..., min_length=1)
    depth: ScanDepth = ScanDepth.LATEST
    region: str | None = None


class CrowdChannelScanRequest(BaseModel):
    url: str = Field(..., min_length=1)
    limit: int | None = Field(None, ge=1)


class CrowdIngestRequest(BaseModel):
    """Base64-encoded photo or video. Without origin_url it is an operator upload."""

    data_base64: str
    mime_type: str = "image/jpeg"
    context: str = ""
    origin_url: str | None = None
