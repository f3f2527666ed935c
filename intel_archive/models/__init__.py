"""Data models."""

from intel_archive.models.event import (
    CROWD_TITLE_PREFIX,
    MANUAL_UPLOAD_ORIGIN,
    ArchivedEvent,
    CandidateEvent,
    Casualties,
    EventCategory,
    SecurityCasualties,
    SourceType,
    new_event_id,
)
from intel_archive.models.source import (
    ChannelPost,
    MonitoredSource,
    SourceMetadata,
    SourcePage,
    SyncConfiguration,
)
from intel_archive.models.crowd import CrowdEstimate
from intel_archive.models.archive_row import ArchivedEventRow

__all__ = [
    # Events
    "CROWD_TITLE_PREFIX",
    "MANUAL_UPLOAD_ORIGIN",
    "ArchivedEvent",
    "CandidateEvent",
    "Casualties",
    "EventCategory",
    "SecurityCasualties",
    "SourceType",
    "new_event_id",
    # Sources
    "ChannelPost",
    "MonitoredSource",
    "SourceMetadata",
    "SourcePage",
    "SyncConfiguration",
    # Crowd analysis
    "CrowdEstimate",
    # SQL storage
    "ArchivedEventRow",
]
