"""Event models - extracted candidates and archived (deduplicated) events."""

import uuid
from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# Literal origin used for operator uploads from the crowd analysis panel
MANUAL_UPLOAD_ORIGIN = "Manual Upload"

# Title marker of placeholder titles generated from crowd media analysis
CROWD_TITLE_PREFIX = "Crowd:"

DEFAULT_RELIABILITY = 7
MAX_RELIABILITY = 10


class EventCategory(str, Enum):
    """Incident classification, fixed at first insertion."""

    MILITARY = "Military"
    POLITICAL = "Political"
    CYBER = "Cyber"
    TERRORISM = "Terrorism"
    CIVIL_UNREST = "Civil Unrest"
    OTHER = "Other"


class SourceType(str, Enum):
    """Kind of content origin."""

    TELEGRAM = "Telegram"
    INSTAGRAM = "Instagram"
    TWITTER = "Twitter"
    WEB = "Web"
    MANUAL = "Manual"


def new_event_id() -> str:
    """Generate a permanent event identifier."""
    return str(uuid.uuid4())


class Casualties(BaseModel):
    """Civilian casualty counts."""

    model_config = ConfigDict(frozen=True)

    dead: int = Field(default=0, ge=0)
    injured: int = Field(default=0, ge=0)
    detained: int = Field(default=0, ge=0)


class SecurityCasualties(BaseModel):
    """Security force casualty counts."""

    model_config = ConfigDict(frozen=True)

    dead: int = Field(default=0, ge=0)
    injured: int = Field(default=0, ge=0)


class CandidateEvent(BaseModel):
    """
    A freshly extracted, unvalidated incident record.

    Produced by the normalizer with every field defaulted. The identifier is
    assigned eagerly and discarded when the candidate merges into an
    existing event.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_event_id)

    # === Description ===
    title: str = "Unknown Event"
    summary: str = ""
    category: EventCategory = EventCategory.OTHER
    event_date: date = Field(default_factory=date.today)  # Day precision only

    # === Location ===
    location_name: str = "Unknown"  # May be hierarchical: "City, Province, Country"
    lat: float = 0.0  # 0/0 means unknown
    lng: float = 0.0

    # === Origin ===
    source_type: SourceType = SourceType.WEB
    source_name: str | None = None
    origin_url: str | None = None
    external_source_id: str | None = None  # Scoped to the originating source
    grounding_urls: list[str] = Field(default_factory=list)

    # === Counts ===
    crowd_count: int = Field(default=0, ge=0)  # 0 means no crowd data
    civilian_casualties: Casualties = Field(default_factory=Casualties)
    security_casualties: SecurityCasualties = Field(default_factory=SecurityCasualties)

    # === Trust ===
    reliability_score: int = Field(default=DEFAULT_RELIABILITY, ge=1, le=MAX_RELIABILITY)
    reliability_reason: str = ""

    # === Provenance flags ===
    is_crowd_derived: bool = False  # Produced by the crowd media analyzer
    is_manual_origin: bool = False  # Content supplied directly by the operator

    @property
    def has_crowd_data(self) -> bool:
        return self.crowd_count > 0

    @property
    def is_manual_crowd_override(self) -> bool:
        """Operator-confirmed crowd submission, treated as ground truth for position."""
        return self.is_crowd_derived and self.is_manual_origin


class ArchivedEvent(CandidateEvent):
    """A candidate with a permanent identity, stored in the archive."""

    id: str

    @classmethod
    def from_candidate(cls, candidate: CandidateEvent, event_id: str | None = None) -> "ArchivedEvent":
        data = candidate.model_dump()
        if event_id:
            data["id"] = event_id
        return cls.model_validate(data)
