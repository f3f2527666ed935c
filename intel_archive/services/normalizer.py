"""
Candidate Normalizer

Coerces loosely-typed records (LLM output, crowd analysis results, imported
archives) into fully-defaulted CandidateEvents.

Malformed fields are silently defaulted: partial intelligence is kept rather
than dropping the event. Accepts snake_case, camelCase and the legacy keys of
the earlier archive format (sourceId, sourceUrl, protestorCount, casualties,
isCrowdResult).
"""

import math
import re
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from intel_archive.models import (
    MANUAL_UPLOAD_ORIGIN,
    CandidateEvent,
    Casualties,
    EventCategory,
    SecurityCasualties,
    SourceType,
    new_event_id,
)
from intel_archive.models.event import DEFAULT_RELIABILITY, MAX_RELIABILITY


# Accepted keys per field, in lookup order
FIELD_KEYS: dict[str, tuple[str, ...]] = {
    "id": ("id",),
    "title": ("title",),
    "summary": ("summary",),
    "category": ("category",),
    "event_date": ("event_date", "eventDate", "date"),
    "location_name": ("location_name", "locationName", "location"),
    "lat": ("lat", "latitude"),
    "lng": ("lng", "lon", "longitude"),
    "source_type": ("source_type", "sourceType"),
    "source_name": ("source_name", "sourceName"),
    "origin_url": ("origin_url", "originUrl", "sourceUrl", "source_url"),
    "external_source_id": ("external_source_id", "externalSourceId", "sourceId", "source_id"),
    "grounding_urls": ("grounding_urls", "groundingUrls"),
    "crowd_count": ("crowd_count", "crowdCount", "protestorCount", "protestor_count"),
    "civilian_casualties": ("civilian_casualties", "civilianCasualties", "casualties"),
    "security_casualties": ("security_casualties", "securityCasualties"),
    "reliability_score": ("reliability_score", "reliabilityScore"),
    "reliability_reason": ("reliability_reason", "reliabilityReason"),
    "is_crowd_derived": ("is_crowd_derived", "isCrowdDerived", "isCrowdResult"),
    "is_manual_origin": ("is_manual_origin", "isManualOrigin"),
}


# =============================================================================
# COERCION HELPERS
# =============================================================================


def _pick(record: Mapping, field: str) -> Any:
    """Return the first non-None value among the accepted keys of a field."""
    for key in FIELD_KEYS[field]:
        value = record.get(key)
        if value is not None:
            return value
    return None


def to_float(value: Any) -> float:
    """Coerce to a finite float; anything else becomes 0."""
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def to_count(value: Any) -> int:
    """Coerce to a non-negative integer; '1,200' is read as 1200."""
    if isinstance(value, str):
        value = value.replace(",", "").strip()
    number = to_float(value)
    return max(0, int(number))


def to_text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def to_optional_text(value: Any) -> str | None:
    text = to_text(value)
    return text or None


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _squash(value: str) -> str:
    return re.sub(r"[^a-z]", "", value.lower())


def to_category(value: Any) -> EventCategory:
    """Match by value or name, ignoring case, spaces and underscores ('CivilUnrest')."""
    if isinstance(value, EventCategory):
        return value
    key = _squash(to_text(value))
    if not key:
        return EventCategory.OTHER
    for category in EventCategory:
        if key in (_squash(category.value), _squash(category.name)):
            return category
    return EventCategory.OTHER


def to_source_type(value: Any, default: SourceType = SourceType.WEB) -> SourceType:
    if isinstance(value, SourceType):
        return value
    key = _squash(to_text(value))
    for source_type in SourceType:
        if key == _squash(source_type.value):
            return source_type
    return default


def to_event_date(value: Any) -> date:
    """Calendar day of a date, datetime or ISO string; today when unreadable."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = to_text(value)
    if len(text) >= 10:
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            pass
    return date.today()


def to_reliability(value: Any) -> int:
    if value is None:
        return DEFAULT_RELIABILITY
    return min(MAX_RELIABILITY, max(1, to_count(value)))


def _to_casualties(value: Any) -> Casualties:
    if not isinstance(value, Mapping):
        return Casualties()
    return Casualties(
        dead=to_count(value.get("dead")),
        injured=to_count(value.get("injured")),
        detained=to_count(value.get("detained")),
    )


def _to_security_casualties(value: Any) -> SecurityCasualties:
    if not isinstance(value, Mapping):
        return SecurityCasualties()
    return SecurityCasualties(
        dead=to_count(value.get("dead")),
        injured=to_count(value.get("injured")),
    )


def _to_urls(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [str(url) for url in value if to_text(url)]


# =============================================================================
# NORMALIZATION
# =============================================================================


def normalize_candidate(
    raw: Mapping | CandidateEvent | Any,
    origin_url: str | None = None,
    source_type: SourceType | None = None,
    is_manual: bool = False,
) -> CandidateEvent:
    """
    Build a fully-defaulted CandidateEvent from a loose record.

    Args:
        raw: Extracted record (dict), an existing CandidateEvent, or anything else
        origin_url: Source URL stamped on records that carry none
        source_type: Source type used when the record carries none
        is_manual: Mark the candidate as operator-supplied

    Returns:
        CandidateEvent. Never raises for malformed input.
    """
    if isinstance(raw, CandidateEvent):
        record: Mapping = raw.model_dump()
    elif isinstance(raw, Mapping):
        record = raw
    else:
        record = {}

    record_origin = to_optional_text(_pick(record, "origin_url"))
    resolved_origin = record_origin or origin_url

    manual = (
        is_manual
        or to_bool(_pick(record, "is_manual_origin"))
        or resolved_origin == MANUAL_UPLOAD_ORIGIN
    )

    return CandidateEvent(
        id=to_text(_pick(record, "id")) or new_event_id(),
        title=to_text(_pick(record, "title"), "Unknown Event"),
        summary=to_text(_pick(record, "summary")),
        category=to_category(_pick(record, "category")),
        event_date=to_event_date(_pick(record, "event_date")),
        location_name=to_text(_pick(record, "location_name"), "Unknown"),
        lat=to_float(_pick(record, "lat")),
        lng=to_float(_pick(record, "lng")),
        source_type=to_source_type(
            _pick(record, "source_type"),
            default=source_type or (SourceType.MANUAL if manual else SourceType.WEB),
        ),
        source_name=to_optional_text(_pick(record, "source_name")),
        origin_url=resolved_origin,
        external_source_id=to_optional_text(_pick(record, "external_source_id")),
        grounding_urls=_to_urls(_pick(record, "grounding_urls")),
        crowd_count=to_count(_pick(record, "crowd_count")),
        civilian_casualties=_to_casualties(_pick(record, "civilian_casualties")),
        security_casualties=_to_security_casualties(_pick(record, "security_casualties")),
        reliability_score=to_reliability(_pick(record, "reliability_score")),
        reliability_reason=to_text(_pick(record, "reliability_reason")),
        is_crowd_derived=to_bool(_pick(record, "is_crowd_derived")),
        is_manual_origin=manual,
    )


def has_crowd_data(event: CandidateEvent) -> bool:
    """A zero crowd count means 'no crowd data', not an empty square."""
    return event.crowd_count > 0
