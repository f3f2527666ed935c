"""
Identity Resolver

Decides whether a candidate describes an already archived event.

Match cascade, evaluated per archived event, first true test wins:
1. Identifier equality (re-processing of exported archives)
2. External-source-id equality, scoped to the same origin URL unless the
   batch is source-agnostic or either side has no origin recorded
3. Same calendar day is required for the heuristic tiers:
   3a. Exact title and location name
   3b. Spatial proximity (tight threshold, or the looser manual threshold
       for operator submissions of the same category)
   3c. Location name containment plus normalized title containment

There is no scoring across archived events: the first match in archive
order is accepted.
"""

import re
from collections.abc import Iterable
from enum import Enum

from loguru import logger

from intel_archive.models import ArchivedEvent, CandidateEvent


# === Configuration ===
SPATIAL_TIGHT_THRESHOLD = 0.002  # degrees, ~200m
SPATIAL_MANUAL_THRESHOLD = 0.05  # degrees, ~5km, manual submissions only

# Keep ASCII alphanumerics and the Arabic/Farsi block
_TITLE_STRIP = re.compile(r"[^a-z0-9\u0600-\u06FF]")


class MatchTier(str, Enum):
    """Which test of the cascade matched."""

    IDENTIFIER = "identifier"
    EXTERNAL_SOURCE_ID = "external_source_id"
    EXACT_TEXT = "exact_text"
    SPATIAL = "spatial"
    FUZZY_TEXT = "fuzzy_text"


def normalize_title(title: str) -> str:
    """Lowercase and strip everything but alphanumerics and Arabic-script letters."""
    return _TITLE_STRIP.sub("", (title or "").lower())


def _has_unknown_position(event: CandidateEvent) -> bool:
    return event.lat == 0 and event.lng == 0


# =============================================================================
# TIER PREDICATES
# =============================================================================


def match_external_source_id(
    existing: CandidateEvent,
    candidate: CandidateEvent,
    source_agnostic: bool = True,
) -> bool:
    """Same externally assigned id, guarded against collisions across sources."""
    if not existing.external_source_id or not candidate.external_source_id:
        return False
    if existing.external_source_id != candidate.external_source_id:
        return False
    return (
        source_agnostic
        or not existing.origin_url
        or not candidate.origin_url
        or existing.origin_url == candidate.origin_url
    )


def match_exact_text(existing: CandidateEvent, candidate: CandidateEvent) -> bool:
    return (
        existing.title == candidate.title
        and existing.location_name == candidate.location_name
    )


def match_spatial(
    existing: CandidateEvent,
    candidate: CandidateEvent,
    tight_threshold: float = SPATIAL_TIGHT_THRESHOLD,
    manual_threshold: float = SPATIAL_MANUAL_THRESHOLD,
) -> bool:
    """
    Proximity on both axes.

    Two events that both lack coordinates (0/0) are not considered close:
    every unlocated event of a day would otherwise collapse into one.
    """
    if _has_unknown_position(existing) and _has_unknown_position(candidate):
        return False

    lat_diff = abs(existing.lat - candidate.lat)
    lng_diff = abs(existing.lng - candidate.lng)

    if lat_diff < tight_threshold and lng_diff < tight_threshold:
        return True

    # Manual submissions refine an approximate auto-extracted position
    if candidate.is_manual_origin and existing.category == candidate.category:
        return lat_diff < manual_threshold and lng_diff < manual_threshold

    return False


def match_fuzzy_text(existing: CandidateEvent, candidate: CandidateEvent) -> bool:
    """One location contains the other and one normalized title contains the other."""
    loc_a = existing.location_name.strip()
    loc_b = candidate.location_name.strip()
    if not loc_a or not loc_b:
        return False
    if loc_a not in loc_b and loc_b not in loc_a:
        return False

    title_a = normalize_title(existing.title)
    title_b = normalize_title(candidate.title)
    if not title_a or not title_b:
        return False
    return title_a in title_b or title_b in title_a


def match_tier(
    existing: CandidateEvent,
    candidate: CandidateEvent,
    source_agnostic: bool = True,
    tight_threshold: float = SPATIAL_TIGHT_THRESHOLD,
    manual_threshold: float = SPATIAL_MANUAL_THRESHOLD,
) -> MatchTier | None:
    """
    Run the cascade for one archived event.

    Returns:
        The first matching tier, or None
    """
    if existing.id == candidate.id:
        return MatchTier.IDENTIFIER

    if match_external_source_id(existing, candidate, source_agnostic):
        return MatchTier.EXTERNAL_SOURCE_ID

    # Day-level precision: same day is necessary for every heuristic tier
    if existing.event_date != candidate.event_date:
        return None

    if match_exact_text(existing, candidate):
        return MatchTier.EXACT_TEXT

    if match_spatial(existing, candidate, tight_threshold, manual_threshold):
        return MatchTier.SPATIAL

    if match_fuzzy_text(existing, candidate):
        return MatchTier.FUZZY_TEXT

    return None


def resolve(
    candidate: CandidateEvent,
    archive: Iterable[ArchivedEvent],
    source_agnostic: bool = True,
    tight_threshold: float = SPATIAL_TIGHT_THRESHOLD,
    manual_threshold: float = SPATIAL_MANUAL_THRESHOLD,
) -> tuple[ArchivedEvent, MatchTier] | None:
    """
    Find the archived event a candidate belongs to.

    Args:
        candidate: Normalized candidate
        archive: Archived events in archive order
        source_agnostic: True when the batch was not tied to a single source URL
        tight_threshold: Spatial tier threshold in degrees
        manual_threshold: Widened threshold for manual submissions

    Returns:
        (matched event, tier) for the first match, or None for a new event
    """
    for existing in archive:
        tier = match_tier(
            existing,
            candidate,
            source_agnostic=source_agnostic,
            tight_threshold=tight_threshold,
            manual_threshold=manual_threshold,
        )
        if tier is not None:
            logger.debug(f"[RESOLVER] Candidate '{candidate.title[:40]}' matched {existing.id} via {tier.value}")
            return existing, tier
    return None
