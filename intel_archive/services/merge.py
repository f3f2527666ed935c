"""
Merge Engine

Folds an incoming candidate into the archived event it matched.

Each field is reconciled by a named strategy, listed declaratively in
FIELD_RULES so the merge can be audited field by field. A "manual crowd
override" (incoming is both crowd-derived and operator-submitted) is the
ground truth for position, crowd count, title, summary and trust.

Merge is total: any two well-formed events produce a merged event.
"""

from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel

from intel_archive.models import CROWD_TITLE_PREFIX, ArchivedEvent, CandidateEvent
from intel_archive.models.event import MAX_RELIABILITY


REASON_SEPARATOR = " | "
ANALYST_VALIDATION = "Validated by analyst: {summary}"


@dataclass(frozen=True)
class MergeContext:
    """Everything a strategy may look at besides the two field values."""

    existing: CandidateEvent
    incoming: CandidateEvent

    @property
    def is_manual_override(self) -> bool:
        return self.incoming.is_manual_crowd_override


Strategy = Callable[[Any, Any, MergeContext], Any]


# =============================================================================
# RECONCILIATION STRATEGIES
# =============================================================================


def keep_existing(existing: Any, incoming: Any, ctx: MergeContext) -> Any:
    """Identity and classification are fixed at first insertion."""
    return existing


def fill_if_empty(existing: Any, incoming: Any, ctx: MergeContext) -> Any:
    """First writer wins; incoming only fills a missing value."""
    return existing if existing else incoming


def max_of(existing: Any, incoming: Any, ctx: MergeContext) -> Any:
    return max(existing or 0, incoming or 0)


def max_of_each(existing: BaseModel, incoming: BaseModel, ctx: MergeContext) -> BaseModel:
    """Sub-field-wise maximum of a counts model (casualties)."""
    updates = {
        name: max(getattr(existing, name) or 0, getattr(incoming, name) or 0)
        for name in type(existing).model_fields
    }
    return existing.model_copy(update=updates)


def logical_or(existing: Any, incoming: Any, ctx: MergeContext) -> bool:
    return bool(existing) or bool(incoming)


def longer_of(existing: str, incoming: str, ctx: MergeContext) -> str:
    """Longer text is assumed more informative; ties keep the existing one."""
    return incoming if len(incoming or "") > len(existing or "") else existing


def concat_if_different(existing: str, incoming: str, ctx: MergeContext) -> str:
    """
    Append the incoming text unless it is empty or already one of the segments.

    Re-extraction of the same content therefore leaves the reason unchanged.
    """
    existing = existing or ""
    incoming = incoming or ""
    if not incoming or incoming == existing:
        return existing
    if incoming in existing.split(REASON_SEPARATOR):
        return existing
    if not existing:
        return incoming
    return f"{existing}{REASON_SEPARATOR}{incoming}"


def incoming_unless_crowd_placeholder(existing: str, incoming: str, ctx: MergeContext) -> str:
    """Incoming title wins, except a crowd placeholder over a richer title."""
    incoming_is_placeholder = (incoming or "").startswith(CROWD_TITLE_PREFIX)
    existing_is_placeholder = (existing or "").startswith(CROWD_TITLE_PREFIX)
    if incoming_is_placeholder and not existing_is_placeholder:
        return existing
    return incoming


def take_incoming(existing: Any, incoming: Any, ctx: MergeContext) -> Any:
    return incoming


def analyst_validation(existing: Any, incoming: Any, ctx: MergeContext) -> str:
    return ANALYST_VALIDATION.format(summary=ctx.incoming.summary)


def maximum_trust(existing: Any, incoming: Any, ctx: MergeContext) -> int:
    return MAX_RELIABILITY


def override_on_flag(on_override: Strategy, otherwise: Strategy) -> Strategy:
    """Pick a strategy depending on whether incoming is a manual crowd override."""

    def strategy(existing: Any, incoming: Any, ctx: MergeContext) -> Any:
        chosen = on_override if ctx.is_manual_override else otherwise
        return chosen(existing, incoming, ctx)

    strategy.__name__ = f"override_on_flag({on_override.__name__}, {otherwise.__name__})"
    return strategy


# =============================================================================
# FIELD RULES
# =============================================================================


FIELD_RULES: dict[str, Strategy] = {
    # Identity and classification
    "id": keep_existing,
    "event_date": keep_existing,
    "category": keep_existing,
    "external_source_id": fill_if_empty,
    # Position: auto-extracted positions must not drift on every re-sync
    "lat": override_on_flag(take_incoming, keep_existing),
    "lng": override_on_flag(take_incoming, keep_existing),
    "location_name": override_on_flag(take_incoming, keep_existing),
    # Counts only grow
    "crowd_count": override_on_flag(take_incoming, max_of),
    "civilian_casualties": max_of_each,
    "security_casualties": max_of_each,
    # Trust
    "reliability_score": override_on_flag(maximum_trust, max_of),
    "reliability_reason": override_on_flag(analyst_validation, concat_if_different),
    # Text
    "title": override_on_flag(take_incoming, incoming_unless_crowd_placeholder),
    "summary": override_on_flag(take_incoming, longer_of),
    # Provenance
    "is_crowd_derived": logical_or,
}


def merge_events(existing: ArchivedEvent, incoming: CandidateEvent) -> ArchivedEvent:
    """
    Merge an incoming candidate into an archived event.

    Fields without a rule keep the archived value.

    Args:
        existing: Archived event matched by the resolver
        incoming: Normalized candidate

    Returns:
        A new ArchivedEvent; the inputs are not modified
    """
    ctx = MergeContext(existing=existing, incoming=incoming)
    updates = {
        field: strategy(getattr(existing, field), getattr(incoming, field), ctx)
        for field, strategy in FIELD_RULES.items()
    }
    return existing.model_copy(update=updates)
