"""Read-side filtering of the archive (search, category, date range)."""

from collections.abc import Iterable
from datetime import date, timedelta
from enum import Enum

from intel_archive.models import ArchivedEvent, EventCategory


class TimeRange(str, Enum):
    TODAY = "TODAY"
    RECENT = "RECENT"
    LAST_WEEK = "LAST_WEEK"
    LAST_3_WEEKS = "LAST_3_WEEKS"
    LAST_3_MONTHS = "LAST_3_MONTHS"
    LAST_YEAR = "LAST_YEAR"
    ALL = "ALL"


RANGE_DAYS = {
    TimeRange.TODAY: 0,
    TimeRange.RECENT: 3,
    TimeRange.LAST_WEEK: 7,
    TimeRange.LAST_3_WEEKS: 21,
    TimeRange.LAST_3_MONTHS: 90,
    TimeRange.LAST_YEAR: 365,
}


def time_range_start(preset: TimeRange, today: date | None = None) -> date | None:
    """First day covered by a preset. None for ALL."""
    if preset is TimeRange.ALL:
        return None
    today = today or date.today()
    return today - timedelta(days=RANGE_DAYS[preset])


def filter_events(
    events: Iterable[ArchivedEvent],
    search: str | None = None,
    category: EventCategory | None = None,
    start: date | None = None,
    end: date | None = None,
) -> list[ArchivedEvent]:
    """
    Filter archived events for display.

    Args:
        events: Archived events
        search: Case-insensitive substring of title, location or summary
        category: Keep only this category
        start: Inclusive first day
        end: Inclusive last day

    Returns:
        Matching events, newest first
    """
    needle = (search or "").strip().lower()
    selected = []

    for event in events:
        if category is not None and event.category != category:
            continue
        if start is not None and event.event_date < start:
            continue
        if end is not None and event.event_date > end:
            continue
        if needle and not any(
            needle in text.lower() for text in (event.title, event.location_name, event.summary)
        ):
            continue
        selected.append(event)

    return sorted(selected, key=lambda event: event.event_date, reverse=True)
