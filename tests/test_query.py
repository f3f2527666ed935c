"""
Tests for archive filtering.
"""

from datetime import date

from intel_archive.models import EventCategory
from intel_archive.services.query import TimeRange, filter_events, time_range_start


TODAY = date(2026, 1, 10)


class TestTimeRangeStart:
    """Tests for time_range_start function."""

    def test_presets(self):
        assert time_range_start(TimeRange.TODAY, TODAY) == TODAY
        assert time_range_start(TimeRange.RECENT, TODAY) == date(2026, 1, 7)
        assert time_range_start(TimeRange.LAST_WEEK, TODAY) == date(2026, 1, 3)
        assert time_range_start(TimeRange.LAST_3_MONTHS, TODAY) == date(2025, 10, 12)
        assert time_range_start(TimeRange.LAST_YEAR, TODAY) == date(2025, 1, 10)

    def test_all_has_no_start(self):
        assert time_range_start(TimeRange.ALL, TODAY) is None


class TestFilterEvents:
    """Tests for filter_events function."""

    def _events(self, make_event):
        return [
            make_event(title="Protest at Azadi Square", event_date=date(2026, 1, 8)),
            make_event(title="Drone strike", category=EventCategory.MILITARY, event_date=date(2026, 1, 10),
                       location_name="Isfahan", summary="Explosions heard near the airbase."),
            make_event(title="Bank systems offline", category=EventCategory.CYBER, event_date=date(2025, 12, 1),
                       location_name="Mashhad", summary=""),
        ]

    def test_newest_first(self, make_event):
        """Test no filters returns everything sorted by date."""
        titles = [event.title for event in filter_events(self._events(make_event))]
        assert titles == ["Drone strike", "Protest at Azadi Square", "Bank systems offline"]

    def test_search_is_case_insensitive_over_text_fields(self, make_event):
        """Test title, location and summary are searched."""
        events = self._events(make_event)
        assert [e.title for e in filter_events(events, search="AZADI")] == ["Protest at Azadi Square"]
        assert [e.title for e in filter_events(events, search="mashhad")] == ["Bank systems offline"]
        assert [e.title for e in filter_events(events, search="airbase")] == ["Drone strike"]
        assert filter_events(events, search="nothing like this") == []

    def test_category(self, make_event):
        events = filter_events(self._events(make_event), category=EventCategory.CYBER)
        assert [e.title for e in events] == ["Bank systems offline"]

    def test_date_bounds_are_inclusive(self, make_event):
        """Test start and end days are both included."""
        events = filter_events(self._events(make_event), start=date(2026, 1, 8), end=date(2026, 1, 10))
        assert len(events) == 2
        events = filter_events(self._events(make_event), start=time_range_start(TimeRange.TODAY, TODAY))
        assert [e.title for e in events] == ["Drone strike"]
