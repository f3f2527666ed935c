"""
Tests for the archive store.

Tests cover:
- Insert vs merge through the resolver, within and across batches
- Idempotent re-ingestion
- Source removal
- Export/import round trips
- Batch atomicity and the single-batch lock
"""

import json
import threading

import pytest

from intel_archive.exceptions import StoreBusy
from intel_archive.models import CandidateEvent
from intel_archive.services.archive import ArchiveStore
from intel_archive.services.storage import JsonArchiveStorage

from conftest import CHANNEL_URL


PROTEST = {
    "date": "2024-06-01",
    "title": "Protest",
    "locationName": "Tehran",
    "lat": 35.70,
    "lng": 51.42,
    "crowdCount": 500,
}

PROTEST_RALLY = {
    "date": "2024-06-01",
    "title": "Protest rally",
    "locationName": "Tehran",
    "lat": 35.7005,
    "lng": 51.4205,
    "crowdCount": 800,
    "casualties": {"dead": 1},
}


class TestUpsertMany:
    """Tests for ArchiveStore.upsert_many."""

    def test_inserts_new_events(self, store):
        """Test unrelated candidates each become an archived event."""
        result = store.upsert_many(
            [PROTEST, {"date": "2024-06-01", "title": "Blackout", "locationName": "Shiraz", "lat": 29.6, "lng": 52.5}]
        )

        assert result.inserted == 2
        assert result.merged == 0
        assert len(store) == 2
        assert [event.id for event in store.all()] == result.event_ids

    def test_rally_merges_into_protest(self, store):
        """Test a nearby same-day report merges, keeping the larger counts."""
        store.upsert_many([PROTEST], origin_url=CHANNEL_URL)
        result = store.upsert_many([PROTEST_RALLY], origin_url=CHANNEL_URL)

        assert result.merged == 1
        assert len(store) == 1
        event = store.all()[0]
        assert event.crowd_count == 800
        assert event.civilian_casualties.dead == 1
        assert event.title == "Protest rally"

    def test_reingesting_same_content_is_idempotent(self, store):
        """Test extracting the same page twice leaves the archive unchanged."""
        records = [
            {**PROTEST, "sourceId": "101", "reliabilityReason": "Single channel"},
            {"date": "2024-06-01", "title": "Blackout", "locationName": "Shiraz", "sourceId": "102"},
        ]
        store.upsert_many(records, origin_url=CHANNEL_URL)
        before = store.export()

        result = store.upsert_many(records, origin_url=CHANNEL_URL)

        assert result.inserted == 0
        assert result.merged == 2
        assert store.export() == before

    def test_duplicates_within_one_batch_are_merged(self, store):
        """Test candidates are matched against events inserted earlier in the batch."""
        result = store.upsert_many([PROTEST, PROTEST_RALLY])

        assert result.inserted == 1
        assert result.merged == 1
        assert result.event_ids[0] == result.event_ids[1]
        assert store.all()[0].crowd_count == 800

    def test_batch_origin_is_stamped(self, store):
        """Test the source URL is recorded on inserted events."""
        store.upsert_many([PROTEST], origin_url=CHANNEL_URL)
        assert store.all()[0].origin_url == CHANNEL_URL

    def test_manual_batch(self, store):
        """Test is_manual marks every candidate as operator-supplied."""
        store.upsert_many([PROTEST], is_manual=True)
        assert store.all()[0].is_manual_origin is True

    def test_manual_crowd_override_replaces_position(self, store):
        """Test an operator crowd estimate overrides an auto-extracted event."""
        store.upsert_many([{"title": "Clashes", "locationName": "Y", "lat": 10.001, "lng": 10.001, "reliabilityScore": 6}])

        store.upsert_many(
            [
                {
                    "isCrowdDerived": True,
                    "isManualOrigin": True,
                    "lat": 10,
                    "lng": 10,
                    "locationName": "X",
                    "reliabilityScore": 5,
                }
            ]
        )

        assert len(store) == 1
        event = store.all()[0]
        assert (event.lat, event.lng) == (10, 10)
        assert event.location_name == "X"
        assert event.reliability_score == 10

    def test_empty_batch_does_not_write(self, store, archive_path):
        """Test an empty batch leaves storage untouched."""
        result = store.upsert_many([])
        assert result.total == 0
        assert not archive_path.exists()

    def test_persisted_and_reloaded(self, store, archive_path):
        """Test every batch is saved and a new store loads it."""
        store.upsert_many([PROTEST], origin_url=CHANNEL_URL)

        reloaded = ArchiveStore(storage=JsonArchiveStorage(archive_path))

        assert reloaded.load() == 1
        assert reloaded.all() == store.all()


class TestInsert:
    """Tests for ArchiveStore.insert."""

    def test_insert_bypasses_matching_with_new_id(self, store, make_event):
        """Test insert always appends with a fresh identifier."""
        first = store.insert(make_event(CandidateEvent, id="given"))
        second = store.insert(make_event(CandidateEvent, id="given"))

        assert len(store) == 2
        assert first.id != "given"
        assert first.id != second.id
        assert store.get(first.id) == first


class TestRemoveBySource:
    """Tests for ArchiveStore.remove_by_source."""

    def test_removes_exactly_the_source_events(self, store):
        """Test N events of the source go, M others stay."""
        store.upsert_many(
            [
                {"title": "A", "locationName": "One", "lat": 1, "lng": 1},
                {"title": "B", "locationName": "Two", "lat": 2, "lng": 2},
                {"title": "C", "locationName": "Three", "lat": 3, "lng": 3},
            ],
            origin_url="https://t.me/a",
        )
        store.upsert_many(
            [
                {"title": "D", "locationName": "Four", "lat": 4, "lng": 4},
                {"title": "E", "locationName": "Five", "lat": 5, "lng": 5},
            ],
            origin_url="https://t.me/b",
        )

        removed = store.remove_by_source("https://t.me/a")

        assert removed == 3
        assert len(store) == 2
        assert {event.origin_url for event in store.all()} == {"https://t.me/b"}

    def test_unknown_source_removes_nothing(self, store):
        """Test removing a source without events."""
        store.upsert_many([PROTEST], origin_url=CHANNEL_URL)
        assert store.remove_by_source("https://t.me/other") == 0
        assert len(store) == 1


class TestExportImport:
    """Tests for export and import."""

    def test_import_of_export_into_same_archive_is_noop(self, store):
        """Test importing an export twice leaves the archive unchanged."""
        store.upsert_many([PROTEST], origin_url=CHANNEL_URL)
        store.upsert_many(
            [{"isCrowdDerived": True, "isManualOrigin": True, "lat": 10, "lng": 10, "locationName": "X", "summary": "Counted"}]
        )
        exported = json.loads(store.export_json())

        first = store.import_events(exported)
        second = store.import_events(exported)

        assert first.inserted == 0
        assert second.inserted == 0
        assert store.export() == exported

    def test_import_into_empty_archive(self, store, archive_path, tmp_path):
        """Test an export restores into a fresh archive with the same ids."""
        store.upsert_many([PROTEST, {"title": "Blackout", "locationName": "Shiraz", "lat": 29.6, "lng": 52.5}])
        exported = store.export()

        fresh = ArchiveStore(storage=JsonArchiveStorage(tmp_path / "fresh.json"))
        result = fresh.import_events(exported)

        assert result.inserted == 2
        assert fresh.export() == exported

    def test_import_keeps_message_ids_scoped_to_their_channel(self, store, tmp_path):
        """Test two channels reusing a message number survive a round trip."""
        store.upsert_many(
            [{"sourceId": "100", "title": "Strike in Tabriz", "locationName": "Tabriz", "lat": 38.08, "lng": 46.29,
              "reliabilityReason": "channel A"}],
            origin_url="https://t.me/a",
        )
        store.upsert_many(
            [{"sourceId": "100", "title": "Fire in Shiraz", "locationName": "Shiraz", "lat": 29.59, "lng": 52.58,
              "reliabilityReason": "channel B"}],
            origin_url="https://t.me/b",
        )
        exported = store.export()

        result = store.import_events(exported)
        fresh = ArchiveStore(storage=JsonArchiveStorage(tmp_path / "fresh.json"))
        fresh_result = fresh.import_events(exported)

        assert result.inserted == 0
        assert store.export() == exported
        assert fresh_result.inserted == 2
        assert len(fresh) == 2
        assert sorted(event.title for event in fresh.all()) == ["Fire in Shiraz", "Strike in Tabriz"]

    def test_export_json_keeps_non_ascii(self, store):
        """Test Persian text is exported verbatim."""
        store.upsert_many([{"title": "تظاهرات", "locationName": "تهران"}])
        assert "تظاهرات" in store.export_json()


class FailingStorage:
    """Storage whose saves always fail."""

    def load(self):
        return []

    def save(self, events):
        raise OSError("disk full")


class TestAtomicity:
    """Tests for batch atomicity and locking."""

    def test_failed_save_leaves_store_unchanged(self, store):
        """Test a persistence failure rolls the batch back."""
        store.upsert_many([PROTEST], origin_url=CHANNEL_URL)
        before = store.export()
        store.storage = FailingStorage()

        with pytest.raises(OSError):
            store.upsert_many([PROTEST_RALLY, {"title": "Blackout", "locationName": "Shiraz"}])
        with pytest.raises(OSError):
            store.remove_by_source(CHANNEL_URL)

        assert store.export() == before

    def test_busy_store_raises_after_timeout(self, store):
        """Test a concurrent batch gives up with StoreBusy."""
        store.lock_timeout = 0.01
        store._lock.acquire()
        try:
            with pytest.raises(StoreBusy):
                store.upsert_many([PROTEST])
        finally:
            store._lock.release()

        assert len(store) == 0

    def test_batches_from_threads_are_serialized(self, store):
        """Test concurrent batches never lose each other's events."""
        batches = [
            [{"title": f"Event {i}", "locationName": f"Place {i}", "lat": i + 1, "lng": i + 1}]
            for i in range(8)
        ]
        threads = [threading.Thread(target=store.upsert_many, args=(batch,)) for batch in batches]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(store) == 8
