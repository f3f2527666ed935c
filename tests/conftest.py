"""Pytest fixtures for testing."""

from datetime import date
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from intel_archive.database import get_archive_store, get_state_store
from intel_archive.main import create_app
from intel_archive.models import ArchivedEvent, EventCategory, SourcePage, SourceType, new_event_id
from intel_archive.services.archive import ArchiveStore
from intel_archive.services.ingestion import IngestionOrchestrator, get_orchestrator
from intel_archive.services.state import SyncStateStore
from intel_archive.services.storage import JsonArchiveStorage


EVENT_DAY = date(2026, 1, 10)
CHANNEL_URL = "https://t.me/example_channel"


def telegram_page(lines: list[str], next_cursor: str | None = None, url: str = CHANNEL_URL) -> SourcePage:
    """A fetched channel page with one text message per line."""
    content = f"SOURCE: {url}\n\n" + "\n".join(lines)
    return SourcePage(
        raw_content=content,
        next_cursor=next_cursor,
        source_name=url.rsplit("/", 1)[-1],
        message_count=len(lines),
        source_type=SourceType.TELEGRAM,
    )


EMPTY_PAGE = SourcePage(raw_content="", message_count=0, source_type=SourceType.TELEGRAM)


class FakeFetcher:
    """Serves canned pages keyed by cursor and records every call."""

    def __init__(self):
        self.pages: dict[str | None, SourcePage] = {}
        self.posts = []
        self.media: dict[str, tuple[bytes, str]] = {}
        self.error: Exception | None = None
        self.calls: list[tuple[str, str | None]] = []

    async def fetch_page(self, source_url: str, cursor: str | None = None) -> SourcePage:
        self.calls.append((source_url, cursor))
        if self.error:
            raise self.error
        return self.pages.get(cursor, EMPTY_PAGE)

    async def fetch_channel_posts(self, url: str):
        if self.error:
            raise self.error
        return self.posts

    async def download_media(self, url: str):
        return self.media.get(url)


@pytest.fixture
def make_event():
    """Factory for events at a fixed day and place; keyword arguments override fields."""

    def factory(cls=ArchivedEvent, **overrides):
        data = {
            "title": "Protest at Azadi Square",
            "summary": "Large gathering reported near the square.",
            "category": EventCategory.CIVIL_UNREST,
            "event_date": EVENT_DAY,
            "location_name": "Azadi Square, Tehran, Iran",
            "lat": 35.6997,
            "lng": 51.3380,
            "origin_url": CHANNEL_URL,
        }
        data.update(overrides)
        if cls is ArchivedEvent:
            data.setdefault("id", new_event_id())
        return cls(**data)

    return factory


@pytest.fixture
def archive_path(tmp_path):
    return tmp_path / "archive.json"


@pytest.fixture
def store(archive_path):
    """Archive store persisted to a temporary JSON file."""
    return ArchiveStore(storage=JsonArchiveStorage(archive_path))


@pytest.fixture
def state_store(tmp_path):
    """Sync state without preferred sources."""
    return SyncStateStore(tmp_path / "state.json", preferred_sources=[])


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def extract():
    """Extraction collaborator returning no events unless configured."""
    return AsyncMock(return_value=[])


@pytest.fixture
def analyze_media():
    return AsyncMock()


@pytest.fixture
def sleeps():
    """Every delay the orchestrator asked for, in seconds."""
    return []


@pytest.fixture
def orchestrator(store, state_store, fetcher, extract, analyze_media, sleeps):
    """Orchestrator whose delays are recorded instead of slept."""

    async def record_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return IngestionOrchestrator(
        store=store,
        state=state_store,
        fetcher=fetcher,
        extract=extract,
        analyze_media=analyze_media,
        page_delay=2.0,
        source_cooldown=3.0,
        max_retries=3,
        backoff_seconds=0,
        sleep=record_sleep,
    )


@pytest.fixture
async def app(store, state_store, orchestrator):
    """Create test application with overridden dependencies."""
    app = create_app()
    app.dependency_overrides[get_archive_store] = lambda: store
    app.dependency_overrides[get_state_store] = lambda: state_store
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    """Create async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client
