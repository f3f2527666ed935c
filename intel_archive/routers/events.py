"""Archived events API router."""

import math
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query

from intel_archive.database import get_archive_store
from intel_archive.models import ArchivedEvent, EventCategory
from intel_archive.models.api import EventPage, UpsertRequest, UpsertResponse
from intel_archive.services.archive import ArchiveStore
from intel_archive.services.query import TimeRange, filter_events, time_range_start

router = APIRouter(prefix="/events", tags=["events"])


@router.get("", response_model=EventPage)
def list_events(
    store: ArchiveStore = Depends(get_archive_store),
    page: int = Query(1, ge=1),
    per_page: int = Query(100, ge=1, le=1000),
    search: str | None = None,
    category: EventCategory | None = None,
    time_range: TimeRange = TimeRange.ALL,
    date_from: date | None = None,
    date_to: date | None = None,
):
    """List archived events, newest first, with filtering and pagination."""
    start = date_from or time_range_start(time_range)
    events = filter_events(store.all(), search=search, category=category, start=start, end=date_to)

    total = len(events)
    skip = (page - 1) * per_page
    pages = math.ceil(total / per_page) if total > 0 else 1

    return EventPage(
        items=events[skip : skip + per_page],
        total=total,
        page=page,
        per_page=per_page,
        pages=pages,
    )


@router.get("/export", response_model=list[dict])
def export_events(store: ArchiveStore = Depends(get_archive_store)):
    """Full archive as JSON records."""
    return store.export()


@router.post("/import", response_model=UpsertResponse)
def import_events(records: list[dict], store: ArchiveStore = Depends(get_archive_store)):
    """Merge an exported archive back in."""
    result = store.import_events(records)
    return UpsertResponse(inserted=result.inserted, merged=result.merged, event_ids=result.event_ids)


@router.post("/upsert", response_model=UpsertResponse)
def upsert_events(request: UpsertRequest, store: ArchiveStore = Depends(get_archive_store)):
    """Normalize, deduplicate and merge a batch of candidate records."""
    result = store.upsert_many(request.candidates, origin_url=request.origin_url, is_manual=request.is_manual)
    return UpsertResponse(inserted=result.inserted, merged=result.merged, event_ids=result.event_ids)


@router.get("/{event_id}", response_model=ArchivedEvent)
def get_event(event_id: str, store: ArchiveStore = Depends(get_archive_store)):
    """Get a single archived event by ID."""
    event = store.get(event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event
