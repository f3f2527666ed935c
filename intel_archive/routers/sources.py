"""Monitored sources and sync configuration API router."""

from fastapi import APIRouter, Depends, Query

from intel_archive.database import get_state_store
from intel_archive.models import SyncConfiguration
from intel_archive.models.api import SourceAdd, SourcesOverview, SyncConfigUpdate
from intel_archive.services.ingestion import IngestionOrchestrator, get_orchestrator
from intel_archive.services.state import SyncStateStore

router = APIRouter(prefix="/sources", tags=["sources"])


@router.get("", response_model=SourcesOverview)
def list_sources(state: SyncStateStore = Depends(get_state_store)):
    """Sync configuration and per-source cursor metadata."""
    return SourcesOverview(sync_config=state.sync_config, sources=state.all_metadata())


@router.post("", response_model=dict)
def add_source(request: SourceAdd, state: SyncStateStore = Depends(get_state_store)):
    """Start monitoring a source."""
    added = state.add_source(request.url, request.source_type)
    return {"url": request.url.strip(), "added": added}


@router.patch("/sync-config", response_model=SyncConfiguration)
def update_sync_config(update: SyncConfigUpdate, state: SyncStateStore = Depends(get_state_store)):
    """Enable/disable the background sync, change its interval or the monitored list."""
    return state.update_sync_config(**update.model_dump(exclude_none=True))


@router.delete("", response_model=dict)
async def remove_source(
    url: str = Query(..., min_length=1),
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
):
    """Stop monitoring a source and purge every event that came from it."""
    removed = await orchestrator.remove_source(url)
    return {"url": url.strip(), "removed": removed}
