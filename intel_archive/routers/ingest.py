"""Ingestion API router: manual text, source scans, crowd media and sync control."""

import base64
import binascii

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from intel_archive.models.api import (
    CrowdChannelScanRequest,
    CrowdIngestRequest,
    SourceScanRequest,
    TextIngestRequest,
)
from intel_archive.services.ingestion import IngestionOrchestrator, ScanReport, get_orchestrator

router = APIRouter(prefix="/ingest", tags=["ingest"])


@router.get("/status", response_model=dict)
async def ingest_status(orchestrator: IngestionOrchestrator = Depends(get_orchestrator)):
    """Current scan state and status message."""
    return orchestrator.status


@router.post("/text", response_model=ScanReport)
async def ingest_text(
    request: TextIngestRequest,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
):
    """Extract events from pasted text (manual origin)."""
    return await orchestrator.ingest_text(request.text, region=request.region)


@router.post("/source", response_model=ScanReport | dict)
async def scan_source(
    request: SourceScanRequest,
    background_tasks: BackgroundTasks,
    background: bool = False,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
):
    """
    Scan a source at the requested depth.

    With background=true the scan is scheduled and progress is read from
    /ingest/status.
    """
    if background:
        background_tasks.add_task(orchestrator.scan_source, request.url, request.depth, request.region)
        return {"status": "scheduled", "url": request.url}
    return await orchestrator.scan_source(request.url, depth=request.depth, region=request.region)


@router.post("/crowd", response_model=ScanReport)
async def ingest_crowd(
    request: CrowdIngestRequest,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
):
    """Crowd-analyze one photo or video and merge the estimate."""
    try:
        data = base64.b64decode(request.data_base64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=422, detail="data_base64 is not valid base64")

    return await orchestrator.ingest_crowd_media(
        data,
        request.mime_type,
        context=request.context,
        origin_url=request.origin_url,
    )


@router.post("/crowd-channel", response_model=ScanReport)
async def scan_crowd_channel(
    request: CrowdChannelScanRequest,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
):
    """Crowd-analyze the photos and videos of a channel's latest posts."""
    return await orchestrator.scan_crowd_channel(request.url, limit=request.limit)


@router.post("/stop", response_model=dict)
async def stop_scan(orchestrator: IngestionOrchestrator = Depends(get_orchestrator)):
    """Stop the running scan at the next page boundary."""
    orchestrator.request_abort()
    return {"status": "stopping"}


@router.post("/sync", response_model=list[ScanReport])
async def sync_now(orchestrator: IngestionOrchestrator = Depends(get_orchestrator)):
    """Sync every monitored source now. Empty when a sync is already running."""
    return await orchestrator.sync_all()
