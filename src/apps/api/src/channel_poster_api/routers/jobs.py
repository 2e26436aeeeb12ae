"""Send job endpoints."""
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, model_validator

from channel_poster_api.routers.uploads import get_upload_path
from channel_poster_core.ingest import detect_format, load_records
from channel_poster_core.jobs import JobSnapshot, QueueSubscriber, get_registry
from channel_poster_core.settings import get_settings
from channel_poster_core.util import ConfigurationMissing, InvalidInput, NotFound

router = APIRouter(prefix="/jobs", tags=["jobs"])
logger = structlog.get_logger()


class JobCreate(BaseModel):
    """Request to start a send job, from inline rows or a previous upload."""

    rows: list[dict[str, Any]] | None = None
    upload_id: str | None = None
    mapping: dict[str, str] = Field(default_factory=dict)
    bot_token: str | None = None
    channel_id: str | None = None

    @model_validator(mode="after")
    def _one_source(self):
        if self.rows is None and not self.upload_id:
            raise ValueError("Either rows or upload_id is required")
        return self


def _load_upload(upload_id: str) -> list[dict[str, str]]:
    path = get_upload_path(upload_id)
    if not path:
        raise HTTPException(
            status_code=404, detail="Upload not found or expired; please re-upload"
        )
    detected = detect_format(path)
    if not detected:
        raise HTTPException(status_code=400, detail="Could not detect file format")
    try:
        return load_records(path, detected)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.post("")
async def create_job(body: JobCreate):
    """Start sending rows to the channel. Returns as soon as the job is queued."""
    if body.rows is not None:
        rows = body.rows
    else:
        rows = await run_in_threadpool(_load_upload, body.upload_id)
    try:
        job_id = get_registry().submit(
            rows, body.mapping, bot_token=body.bot_token, channel_id=body.channel_id
        )
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except ConfigurationMissing as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    return {"job_id": job_id}


@router.get("")
async def list_jobs(active_only: bool = False):
    """List retained jobs. If active_only=true, returns only pending/running jobs."""
    jobs = get_registry().list_jobs()
    if active_only:
        jobs = [j for j in jobs if j.status in ("pending", "running")]
    return {"jobs": [j.model_dump(exclude={"errors"}) for j in jobs]}


@router.get("/{job_id}", response_model=JobSnapshot)
async def get_job_status(job_id: str):
    """Get job status."""
    try:
        return get_registry().get(job_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail="Job not found") from e


@router.post("/{job_id}/stop")
async def stop_job(job_id: str):
    """Ask a job to stop before its next row."""
    registry = get_registry()
    try:
        registry.request_stop(job_id)
        status = registry.get(job_id).status
    except NotFound as e:
        raise HTTPException(status_code=404, detail="Job not found") from e
    return {"job_id": job_id, "status": status, "stop_requested": True}


@router.get("/{job_id}/events")
async def stream_job_events(job_id: str, request: Request) -> StreamingResponse:
    """Stream job events using Server-Sent Events (SSE).

    SSE Format:
        event: connected
        data: {"job_id": "...", "status": "running"}

        event: progress
        data: {"current": 3, "total": 10, "sent": 2, "failed": 1, "percent": 30}

        event: log
        data: {"time": "...", "message": "..."}

        event: ratelimit
        data: {"retryAfterSeconds": 5}

        event: done | stopped | failed
        data: {...}

    The stream closes after the terminal event.
    """
    registry = get_registry()
    subscriber = QueueSubscriber(maxsize=get_settings().subscriber_queue_size)
    try:
        registry.subscribe(job_id, subscriber)
    except NotFound as e:
        raise HTTPException(status_code=404, detail="Job not found") from e

    async def event_generator():
        try:
            async for event in subscriber.events():
                if await request.is_disconnected():
                    logger.info("event_stream_disconnected", job_id=job_id)
                    break
                yield event.to_sse()
        finally:
            registry.unsubscribe(job_id, subscriber)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
