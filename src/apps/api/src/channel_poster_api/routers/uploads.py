"""File upload and preview endpoints."""
import os
from pathlib import Path

import structlog
from fastapi import APIRouter, File, UploadFile, HTTPException
from fastapi.concurrency import run_in_threadpool

from channel_poster_api.settings import get_settings
from channel_poster_core.ingest import detect_format, get_loader, suggest_mapping
from channel_poster_core.util import generate_id

router = APIRouter(prefix="/uploads", tags=["uploads"])
logger = structlog.get_logger()

UPLOAD_PATHS: dict[str, str] = {}


def _discard(upload_id: str, path: str) -> None:
    if os.path.exists(path):
        os.remove(path)
    UPLOAD_PATHS.pop(upload_id, None)


@router.post("/preview")
async def upload_preview(file: UploadFile = File(...)):
    """Upload a CSV or JSON file and get its columns, a preview and a suggested mapping."""
    settings = get_settings()
    max_bytes = settings.max_upload_mb * 1024 * 1024
    content = await file.read()
    if len(content) > max_bytes:
        raise HTTPException(
            status_code=413, detail=f"File too large (max {settings.max_upload_mb} MB)"
        )

    upload_id = generate_id()
    suffix = Path(file.filename or "").suffix.lower() or ".bin"
    os.makedirs(settings.upload_dir, exist_ok=True)
    save_path = os.path.join(settings.upload_dir, f"{upload_id}{suffix}")
    with open(save_path, "wb") as f:
        f.write(content)
    UPLOAD_PATHS[upload_id] = save_path

    detected = detect_format(save_path)
    if not detected:
        _discard(upload_id, save_path)
        raise HTTPException(status_code=400, detail="Unsupported or unrecognized file format")

    loader = get_loader(detected)
    try:
        records = await run_in_threadpool(loader.load, save_path)
    except ValueError as e:
        _discard(upload_id, save_path)
        raise HTTPException(status_code=400, detail=str(e)) from e

    if not records:
        _discard(upload_id, save_path)
        raise HTTPException(status_code=400, detail="No records found in file")

    columns = list(records[0].keys())
    logger.info("upload_received", upload_id=upload_id, format=detected, rows=len(records))
    return {
        "upload_id": upload_id,
        "detected_format": detected,
        "columns": columns,
        "total_records": len(records),
        "preview_records": records[: settings.preview_rows],
        "suggested_mapping": suggest_mapping(columns),
    }


def get_upload_path(upload_id: str) -> str | None:
    """Get the path for an upload ID."""
    path = UPLOAD_PATHS.get(upload_id)
    if path and os.path.exists(path):
        return path
    settings = get_settings()
    for ext in [".csv", ".json"]:
        p = os.path.join(settings.upload_dir, f"{upload_id}{ext}")
        if os.path.exists(p):
            return p
    return None
