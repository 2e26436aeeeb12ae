"""Ingest module for uploaded row files."""
from channel_poster_core.ingest.preview import (
    detect_format,
    preview_records,
    load_records,
    get_loader,
)
from channel_poster_core.ingest.infer import suggest_mapping

__all__ = [
    "detect_format",
    "preview_records",
    "load_records",
    "get_loader",
    "suggest_mapping",
]
