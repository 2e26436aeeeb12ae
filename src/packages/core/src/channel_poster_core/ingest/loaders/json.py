"""JSON file loader."""
import json
from typing import Any

from channel_poster_core.ingest.loaders.base import BaseLoader
from channel_poster_core.ingest.normalize import normalize_row


def _rows_from_json(data: Any) -> list[dict]:
    if isinstance(data, list):
        return [r for r in data if isinstance(r, dict)]
    if isinstance(data, dict):
        for val in data.values():
            if isinstance(val, list) and val and isinstance(val[0], dict):
                return [r for r in val if isinstance(r, dict)]
        return [data]
    return []


class JSONLoader(BaseLoader):
    """Loader for a JSON array of row objects."""

    name = "json"

    def detect(self, head: bytes, suffix: str) -> bool:
        if suffix != ".json":
            return False
        text = head.decode("utf-8", errors="replace").strip()
        return text.startswith("{") or text.startswith("[")

    def load(self, file_path: str) -> list[dict[str, str]]:
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"JSON parse error: {e}") from e

        rows = _rows_from_json(data)
        if not rows:
            raise ValueError("JSON file has no array of objects or single object")
        return [normalize_row(r) for r in rows]
