"""File preview and format detection."""
from pathlib import Path

from channel_poster_core.ingest.loaders import BaseLoader, CSVLoader, JSONLoader

LOADERS: list[BaseLoader] = [JSONLoader(), CSVLoader()]


def detect_format(file_path: str) -> str | None:
    """Detect the format of a file."""
    path = Path(file_path)
    if not path.exists():
        return None
    with open(file_path, "rb") as f:
        head = f.read(8192)
    for loader in LOADERS:
        if loader.detect(head, path.suffix.lower()):
            return loader.name
    return None


def get_loader(format_name: str) -> BaseLoader:
    """Get a loader by format name."""
    for loader in LOADERS:
        if loader.name == format_name:
            return loader
    raise ValueError(f"Unknown format: {format_name}")


def preview_records(file_path: str, format_name: str, max_rows: int = 10) -> list[dict[str, str]]:
    """Load a preview of rows from a file."""
    return get_loader(format_name).preview(file_path, max_rows=max_rows)


def load_records(file_path: str, format_name: str) -> list[dict[str, str]]:
    """Load all rows from a file."""
    return get_loader(format_name).load(file_path)
