"""Base loader interface."""
from abc import ABC, abstractmethod


class BaseLoader(ABC):
    """Abstract base class for row file loaders."""

    name: str = ""

    @abstractmethod
    def detect(self, head: bytes, suffix: str) -> bool:
        """Detect if this loader can handle the file."""

    @abstractmethod
    def load(self, file_path: str) -> list[dict[str, str]]:
        """Load every row of the file, in file order."""

    def columns(self, file_path: str) -> list[str]:
        """Column names, taken from the first row."""
        rows = self.preview(file_path, max_rows=1)
        return list(rows[0].keys()) if rows else []

    def preview(self, file_path: str, max_rows: int = 10) -> list[dict[str, str]]:
        """Load the first ``max_rows`` rows."""
        return self.load(file_path)[:max_rows]
