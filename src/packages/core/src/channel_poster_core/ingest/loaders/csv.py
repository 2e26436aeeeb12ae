"""CSV file loader."""
import csv

import pandas as pd

from channel_poster_core.ingest.loaders.base import BaseLoader
from channel_poster_core.ingest.normalize import normalize_row


class CSVLoader(BaseLoader):
    """Loader for comma separated exports (the usual spreadsheet download)."""

    name = "csv"

    def detect(self, head: bytes, suffix: str) -> bool:
        if suffix != ".csv":
            return False
        try:
            text = head.decode("utf-8-sig", errors="replace")
            next(csv.reader([text.split("\n")[0]]))
            return True
        except (csv.Error, StopIteration):
            return False

    def _read(self, file_path: str, nrows: int | None = None) -> pd.DataFrame:
        try:
            return pd.read_csv(
                file_path,
                dtype=str,
                keep_default_na=False,
                encoding="utf-8-sig",
                on_bad_lines="skip",
                nrows=nrows,
            )
        except Exception as e:
            raise ValueError(f"CSV parse error: {e}") from e

    def load(self, file_path: str) -> list[dict[str, str]]:
        df = self._read(file_path).fillna("")
        return [normalize_row(r) for r in df.to_dict("records")]

    def columns(self, file_path: str) -> list[str]:
        df = self._read(file_path, nrows=0)
        return [str(c).strip() for c in df.columns]

    def preview(self, file_path: str, max_rows: int = 10) -> list[dict[str, str]]:
        df = self._read(file_path, nrows=max_rows).fillna("")
        return [normalize_row(r) for r in df.to_dict("records")]
