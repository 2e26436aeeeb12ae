"""Row file loaders."""
from channel_poster_core.ingest.loaders.base import BaseLoader
from channel_poster_core.ingest.loaders.csv import CSVLoader
from channel_poster_core.ingest.loaders.json import JSONLoader

__all__ = ["BaseLoader", "CSVLoader", "JSONLoader"]
