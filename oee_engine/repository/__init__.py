from .memory import InMemorySeriesRepository, InMemoryTagValueStore
from .sql_store import SqlSeriesRepository, SqlTagValueStore
from .store import SeriesRepository, TagValueStore

__all__ = [
    "InMemorySeriesRepository",
    "InMemoryTagValueStore",
    "SqlSeriesRepository",
    "SqlTagValueStore",
    "SeriesRepository",
    "TagValueStore",
]
