"""Storage layer - SQLite in WAL mode behind an async manager."""

from feeddeck.storage.db import DatabaseManager
from feeddeck.storage.models import FeedSource, SyncResult, SyncSummary, Video

__all__ = ["DatabaseManager", "FeedSource", "SyncResult", "SyncSummary", "Video"]
