"""Exceptions raised by the sync engine.

Each sync failure carries the stage it happened in (resolve, fetch_page,
fetch_details, persist, ...) so callers can report where a run stopped.
Probe failures inside the short classifier never surface here.
"""

from __future__ import annotations

from typing import Optional


class FeedDeckError(Exception):
    """Base exception for all feeddeck errors."""

    def __init__(self, message: str = "feeddeck error"):
        self.message = message
        super().__init__(self.message)


class ConfigError(FeedDeckError):
    """Raised when configuration is missing or invalid."""


class SourceNotFound(FeedDeckError):
    """Raised when a feed source is not present in local storage."""

    def __init__(self, source_id: object):
        self.source_id = source_id
        super().__init__(f"Feed source '{source_id}' not found")


class SyncError(FeedDeckError):
    """A sync call failed at a given stage."""

    stage: str = "sync"

    def __init__(self, message: str, stage: Optional[str] = None):
        if stage:
            self.stage = stage
        super().__init__(f"{self.stage}: {message}")


class NotFound(SyncError):
    """The external channel/playlist ID does not resolve upstream."""

    stage = "resolve"

    def __init__(self, external_id: str, kind: str = "channel"):
        self.external_id = external_id
        self.kind = kind
        super().__init__(f"{kind} not found: {external_id}")


class UpstreamFailure(SyncError):
    """Network or catalog error while fetching a page or item details."""

    def __init__(self, message: str, stage: str = "fetch_page", status: Optional[int] = None):
        self.status = status
        super().__init__(message, stage=stage)


class PersistenceFailure(SyncError):
    """Writing an item (or the cursor) to storage failed."""

    stage = "persist"

    def __init__(self, message: str, external_id: Optional[str] = None, inserted: int = 0):
        self.external_id = external_id
        self.inserted = inserted
        super().__init__(message)


class CursorExhausted(SyncError):
    """The source has no further remote pages."""

    stage = "cursor"

    def __init__(self, source_id: object):
        self.source_id = source_id
        super().__init__(f"source {source_id} has no more pages")


class DeadlineExceeded(SyncError):
    """The sync deadline passed before the run could persist anything."""
