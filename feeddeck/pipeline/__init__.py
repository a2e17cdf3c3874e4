"""Sync pipeline: cursor state, reconciler, local browsing and CLI."""

from feeddeck.pipeline.cursor import CursorState, PageCursor

__all__ = ["CursorState", "PageCursor"]
