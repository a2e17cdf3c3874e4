"""Remote pagination cursor for a feed source.

The catalog hands out opaque page tokens. A source's position in that
paging sequence is one of three states:

    UNFETCHED  -> no page requested yet
    HAS_MORE   -> token for the next page
    EXHAUSTED  -> the last page has been consumed

Storage keeps the legacy column encoding (NULL / '' / token); decode()
and encode() are the only conversions between the two.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class CursorState(str, Enum):
    UNFETCHED = "unfetched"
    HAS_MORE = "has_more"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class PageCursor:
    """Forward-only position in a source's remote page sequence."""

    state: CursorState
    token: str = ""

    def __post_init__(self) -> None:
        if self.state is CursorState.HAS_MORE and not self.token:
            raise ValueError("HAS_MORE cursor requires a page token")
        if self.state is not CursorState.HAS_MORE and self.token:
            raise ValueError(f"{self.state.value} cursor cannot carry a token")

    @classmethod
    def unfetched(cls) -> PageCursor:
        return cls(CursorState.UNFETCHED)

    @classmethod
    def has_more(cls, token: str) -> PageCursor:
        return cls(CursorState.HAS_MORE, token)

    @classmethod
    def exhausted(cls) -> PageCursor:
        return cls(CursorState.EXHAUSTED)

    @classmethod
    def decode(cls, stored: Optional[str]) -> PageCursor:
        """Build a cursor from its stored column value."""
        if stored is None:
            return cls.unfetched()
        if stored == "":
            return cls.exhausted()
        return cls.has_more(stored)

    def encode(self) -> Optional[str]:
        """Column value for this cursor: None, '' or the token."""
        if self.state is CursorState.UNFETCHED:
            return None
        return self.token

    @property
    def is_exhausted(self) -> bool:
        return self.state is CursorState.EXHAUSTED

    @property
    def can_fetch_more(self) -> bool:
        return self.state is not CursorState.EXHAUSTED

    @property
    def request_token(self) -> str:
        """Token to send upstream; '' asks for the first page."""
        if self.is_exhausted:
            raise ValueError("exhausted cursor has no next page")
        return self.token

    def advance(self, next_token: str) -> PageCursor:
        """Cursor after a page whose upstream next-page token is next_token."""
        if self.is_exhausted:
            raise ValueError("cannot advance an exhausted cursor")
        if next_token:
            return PageCursor.has_more(next_token)
        return PageCursor.exhausted()

    def __str__(self) -> str:
        if self.state is CursorState.HAS_MORE:
            return f"has_more({self.token})"
        return self.state.value
