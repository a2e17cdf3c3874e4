"""Tests for the remote pagination cursor."""

from __future__ import annotations

import pytest

from feeddeck.pipeline.cursor import CursorState, PageCursor


class TestPageCursor:
    def test_decode_stored_values(self):
        assert PageCursor.decode(None).state is CursorState.UNFETCHED
        assert PageCursor.decode("").state is CursorState.EXHAUSTED
        cursor = PageCursor.decode("CAoQAA")
        assert cursor.state is CursorState.HAS_MORE
        assert cursor.token == "CAoQAA"

    @pytest.mark.parametrize("stored", [None, "", "tok1"])
    def test_encode_inverts_decode(self, stored):
        assert PageCursor.decode(stored).encode() == stored

    def test_unfetched_requests_first_page(self):
        cursor = PageCursor.unfetched()
        assert cursor.request_token == ""
        assert cursor.can_fetch_more

    def test_advance_forward(self):
        cursor = PageCursor.unfetched().advance("tok1")
        assert cursor == PageCursor.has_more("tok1")
        cursor = cursor.advance("tok2")
        assert cursor.request_token == "tok2"
        cursor = cursor.advance("")
        assert cursor.is_exhausted
        assert not cursor.can_fetch_more

    def test_exhausted_is_terminal(self):
        cursor = PageCursor.exhausted()
        with pytest.raises(ValueError):
            cursor.advance("tok")
        with pytest.raises(ValueError):
            cursor.request_token

    def test_invalid_combinations_rejected(self):
        with pytest.raises(ValueError):
            PageCursor(CursorState.HAS_MORE, "")
        with pytest.raises(ValueError):
            PageCursor(CursorState.EXHAUSTED, "tok")

    def test_str(self):
        assert str(PageCursor.unfetched()) == "unfetched"
        assert str(PageCursor.has_more("abc")) == "has_more(abc)"
        assert str(PageCursor.exhausted()) == "exhausted"
