"""In-memory line-oriented text buffer with editor-style range operations."""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from ..models.conversation import Cursor

logger = logging.getLogger(__name__)


class TextDocument:
    """
    A live document addressed by ``Cursor(line, ch)`` positions.

    Out-of-range positions are clamped to the nearest valid position, the way
    editors treat them.
    """

    def __init__(self, text: str = "") -> None:
        self._text = text
        self._cursor = Cursor(line=0, ch=0)
        self.last_scrolled: Optional[Tuple[Cursor, Cursor]] = None

    def get_value(self) -> str:
        return self._text

    def set_value(self, text: str) -> None:
        self._text = text

    @property
    def lines(self) -> List[str]:
        return self._text.split("\n")

    def line_count(self) -> int:
        return len(self.lines)

    def get_line(self, line: int) -> str:
        lines = self.lines
        if 0 <= line < len(lines):
            return lines[line]
        return ""

    def clip(self, pos: Cursor) -> Cursor:
        lines = self.lines
        if pos.line >= len(lines):
            return Cursor(line=len(lines) - 1, ch=len(lines[-1]))
        return Cursor(line=pos.line, ch=min(pos.ch, len(lines[pos.line])))

    def offset_of(self, pos: Cursor) -> int:
        pos = self.clip(pos)
        lines = self.lines
        return sum(len(line) + 1 for line in lines[: pos.line]) + pos.ch

    def pos_at(self, offset: int) -> Cursor:
        offset = max(0, min(offset, len(self._text)))
        before = self._text[:offset]
        line = before.count("\n")
        return Cursor(line=line, ch=offset - (before.rfind("\n") + 1))

    def get_range(self, start: Cursor, end: Cursor) -> str:
        return self._text[self.offset_of(start) : self.offset_of(end)]

    def replace_range(self, text: str, start: Cursor, end: Cursor | None = None) -> None:
        """Replace ``[start, end)`` with ``text``; insert at ``start`` when ``end`` is None."""
        start_offset = self.offset_of(start)
        end_offset = self.offset_of(end) if end is not None else start_offset
        if end_offset < start_offset:
            start_offset, end_offset = end_offset, start_offset
        self._text = self._text[:start_offset] + text + self._text[end_offset:]

    def set_line(self, line: int, text: str) -> None:
        lines = self.lines
        if not 0 <= line < len(lines):
            raise IndexError(f"Line {line} is outside the document")
        lines[line] = text
        self._text = "\n".join(lines)

    def get_cursor(self) -> Cursor:
        return self._cursor

    def set_cursor(self, pos: Cursor) -> None:
        self._cursor = self.clip(pos)

    def scroll_into_view(self, start: Cursor, end: Cursor | None = None) -> None:
        self.last_scrolled = (start, end or start)

    def focus(self) -> None:
        logger.debug("Document focused", extra={"cursor": self._cursor.model_dump()})


__all__ = ["TextDocument"]
