"""Cursor-tracked writer for the assistant callout of one synthesis action."""

from __future__ import annotations

import json
import logging
from typing import Callable, List, Optional

from ..models.conversation import AssistantMessageMetadata, ChatTurn, Cursor, dump_metadata
from .conversation import ASSISTANT_CALLOUT_HEADER, USER_FENCE_TAG, get_messages_to_here
from .document import TextDocument

logger = logging.getLogger(__name__)

CALLOUT_HEADER = f"\n{ASSISTANT_CALLOUT_HEADER}\n> "
NEXT_BLOCK_TEMPLATE = f"\n\n```{USER_FENCE_TAG}\n\n```\n"


class SynthesisContainer:
    """
    Appends assistant output into a block-quoted callout.

    Every appended newline is followed by ``> `` so the whole reply stays
    inside the callout. The write position is kept in ``cur_line``/``cur_ch``
    and moved by the line and column delta of each inserted string.
    """

    def __init__(
        self,
        document: TextDocument,
        cur_line: int,
        cur_ch: int,
        end_of_code_fence_line: int,
    ) -> None:
        self.document = document
        self.cur_line = cur_line
        self.cur_ch = cur_ch
        self.end_of_code_fence_line = end_of_code_fence_line
        self._start = Cursor(line=cur_line, ch=cur_ch)

    @property
    def cursor(self) -> Cursor:
        return Cursor(line=self.cur_line, ch=self.cur_ch)

    def _append_text(self, text: str) -> None:
        formatted = text.replace("\n", "\n> ")
        self.document.replace_range(formatted, self.cursor)

        inserted_lines = formatted.split("\n")
        if len(inserted_lines) > 1:
            self.cur_ch = len(inserted_lines[-1])
        else:
            self.cur_ch += len(inserted_lines[-1])
        self.cur_line += len(inserted_lines) - 1

    def append_text(self, text: str) -> None:
        self._append_text(text)
        self.document.scroll_into_view(self.cursor)

    def render_metadata(self, metadata: List[AssistantMessageMetadata]) -> None:
        """Write metadata as a hidden JSON div on its own line."""
        payload = json.dumps(dump_metadata(metadata), ensure_ascii=False, separators=(",", ":"))
        self._append_text(f'\n<div style="display:none">{payload}</div>\n')

    def wait_placeholder(self, placeholder: str) -> Callable[[], None]:
        """Show ``placeholder`` at the cursor and return a function that removes it."""
        start = self.cursor
        self.document.replace_range(placeholder, start)
        end = self.document.pos_at(self.document.offset_of(start) + len(placeholder))

        def remove() -> None:
            self.document.replace_range("", start, end)

        return remove

    def reset_text(self) -> None:
        """Discard everything appended since the container was created."""
        self.document.replace_range("", self._start, self.cursor)
        self.cur_line = self._start.line
        self.cur_ch = self._start.ch

    def finalize(self) -> None:
        """Close the callout and open an empty user block with the cursor inside it."""
        self.document.replace_range(NEXT_BLOCK_TEMPLATE, self.cursor)
        self.cur_line += 3
        self.cur_ch = 0
        self.document.set_cursor(self.cursor)
        self.document.scroll_into_view(self.cursor)
        self.document.focus()

    def get_messages_to_here(self, cursor: Optional[Cursor] = None) -> List[ChatTurn]:
        return get_messages_to_here(self.document.get_value(), cursor or self.cursor)


def create_synthesis_container(document: TextDocument, code_fence_end_line: int) -> SynthesisContainer:
    """Insert an empty callout after the user block closing on ``code_fence_end_line``."""
    if document.line_count() <= code_fence_end_line + 1:
        last_line = document.line_count() - 1
        document.replace_range("\n", Cursor(line=last_line, ch=len(document.get_line(last_line))))

    document.replace_range(CALLOUT_HEADER, Cursor(line=code_fence_end_line + 1, ch=0))
    logger.debug("Created synthesis container", extra={"after_line": code_fence_end_line})
    return SynthesisContainer(document, code_fence_end_line + 3, 2, code_fence_end_line)


__all__ = ["SynthesisContainer", "create_synthesis_container", "CALLOUT_HEADER"]
