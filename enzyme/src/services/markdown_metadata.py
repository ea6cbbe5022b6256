"""Derive the metadata cache (sections, links, embeds, blocks) of a markdown file.

All positions are computed against the unmodified file text so that callers
can splice the text by offset (see ``substitution.resolve_embeds``).
"""

from __future__ import annotations

from bisect import bisect_right
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import frontmatter

from ..models.note import (
    BlockCache,
    EmbedCache,
    FileMetadata,
    LinkCache,
    Loc,
    Position,
    SectionCache,
)

logger = logging.getLogger(__name__)

# Wikilinks: [[Note]], [[Note#Heading|Alias]], ![[embed]]
WIKI_LINK_PATTERN = re.compile(r"(!)?\[\[([^\]|]+?)(?:\|([^\]]*))?\]\]")
FRONTMATTER_PATTERN = re.compile(r"\A---\n(.*?)\n---[ \t]*(?:\n|\Z)", re.DOTALL)
FENCE_PATTERN = re.compile(r"^[ \t]*([`~]{3,})")
HEADING_PATTERN = re.compile(r"^#{1,6}\s")
LIST_ITEM_PATTERN = re.compile(r"^[ \t]*(?:[-*+]|\d+[.)])\s")
CALLOUT_PATTERN = re.compile(r"^\s*>+\s*\[![^\]]+\]")
BLOCK_ID_PATTERN = re.compile(r"(?:^|\s)\^([a-zA-Z0-9]+)[ \t]*$")
TAG_PATTERN = re.compile(r"(?<![\w/#&])#([A-Za-z_][\w/-]*)")


class _LineIndex:
    """Maps absolute offsets to line/column pairs."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.lines = text.split("\n")
        self.starts: List[int] = []
        offset = 0
        for line in self.lines:
            self.starts.append(offset)
            offset += len(line) + 1

    def loc(self, offset: int) -> Loc:
        line = max(0, bisect_right(self.starts, offset) - 1)
        return Loc(line=line, col=offset - self.starts[line], offset=offset)

    def line_start(self, line: int) -> Loc:
        return Loc(line=line, col=0, offset=self.starts[line])

    def line_end(self, line: int) -> Loc:
        length = len(self.lines[line])
        return Loc(line=line, col=length, offset=self.starts[line] + length)

    def span(self, first_line: int, last_line: int) -> Position:
        return Position(start=self.line_start(first_line), end=self.line_end(last_line))


def _closing_fence(lines: List[str], start: int, marker: str) -> int:
    closing = re.compile(rf"^[ \t]*{re.escape(marker[0])}{{{len(marker)},}}\s*$")
    for index in range(start + 1, len(lines)):
        if closing.match(lines[index]):
            return index
    return len(lines) - 1


def _classify(line: str) -> str:
    if LIST_ITEM_PATTERN.match(line):
        return "list"
    if CALLOUT_PATTERN.match(line):
        return "callout"
    if line.lstrip().startswith(">"):
        return "blockquote"
    return "paragraph"


def _parse_frontmatter(text: str, index: _LineIndex) -> Tuple[Dict[str, Any], Optional[Position], int]:
    match = FRONTMATTER_PATTERN.match(text)
    if not match:
        return {}, None, 0
    metadata: Dict[str, Any] = {}
    try:
        metadata = dict(frontmatter.loads(match.group(0)).metadata or {})
    except Exception as exc:
        logger.warning("Ignoring malformed frontmatter", extra={"error": str(exc)})
    end_offset = match.end(0)
    if text[end_offset - 1 : end_offset] == "\n":
        end_offset -= 1
    last_line = index.loc(end_offset).line
    position = Position(start=index.line_start(0), end=index.line_end(last_line))
    return metadata, position, last_line + 1


def _scan_sections(index: _LineIndex, first_line: int) -> List[SectionCache]:
    lines = index.lines
    sections: List[SectionCache] = []
    i = first_line
    while i < len(lines):
        line = lines[i]
        if not line.strip():
            i += 1
            continue
        fence = FENCE_PATTERN.match(line)
        if fence:
            last = _closing_fence(lines, i, fence.group(1))
            sections.append(SectionCache(type="code", position=index.span(i, last)))
            i = last + 1
            continue
        if HEADING_PATTERN.match(line):
            sections.append(SectionCache(type="heading", position=index.span(i, i)))
            i += 1
            continue
        kind = _classify(line)
        last = i
        while last + 1 < len(lines):
            following = lines[last + 1]
            if (
                not following.strip()
                or FENCE_PATTERN.match(following)
                or HEADING_PATTERN.match(following)
            ):
                break
            last += 1
        sections.append(SectionCache(type=kind, position=index.span(i, last)))
        i = last + 1
    return sections


def _scan_blocks(index: _LineIndex, sections: List[SectionCache]) -> Dict[str, BlockCache]:
    blocks: Dict[str, BlockCache] = {}
    for section in sections:
        if section.type in {"code", "yaml"}:
            continue
        start_line = section.position.start.line
        end_line = section.position.end.line
        if section.type == "list":
            # Each list item carries its own anchor.
            for line_no in range(start_line, end_line + 1):
                match = BLOCK_ID_PATTERN.search(index.lines[line_no])
                if match:
                    blocks[match.group(1)] = BlockCache(
                        id=match.group(1), position=index.span(line_no, line_no)
                    )
            continue
        match = BLOCK_ID_PATTERN.search(index.lines[end_line])
        if match:
            blocks[match.group(1)] = BlockCache(id=match.group(1), position=section.position)
    return blocks


def _in_spans(offset: int, spans: List[Tuple[int, int]]) -> bool:
    return any(start <= offset < end for start, end in spans)


def parse_metadata(text: str) -> FileMetadata:
    """Build the metadata cache for a markdown document."""
    index = _LineIndex(text)
    fm, fm_position, body_line = _parse_frontmatter(text, index)

    sections: List[SectionCache] = []
    if fm_position is not None:
        sections.append(SectionCache(type="yaml", position=fm_position))
    sections.extend(_scan_sections(index, body_line))

    excluded = [
        (section.position.start.offset, section.position.end.offset)
        for section in sections
        if section.type in {"code", "yaml"}
    ]

    embeds: List[EmbedCache] = []
    links: List[LinkCache] = []
    for match in WIKI_LINK_PATTERN.finditer(text):
        if _in_spans(match.start(), excluded):
            continue
        link = match.group(2).strip()
        if not link:
            continue
        position = Position(start=index.loc(match.start()), end=index.loc(match.end()))
        payload = {
            "link": link,
            "original": match.group(0),
            "display_text": match.group(3),
            "position": position,
        }
        if match.group(1):
            embeds.append(EmbedCache(**payload))
        else:
            links.append(LinkCache(**payload))

    tags: List[str] = []
    raw_tags = fm.get("tags")
    if isinstance(raw_tags, str):
        raw_tags = [raw_tags]
    for tag in raw_tags or []:
        if isinstance(tag, str) and tag.strip():
            tags.append(tag.strip().lstrip("#"))
    for match in TAG_PATTERN.finditer(text):
        if not _in_spans(match.start(), excluded):
            tags.append(match.group(1))

    return FileMetadata(
        frontmatter=fm,
        frontmatter_position=fm_position,
        sections=sections,
        embeds=embeds,
        links=links,
        blocks=_scan_blocks(index, sections),
        tags=list(dict.fromkeys(tags)),
    )


def link_target(link: str) -> Tuple[str, str]:
    """Split link text into (path, subpath); the subpath keeps its leading '#'."""
    path, sep, subpath = link.partition("#")
    return path.strip(), f"#{subpath.strip()}" if sep else ""


__all__ = ["parse_metadata", "link_target", "WIKI_LINK_PATTERN", "TAG_PATTERN"]
