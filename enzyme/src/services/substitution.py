"""Reference substitution: block anchors to markers, embeds to inlined text.

Markers (``%xxxx%``) and resolved references (``![[title#^id]]``) live in
disjoint syntactic spaces so a reference is never re-read as a marker.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re
import secrets
from typing import Callable, Dict, List, Optional, Set, Tuple

from ..models.extraction import MARKER_PATTERN, BlockRefSubstitution
from ..models.note import EmbedCache, FileMetadata
from .markdown_metadata import link_target

logger = logging.getLogger(__name__)

BLOCK_REF_PATTERN = re.compile(r"\^([a-zA-Z0-9]+)")
MARKDOWN_LINK_PATTERN = re.compile(r"\[.*?\]\(.*?\)")
FRONTMATTER_PATTERN = re.compile(r"---\n(.*?)\n---", re.DOTALL)
CODE_BLOCK_PATTERN = re.compile(r"```[\s\S]*?```")

MarkerFactory = Callable[[], str]


def random_marker() -> str:
    """Return a fresh `%xxxx%` marker (4 lowercase hex characters)."""
    return f"%{secrets.token_hex(2)}%"


class UniqueMarkers:
    """Wrap a marker source so one extraction pass never repeats a marker."""

    def __init__(self, source: MarkerFactory = random_marker, max_attempts: int = 1000) -> None:
        self.source = source
        self.max_attempts = max_attempts
        self.issued: Set[str] = set()

    def __call__(self) -> str:
        for _ in range(self.max_attempts):
            marker = self.source()
            if marker not in self.issued:
                self.issued.add(marker)
                return marker
        raise RuntimeError("Marker source keeps returning markers already used in this pass")


@dataclass
class SubstitutionResult:
    substitutions: List[BlockRefSubstitution]
    contents: str


def substitute_block_references(
    title: str,
    contents: str,
    marker_factory: Optional[MarkerFactory] = None,
) -> SubstitutionResult:
    """
    Replace every `^blockid` anchor with a marker and record the mapping.

    Markdown hyperlinks are removed first, anchors inside them included, so
    every recorded marker appears exactly once in the returned contents.
    Each remaining occurrence gets its own marker and its reference
    `![[title#^blockid]]`.
    """
    next_marker = marker_factory or UniqueMarkers()
    substitutions: List[BlockRefSubstitution] = []

    def _replace(match: re.Match) -> str:
        marker = next_marker()
        # Anchors inlined from an embed are attributed to `title` as well.
        substitutions.append(
            BlockRefSubstitution(template=marker, block_reference=f"![[{title}#{match.group(0)}]]")
        )
        return marker

    without_links = MARKDOWN_LINK_PATTERN.sub("", contents)
    return SubstitutionResult(
        substitutions=substitutions,
        contents=BLOCK_REF_PATTERN.sub(_replace, without_links),
    )


def restore_markers(text: str, substitutions: List[BlockRefSubstitution]) -> str:
    """
    Replace markers in model output with the block references they stand for.

    Markers are only unique within one extraction pass; when two passes issued
    the same marker for different references, the later one wins and a warning
    is logged.
    """
    lookup: Dict[str, str] = {}
    for substitution in substitutions:
        previous = lookup.get(substitution.template)
        if previous is not None and previous != substitution.block_reference:
            logger.warning(
                "Marker maps to more than one block reference",
                extra={
                    "marker": substitution.template,
                    "kept": substitution.block_reference,
                    "dropped": previous,
                },
            )
        lookup[substitution.template] = substitution.block_reference
    return MARKER_PATTERN.sub(lambda match: lookup.get(match.group(0), match.group(0)), text)


def clean_contents(contents: str) -> str:
    """Remove the frontmatter and fenced code blocks, then trim."""
    match = FRONTMATTER_PATTERN.match(contents)
    if match:
        contents = contents[len(match.group(0)) :]
    return CODE_BLOCK_PATTERN.sub("", contents).strip()


@dataclass
class EmbedResolution:
    """Embed-resolved text plus the shifts needed to map original offsets into it."""

    text: str
    # (original end offset of an embed, drift accumulated once it is replaced)
    shifts: List[Tuple[int, int]] = field(default_factory=list)

    def translate(self, offset: int) -> int:
        """Map an offset in the original text to the same place in ``text``."""
        drift = 0
        for end_offset, accumulated in self.shifts:
            if end_offset > offset:
                break
            drift = accumulated
        return max(0, offset + drift)


async def get_embed_content(store, embed: EmbedCache, source_path: str = "") -> str:
    """
    Return the text an embed stands for.

    Only `#^block` embeds of markdown notes are inlined; everything else
    resolves to an empty string. Missing targets or blocks raise.
    """
    path, subpath = link_target(embed.link)
    target = store.resolve_path(path, source_path) if path else store.resolve_path(source_path)
    if target is None:
        raise LookupError(f"Embed target not found: {embed.link}")
    if not target.is_markdown:
        return ""
    if not subpath.startswith("#^"):
        return ""

    block_id = subpath[2:]
    metadata = store.get_metadata(target)
    block = metadata.blocks.get(block_id)
    if block is None:
        raise LookupError(f"Block ^{block_id} not found in {target.path}")
    full_content = await store.read_file(target)
    return full_content[block.position.start.offset : block.position.end.offset]


async def resolve_embeds(
    store,
    contents: str,
    metadata: FileMetadata,
    source_path: str = "",
) -> EmbedResolution:
    """
    Splice resolved embed content into ``contents``.

    Embed offsets refer to the original text, so embeds are applied in
    ascending offset order while carrying the drift (resolved length minus
    matched length) of every earlier replacement. A failing embed becomes an
    empty replacement.
    """
    embeds = sorted(metadata.embeds, key=lambda embed: embed.position.start.offset)
    drift = 0
    shifts: List[Tuple[int, int]] = []
    for embed in embeds:
        try:
            replacement = await get_embed_content(store, embed, source_path)
        except Exception as exc:
            logger.error(
                "Failed to get embed",
                extra={"link": embed.link, "source_path": source_path, "error": str(exc)},
            )
            replacement = ""
        start = embed.position.start.offset + drift
        end = embed.position.end.offset + drift
        contents = contents[:start] + replacement + contents[end:]
        drift += len(replacement) - (end - start)
        shifts.append((embed.position.end.offset, drift))
    return EmbedResolution(text=contents, shifts=shifts)


async def replace_embeds(store, contents: str, metadata: FileMetadata, source_path: str = "") -> str:
    resolution = await resolve_embeds(store, contents, metadata, source_path)
    return resolution.text


__all__ = [
    "MarkerFactory",
    "random_marker",
    "UniqueMarkers",
    "SubstitutionResult",
    "substitute_block_references",
    "restore_markers",
    "clean_contents",
    "EmbedResolution",
    "get_embed_content",
    "resolve_embeds",
    "replace_embeds",
]
