"""Extraction strategies and the dispatcher that routes a file to one of them.

Every strategy and the dispatcher itself share one contract::

    extract(file, metadata, strategy?, evergreen?) -> list[FileContents]

so a strategy can hand sub-extractions back to the dispatcher. Strategies
are named for what they do, not for the folders they are used on.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from ..models.extraction import FileContents, Strategy
from ..models.note import FileMetadata, NoteFile
from .markdown_metadata import link_target
from .substitution import (
    MarkerFactory,
    SubstitutionResult,
    UniqueMarkers,
    clean_contents,
    random_marker,
    replace_embeds,
    resolve_embeds,
    substitute_block_references,
)
from .windows import extract_reference_windows

logger = logging.getLogger(__name__)

StrategyHandler = Callable[
    ["ExtractorDelegator", NoteFile, FileMetadata, Optional[str]],
    Awaitable[List[FileContents]],
]


def _to_file_contents(file: NoteFile, results: List[SubstitutionResult]) -> FileContents:
    return FileContents(
        file=file.basename,
        last_modified_date=file.last_modified_date,
        contents="\n\n".join(result.contents for result in results),
        substitutions=[sub for result in results for sub in result.substitutions],
    )


async def extract_whole_file(
    extractor: "ExtractorDelegator",
    file: NoteFile,
    metadata: FileMetadata,
    evergreen: Optional[str] = None,
) -> List[FileContents]:
    """Whole file: resolve embeds, clean, substitute references."""
    raw_contents = await extractor.store.read_file(file)
    raw_contents = await replace_embeds(extractor.store, raw_contents, metadata, file.path)
    raw_contents = clean_contents(raw_contents)
    result = substitute_block_references(file.basename, raw_contents, extractor.new_marker_factory())
    return [_to_file_contents(file, [result])]


async def extract_trim_to_end(
    extractor: "ExtractorDelegator",
    file: NoteFile,
    metadata: FileMetadata,
    evergreen: Optional[str] = None,
) -> List[FileContents]:
    """
    Keep only the last sections of a long, append-only note (e.g. book
    highlights), starting at section ``len(sections) - trim_section_count``.
    """
    raw_contents = await extractor.store.read_file(file)
    resolution = await resolve_embeds(extractor.store, raw_contents, metadata, file.path)

    boundary_offset = 0
    if metadata.sections:
        boundary_index = max(0, len(metadata.sections) - extractor.trim_section_count)
        boundary_offset = metadata.sections[boundary_index].position.start.offset
    trimmed = resolution.text[resolution.translate(boundary_offset) :]

    result = substitute_block_references(
        file.basename, clean_contents(trimmed), extractor.new_marker_factory()
    )
    return [_to_file_contents(file, [result])]


async def extract_single_backlinker(
    extractor: "ExtractorDelegator",
    file: NoteFile,
    metadata: FileMetadata,
    evergreen: Optional[str] = None,
) -> List[FileContents]:
    """Windows of a referrer around its references to ``evergreen``."""
    if not evergreen:
        raise ValueError(f"{Strategy.SINGLE_EVERGREEN_REFERRER.value} requires an evergreen reference")

    raw_contents = await extractor.store.read_file(file)
    raw_contents = await replace_embeds(extractor.store, raw_contents, metadata, file.path)
    raw_contents = clean_contents(raw_contents)

    windows = extract_reference_windows(raw_contents, [evergreen], extractor.context_paragraphs)
    markers = extractor.new_marker_factory()
    results = [substitute_block_references(file.basename, window, markers) for window in windows]
    logger.debug(
        "Extracted reference windows",
        extra={"path": file.path, "evergreen": evergreen, "window_count": len(windows)},
    )
    return [_to_file_contents(file, results)]


async def extract_all_backlinkers(
    extractor: "ExtractorDelegator",
    file: NoteFile,
    metadata: FileMetadata,
    evergreen: Optional[str] = None,
) -> List[FileContents]:
    """One reference-window extraction per note that links to the target."""
    target = file
    if evergreen:
        target = extractor.store.require_file(link_target(evergreen.strip().lstrip("!").strip("[]"))[0])
    referrers = await asyncio.to_thread(extractor.store.get_backlinks, target)

    batches = await asyncio.gather(
        *(
            extractor.extract(
                referrer,
                extractor.store.get_metadata(referrer),
                Strategy.SINGLE_EVERGREEN_REFERRER.value,
                target.basename,
            )
            for referrer in referrers
        )
    )
    return [contents for batch in batches for contents in batch if contents.contents.strip()]


class ExtractorDelegator:
    """Route a file to the extraction strategy named by a source descriptor."""

    def __init__(
        self,
        store,
        *,
        trim_section_count: int = 5,
        context_paragraphs: int = 1,
        marker_source: MarkerFactory = random_marker,
    ) -> None:
        self.store = store
        self.trim_section_count = trim_section_count
        self.context_paragraphs = context_paragraphs
        self.marker_source = marker_source

        self._strategies: Dict[Strategy, StrategyHandler] = {
            Strategy.LONG_CONTENT: extract_trim_to_end,
            Strategy.SINGLE_EVERGREEN_REFERRER: extract_single_backlinker,
            Strategy.ALL_EVERGREEN_REFERRERS: extract_all_backlinkers,
        }

    def new_marker_factory(self) -> UniqueMarkers:
        """Markers handed out by one factory are unique for that extraction pass."""
        return UniqueMarkers(self.marker_source)

    async def extract(
        self,
        file: NoteFile,
        metadata: FileMetadata | None = None,
        strategy: str | Strategy | None = None,
        evergreen: str | None = None,
    ) -> List[FileContents]:
        """
        Extract contents of ``file`` with the named strategy.

        Unknown or absent strategies fall through to the whole-file extraction.
        """
        if metadata is None:
            metadata = self.store.get_metadata(file)
        member = Strategy.parse(strategy)
        handler = self._strategies.get(member, extract_whole_file)
        if strategy and member is None:
            logger.debug("Unknown strategy, using default extraction", extra={"strategy": str(strategy)})
        return await handler(self, file, metadata, evergreen)


__all__ = [
    "ExtractorDelegator",
    "extract_whole_file",
    "extract_trim_to_end",
    "extract_single_backlinker",
    "extract_all_backlinkers",
]
