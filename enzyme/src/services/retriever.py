"""Candidate Retriever - runs source queries and extracts the matching files."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional

from ..models.extraction import FileContents, SourceDescriptor, Strategy
from ..models.note import NoteFile
from .extractors import ExtractorDelegator
from .query_engine import QueryEngine

logger = logging.getLogger(__name__)

QUERY_FENCE_PATTERN = re.compile(r"```dataview\n?([\s\S]*?)\n?```")

# Query used when a source names a strategy but no query of its own
DEFAULT_STRATEGY_QUERIES: Dict[Strategy, str] = {
    Strategy.BASIC: "LIST SORT file.mtime DESC LIMIT 5",
    Strategy.RECENT_MENTIONS: "LIST SORT file.mtime DESC LIMIT 10",
    Strategy.LONG_CONTENT: "LIST FROM #book SORT file.mtime DESC LIMIT 3",
    Strategy.ALL_EVERGREEN_REFERRERS: "LIST FROM #evergreen SORT file.mtime DESC LIMIT 5",
}


def default_query(source: SourceDescriptor) -> str:
    """Return the query a source runs, filling in its strategy's default."""
    if source.query:
        return source.query
    strategy = Strategy.parse(source.strategy)
    if strategy == Strategy.SINGLE_EVERGREEN_REFERRER and source.evergreen:
        name = source.evergreen.strip().lstrip("!").strip("[]")
        return f"LIST FROM [[{name}]] SORT file.mtime DESC"
    return DEFAULT_STRATEGY_QUERIES.get(strategy, DEFAULT_STRATEGY_QUERIES[Strategy.BASIC])


class CandidateRetriever:
    """
    Executes source queries against the vault and prepares file contents.

    Paths are deduplicated before resolution; every resolved file is extracted
    concurrently and the per-file results are flattened in file order.
    """

    def __init__(self, vault, extractor: ExtractorDelegator, query_engine: QueryEngine) -> None:
        self.vault = vault
        self.extractor = extractor
        self.query_engine = query_engine

    async def get_source_info(self, query: str) -> List[Dict[str, str]]:
        """Return the paths a query selects, without reading any contents."""
        rows = await self.query_engine.query(query)
        files = self._resolve_paths([row["path"] for row in rows])
        return [{"path": file.path} for file in files]

    async def retrieve(self, source: SourceDescriptor) -> List[FileContents]:
        """Run the source's query and extract every matching file."""
        rows = await self.query_engine.query(default_query(source))
        unique_paths = list(dict.fromkeys(row["path"] for row in rows))
        files = self._resolve_paths(unique_paths)

        logger.info(
            "Retrieving source contents",
            extra={
                "strategy": source.strategy,
                "query_results": len(rows),
                "file_count": len(files),
            },
        )
        bodies = await asyncio.gather(
            *(
                self.extractor.extract(file, None, source.strategy, source.evergreen)
                for file in files
            )
        )
        return [contents for body in bodies for contents in body]

    async def get_node_contents(self, node: str | NoteFile) -> List[Dict[str, Any]]:
        """
        Return the contents of a named node file according to its frontmatter role.

        ``source`` nodes run the fenced query they contain, ``aggregator`` nodes
        contribute their guidance, anything else is returned verbatim.
        """
        node_file = self.vault.require_file(node) if isinstance(node, str) else node
        file_contents = await self.vault.read_file(node_file)
        frontmatter = self.vault.get_metadata(node_file).frontmatter
        role = str(frontmatter.get("role") or "").lower()

        if role == "source":
            match = QUERY_FENCE_PATTERN.search(file_contents)
            if not match:
                raise ValueError(f"Source node {node_file.path} has no dataview query")
            descriptor = SourceDescriptor(
                strategy=frontmatter.get("strategy"),
                query=match.group(1),
                evergreen=frontmatter.get("evergreen"),
            )
            return [
                {"guidance": frontmatter.get("guidance"), "source_material": contents.contents}
                for contents in await self.retrieve(descriptor)
            ]
        if role == "aggregator":
            return [{"guidance": "---".join(file_contents.split("---")[2:]).strip()}]
        return [{"contents": [file_contents]}]

    def _resolve_paths(self, paths: List[str]) -> List[NoteFile]:
        files: List[NoteFile] = []
        for path in paths:
            file = self.vault.resolve_path(path)
            if file is None:
                logger.debug("Dropping unresolvable query path", extra={"path": path})
                continue
            files.append(file)
        return files


__all__ = ["CandidateRetriever", "DEFAULT_STRATEGY_QUERIES", "default_query"]
