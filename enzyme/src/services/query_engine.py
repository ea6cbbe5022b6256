"""A small Dataview-style query language evaluated against the vault index.

Supported form::

    LIST [FROM <source>] [SORT file.mtime|file.name|file.path [ASC|DESC]] [LIMIT n]

``<source>`` combines terms left to right with ``and`` / ``or``; a term is
``#tag``, ``"folder"``, ``[[Note]]`` (notes linking to Note) or
``outgoing([[Note]])`` (notes Note links to), optionally negated with ``-``.
``or`` concatenates results, so a path matched by several terms is returned
more than once; callers deduplicate.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import re
from typing import Any, Dict, List, Optional

from .errors import EnzymeError
from .markdown_metadata import link_target
from .vault import VaultService

logger = logging.getLogger(__name__)

QUERY_PATTERN = re.compile(
    r"^\s*(?P<kind>[A-Za-z]+)\b(?P<fields>.*?)"
    r"(?:\bFROM\b(?P<source>.*?))?"
    r"(?:\bSORT\b(?P<sort>.*?))?"
    r"(?:\bLIMIT\b\s*(?P<limit>\d+))?\s*$",
    re.IGNORECASE | re.DOTALL,
)
SOURCE_TOKEN_PATTERN = re.compile(
    r"\s*(?:"
    r"(?P<op>and|or)\b"
    r"|(?P<neg>-)?(?:"
    r"(?P<tag>#[\w/-]+)"
    r'|"(?P<folder>[^"]*)"'
    r"|\[\[(?P<link>[^\]]+)\]\]"
    r"|outgoing\(\s*\[\[(?P<outgoing>[^\]]+)\]\]\s*\)"
    r"))",
    re.IGNORECASE,
)
SORT_PATTERN = re.compile(r"^\s*file\.(?P<field>mtime|name|path)\s*(?P<direction>asc|desc)?\s*$", re.IGNORECASE)


class QuerySyntaxError(EnzymeError, ValueError):
    """Raised when query text cannot be parsed."""


@dataclass(frozen=True)
class SourceTerm:
    kind: str
    value: str
    negated: bool = False


@dataclass(frozen=True)
class ParsedQuery:
    terms: List[SourceTerm]
    operators: List[str]
    sort_field: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None


def parse_query(text: str) -> ParsedQuery:
    """Parse query text, raising QuerySyntaxError on anything unsupported."""
    if not text or not text.strip():
        raise QuerySyntaxError("Query cannot be empty")
    match = QUERY_PATTERN.match(text)
    if not match:
        raise QuerySyntaxError(f"Unrecognized query: {text.strip()}")
    if match.group("kind").upper() != "LIST":
        raise QuerySyntaxError(f"Only LIST queries are supported, got {match.group('kind').upper()}")

    terms: List[SourceTerm] = []
    operators: List[str] = []
    source = (match.group("source") or "").strip()
    position = 0
    while position < len(source):
        token = SOURCE_TOKEN_PATTERN.match(source, position)
        if not token or token.end() == position:
            raise QuerySyntaxError(f"Unexpected input in FROM clause: {source[position:].strip()}")
        position = token.end()
        if token.group("op"):
            if len(operators) >= len(terms):
                raise QuerySyntaxError(f"Operator without a left-hand source: {token.group('op')}")
            operators.append(token.group("op").lower())
            continue
        if len(terms) > len(operators):
            raise QuerySyntaxError("Sources must be joined with 'and' or 'or'")
        negated = bool(token.group("neg"))
        for kind in ("tag", "folder", "link", "outgoing"):
            value = token.group(kind)
            if value is not None:
                if kind == "tag":
                    value = value.lstrip("#")
                terms.append(SourceTerm(kind=kind, value=value.strip(), negated=negated))
                break
    if operators and len(operators) >= len(terms):
        raise QuerySyntaxError("Dangling operator in FROM clause")

    sort_field = None
    descending = False
    if match.group("sort") is not None:
        sort_match = SORT_PATTERN.match(match.group("sort"))
        if not sort_match:
            raise QuerySyntaxError(f"Unsupported SORT clause: {match.group('sort').strip()}")
        sort_field = sort_match.group("field").lower()
        descending = (sort_match.group("direction") or "asc").lower() == "desc"

    limit = int(match.group("limit")) if match.group("limit") else None
    return ParsedQuery(
        terms=terms,
        operators=operators,
        sort_field=sort_field,
        descending=descending,
        limit=limit,
    )


class QueryEngine:
    """Evaluate queries against the link/tag index of a vault."""

    def __init__(self, vault: VaultService) -> None:
        self.vault = vault

    async def query(self, text: str) -> List[Dict[str, Any]]:
        """Return `{path}` rows for the query; may contain duplicates."""
        return await asyncio.to_thread(self.execute, text)

    def execute(self, text: str) -> List[Dict[str, Any]]:
        parsed = parse_query(text)
        indexer = self.vault.indexer

        if parsed.terms:
            paths = self._evaluate(parsed.terms[0])
            for operator, term in zip(parsed.operators, parsed.terms[1:]):
                right = self._evaluate(term)
                if operator == "and":
                    keep = set(right)
                    paths = [path for path in paths if path in keep]
                else:
                    paths = paths + right
        else:
            paths = [row["path"] for row in indexer.list_paths()]

        if parsed.sort_field:
            rows = {row["path"]: row for row in indexer.list_paths(paths=sorted(set(paths)))}
            paths = [path for path in paths if path in rows]
            paths.sort(key=lambda path: self._sort_key(rows[path], parsed.sort_field), reverse=parsed.descending)

        if parsed.limit is not None:
            paths = paths[: parsed.limit]

        logger.debug("Query evaluated", extra={"query": text, "result_count": len(paths)})
        return [{"path": path} for path in paths]

    def _evaluate(self, term: SourceTerm) -> List[str]:
        indexer = self.vault.indexer
        if term.kind == "tag":
            matched = [row["path"] for row in indexer.list_paths(tag=term.value)]
        elif term.kind == "folder":
            matched = [row["path"] for row in indexer.list_paths(folder=term.value)]
        else:
            target = self.vault.resolve_path(link_target(term.value)[0])
            if target is None:
                matched = []
            elif term.kind == "link":
                matched = [row["path"] for row in indexer.get_backlinks(target.path)]
            else:
                matched = [row["path"] for row in indexer.get_outgoing(target.path)]

        if term.negated:
            excluded = set(matched)
            return [row["path"] for row in indexer.list_paths() if row["path"] not in excluded]
        return matched

    @staticmethod
    def _sort_key(row: Dict[str, Any], field: str):
        if field == "mtime":
            return row["mtime"]
        if field == "name":
            return row["path"].rsplit("/", 1)[-1].lower()
        return row["path"].lower()


__all__ = ["QueryEngine", "QuerySyntaxError", "ParsedQuery", "SourceTerm", "parse_query"]
