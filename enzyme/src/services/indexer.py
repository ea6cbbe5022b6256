"""SQLite-backed link and tag index for vault notes."""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
import re
import sqlite3
import time
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..models.note import FileMetadata
from .database import DatabaseService
from .markdown_metadata import link_target

logger = logging.getLogger(__name__)

IndexEntry = Tuple[str, str, float, FileMetadata]


def normalize_slug(text: str | None) -> str:
    """Normalize text into a slug suitable for wikilink matching."""
    if not text:
        return ""
    slug = text.lower()
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def normalize_tag(tag: str | None) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.strip().lstrip("#").lower()


class IndexerService:
    """Manage note metadata, tags and the link graph used by queries and backlinks."""

    def __init__(self, db_service: DatabaseService | None = None) -> None:
        self.db_service = db_service or DatabaseService()
        self.db_service.initialize()

    def rebuild(self, entries: Iterable[IndexEntry]) -> int:
        """Replace the whole index; links are resolved once every note is known."""
        start_time = time.time()
        entries = list(entries)
        conn = self.db_service.connect()
        try:
            with conn:
                conn.execute("DELETE FROM note_metadata")
                conn.execute("DELETE FROM note_tags")
                conn.execute("DELETE FROM note_links")
                for note_path, title, mtime, metadata in entries:
                    self._insert_note(conn, note_path, title, mtime, metadata)
                for note_path, _title, _mtime, metadata in entries:
                    self._insert_links(conn, note_path, metadata)
        finally:
            conn.close()

        logger.info(
            "Index rebuilt",
            extra={
                "note_count": len(entries),
                "duration_ms": f"{(time.time() - start_time) * 1000:.2f}",
            },
        )
        return len(entries)

    def index_note(self, note_path: str, title: str, mtime: float, metadata: FileMetadata) -> None:
        """Insert or update index rows for a single note."""
        conn = self.db_service.connect()
        try:
            with conn:
                self._delete_current_entries(conn, note_path)
                self._insert_note(conn, note_path, title, mtime, metadata)
                self._insert_links(conn, note_path, metadata)
                # Links that pointed nowhere may now resolve to this note.
                unresolved = conn.execute(
                    "SELECT source_path, link_text FROM note_links WHERE is_resolved = 0"
                ).fetchall()
                for row in unresolved:
                    target = self.resolve_link(conn, row["source_path"], link_target(row["link_text"])[0])
                    if target:
                        conn.execute(
                            """
                            UPDATE note_links SET target_path = ?, is_resolved = 1
                            WHERE source_path = ? AND link_text = ?
                            """,
                            (target, row["source_path"], row["link_text"]),
                        )
        finally:
            conn.close()

        logger.debug(
            "Note indexed",
            extra={
                "note_path": note_path,
                "links_count": len(metadata.links) + len(metadata.embeds),
                "tags_count": len(metadata.tags),
            },
        )

    def delete_note_index(self, note_path: str) -> None:
        """Remove all index data for a note and unresolve links pointing at it."""
        conn = self.db_service.connect()
        try:
            with conn:
                self._delete_current_entries(conn, note_path)
                conn.execute(
                    """
                    UPDATE note_links
                    SET target_path = NULL, is_resolved = 0
                    WHERE target_path = ?
                    """,
                    (note_path,),
                )
        finally:
            conn.close()

    def resolve_link(
        self, conn: sqlite3.Connection, source_path: str, link_path: str
    ) -> Optional[str]:
        """Resolve a link path to a note path using slug comparison."""
        if not link_path:
            # Same-file reference such as [[#^block]]
            return source_path
        stem = PurePosixPath(link_path).stem if link_path.lower().endswith(".md") else PurePosixPath(link_path).name
        slug = normalize_slug(stem)
        if not slug:
            return None

        rows = conn.execute(
            """
            SELECT note_path
            FROM note_metadata
            WHERE normalized_title_slug = ? OR normalized_path_slug = ?
            """,
            (slug, slug),
        ).fetchall()
        if not rows:
            return None

        candidates = [row["note_path"] for row in rows]
        folder_hint = str(PurePosixPath(link_path).parent) if "/" in link_path else None
        if folder_hint:
            scoped = [c for c in candidates if str(PurePosixPath(c).parent).endswith(folder_hint)]
            candidates = scoped or candidates
        source_folder = PurePosixPath(source_path).parent
        return sorted(
            candidates,
            key=lambda candidate: (PurePosixPath(candidate).parent != source_folder, len(candidate), candidate),
        )[0]

    def get_backlinks(self, target_path: str) -> List[Dict[str, Any]]:
        """Return notes linking to or embedding the target, most recent first."""
        conn = self.db_service.connect()
        try:
            rows = conn.execute(
                """
                SELECT DISTINCT l.source_path, m.title, m.mtime
                FROM note_links l
                JOIN note_metadata m ON l.source_path = m.note_path
                WHERE l.target_path = ? AND l.source_path != ?
                ORDER BY m.mtime DESC, l.source_path ASC
                """,
                (target_path, target_path),
            ).fetchall()
        finally:
            conn.close()
        return [{"path": row["source_path"], "title": row["title"]} for row in rows]

    def get_outgoing(self, source_path: str) -> List[Dict[str, Any]]:
        """Return resolved link targets of a note."""
        conn = self.db_service.connect()
        try:
            rows = conn.execute(
                """
                SELECT DISTINCT target_path
                FROM note_links
                WHERE source_path = ? AND is_resolved = 1 AND target_path != ?
                ORDER BY target_path
                """,
                (source_path, source_path),
            ).fetchall()
        finally:
            conn.close()
        return [{"path": row["target_path"]} for row in rows]

    def list_paths(
        self,
        *,
        tag: str | None = None,
        folder: str | None = None,
        paths: Sequence[str] | None = None,
    ) -> List[Dict[str, Any]]:
        """Return `{path, title, mtime}` rows filtered by tag, folder or explicit paths."""
        clauses: List[str] = []
        params: List[Any] = []
        if tag is not None:
            normalized = normalize_tag(tag)
            clauses.append(
                "note_path IN (SELECT note_path FROM note_tags WHERE tag = ? OR tag LIKE ?)"
            )
            params.extend([normalized, f"{normalized}/%"])
        if folder is not None:
            cleaned = folder.strip().strip("/")
            if cleaned:
                clauses.append("(note_path = ? OR note_path LIKE ?)")
                params.extend([cleaned, f"{cleaned}/%"])
        if paths is not None:
            if not paths:
                return []
            clauses.append(f"note_path IN ({', '.join('?' for _ in paths)})")
            params.extend(paths)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        conn = self.db_service.connect()
        try:
            rows = conn.execute(
                f"SELECT note_path, title, mtime FROM note_metadata {where} ORDER BY note_path",
                params,
            ).fetchall()
        finally:
            conn.close()
        return [
            {"path": row["note_path"], "title": row["title"], "mtime": float(row["mtime"])}
            for row in rows
        ]

    def get_tags(self) -> List[Dict[str, Any]]:
        """Return tag counts."""
        conn = self.db_service.connect()
        try:
            rows = conn.execute(
                """
                SELECT tag, COUNT(DISTINCT note_path) AS count
                FROM note_tags
                GROUP BY tag
                ORDER BY count DESC, tag ASC
                """
            ).fetchall()
        finally:
            conn.close()
        return [{"tag": row["tag"], "count": int(row["count"])} for row in rows]

    def _insert_note(
        self, conn: sqlite3.Connection, note_path: str, title: str, mtime: float, metadata: FileMetadata
    ) -> None:
        normalized_path_slug = normalize_slug(PurePosixPath(note_path).stem)
        normalized_title_slug = normalize_slug(title) or normalized_path_slug
        conn.execute(
            """
            INSERT INTO note_metadata (
                note_path, title, mtime, normalized_title_slug, normalized_path_slug
            ) VALUES (?, ?, ?, ?, ?)
            """,
            (note_path, title, mtime, normalized_title_slug, normalized_path_slug),
        )
        tags = self._prepare_tags(metadata.tags)
        if tags:
            conn.executemany(
                "INSERT INTO note_tags (note_path, tag) VALUES (?, ?)",
                [(note_path, tag) for tag in tags],
            )

    def _insert_links(self, conn: sqlite3.Connection, note_path: str, metadata: FileMetadata) -> None:
        seen: Dict[Tuple[str, int], None] = {}
        for cache, is_embed in [(link, 0) for link in metadata.links] + [
            (embed, 1) for embed in metadata.embeds
        ]:
            seen.setdefault((cache.link, is_embed), None)

        rows = []
        for link_text, is_embed in seen:
            target = self.resolve_link(conn, note_path, link_target(link_text)[0])
            rows.append((note_path, link_text, target, is_embed, 1 if target else 0))
        if rows:
            conn.executemany(
                """
                INSERT INTO note_links (source_path, link_text, target_path, is_embed, is_resolved)
                VALUES (?, ?, ?, ?, ?)
                """,
                rows,
            )

    def _delete_current_entries(self, conn: sqlite3.Connection, note_path: str) -> None:
        conn.execute("DELETE FROM note_metadata WHERE note_path = ?", (note_path,))
        conn.execute("DELETE FROM note_tags WHERE note_path = ?", (note_path,))
        conn.execute("DELETE FROM note_links WHERE source_path = ?", (note_path,))

    def _prepare_tags(self, tags: Any) -> List[str]:
        if not isinstance(tags, list):
            return []
        normalized: List[str] = []
        for tag in tags:
            cleaned = normalize_tag(tag)
            if cleaned and cleaned not in normalized:
                normalized.append(cleaned)
        return normalized


__all__ = ["IndexerService", "IndexEntry", "normalize_slug", "normalize_tag"]
