"""SQLite database helpers for the vault link index."""

from __future__ import annotations

from pathlib import Path
import sqlite3
from typing import Iterable

from .config import DEFAULT_INDEX_DB_PATH

DDL_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS note_metadata (
        note_path TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        mtime REAL NOT NULL DEFAULT 0,
        normalized_title_slug TEXT,
        normalized_path_slug TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_metadata_mtime ON note_metadata(mtime DESC)",
    "CREATE INDEX IF NOT EXISTS idx_metadata_title_slug ON note_metadata(normalized_title_slug)",
    "CREATE INDEX IF NOT EXISTS idx_metadata_path_slug ON note_metadata(normalized_path_slug)",
    """
    CREATE TABLE IF NOT EXISTS note_tags (
        note_path TEXT NOT NULL,
        tag TEXT NOT NULL,
        PRIMARY KEY (note_path, tag)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_tags_tag ON note_tags(tag)",
    """
    CREATE TABLE IF NOT EXISTS note_links (
        source_path TEXT NOT NULL,
        link_text TEXT NOT NULL,
        target_path TEXT,
        is_embed INTEGER NOT NULL DEFAULT 0,
        is_resolved INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (source_path, link_text, is_embed)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_links_source ON note_links(source_path)",
    "CREATE INDEX IF NOT EXISTS idx_links_target ON note_links(target_path)",
)


class DatabaseService:
    """Manage SQLite connections and schema initialization."""

    def __init__(self, db_path: str | Path | None = None):
        self.db_path = Path(db_path) if db_path else DEFAULT_INDEX_DB_PATH

    def _ensure_directory(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def connect(self) -> sqlite3.Connection:
        """Return a sqlite3 connection with the proper data directory created."""
        self._ensure_directory()
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self, statements: Iterable[str] | None = None) -> Path:
        """Create all schema artifacts required for indexing."""
        conn = self.connect()
        try:
            with conn:  # Transactional apply of DDL
                for statement in statements or DDL_STATEMENTS:
                    conn.execute(statement)
        finally:
            conn.close()
        return self.db_path


def init_database(db_path: str | Path | None = None) -> Path:
    return DatabaseService(db_path).initialize()


__all__ = ["DatabaseService", "init_database", "DEFAULT_INDEX_DB_PATH"]
