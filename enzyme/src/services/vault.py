"""Filesystem vault: the note store read by the extraction pipeline."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path, PurePosixPath
import re
from typing import Dict, List, Optional, Tuple

from ..models.note import FileMetadata, NoteFile
from .config import AppConfig, get_config
from .database import DatabaseService
from .errors import NoteNotFoundError
from .indexer import IndexerService
from .markdown_metadata import parse_metadata

logger = logging.getLogger(__name__)

INVALID_PATH_CHARS = {'<', '>', ':', '"', '|', '?', '*'}
H1_PATTERN = re.compile(r"^\s*#\s+(.+)$", re.MULTILINE)


def validate_note_path(note_path: str) -> Tuple[bool, str]:
    """
    Validate a relative vault path.

    Returns (is_valid, message). Message is empty when valid.
    """
    if not note_path or len(note_path) > 256:
        return False, "Path must be 1-256 characters"
    if ".." in note_path:
        return False, "Path must not contain '..'"
    if "\\" in note_path:
        return False, "Path must use Unix separators (/)"
    if note_path.startswith("/"):
        return False, "Path must be relative (no leading /)"
    if any(char in INVALID_PATH_CHARS for char in note_path):
        return False, "Path contains invalid characters"
    return True, ""


def sanitize_path(vault_root: Path, note_path: str) -> Path:
    """
    Sanitize and resolve a note path within the vault.

    Raises ValueError if the resolved path escapes the vault root.
    """
    vault = vault_root.resolve()
    full_path = (vault / note_path).resolve()
    if not str(full_path).startswith(str(vault)):
        raise ValueError(f"Path escapes vault root: {note_path}")
    return full_path


def derive_title(note_path: str, metadata: FileMetadata, text: str) -> str:
    title = metadata.frontmatter.get("title")
    if isinstance(title, str) and title.strip():
        return title.strip()
    match = H1_PATTERN.search(text or "")
    if match:
        return match.group(1).strip()
    return PurePosixPath(note_path).stem


class VaultService:
    """Read-side access to a markdown vault: file handles, contents, metadata, backlinks."""

    def __init__(
        self,
        config: AppConfig | None = None,
        indexer: IndexerService | None = None,
    ) -> None:
        self.config = config or get_config()
        self.vault_root = self.config.vault_path
        self.vault_root.mkdir(parents=True, exist_ok=True)
        self._indexer = indexer
        self._metadata_cache: Dict[str, Tuple[float, FileMetadata]] = {}

    @property
    def indexer(self) -> IndexerService:
        if self._indexer is None:
            self._indexer = IndexerService(DatabaseService(self.config.index_db_path))
        return self._indexer

    def get_file(self, note_path: str) -> Optional[NoteFile]:
        """Return a handle for an exact vault-relative path, or None."""
        is_valid, _ = validate_note_path(note_path)
        if not is_valid:
            return None
        try:
            absolute_path = sanitize_path(self.vault_root, note_path)
        except ValueError:
            return None
        if not absolute_path.is_file():
            return None
        return NoteFile(path=note_path, mtime=absolute_path.stat().st_mtime)

    def list_files(self, extension: str | None = "md") -> List[NoteFile]:
        """List vault files (markdown only by default), sorted by path."""
        pattern = f"*.{extension}" if extension else "*"
        files: List[NoteFile] = []
        for file_path in self.vault_root.rglob(pattern):
            if not file_path.is_file():
                continue
            relative = file_path.relative_to(self.vault_root).as_posix()
            if any(part.startswith(".") for part in PurePosixPath(relative).parts):
                continue
            files.append(NoteFile(path=relative, mtime=file_path.stat().st_mtime))
        return sorted(files, key=lambda item: item.path.lower())

    def resolve_path(self, link_path: str, source_path: str = "") -> Optional[NoteFile]:
        """
        Resolve 'Some Note', 'Some Note.md' or 'folder/Some Note.md' to a file.

        Exact paths win; otherwise the closest note with a matching name is
        chosen (same folder as ``source_path`` first, then the shortest path).
        """
        target = (link_path or "").strip().strip("/")
        if not target:
            return None

        candidates = [target]
        if not PurePosixPath(target).suffix:
            candidates.insert(0, f"{target}.md")
        for candidate in candidates:
            found = self.get_file(candidate)
            if found is not None:
                return found

        wanted = PurePosixPath(candidates[0])
        name = wanted.name.lower()
        folder_hint = str(wanted.parent).lower() if "/" in target else ""
        matches = [
            file
            for file in self.list_files(extension=None)
            if PurePosixPath(file.path).name.lower() == name
            and str(PurePosixPath(file.path).parent).lower().endswith(folder_hint)
        ]
        if not matches:
            return None
        source_folder = PurePosixPath(source_path).parent if source_path else None
        return sorted(
            matches,
            key=lambda file: (
                PurePosixPath(file.path).parent != source_folder,
                len(file.path),
                file.path,
            ),
        )[0]

    def require_file(self, link_path: str) -> NoteFile:
        """Resolve a named file or raise NoteNotFoundError carrying the path."""
        file = self.resolve_path(link_path)
        if file is None:
            raise NoteNotFoundError(link_path)
        return file

    def read_text(self, file: NoteFile) -> str:
        absolute_path = sanitize_path(self.vault_root, file.path)
        try:
            return absolute_path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise NoteNotFoundError(file.path) from exc

    async def read_file(self, file: NoteFile) -> str:
        """Read file contents without blocking the event loop."""
        return await asyncio.to_thread(self.read_text, file)

    def get_metadata(self, file: NoteFile) -> FileMetadata:
        """Return the metadata cache for a file, recomputed when the file changes."""
        absolute_path = sanitize_path(self.vault_root, file.path)
        try:
            mtime = absolute_path.stat().st_mtime
        except FileNotFoundError as exc:
            raise NoteNotFoundError(file.path) from exc
        cached = self._metadata_cache.get(file.path)
        if cached and cached[0] == mtime:
            return cached[1]
        metadata = parse_metadata(self.read_text(file)) if file.is_markdown else FileMetadata()
        self._metadata_cache[file.path] = (mtime, metadata)
        return metadata

    def get_backlinks(self, file: NoteFile) -> List[NoteFile]:
        """Return files that link to or embed ``file`` according to the index."""
        backlinks: List[NoteFile] = []
        for row in self.indexer.get_backlinks(file.path):
            referrer = self.get_file(row["path"])
            if referrer is None:
                logger.debug("Skipping stale backlink", extra={"path": row["path"]})
                continue
            backlinks.append(referrer)
        return backlinks

    def rebuild_index(self) -> int:
        """Re-index every markdown note in the vault."""
        entries = []
        for file in self.list_files():
            text = self.read_text(file)
            metadata = self.get_metadata(file)
            entries.append((file.path, derive_title(file.path, metadata, text), file.mtime, metadata))
        return self.indexer.rebuild(entries)


__all__ = [
    "VaultService",
    "validate_note_path",
    "sanitize_path",
    "derive_title",
]
