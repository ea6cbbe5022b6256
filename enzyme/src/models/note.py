"""Note-store Pydantic models: file handles and the per-file metadata cache."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class NoteFile(BaseModel):
    """Handle to a file inside the vault."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., min_length=1, description="Relative path to vault root")
    mtime: float = Field(0.0, ge=0, description="Last modification time (epoch seconds)")

    @field_validator("path")
    @classmethod
    def validate_path(cls, value: str) -> str:
        if ".." in value:
            raise ValueError("Note path must not contain '..'")
        if "\\" in value:
            raise ValueError("Note path must use Unix-style separators (/)")
        if value.startswith("/"):
            raise ValueError("Note path must be relative (no leading /)")
        return value

    @property
    def basename(self) -> str:
        return PurePosixPath(self.path).stem

    @property
    def extension(self) -> str:
        return PurePosixPath(self.path).suffix.lstrip(".")

    @property
    def is_markdown(self) -> bool:
        return self.extension == "md"

    @property
    def last_modified_date(self) -> str:
        return datetime.fromtimestamp(self.mtime, tz=timezone.utc).date().isoformat()


class Loc(BaseModel):
    """A point in a file: 0-based line, column and absolute character offset."""

    line: int = Field(..., ge=0)
    col: int = Field(..., ge=0)
    offset: int = Field(..., ge=0)


class Position(BaseModel):
    start: Loc
    end: Loc


SectionType = Literal["yaml", "heading", "paragraph", "list", "blockquote", "code", "callout"]


class SectionCache(BaseModel):
    """A top-level markdown section (paragraph, heading, code fence, ...)."""

    type: SectionType
    position: Position


class LinkCache(BaseModel):
    """A wikilink or embed as written in the file."""

    link: str = Field(..., description="Link text without brackets or alias, e.g. 'Note#^abc'")
    original: str = Field(..., description="Exact matched source text, e.g. '![[Note#^abc]]'")
    display_text: Optional[str] = None
    position: Position


class EmbedCache(LinkCache):
    """An `![[...]]` inclusion directive."""


class BlockCache(BaseModel):
    """A block carrying an anchor id (`^id`), positioned over its section."""

    id: str
    position: Position


class FileMetadata(BaseModel):
    """Derived metadata for one file; all offsets refer to the unmodified text."""

    frontmatter: Dict[str, Any] = Field(default_factory=dict)
    frontmatter_position: Optional[Position] = None
    sections: List[SectionCache] = Field(default_factory=list)
    embeds: List[EmbedCache] = Field(default_factory=list)
    links: List[LinkCache] = Field(default_factory=list)
    blocks: Dict[str, BlockCache] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)


__all__ = [
    "NoteFile",
    "Loc",
    "Position",
    "SectionType",
    "SectionCache",
    "LinkCache",
    "EmbedCache",
    "BlockCache",
    "FileMetadata",
]
