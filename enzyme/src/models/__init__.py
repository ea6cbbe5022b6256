"""Pydantic models for data validation and serialization."""

from .conversation import (
    AssistantMessageMetadata,
    BlockContents,
    ChatTurn,
    ChoiceDirective,
    Cursor,
    SynthesisMessageMetadata,
    SynthesisPlanMessageMetadata,
)
from .extraction import BlockRefSubstitution, FileContents, SourceDescriptor, Strategy
from .note import (
    BlockCache,
    EmbedCache,
    FileMetadata,
    LinkCache,
    Loc,
    NoteFile,
    Position,
    SectionCache,
)

__all__ = [
    "NoteFile",
    "Loc",
    "Position",
    "SectionCache",
    "LinkCache",
    "EmbedCache",
    "BlockCache",
    "FileMetadata",
    "Strategy",
    "SourceDescriptor",
    "BlockRefSubstitution",
    "FileContents",
    "Cursor",
    "ChatTurn",
    "ChoiceDirective",
    "BlockContents",
    "AssistantMessageMetadata",
    "SynthesisMessageMetadata",
    "SynthesisPlanMessageMetadata",
]
