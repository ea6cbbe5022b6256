"""Pydantic models for the conversation reconstructed from a document."""

from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .extraction import SourceDescriptor


class Cursor(BaseModel):
    """Position in a line-oriented buffer (0-based line and column)."""

    model_config = ConfigDict(frozen=True)

    line: int = Field(..., ge=0)
    ch: int = Field(..., ge=0)


class SynthesisMessageMetadata(BaseModel):
    """Marks an assistant turn as a synthesis reply."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    assistant_message_type: Literal["synthesis"] = Field(
        "synthesis", alias="assistantMessageType"
    )


class SynthesisPlanMessageMetadata(BaseModel):
    """Records which sources and prompt a user turn asked to synthesize."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    assistant_message_type: Literal["synthesisPlan"] = Field(
        "synthesisPlan", alias="assistantMessageType"
    )
    sources: List[SourceDescriptor] = Field(default_factory=list)
    prompt: str = ""


AssistantMessageMetadata = Annotated[
    Union[SynthesisMessageMetadata, SynthesisPlanMessageMetadata],
    Field(discriminator="assistant_message_type"),
]

METADATA_LIST_ADAPTER = TypeAdapter(List[AssistantMessageMetadata])


class ChatTurn(BaseModel):
    """One user or assistant turn recovered from the document."""

    role: Literal["user", "assistant"]
    content: str
    metadata: Optional[List[AssistantMessageMetadata]] = None


class ChoiceDirective(BaseModel):
    """A `choice:` line selecting one of the default strategies."""

    strategy: str
    line: int = Field(..., ge=0, description="0-based line of the directive inside the block")


BlockKind = Literal["prose", "guidance", "sources", "choice", "aggregator"]


class BlockContents(BaseModel):
    """Parsed interior of a fenced user block."""

    prompt: str = ""
    sources: List[SourceDescriptor] = Field(default_factory=list)
    choice: Optional[ChoiceDirective] = None
    aggregator_id: Optional[str] = None
    kind: BlockKind = "prose"

    @property
    def is_structured(self) -> bool:
        return self.kind != "prose"


def dump_metadata(metadata: List[AssistantMessageMetadata]) -> list[dict]:
    """Serialize metadata with its camelCase wire names."""
    return METADATA_LIST_ADAPTER.dump_python(metadata, by_alias=True, exclude_none=True)


__all__ = [
    "Cursor",
    "SynthesisMessageMetadata",
    "SynthesisPlanMessageMetadata",
    "AssistantMessageMetadata",
    "METADATA_LIST_ADAPTER",
    "ChatTurn",
    "ChoiceDirective",
    "BlockKind",
    "BlockContents",
    "dump_metadata",
]
