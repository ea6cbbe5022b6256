"""Pydantic models for source selection and extracted file contents."""

from __future__ import annotations

from enum import Enum
import re
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

MARKER_PATTERN = re.compile(r"%[0-9a-f]{4}%")


class Strategy(str, Enum):
    """Closed set of extraction strategies a source may name."""

    BASIC = "Basic"
    LONG_CONTENT = "LongContent"
    SINGLE_EVERGREEN_REFERRER = "SingleEvergreenReferrer"
    ALL_EVERGREEN_REFERRERS = "AllEvergreenReferrers"
    RECENT_MENTIONS = "RecentMentions"

    @classmethod
    def parse(cls, value: str | "Strategy" | None) -> Optional["Strategy"]:
        """Return the matching member, or None for absent/unknown identifiers."""
        if value is None or isinstance(value, Strategy):
            return value
        cleaned = str(value).strip()
        for member in cls:
            if member.value.lower() == cleaned.lower() or member.name.lower() == cleaned.lower():
                return member
        return None


# Strategies offered in a `choice:` dropdown
SELECTABLE_STRATEGIES: tuple[Strategy, ...] = (
    Strategy.RECENT_MENTIONS,
    Strategy.LONG_CONTENT,
    Strategy.ALL_EVERGREEN_REFERRERS,
    Strategy.BASIC,
)


class SourceDescriptor(BaseModel):
    """What to retrieve (query) and how to extract it (strategy, evergreen focus)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    strategy: Optional[str] = Field(None, description="Strategy identifier (see Strategy)")
    query: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("query", "dql"),
        description="Query text in the vault query language",
    )
    evergreen: Optional[str] = Field(
        None, description="Anchor/note name the reference-centered strategies focus on"
    )

    @field_validator("strategy", "query", "evergreen", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        if value is None:
            return None
        if isinstance(value, Strategy):
            return value.value
        text = str(value).strip()
        return text or None


class BlockRefSubstitution(BaseModel):
    """Reversible mapping from an opaque `%xxxx%` marker to a block reference."""

    model_config = ConfigDict(frozen=True)

    template: str = Field(..., description="Marker shown to the model, e.g. %a6de%")
    block_reference: str = Field(..., description="Embed link, e.g. ![[Note#^abc123]]")

    @field_validator("template")
    @classmethod
    def validate_template(cls, value: str) -> str:
        if not MARKER_PATTERN.fullmatch(value):
            raise ValueError("Marker must be '%' + 4 lowercase hex characters + '%'")
        return value


class FileContents(BaseModel):
    """Extraction output for one file (after reference substitution)."""

    file: str = Field(..., description="File basename")
    last_modified_date: str
    contents: str
    substitutions: List[BlockRefSubstitution] = Field(default_factory=list)


__all__ = [
    "MARKER_PATTERN",
    "Strategy",
    "SELECTABLE_STRATEGIES",
    "SourceDescriptor",
    "BlockRefSubstitution",
    "FileContents",
]
