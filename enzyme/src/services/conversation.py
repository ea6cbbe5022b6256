"""Recover the conversation held in a synthesis document.

The document is the only store of the conversation: user turns are fenced
``enzyme`` blocks (``reason`` is still read for older documents) and
assistant turns are ``> [!💭]+`` callouts whose lines are block-quoted.
Assistant metadata is a JSON array hidden in a ``display:none`` div.

``get_messages_to_here`` is a pure function of (text, cursor); segmentation
is pattern based and kept behind this module's functions so that callers do
not depend on how blocks are found.
"""

from __future__ import annotations

import hashlib
import logging
import re
from typing import Any, Callable, List, Optional

from pydantic import ValidationError
import yaml

from ..models.conversation import (
    METADATA_LIST_ADAPTER,
    BlockContents,
    ChatTurn,
    ChoiceDirective,
    Cursor,
    SynthesisPlanMessageMetadata,
)
from ..models.extraction import SourceDescriptor, Strategy
from .document import TextDocument

logger = logging.getLogger(__name__)

USER_FENCE_TAG = "enzyme"
LEGACY_USER_FENCE_TAG = "reason"
ASSISTANT_CALLOUT_HEADER = "> [!💭]+"

USER_BLOCK_PATTERN = rf"```(?:{USER_FENCE_TAG}|{LEGACY_USER_FENCE_TAG})\n([\s\S]*?)\n```"
# An assistant callout only counts once a non-quoted line follows it.
ASSISTANT_BLOCK_PATTERN = r"> \[!💭\]\+\n> ([\s\S]*?)(?=\n[^>])"
TURN_PATTERN = re.compile(rf"{USER_BLOCK_PATTERN}|{ASSISTANT_BLOCK_PATTERN}")
HIDDEN_METADATA_PATTERN = re.compile(r'<div style="display:none">([\s\S]*?)</div>')
QUOTE_PREFIX_PATTERN = re.compile(r"^> ?")

TurnIdFactory = Callable[[int, str], str]


def block_turn_id(offset: int, block: str) -> str:
    """Id for an ad hoc user block, stable for the same block at the same place."""
    return hashlib.sha1(f"{offset}:{block}".encode("utf-8")).hexdigest()[:10]


def _to_source(raw: Any) -> SourceDescriptor:
    if isinstance(raw, str):
        return SourceDescriptor(query=raw)
    if isinstance(raw, dict):
        return SourceDescriptor.model_validate(raw)
    raise TypeError(f"Unsupported source entry: {raw!r}")


def parse_block_contents(contents: str) -> BlockContents:
    """
    Parse a user block as YAML with the keys ``choice``, ``sources``,
    ``guidance`` (and ``aggregator``).

    Anything that is not such a mapping, including invalid YAML, is a plain
    prompt with no sources. Never raises.
    """
    prose = BlockContents(prompt=contents, sources=[], kind="prose")
    try:
        parsed = yaml.safe_load(contents.replace("\t", "    "))
        if not isinstance(parsed, dict):
            return prose

        guidance = parsed.get("guidance")
        prompt = "" if guidance is None else str(guidance)
        aggregator = parsed.get("aggregator")
        aggregator_id = str(aggregator) if aggregator else None

        # A choice always renders a strategy picker limited to default sources.
        if parsed.get("choice"):
            choice_line = next(
                (index for index, line in enumerate(contents.split("\n")) if "choice:" in line),
                0,
            )
            return BlockContents(
                prompt=prompt,
                sources=[],
                choice=ChoiceDirective(strategy=str(parsed["choice"]), line=choice_line),
                kind="choice",
            )

        sources = parsed.get("sources")
        if isinstance(sources, list) and sources:
            return BlockContents(
                prompt=prompt,
                sources=[_to_source(source) for source in sources],
                aggregator_id=aggregator_id,
                kind="aggregator" if aggregator_id else "sources",
            )
        if guidance is not None or aggregator_id:
            return BlockContents(
                prompt=prompt,
                sources=[],
                aggregator_id=aggregator_id,
                kind="aggregator" if aggregator_id else "guidance",
            )
        return prose
    except (yaml.YAMLError, ValidationError, TypeError, ValueError) as exc:
        logger.debug("Block is not structured, treating as prompt", extra={"error": str(exc)})
        return prose


def planned_sources(contents: BlockContents, is_first_message: bool) -> List[SourceDescriptor]:
    """Sources a user block asks for, after applying the default strategies."""
    if contents.choice is not None:
        return [SourceDescriptor(strategy=contents.choice.strategy)]
    sources = list(contents.sources)
    if not sources and is_first_message:
        return [SourceDescriptor(strategy=Strategy.RECENT_MENTIONS.value)]
    if len(sources) == 1 and not sources[0].strategy:
        return [sources[0].model_copy(update={"strategy": Strategy.BASIC.value})]
    return sources


def _user_turn(block: str, offset: int, is_first: bool, id_factory: TurnIdFactory) -> ChatTurn:
    contents = parse_block_contents(block)
    if not contents.is_structured:
        if not is_first:
            return ChatTurn(role="user", content=block)
        # An opening question in prose still draws on recent notes.
        plan = SynthesisPlanMessageMetadata(
            id=id_factory(offset, block),
            sources=planned_sources(contents, is_first),
            prompt=block,
        )
        return ChatTurn(role="user", content=block, metadata=[plan])

    plan = SynthesisPlanMessageMetadata(
        id=contents.aggregator_id or id_factory(offset, block),
        sources=planned_sources(contents, is_first),
        prompt=contents.prompt,
    )
    return ChatTurn(role="user", content=contents.prompt, metadata=[plan])


def _assistant_turn(body: str) -> ChatTurn:
    metadata = None
    raw_metadata = HIDDEN_METADATA_PATTERN.search(body)
    if raw_metadata:
        try:
            metadata = METADATA_LIST_ADAPTER.validate_json(raw_metadata.group(1))
        except ValidationError as exc:
            logger.warning("Ignoring malformed assistant metadata", extra={"error": str(exc)})

    visible = HIDDEN_METADATA_PATTERN.sub("", body)
    first, _, rest = visible.partition("\n")
    lines = [first] + [QUOTE_PREFIX_PATTERN.sub("", line) for line in rest.split("\n")] if rest else [first]
    return ChatTurn(role="assistant", content="\n".join(lines).strip(), metadata=metadata)


def get_messages_to_here(
    text: str,
    cursor: Optional[Cursor] = None,
    id_factory: Optional[TurnIdFactory] = None,
) -> List[ChatTurn]:
    """
    Return the turns found between the start of ``text`` and ``cursor``.

    Blocks cut off by the cursor, empty user blocks and callouts that are
    still being written are left out. Never raises on malformed blocks.
    """
    document = TextDocument(text)
    end = cursor or document.pos_at(len(text))
    raw_content = document.get_range(Cursor(line=0, ch=0), end)
    make_id = id_factory or block_turn_id

    turns: List[ChatTurn] = []
    for match in TURN_PATTERN.finditer(raw_content):
        user_block, assistant_body = match.group(1), match.group(2)
        if user_block is not None:
            if not user_block.strip():
                continue
            is_first = not any(turn.role == "user" for turn in turns)
            turns.append(_user_turn(user_block, match.start(), is_first, make_id))
        else:
            turns.append(_assistant_turn(assistant_body))
    return turns


__all__ = [
    "USER_FENCE_TAG",
    "LEGACY_USER_FENCE_TAG",
    "ASSISTANT_CALLOUT_HEADER",
    "TURN_PATTERN",
    "HIDDEN_METADATA_PATTERN",
    "block_turn_id",
    "parse_block_contents",
    "planned_sources",
    "get_messages_to_here",
]
