"""Synthesis agent: turns the conversation in a document into one model call."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from ..models.conversation import (
    ChatTurn,
    Cursor,
    SynthesisMessageMetadata,
    SynthesisPlanMessageMetadata,
)
from ..models.extraction import FileContents
from .model_client import ModelClient
from .prompt_loader import PromptLoader
from .retriever import CandidateRetriever
from .substitution import restore_markers
from .synthesis_container import SynthesisContainer

logger = logging.getLogger(__name__)

WAIT_PLACEHOLDER = "Synthesizing..."


def _plan_of(turn: ChatTurn) -> Optional[SynthesisPlanMessageMetadata]:
    for item in turn.metadata or []:
        if isinstance(item, SynthesisPlanMessageMetadata):
            return item
    return None


class SynthesisAgent:
    """
    Reads the turns above a container, retrieves the sources planned by the
    last user turn, asks the model once and writes the reply into the
    container with block references restored.
    """

    def __init__(
        self,
        retriever: CandidateRetriever,
        model_client: ModelClient,
        prompt_loader: Optional[PromptLoader] = None,
    ) -> None:
        self.retriever = retriever
        self.model_client = model_client
        self.prompt_loader = prompt_loader or PromptLoader()

    async def gather_sources(self, plan: Optional[SynthesisPlanMessageMetadata]) -> List[FileContents]:
        if plan is None:
            return []
        contents: List[FileContents] = []
        for source in plan.sources:
            contents.extend(await self.retriever.retrieve(source))
        return contents

    def build_messages(self, turns: List[ChatTurn], contents: List[FileContents]) -> List[Dict[str, str]]:
        instructions = self.prompt_loader.load("synthesis/instructions.md")
        messages = [
            {
                "role": "system",
                "content": self.prompt_loader.load("synthesis/system.md", {"instructions": instructions}),
            }
        ]
        for turn in turns[:-1]:
            messages.append({"role": turn.role, "content": turn.content})

        last = turns[-1]
        messages.append(
            {
                "role": last.role,
                "content": self.prompt_loader.load(
                    "synthesis/sources.md",
                    {"contents": [item.model_dump() for item in contents], "guidance": last.content},
                ),
            }
        )
        return messages

    async def synthesize(self, container: SynthesisContainer) -> str:
        """Write one assistant reply into ``container`` and return it."""
        turns = container.get_messages_to_here(
            Cursor(line=container.end_of_code_fence_line + 1, ch=0)
        )
        if not turns or turns[-1].role != "user":
            raise ValueError("No user block found above the synthesis container")

        plan = _plan_of(turns[-1])
        contents = await self.gather_sources(plan)
        substitutions = [sub for item in contents for sub in item.substitutions]
        logger.info(
            "Starting synthesis",
            extra={
                "turn_count": len(turns),
                "file_count": len(contents),
                "substitution_count": len(substitutions),
            },
        )

        remove_placeholder = container.wait_placeholder(WAIT_PLACEHOLDER)
        try:
            reply = await self.model_client.complete(self.build_messages(turns, contents))
        finally:
            remove_placeholder()

        restored = restore_markers(reply, substitutions)
        container.render_metadata([SynthesisMessageMetadata(id=plan.id if plan else None)])
        container.append_text(restored)
        container.finalize()
        return restored


__all__ = ["SynthesisAgent", "WAIT_PLACEHOLDER"]
