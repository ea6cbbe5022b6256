"""HTTP API routes for reading and extending synthesis documents."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ...models.conversation import BlockContents, ChatTurn, Cursor
from ..dependencies import get_synthesis_agent
from ...services.conversation import get_messages_to_here, parse_block_contents
from ...services.document import TextDocument
from ...services.execution import ExecutionLock, Notifier, run_locked
from ...services.synthesis_agent import SynthesisAgent
from ...services.synthesis_container import create_synthesis_container

logger = logging.getLogger(__name__)

router = APIRouter()

# One synthesis at a time per server process.
synthesis_lock = ExecutionLock()


class ConversationRequest(BaseModel):
    text: str
    line: Optional[int] = Field(default=None, ge=0)
    ch: Optional[int] = Field(default=None, ge=0)


class BlockRequest(BaseModel):
    text: str


class SynthesizeRequest(BaseModel):
    text: str
    line: int = Field(..., ge=0, description="Line of the closing fence of the user block")


class SynthesizeResponse(BaseModel):
    completed: bool
    text: str
    notices: List[str] = Field(default_factory=list)


@router.post("/api/conversation", response_model=List[ChatTurn], response_model_exclude_none=True)
async def reconstruct_conversation(request: ConversationRequest):
    """Recover the turns above a cursor; the cursor defaults to the end of the text."""
    cursor = None
    if request.line is not None:
        cursor = Cursor(line=request.line, ch=request.ch if request.ch is not None else 0)
    return get_messages_to_here(request.text, cursor)


@router.post("/api/blocks/parse", response_model=BlockContents)
async def parse_block(request: BlockRequest):
    return parse_block_contents(request.text)


@router.post("/api/synthesize", response_model=SynthesizeResponse)
async def synthesize(
    request: SynthesizeRequest,
    agent: SynthesisAgent = Depends(get_synthesis_agent),
):
    """Append an assistant reply after the user block closing on ``line``."""
    document = TextDocument(request.text)
    notifier = Notifier()

    async def action() -> None:
        container = create_synthesis_container(document, request.line)
        await agent.synthesize(container)

    completed = await run_locked(synthesis_lock, action, notifier)
    return SynthesizeResponse(completed=completed, text=document.get_value(), notices=notifier.notices)


__all__ = ["router", "synthesis_lock"]
