"""HTTP API routes for the link index."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..dependencies import get_vault
from ...services.vault import VaultService

logger = logging.getLogger(__name__)

router = APIRouter()


class RebuildResponse(BaseModel):
    """Response from index rebuild."""

    status: str
    note_count: int


@router.post("/api/index/rebuild", response_model=RebuildResponse)
async def rebuild_index(vault: VaultService = Depends(get_vault)):
    """Re-index every markdown note in the vault."""
    note_count = await asyncio.to_thread(vault.rebuild_index)
    logger.info("Index rebuilt", extra={"note_count": note_count})
    return RebuildResponse(status="success", note_count=note_count)


__all__ = ["router"]
