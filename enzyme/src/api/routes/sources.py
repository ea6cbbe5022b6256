"""HTTP API routes for source queries and extraction."""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ...models.extraction import FileContents, SourceDescriptor
from ..dependencies import get_retriever
from ...services.retriever import CandidateRetriever

router = APIRouter()


class SourceInfo(BaseModel):
    path: str


@router.get("/api/sources", response_model=List[SourceInfo])
async def get_source_info(
    query: str = Query(..., min_length=1, description="Query selecting vault files"),
    retriever: CandidateRetriever = Depends(get_retriever),
):
    """List the files a query selects without reading them."""
    return await retriever.get_source_info(query)


@router.post("/api/extract", response_model=List[FileContents])
async def extract_source(
    source: SourceDescriptor,
    retriever: CandidateRetriever = Depends(get_retriever),
):
    """Run a source descriptor and return model-ready contents with their substitutions."""
    return await retriever.retrieve(source)


@router.get("/api/nodes", response_model=List[Dict[str, Any]])
async def get_node_contents(
    path: str = Query(..., min_length=1),
    retriever: CandidateRetriever = Depends(get_retriever),
):
    """Return a named source or aggregator note's contents by frontmatter role."""
    return await retriever.get_node_contents(path)


__all__ = ["router"]
