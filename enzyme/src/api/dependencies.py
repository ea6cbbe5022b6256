"""Service wiring shared by the route handlers."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from ..services.config import AppConfig, get_config
from ..services.extractors import ExtractorDelegator
from ..services.model_client import ModelClient
from ..services.prompt_loader import PromptLoader
from ..services.query_engine import QueryEngine
from ..services.retriever import CandidateRetriever
from ..services.synthesis_agent import SynthesisAgent
from ..services.vault import VaultService


@lru_cache(maxsize=4)
def _vault_for(config: AppConfig) -> VaultService:
    return VaultService(config)


def get_vault(config: AppConfig = Depends(get_config)) -> VaultService:
    """One vault per configuration, so metadata caches survive between requests."""
    return _vault_for(config)


def get_query_engine(vault: VaultService = Depends(get_vault)) -> QueryEngine:
    return QueryEngine(vault)


def get_extractor(
    vault: VaultService = Depends(get_vault),
    config: AppConfig = Depends(get_config),
) -> ExtractorDelegator:
    return ExtractorDelegator(
        vault,
        trim_section_count=config.trim_section_count,
        context_paragraphs=config.window_context_paragraphs,
    )


def get_retriever(
    vault: VaultService = Depends(get_vault),
    extractor: ExtractorDelegator = Depends(get_extractor),
    query_engine: QueryEngine = Depends(get_query_engine),
) -> CandidateRetriever:
    return CandidateRetriever(vault, extractor, query_engine)


def get_synthesis_agent(
    retriever: CandidateRetriever = Depends(get_retriever),
    config: AppConfig = Depends(get_config),
) -> SynthesisAgent:
    return SynthesisAgent(retriever, ModelClient.from_config(config), PromptLoader())


__all__ = [
    "get_vault",
    "get_query_engine",
    "get_extractor",
    "get_retriever",
    "get_synthesis_agent",
]
