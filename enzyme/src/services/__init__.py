"""Service layer for extraction, substitution and conversation handling."""

from .config import AppConfig, get_config, reload_config
from .conversation import get_messages_to_here, parse_block_contents
from .database import DatabaseService, init_database
from .document import TextDocument
from .errors import EnzymeError, NoteNotFoundError
from .execution import ExecutionLock, Notifier, run_locked
from .extractors import ExtractorDelegator
from .indexer import IndexerService, normalize_slug, normalize_tag
from .model_client import ModelClient, ModelClientError
from .prompt_loader import PromptLoader, PromptLoaderError
from .query_engine import QueryEngine, QuerySyntaxError
from .retriever import CandidateRetriever
from .substitution import restore_markers, substitute_block_references
from .synthesis_agent import SynthesisAgent
from .synthesis_container import SynthesisContainer, create_synthesis_container
from .vault import VaultService, sanitize_path, validate_note_path

__all__ = [
    "AppConfig",
    "get_config",
    "reload_config",
    "EnzymeError",
    "NoteNotFoundError",
    "DatabaseService",
    "init_database",
    "IndexerService",
    "normalize_slug",
    "normalize_tag",
    "VaultService",
    "sanitize_path",
    "validate_note_path",
    "QueryEngine",
    "QuerySyntaxError",
    "substitute_block_references",
    "restore_markers",
    "ExtractorDelegator",
    "CandidateRetriever",
    "TextDocument",
    "get_messages_to_here",
    "parse_block_contents",
    "SynthesisContainer",
    "create_synthesis_container",
    "ExecutionLock",
    "Notifier",
    "run_locked",
    "PromptLoader",
    "PromptLoaderError",
    "ModelClient",
    "ModelClientError",
    "SynthesisAgent",
]
