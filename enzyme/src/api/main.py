"""FastAPI application main entry point."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from .dependencies import get_vault
from .middleware import register_error_handlers
from .routes import conversation, index, sources, system
from ..services.config import get_config

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler to run startup tasks."""
    config = get_config()
    logging.getLogger().setLevel(config.log_level)
    system.install_memory_handler()

    logger.info("Running startup: indexing vault", extra={"vault_path": str(config.vault_path)})
    try:
        note_count = await asyncio.to_thread(get_vault(config).rebuild_index)
        logger.info("Startup complete", extra={"note_count": note_count})
    except Exception as exc:
        logger.exception("Startup indexing failed: %s", exc)
        logger.error("App starting with an empty index due to indexing error")
    yield


app = FastAPI(
    title="Enzyme Synthesis API",
    description="Extraction, substitution and conversation reconstruction for note synthesis",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "app://obsidian.md"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(sources.router, tags=["sources"])
app.include_router(conversation.router, tags=["conversation"])
app.include_router(index.router, tags=["index"])
app.include_router(system.router, tags=["system"])


__all__ = ["app"]
