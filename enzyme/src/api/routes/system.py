"""System routes for health and recent logs."""

import logging
from collections import deque
from datetime import datetime
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ...services.config import AppConfig, get_config

router = APIRouter()

# Global in-memory log buffer
LOG_BUFFER: deque = deque(maxlen=100)

_RECORD_FIELDS = {
    'args', 'asctime', 'created', 'exc_info', 'exc_text', 'filename',
    'funcName', 'levelname', 'levelno', 'lineno', 'module',
    'msecs', 'message', 'msg', 'name', 'pathname', 'process',
    'processName', 'relativeCreated', 'stack_info', 'thread', 'threadName', 'taskName',
}


class LogEntry(BaseModel):
    timestamp: str
    level: str
    message: str
    extra: Dict[str, Any]


class MemoryLogHandler(logging.Handler):
    """Captures log records, with their `extra` fields, into memory."""

    def emit(self, record):
        try:
            extra = {k: v for k, v in record.__dict__.items() if k not in _RECORD_FIELDS}
            LOG_BUFFER.append(
                {
                    "timestamp": datetime.fromtimestamp(record.created).isoformat(),
                    "level": record.levelname,
                    "message": self.format(record),
                    "extra": {k: v if isinstance(v, (str, int, float, bool)) or v is None else repr(v) for k, v in extra.items()},
                }
            )
        except Exception:
            self.handleError(record)


memory_handler = MemoryLogHandler()
memory_handler.setFormatter(logging.Formatter('%(message)s'))


def install_memory_handler() -> None:
    root = logging.getLogger()
    if memory_handler not in root.handlers:
        root.addHandler(memory_handler)


@router.get("/api/health")
async def health(config: AppConfig = Depends(get_config)):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "vault_path": str(config.vault_path),
        "model_configured": config.model_configured,
    }


@router.get("/api/system/logs", response_model=List[LogEntry])
async def get_logs():
    """Retrieve recent log records."""
    return list(LOG_BUFFER)
