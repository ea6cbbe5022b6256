"""HTTP API route handlers."""

from . import conversation, index, sources, system

__all__ = ["conversation", "index", "sources", "system"]
