"""Exceptions shared across the synthesis services."""

from __future__ import annotations


class EnzymeError(Exception):
    """Base class for errors raised by the synthesis pipeline."""


class NoteNotFoundError(EnzymeError, FileNotFoundError):
    """Raised when an explicitly named note cannot be resolved in the vault."""

    def __init__(self, path: str, message: str | None = None):
        self.path = path
        super().__init__(message or f"File not found: {path}")


__all__ = ["EnzymeError", "NoteNotFoundError"]
