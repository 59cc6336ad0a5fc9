# src/pqfill/core/errors.py
from __future__ import annotations

from typing import Dict, Optional


class PqFillError(Exception):
    """Base class for every error raised by pqfill."""


class SchemaError(PqFillError, ValueError):
    """Malformed or illegal layout. ``path`` names the offending field."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path
        self.message = message


class FillTypeError(PqFillError, TypeError):
    """A filled value does not match the declared type at ``path``."""

    def __init__(self, message: str, *, path: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message


class AlignmentError(PqFillError, RuntimeError):
    """Addressable buffers disagree on how much data the current row holds.

    ``counts`` maps each offending dotted path to the count observed for it.
    """

    def __init__(self, message: str, *, counts: Optional[Dict[str, int]] = None) -> None:
        super().__init__(message)
        self.counts = dict(counts or {})


class LifecycleError(PqFillError, RuntimeError):
    """An operation was called in a state that does not allow it."""

    def __init__(self, message: str, *, state: Optional[str] = None) -> None:
        super().__init__(f"{message} (state={state})" if state else message)
        self.state = state


class SinkError(PqFillError, RuntimeError):
    """The Parquet sink failed to write or verify a file."""
