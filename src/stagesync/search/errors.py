"""Search layer errors."""

from __future__ import annotations

from typing import Any, Sequence


class SearchError(Exception):
    """Base exception for search backend operations."""


class SearchTransportError(SearchError):
    """Raised when the backend cannot be reached or rejects a request."""


class BulkWriteError(SearchError):
    """Raised when some documents of a bulk write were rejected."""

    def __init__(self, message: str, errors: Sequence[Any] = ()) -> None:
        super().__init__(message)
        self.errors = list(errors)


class ReconciliationError(SearchError):
    """Raised when a full reindex could not remove stale documents."""

    def __init__(self, message: str, failed_types: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.failed_types = list(failed_types)


__all__ = ["SearchError", "SearchTransportError", "BulkWriteError", "ReconciliationError"]
