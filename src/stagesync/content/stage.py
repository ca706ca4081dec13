"""Tracking of the stage that the current request or process reads from."""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

from .models import Stage


class StageContext:
    """Holds the active reading stage for the current execution context."""

    def __init__(self, default: Optional[Stage] = None) -> None:
        self._current: ContextVar[Optional[Stage]] = ContextVar("stagesync_stage", default=default)

    def current(self) -> Optional[Stage]:
        return self._current.get()

    def set(self, stage: Optional[Stage]) -> None:
        self._current.set(stage)

    @contextmanager
    def reading(self, stage: Optional[Stage]) -> Iterator[None]:
        """Temporarily switch the active stage."""
        token = self._current.set(stage)
        try:
            yield
        finally:
            self._current.reset(token)


__all__ = ["StageContext"]
