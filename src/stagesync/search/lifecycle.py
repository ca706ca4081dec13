"""Hooks that keep the index in step with record writes and publishing."""

from __future__ import annotations

from stagesync.content import ContentRecord, Stage, StageContext

from .jobs import JobQueue, dispatch_index
from .service import IndexingService


class SearchableLifecycle:
    """Translate record lifecycle events into index writes.

    Args:
        service: Indexing service to write through.
        stage_context: Supplies the stage that writes and deletes apply to;
            defaults to the service's context.
        queue: Optional job queue for deferring index writes.
    """

    def __init__(
        self,
        service: IndexingService,
        *,
        stage_context: StageContext | None = None,
        queue: JobQueue | None = None,
    ) -> None:
        self._service = service
        self._stage_context = stage_context or service.stage_context
        self._queue = queue

    def _current_stage(self) -> Stage:
        return self._stage_context.current() or Stage.DRAFT

    def after_write(self, record: ContentRecord) -> None:
        if not self._service.enabled:
            return
        dispatch_index(self._service, record, self._current_stage(), self._queue)

    def after_delete(self, record: ContentRecord) -> None:
        if not self._service.enabled:
            return
        self._service.remove(record, self._current_stage())

    def after_publish(self, record: ContentRecord) -> None:
        if not self._service.enabled:
            return
        dispatch_index(self._service, record, Stage.PUBLISHED, self._queue)

    def after_unpublish(self, record: ContentRecord) -> None:
        """Drop the published document and refresh the draft one."""
        if not self._service.enabled:
            return
        self._service.remove(record, Stage.PUBLISHED)
        self._service.index(record, Stage.DRAFT)


__all__ = ["SearchableLifecycle"]
