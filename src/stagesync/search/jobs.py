"""Deferred indexing jobs and an in-process queue to run them."""

from __future__ import annotations

import logging
import queue
from dataclasses import dataclass
from typing import Optional, Protocol

from stagesync.content import ContentRecord, ContentStore, RecordId, Stage

from .service import IndexingService

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IndexItemJob:
    """Index one record at a later point in time.

    The job only carries the record's coordinates; the record itself is
    looked up again when the job runs so that the latest saved state is
    indexed.

    Attributes:
        type_name: Type of the record to index.
        entity_id: Identifier of the record.
        stage: Stage to read and index the record in.
    """

    type_name: str
    entity_id: RecordId
    stage: Stage = Stage.DRAFT

    @classmethod
    def for_record(cls, record: ContentRecord, stage: Stage = Stage.DRAFT) -> "IndexItemJob":
        return cls(record.type_name(), record.id, Stage(stage))

    def title(self, store: ContentStore | None = None) -> str:
        """Return a human readable description of the job."""
        label = f"{self.type_name} #{self.entity_id}"
        if store is not None:
            record = store.get_by_id(self.type_name, self.entity_id, self.stage)
            if record is not None:
                label = record.label()
        return f"Search index {label} ({self.stage.value})"

    def process(self, service: IndexingService) -> bool:
        """Run the job.

        Returns:
            bool: ``True`` when the record was found and handed to the service.
        """
        record = service.store.get_by_id(self.type_name, self.entity_id, self.stage)
        if record is None:
            LOGGER.info("Skipping %s: record no longer exists", self.title())
            return False
        service.index(record, self.stage)
        return True


class JobQueue(Protocol):
    """Anything that accepts indexing jobs for later execution."""

    def enqueue(self, job: IndexItemJob) -> None: ...


class LocalJobQueue:
    """First-in first-out job queue processed in the current process."""

    def __init__(self) -> None:
        self._jobs: "queue.Queue[IndexItemJob]" = queue.Queue()

    @property
    def pending(self) -> int:
        return self._jobs.qsize()

    def enqueue(self, job: IndexItemJob) -> None:
        LOGGER.debug("Queued %s", job.title())
        self._jobs.put(job)

    def drain(self, service: IndexingService) -> int:
        """Process every queued job and return how many were run."""
        processed = 0
        while True:
            try:
                job = self._jobs.get_nowait()
            except queue.Empty:
                return processed
            try:
                job.process(service)
            finally:
                self._jobs.task_done()
            processed += 1


def dispatch_index(
    service: IndexingService,
    record: ContentRecord,
    stage: Stage = Stage.DRAFT,
    job_queue: Optional[JobQueue] = None,
) -> None:
    """Index ``record`` through ``job_queue`` when given, otherwise right away."""
    if job_queue is None:
        service.index(record, stage)
        return
    job_queue.enqueue(IndexItemJob.for_record(record, stage))


__all__ = ["IndexItemJob", "JobQueue", "LocalJobQueue", "dispatch_index"]
