"""Full and targeted reindexing of content records."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from stagesync.config import ReindexSettings
from stagesync.content import ContentRecord, Stage

from .documents import BACKEND_DATE_FORMAT, CLASS_NAME_FIELD, LAST_INDEXED_FIELD
from .errors import BulkWriteError, ReconciliationError, SearchError
from .service import IndexingService

LOGGER = logging.getLogger(__name__)

ProgressSink = Callable[[str], None]


def _silent(_: str) -> None:
    return None


@dataclass(slots=True)
class TypeReindexResult:
    """Outcome of reconciling one type.

    Attributes:
        type_name: Reconciled type.
        started_at: ``LastIndexed`` cut-off used by the staleness sweep.
        indexed: Records handed to the indexing service.
        removed: Stale documents deleted by the sweep.
        sweep_passes: Number of delete batches issued.
        bulk_failures: Bulk cycles the backend partially rejected.
        error: Sweep failure message, if any.
    """

    type_name: str
    started_at: str
    indexed: int = 0
    removed: int = 0
    sweep_passes: int = 0
    bulk_failures: int = 0
    error: Optional[str] = None


@dataclass(slots=True)
class ReindexSummary:
    """Aggregate outcome of :meth:`Reconciler.reindex_all`."""

    types: List[TypeReindexResult] = field(default_factory=list)

    @property
    def failed(self) -> List[TypeReindexResult]:
        return [result for result in self.types if result.error]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "types": [asdict(result) for result in self.types],
            "counts": {
                "types": len(self.types),
                "indexed": sum(result.indexed for result in self.types),
                "removed": sum(result.removed for result in self.types),
                "failed": len(self.failed),
            },
        }


class Reconciler:
    """Rebuild every document of every indexed type and drop the leftovers.

    Each type is reindexed page by page in bulk cycles, then documents of that
    type whose ``LastIndexed`` predates the start of its pass are deleted.
    Interrupted runs can simply be restarted: document ids are deterministic
    and the sweep only trusts the cut-off of the current pass.
    """

    def __init__(
        self,
        service: IndexingService,
        *,
        page_size: int = 1000,
        sweep_batch_size: int = 1000,
        max_sweep_iterations: int = 100,
    ) -> None:
        self._service = service
        self._page_size = page_size
        self._sweep_batch_size = sweep_batch_size
        self._max_sweep_iterations = max_sweep_iterations

    @classmethod
    def from_settings(cls, service: IndexingService, settings: ReindexSettings) -> "Reconciler":
        return cls(
            service,
            page_size=settings.page_size,
            sweep_batch_size=settings.sweep_batch_size,
            max_sweep_iterations=settings.max_sweep_iterations,
        )

    def reindex_all(self, progress: ProgressSink | None = None) -> ReindexSummary:
        """Reconcile every indexed type.

        Args:
            progress: Receives one line per type, record, and sweep pass.

        Returns:
            ReindexSummary: Per-type counts.

        Raises:
            ReconciliationError: If the sweep failed for any type; the other
                types are still reconciled first.
        """
        emit = progress or _silent
        summary = ReindexSummary()
        if not self._service.enabled:
            emit("Search indexing is disabled; nothing to reindex")
            return summary

        for type_name in self._service.indexed_types():
            summary.types.append(self.reindex_type(type_name, emit))

        failed = [result.type_name for result in summary.failed]
        if failed:
            raise ReconciliationError(
                f"Stale documents could not be removed for: {', '.join(failed)}",
                failed_types=failed,
            )
        return summary

    def reindex_type(self, type_name: str, progress: ProgressSink | None = None) -> TypeReindexResult:
        """Reindex one type and sweep its stale documents."""
        emit = progress or _silent
        store = self._service.store
        started_at = self._service.mapper.now()
        result = TypeReindexResult(type_name=type_name, started_at=started_at)
        emit(f"Indexing items of type {type_name}")

        versioned = store.is_versioned(type_name)
        total = store.count(type_name, Stage.DRAFT)
        if versioned:
            total = max(total, store.count(type_name, Stage.PUBLISHED))

        for offset in range(0, total, self._page_size):
            self._service.start_bulk()
            try:
                for record in store.get_page(type_name, Stage.DRAFT, offset, self._page_size):
                    emit(f"Indexing {record.label()}")
                    self._service.index(record, Stage.DRAFT)
                    result.indexed += 1
                if versioned:
                    for record in store.get_page(type_name, Stage.PUBLISHED, offset, self._page_size):
                        emit(f"Indexing Published record {record.label()}")
                        self._service.index(record, Stage.PUBLISHED)
                        result.indexed += 1
            finally:
                try:
                    self._service.end_bulk()
                except BulkWriteError as exc:
                    result.bulk_failures += 1
                    emit(f"Bulk write for {type_name} at offset {offset} was partially rejected: {exc}")

        if not self._service.connected:
            result.error = "search backend disconnected during indexing"
            emit(f"Skipping removal of obsolete documents of type {type_name}: backend disconnected")
            return result

        emit(f"Removing obsolete documents of type {type_name}")
        try:
            result.removed, result.sweep_passes = self.sweep_stale(type_name, started_at, emit)
        except SearchError as exc:
            result.error = str(exc)
            LOGGER.error("Removing obsolete %s documents failed", type_name, exc_info=True)
            emit(f"Removing obsolete documents of type {type_name} failed: {exc}")
        return result

    def stale_query(self, type_name: str, started_at: str) -> Dict[str, Any]:
        """Return the query matching ``type_name`` documents indexed before ``started_at``."""
        return {
            "bool": {
                "must": [
                    {
                        "range": {
                            LAST_INDEXED_FIELD: {"lt": started_at, "format": BACKEND_DATE_FORMAT}
                        }
                    },
                    {"term": {CLASS_NAME_FIELD: type_name}},
                ]
            }
        }

    def sweep_stale(
        self, type_name: str, started_at: str, progress: ProgressSink | None = None
    ) -> Tuple[int, int]:
        """Delete stale documents batch by batch until none match.

        Deletions are refreshed before the next query, so each pass sees only
        what is left.

        Returns:
            tuple[int, int]: Documents removed and delete passes issued.

        Raises:
            ReconciliationError: If documents still match after the
                configured number of passes.
        """
        emit = progress or _silent
        client = self._service.client
        body = {"query": self.stale_query(type_name, started_at), "size": self._sweep_batch_size}
        removed = 0
        passes = 0
        while True:
            stale_ids = [hit.id for hit in client.search(body).hits]
            if not stale_ids:
                return removed, passes
            if passes >= self._max_sweep_iterations:
                raise ReconciliationError(
                    f"{type_name}: stale documents remain after {passes} removal passes",
                    failed_types=[type_name],
                )
            client.delete_ids(stale_ids)
            passes += 1
            removed += len(stale_ids)
            emit(f"Removed {len(stale_ids)} obsolete documents of type {type_name}")

    # ------------------------------------------------------------------ #
    # Targeted reindexing                                                #
    # ------------------------------------------------------------------ #

    def reindex_items(
        self,
        ids: Iterable[Any],
        base_type: str,
        *,
        recurse: bool = False,
        progress: ProgressSink | None = None,
    ) -> int:
        """Reindex specific records in every stage, optionally with their children.

        Args:
            ids: Record ids; anything that is not a positive integer is skipped.
            base_type: Type to look the ids up through.
            recurse: Whether to reindex descendants as well.
            progress: Receives one line per reindexed record.

        Returns:
            int: Number of index calls issued.
        """
        emit = progress or _silent
        store = self._service.store
        stages = [Stage.DRAFT]
        if store.is_versioned(base_type):
            stages.append(Stage.PUBLISHED)
        count = 0
        for raw_id in ids:
            record_id = _positive_int(raw_id)
            if record_id is None:
                continue
            for stage in stages:
                record = store.get_by_id(base_type, record_id, stage)
                if record is not None:
                    count += self._reindex_tree(record, base_type, stage, recurse, emit, set())
        return count

    def _reindex_tree(
        self,
        record: ContentRecord,
        base_type: str,
        stage: Stage,
        recurse: bool,
        emit: ProgressSink,
        seen: Set[str],
    ) -> int:
        key = str(record.id)
        if key in seen:
            return 0
        seen.add(key)
        emit(f"Reindex {record.label()}")
        self._service.index(record, stage)
        count = 1
        if recurse:
            for child in self._service.store.children_of(base_type, record.id, stage):
                count += self._reindex_tree(child, base_type, stage, recurse, emit, seen)
        return count


def _positive_int(value: Any) -> Optional[int]:
    try:
        number = int(str(value).strip())
    except ValueError:
        return None
    return number if number > 0 else None


__all__ = ["ProgressSink", "TypeReindexResult", "ReindexSummary", "Reconciler"]
