"""Indexing service that keeps the search index in step with content changes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set, Union

from stagesync.config import StageSyncConfig
from stagesync.content import ContentRecord, ContentStore, Stage, StageContext

from .client import SearchClient
from .documents import STAGE_FIELD, Document
from .errors import BulkWriteError, SearchError, SearchTransportError
from .mapping import DocumentMapper
from .results import ResultList, ResultTranslator

LOGGER = logging.getLogger(__name__)

Query = Union[str, Mapping[str, Any], None]

_BODY_KEYS = frozenset(
    {"query", "size", "from", "sort", "aggs", "aggregations", "post_filter", "highlight", "track_total_hits"}
)


@dataclass(slots=True)
class SyncState:
    """Mutable indexing state owned by a single :class:`IndexingService`.

    Attributes:
        connected: Cleared after a transport failure; never set again.
        buffered: Whether documents are being collected for a bulk write.
        buffer: Pending documents keyed by type name.
    """

    connected: bool = True
    buffered: bool = False
    buffer: Dict[str, List[Document]] = field(default_factory=dict)

    def reset_buffer(self) -> None:
        self.buffered = False
        self.buffer = {}


def build_query_body(query: Query) -> Dict[str, Any]:
    """Normalise a query string, clause, or full request body."""
    if query is None:
        return {"query": {"match_all": {}}}
    if isinstance(query, str):
        return {"query": {"query_string": {"query": query}}}
    if _BODY_KEYS.intersection(query):
        return dict(query)
    return {"query": dict(query)}


def restrict_to_stage(body: Dict[str, Any], stage: Stage) -> Dict[str, Any]:
    """Wrap the body's query so only documents indexed into ``stage`` match."""
    restricted = dict(body)
    restricted["query"] = {
        "bool": {
            "must": [body.get("query") or {"match_all": {}}],
            "filter": [{"term": {STAGE_FIELD: Stage(stage).value}}],
        }
    }
    return restricted


class IndexingService:
    """Coordinate the document mapper and search client.

    Single documents are written immediately unless a bulk cycle is active,
    in which case they are buffered per type until :meth:`end_bulk`.
    Transport failures on writes mark the service disconnected and every
    later write becomes a no-op.
    """

    def __init__(
        self,
        client: SearchClient,
        mapper: DocumentMapper,
        store: ContentStore,
        *,
        enabled: bool = True,
        index_settings: Mapping[str, Any] | None = None,
        stage_context: StageContext | None = None,
        state: SyncState | None = None,
    ) -> None:
        self._client = client
        self._mapper = mapper
        self._store = store
        self._enabled = enabled
        self._index_settings = dict(index_settings or {})
        self._stage_context = stage_context or StageContext()
        self._state = state or SyncState()
        self._translator = ResultTranslator(store)
        self._mapped_types: Set[str] = set()

    @classmethod
    def from_config(
        cls,
        config: StageSyncConfig,
        store: ContentStore,
        *,
        client: SearchClient | None = None,
        stage_context: StageContext | None = None,
    ) -> "IndexingService":
        """Build a service from loaded configuration.

        Args:
            config: Effective configuration.
            store: Content store to read records from.
            client: Optional pre-built client; created from settings otherwise.
            stage_context: Optional shared stage context.

        Returns:
            IndexingService: Service wired to the configured index.
        """
        search = config.search
        mapper = DocumentMapper(store, custom_mappings=search.mappings)
        return cls(
            client or SearchClient.from_settings(search),
            mapper,
            store,
            enabled=search.enabled,
            index_settings=search.index_settings,
            stage_context=stage_context,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def connected(self) -> bool:
        return self._state.connected

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def client(self) -> SearchClient:
        return self._client

    @property
    def mapper(self) -> DocumentMapper:
        return self._mapper

    @property
    def store(self) -> ContentStore:
        return self._store

    @property
    def stage_context(self) -> StageContext:
        return self._stage_context

    def indexed_types(self) -> List[str]:
        return self._store.indexed_types()

    # ------------------------------------------------------------------ #
    # Writes                                                             #
    # ------------------------------------------------------------------ #

    def index(self, record: ContentRecord, stage: Stage = Stage.DRAFT) -> None:
        """Create or replace the document for ``record`` in ``stage``."""
        if not self._enabled:
            return
        if not record.can_show_in_search():
            self.remove(record, stage)
            return
        document = self._mapper.build_document(record, stage)
        self.index_document(document, record.type_name())

    def index_document(self, document: Document, type_name: str) -> None:
        if not self._enabled or not self._state.connected:
            return
        if self._state.buffered:
            self._state.buffer.setdefault(type_name, []).append(document)
            return
        try:
            self._client.add_document(document)
            self._client.refresh()
        except SearchTransportError:
            self._state.connected = False
            LOGGER.error("Failed to index %s; disabling further writes", document.id, exc_info=True)

    def start_bulk(self) -> None:
        """Begin buffering documents; calling again keeps the current buffer."""
        self._state.buffered = True

    def end_bulk(self) -> None:
        """Flush buffered documents, one bulk write per type.

        Raises:
            BulkWriteError: If the backend rejected part of a batch.
        """
        try:
            if not self._state.connected:
                return
            for type_name, documents in self._state.buffer.items():
                self._client.add_documents(documents)
                self._client.refresh()
                LOGGER.debug("Flushed %d %s documents", len(documents), type_name)
        except BulkWriteError as exc:
            LOGGER.error("Bulk indexing rejected %d documents: %s", len(exc.errors), exc)
            raise
        except SearchTransportError:
            self._state.connected = False
            LOGGER.error("Bulk indexing failed; disabling further writes", exc_info=True)
        finally:
            self._state.reset_buffer()

    def remove(self, record: ContentRecord, stage: Stage = Stage.DRAFT) -> bool:
        """Delete the document for ``record`` in ``stage``.

        Returns:
            bool: ``True`` when a document was deleted.
        """
        if not self._enabled or not self._state.connected:
            return False
        doc_id = self._mapper.document_id(record, stage)
        try:
            removed = self._client.delete_document(doc_id)
        except SearchError:
            LOGGER.error("Failed to remove %s from the index", doc_id, exc_info=True)
            return False
        if not removed:
            LOGGER.info("Document %s was not in the index", doc_id)
        return removed

    def define_index_and_mappings(self) -> List[str]:
        """Create the index when missing and send every type mapping.

        Returns:
            list[str]: Types whose mapping was sent by this call.
        """
        if not self._client.index_exists():
            LOGGER.info("Creating index %s", self._client.index)
            self._client.create_index(self._index_settings)

        custom = self._mapper.custom_mappings
        sent: List[str] = []
        for type_name in self.indexed_types():
            if type_name in custom:
                continue
            if self._send_mapping(type_name):
                sent.append(type_name)
        for type_name in custom:
            if self._send_mapping(type_name):
                sent.append(type_name)
        return sent

    def _send_mapping(self, type_name: str) -> bool:
        if type_name in self._mapped_types:
            return False
        self._client.put_mapping(self._mapper.build_mapping(type_name))
        self._mapped_types.add(type_name)
        return True

    # ------------------------------------------------------------------ #
    # Reads                                                              #
    # ------------------------------------------------------------------ #

    def search(
        self,
        query: Query = None,
        *,
        stage: Optional[Stage] = None,
        evaluate_permissions: bool = False,
        viewer: Any = None,
    ) -> ResultList:
        """Return a lazily executed result list for ``query``.

        Args:
            query: Query string, query clause, or full request body.
            stage: Restrict matches to documents indexed into this stage.
            evaluate_permissions: Drop results the viewer may not see.
            viewer: Passed to each record's ``can_view``.
        """
        body = build_query_body(query)
        if stage is not None:
            body = restrict_to_stage(body, stage)
        return ResultList(
            self._client,
            body,
            self._translator,
            stage_context=self._stage_context,
            evaluate_permissions=evaluate_permissions,
            viewer=viewer,
        )


__all__ = ["SyncState", "IndexingService", "build_query_body", "restrict_to_stage"]
