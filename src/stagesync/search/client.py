"""Facade over the Elasticsearch client for a single index."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from elasticsearch import ApiError, Elasticsearch, NotFoundError, TransportError, helpers
from elasticsearch.helpers import BulkIndexError

from stagesync.config import SearchSettings

from .documents import Document
from .errors import BulkWriteError, SearchTransportError
from .mapping import MappingDescriptor

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SearchHit:
    """One raw hit returned by the backend.

    Attributes:
        id: Document identifier.
        source: Stored field data.
        score: Relevance score when the query was scored.
        type: Declared document type, when the backend reports one.
    """

    id: str
    source: Dict[str, Any] = field(default_factory=dict)
    score: Optional[float] = None
    type: Optional[str] = None


@dataclass(slots=True)
class SearchResponse:
    """Hits plus the metadata of one search round-trip."""

    hits: List[SearchHit] = field(default_factory=list)
    total: int = 0
    took: int = 0
    aggregations: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Any) -> "SearchResponse":
        """Build a response from the body returned by ``Elasticsearch.search``."""
        body: Mapping[str, Any] = getattr(raw, "body", raw) or {}
        hits_section = body.get("hits") or {}
        total = hits_section.get("total", 0)
        if isinstance(total, Mapping):
            total = total.get("value", 0)
        hits = [
            SearchHit(
                id=str(hit.get("_id", "")),
                source=dict(hit.get("_source") or {}),
                score=hit.get("_score"),
                type=hit.get("_type"),
            )
            for hit in hits_section.get("hits") or []
        ]
        return cls(
            hits=hits,
            total=int(total or 0),
            took=int(body.get("took") or 0),
            aggregations=dict(body.get("aggregations") or {}),
        )


@contextmanager
def _backend_call(action: str) -> Iterator[None]:
    """Translate client exceptions into search layer errors."""
    try:
        yield
    except BulkIndexError as exc:
        raise BulkWriteError(f"{action}: {exc}", errors=exc.errors) from exc
    except (ApiError, TransportError) as exc:
        raise SearchTransportError(f"{action} failed: {exc}") from exc


class SearchClient:
    """Owns the connection to one Elasticsearch index."""

    def __init__(self, client: Elasticsearch, index: str) -> None:
        self._client = client
        self._index = index

    @classmethod
    def from_settings(cls, settings: SearchSettings) -> "SearchClient":
        """Create a client from configuration.

        Args:
            settings: Search section of the loaded configuration.

        Returns:
            SearchClient: Facade bound to ``settings.index``.
        """
        options: Dict[str, Any] = {
            "request_timeout": settings.request_timeout,
            "verify_certs": settings.verify_certs,
        }
        if settings.api_key:
            options["api_key"] = settings.api_key
        return cls(Elasticsearch(settings.hosts, **options), settings.index)

    @property
    def index(self) -> str:
        return self._index

    # ------------------------------------------------------------------ #
    # Index lifecycle                                                    #
    # ------------------------------------------------------------------ #

    def index_exists(self) -> bool:
        with _backend_call(f"checking index {self._index}"):
            return bool(self._client.indices.exists(index=self._index))

    def create_index(self, settings: Mapping[str, Any] | None = None) -> None:
        """Create the index.

        ``settings`` may be a bare settings mapping or a body with
        ``settings`` and ``mappings`` keys.
        """
        settings = dict(settings or {})
        if "settings" in settings or "mappings" in settings:
            index_settings = settings.get("settings")
            mappings = settings.get("mappings")
        else:
            index_settings = settings or None
            mappings = None
        with _backend_call(f"creating index {self._index}"):
            self._client.indices.create(index=self._index, settings=index_settings, mappings=mappings)

    def put_mapping(self, descriptor: MappingDescriptor) -> None:
        with _backend_call(f"sending mapping for {descriptor.type_name}"):
            self._client.indices.put_mapping(index=self._index, **descriptor.to_body())

    def refresh(self) -> None:
        """Make recent writes visible to searches."""
        with _backend_call(f"refreshing index {self._index}"):
            self._client.indices.refresh(index=self._index)

    # ------------------------------------------------------------------ #
    # Writes                                                             #
    # ------------------------------------------------------------------ #

    def add_document(self, document: Document) -> None:
        with _backend_call(f"indexing document {document.id}"):
            self._client.index(index=self._index, id=document.id, document=document.fields)

    def add_documents(self, documents: Sequence[Document]) -> int:
        """Write ``documents`` through the bulk helper and return the success count.

        Every chunk is sent even when an earlier one has rejected items; the
        collected item errors are raised afterwards as :class:`BulkWriteError`.
        """
        if not documents:
            return 0
        actions = [document.to_action(self._index) for document in documents]
        with _backend_call(f"bulk indexing {len(documents)} documents"):
            success, errors = helpers.bulk(self._client, actions, raise_on_error=False)
        if errors:
            raise BulkWriteError(f"{len(errors)} document(s) failed to index.", errors=errors)
        return int(success)

    def delete_document(self, doc_id: str) -> bool:
        """Delete one document; returns ``False`` when it did not exist."""
        with _backend_call(f"deleting document {doc_id}"):
            try:
                self._client.delete(index=self._index, id=doc_id)
            except NotFoundError:
                return False
        return True

    def delete_ids(self, doc_ids: Sequence[str]) -> int:
        """Delete documents by id and refresh before returning.

        Missing documents are ignored; any other per-item failure raises
        :class:`BulkWriteError`.
        """
        if not doc_ids:
            return 0
        actions = [{"_op_type": "delete", "_index": self._index, "_id": doc_id} for doc_id in doc_ids]
        with _backend_call(f"deleting {len(doc_ids)} documents"):
            success, errors = helpers.bulk(
                self._client, actions, raise_on_error=False, refresh=True
            )
        failures = [error for error in errors if _item_status(error) != 404]
        if failures:
            raise BulkWriteError(f"{len(failures)} documents could not be deleted", errors=failures)
        return int(success)

    # ------------------------------------------------------------------ #
    # Reads                                                              #
    # ------------------------------------------------------------------ #

    def search(self, body: Mapping[str, Any]) -> SearchResponse:
        """Execute a request body against the index."""
        params = dict(body)
        if "from" in params:
            params["from_"] = params.pop("from")
        with _backend_call("searching"):
            raw = self._client.search(index=self._index, **params)
        return SearchResponse.from_raw(raw)


def _item_status(error: Any) -> Optional[int]:
    if not isinstance(error, Mapping):
        return None
    for item in error.values():
        if isinstance(item, Mapping) and "status" in item:
            return item["status"]
    return None


__all__ = ["SearchHit", "SearchResponse", "SearchClient"]
