"""Translate raw search hits back into content records."""

from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Protocol,
    Union,
    runtime_checkable,
)

from stagesync.content import ContentRecord, ContentStore, Stage, StageContext

from .client import SearchClient, SearchHit, SearchResponse
from .documents import CLASS_NAME_FIELD, DocumentKey, parse_document_id

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class ViewableResult(Protocol):
    """Read-only capabilities shared by every translated search result."""

    document_id: str
    stage: Optional[Stage]
    score: Optional[float]

    @property
    def type_name(self) -> str: ...

    @property
    def id(self) -> Any: ...

    def get(self, name: str, default: Any = None) -> Any: ...

    def to_map(self) -> Dict[str, Any]: ...


@dataclass(slots=True)
class ResolvedEntity:
    """A hit resolved to a live content record."""

    entity: ContentRecord
    document_id: str
    stage: Optional[Stage] = None
    score: Optional[float] = None

    @property
    def type_name(self) -> str:
        return self.entity.type_name()

    @property
    def id(self) -> Any:
        return self.entity.id

    def get(self, name: str, default: Any = None) -> Any:
        return self.entity.get_field(name, default)

    def to_map(self) -> Dict[str, Any]:
        values = self.entity.document_values()
        if self.score is not None:
            values["SearchScore"] = self.score
        return values

    def can_view(self, viewer: Any = None) -> bool:
        return self.entity.can_view(viewer)

    def can_show_in_search(self) -> bool:
        return self.entity.can_show_in_search()


@dataclass(slots=True)
class SyntheticRecord:
    """Read-only record built from stored fields when the type cannot be resolved."""

    type_name: str
    id: Any
    document_id: str
    stage: Optional[Stage] = None
    data: Dict[str, Any] = field(default_factory=dict)
    score: Optional[float] = None

    def get(self, name: str, default: Any = None) -> Any:
        return self.data.get(name, default)

    def to_map(self) -> Dict[str, Any]:
        values = dict(self.data)
        if self.score is not None:
            values["SearchScore"] = self.score
        return values


SearchResult = Union[ResolvedEntity, SyntheticRecord]


class ResultTranslator:
    """Convert backend hits into an ordered list of viewable results."""

    def __init__(self, store: ContentStore) -> None:
        self._store = store

    def translate(
        self,
        response: SearchResponse,
        stage_filter: Optional[Stage] = None,
        evaluate_permissions: bool = False,
        viewer: Any = None,
    ) -> List[SearchResult]:
        """Return results for ``response`` in backend order.

        Hits that cannot be decoded, belong to another stage, no longer
        resolve, or fail the visibility checks are skipped.
        """
        results: List[SearchResult] = []
        for hit in response.hits:
            key = self.decode(hit, stage_filter)
            if key is None:
                continue

            if stage_filter is not None and key.stage != stage_filter:
                LOGGER.debug("Skipping %s: stage %s does not match %s", hit.id, key.stage, stage_filter)
                continue

            result = self.resolve(hit, key)
            if result is None:
                LOGGER.warning("Document %s is no longer in the content store", hit.id)
                continue

            if hit.score is not None:
                result.score = hit.score

            if evaluate_permissions:
                can_view = getattr(result, "can_view", None)
                if can_view is not None and not can_view(viewer):
                    continue

            can_show = getattr(result, "can_show_in_search", None)
            if can_show is not None and not can_show():
                continue

            results.append(result)
        return results

    def decode(self, hit: SearchHit, active_stage: Optional[Stage]) -> Optional[DocumentKey]:
        """Decode ``hit``'s id, defaulting the type and stage where missing."""
        key = parse_document_id(hit.id)
        if key.stage_encoded and key.stage is None:
            LOGGER.error("Invalid stage in document id %s", hit.id)
            return None

        type_name = key.type_name
        if not type_name:
            type_name = str(hit.source.get(CLASS_NAME_FIELD) or hit.type or "")
        stage = key.stage if key.stage_encoded else active_stage

        if not type_name or not key.entity_id:
            LOGGER.error("Invalid document id %s", hit.id)
            return None
        return DocumentKey(type_name, key.entity_id, stage, key.stage_encoded)

    def resolve(self, hit: SearchHit, key: DocumentKey) -> Optional[SearchResult]:
        """Look up the live record, or synthesize one for unknown types."""
        if self._store.resolve_type(key.type_name) is None:
            return SyntheticRecord(
                type_name=key.type_name,
                id=key.entity_id,
                document_id=hit.id,
                stage=key.stage,
                data=dict(hit.source),
            )

        record = self._store.get_by_id(key.type_name, key.entity_id, key.stage)
        if record is None:
            return None
        return ResolvedEntity(record, hit.id, key.stage)


class PaginatedResults:
    """Lazily evaluated page of search results."""

    def __init__(
        self,
        source: Callable[[], List[SearchResult]],
        *,
        page_length: int,
        page_start: int,
        total_items: int,
    ) -> None:
        self._source = source
        self._items: Optional[List[SearchResult]] = None
        self.page_length = page_length
        self.page_start = page_start
        self.total_items = total_items

    @property
    def items(self) -> List[SearchResult]:
        if self._items is None:
            self._items = list(self._source())
        return self._items

    @property
    def current_page(self) -> int:
        if not self.page_length:
            return 1
        return self.page_start // self.page_length + 1

    @property
    def total_pages(self) -> int:
        if not self.page_length:
            return 1
        return max(1, math.ceil(self.total_items / self.page_length))

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.current_page > 1

    def __iter__(self) -> Iterator[SearchResult]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


class ResultList:
    """Search results for one query; hits are fetched and translated once."""

    def __init__(
        self,
        client: SearchClient,
        body: Mapping[str, Any],
        translator: ResultTranslator,
        *,
        stage_context: Optional[StageContext] = None,
        evaluate_permissions: bool = False,
        viewer: Any = None,
    ) -> None:
        self._client = client
        self._body: Dict[str, Any] = copy.deepcopy(dict(body))
        self._translator = translator
        self._stage_context = stage_context
        self._evaluate_permissions = evaluate_permissions
        self._viewer = viewer
        self._response: Optional[SearchResponse] = None
        self._results: Optional[List[SearchResult]] = None

    @property
    def body(self) -> Dict[str, Any]:
        return copy.deepcopy(self._body)

    @property
    def response(self) -> SearchResponse:
        if self._response is None:
            self._response = self._client.search(self._body)
        return self._response

    @property
    def total_results(self) -> int:
        return self.response.total

    @property
    def time_taken(self) -> int:
        return self.response.took

    @property
    def aggregations(self) -> Dict[str, Any]:
        return self.response.aggregations

    def _clone(self, **overrides: Any) -> "ResultList":
        options = {
            "stage_context": self._stage_context,
            "evaluate_permissions": self._evaluate_permissions,
            "viewer": self._viewer,
        }
        options.update(overrides)
        return ResultList(self._client, self._body, self._translator, **options)

    def limit(self, size: int, offset: int = 0) -> "ResultList":
        """Return a copy of this list restricted to ``size`` hits from ``offset``."""
        clone = self._clone()
        clone._body["size"] = size
        clone._body["from"] = offset
        return clone

    def with_permissions(self, viewer: Any = None) -> "ResultList":
        """Return a copy that drops results ``viewer`` cannot see."""
        return self._clone(evaluate_permissions=True, viewer=viewer)

    def to_list(self) -> List[SearchResult]:
        if self._results is None:
            stage = self._stage_context.current() if self._stage_context else None
            self._results = self._translator.translate(
                self.response,
                stage_filter=stage,
                evaluate_permissions=self._evaluate_permissions,
                viewer=self._viewer,
            )
        return list(self._results)

    def paginate(self, limit: int = 0, start: int = 0) -> PaginatedResults:
        """Return the page rendered for a result screen.

        The items are the translated hits of this query as-is; the query
        itself decides which slice was fetched.
        """
        return PaginatedResults(
            self.to_list,
            page_length=limit,
            page_start=start,
            total_items=self.total_results,
        )

    def column(self, name: str = "ID") -> List[Any]:
        """Return one field from each result; ``ID`` yields raw document ids."""
        if name == "ID":
            return [hit.id for hit in self.response.hits]
        return [result.get(name) for result in self.to_list()]

    def map(self, key: str = "ID", title: str = "Title") -> Dict[Any, Any]:
        return {result.get(key): result.get(title) for result in self.to_list()}

    def first(self) -> Optional[SearchResult]:
        results = self.to_list()
        return results[0] if results else None

    def last(self) -> Optional[SearchResult]:
        results = self.to_list()
        return results[-1] if results else None

    def to_nested_list(self) -> List[Dict[str, Any]]:
        return [result.to_map() for result in self.to_list()]

    def __iter__(self) -> Iterator[SearchResult]:
        return iter(self.to_list())

    def __len__(self) -> int:
        return len(self.to_list())


__all__ = [
    "ViewableResult",
    "ResolvedEntity",
    "SyntheticRecord",
    "SearchResult",
    "ResultTranslator",
    "PaginatedResults",
    "ResultList",
]
