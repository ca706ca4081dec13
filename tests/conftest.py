"""Shared fixtures: sample record types, an in-memory store, and a fake index."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pytest
from pydantic import Field

from stagesync.content import ContentRecord, HierarchicalRecord, InMemoryContentStore, StageContext
from stagesync.search import (
    BulkWriteError,
    Document,
    DocumentMapper,
    IndexingService,
    SearchHit,
    SearchResponse,
    SearchTransportError,
)
from stagesync.search.mapping import MappingDescriptor

# ---------------------------------------------------------------------- #
# Sample content types                                                   #
# ---------------------------------------------------------------------- #


class Article(ContentRecord):
    versioned = True
    search_fields = ("title", "content", "rating", "published_on")

    content: str = Field(default="", alias="Content")
    rating: int = Field(default=0, alias="Rating")
    published_on: Optional[date] = Field(default=None, alias="PublishedOn")


class Page(HierarchicalRecord):
    versioned = True
    search_fields = ("title", "content", "show_in_search")

    content: str = Field(default="", alias="Content")
    show_in_search: bool = Field(default=True, alias="ShowInSearch")


class NewsPage(Page):
    search_fields = Page.search_fields + ("summary",)

    summary: str = Field(default="", alias="Summary")


class Note(ContentRecord):
    search_fields = ("title", "body")

    body: str = Field(default="", alias="Body")


class Memo(ContentRecord):
    search_fields = ("title", "owner")

    owner: str = Field(default="", alias="Owner")

    def can_view(self, viewer: Any = None) -> bool:
        return viewer == self.owner


SAMPLE_TYPES = (Article, Page, NewsPage, Note, Memo)

FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock handed to the document mapper."""

    def __init__(self, current: datetime = FIXED_NOW) -> None:
        self.current = current

    def __call__(self) -> datetime:
        return self.current


# ---------------------------------------------------------------------- #
# Fake search backend                                                    #
# ---------------------------------------------------------------------- #


def _values(source: Mapping[str, Any], name: str) -> List[Any]:
    value = source.get(name)
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _as_list(clauses: Any) -> List[Mapping[str, Any]]:
    if clauses is None:
        return []
    if isinstance(clauses, list):
        return clauses
    return [clauses]


def matches(doc_id: str, source: Mapping[str, Any], query: Mapping[str, Any]) -> bool:
    """Evaluate the subset of the query DSL the package emits."""
    if not query or "match_all" in query:
        return True
    if "bool" in query:
        spec = query["bool"]
        required = _as_list(spec.get("must")) + _as_list(spec.get("filter"))
        if not all(matches(doc_id, source, clause) for clause in required):
            return False
        if any(matches(doc_id, source, clause) for clause in _as_list(spec.get("must_not"))):
            return False
        should = _as_list(spec.get("should"))
        return not should or any(matches(doc_id, source, clause) for clause in should)
    if "term" in query:
        ((name, expected),) = query["term"].items()
        if isinstance(expected, Mapping):
            expected = expected.get("value")
        return str(expected) in {str(value) for value in _values(source, name)}
    if "terms" in query:
        ((name, expected),) = query["terms"].items()
        wanted = {str(value) for value in expected}
        return bool(wanted & {str(value) for value in _values(source, name)})
    if "ids" in query:
        return doc_id in query["ids"].get("values", [])
    if "range" in query:
        ((name, bounds),) = query["range"].items()
        values = [str(value) for value in _values(source, name)]
        if not values:
            return False
        value = values[0]
        checks = {
            "lt": lambda bound: value < bound,
            "lte": lambda bound: value <= bound,
            "gt": lambda bound: value > bound,
            "gte": lambda bound: value >= bound,
        }
        return all(check(str(bounds[op])) for op, check in checks.items() if op in bounds)
    if "match" in query:
        ((name, text),) = query["match"].items()
        if isinstance(text, Mapping):
            text = text.get("query", "")
        needle = str(text).lower()
        return any(needle in str(value).lower() for value in _values(source, name))
    if "query_string" in query:
        text = str(query["query_string"].get("query", "")).strip().lower()
        if text in {"", "*"}:
            return True
        haystack = " ".join(str(value) for value in source.values()).lower()
        return any(word in haystack for word in text.split())
    raise AssertionError(f"Unsupported query clause: {query}")


class FakeSearchClient:
    """In-memory stand-in for :class:`stagesync.search.SearchClient`."""

    def __init__(self, index: str = "content") -> None:
        self._index = index
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.exists = False
        self.created_with: Optional[Dict[str, Any]] = None
        self.mappings: List[MappingDescriptor] = []
        self.bulk_batches: List[List[str]] = []
        self.searches: List[Dict[str, Any]] = []
        self.refreshes = 0
        self.fail_writes = False
        self.reject_ids: set[str] = set()
        self.ignore_deletes = False
        self.fail_searches = False

    @property
    def index(self) -> str:
        return self._index

    def index_exists(self) -> bool:
        return self.exists

    def create_index(self, settings: Mapping[str, Any] | None = None) -> None:
        self.exists = True
        self.created_with = dict(settings or {})

    def put_mapping(self, descriptor: MappingDescriptor) -> None:
        self.mappings.append(descriptor)

    def refresh(self) -> None:
        self.refreshes += 1

    def add_document(self, document: Document) -> None:
        if self.fail_writes:
            raise SearchTransportError("indexing document failed: connection refused")
        self.documents[document.id] = dict(document.fields)

    def add_documents(self, documents: Sequence[Document]) -> int:
        if self.fail_writes:
            raise SearchTransportError("bulk indexing failed: connection refused")
        self.bulk_batches.append([document.id for document in documents])
        rejected = []
        for document in documents:
            if document.id in self.reject_ids:
                rejected.append({"index": {"_id": document.id, "status": 400}})
                continue
            self.documents[document.id] = dict(document.fields)
        if rejected:
            raise BulkWriteError(f"{len(rejected)} document(s) failed to index.", errors=rejected)
        return len(documents)

    def delete_document(self, doc_id: str) -> bool:
        if self.fail_writes:
            raise SearchTransportError("deleting document failed")
        return self.documents.pop(doc_id, None) is not None

    def delete_ids(self, doc_ids: Sequence[str]) -> int:
        if self.ignore_deletes:
            return 0
        return sum(1 for doc_id in doc_ids if self.documents.pop(doc_id, None) is not None)

    def search(self, body: Mapping[str, Any]) -> SearchResponse:
        if self.fail_searches:
            raise SearchTransportError("searching failed: connection refused")
        self.searches.append(dict(body))
        query = body.get("query") or {"match_all": {}}
        found = [
            (doc_id, source)
            for doc_id, source in self.documents.items()
            if matches(doc_id, source, query)
        ]
        start = int(body.get("from", 0))
        size = int(body.get("size", 10))
        hits = [
            SearchHit(id=doc_id, source=dict(source), score=1.0)
            for doc_id, source in found[start : start + size]
        ]
        return SearchResponse(hits=hits, total=len(found), took=3, aggregations={})


# ---------------------------------------------------------------------- #
# Fixtures                                                               #
# ---------------------------------------------------------------------- #


@pytest.fixture()
def store() -> InMemoryContentStore:
    return InMemoryContentStore(SAMPLE_TYPES)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def fake_client() -> FakeSearchClient:
    return FakeSearchClient()


@pytest.fixture()
def mapper(store: InMemoryContentStore, clock: FakeClock) -> DocumentMapper:
    return DocumentMapper(store, clock=clock)


@pytest.fixture()
def stage_context() -> StageContext:
    return StageContext()


@pytest.fixture()
def service(
    fake_client: FakeSearchClient,
    mapper: DocumentMapper,
    store: InMemoryContentStore,
    stage_context: StageContext,
) -> IndexingService:
    return IndexingService(fake_client, mapper, store, stage_context=stage_context)  # type: ignore[arg-type]
