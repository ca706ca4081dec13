"""Search indexing and retrieval for staged content."""

from .client import SearchClient, SearchHit, SearchResponse
from .documents import Document, DocumentKey, document_id, parse_document_id
from .errors import BulkWriteError, ReconciliationError, SearchError, SearchTransportError
from .jobs import IndexItemJob, JobQueue, LocalJobQueue, dispatch_index
from .lifecycle import SearchableLifecycle
from .mapping import DocumentMapper, MappingDescriptor
from .reconcile import Reconciler, ReindexSummary, TypeReindexResult
from .results import (
    PaginatedResults,
    ResolvedEntity,
    ResultList,
    ResultTranslator,
    SearchResult,
    SyntheticRecord,
    ViewableResult,
)
from .service import IndexingService, SyncState

__all__ = [
    "SearchClient",
    "SearchHit",
    "SearchResponse",
    "Document",
    "DocumentKey",
    "document_id",
    "parse_document_id",
    "SearchError",
    "SearchTransportError",
    "BulkWriteError",
    "ReconciliationError",
    "IndexItemJob",
    "JobQueue",
    "LocalJobQueue",
    "dispatch_index",
    "SearchableLifecycle",
    "DocumentMapper",
    "MappingDescriptor",
    "Reconciler",
    "ReindexSummary",
    "TypeReindexResult",
    "PaginatedResults",
    "ResolvedEntity",
    "ResultList",
    "ResultTranslator",
    "SearchResult",
    "SyntheticRecord",
    "ViewableResult",
    "IndexingService",
    "SyncState",
]
