"""Content records and the collaborators the search layer reads them through."""

from .models import ContentRecord, HierarchicalRecord, RecordId, Stage
from .stage import StageContext
from .store import ContentStore, InMemoryContentStore

__all__ = [
    "ContentRecord",
    "HierarchicalRecord",
    "RecordId",
    "Stage",
    "StageContext",
    "ContentStore",
    "InMemoryContentStore",
]
