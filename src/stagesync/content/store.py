"""Content store contract and an in-memory implementation."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Protocol, Type

from .models import ContentRecord, RecordId, Stage


class ContentStore(Protocol):
    """Read access to content records and their type registry."""

    def indexed_types(self) -> List[str]:
        """Return type names that participate in search indexing."""
        ...

    def resolve_type(self, type_name: str) -> Optional[Type[ContentRecord]]:
        """Return the record class for ``type_name`` or ``None`` when unknown."""
        ...

    def is_versioned(self, type_name: str) -> bool: ...

    def ancestry(self, type_name: str) -> List[str]:
        """Return known type names from most general to ``type_name``."""
        ...

    def get_by_id(
        self, type_name: str, record_id: RecordId, stage: Optional[Stage] = None
    ) -> Optional[ContentRecord]: ...

    def get_page(
        self, type_name: str, stage: Stage, offset: int, limit: int
    ) -> List[ContentRecord]: ...

    def count(self, type_name: str, stage: Stage) -> int: ...

    def parent_of(self, record: ContentRecord, stage: Optional[Stage] = None) -> Optional[ContentRecord]: ...

    def children_of(
        self, type_name: str, parent_id: RecordId, stage: Optional[Stage] = None
    ) -> List[ContentRecord]: ...


class InMemoryContentStore:
    """Dictionary-backed content store with draft and published tables.

    Records are kept per root type so that a lookup through a base type finds
    subclass instances, mirroring how a relational store resolves ids through
    a shared base table. Unversioned types live in a single table and ignore
    the requested stage.
    """

    def __init__(self, types: Iterable[Type[ContentRecord]] = ()) -> None:
        self._types: Dict[str, Type[ContentRecord]] = {}
        self._tables: Dict[Stage, Dict[str, Dict[str, ContentRecord]]] = {
            Stage.DRAFT: {},
            Stage.PUBLISHED: {},
        }
        for record_type in types:
            self.register(record_type)

    # ------------------------------------------------------------------ #
    # Registry                                                           #
    # ------------------------------------------------------------------ #

    def register(self, record_type: Type[ContentRecord]) -> None:
        self._types[record_type.type_name()] = record_type

    def indexed_types(self) -> List[str]:
        return [name for name, record_type in self._types.items() if record_type.searchable]

    def resolve_type(self, type_name: str) -> Optional[Type[ContentRecord]]:
        return self._types.get(type_name)

    def is_versioned(self, type_name: str) -> bool:
        record_type = self._types.get(type_name)
        return bool(record_type and record_type.versioned)

    def ancestry(self, type_name: str) -> List[str]:
        record_type = self._types.get(type_name)
        if record_type is None:
            return [type_name]
        known = set(self._types.values())
        return [cls.__name__ for cls in reversed(record_type.__mro__) if cls in known]

    # ------------------------------------------------------------------ #
    # Writes                                                             #
    # ------------------------------------------------------------------ #

    def write(self, record: ContentRecord) -> None:
        """Store ``record`` in the draft table."""
        self._table(type(record), Stage.DRAFT)[str(record.id)] = record

    def publish(self, record: ContentRecord) -> ContentRecord:
        """Copy ``record`` into the published table and return the copy."""
        published = record.model_copy(deep=True)
        self._table(type(record), Stage.PUBLISHED)[str(record.id)] = published
        return published

    def unpublish(self, record: ContentRecord) -> None:
        if type(record).versioned:
            self._table(type(record), Stage.PUBLISHED).pop(str(record.id), None)

    def delete(self, record: ContentRecord, stage: Optional[Stage] = None) -> None:
        stages = [stage] if stage is not None else [Stage.DRAFT, Stage.PUBLISHED]
        for current in stages:
            self._table(type(record), current).pop(str(record.id), None)

    # ------------------------------------------------------------------ #
    # Reads                                                              #
    # ------------------------------------------------------------------ #

    def get_by_id(
        self, type_name: str, record_id: RecordId, stage: Optional[Stage] = None
    ) -> Optional[ContentRecord]:
        record_type = self._types.get(type_name)
        if record_type is None:
            return None
        record = self._table(record_type, stage).get(str(record_id))
        if record is None or not isinstance(record, record_type):
            return None
        return record

    def get_page(
        self, type_name: str, stage: Stage, offset: int, limit: int
    ) -> List[ContentRecord]:
        return self._exact(type_name, stage)[offset : offset + limit]

    def count(self, type_name: str, stage: Stage) -> int:
        return len(self._exact(type_name, stage))

    def parent_of(self, record: ContentRecord, stage: Optional[Stage] = None) -> Optional[ContentRecord]:
        parent_id = record.get_field("ParentID")
        if not parent_id:
            return None
        return self._table(type(record), stage).get(str(parent_id))

    def children_of(
        self, type_name: str, parent_id: RecordId, stage: Optional[Stage] = None
    ) -> List[ContentRecord]:
        record_type = self._types.get(type_name)
        if record_type is None:
            return []
        return [
            record
            for record in self._table(record_type, stage).values()
            if isinstance(record, record_type) and str(record.get_field("ParentID")) == str(parent_id)
        ]

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _root_name(self, record_type: Type[ContentRecord]) -> str:
        return self.ancestry(record_type.type_name())[0]

    def _table(self, record_type: Type[ContentRecord], stage: Optional[Stage]) -> Dict[str, ContentRecord]:
        if not record_type.versioned or stage is None:
            stage = Stage.DRAFT
        return self._tables[stage].setdefault(self._root_name(record_type), {})

    def _exact(self, type_name: str, stage: Stage) -> List[ContentRecord]:
        record_type = self._types.get(type_name)
        if record_type is None:
            return []
        return [record for record in self._table(record_type, stage).values() if type(record) is record_type]


__all__ = ["ContentStore", "InMemoryContentStore"]
