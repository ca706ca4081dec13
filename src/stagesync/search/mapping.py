"""Turn content records into search documents and mapping descriptors.

The field schema for a type is derived through an ordered pipeline:

1. the static kind table applied to the record's searchable fields plus the
   standard fields every document carries,
2. the per-type ``update_search_mapping`` hook on the record class,
3. mapping hooks registered on the mapper.

Custom mapping definitions from configuration replace the pipeline entirely
for their type.
"""

from __future__ import annotations

import logging
import types
import typing
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Type

from pydantic.fields import FieldInfo

from stagesync.config import CustomMapping
from stagesync.content import ContentRecord, ContentStore, Stage

from .documents import (
    BACKEND_DATE_FORMAT,
    CLASS_NAME_FIELD,
    CLASS_NAME_HIERARCHY_FIELD,
    DATE_FORMAT,
    LAST_INDEXED_FIELD,
    PARENTS_HIERARCHY_FIELD,
    STAGE_FIELD,
    Document,
    document_id,
    serialize_value,
)

LOGGER = logging.getLogger(__name__)

FieldMap = Dict[str, Dict[str, Any]]
DocumentAugmenter = Callable[[ContentRecord, Dict[str, Any]], None]
MappingHook = Callable[[str, FieldMap], FieldMap]
Clock = Callable[[], datetime]

KIND_TABLE: Mapping[str, str] = {
    "Boolean": "integer",
    "Decimal": "double",
    "Double": "double",
    "Enum": "keyword",
    "Float": "float",
    "HTMLText": "text",
    "HTMLVarchar": "text",
    "Int": "integer",
    "Date": "date",
    "Datetime": "date",
    "Text": "text",
    "Varchar": "text",
    "Year": "integer",
    "MultiValueField": "text",
}

STANDARD_FIELDS: Mapping[str, Mapping[str, Any]] = {
    "LastEdited": {"type": "date"},
    "Created": {"type": "date"},
    "ID": {"type": "keyword"},
    "ParentID": {"type": "keyword"},
    "Sort": {"type": "integer"},
    "Name": {"type": "text"},
    "MenuTitle": {"type": "text"},
    "ShowInSearch": {"type": "integer"},
    CLASS_NAME_FIELD: {"type": "keyword"},
    CLASS_NAME_HIERARCHY_FIELD: {"type": "keyword"},
    STAGE_FIELD: {"type": "keyword"},
    LAST_INDEXED_FIELD: {"type": "date"},
}

DEFAULT_MAPPING_PARAMS: Mapping[str, Any] = {"date_detection": False}


@dataclass(slots=True)
class MappingDescriptor:
    """Backend schema hints for one document type.

    Attributes:
        type_name: Type the descriptor applies to.
        properties: Field name to schema hints.
        params: Additional mapping parameters.
        custom: Whether the descriptor came from configuration.
    """

    type_name: str
    properties: FieldMap
    params: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_MAPPING_PARAMS))
    custom: bool = False

    def to_body(self) -> Dict[str, Any]:
        return {**self.params, "properties": self.properties}


def base_kind(kind: str) -> str:
    """Strip size parameters such as ``Varchar(255)`` down to the kind name."""
    position = kind.find("(")
    return kind[:position] if position > 0 else kind


def field_kind(info: FieldInfo) -> Optional[str]:
    """Return the declared or inferred search kind for a pydantic field."""
    extra = info.json_schema_extra
    if isinstance(extra, dict) and extra.get("search_kind"):
        return str(extra["search_kind"])
    return _kind_from_annotation(info.annotation)


def _kind_from_annotation(annotation: Any) -> Optional[str]:
    origin = typing.get_origin(annotation)
    if origin in (typing.Union, types.UnionType):
        members = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        return _kind_from_annotation(members[0]) if len(members) == 1 else None
    if origin in (list, tuple, set, frozenset):
        return "MultiValueField"
    if not isinstance(annotation, type):
        return None
    if issubclass(annotation, bool):
        return "Boolean"
    if issubclass(annotation, Enum):
        return "Enum"
    if issubclass(annotation, int):
        return "Int"
    if issubclass(annotation, Decimal):
        return "Decimal"
    if issubclass(annotation, float):
        return "Double"
    if issubclass(annotation, datetime):
        return "Datetime"
    if issubclass(annotation, date):
        return "Date"
    if issubclass(annotation, str):
        return "Varchar"
    return None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentMapper:
    """Build documents and mapping descriptors for content records."""

    def __init__(
        self,
        store: ContentStore,
        *,
        augmenters: Sequence[DocumentAugmenter] = (),
        mapping_hooks: Sequence[MappingHook] = (),
        custom_mappings: Mapping[str, CustomMapping] | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._augmenters: List[DocumentAugmenter] = list(augmenters)
        self._mapping_hooks: List[MappingHook] = list(mapping_hooks)
        self._custom_mappings = dict(custom_mappings or {})
        self._clock = clock or _utcnow
        self._field_cache: Dict[str, FieldMap] = {}

    @property
    def custom_mappings(self) -> Dict[str, CustomMapping]:
        return dict(self._custom_mappings)

    def add_augmenter(self, augmenter: DocumentAugmenter) -> None:
        self._augmenters.append(augmenter)

    def add_mapping_hook(self, hook: MappingHook) -> None:
        self._mapping_hooks.append(hook)
        self._field_cache.clear()

    def now(self) -> str:
        """Return the current time in the ``LastIndexed`` format."""
        return self._clock().strftime(DATE_FORMAT)

    # ------------------------------------------------------------------ #
    # Mappings                                                           #
    # ------------------------------------------------------------------ #

    def search_fields(self, record_type: Type[ContentRecord]) -> FieldMap:
        """Return the derived field map for ``record_type``."""
        type_name = record_type.type_name()
        cached = self._field_cache.get(type_name)
        if cached is not None:
            return cached

        fields: FieldMap = {}
        for attribute in record_type.search_fields:
            info = record_type.model_fields.get(attribute)
            if info is None:
                LOGGER.debug("%s declares unknown search field %s", type_name, attribute)
                continue
            hints: Dict[str, Any] = {}
            kind = field_kind(info)
            if kind is not None and base_kind(kind) in KIND_TABLE:
                hints["type"] = KIND_TABLE[base_kind(kind)]
            fields[info.alias or attribute] = hints

        for name, hints in STANDARD_FIELDS.items():
            fields[name] = dict(hints)

        for name, hints in fields.items():
            if hints.get("type") == "date":
                hints["format"] = BACKEND_DATE_FORMAT
        if fields.get("Content"):
            fields["Content"]["store"] = False

        fields = record_type.update_search_mapping(fields)
        for hook in self._mapping_hooks:
            fields = hook(type_name, fields)

        self._field_cache[type_name] = fields
        return fields

    def build_mapping(self, type_name: str) -> MappingDescriptor:
        """Return the mapping descriptor to send for ``type_name``."""
        custom = self._custom_mappings.get(type_name)
        if custom is not None:
            params = {**DEFAULT_MAPPING_PARAMS, **custom.params}
            return MappingDescriptor(type_name, dict(custom.properties), params, custom=True)

        record_type = self._store.resolve_type(type_name)
        if record_type is None:
            properties = {name: dict(hints) for name, hints in STANDARD_FIELDS.items()}
        else:
            properties = {name: dict(hints) for name, hints in self.search_fields(record_type).items()}
        return MappingDescriptor(type_name, properties)

    # ------------------------------------------------------------------ #
    # Documents                                                          #
    # ------------------------------------------------------------------ #

    def document_id(self, record: ContentRecord, stage: Stage = Stage.DRAFT) -> str:
        type_name = record.type_name()
        if self._store.is_versioned(type_name):
            return document_id(type_name, record.id, stage)
        return document_id(type_name, record.id)

    def build_document(self, record: ContentRecord, stage: Stage = Stage.DRAFT) -> Document:
        """Return the document representing ``record`` in ``stage``."""
        type_name = record.type_name()
        values = record.document_values()
        fields: Dict[str, Any] = {
            name: values[name] for name in self.search_fields(type(record)) if name in values
        }

        if self._store.is_versioned(type_name):
            fields[STAGE_FIELD] = [Stage(stage).value]
        else:
            fields[STAGE_FIELD] = [Stage.PUBLISHED.value, Stage.DRAFT.value]

        if record.is_hierarchical():
            fields[PARENTS_HIERARCHY_FIELD] = self.parents_hierarchy(record, stage)

        if CLASS_NAME_HIERARCHY_FIELD not in fields:
            fields[CLASS_NAME_HIERARCHY_FIELD] = self._store.ancestry(type_name) or [type_name]
        fields.setdefault(CLASS_NAME_FIELD, type_name)
        fields.setdefault(LAST_INDEXED_FIELD, self.now())

        record.update_searchable_data(fields)
        for augment in self._augmenters:
            augment(record, fields)

        serialized = {name: serialize_value(value) for name, value in fields.items()}
        return Document(self.document_id(record, stage), serialized)

    def parents_hierarchy(self, record: ContentRecord, stage: Stage = Stage.DRAFT) -> List[Any]:
        """Return ancestor ids nearest first; stops at the first repeated id."""
        parents: List[Any] = []
        seen = {str(record.id)}
        current: Optional[ContentRecord] = record
        while current is not None:
            parent_id = current.get_field("ParentID")
            if not parent_id or str(parent_id) in seen:
                break
            parents.append(parent_id)
            seen.add(str(parent_id))
            current = self._store.parent_of(current, stage)
        return parents


__all__ = [
    "KIND_TABLE",
    "STANDARD_FIELDS",
    "MappingDescriptor",
    "DocumentMapper",
    "base_kind",
    "field_kind",
]
