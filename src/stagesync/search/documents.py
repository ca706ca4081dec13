"""Search documents and the identifier scheme shared by indexing and search."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from stagesync.content import RecordId, Stage

ID_SEPARATOR = "_"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
BACKEND_DATE_FORMAT = "yyyy-MM-dd HH:mm:ss"

CLASS_NAME_FIELD = "ClassName"
CLASS_NAME_HIERARCHY_FIELD = "ClassNameHierarchy"
LAST_INDEXED_FIELD = "LastIndexed"
PARENTS_HIERARCHY_FIELD = "ParentsHierarchy"
STAGE_FIELD = "Stage"

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Document:
    """Unit stored in the search backend.

    Attributes:
        id: Deterministic document identifier.
        fields: Serialised field values.
    """

    id: str
    fields: Dict[str, Any] = field(default_factory=dict)

    @property
    def type_name(self) -> Optional[str]:
        return self.fields.get(CLASS_NAME_FIELD)

    def to_action(self, index: str) -> Dict[str, Any]:
        """Return a bulk helper action that writes this document."""
        return {"_op_type": "index", "_index": index, "_id": self.id, "_source": self.fields}


@dataclass(frozen=True, slots=True)
class DocumentKey:
    """Decoded parts of a document identifier.

    ``type_name`` is empty when the identifier does not carry one, and
    ``stage`` is ``None`` when it was not encoded.
    """

    type_name: str
    entity_id: str
    stage: Optional[Stage] = None
    stage_encoded: bool = False


def document_id(type_name: str, entity_id: RecordId, stage: Optional[Stage] = None) -> str:
    """Return the document id for a record, including ``stage`` for versioned types."""
    if ID_SEPARATOR in str(entity_id):
        LOGGER.warning(
            "Record id %r of %s contains %r; its document cannot be decoded from search hits",
            entity_id,
            type_name,
            ID_SEPARATOR,
        )
    parts = [type_name, str(entity_id)]
    if stage is not None:
        parts.append(Stage(stage).value)
    return ID_SEPARATOR.join(parts)


def parse_document_id(doc_id: str) -> DocumentKey:
    """Split a document id into its type, entity id, and stage.

    Identifiers with an unexpected number of parts are returned whole as the
    entity id with an empty type name.
    """
    bits = doc_id.split(ID_SEPARATOR)
    if len(bits) == 3:
        type_name, entity_id, stage_name = bits
        return DocumentKey(type_name, entity_id, Stage.parse(stage_name), stage_encoded=True)
    if len(bits) == 2:
        type_name, entity_id = bits
        return DocumentKey(type_name, entity_id)
    return DocumentKey("", doc_id)


def serialize_value(value: Any) -> Any:
    """Convert a record value into something the backend accepts."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime(DATE_FORMAT)
    if isinstance(value, date):
        return value.strftime(DATE_FORMAT)
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return [serialize_value(item) for item in value]
    if isinstance(value, dict):
        return {key: serialize_value(item) for key, item in value.items()}
    return value


__all__ = [
    "ID_SEPARATOR",
    "DATE_FORMAT",
    "BACKEND_DATE_FORMAT",
    "CLASS_NAME_FIELD",
    "CLASS_NAME_HIERARCHY_FIELD",
    "LAST_INDEXED_FIELD",
    "PARENTS_HIERARCHY_FIELD",
    "STAGE_FIELD",
    "Document",
    "DocumentKey",
    "document_id",
    "parse_document_id",
    "serialize_value",
]
