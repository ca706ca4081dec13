"""Content record models consumed by the indexing pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

RecordId = Union[int, str]

# Older indexes used the framework's own stage names.
_LEGACY_STAGE_NAMES = {"Stage": "Draft", "Live": "Published"}


class Stage(str, Enum):
    """Lifecycle stage of a versioned record."""

    DRAFT = "Draft"
    PUBLISHED = "Published"

    @classmethod
    def parse(cls, value: Any) -> Optional["Stage"]:
        """Return the stage named by ``value`` or ``None`` when unrecognised."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        name = _LEGACY_STAGE_NAMES.get(value, value)
        try:
            return cls(name)
        except ValueError:
            return None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContentRecord(BaseModel):
    """Base class for records that can be written to the search index.

    Subclasses declare which attributes are searchable through
    ``search_fields`` and whether they carry a draft/published lifecycle
    through ``versioned``. Document field names are the pydantic aliases, so
    ``title`` is indexed as ``Title``.

    Attributes:
        id: Stable identifier of the record.
        title: Human readable title.
        created: Creation timestamp.
        last_edited: Last modification timestamp.
    """

    model_config = ConfigDict(populate_by_name=True)

    search_fields: ClassVar[Tuple[str, ...]] = ()
    versioned: ClassVar[bool] = False
    searchable: ClassVar[bool] = True

    id: RecordId = Field(alias="ID")
    title: str = Field(default="", alias="Title")
    created: datetime = Field(default_factory=_utcnow, alias="Created")
    last_edited: datetime = Field(default_factory=_utcnow, alias="LastEdited")

    @classmethod
    def type_name(cls) -> str:
        """Return the name this record type is indexed under."""
        return cls.__name__

    @classmethod
    def field_aliases(cls) -> Dict[str, str]:
        """Return a mapping of document field names to attribute names."""
        return {info.alias or name: name for name, info in cls.model_fields.items()}

    @classmethod
    def update_search_mapping(cls, fields: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        """Per-type hook to rewrite the derived field mapping."""
        return fields

    def has_field(self, name: str) -> bool:
        return name in self.field_aliases()

    def get_field(self, name: str, default: Any = None) -> Any:
        attribute = self.field_aliases().get(name)
        if attribute is None:
            return default
        return getattr(self, attribute)

    def document_values(self) -> Dict[str, Any]:
        """Return field values keyed by document field name."""
        return {alias: getattr(self, attribute) for alias, attribute in self.field_aliases().items()}

    def is_hierarchical(self) -> bool:
        return self.has_field("ParentID")

    def label(self) -> str:
        return self.title or f"{self.type_name()} #{self.id}"

    def update_searchable_data(self, fields: Dict[str, Any]) -> None:
        """Per-record hook to adjust document fields before they are sent."""

    def can_show_in_search(self) -> bool:
        """Return whether this record may appear in search results."""
        if self.has_field("ShowInSearch"):
            return bool(self.get_field("ShowInSearch"))
        return True

    def can_view(self, viewer: Any = None) -> bool:
        return True


class HierarchicalRecord(ContentRecord):
    """Record that lives in a parent/child tree.

    Attributes:
        parent_id: Identifier of the parent record; falsy for roots.
        sort: Position among siblings.
    """

    parent_id: Optional[RecordId] = Field(default=None, alias="ParentID")
    sort: int = Field(default=0, alias="Sort")


__all__ = ["RecordId", "Stage", "ContentRecord", "HierarchicalRecord"]
