"""Helpers shared by stagesync CLI commands."""

from __future__ import annotations

from importlib import import_module
from typing import Any, Dict, List

from stagesync.config import StageSyncConfig, StoreFactoryError
from stagesync.content import ContentStore
from stagesync.search import IndexingService, ViewableResult


def load_content_store(path: str | None) -> ContentStore:
    """Import and call the configured content store factory.

    Args:
        path: ``module:factory`` path, as stored in ``content.store``.

    Returns:
        ContentStore: Store returned by the factory.

    Raises:
        StoreFactoryError: If the path is missing, malformed, or cannot be imported.
    """
    if not path:
        raise StoreFactoryError("content.store is not configured; set it to a 'module:factory' path.")
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise StoreFactoryError(f"content.store must look like 'module:factory', got {path!r}.", path)
    try:
        module = import_module(module_name)
    except ImportError as exc:
        raise StoreFactoryError(
            f"Unable to import content store module {module_name!r}: {exc}", path
        ) from exc
    factory = getattr(module, attribute, None)
    if not callable(factory):
        raise StoreFactoryError(f"{path!r} does not name a callable content store factory.", path)
    return factory()


def build_service(config: StageSyncConfig) -> IndexingService:
    """Return an indexing service wired from ``config``."""
    store = load_content_store(config.content.store)
    return IndexingService.from_config(config, store)


def result_to_record(result: ViewableResult) -> Dict[str, Any]:
    """Return a JSON-friendly description of one search result."""
    return {
        "type": result.type_name,
        "id": result.id,
        "document_id": result.document_id,
        "stage": result.stage.value if result.stage else None,
        "score": result.score,
        "title": result.get("Title"),
    }


def parse_ids(raw: str) -> List[str]:
    """Split a comma separated id list, dropping blanks."""
    return [part.strip() for part in raw.split(",") if part.strip()]


__all__ = ["load_content_store", "build_service", "result_to_record", "parse_ids"]
