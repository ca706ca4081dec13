"""Configuration models describing stagesync settings."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class StageSyncBaseModel(BaseModel):
    """Shared configuration for stagesync Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class CustomMapping(StageSyncBaseModel):
    """Explicit mapping definition for a single document type.

    Attributes:
        properties: Field name to backend schema hints.
        params: Additional mapping parameters (e.g. ``date_detection``).
    """

    properties: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    params: Dict[str, Any] = Field(default_factory=dict)


class SearchSettings(StageSyncBaseModel):
    """Search backend connection and index options.

    Attributes:
        enabled: Whether indexing operations run at all.
        hosts: Elasticsearch node URLs.
        index: Name of the index holding every document type.
        index_settings: Settings passed when the index is created.
        mappings: Per-type custom mapping definitions that replace derivation.
        request_timeout: Transport timeout in seconds for each request.
        api_key: Optional API key for hosted clusters.
        verify_certs: Whether TLS certificates are verified.
    """

    enabled: bool = True
    hosts: List[str] = Field(default_factory=lambda: ["http://localhost:9200"])
    index: str = "content"
    index_settings: Dict[str, Any] = Field(default_factory=dict)
    mappings: Dict[str, CustomMapping] = Field(default_factory=dict)
    request_timeout: float = 10.0
    api_key: Optional[str] = None
    verify_certs: bool = True


class ReindexSettings(StageSyncBaseModel):
    """Options controlling full reindex reconciliation.

    Attributes:
        page_size: Number of records indexed per bulk cycle.
        sweep_batch_size: Maximum stale documents removed per sweep pass.
        max_sweep_iterations: Upper bound on sweep passes for a single type.
    """

    page_size: int = Field(default=1000, gt=0)
    sweep_batch_size: int = Field(default=1000, gt=0)
    max_sweep_iterations: int = Field(default=100, gt=0)


class ContentSettings(StageSyncBaseModel):
    """Content store wiring.

    Attributes:
        store: Dotted ``module:factory`` path returning the content store.
        base_type: Default type used by targeted reindexing.
    """

    store: Optional[str] = None
    base_type: str = "Page"


class LoggingSettings(StageSyncBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        file: Optional log file path; enables rotation when set.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    file: Optional[str] = None
    max_size_mb: int = 100
    backup_count: int = 5


class StageSyncConfig(StageSyncBaseModel):
    """Top-level configuration struct for stagesync.

    Attributes:
        search: Search backend settings.
        reindex: Reconciliation settings.
        content: Content store wiring.
        logging: Logging configuration.
    """

    search: SearchSettings = Field(default_factory=SearchSettings)
    reindex: ReindexSettings = Field(default_factory=ReindexSettings)
    content: ContentSettings = Field(default_factory=ContentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


__all__ = [
    "StageSyncBaseModel",
    "CustomMapping",
    "SearchSettings",
    "ReindexSettings",
    "ContentSettings",
    "LoggingSettings",
    "StageSyncConfig",
]
