"""Persistence module.

Provides:
- DocumentStore protocol (read / atomic_update / append / list_documents)
- In-memory and SQLite backends
- Document path conventions
"""

from __future__ import annotations

from pathlib import Path

from luxlibris.config.app_config import AppConfig, load_app_config
from luxlibris.db.document_store import (
    DocumentNotFoundError,
    DocumentStore,
    InMemoryDocumentStore,
    SqliteDocumentStore,
)


def open_document_store(config: AppConfig | None = None) -> DocumentStore:
    """Open the backend selected in the storage configuration."""
    config = config or load_app_config()
    if config.storage.backend == "memory":
        return InMemoryDocumentStore()
    if config.storage.backend == "sqlite":
        return SqliteDocumentStore(Path(config.storage.db_path))
    raise ValueError(f"Unknown storage backend: {config.storage.backend}")


__all__ = [
    "DocumentNotFoundError",
    "DocumentStore",
    "InMemoryDocumentStore",
    "SqliteDocumentStore",
    "open_document_store",
]
