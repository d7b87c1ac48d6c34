"""Document store backends.

Every lifecycle operation reads and writes JSON documents addressed by a
slash-separated path ("students/stu01"). The only write primitive with
read-modify-write semantics is ``atomic_update``: the mutator sees the
current body and its return value is persisted with no other write on that
path interleaved. Multi-document transactions are not offered.

Backends:
- InMemoryDocumentStore: per-path locks, used by tests and the "memory" storage backend
- SqliteDocumentStore: one ``documents`` table, updates run under BEGIN IMMEDIATE
"""

from __future__ import annotations

import copy
import json
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Generator, Protocol

import structlog

logger = structlog.get_logger(__name__)

Document = dict[str, Any]
Mutator = Callable[["Document | None"], Document]


class DocumentNotFoundError(Exception):
    """Raised when reading a path that holds no document."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Document not found: {path}")


class DocumentStore(Protocol):
    """Persistence contract required by the lifecycle core."""

    def read(self, path: str) -> Document:
        """Return the document at ``path`` or raise DocumentNotFoundError."""
        ...

    def get(self, path: str) -> Document | None:
        """Return the document at ``path`` or None."""
        ...

    def atomic_update(self, path: str, mutator: Mutator) -> Document:
        """Apply ``mutator`` to the current body and persist the result."""
        ...

    def append(
        self, collection: str, document: Document, document_id: str | None = None
    ) -> str:
        """Store an append-only fact and return its id."""
        ...

    def list_documents(self, collection: str) -> list[Document]:
        """Direct children of ``collection``, ordered by path."""
        ...


def collection_of(path: str) -> str:
    """Return the parent collection of a document path."""
    if "/" not in path:
        return ""
    return path.rsplit("/", 1)[0]


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def _check_body(path: str, body: Any) -> Document:
    if not isinstance(body, dict):
        raise TypeError(f"Mutator for {path} must return a dict, got {type(body).__name__}")
    return body


# =============================================================================
# IN-MEMORY BACKEND
# =============================================================================


class InMemoryDocumentStore:
    """Thread-safe in-process store.

    Bodies are kept as JSON text so callers never share mutable state with
    the store.
    """

    def __init__(self) -> None:
        self._docs: dict[str, str] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._meta_lock = threading.Lock()

    def _lock_for(self, path: str) -> threading.Lock:
        with self._meta_lock:
            lock = self._locks.get(path)
            if lock is None:
                lock = threading.Lock()
                self._locks[path] = lock
            return lock

    def read(self, path: str) -> Document:
        doc = self.get(path)
        if doc is None:
            raise DocumentNotFoundError(path)
        return doc

    def get(self, path: str) -> Document | None:
        raw = self._docs.get(path)
        if raw is None:
            return None
        return json.loads(raw)

    def atomic_update(self, path: str, mutator: Mutator) -> Document:
        with self._lock_for(path):
            current = self.get(path)
            updated = _check_body(path, mutator(copy.deepcopy(current)))
            self._docs[path] = json.dumps(updated)
        logger.debug("document_updated", path=path, backend="memory")
        return copy.deepcopy(updated)

    def append(
        self, collection: str, document: Document, document_id: str | None = None
    ) -> str:
        doc_id = document_id or _new_id()
        path = f"{collection}/{doc_id}"
        with self._lock_for(path):
            if path in self._docs:
                logger.debug("append_already_present", path=path)
                return doc_id
            self._docs[path] = json.dumps(document)
        logger.debug("document_appended", path=path, backend="memory")
        return doc_id

    def list_documents(self, collection: str) -> list[Document]:
        paths = sorted(p for p in list(self._docs) if collection_of(p) == collection)
        result = []
        for p in paths:
            doc = self.get(p)
            if doc is not None:
                result.append(doc)
        return result


# =============================================================================
# SQLITE BACKEND
# =============================================================================


class SqliteDocumentStore:
    """Documents persisted as JSON rows in a SQLite database.

    ``atomic_update`` opens its transaction with BEGIN IMMEDIATE, which takes
    the database write lock before the read, so concurrent updaters (threads
    or processes) are serialized.
    """

    def __init__(self, db_path: Path, timeout: float = 30.0) -> None:
        self.db_path = Path(db_path)
        self.timeout = timeout
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            _create_schema(conn)
        logger.info("document_store.initialized", path=str(self.db_path))

    @contextmanager
    def _connect(self) -> Generator[sqlite3.Connection, None, None]:
        # isolation_level=None: transactions are opened explicitly
        conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def read(self, path: str) -> Document:
        doc = self.get(path)
        if doc is None:
            raise DocumentNotFoundError(path)
        return doc

    def get(self, path: str) -> Document | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT body FROM documents WHERE path = ?", (path,)
            ).fetchone()
        if row is None:
            return None
        return json.loads(row["body"])

    def atomic_update(self, path: str, mutator: Mutator) -> Document:
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT body FROM documents WHERE path = ?", (path,)
                ).fetchone()
                current = json.loads(row["body"]) if row is not None else None
                updated = _check_body(path, mutator(current))
                conn.execute(
                    """
                    INSERT INTO documents (path, collection, body, updated_at)
                    VALUES (?, ?, ?, datetime('now'))
                    ON CONFLICT(path) DO UPDATE SET
                        body = excluded.body,
                        updated_at = excluded.updated_at
                    """,
                    (path, collection_of(path), json.dumps(updated)),
                )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.debug("document_updated", path=path, backend="sqlite")
        return updated

    def append(
        self, collection: str, document: Document, document_id: str | None = None
    ) -> str:
        doc_id = document_id or _new_id()
        path = f"{collection}/{doc_id}"
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO documents (path, collection, body)
                VALUES (?, ?, ?)
                """,
                (path, collection, json.dumps(document)),
            )
            if cursor.rowcount == 0:
                logger.debug("append_already_present", path=path)
            else:
                logger.debug("document_appended", path=path, backend="sqlite")
        return doc_id

    def list_documents(self, collection: str) -> list[Document]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT body FROM documents WHERE collection = ? ORDER BY path",
                (collection,),
            ).fetchall()
        return [json.loads(row["body"]) for row in rows]


def _create_schema(conn: sqlite3.Connection) -> None:
    """Create the documents table.

    Uses IF NOT EXISTS for idempotency.
    """
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS documents (
            path TEXT PRIMARY KEY,
            collection TEXT NOT NULL,
            body TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection);
        """
    )
