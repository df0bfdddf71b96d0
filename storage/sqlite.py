"""
SQLite-backed document store.

Pure plumbing: SQLite is an implementation detail.
Domain code is completely decoupled from storage mechanics.

Design:
- One table: documents
- Columns: collection, doc_id, data (JSON), created_at, updated_at
- Primary key: (collection, doc_id)
- Filters and ordering use json_extract over the JSON body
- Datetimes are stored as ISO-8601 strings (UTC), which sort correctly
"""

import asyncio
import json
import logging
import sqlite3
import uuid
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence, TypeVar

from .base import (
    FILTER_OPERATORS,
    Document,
    DocumentNotFoundError,
    DocumentStore,
    QueryFilter,
    Transaction,
    split_path,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _encode_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _dumps(data: dict[str, Any]) -> str:
    return json.dumps(data, default=_json_default)


class SQLiteTransaction(Transaction):
    """Reads through the open connection, buffers writes until commit."""

    def __init__(self, store: "SQLiteDocumentStore"):
        self._store = store
        self._writes: list[tuple[str, str, str, dict[str, Any]]] = []

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        return self._store._get(collection, doc_id)

    def set(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        self._writes.append(("merge" if merge else "set", collection, doc_id, dict(data)))

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._writes.append(("update", collection, doc_id, dict(data)))

    def apply(self) -> None:
        for kind, collection, doc_id, data in self._writes:
            if kind == "update":
                self._store._update(collection, doc_id, data)
            else:
                self._store._set(collection, doc_id, data, merge=kind == "merge")


class SQLiteDocumentStore(DocumentStore):
    """
    DocumentStore over a single SQLite file.

    A single connection is shared; an asyncio lock serializes access
    inside the process and BEGIN IMMEDIATE guards against other processes.
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize SQLite document store.

        Args:
            db_path: Path to SQLite database file.
                    If None, uses ':memory:' (in-memory, useful for testing).
        """
        self.db_path = db_path or ":memory:"
        self._lock = asyncio.Lock()
        self._conn = sqlite3.connect(self.db_path, isolation_level=None, check_same_thread=False)
        self._initialize_db()

    def _initialize_db(self) -> None:
        cursor = self._conn.cursor()

        if self.db_path != ":memory:":
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=FULL")

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                collection TEXT NOT NULL,
                doc_id TEXT NOT NULL,
                data TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (collection, doc_id)
            )
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_documents_collection
            ON documents(collection)
        """)

        logger.debug(f"SQLite document store initialized: {self.db_path}")

    # ------------------------------------------------------------------
    # Unlocked primitives (callers hold self._lock)
    # ------------------------------------------------------------------

    def _get(self, collection: str, doc_id: str) -> Optional[Document]:
        row = self._conn.execute(
            "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        ).fetchone()
        if row is None:
            return None
        return Document(collection=collection, id=doc_id, data=json.loads(row[0]))

    def _set(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool) -> None:
        if merge:
            existing = self._get(collection, doc_id)
            if existing is not None:
                existing.data.update(data)
                data = existing.data
        self._conn.execute(
            """
            INSERT INTO documents (collection, doc_id, data)
            VALUES (?, ?, ?)
            ON CONFLICT(collection, doc_id)
            DO UPDATE SET data = excluded.data, updated_at = CURRENT_TIMESTAMP
            """,
            (collection, doc_id, _dumps(data)),
        )

    def _update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        existing = self._get(collection, doc_id)
        if existing is None:
            raise DocumentNotFoundError(f"{collection}/{doc_id}")
        existing.data.update(data)
        self._conn.execute(
            """
            UPDATE documents SET data = ?, updated_at = CURRENT_TIMESTAMP
            WHERE collection = ? AND doc_id = ?
            """,
            (_dumps(existing.data), collection, doc_id),
        )

    # ------------------------------------------------------------------
    # DocumentStore
    # ------------------------------------------------------------------

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        async with self._lock:
            return self._get(collection, doc_id)

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        async with self._lock:
            self._set(collection, doc_id, data, merge=merge)

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        async with self._lock:
            self._update(collection, doc_id, data)

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        async with self._lock:
            self._set(collection, doc_id, data, merge=False)
        return doc_id

    async def delete_many(self, paths: Iterable[str]) -> int:
        keys = [split_path(path) for path in paths]
        if not keys:
            return 0
        async with self._lock:
            self._conn.execute("BEGIN")
            try:
                self._conn.executemany(
                    "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                    keys,
                )
                self._conn.execute("COMMIT")
            except sqlite3.Error:
                self._conn.execute("ROLLBACK")
                raise
        return len(keys)

    async def query(
        self,
        collection: str,
        filters: Sequence[QueryFilter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Document]:
        sql = ["SELECT doc_id, data FROM documents WHERE collection = ?"]
        params: list[Any] = [collection]

        for field_name, op, value in filters:
            if op not in FILTER_OPERATORS:
                raise ValueError(f"Unsupported filter operator: {op}")
            sql_op = "=" if op == "==" else op
            sql.append(f"AND json_extract(data, ?) {sql_op} ?")
            params.extend([f"$.{field_name}", _encode_value(value)])

        if order_by:
            sql.append(f"ORDER BY json_extract(data, ?) {'DESC' if descending else 'ASC'}")
            params.append(f"$.{order_by}")

        if limit is not None:
            sql.append("LIMIT ?")
            params.append(limit)

        async with self._lock:
            rows = self._conn.execute(" ".join(sql), params).fetchall()

        return [
            Document(collection=collection, id=doc_id, data=json.loads(data))
            for doc_id, data in rows
        ]

    async def stream(self, collection: str) -> list[Document]:
        return await self.query(collection)

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        async with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                tx = SQLiteTransaction(self)
                result = await fn(tx)
                tx.apply()
                self._conn.execute("COMMIT")
                return result
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise

    async def close(self) -> None:
        async with self._lock:
            self._conn.close()
