"""
In-memory document store for tests and local development.

Deterministic, process-local, and never shared across workers.
Documents are deep-copied on every read and write so callers can
never mutate stored state by accident.
"""

import asyncio
import copy
import uuid
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence, TypeVar

from .base import (
    Document,
    DocumentNotFoundError,
    DocumentStore,
    QueryFilter,
    Transaction,
    check_filters,
    matches,
    split_path,
)

T = TypeVar("T")


def sort_documents(docs: list[Document], order_by: str, descending: bool) -> list[Document]:
    """Order documents by a field, keeping documents without the field last."""
    present = [d for d in docs if d.data.get(order_by) is not None]
    missing = [d for d in docs if d.data.get(order_by) is None]
    present.sort(key=lambda d: d.data[order_by], reverse=descending)
    return present + missing


class InMemoryTransaction(Transaction):
    """Buffers writes until the owning store commits them."""

    def __init__(self, store: "InMemoryDocumentStore"):
        self._store = store
        self._writes: list[tuple[str, str, str, dict[str, Any]]] = []

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        return self._store._read(collection, doc_id)

    def set(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        self._writes.append(("merge" if merge else "set", collection, doc_id, copy.deepcopy(data)))

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._writes.append(("update", collection, doc_id, copy.deepcopy(data)))

    def commit(self) -> None:
        # Validate every update before touching state so a failed commit writes nothing
        pending = {(c, d) for kind, c, d, _ in self._writes if kind in ("set", "merge")}
        for kind, collection, doc_id, _ in self._writes:
            if kind == "update" and (collection, doc_id) not in pending:
                if self._store._read(collection, doc_id) is None:
                    raise DocumentNotFoundError(f"{collection}/{doc_id}")

        for kind, collection, doc_id, data in self._writes:
            self._store._write(collection, doc_id, data, merge=kind != "set")


class InMemoryDocumentStore(DocumentStore):
    """
    Dict-backed DocumentStore.

    Transactions are serialized with a single asyncio lock, which gives
    the same single-document isolation the real backends provide.
    """

    def __init__(self):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._tx_lock = asyncio.Lock()

    def _read(self, collection: str, doc_id: str) -> Optional[Document]:
        body = self._collections.get(collection, {}).get(doc_id)
        if body is None:
            return None
        return Document(collection=collection, id=doc_id, data=copy.deepcopy(body))

    def _write(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool) -> None:
        docs = self._collections.setdefault(collection, {})
        if merge and doc_id in docs:
            docs[doc_id].update(copy.deepcopy(data))
        else:
            docs[doc_id] = copy.deepcopy(data)

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        return self._read(collection, doc_id)

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        self._write(collection, doc_id, data, merge=merge)

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        if self._read(collection, doc_id) is None:
            raise DocumentNotFoundError(f"{collection}/{doc_id}")
        self._write(collection, doc_id, data, merge=True)

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        self._write(collection, doc_id, data, merge=False)
        return doc_id

    async def delete_many(self, paths: Iterable[str]) -> int:
        count = 0
        for path in paths:
            collection, doc_id = split_path(path)
            self._collections.get(collection, {}).pop(doc_id, None)
            count += 1
        return count

    async def query(
        self,
        collection: str,
        filters: Sequence[QueryFilter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Document]:
        check_filters(filters)
        docs = [
            Document(collection=collection, id=doc_id, data=copy.deepcopy(body))
            for doc_id, body in self._collections.get(collection, {}).items()
            if matches(body, filters)
        ]
        if order_by:
            docs = sort_documents(docs, order_by, descending)
        if limit is not None:
            docs = docs[:limit]
        return docs

    async def stream(self, collection: str) -> list[Document]:
        return await self.query(collection)

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        async with self._tx_lock:
            tx = InMemoryTransaction(self)
            result = await fn(tx)
            tx.commit()
            return result
