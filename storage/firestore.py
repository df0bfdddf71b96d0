"""
Firestore-backed document store.

Uses the firebase-admin async client. Transactions use Firestore's own
optimistic retry: the callback may run more than once on contention,
so writes are buffered per attempt and applied after all reads.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence, TypeVar

import firebase_admin
from firebase_admin import credentials, firestore, firestore_async
from google.api_core.exceptions import NotFound

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

# Firestore rejects write batches with more than 500 operations
MAX_BATCH_WRITES = 500


def initialize_firebase_app(service_account_json: Optional[str] = None) -> firebase_admin.App:
    """
    Initialize (or reuse) the default firebase-admin app.

    Args:
        service_account_json: Service account credentials as a JSON string.
            If None, application default credentials are used.
    """
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    if service_account_json:
        cred = credentials.Certificate(json.loads(service_account_json))
    else:
        cred = credentials.ApplicationDefault()
    app = firebase_admin.initialize_app(cred)
    logger.info("Firebase admin app initialized")
    return app


class FirestoreTransaction(Transaction):
    """Wraps one attempt of a Firestore async transaction."""

    def __init__(self, client, transaction):
        self._client = client
        self._transaction = transaction
        self._writes: list[tuple[str, str, str, dict[str, Any]]] = []

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        ref = self._client.collection(collection).document(doc_id)
        snap = await ref.get(transaction=self._transaction)
        if not snap.exists:
            return None
        return Document(collection=collection, id=snap.id, data=snap.to_dict() or {})

    def set(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        self._writes.append(("set_merge" if merge else "set", collection, doc_id, dict(data)))

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._writes.append(("update", collection, doc_id, dict(data)))

    def apply(self) -> None:
        for kind, collection, doc_id, data in self._writes:
            ref = self._client.collection(collection).document(doc_id)
            if kind == "update":
                self._transaction.update(ref, data)
            else:
                self._transaction.set(ref, data, merge=kind == "set_merge")


class FirestoreDocumentStore(DocumentStore):
    """DocumentStore over Cloud Firestore."""

    def __init__(self, client=None, service_account_json: Optional[str] = None):
        if client is None:
            app = initialize_firebase_app(service_account_json)
            client = firestore_async.client(app)
        self._client = client

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        snap = await self._client.collection(collection).document(doc_id).get()
        if not snap.exists:
            return None
        return Document(collection=collection, id=snap.id, data=snap.to_dict() or {})

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        await self._client.collection(collection).document(doc_id).set(data, merge=merge)

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        try:
            await self._client.collection(collection).document(doc_id).update(data)
        except NotFound as e:
            raise DocumentNotFoundError(f"{collection}/{doc_id}") from e

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        _, ref = await self._client.collection(collection).add(data)
        return ref.id

    async def delete_many(self, paths: Iterable[str]) -> int:
        refs = []
        for path in paths:
            collection, doc_id = split_path(path)
            refs.append(self._client.collection(collection).document(doc_id))

        for start in range(0, len(refs), MAX_BATCH_WRITES):
            batch = self._client.batch()
            for ref in refs[start:start + MAX_BATCH_WRITES]:
                batch.delete(ref)
            await batch.commit()
        return len(refs)

    async def query(
        self,
        collection: str,
        filters: Sequence[QueryFilter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Document]:
        query = self._client.collection(collection)
        for field_name, op, value in filters:
            if op not in FILTER_OPERATORS:
                raise ValueError(f"Unsupported filter operator: {op}")
            query = query.where(filter=firestore.FieldFilter(field_name, op, value))
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(order_by, direction=direction)
        if limit is not None:
            query = query.limit(limit)

        return [
            Document(collection=collection, id=snap.id, data=snap.to_dict() or {})
            async for snap in query.stream()
        ]

    async def stream(self, collection: str) -> list[Document]:
        return await self.query(collection)

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        client = self._client

        @firestore.async_transactional
        async def _attempt(transaction):
            tx = FirestoreTransaction(client, transaction)
            result = await fn(tx)
            tx.apply()
            return result

        return await _attempt(client.transaction())
