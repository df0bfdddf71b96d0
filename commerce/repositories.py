"""
Order and checkout repositories.

Thin, typed access to the orders and checkouts collections over the
DocumentStore boundary. Every guarded write is a single-document
transaction; contention retries are the store's responsibility.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from storage import Document, DocumentStore, Transaction

from .models import CHECKOUTS, ORDERS, Order, OrderStatus, utc_now

logger = logging.getLogger(__name__)

# Fields a duplicate order-created delivery must not overwrite
_CREATION_ONLY_FIELDS = {
    "created_at",
    "status",
    "verification_status",
    "whatsapp_sent",
    "payment_status",
    "payment_id",
    "payment_method",
    "payment_error",
}


class OrderRepository:
    """Document-per-order persistence keyed by the storefront order id."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def get(self, order_id: str) -> Optional[Order]:
        doc = await self.store.get(ORDERS, order_id)
        if doc is None:
            return None
        return Order.from_document(doc.id, doc.data)

    async def upsert_from_event(self, order: Order) -> bool:
        """
        Idempotent create-or-merge of an order.

        Returns:
            True if the order document was created, False if it already existed
        """

        async def _upsert(tx: Transaction) -> bool:
            existing = await tx.get(ORDERS, order.order_id)
            if existing is None:
                tx.set(ORDERS, order.order_id, order.to_document())
                return True
            tx.set(ORDERS, order.order_id, order.to_document(exclude=_CREATION_ONLY_FIELDS), merge=True)
            return False

        return await self.store.run_transaction(_upsert)

    async def claim_cod_confirmation(self, order_id: str) -> Optional[Order]:
        """
        Flip whatsappSent false→true.

        Returns:
            The order if this caller won the claim and must send the COD
            confirmation; None if it was already sent or the order is gone
        """

        async def _claim(tx: Transaction) -> Optional[Order]:
            doc = await tx.get(ORDERS, order_id)
            if doc is None:
                return None
            order = Order.from_document(doc.id, doc.data)
            if order.whatsapp_sent:
                return None
            tx.update(ORDERS, order_id, {"whatsappSent": True, "updatedAt": utc_now()})
            return order

        return await self.store.run_transaction(_claim)

    async def find_latest_cod_order(self, phone_normalized: str) -> Optional[Order]:
        """Most recent COD order for a phone, by creation time."""
        docs = await self.store.query(
            ORDERS,
            [("phoneNormalized", "==", phone_normalized), ("status", "==", OrderStatus.COD.value)],
            order_by="createdAt",
            descending=True,
            limit=1,
        )
        if not docs:
            return None
        return Order.from_document(docs[0].id, docs[0].data)

    async def update_if(
        self,
        order_id: str,
        predicate: Callable[[Order], bool],
        changes: dict[str, Any],
    ) -> Optional[Order]:
        """
        Transactional read-check-write.

        Reads the order fresh inside the transaction and writes changes
        only if predicate(order) holds.

        Returns:
            The order as read (before changes) if written, else None
        """

        async def _apply(tx: Transaction) -> Optional[Order]:
            doc = await tx.get(ORDERS, order_id)
            if doc is None:
                return None
            order = Order.from_document(doc.id, doc.data)
            if not predicate(order):
                return None
            tx.update(ORDERS, order_id, {**changes, "updatedAt": utc_now()})
            return order

        return await self.store.run_transaction(_apply)

    async def update(self, order_id: str, changes: dict[str, Any]) -> None:
        """Unguarded field update."""
        await self.store.update(ORDERS, order_id, {**changes, "updatedAt": utc_now()})


class CheckoutRepository:
    """Cart/checkout documents, owned by the cart recorder."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def get(self, checkout_id: str) -> Optional[Document]:
        return await self.store.get(CHECKOUTS, checkout_id)

    async def merge(self, checkout_id: str, data: dict[str, Any]) -> None:
        await self.store.set(CHECKOUTS, checkout_id, data, merge=True)

    async def find_correlated(
        self,
        cart_token: Optional[str] = None,
        email: Optional[str] = None,
        phone_normalized: Optional[str] = None,
    ) -> list[Document]:
        """
        Checkouts matching any of cart token, email or normalized phone.

        Lookups run concurrently; results are de-duplicated by document path.
        """
        lookups = []
        if cart_token:
            lookups.append(self.store.query(CHECKOUTS, [("shopifyCartToken", "==", cart_token)]))
        if email:
            lookups.append(self.store.query(CHECKOUTS, [("email", "==", email)]))
        if phone_normalized:
            lookups.append(self.store.query(CHECKOUTS, [("phoneNormalized", "==", phone_normalized)]))
        if not lookups:
            return []

        unique: dict[str, Document] = {}
        for docs in await asyncio.gather(*lookups):
            for doc in docs:
                unique.setdefault(doc.path, doc)
        return list(unique.values())

    async def delete(self, docs: list[Document]) -> int:
        if not docs:
            return 0
        return await self.store.delete_many(doc.path for doc in docs)

    async def claim_recovery(self, checkout_id: str) -> bool:
        """
        Flip recoverySent false→true.

        Returns:
            True if this caller must send the recovery message
        """

        async def _claim(tx: Transaction) -> bool:
            doc = await tx.get(CHECKOUTS, checkout_id)
            if doc is None or doc.data.get("recoverySent"):
                return False
            tx.update(CHECKOUTS, checkout_id, {"recoverySent": True, "recoverySentAt": utc_now()})
            return True

        return await self.store.run_transaction(_claim)
