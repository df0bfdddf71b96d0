"""
PayU payment webhook processing.

Verifies the reverse hash, records the transaction, and moves the
matching order to Paid (or records the failure). A cancelled order is
never revived by a late payment callback.
"""

import hashlib
import hmac
import logging
from typing import Any, Mapping

from storage import DocumentStore

from .models import PAYU_TRANSACTIONS, OrderStatus, utc_now
from .repositories import OrderRepository

logger = logging.getLogger(__name__)

_UDF_FIELDS = ("udf1", "udf2", "udf3", "udf4", "udf5")


class PaymentVerificationError(Exception):
    """Payment callback hash did not match."""
    pass


def payu_reverse_hash(fields: Mapping[str, Any], salt: str) -> str:
    """
    sha512(salt|status|udf1|udf2|udf3|udf4|udf5|||||email|firstname|productinfo|amount|txnid|key)
    """
    def value(name: str) -> str:
        raw = fields.get(name)
        return "" if raw is None else str(raw)

    parts = [salt, value("status")]
    parts.extend(value(name) for name in _UDF_FIELDS)
    parts.extend(["", "", "", ""])
    parts.extend(value(name) for name in ("email", "firstname", "productinfo", "amount", "txnid", "key"))
    return hashlib.sha512("|".join(parts).encode("utf-8")).hexdigest()


def order_id_from_txnid(txnid: str) -> str:
    return txnid.removeprefix("txn_")


class PaymentRecorder:
    """Applies PayU callbacks to transactions and orders."""

    def __init__(self, store: DocumentStore, orders: OrderRepository, salt: str):
        self.store = store
        self.orders = orders
        self.salt = salt

    def verify(self, fields: Mapping[str, Any]) -> None:
        """
        Raises:
            PaymentVerificationError: If the hash is missing or wrong
        """
        received = str(fields.get("hash") or "")
        calculated = payu_reverse_hash(fields, self.salt)
        if not received or not hmac.compare_digest(received.lower(), calculated):
            logger.error(
                "PayU webhook: hash mismatch",
                extra={"txnid": fields.get("txnid")},
            )
            raise PaymentVerificationError("Invalid Hash")

    async def handle(self, fields: Mapping[str, Any]) -> str:
        """
        Verify and apply one PayU callback.

        Returns:
            The action taken ("paid", "failed", "recorded", or "order_not_found")

        Raises:
            PaymentVerificationError: If the hash does not verify or txnid is missing
        """
        self.verify(fields)

        txnid = str(fields.get("txnid") or "")
        if not txnid:
            raise PaymentVerificationError("Missing txnid")
        status = str(fields.get("status") or "")

        await self.store.set(
            PAYU_TRANSACTIONS,
            txnid,
            {
                "txnid": txnid,
                "mihpayid": fields.get("mihpayid"),
                "amount": fields.get("amount"),
                "status": status,
                "mode": fields.get("mode"),
                "error_Message": fields.get("error_Message"),
                "bank_ref_num": fields.get("bank_ref_num"),
                "productinfo": fields.get("productinfo"),
                "firstname": fields.get("firstname"),
                "email": fields.get("email"),
                "updatedAt": utc_now(),
            },
            merge=True,
        )

        order_id = order_id_from_txnid(txnid)

        if status == "success":
            order = await self.orders.update_if(
                order_id,
                lambda o: o.status != OrderStatus.CANCELLED,
                {
                    "status": OrderStatus.PAID.value,
                    "paymentStatus": "success",
                    "paymentId": txnid,
                    "paymentMethod": fields.get("mode") or "PayU",
                },
            )
            if order is None:
                logger.warning(
                    f"PayU success for {txnid}: order {order_id} missing or cancelled",
                    extra={"txnid": txnid, "order_id": order_id},
                )
                return "order_not_found"
            logger.info(f"Order {order_id} marked as Paid via PayU webhook", extra={"order_id": order_id})
            return "paid"

        if status == "failure":
            order = await self.orders.get(order_id)
            if order is None:
                return "order_not_found"
            await self.orders.update(
                order_id,
                {"paymentStatus": "failed", "paymentError": fields.get("error_Message")},
            )
            logger.info(f"Order {order_id} payment failed", extra={"order_id": order_id})
            return "failed"

        return "recorded"
