"""
Commerce data models.

Orders are stored one document per order, keyed by the storefront's
order id, with camelCase field names (the mobile console reads them
directly).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from .phone import DEFAULT_COUNTRY_CODE, normalize_phone

ORDERS = "orders"
CHECKOUTS = "checkouts"
PAYU_TRANSACTIONS = "payu_transactions"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    COD = "COD"
    PAID = "Paid"
    CANCELLED = "CANCELLED"


class VerificationStatus(str, Enum):
    """COD confirmation stage of an order."""

    NONE = "none"
    VERIFIED_PENDING_ADDRESS = "verified_pending_address"
    ADDRESS_CHANGE_REQUESTED = "address_change_requested"
    APPROVED = "approved"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({VerificationStatus.APPROVED, VerificationStatus.CANCELLED})


class OrderItem(BaseModel):
    name: str = ""
    quantity: int = 1
    price: Union[float, str, None] = None


class Order(BaseModel):
    """One commerce order as persisted in the orders collection."""

    order_id: str
    order_number: Union[int, str, None] = None
    total_price: float = 0.0
    currency: str = "INR"
    customer_name: str = "Guest"
    email: Optional[str] = None
    phone: Optional[str] = None
    phone_normalized: Optional[str] = None
    status: OrderStatus = OrderStatus.COD
    verification_status: VerificationStatus = VerificationStatus.NONE
    whatsapp_sent: bool = False
    items: list[OrderItem] = Field(default_factory=list)
    address1: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Set by the payment webhook
    payment_status: Optional[str] = None
    payment_id: Optional[str] = None
    payment_method: Optional[str] = None
    payment_error: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        coerce_numbers_to_str = True

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "Order":
        body = dict(data)
        body.setdefault("orderId", doc_id)
        body["orderId"] = str(body["orderId"])
        return cls.model_validate(body)

    def to_document(self, exclude: Optional[set[str]] = None) -> dict[str, Any]:
        data = self.model_dump(by_alias=True, mode="python", exclude=exclude)
        for key in ("status", "verificationStatus"):
            if key in data and isinstance(data[key], Enum):
                data[key] = data[key].value
        return data

    @property
    def is_terminal(self) -> bool:
        return self.verification_status in TERMINAL_STATES


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def is_cod_gateway(payload: dict[str, Any]) -> bool:
    """COD when the gateway, or any listed gateway name, mentions cash on delivery."""
    names = [payload.get("gateway") or ""]
    names.extend(payload.get("payment_gateway_names") or [])
    for name in names:
        lowered = str(name).lower()
        if "cod" in lowered or "cash on delivery" in lowered:
            return True
    return False


def order_from_event(
    payload: dict[str, Any],
    country_code: str = DEFAULT_COUNTRY_CODE,
    now: Optional[datetime] = None,
) -> Order:
    """
    Build an Order from a storefront order-created payload.

    The phone is taken from the order, then the customer record, then
    the shipping address.
    """
    now = now or utc_now()
    customer = payload.get("customer") or {}
    shipping = payload.get("shipping_address") or {}

    phone = payload.get("phone") or customer.get("phone") or shipping.get("phone")

    if customer:
        customer_name = f"{customer.get('first_name') or ''} {customer.get('last_name') or ''}".strip()
    else:
        customer_name = ""

    items = [
        OrderItem(
            name=str(item.get("name") or item.get("title") or ""),
            quantity=int(item.get("quantity") or 1),
            price=item.get("price"),
        )
        for item in payload.get("line_items") or []
    ]

    return Order(
        order_id=str(payload.get("id") or payload.get("order_number")),
        order_number=payload.get("order_number"),
        total_price=_to_float(payload.get("total_price")),
        currency=payload.get("currency") or "INR",
        customer_name=customer_name or "Guest",
        email=payload.get("email") or None,
        phone=str(phone) if phone else None,
        phone_normalized=normalize_phone(phone, country_code),
        status=OrderStatus.COD if is_cod_gateway(payload) else OrderStatus.PAID,
        items=items,
        address1=shipping.get("address1") or "",
        city=shipping.get("city") or "",
        state=shipping.get("province") or "",
        zip=str(shipping.get("zip") or ""),
        created_at=now,
        updated_at=now,
    )
