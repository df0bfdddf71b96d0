"""
WhatsApp template names and their positional body parameters.

Each builder returns the parameter list in the order the approved
template's placeholders expect.
"""

from enum import Enum
from typing import Any, Mapping

from .models import Order


class Template(str, Enum):
    COD_AUTO_CONFIRMATION = "cod_auto_confirmation"
    ORDER_CONFIRM_AUTO_SCHEDULE = "order_confirm_auto_schedule"
    COD_CONFIRMED = "cod_confirmed"
    UPDATE_ADDRESS = "update_address"
    COD_CANCEL = "cod_cancel"
    CART_RECOVERY = "cart_recovery"


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def cod_auto_confirmation_params(order: Order) -> list[str]:
    item_name = order.items[0].name if order.items and order.items[0].name else "Your Order"
    return [
        order.customer_name,
        _text(order.order_number),
        item_name,
        f"{order.total_price:.2f}",
    ]


def order_confirm_schedule_params(order: Order) -> list[str]:
    address = f"{order.address1}, {order.city}, {order.state or ''}"
    return [
        _text(order.order_number),
        address,
        _text(order.zip),
        _text(order.phone),
    ]


def cod_confirmed_params(order: Order) -> list[str]:
    return [_text(order.order_number)]


def update_address_params(order: Order) -> list[str]:
    return [order.customer_name or "Customer"]


def cod_cancel_params(order: Order) -> list[str]:
    return [order.customer_name or "Customer", _text(order.order_number)]


def cart_recovery_params(checkout: Mapping[str, Any], fallback_url: str) -> list[str]:
    attributes = checkout.get("cart_attributes") or {}
    checkout_url = attributes.get("landing_page_url") or fallback_url
    return [
        checkout.get("first_name") or "Shopper",
        _text(checkout.get("total_price")),
        checkout_url,
    ]
