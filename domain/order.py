"""
Domain: Orders and order line items.

Rules implemented here:
- paid_amount + due_amount == total for every order after creation.
- Line items carry a name/price/quantity snapshot so historical orders do not
  change when the catalog does.
- Parcel tracking moves the order to shipped or delivered, never out of
  cancelled or delivered.
- Order numbers are time-derived: "ORD-" + the last 8 digits of the epoch
  milliseconds. Collisions are resolved by the order service with a numeric
  suffix ("ORD-12345678-2").
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Mapping, Optional

from .courier import CourierParcel, CourierStatus
from .money import to_money
from .payment import PaymentStatus
from .time import require_utc_timestamp

ORDER_NUMBER_PREFIX: str = "ORD-"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Order status implied by a tracked parcel status.
_COURIER_ORDER_STATUS: Mapping[CourierStatus, OrderStatus] = {
    CourierStatus.IN_TRANSIT: OrderStatus.SHIPPED,
    CourierStatus.DELIVERED: OrderStatus.DELIVERED,
}


def order_status_after_tracking(current: OrderStatus, courier_status: CourierStatus) -> Optional[OrderStatus]:
    """
    New order status after a parcel status refresh, or None to leave it.

    Cancelled and delivered orders are never moved by tracking.
    """

    if current in (OrderStatus.CANCELLED, OrderStatus.DELIVERED):
        return None
    target = _COURIER_ORDER_STATUS.get(courier_status)
    if target is None or target is current:
        return None
    return target


# Shortest phone tail accepted as the same number (national significant digits).
MIN_PHONE_MATCH_DIGITS: int = 10


def phones_match(stored: str, supplied: str) -> bool:
    """
    True when a customer-supplied phone is the number stored on an order.

    Only digits are compared, and a country-code prefix on either side is
    tolerated ("+880 1712-345678" matches "01712345678").
    """

    a = "".join(ch for ch in stored or "" if ch.isdigit())
    b = "".join(ch for ch in supplied or "" if ch.isdigit())
    if len(a) < MIN_PHONE_MATCH_DIGITS or len(b) < MIN_PHONE_MATCH_DIGITS:
        return False
    return a[-MIN_PHONE_MATCH_DIGITS:] == b[-MIN_PHONE_MATCH_DIGITS:]


def generate_order_number(now: datetime) -> str:
    """Human-facing order number derived from the placement time."""

    require_utc_timestamp("now", now)
    millis = int(now.timestamp() * 1000)
    return f"{ORDER_NUMBER_PREFIX}{str(millis)[-8:]}"


def order_number_with_suffix(base: str, attempt: int) -> str:
    """Attempt 1 is the base number; later attempts append -2, -3, ..."""

    if attempt < 1:
        raise ValueError("attempt must be >= 1")
    return base if attempt == 1 else f"{base}-{attempt}"


@dataclass(frozen=True, slots=True)
class CustomerDetails:
    name: str
    phone: str
    address: str
    city: str
    email: Optional[str] = None
    country: Optional[str] = None
    notes: Optional[str] = None

    def missing_fields(self) -> List[str]:
        required = {
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
        }
        return [key for key, value in required.items() if not (value or "").strip()]


@dataclass(frozen=True, slots=True)
class CartLine:
    """A cart line as submitted at checkout."""

    product_id: str
    product_name: str
    price: Decimal
    quantity: int
    product_image: Optional[str] = None
    variant_id: Optional[str] = None
    variant_info: Optional[Mapping[str, Any]] = None

    @property
    def line_total(self) -> Decimal:
        return to_money(to_money(self.price) * self.quantity)


@dataclass(frozen=True, slots=True)
class OrderItem:
    order_id: str
    product_id: Optional[str]
    product_name: str
    price: Decimal
    quantity: int
    line_total: Decimal
    product_image: Optional[str] = None
    variant_id: Optional[str] = None
    variant_info: Optional[Mapping[str, Any]] = None
    id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Order:
    """
    A placed order, with its payment split and courier sub-state.
    """

    id: str
    order_number: str
    customer_name: str
    customer_phone: str
    shipping_address: str
    shipping_city: str
    payment_method: str
    subtotal: Decimal
    shipping_cost: Decimal
    total: Decimal
    payment_status: PaymentStatus
    paid_amount: Decimal
    due_amount: Decimal
    status: OrderStatus
    created_at: datetime

    customer_email: Optional[str] = None
    shipping_method: Optional[str] = None
    notes: Optional[str] = None
    discount: Decimal = Decimal("0.00")
    coupon_code: Optional[str] = None
    payment_method_id: Optional[str] = None
    payment_method_name: Optional[str] = None
    transaction_id: Optional[str] = None
    partial_rule_snapshot: Optional[Mapping[str, Any]] = None
    updated_at: Optional[datetime] = None

    courier: CourierParcel = field(default_factory=CourierParcel)
    items: List[OrderItem] = field(default_factory=list)

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)
        if self.paid_amount + self.due_amount != self.total:
            raise ValueError("paid_amount + due_amount must equal total")

    @property
    def full_address(self) -> str:
        return f"{self.shipping_address}, {self.shipping_city}"


__all__ = [
    "CartLine",
    "CustomerDetails",
    "MIN_PHONE_MATCH_DIGITS",
    "ORDER_NUMBER_PREFIX",
    "Order",
    "OrderItem",
    "OrderStatus",
    "generate_order_number",
    "order_number_with_suffix",
    "order_status_after_tracking",
    "phones_match",
]
