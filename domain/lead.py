"""
Domain: Checkout lead entity.

A lead is a recoverable snapshot of an in-progress (possibly abandoned)
checkout. It is keyed by the customer's phone and by a correlation token held
by the client session.

Rules implemented here:
- Phone is mandatory; snapshots with a phone shorter than 5 characters (after
  trimming) are incomplete and are not stored.
- At most one non-converted lead per phone per dedup window (24 hours). The
  lookup lives in the lead repository; the window constant lives here.
- Optional text fields are trimmed; blank values are stored as NULL.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional
from uuid import uuid4

from .money import money_to_json, to_money
from .time import require_utc_timestamp, to_iso_utc

MIN_PHONE_LENGTH: int = 5
DEDUP_WINDOW: timedelta = timedelta(hours=24)
DEFAULT_LEAD_SOURCE: str = "checkout"


class LeadStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    CONVERTED = "converted"
    INVALID = "invalid"


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = value.strip()
    return text or None


def is_complete_phone(phone: Optional[str]) -> bool:
    """A lead is worth storing only once the phone has at least 5 characters."""

    return phone is not None and len(phone.strip()) >= MIN_PHONE_LENGTH


def new_lead_token() -> str:
    """Correlation token created once per client session."""

    return str(uuid4())


@dataclass(frozen=True, slots=True)
class LeadItem:
    """Cart line captured with the lead (decoupled from the live catalog)."""

    product_id: str
    product_name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal

    def to_json(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "unit_price": money_to_json(self.unit_price),
            "quantity": self.quantity,
            "line_total": money_to_json(self.line_total),
        }

    @staticmethod
    def from_json(data: Any) -> "LeadItem":
        return LeadItem(
            product_id=str(data["product_id"]),
            product_name=str(data.get("product_name", "")),
            unit_price=to_money(data.get("unit_price")),
            quantity=int(data.get("quantity", 0)),
            line_total=to_money(data.get("line_total")),
        )


@dataclass(frozen=True, slots=True)
class LeadAttribution:
    """Where the checkout came from (page, campaign, browser)."""

    page_url: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True, slots=True)
class LeadData:
    """
    Checkout snapshot submitted by the client.

    Only phone is required; everything else is whatever the customer has
    typed so far.
    """

    phone: str
    items: List[LeadItem] = field(default_factory=list)
    subtotal: Decimal = Decimal("0.00")
    shipping_fee: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")
    currency_code: str = "BDT"

    customer_name: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    notes: Optional[str] = None

    attribution: LeadAttribution = field(default_factory=LeadAttribution)

    @property
    def is_complete(self) -> bool:
        return is_complete_phone(self.phone)

    @property
    def normalized_phone(self) -> str:
        return (self.phone or "").strip()

    def to_payload(self, *, lead_token: str, activity_at: datetime) -> dict[str, Any]:
        """Row payload for an insert or update of the checkout_leads table."""

        require_utc_timestamp("activity_at", activity_at)
        return {
            "lead_token": lead_token,
            "customer_name": _clean(self.customer_name),
            "phone": self.normalized_phone,
            "email": _clean(self.email),
            "address": _clean(self.address),
            "city": _clean(self.city),
            "country": _clean(self.country),
            "notes": _clean(self.notes),
            "items": [item.to_json() for item in self.items],
            "subtotal": money_to_json(to_money(self.subtotal)),
            "shipping_fee": money_to_json(to_money(self.shipping_fee)),
            "total": money_to_json(to_money(self.total)),
            "currency_code": self.currency_code,
            "page_url": _clean(self.attribution.page_url),
            "utm_source": _clean(self.attribution.utm_source),
            "utm_medium": _clean(self.attribution.utm_medium),
            "utm_campaign": _clean(self.attribution.utm_campaign),
            "user_agent": _clean(self.attribution.user_agent),
            "last_activity_at": to_iso_utc(activity_at, name="activity_at"),
        }


@dataclass(frozen=True, slots=True)
class CheckoutLead:
    """
    Persisted checkout lead, as read back from the store.
    """

    id: str
    lead_token: str
    phone: str
    status: LeadStatus
    created_at: datetime
    last_activity_at: datetime

    lead_no: Optional[str] = None
    source: str = DEFAULT_LEAD_SOURCE
    customer_name: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    notes: Optional[str] = None

    items: List[LeadItem] = field(default_factory=list)
    subtotal: Decimal = Decimal("0.00")
    shipping_fee: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")
    currency_code: str = "BDT"

    attribution: LeadAttribution = field(default_factory=LeadAttribution)

    updated_at: Optional[datetime] = None
    converted_order_id: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        require_utc_timestamp("last_activity_at", self.last_activity_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    @property
    def is_converted(self) -> bool:
        return self.status is LeadStatus.CONVERTED

    def within_dedup_window(self, as_of: datetime, window: timedelta = DEDUP_WINDOW) -> bool:
        """True if a new snapshot with the same phone should reuse this lead."""

        require_utc_timestamp("as_of", as_of)
        return not self.is_converted and as_of - self.created_at <= window


@dataclass(slots=True)
class LeadSession:
    """
    Client-held correlation state.

    `lead_token` is created once per session; `lead_id` is known once a lead
    record exists. Possession of both authorizes updates and conversion.
    """

    lead_token: str = field(default_factory=new_lead_token)
    lead_id: Optional[str] = None

    @property
    def has_lead(self) -> bool:
        return bool(self.lead_id and self.lead_token)

    def adopt(self, lead_id: str, lead_token: str) -> None:
        self.lead_id = lead_id
        self.lead_token = lead_token

    def clear(self) -> None:
        """Forget the lead and start a fresh token (after conversion)."""

        self.lead_id = None
        self.lead_token = new_lead_token()


__all__ = [
    "CheckoutLead",
    "DEDUP_WINDOW",
    "DEFAULT_LEAD_SOURCE",
    "LeadAttribution",
    "LeadData",
    "LeadItem",
    "LeadSession",
    "LeadStatus",
    "MIN_PHONE_LENGTH",
    "is_complete_phone",
    "new_lead_token",
]
