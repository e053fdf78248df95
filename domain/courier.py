"""
Domain: Courier parcel state machine.

A parcel is a sub-state of an Order, not a separate aggregate.

States and transitions:

    none --create--> created --(provider ack)--> pending --(status poll)--> in_transit --> delivered
                                                       \\--> cancelled
                                                       \\--> failed
    any state --recreate--> created

Rules implemented here:
- A parcel is created only by an explicit create (or recreate) action.
- Status polling moves a parcel forward only. Observations that would move it
  backwards (or out of a terminal state) are ignored.
- Provider vocabulary is mapped onto CourierStatus. Any other non-empty status
  means the parcel has left the merchant and maps to in_transit.
- The COD amount is the order total for cash-on-delivery orders, otherwise 0.

This module contains only pure domain logic: no I/O, no database, no frameworks.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional

from .money import money_to_json
from .time import require_utc_timestamp

STEADFAST_PROVIDER: str = "steadfast"


class CourierStatus(str, Enum):
    NONE = "none"
    CREATED = "created"
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @staticmethod
    def parse(value: Any) -> "CourierStatus":
        """NULL courier_status on an order means no parcel was ever created."""

        if value is None or value == "":
            return CourierStatus.NONE
        return CourierStatus(str(value))

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


class CourierAction(str, Enum):
    CREATE_PARCEL = "create_parcel"
    RECREATE_PARCEL = "recreate_parcel"
    TRACK_STATUS = "track_status"
    TEST_CONNECTION = "test_connection"


class CourierOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


_TERMINAL: FrozenSet[CourierStatus] = frozenset(
    {CourierStatus.DELIVERED, CourierStatus.CANCELLED, CourierStatus.FAILED}
)

# Forward moves reachable by status polling.
_TRACK_TRANSITIONS: Dict[CourierStatus, FrozenSet[CourierStatus]] = {
    CourierStatus.NONE: frozenset(),
    CourierStatus.CREATED: frozenset(
        {
            CourierStatus.PENDING,
            CourierStatus.IN_TRANSIT,
            CourierStatus.DELIVERED,
            CourierStatus.CANCELLED,
            CourierStatus.FAILED,
        }
    ),
    CourierStatus.PENDING: frozenset(
        {
            CourierStatus.IN_TRANSIT,
            CourierStatus.DELIVERED,
            CourierStatus.CANCELLED,
            CourierStatus.FAILED,
        }
    ),
    CourierStatus.IN_TRANSIT: frozenset(
        {CourierStatus.DELIVERED, CourierStatus.CANCELLED, CourierStatus.FAILED}
    ),
    CourierStatus.DELIVERED: frozenset(),
    CourierStatus.CANCELLED: frozenset(),
    CourierStatus.FAILED: frozenset(),
}

# Steadfast delivery_status vocabulary.
STEADFAST_STATUS_MAP: Mapping[str, CourierStatus] = {
    "in_review": CourierStatus.PENDING,
    "pending": CourierStatus.PENDING,
    "hold": CourierStatus.IN_TRANSIT,
    "delivered": CourierStatus.DELIVERED,
    "partial_delivered": CourierStatus.DELIVERED,
    "delivered_approval_pending": CourierStatus.DELIVERED,
    "partial_delivered_approval_pending": CourierStatus.DELIVERED,
    "cancelled": CourierStatus.CANCELLED,
    "cancelled_approval_pending": CourierStatus.CANCELLED,
    "unknown": CourierStatus.FAILED,
    "unknown_approval_pending": CourierStatus.FAILED,
}


def map_provider_status(raw_status: Optional[str]) -> Optional[CourierStatus]:
    """
    Map a provider status string onto CourierStatus.

    Unlisted non-empty statuses are in_transit. None only for an empty status.
    """

    status = (raw_status or "").strip().lower()
    if not status:
        return None
    return STEADFAST_STATUS_MAP.get(status, CourierStatus.IN_TRANSIT)


def can_track_transition(current: CourierStatus, observed: CourierStatus) -> bool:
    return observed in _TRACK_TRANSITIONS[current]


def next_tracked_status(current: CourierStatus, observed: CourierStatus) -> CourierStatus:
    """
    Resolve the state after a status poll.

    Same-state observations and backwards moves leave the state unchanged.
    """

    if current is CourierStatus.NONE:
        raise ValueError("Cannot track a parcel that was never created")
    if can_track_transition(current, observed):
        return observed
    return current


def idempotency_key(order_id: str, superseded_consignment_id: Optional[str] = None) -> str:
    """
    Client idempotency token for a parcel creation.

    Derived from the order id and the consignment being replaced (None for a
    first create), so a retried request for the same parcel carries the same
    key while each recreate gets a fresh one.
    """

    if not order_id:
        raise ValueError("order_id is required")
    seed = f"{order_id}:{superseded_consignment_id or ''}"
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()[:32]


@dataclass(frozen=True, slots=True)
class CourierSettings:
    """Per-store courier provider configuration."""

    provider: str
    enabled: bool
    api_base_url: Optional[str] = None
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    merchant_id: Optional[str] = None
    cod_enabled: bool = True

    @property
    def is_configured(self) -> bool:
        return bool(self.enabled and self.api_base_url and self.api_key and self.api_secret)


@dataclass(frozen=True, slots=True)
class CourierParcel:
    """Courier correlation fields stored on an order."""

    status: CourierStatus = CourierStatus.NONE
    provider: Optional[str] = None
    tracking_id: Optional[str] = None
    consignment_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    @property
    def exists(self) -> bool:
        return bool(self.consignment_id)


@dataclass(frozen=True, slots=True)
class ParcelRequest:
    """What is sent to the courier provider to create a parcel."""

    invoice: str
    recipient_name: str
    recipient_phone: str
    recipient_address: str
    recipient_city: str
    cod_amount: Decimal
    note: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "invoice": self.invoice,
            "recipient_name": self.recipient_name,
            "recipient_phone": self.recipient_phone,
            "recipient_address": self.recipient_address,
            "recipient_city": self.recipient_city,
            "cod_amount": money_to_json(self.cod_amount),
        }
        if self.note:
            payload["note"] = self.note
        return payload


@dataclass(frozen=True, slots=True)
class ParcelReceipt:
    """Provider acknowledgement of a created parcel."""

    consignment_id: str
    tracking_id: Optional[str]
    provider_status: Optional[str]
    raw_response: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class CourierLogEntry:
    """Append-only audit record of one provider interaction."""

    action: CourierAction
    provider: str
    outcome: CourierOutcome
    order_id: Optional[str] = None
    message: Optional[str] = None
    request_payload: Optional[Mapping[str, Any]] = None
    response_payload: Optional[Mapping[str, Any]] = None


__all__ = [
    "CourierAction",
    "CourierLogEntry",
    "CourierOutcome",
    "CourierParcel",
    "CourierSettings",
    "CourierStatus",
    "ParcelReceipt",
    "ParcelRequest",
    "STEADFAST_PROVIDER",
    "STEADFAST_STATUS_MAP",
    "can_track_transition",
    "idempotency_key",
    "map_provider_status",
    "next_tracked_status",
]
