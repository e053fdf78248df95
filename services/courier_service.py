"""
Courier gateway: parcel creation and tracking with the courier provider.

Handles:
- Create: builds the parcel request from the order, sends it, stores the
  provider's tracking/consignment ids and moves the parcel to `created`
- Recreate: issues a brand-new parcel for an order that already has one
- Track: on-demand status refresh mapped onto the parcel state machine
- Audit: every provider request/response, success or failure, is appended
  to courier_logs

Provider failures raise CourierProviderError with the provider's message. The
stored parcel state is left unchanged and nothing is retried.

Recreate does not cancel the previous parcel with the provider and overwrites
the order's correlation ids; the superseded consignment id is kept in the
audit log entry.
"""

from __future__ import annotations

import logging
import threading
import weakref
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from domain.courier import (
    CourierAction,
    CourierLogEntry,
    CourierOutcome,
    CourierParcel,
    CourierSettings,
    CourierStatus,
    ParcelReceipt,
    ParcelRequest,
    idempotency_key,
    map_provider_status,
    next_tracked_status,
)
from domain.money import ZERO
from domain.order import Order, OrderStatus, order_status_after_tracking
from domain.payment import CASH_ON_DELIVERY_CODE
from domain.time import Clock, to_iso_utc, utc_now
from services.config import CourierConfig
from services.order_service import OrderNotFoundError
from services.steadfast_client import CourierProviderError, SteadfastClient

logger = logging.getLogger(__name__)


class CourierNotConfiguredError(RuntimeError):
    """The courier integration is disabled or missing credentials."""


class ParcelAlreadyExistsError(RuntimeError):
    """Create was called for an order that already has a parcel."""


class ParcelNotFoundError(RuntimeError):
    """Track was called for an order without a consignment id."""


class CourierProvider(Protocol):
    provider: str

    def create_parcel(self, request: ParcelRequest, idempotency_key: Optional[str] = None) -> ParcelReceipt: ...

    def get_status(self, consignment_id: str) -> tuple[str, dict[str, Any]]: ...

    def get_balance(self) -> dict[str, Any]: ...

    def close(self) -> None: ...


class CourierOrderStore(Protocol):
    def get(self, order_id: str) -> Optional[Order]: ...

    def update_courier(self, order_id: str, fields: Mapping[str, Any]) -> None: ...


class CourierLogStore(Protocol):
    def append(self, entry: CourierLogEntry) -> None: ...

    def list_for_order(self, order_id: str) -> List[Mapping[str, Any]]: ...


class CourierSettingsStore(Protocol):
    def get(self, provider: str) -> Optional[CourierSettings]: ...


ProviderFactory = Callable[[CourierSettings], CourierProvider]


@dataclass(frozen=True, slots=True)
class TrackResult:
    status: CourierStatus
    provider_status: str
    changed: bool
    order_status: OrderStatus


def build_parcel_request(order: Order, note: Optional[str] = None) -> ParcelRequest:
    """
    Parcel request for an order.

    cod_amount is the order total for cash-on-delivery orders and 0 for
    prepaid ones.
    """

    is_cod = order.payment_method == CASH_ON_DELIVERY_CODE
    return ParcelRequest(
        invoice=order.order_number,
        recipient_name=order.customer_name,
        recipient_phone=order.customer_phone,
        recipient_address=order.full_address,
        recipient_city=order.shipping_city,
        cod_amount=order.total if is_cod else ZERO,
        note=(note if note is not None else order.notes) or None,
    )


class CourierGateway:
    def __init__(
        self,
        orders: CourierOrderStore,
        logs: CourierLogStore,
        settings: CourierSettingsStore,
        config: Optional[CourierConfig] = None,
        provider_factory: Optional[ProviderFactory] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._orders = orders
        self._logs = logs
        self._settings = settings
        self._config = config or CourierConfig()
        self._provider_factory = provider_factory or (
            lambda s: SteadfastClient(s, timeout=self._config.timeout_seconds)
        )
        self._clock = clock
        # Entries vanish once no caller holds the lock.
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    @property
    def provider(self) -> str:
        return self._config.provider

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _order_lock(self, order_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(order_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[order_id] = lock
            return lock

    def _load_order(self, order_id: str) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order not found: {order_id}")
        return order

    def _open_provider(self) -> CourierProvider:
        settings = self._settings.get(self._config.provider)
        if settings is None or not settings.is_configured:
            raise CourierNotConfiguredError(
                f"Courier integration '{self._config.provider}' is not configured"
            )
        return self._provider_factory(settings)

    def _append_log(self, entry: CourierLogEntry) -> None:
        """
        Write the audit entry. A failed audit write is logged with the full
        entry so the record survives in application logs.
        """

        try:
            self._logs.append(entry)
        except Exception as e:
            logger.error(
                "Failed to write courier audit log",
                extra={
                    "order_id": entry.order_id,
                    "action": entry.action.value,
                    "outcome": entry.outcome.value,
                    "request_payload": entry.request_payload,
                    "response_payload": entry.response_payload,
                    "error": str(e),
                },
            )

    # ------------------------------------------------------------------
    # Create / recreate
    # ------------------------------------------------------------------

    def create_parcel(self, order_id: str, note: Optional[str] = None) -> CourierParcel:
        """
        Create the first parcel for an order.

        Raises:
            ParcelAlreadyExistsError: the order already has a parcel (use recreate).
            CourierProviderError: the provider rejected or failed the request.
        """

        with self._order_lock(order_id):
            order = self._load_order(order_id)
            if order.courier.exists:
                raise ParcelAlreadyExistsError(
                    f"Order {order.order_number} already has parcel {order.courier.consignment_id}; "
                    "use recreate to issue a new one"
                )
            return self._issue_parcel(order, CourierAction.CREATE_PARCEL, note)

    def recreate_parcel(self, order_id: str, note: Optional[str] = None) -> CourierParcel:
        """
        Issue a new, independent parcel for an order.

        The previous parcel is not cancelled with the provider.
        """

        with self._order_lock(order_id):
            order = self._load_order(order_id)
            return self._issue_parcel(order, CourierAction.RECREATE_PARCEL, note)

    def _issue_parcel(self, order: Order, action: CourierAction, note: Optional[str]) -> CourierParcel:
        provider = self._open_provider()
        try:
            request = build_parcel_request(order, note)
            superseded = order.courier.consignment_id
            key = idempotency_key(order.id, superseded)
            logged_request: Dict[str, Any] = {**request.to_payload(), "idempotency_key": key}
            if superseded:
                logged_request["superseded_consignment_id"] = superseded

            try:
                receipt = provider.create_parcel(request, idempotency_key=key)
            except CourierProviderError as e:
                self._append_log(
                    CourierLogEntry(
                        action=action,
                        provider=provider.provider,
                        outcome=CourierOutcome.FAILED,
                        order_id=order.id,
                        message=e.message,
                        request_payload=logged_request,
                        response_payload=e.response_payload,
                    )
                )
                logger.error(
                    "Courier parcel creation failed",
                    extra={"order_id": order.id, "action": action.value, "error": e.message},
                )
                raise
        finally:
            provider.close()

        now = self._clock()
        parcel = CourierParcel(
            status=CourierStatus.CREATED,
            provider=provider.provider,
            tracking_id=receipt.tracking_id,
            consignment_id=receipt.consignment_id,
            created_at=now,
            updated_at=now,
        )
        try:
            self._orders.update_courier(
                order.id,
                {
                    "courier_provider": parcel.provider,
                    "courier_status": parcel.status.value,
                    "courier_tracking_id": parcel.tracking_id,
                    "courier_consignment_id": parcel.consignment_id,
                    "courier_created_at": to_iso_utc(now, name="courier_created_at"),
                    "courier_updated_at": to_iso_utc(now, name="courier_updated_at"),
                    "courier_payload": logged_request,
                    "courier_response": dict(receipt.raw_response),
                },
            )
        finally:
            self._append_log(
                CourierLogEntry(
                    action=action,
                    provider=provider.provider,
                    outcome=CourierOutcome.SUCCESS,
                    order_id=order.id,
                    message=f"Parcel {receipt.consignment_id} created",
                    request_payload=logged_request,
                    response_payload=receipt.raw_response,
                )
            )

        logger.info(
            "Courier parcel created",
            extra={
                "order_id": order.id,
                "action": action.value,
                "consignment_id": receipt.consignment_id,
                "superseded_consignment_id": order.courier.consignment_id,
            },
        )
        return parcel

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def track_parcel(self, order_id: str) -> TrackResult:
        """
        Refresh the parcel status from the provider (manual refresh, no polling).

        An in_transit parcel marks the order shipped and a delivered parcel
        marks it delivered.

        Raises:
            ParcelNotFoundError: the order has no consignment id.
            CourierProviderError: the provider call failed; state unchanged.
        """

        with self._order_lock(order_id):
            return self._track(self._load_order(order_id))

    def _track(self, order: Order) -> TrackResult:
        consignment_id = order.courier.consignment_id
        if not consignment_id:
            raise ParcelNotFoundError(f"Order {order.order_number} has no courier parcel")

        request_payload = {"consignment_id": consignment_id}
        provider = self._open_provider()
        try:
            raw_status, body = provider.get_status(consignment_id)
        except CourierProviderError as e:
            self._append_log(
                CourierLogEntry(
                    action=CourierAction.TRACK_STATUS,
                    provider=provider.provider,
                    outcome=CourierOutcome.FAILED,
                    order_id=order.id,
                    message=e.message,
                    request_payload=request_payload,
                    response_payload=e.response_payload,
                )
            )
            logger.error("Courier status check failed", extra={"order_id": order.id, "error": e.message})
            raise
        finally:
            provider.close()

        current = order.courier.status
        if current is CourierStatus.NONE:
            # Rows written before courier_status existed.
            current = CourierStatus.CREATED

        observed = map_provider_status(raw_status)
        if observed is None:
            logger.warning("Empty courier status", extra={"order_id": order.id})
            new_status = current
        else:
            new_status = next_tracked_status(current, observed)
            if new_status is not observed:
                logger.warning(
                    "Ignoring backwards courier status",
                    extra={"order_id": order.id, "current": current.value, "observed": observed.value},
                )

        now = self._clock()
        fields: Dict[str, Any] = {
            "courier_status": new_status.value,
            "courier_updated_at": to_iso_utc(now, name="courier_updated_at"),
        }
        order_status = order_status_after_tracking(order.status, new_status)
        if order_status is not None:
            fields["status"] = order_status.value
            logger.info(
                "Order status updated from courier",
                extra={"order_id": order.id, "from": order.status.value, "to": order_status.value},
            )

        try:
            self._orders.update_courier(order.id, fields)
        finally:
            self._append_log(
                CourierLogEntry(
                    action=CourierAction.TRACK_STATUS,
                    provider=provider.provider,
                    outcome=CourierOutcome.SUCCESS,
                    order_id=order.id,
                    message=f"{raw_status} -> {new_status.value}",
                    request_payload=request_payload,
                    response_payload=body,
                )
            )

        return TrackResult(
            status=new_status,
            provider_status=raw_status,
            changed=new_status is not order.courier.status,
            order_status=order_status or order.status,
        )

    # ------------------------------------------------------------------
    # Settings check / audit trail
    # ------------------------------------------------------------------

    def test_connection(self) -> dict[str, Any]:
        """Verify credentials against the provider's balance endpoint."""

        provider = self._open_provider()
        try:
            body = provider.get_balance()
        except CourierProviderError as e:
            self._append_log(
                CourierLogEntry(
                    action=CourierAction.TEST_CONNECTION,
                    provider=provider.provider,
                    outcome=CourierOutcome.FAILED,
                    message=e.message,
                    response_payload=e.response_payload,
                )
            )
            raise
        finally:
            provider.close()

        self._append_log(
            CourierLogEntry(
                action=CourierAction.TEST_CONNECTION,
                provider=provider.provider,
                outcome=CourierOutcome.SUCCESS,
                message="Connection OK",
                response_payload=body,
            )
        )
        return body

    def audit_trail(self, order_id: str) -> List[Mapping[str, Any]]:
        self._load_order(order_id)
        return self._logs.list_for_order(order_id)


__all__ = [
    "CourierGateway",
    "CourierNotConfiguredError",
    "CourierProviderError",
    "ParcelAlreadyExistsError",
    "ParcelNotFoundError",
    "TrackResult",
    "build_parcel_request",
]
