"""
Order service: turns a checkout into a persisted order.

Handles:
- Checkout validation (cart, customer fields, payment method, coupon,
  transaction reference) before any write
- Payment plan calculation and the frozen rule snapshot
- Store-unique order numbers (time-derived, suffix retry on collision)
- Order + line items written as one logical unit
- Best-effort side effects: lead conversion and coupon usage
- Customer order lookup by order number and phone
- Staff status changes and mark-as-paid

Side-effect failures are logged and never turn a placed order into a failed
checkout.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Protocol

from domain.coupon import Coupon, CouponError
from domain.money import ZERO, money_to_json, to_money
from domain.order import (
    CartLine,
    CustomerDetails,
    Order,
    OrderItem,
    OrderStatus,
    generate_order_number,
    order_number_with_suffix,
    phones_match,
)
from domain.payment import (
    PaymentMethodRule,
    PaymentPlan,
    PaymentStatus,
    PaymentValidationError,
    calculate_payment_plan,
    finalize_payment,
)
from domain.time import Clock, to_iso_utc, utc_now
from repositories.order_repository import DuplicateOrderNumberError
from services.lead_capture_service import LeadCaptureService

logger = logging.getLogger(__name__)

MAX_ORDER_NUMBER_ATTEMPTS: int = 5


class OrderValidationError(ValueError):
    """Raised when a checkout cannot become an order. Nothing was written."""


class OrderPersistenceError(RuntimeError):
    """Raised when the order could not be stored. The checkout failed."""


class OrderNotFoundError(LookupError):
    """Raised when an order id does not exist."""


class OrderStore(Protocol):
    def order_number_exists(self, order_number: str) -> bool: ...

    def insert_order(self, row: Mapping[str, Any]) -> Order: ...

    def insert_items(self, rows: List[Mapping[str, Any]]) -> List[OrderItem]: ...

    def delete_order(self, order_id: str) -> None: ...

    def get(self, order_id: str) -> Optional[Order]: ...

    def get_by_number(self, order_number: str) -> Optional[Order]: ...

    def update_fields(self, order_id: str, fields: Mapping[str, Any]) -> int: ...


class PaymentMethodStore(Protocol):
    def get_by_code(self, code: str) -> Optional[PaymentMethodRule]: ...


class CouponStore(Protocol):
    def get_active_by_code(self, code: str) -> Optional[Coupon]: ...

    def increment_usage(self, coupon_id: str) -> None: ...


@dataclass(frozen=True, slots=True)
class CheckoutRequest:
    """
    Everything the customer submitted at checkout.
    """
    customer: CustomerDetails
    items: List[CartLine]
    payment_method_code: str
    shipping_cost: Decimal = Decimal("0.00")
    shipping_method: Optional[str] = None
    transaction_id: Optional[str] = None
    coupon_code: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PlacedOrder:
    """
    Result of a successful checkout.

    lead_converted / coupon_recorded report the best-effort side effects;
    warnings carries their failure messages (empty when all succeeded).
    """
    order: Order
    plan: PaymentPlan
    lead_converted: bool = False
    coupon_recorded: bool = False
    warnings: List[str] = field(default_factory=list)


def _item_row(order_id: str, line: CartLine) -> dict[str, Any]:
    return {
        "order_id": order_id,
        "product_id": line.product_id,
        "product_name": line.product_name,
        "product_image": line.product_image,
        "quantity": line.quantity,
        "price": money_to_json(to_money(line.price)),
        "line_total": money_to_json(line.line_total),
        "variant_id": line.variant_id,
        "variant_info": dict(line.variant_info) if line.variant_info else None,
    }


class OrderAssembler:
    def __init__(
        self,
        orders: OrderStore,
        payment_methods: PaymentMethodStore,
        coupons: Optional[CouponStore] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._orders = orders
        self._payment_methods = payment_methods
        self._coupons = coupons
        self._clock = clock

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_cart(self, request: CheckoutRequest) -> Decimal:
        if not request.items:
            raise OrderValidationError("Cart is empty")
        for line in request.items:
            if line.quantity < 1:
                raise OrderValidationError(f"Invalid quantity for {line.product_name}")
            if to_money(line.price) < ZERO:
                raise OrderValidationError(f"Invalid price for {line.product_name}")
        return sum((line.line_total for line in request.items), ZERO)

    def _resolve_rule(self, code: str) -> PaymentMethodRule:
        rule = self._payment_methods.get_by_code(code)
        if rule is None or not rule.is_enabled:
            raise OrderValidationError(f"Payment method is not available: {code}")
        return rule

    def _resolve_coupon(
        self, code: Optional[str], subtotal: Decimal, shipping_cost: Decimal
    ) -> tuple[Optional[Coupon], Decimal]:
        if not code or not code.strip():
            return None, ZERO
        if self._coupons is None:
            raise OrderValidationError("Coupons are not accepted")
        coupon = self._coupons.get_active_by_code(code)
        if coupon is None:
            raise OrderValidationError("Invalid coupon code")
        try:
            discount = coupon.discount_for(subtotal, shipping_cost, self._clock())
        except CouponError as e:
            raise OrderValidationError(str(e)) from e
        return coupon, discount

    def quote(
        self,
        payment_method_code: str,
        subtotal: Any,
        shipping_cost: Any,
        discount: Any = ZERO,
    ) -> PaymentPlan:
        """Payment plan preview for the checkout page (no writes)."""

        rule = self._resolve_rule(payment_method_code)
        try:
            return calculate_payment_plan(subtotal, shipping_cost, discount, rule)
        except ValueError as e:
            raise OrderValidationError(str(e)) from e

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    def place_order(
        self,
        request: CheckoutRequest,
        lead_capture: Optional[LeadCaptureService] = None,
    ) -> PlacedOrder:
        """
        Validate, price and persist a checkout.

        Raises:
            OrderValidationError: invalid checkout; nothing was written.
            OrderPersistenceError: the order could not be stored.
        """

        # 1. Validate
        subtotal = self._validate_cart(request)
        missing = request.customer.missing_fields()
        if missing:
            raise OrderValidationError(f"Missing required fields: {', '.join(missing)}")

        shipping_cost = to_money(request.shipping_cost)
        if shipping_cost < ZERO:
            raise OrderValidationError("Shipping cost must be >= 0")

        rule = self._resolve_rule(request.payment_method_code)
        coupon, discount = self._resolve_coupon(request.coupon_code, subtotal, shipping_cost)

        # 2. Price
        plan = calculate_payment_plan(subtotal, shipping_cost, discount, rule)
        try:
            transaction_id = finalize_payment(plan, rule, request.transaction_id)
        except PaymentValidationError as e:
            raise OrderValidationError(str(e)) from e

        now = self._clock()
        row = {
            "customer_name": request.customer.name.strip(),
            "customer_phone": request.customer.phone.strip(),
            "customer_email": (request.customer.email or "").strip() or None,
            "shipping_address": request.customer.address.strip(),
            "shipping_city": request.customer.city.strip(),
            "shipping_method": request.shipping_method or "Standard",
            "notes": (request.customer.notes or "").strip() or None,
            "status": OrderStatus.PENDING.value,
            "payment_method": rule.code,
            "payment_method_id": rule.id,
            "payment_method_name": rule.name,
            "transaction_id": transaction_id,
            "coupon_code": coupon.code if coupon is not None else None,
            "subtotal": money_to_json(plan.subtotal),
            "discount": money_to_json(plan.discount),
            "shipping_cost": money_to_json(plan.shipping_cost),
            "total": money_to_json(plan.total),
            "payment_status": plan.payment_status.value,
            "paid_amount": money_to_json(plan.advance_amount),
            "due_amount": money_to_json(plan.due_on_delivery),
            "partial_rule_snapshot": rule.snapshot(plan, now),
        }

        # 3. Persist
        order = self._insert_with_unique_number(row, generate_order_number(now))
        items = self._insert_items(order, request.items)
        order = replace(order, items=items)
        logger.info(
            "Order placed",
            extra={
                "order_id": order.id,
                "order_number": order.order_number,
                "total": str(plan.total),
                "payment_status": plan.payment_status.value,
            },
        )

        # 4. Side effects (best effort)
        warnings: List[str] = []
        lead_converted = False
        if lead_capture is not None:
            try:
                lead_converted = lead_capture.convert(order.id) is not None
            except Exception as e:
                warnings.append(f"Lead conversion failed: {e}")
                logger.warning("Lead conversion failed", extra={"order_id": order.id, "error": str(e)})

        coupon_recorded = False
        if coupon is not None and self._coupons is not None:
            try:
                self._coupons.increment_usage(coupon.id)
                coupon_recorded = True
            except Exception as e:
                warnings.append(f"Coupon usage update failed: {e}")
                logger.warning(
                    "Coupon usage update failed",
                    extra={"order_id": order.id, "coupon_id": coupon.id, "error": str(e)},
                )

        return PlacedOrder(
            order=order,
            plan=plan,
            lead_converted=lead_converted,
            coupon_recorded=coupon_recorded,
            warnings=warnings,
        )

    def _insert_with_unique_number(self, row: Mapping[str, Any], base_number: str) -> Order:
        for attempt in range(1, MAX_ORDER_NUMBER_ATTEMPTS + 1):
            candidate = order_number_with_suffix(base_number, attempt)
            try:
                if self._orders.order_number_exists(candidate):
                    continue
                return self._orders.insert_order({**row, "order_number": candidate})
            except DuplicateOrderNumberError:
                logger.info("Order number collision, retrying", extra={"order_number": candidate})
                continue
            except RuntimeError as e:
                raise OrderPersistenceError(f"Failed to create order: {e}") from e

        raise OrderPersistenceError(
            f"Could not allocate a unique order number after {MAX_ORDER_NUMBER_ATTEMPTS} attempts"
        )

    def _insert_items(self, order: Order, lines: List[CartLine]) -> List[OrderItem]:
        try:
            return self._orders.insert_items([_item_row(order.id, line) for line in lines])
        except RuntimeError as e:
            try:
                self._orders.delete_order(order.id)
            except Exception as cleanup_error:
                logger.error(
                    "Failed to remove order after item insert failure",
                    extra={"order_id": order.id, "error": str(cleanup_error)},
                )
            raise OrderPersistenceError(f"Failed to create order items: {e}") from e

    def get_order(self, order_id: str) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order not found: {order_id}")
        return order

    def track_order(self, order_number: str, phone: str) -> Order:
        """
        Customer order lookup by order number and phone.

        A wrong phone is reported exactly like an unknown order number.
        """

        order = self._orders.get_by_number(order_number.strip())
        if order is None or not phones_match(order.customer_phone, phone):
            logger.info("Order tracking lookup failed", extra={"order_number": order_number})
            raise OrderNotFoundError(f"Order not found: {order_number}")
        return order

    # ------------------------------------------------------------------
    # Staff operations
    # ------------------------------------------------------------------

    def _update(self, order_id: str, fields: Mapping[str, Any]) -> Order:
        fields = {**fields, "updated_at": to_iso_utc(self._clock(), name="updated_at")}
        try:
            updated = self._orders.update_fields(order_id, fields)
        except RuntimeError as e:
            raise OrderPersistenceError(f"Failed to update order: {e}") from e
        if not updated:
            raise OrderNotFoundError(f"Order not found: {order_id}")
        return self.get_order(order_id)

    def update_status(self, order_id: str, status: OrderStatus) -> Order:
        """Set the fulfillment status chosen by staff."""

        order = self._update(order_id, {"status": status.value})
        logger.info("Order status updated", extra={"order_id": order_id, "status": status.value})
        return order

    def mark_paid(self, order_id: str) -> Order:
        """
        Record that the full total has been collected.

        Moves everything still due into paid_amount, so the paid/due split
        keeps summing to the total. Already-paid orders are returned as is.
        """

        order = self.get_order(order_id)
        if order.payment_status is PaymentStatus.PAID and order.due_amount == ZERO:
            return order
        order = self._update(
            order_id,
            {
                "payment_status": PaymentStatus.PAID.value,
                "paid_amount": money_to_json(order.total),
                "due_amount": money_to_json(ZERO),
            },
        )
        logger.info("Order marked paid", extra={"order_id": order_id, "total": str(order.total)})
        return order


__all__ = [
    "CheckoutRequest",
    "MAX_ORDER_NUMBER_ATTEMPTS",
    "OrderAssembler",
    "OrderNotFoundError",
    "OrderPersistenceError",
    "OrderValidationError",
    "PlacedOrder",
]
