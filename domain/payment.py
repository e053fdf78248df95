"""
Domain: Payment method rules and partial-payment plans.

Rules implemented here:
- total = subtotal - discount + shipping_cost, never negative. The discount is
  clamped to subtotal + shipping_cost.
- Partial payment disabled: advance = 0, due_on_delivery = total.
- partial_type == delivery_charge: advance = shipping_cost.
- partial_type == fixed_amount: advance = min(fixed_partial_amount, total).
- due_on_delivery = total - advance, floored at 0.
- advance + due_on_delivery == total for every plan.
- A rule with require_transaction_id cannot be finalized into an order without
  a non-empty transaction reference.

Rules change over time, so orders store `PaymentMethodRule.snapshot(plan)`
rather than a reference to the live rule.

This module contains only pure domain logic: no I/O, no database, no frameworks.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from .money import ZERO, money_to_json, require_non_negative, to_money
from .time import require_utc_timestamp, to_iso_utc

CASH_ON_DELIVERY_CODE: str = "cod"


class PaymentValidationError(ValueError):
    """Raised when a payment plan cannot be finalized with the given input."""


class TransactionIdRequiredError(PaymentValidationError):
    """The payment method requires a transaction reference and none was given."""


class PartialType(str, Enum):
    NONE = "none"
    DELIVERY_CHARGE = "delivery_charge"
    FIXED_AMOUNT = "fixed_amount"

    @staticmethod
    def parse(value: Any) -> "PartialType":
        """NULL and empty strings in the payment_methods table mean 'none'."""

        if value is None or value == "":
            return PartialType.NONE
        return PartialType(str(value))


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIAL_PAID = "partial_paid"
    PAID = "paid"


@dataclass(frozen=True, slots=True)
class PaymentMethodRule:
    """
    A payment method and the partial-payment rule attached to it.

    Immutable: an order computes its plan from the rule as it was at
    placement time.
    """

    code: str
    allow_partial_delivery_payment: bool = False
    partial_type: PartialType = PartialType.NONE
    fixed_partial_amount: Optional[Decimal] = None
    require_transaction_id: bool = False

    # Catalog metadata
    id: Optional[str] = None
    name: Optional[str] = None
    is_enabled: bool = True

    def __post_init__(self) -> None:
        if not self.code:
            raise ValueError("code is required")
        if self.fixed_partial_amount is not None:
            require_non_negative("fixed_partial_amount", self.fixed_partial_amount)

    @property
    def is_cash_on_delivery(self) -> bool:
        return self.code == CASH_ON_DELIVERY_CODE

    @property
    def has_partial(self) -> bool:
        return self.allow_partial_delivery_payment and self.partial_type is not PartialType.NONE

    def snapshot(self, plan: "PaymentPlan", captured_at: datetime) -> dict[str, Any]:
        """
        Frozen, JSON-serializable copy of this rule as applied to `plan`.

        Stored on the order as `partial_rule_snapshot`.
        """

        require_utc_timestamp("captured_at", captured_at)
        return {
            "payment_method_id": self.id,
            "code": self.code,
            "name": self.name,
            "allow_partial_delivery_payment": self.allow_partial_delivery_payment,
            "partial_type": self.partial_type.value,
            "fixed_partial_amount": (
                money_to_json(self.fixed_partial_amount)
                if self.fixed_partial_amount is not None
                else None
            ),
            "require_transaction_id": self.require_transaction_id,
            "advance_amount": money_to_json(plan.advance_amount),
            "due_on_delivery": money_to_json(plan.due_on_delivery),
            "captured_at": to_iso_utc(captured_at, name="captured_at"),
        }


@dataclass(frozen=True, slots=True)
class PaymentPlan:
    """Advance/due split of an order total."""

    subtotal: Decimal
    discount: Decimal
    shipping_cost: Decimal
    total: Decimal
    advance_amount: Decimal
    due_on_delivery: Decimal

    @property
    def payment_status(self) -> PaymentStatus:
        if self.advance_amount == ZERO:
            return PaymentStatus.UNPAID
        if self.due_on_delivery == ZERO:
            return PaymentStatus.PAID
        return PaymentStatus.PARTIAL_PAID


def calculate_payment_plan(
    subtotal: Any,
    shipping_cost: Any,
    discount: Any,
    rule: PaymentMethodRule,
) -> PaymentPlan:
    """
    Split an order total into an advance and a balance due on delivery.

    Deterministic and side-effect free.

    Raises:
        ValueError: if subtotal or shipping_cost is negative.
    """

    subtotal_amount = to_money(subtotal)
    shipping_amount = to_money(shipping_cost)
    require_non_negative("subtotal", subtotal_amount)
    require_non_negative("shipping_cost", shipping_amount)

    gross = subtotal_amount + shipping_amount
    discount_amount = min(max(to_money(discount), ZERO), gross)
    total = gross - discount_amount

    advance = ZERO
    if rule.allow_partial_delivery_payment:
        if rule.partial_type is PartialType.DELIVERY_CHARGE:
            # A discount larger than the subtotal eats into shipping.
            advance = min(shipping_amount, total)
        elif rule.partial_type is PartialType.FIXED_AMOUNT:
            advance = min(to_money(rule.fixed_partial_amount), total)

    due = max(total - advance, ZERO)

    return PaymentPlan(
        subtotal=subtotal_amount,
        discount=discount_amount,
        shipping_cost=shipping_amount,
        total=total,
        advance_amount=advance,
        due_on_delivery=due,
    )


def finalize_payment(
    plan: PaymentPlan,
    rule: PaymentMethodRule,
    transaction_id: Optional[str],
) -> Optional[str]:
    """
    Check that `plan` may be turned into an order under `rule`.

    Returns the normalized transaction reference (stripped, or None when blank).

    Raises:
        TransactionIdRequiredError: if the rule requires a transaction id and
        none was supplied.
    """

    reference = (transaction_id or "").strip() or None
    if rule.require_transaction_id and reference is None:
        raise TransactionIdRequiredError(
            f"Transaction ID is required for payment method '{rule.code}'"
        )
    if plan.advance_amount + plan.due_on_delivery != plan.total:
        raise PaymentValidationError("advance_amount + due_on_delivery must equal total")
    return reference


__all__ = [
    "CASH_ON_DELIVERY_CODE",
    "PartialType",
    "PaymentMethodRule",
    "PaymentPlan",
    "PaymentStatus",
    "PaymentValidationError",
    "TransactionIdRequiredError",
    "calculate_payment_plan",
    "finalize_payment",
]
