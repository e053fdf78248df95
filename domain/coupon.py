"""
Domain: Coupons.

Rules implemented here:
- Codes are case-insensitive and stored upper-case.
- A coupon applies only while active, after starts_at, before expires_at, below
  max_uses and when the subtotal meets min_order_amount.
- percentage: discount = subtotal * value / 100
  fixed: discount = value
  free_shipping: discount = shipping cost
- The discount never exceeds subtotal + shipping (the payment plan clamps too).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from .money import ZERO, to_money
from .time import require_utc_timestamp


class CouponError(ValueError):
    """Raised when a coupon cannot be applied to a cart."""


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_SHIPPING = "free_shipping"


def normalize_code(code: str) -> str:
    return code.strip().upper()


@dataclass(frozen=True, slots=True)
class Coupon:
    id: str
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    starts_at: datetime
    min_order_amount: Decimal = Decimal("0.00")
    max_uses: Optional[int] = None
    used_count: int = 0
    expires_at: Optional[datetime] = None
    is_active: bool = True

    def __post_init__(self) -> None:
        require_utc_timestamp("starts_at", self.starts_at)
        if self.expires_at is not None:
            require_utc_timestamp("expires_at", self.expires_at)

    def validate(self, subtotal: Decimal, as_of: datetime) -> None:
        """
        Raises CouponError with a customer-facing message if the coupon does
        not apply.
        """

        require_utc_timestamp("as_of", as_of)
        if not self.is_active:
            raise CouponError("Invalid coupon code")
        if self.expires_at is not None and self.expires_at < as_of:
            raise CouponError("This coupon has expired")
        if self.starts_at > as_of:
            raise CouponError("This coupon is not yet active")
        if self.max_uses and self.used_count >= self.max_uses:
            raise CouponError("This coupon has reached its usage limit")
        if to_money(subtotal) < self.min_order_amount:
            raise CouponError(f"Minimum order amount is {self.min_order_amount}")

    def discount_for(self, subtotal: Decimal, shipping_cost: Decimal, as_of: datetime) -> Decimal:
        """Validate and compute the discount this coupon grants."""

        self.validate(subtotal, as_of)
        subtotal_amount = to_money(subtotal)
        shipping_amount = to_money(shipping_cost)

        if self.discount_type is DiscountType.PERCENTAGE:
            discount = to_money(subtotal_amount * self.discount_value / Decimal(100))
        elif self.discount_type is DiscountType.FIXED:
            discount = to_money(self.discount_value)
        else:
            discount = shipping_amount

        return min(max(discount, ZERO), subtotal_amount + shipping_amount)


__all__ = ["Coupon", "CouponError", "DiscountType", "normalize_code"]
