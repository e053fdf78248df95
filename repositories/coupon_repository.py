"""
Coupon repository (persistence).

Lookup by code and usage counting. Validation rules live in domain/coupon.py.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from supabase import Client  # type: ignore[import-not-found]

from domain.coupon import Coupon, DiscountType, normalize_code
from domain.money import to_money
from domain.time import parse_optional_utc_datetime, parse_utc_datetime
from repositories.client import execute

_COUPONS_TABLE: str = "coupons"


def _row_to_coupon(row: Mapping[str, Any]) -> Coupon:
    max_uses = row.get("max_uses")
    return Coupon(
        id=str(row["id"]),
        code=str(row["code"]),
        discount_type=DiscountType(str(row["discount_type"])),
        discount_value=to_money(row.get("discount_value")),
        min_order_amount=to_money(row.get("min_order_amount")),
        max_uses=int(max_uses) if max_uses is not None else None,
        used_count=int(row.get("used_count") or 0),
        starts_at=parse_utc_datetime(row["starts_at"]),
        expires_at=parse_optional_utc_datetime(row.get("expires_at")),
        is_active=bool(row.get("is_active", True)),
    )


class CouponRepository:
    def __init__(self, client: Client) -> None:
        self._client = client

    def get_active_by_code(self, code: str) -> Optional[Coupon]:
        query = (
            self._client.table(_COUPONS_TABLE)
            .select("*")
            .eq("code", normalize_code(code))
            .eq("is_active", True)
            .limit(1)
        )
        rows = execute(query, "fetch coupon")
        if not rows:
            return None
        return _row_to_coupon(rows[0])

    def increment_usage(self, coupon_id: str) -> None:
        """
        Increment used_count by one.

        Uses the `increment_coupon_usage` database function so concurrent
        checkouts do not lose updates.
        """

        query = self._client.rpc("increment_coupon_usage", {"p_coupon_id": coupon_id})
        execute(query, "increment coupon usage")


__all__ = ["CouponRepository"]
