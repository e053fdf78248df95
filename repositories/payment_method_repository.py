"""
Payment method repository (persistence).

Reads payment-method rules. Rules are edited from the admin console; this
module never writes them.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from supabase import Client  # type: ignore[import-not-found]

from domain.money import to_money
from domain.payment import PartialType, PaymentMethodRule
from repositories.client import execute

_PAYMENT_METHODS_TABLE: str = "payment_methods"


def _row_to_rule(row: Mapping[str, Any]) -> PaymentMethodRule:
    """Convert a Supabase row into a PaymentMethodRule."""

    fixed = row.get("fixed_partial_amount")
    return PaymentMethodRule(
        id=str(row["id"]) if row.get("id") is not None else None,
        code=str(row["code"]),
        name=row.get("name"),
        allow_partial_delivery_payment=bool(row.get("allow_partial_delivery_payment") or False),
        partial_type=PartialType.parse(row.get("partial_type")),
        fixed_partial_amount=to_money(fixed) if fixed is not None else None,
        require_transaction_id=bool(row.get("require_transaction_id") or False),
        is_enabled=bool(row.get("is_enabled", True)),
    )


class PaymentMethodRepository:
    def __init__(self, client: Client) -> None:
        self._client = client

    def get_by_code(self, code: str) -> Optional[PaymentMethodRule]:
        query = (
            self._client.table(_PAYMENT_METHODS_TABLE)
            .select("*")
            .eq("code", code)
            .limit(1)
        )
        rows = execute(query, "fetch payment method")
        if not rows:
            return None
        return _row_to_rule(rows[0])

    def list_enabled(self) -> List[PaymentMethodRule]:
        query = (
            self._client.table(_PAYMENT_METHODS_TABLE)
            .select("*")
            .eq("is_enabled", True)
            .order("sort_order")
        )
        rows = execute(query, "list payment methods")
        return [_row_to_rule(row) for row in rows]


__all__ = ["PaymentMethodRepository"]
