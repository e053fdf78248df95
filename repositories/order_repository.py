"""
Order repository (persistence).

This module provides *only* persistence operations for orders, their line
items and the courier fields stored on them. It does not compute payment
plans or validate checkouts.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from supabase import Client  # type: ignore[import-not-found]

from domain.courier import CourierParcel, CourierStatus
from domain.money import to_money
from domain.order import Order, OrderItem, OrderStatus
from domain.payment import PaymentStatus
from domain.time import parse_optional_utc_datetime, parse_utc_datetime
from repositories.client import QueryError, execute

_ORDERS_TABLE: str = "orders"
_ORDER_ITEMS_TABLE: str = "order_items"

# PostgreSQL unique_violation
_UNIQUE_VIOLATION: str = "23505"


class DuplicateOrderNumberError(RuntimeError):
    """Raised when the order_number unique constraint rejects an insert."""


def _row_to_item(row: Mapping[str, Any]) -> OrderItem:
    price = to_money(row.get("price"))
    quantity = int(row.get("quantity") or 0)
    line_total = row.get("line_total")
    return OrderItem(
        id=str(row["id"]) if row.get("id") is not None else None,
        order_id=str(row["order_id"]),
        product_id=row.get("product_id"),
        product_name=str(row.get("product_name") or ""),
        product_image=row.get("product_image"),
        price=price,
        quantity=quantity,
        line_total=to_money(line_total) if line_total is not None else to_money(price * quantity),
        variant_id=row.get("variant_id"),
        variant_info=row.get("variant_info"),
    )


def _row_to_order(row: Mapping[str, Any]) -> Order:
    """Convert a Supabase row (optionally with nested order_items) into an Order."""

    return Order(
        id=str(row["id"]),
        order_number=str(row["order_number"]),
        customer_name=str(row["customer_name"]),
        customer_phone=str(row["customer_phone"]),
        customer_email=row.get("customer_email"),
        shipping_address=str(row["shipping_address"]),
        shipping_city=str(row["shipping_city"]),
        shipping_method=row.get("shipping_method"),
        notes=row.get("notes"),

        # Payment
        payment_method=str(row["payment_method"]),
        payment_method_id=row.get("payment_method_id"),
        payment_method_name=row.get("payment_method_name"),
        transaction_id=row.get("transaction_id"),
        coupon_code=row.get("coupon_code"),
        subtotal=to_money(row.get("subtotal")),
        discount=to_money(row.get("discount")),
        shipping_cost=to_money(row.get("shipping_cost")),
        total=to_money(row.get("total")),
        payment_status=PaymentStatus(str(row.get("payment_status") or PaymentStatus.UNPAID.value)),
        paid_amount=to_money(row.get("paid_amount")),
        due_amount=to_money(row.get("due_amount")),
        partial_rule_snapshot=row.get("partial_rule_snapshot"),

        status=OrderStatus(str(row.get("status") or OrderStatus.PENDING.value)),
        created_at=parse_utc_datetime(row["created_at"]),
        updated_at=parse_optional_utc_datetime(row.get("updated_at")),

        # Courier sub-state
        courier=CourierParcel(
            status=CourierStatus.parse(row.get("courier_status")),
            provider=row.get("courier_provider"),
            tracking_id=row.get("courier_tracking_id"),
            consignment_id=row.get("courier_consignment_id"),
            created_at=parse_optional_utc_datetime(row.get("courier_created_at")),
            updated_at=parse_optional_utc_datetime(row.get("courier_updated_at")),
        ),
        items=[_row_to_item(item) for item in (row.get("order_items") or [])],
    )


class OrderRepository:
    """Supabase-backed store for orders and order items."""

    def __init__(self, client: Client) -> None:
        self._client = client

    def order_number_exists(self, order_number: str) -> bool:
        query = (
            self._client.table(_ORDERS_TABLE)
            .select("id")
            .eq("order_number", order_number)
            .limit(1)
        )
        return bool(execute(query, "check order number"))

    def insert_order(self, row: Mapping[str, Any]) -> Order:
        """
        Insert an order row and return the stored order (without items).

        Raises:
            DuplicateOrderNumberError: if order_number is already taken.
            QueryError: for any other error response.
        """

        try:
            rows = execute(self._client.table(_ORDERS_TABLE).insert(dict(row)), "insert order")
        except QueryError as e:
            if e.code == _UNIQUE_VIOLATION:
                raise DuplicateOrderNumberError(
                    f"Order number already exists: {row.get('order_number')}"
                ) from e
            raise

        if not rows:
            raise QueryError("Failed to insert order: no row returned")
        return _row_to_order(rows[0])

    def insert_items(self, rows: List[Mapping[str, Any]]) -> List[OrderItem]:
        if not rows:
            return []
        query = self._client.table(_ORDER_ITEMS_TABLE).insert([dict(r) for r in rows])
        return [_row_to_item(item) for item in execute(query, "insert order items")]

    def delete_order(self, order_id: str) -> None:
        """Remove an order whose items could not be written."""

        query = self._client.table(_ORDERS_TABLE).delete().eq("id", order_id)
        execute(query, "delete order")

    def get(self, order_id: str) -> Optional[Order]:
        query = (
            self._client.table(_ORDERS_TABLE)
            .select("*, order_items(*)")
            .eq("id", order_id)
            .limit(1)
        )
        rows = execute(query, "fetch order")
        if not rows:
            return None
        return _row_to_order(rows[0])

    def get_by_number(self, order_number: str) -> Optional[Order]:
        query = (
            self._client.table(_ORDERS_TABLE)
            .select("*, order_items(*)")
            .eq("order_number", order_number)
            .limit(1)
        )
        rows = execute(query, "fetch order by number")
        if not rows:
            return None
        return _row_to_order(rows[0])

    def update_fields(self, order_id: str, fields: Mapping[str, Any]) -> int:
        """Write status or payment columns. Returns the number of rows updated."""

        query = (
            self._client.table(_ORDERS_TABLE)
            .update(dict(fields))
            .eq("id", order_id)
        )
        return len(execute(query, "update order"))

    def list_open_parcel_order_ids(self, limit: int = 200) -> List[str]:
        """Ids of orders whose parcel has not reached a terminal state, oldest update first."""

        open_statuses = [
            status.value for status in CourierStatus
            if status is not CourierStatus.NONE and not status.is_terminal
        ]
        query = (
            self._client.table(_ORDERS_TABLE)
            .select("id")
            .not_.is_("courier_consignment_id", "null")
            .in_("courier_status", open_statuses)
            .order("courier_updated_at", desc=False)
            .limit(limit)
        )
        return [str(row["id"]) for row in execute(query, "list open parcels")]

    def update_courier(self, order_id: str, fields: Mapping[str, Any]) -> None:
        """Write courier_* columns (and the order status after tracking) for an order."""

        query = (
            self._client.table(_ORDERS_TABLE)
            .update(dict(fields))
            .eq("id", order_id)
        )
        execute(query, "update order courier fields")


__all__ = ["DuplicateOrderNumberError", "OrderRepository"]
