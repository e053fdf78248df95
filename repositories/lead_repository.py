"""
Checkout lead repository (persistence).

This module provides *only* persistence operations for the CheckoutLead domain
entity. No business rules (rate limiting, phone validation, session handling)
belong here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Mapping, Optional

from supabase import Client  # type: ignore[import-not-found]

from domain.lead import (
    DEFAULT_LEAD_SOURCE,
    CheckoutLead,
    LeadAttribution,
    LeadItem,
    LeadStatus,
)
from domain.money import to_money
from domain.time import parse_optional_utc_datetime, parse_utc_datetime, to_iso_utc
from repositories.client import execute, run_query

# Supabase table name for checkout lead records.
# Keep this aligned with your database schema.
_LEADS_TABLE: str = "checkout_leads"

# Admin listing is capped; the dashboard pages through recent leads only.
DEFAULT_LIST_LIMIT: int = 100


@dataclass(frozen=True, slots=True)
class LeadFilters:
    """Filter criteria for the admin lead listing."""
    status: Optional[LeadStatus] = None
    search: Optional[str] = None  # matches phone, customer_name or lead_no
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    limit: int = DEFAULT_LIST_LIMIT


@dataclass(frozen=True, slots=True)
class LeadMatch:
    """The id/token pair of an existing lead adopted by a new session."""
    lead_id: str
    lead_token: str


def _row_to_lead(row: Mapping[str, Any]) -> CheckoutLead:
    """Convert a Supabase row into a domain CheckoutLead."""

    created_at = parse_utc_datetime(row["created_at"])
    return CheckoutLead(
        id=str(row["id"]),
        lead_no=row.get("lead_no") or None,
        lead_token=str(row["lead_token"]),
        phone=str(row["phone"]),
        status=LeadStatus(str(row.get("status") or LeadStatus.NEW.value)),
        source=row.get("source") or DEFAULT_LEAD_SOURCE,
        created_at=created_at,
        last_activity_at=parse_optional_utc_datetime(row.get("last_activity_at")) or created_at,
        updated_at=parse_optional_utc_datetime(row.get("updated_at")),

        # Customer snapshot
        customer_name=row.get("customer_name"),
        email=row.get("email"),
        address=row.get("address"),
        city=row.get("city"),
        country=row.get("country"),
        notes=row.get("notes"),

        # Cart snapshot
        items=[LeadItem.from_json(item) for item in (row.get("items") or [])],
        subtotal=to_money(row.get("subtotal")),
        shipping_fee=to_money(row.get("shipping_fee")),
        total=to_money(row.get("total")),
        currency_code=str(row.get("currency_code") or "BDT"),

        attribution=LeadAttribution(
            page_url=row.get("page_url"),
            utm_source=row.get("utm_source"),
            utm_medium=row.get("utm_medium"),
            utm_campaign=row.get("utm_campaign"),
            user_agent=row.get("user_agent"),
        ),
        converted_order_id=row.get("converted_order_id"),
    )


class CheckoutLeadRepository:
    """Supabase-backed store for checkout leads."""

    def __init__(self, client: Client) -> None:
        self._client = client

    def _table(self):
        return self._client.table(_LEADS_TABLE)

    def insert(self, payload: Mapping[str, Any]) -> str:
        """
        Insert a new lead and return its id.

        lead_no is generated by a database trigger; an empty string asks for one.
        """

        row = {
            **payload,
            "lead_no": "",
            "status": LeadStatus.NEW.value,
            "source": DEFAULT_LEAD_SOURCE,
        }
        rows = execute(self._table().insert(row), "insert lead")
        if not rows or "id" not in rows[0]:
            raise RuntimeError("Failed to insert lead: no id returned")
        return str(rows[0]["id"])

    def update(
        self,
        lead_id: str,
        payload: Mapping[str, Any],
        lead_token: Optional[str] = None,
        open_only: bool = False,
    ) -> int:
        """
        Update a lead in place. When `lead_token` is given the update only
        applies if the stored token matches; `open_only` skips converted leads.

        Returns the number of rows updated.
        """

        query = self._table().update(dict(payload)).eq("id", lead_id)
        if lead_token is not None:
            query = query.eq("lead_token", lead_token)
        if open_only:
            query = query.neq("status", LeadStatus.CONVERTED.value)
        return len(execute(query, "update lead"))

    def find_recent_unconverted_by_phone(self, phone: str, since: datetime) -> Optional[LeadMatch]:
        """Newest non-converted lead for `phone` created at or after `since`."""

        query = (
            self._table()
            .select("id, lead_token")
            .eq("phone", phone)
            .gte("created_at", to_iso_utc(since, name="since"))
            .neq("status", LeadStatus.CONVERTED.value)
            .order("created_at", desc=True)
            .limit(1)
        )
        rows = execute(query, "look up lead by phone")
        if not rows:
            return None
        return LeadMatch(lead_id=str(rows[0]["id"]), lead_token=str(rows[0]["lead_token"]))

    def mark_converted(self, lead_id: str, lead_token: str, order_id: str, converted_at: datetime) -> int:
        payload = {
            "status": LeadStatus.CONVERTED.value,
            "converted_order_id": order_id,
            "updated_at": to_iso_utc(converted_at, name="converted_at"),
        }
        return self.update(lead_id, payload, lead_token=lead_token)

    def get(self, lead_id: str) -> Optional[CheckoutLead]:
        query = self._table().select("*").eq("id", lead_id).limit(1)
        rows = execute(query, "fetch lead")
        if not rows:
            return None
        return _row_to_lead(rows[0])

    def list_leads(self, filters: LeadFilters) -> List[CheckoutLead]:
        """List leads newest first with optional status/search/date filters."""

        query = self._table().select("*").order("created_at", desc=True)
        if filters.status is not None:
            query = query.eq("status", filters.status.value)
        if filters.search:
            term = filters.search.replace(",", " ").strip()
            query = query.or_(
                f"phone.ilike.%{term}%,customer_name.ilike.%{term}%,lead_no.ilike.%{term}%"
            )
        if filters.created_from is not None:
            query = query.gte("created_at", to_iso_utc(filters.created_from, name="created_from"))
        if filters.created_to is not None:
            query = query.lte("created_at", to_iso_utc(filters.created_to, name="created_to"))

        rows = execute(query.limit(filters.limit), "list leads")
        return [_row_to_lead(row) for row in rows]

    def count_by_status(self, status: LeadStatus) -> int:
        query = (
            self._table()
            .select("id", count="exact")
            .eq("status", status.value)
            .limit(1)
        )
        response = run_query(query, "count leads")
        return int(getattr(response, "count", None) or 0)

    def update_status(self, lead_id: str, status: LeadStatus, updated_at: datetime) -> int:
        payload = {"status": status.value, "updated_at": to_iso_utc(updated_at, name="updated_at")}
        return self.update(lead_id, payload)

    def delete(self, lead_id: str) -> int:
        query = self._table().delete().eq("id", lead_id)
        return len(execute(query, "delete lead"))


__all__ = [
    "CheckoutLeadRepository",
    "DEFAULT_LIST_LIMIT",
    "LeadFilters",
    "LeadMatch",
]
