"""
Tests for `domain/lead.py`.

Covers contract rules:
- A snapshot is complete only with a phone of at least 5 characters.
- Optional text is trimmed; blanks are stored as NULL.
- The dedup window is 24 hours and never includes converted leads.
- The session token survives until conversion.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.lead import (
    CheckoutLead,
    LeadAttribution,
    LeadData,
    LeadItem,
    LeadSession,
    LeadStatus,
    is_complete_phone,
)

NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def lead(**overrides) -> CheckoutLead:
    values = dict(
        id="lead-1",
        lead_token="tok",
        phone="01712345678",
        status=LeadStatus.NEW,
        created_at=NOW,
        last_activity_at=NOW,
    )
    values.update(overrides)
    return CheckoutLead(**values)


@pytest.mark.parametrize(
    "phone, expected",
    [
        (None, False),
        ("", False),
        ("1234", False),
        ("  1234  ", False),
        ("12345", True),
        ("+8801712345678", True),
    ],
)
def test_is_complete_phone(phone, expected) -> None:
    assert is_complete_phone(phone) is expected


def test_payload_trims_text_and_nulls_blanks() -> None:
    data = LeadData(
        phone=" 01712345678 ",
        customer_name="  Rahim  ",
        email="",
        city="   ",
        items=[
            LeadItem(
                product_id="p-1",
                product_name="Cap",
                unit_price=Decimal("250"),
                quantity=2,
                line_total=Decimal("500"),
            )
        ],
        attribution=LeadAttribution(utm_source=" facebook ", page_url=""),
    )

    payload = data.to_payload(lead_token="tok", activity_at=NOW)

    assert payload["phone"] == "01712345678"
    assert payload["customer_name"] == "Rahim"
    assert payload["email"] is None
    assert payload["city"] is None
    assert payload["utm_source"] == "facebook"
    assert payload["page_url"] is None
    assert payload["items"] == [
        {"product_id": "p-1", "product_name": "Cap", "unit_price": 250.0, "quantity": 2, "line_total": 500.0}
    ]
    assert payload["lead_token"] == "tok"


def test_payload_requires_utc_activity_time() -> None:
    with pytest.raises(ValueError):
        LeadData(phone="01712345678").to_payload(lead_token="tok", activity_at=datetime(2025, 3, 1))


def test_lead_item_json_round_trip() -> None:
    item = LeadItem.from_json(
        {"product_id": 7, "product_name": "Cap", "unit_price": 250, "quantity": "2", "line_total": 500.0}
    )

    assert item.product_id == "7"
    assert item.quantity == 2
    assert item.line_total == Decimal("500.00")


def test_dedup_window() -> None:
    created = lead()

    assert created.within_dedup_window(NOW + timedelta(hours=23, minutes=59))
    assert created.within_dedup_window(NOW + timedelta(hours=24))
    assert not created.within_dedup_window(NOW + timedelta(hours=24, seconds=1))
    assert not lead(status=LeadStatus.CONVERTED).within_dedup_window(NOW)


def test_checkout_lead_timestamps_must_be_utc() -> None:
    with pytest.raises(ValueError):
        lead(created_at=datetime(2025, 3, 1, 9, 0))
    with pytest.raises(ValueError):
        lead(last_activity_at=datetime(2025, 3, 1, 9, 0, tzinfo=timezone(timedelta(hours=6))))


def test_checkout_lead_is_immutable() -> None:
    with pytest.raises(FrozenInstanceError):
        lead().status = LeadStatus.CONTACTED  # type: ignore[misc]


def test_session_lifecycle() -> None:
    session = LeadSession()
    token = session.lead_token

    assert session.has_lead is False
    session.lead_id = "lead-1"
    assert session.has_lead is True

    session.adopt("lead-9", "other-token")
    assert (session.lead_id, session.lead_token) == ("lead-9", "other-token")

    session.clear()
    assert session.lead_id is None
    assert session.lead_token not in (token, "other-token")
