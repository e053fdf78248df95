"""
Tests for `scripts/export_leads.py`.
"""

from __future__ import annotations

import csv
import logging
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from domain.lead import CheckoutLead, LeadAttribution, LeadItem, LeadStatus
from scripts.export_leads import CSV_COLUMNS, export_leads_to_csv, lead_to_csv_row, sanitize_csv_field

NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def lead(**overrides) -> CheckoutLead:
    values = dict(
        id="lead-1",
        lead_no="L00001",
        lead_token="tok",
        phone="+8801712345678",
        status=LeadStatus.NEW,
        created_at=NOW,
        last_activity_at=NOW,
        customer_name="Rahim Uddin",
        items=[
            LeadItem(
                product_id="p-1",
                product_name="Cap",
                unit_price=Decimal("250"),
                quantity=2,
                line_total=Decimal("500"),
            )
        ],
        subtotal=Decimal("500.00"),
        total=Decimal("500.00"),
        attribution=LeadAttribution(utm_source="facebook"),
    )
    values.update(overrides)
    return CheckoutLead(**values)


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, ""),
        ("", ""),
        ("Rahim", "Rahim"),
        ("  Rahim  ", "Rahim"),
        ("+8801712345678", "+8801712345678"),
        ("-5.00", "-5.00"),
        ("=1+1", "'=1+1"),
        ("@SUM(A1)", "'@SUM(A1)"),
        ("+cmd|' /C calc'!A0", "'+cmd|' /C calc'!A0"),
        ("-2+3", "'-2+3"),
        ("-HYPERLINK(\"x\")", "'-HYPERLINK(\"x\")"),
    ],
)
def test_sanitize_csv_field(value, expected) -> None:
    assert sanitize_csv_field(value, "field") == expected


def test_sanitize_logs_neutralised_values(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="scripts.export_leads"):
        sanitize_csv_field("=HYPERLINK(\"http://x\")", "customer_name")
        sanitize_csv_field("Rahim", "customer_name")

    assert len(caplog.records) == 1
    assert caplog.records[0].field_name == "customer_name"


def test_lead_row() -> None:
    row = lead_to_csv_row(lead(customer_name="=cmd()"))

    assert list(row) == CSV_COLUMNS
    assert row["Customer Name"] == "'=cmd()"
    assert row["Phone"] == "+8801712345678"
    assert row["Items"] == "2 x Cap"
    assert row["Total"] == "500.00"
    assert row["Email"] == ""


def test_export_writes_header_and_rows(tmp_path) -> None:
    output = tmp_path / "leads.csv"

    export_leads_to_csv([lead(), lead(id="lead-2", lead_no="L00002")], str(output))

    with open(output, newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert [row["Lead No"] for row in rows] == ["L00001", "L00002"]


def test_export_refuses_empty_list(tmp_path) -> None:
    with pytest.raises(ValueError):
        export_leads_to_csv([], str(tmp_path / "empty.csv"))
