#!/usr/bin/env python3
"""
Checkout Lead Export Script

Exports captured checkout leads to CSV for the call team working through
abandoned carts.

Usage:
    python export_leads.py --output leads_export.csv
    python export_leads.py --status new --output open_leads.csv
    python export_leads.py --search 01712 --output matches.csv
"""

from __future__ import annotations

import argparse
import csv
import logging
import re
import sys
from pathlib import Path
from typing import List, Optional

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.lead import CheckoutLead, LeadStatus
from repositories.client import get_supabase
from repositories.lead_repository import CheckoutLeadRepository, LeadFilters

logger = logging.getLogger(__name__)

FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")

# Phone numbers and amounts such as "+8801712345678" or "-5.00" stay as typed.
_NUMERIC = re.compile(r"^[+-]?[\d\s().-]+$")


def sanitize_csv_field(value: Optional[str], field_name: str = "unknown") -> str:
    """
    Neutralise a cell that a spreadsheet would evaluate as a formula.

    Customer-typed text (name, address, notes) reaches staff spreadsheets
    verbatim, so a value starting with =, +, -, @, tab or CR is prefixed with
    a single quote. Purely numeric values are left alone.

    Example:
        sanitize_csv_field("=HYPERLINK(...)", "customer_name")
        # Returns "'=HYPERLINK(...)" and logs a warning

        sanitize_csv_field("+8801712345678", "phone")
        # Returns "+8801712345678"
    """
    if value is None or value == "":
        return ""

    text = str(value).strip()
    if not text.startswith(FORMULA_PREFIXES) or _NUMERIC.match(text):
        return text

    logger.warning(
        f"CSV formula prefix neutralised in field '{field_name}'",
        extra={
            "field_name": field_name,
            "original_value": text[:100],
            "modification_type": "csv_injection_prevention"
        }
    )
    return "'" + text


CSV_COLUMNS = [
    "Lead No",
    "Status",
    "Created At",
    "Last Activity",
    "Customer Name",
    "Phone",
    "Email",
    "Address",
    "City",
    "Items",
    "Subtotal",
    "Shipping",
    "Total",
    "Currency",
    "UTM Source",
    "UTM Campaign",
    "Converted Order",
]


def lead_to_csv_row(lead: CheckoutLead) -> dict[str, str]:
    """
    Convert a CheckoutLead to a CSV row dictionary.

    Args:
        lead: CheckoutLead domain object

    Returns:
        Dictionary mapping CSV column names to values
    """
    items = "; ".join(f"{item.quantity} x {item.product_name}" for item in lead.items)
    return {
        "Lead No": lead.lead_no or "",
        "Status": lead.status.value,
        "Created At": lead.created_at.isoformat(),
        "Last Activity": lead.last_activity_at.isoformat(),
        "Customer Name": sanitize_csv_field(lead.customer_name, "customer_name"),
        "Phone": sanitize_csv_field(lead.phone, "phone"),
        "Email": sanitize_csv_field(lead.email, "email"),
        "Address": sanitize_csv_field(lead.address, "address"),
        "City": sanitize_csv_field(lead.city, "city"),
        "Items": sanitize_csv_field(items, "items"),
        "Subtotal": str(lead.subtotal),
        "Shipping": str(lead.shipping_fee),
        "Total": str(lead.total),
        "Currency": lead.currency_code,
        "UTM Source": sanitize_csv_field(lead.attribution.utm_source, "utm_source"),
        "UTM Campaign": sanitize_csv_field(lead.attribution.utm_campaign, "utm_campaign"),
        "Converted Order": lead.converted_order_id or "",
    }


def export_leads_to_csv(leads: List[CheckoutLead], output_path: str) -> None:
    """
    Raises:
        ValueError: If leads list is empty
    """
    if not leads:
        raise ValueError("No leads to export")

    print(f"Exporting {len(leads)} leads to {output_path}")

    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
        writer.writeheader()

        for lead in leads:
            writer.writerow(lead_to_csv_row(lead))

    print(f"✓ Successfully exported {len(leads)} leads")


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Export checkout leads from Supabase to CSV",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Export the most recent leads
  python export_leads.py --output all_leads.csv

  # Export only leads nobody has called yet
  python export_leads.py --status new --output open_leads.csv
        """
    )

    parser.add_argument(
        "--output",
        "-o",
        required=True,
        help="Path to output CSV file"
    )

    parser.add_argument(
        "--status",
        choices=[status.value for status in LeadStatus],
        help="Filter by lead status"
    )

    parser.add_argument(
        "--search",
        help="Match phone, customer name or lead number"
    )

    parser.add_argument(
        "--limit",
        type=int,
        default=1000,
        help="Maximum number of leads to export"
    )

    args = parser.parse_args()

    try:
        print("Fetching leads from database...")
        repository = CheckoutLeadRepository(get_supabase())
        leads = repository.list_leads(
            LeadFilters(
                status=LeadStatus(args.status) if args.status else None,
                search=args.search,
                limit=args.limit,
            )
        )

        if not leads:
            print("No leads found matching the specified filters")
            return 1

        export_leads_to_csv(leads, args.output)

        converted = sum(1 for lead in leads if lead.is_converted)
        print()
        print("=" * 60)
        print("EXPORT SUMMARY")
        print("=" * 60)
        print(f"Total leads exported: {len(leads)}")
        print(f"  Converted:   {converted}")
        print(f"  Open:        {len(leads) - converted}")
        print(f"Output file: {args.output}")
        print("=" * 60)

        return 0

    except KeyboardInterrupt:
        print("\n\nExport interrupted by user")
        return 130

    except Exception as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
