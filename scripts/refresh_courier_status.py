#!/usr/bin/env python3
"""
Courier Status Refresh Script

Runs the staff "refresh status" action for one or more orders, the same way
the admin order page does. Nothing is scheduled; run it by hand (or from
cron) when a batch refresh is wanted.

Usage:
    python refresh_courier_status.py ORDER_ID [ORDER_ID ...]
    python refresh_courier_status.py --open --limit 50
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from repositories.client import get_supabase
from repositories.courier_repository import CourierLogRepository, CourierSettingsRepository
from repositories.order_repository import OrderRepository
from services.config import CourierConfig
from services.courier_service import (
    CourierGateway,
    CourierNotConfiguredError,
    CourierProviderError,
    ParcelNotFoundError,
)
from services.order_service import OrderNotFoundError


def refresh_orders(gateway: CourierGateway, order_ids: List[str]) -> tuple[int, int, int]:
    """
    Refresh each order's parcel status.

    Returns:
        (refreshed, changed, failed) counts
    """
    refreshed = changed = failed = 0
    for order_id in order_ids:
        try:
            result = gateway.track_parcel(order_id)
        except (OrderNotFoundError, ParcelNotFoundError) as e:
            print(f"  - {order_id}: skipped ({e})")
            failed += 1
            continue
        except CourierProviderError as e:
            print(f"  ✗ {order_id}: provider error: {e.message}")
            failed += 1
            continue

        refreshed += 1
        if result.changed:
            changed += 1
            print(f"  ✓ {order_id}: {result.provider_status} -> {result.status.value}")
        else:
            print(f"  = {order_id}: {result.provider_status} (still {result.status.value})")
    return refreshed, changed, failed


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Refresh courier parcel status for orders",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Refresh two specific orders
  python refresh_courier_status.py 3f2a... 9b1c...

  # Refresh every order whose parcel is not delivered/cancelled/failed yet
  python refresh_courier_status.py --open
        """
    )

    parser.add_argument(
        "order_ids",
        nargs="*",
        help="Order ids to refresh"
    )

    parser.add_argument(
        "--open",
        action="store_true",
        help="Refresh all orders with a parcel still in progress"
    )

    parser.add_argument(
        "--limit",
        type=int,
        default=200,
        help="Maximum number of open parcels to refresh (with --open)"
    )

    args = parser.parse_args()
    if not args.order_ids and not args.open:
        parser.error("give at least one ORDER_ID or use --open")

    try:
        client = get_supabase()
        orders = OrderRepository(client)
        gateway = CourierGateway(
            orders=orders,
            logs=CourierLogRepository(client),
            settings=CourierSettingsRepository(client),
            config=CourierConfig.from_env(),
        )

        order_ids = list(args.order_ids)
        if args.open:
            order_ids.extend(orders.list_open_parcel_order_ids(limit=args.limit))

        if not order_ids:
            print("No parcels to refresh")
            return 0

        print(f"Refreshing {len(order_ids)} parcel(s)...")
        refreshed, changed, failed = refresh_orders(gateway, order_ids)

        print()
        print("=" * 60)
        print("REFRESH SUMMARY")
        print("=" * 60)
        print(f"Refreshed: {refreshed}")
        print(f"  Status changed: {changed}")
        print(f"Failed/skipped: {failed}")
        print("=" * 60)

        return 0 if failed == 0 else 1

    except CourierNotConfiguredError as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        return 2

    except KeyboardInterrupt:
        print("\n\nRefresh interrupted by user")
        return 130

    except Exception as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
