"""
Pytest configuration.

Adds the project root to the Python path so tests can import domain,
repositories and services, and provides in-memory stores that stand in for
the Supabase repositories.
"""

import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.courier import (  # noqa: E402
    CourierSettings,
    ParcelReceipt,
    STEADFAST_PROVIDER,
)
from domain.lead import LeadStatus  # noqa: E402
from domain.payment import PartialType, PaymentMethodRule  # noqa: E402
from domain.time import parse_utc_datetime, to_iso_utc  # noqa: E402
from repositories.lead_repository import LeadMatch, _row_to_lead  # noqa: E402
from repositories.order_repository import (  # noqa: E402
    DuplicateOrderNumberError,
    _row_to_item,
    _row_to_order,
)
from services.steadfast_client import CourierProviderError  # noqa: E402


START = datetime(2025, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class StoreUnavailable(RuntimeError):
    pass


# ---------------------------------------------------------------------------
# Leads
# ---------------------------------------------------------------------------

class InMemoryLeadStore:
    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.rows: dict[str, dict] = {}
        self.fail = False
        self.inserts = 0
        self.updates = 0

    def _check(self) -> None:
        if self.fail:
            raise StoreUnavailable("Failed to write lead: connection refused")

    def insert(self, payload):
        self._check()
        self.inserts += 1
        lead_id = f"lead-{self.inserts}"
        now = to_iso_utc(self.clock(), name="created_at")
        self.rows[lead_id] = {
            **payload,
            "id": lead_id,
            "lead_no": f"L{self.inserts:05d}",
            "status": LeadStatus.NEW.value,
            "source": "checkout",
            "created_at": now,
            "updated_at": now,
            "converted_order_id": None,
        }
        return lead_id

    def update(self, lead_id, payload, lead_token=None, open_only=False):
        self._check()
        row = self.rows.get(lead_id)
        if row is None or (lead_token is not None and row["lead_token"] != lead_token):
            return 0
        if open_only and row["status"] == LeadStatus.CONVERTED.value:
            return 0
        self.updates += 1
        row.update(payload)
        return 1

    def find_recent_unconverted_by_phone(self, phone, since):
        self._check()
        candidates = [
            row for row in self.rows.values()
            if row["phone"] == phone
            and row["status"] != LeadStatus.CONVERTED.value
            and parse_utc_datetime(row["created_at"]) >= since
        ]
        if not candidates:
            return None
        newest = max(candidates, key=lambda row: row["created_at"])
        return LeadMatch(lead_id=newest["id"], lead_token=newest["lead_token"])

    def mark_converted(self, lead_id, lead_token, order_id, converted_at):
        self._check()
        row = self.rows.get(lead_id)
        if row is None or row["lead_token"] != lead_token:
            return 0
        row["status"] = LeadStatus.CONVERTED.value
        row["converted_order_id"] = order_id
        row["updated_at"] = to_iso_utc(converted_at, name="converted_at")
        return 1

    def get(self, lead_id):
        row = self.rows.get(lead_id)
        return _row_to_lead(row) if row is not None else None

    def list_leads(self, filters):
        leads = [_row_to_lead(row) for row in self.rows.values()]
        if filters.status is not None:
            leads = [lead for lead in leads if lead.status is filters.status]
        if filters.search:
            term = filters.search.lower()
            leads = [
                lead for lead in leads
                if term in lead.phone.lower()
                or term in (lead.customer_name or "").lower()
                or term in (lead.lead_no or "").lower()
            ]
        leads.sort(key=lambda lead: lead.created_at, reverse=True)
        return leads[: filters.limit]

    def count_by_status(self, status):
        return sum(1 for row in self.rows.values() if row["status"] == status.value)

    def update_status(self, lead_id, status, updated_at):
        return self.update(
            lead_id, {"status": status.value, "updated_at": to_iso_utc(updated_at, name="updated_at")}
        )

    def delete(self, lead_id):
        return 1 if self.rows.pop(lead_id, None) is not None else 0


# ---------------------------------------------------------------------------
# Orders, payment methods, coupons
# ---------------------------------------------------------------------------

class InMemoryOrderStore:
    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.rows: dict[str, dict] = {}
        self.items: dict[str, list] = {}
        self.taken_numbers: set[str] = set()
        self.race_numbers: set[str] = set()  # taken between the check and the insert
        self.fail_insert = False
        self.fail_items = False
        self.deleted: list[str] = []
        self.courier_updates: list[tuple[str, dict]] = []
        self.fail_update = False

    def order_number_exists(self, order_number):
        return order_number in self.taken_numbers

    def insert_order(self, row):
        if self.fail_insert:
            raise RuntimeError("Failed to insert order: connection reset")
        number = row["order_number"]
        if number in self.race_numbers or number in self.taken_numbers:
            self.race_numbers.discard(number)
            self.taken_numbers.add(number)
            raise DuplicateOrderNumberError(f"Order number already exists: {number}")
        order_id = f"order-{len(self.rows) + 1}"
        stored = {**row, "id": order_id, "created_at": to_iso_utc(self.clock(), name="created_at")}
        self.rows[order_id] = stored
        self.items[order_id] = []
        self.taken_numbers.add(number)
        return _row_to_order(stored)

    def insert_items(self, rows):
        if self.fail_items:
            raise RuntimeError("Failed to insert order items: constraint violation")
        stored = []
        for index, row in enumerate(rows, start=1):
            item = {**row, "id": f"{row['order_id']}-item-{index}"}
            self.items[row["order_id"]].append(item)
            stored.append(_row_to_item(item))
        return stored

    def delete_order(self, order_id):
        self.deleted.append(order_id)
        self.rows.pop(order_id, None)
        self.items.pop(order_id, None)

    def get(self, order_id):
        row = self.rows.get(order_id)
        if row is None:
            return None
        return _row_to_order({**row, "order_items": self.items.get(order_id, [])})

    def get_by_number(self, order_number):
        for order_id, row in self.rows.items():
            if row["order_number"] == order_number:
                return self.get(order_id)
        return None

    def update_fields(self, order_id, fields):
        if self.fail_update:
            raise RuntimeError("Failed to update order: timeout")
        row = self.rows.get(order_id)
        if row is None:
            return 0
        row.update(fields)
        return 1

    def update_courier(self, order_id, fields):
        self.courier_updates.append((order_id, dict(fields)))
        self.rows[order_id].update(fields)

    def add_order(self, **overrides) -> str:
        """Seed a placed order directly."""
        order_id = f"order-{len(self.rows) + 1}"
        row = {
            "id": order_id,
            "order_number": f"ORD-{10000000 + len(self.rows)}",
            "customer_name": "Karim Hasan",
            "customer_phone": "01812345678",
            "shipping_address": "House 7, Road 2, Banani",
            "shipping_city": "Dhaka",
            "payment_method": "cod",
            "subtotal": 1000.0,
            "discount": 0.0,
            "shipping_cost": 60.0,
            "total": 1060.0,
            "payment_status": "unpaid",
            "paid_amount": 0.0,
            "due_amount": 1060.0,
            "status": "pending",
            "notes": "Call before delivery",
            "created_at": to_iso_utc(self.clock(), name="created_at"),
        }
        row.update(overrides)
        self.rows[order_id] = row
        self.items[order_id] = []
        return order_id


class InMemoryPaymentMethodStore:
    def __init__(self, rules=()) -> None:
        self.rules = {rule.code: rule for rule in rules}

    def get_by_code(self, code):
        return self.rules.get(code)


class InMemoryCouponStore:
    def __init__(self, coupons=()) -> None:
        self.coupons = {coupon.code: coupon for coupon in coupons}
        self.incremented: list[str] = []
        self.fail_increment = False

    def get_active_by_code(self, code):
        coupon = self.coupons.get(code.strip().upper())
        return coupon if coupon is not None and coupon.is_active else None

    def increment_usage(self, coupon_id):
        if self.fail_increment:
            raise RuntimeError("Failed to increment coupon usage: rpc error")
        self.incremented.append(coupon_id)


# ---------------------------------------------------------------------------
# Courier
# ---------------------------------------------------------------------------

class InMemoryCourierLogStore:
    def __init__(self) -> None:
        self.entries = []
        self.fail = False

    def append(self, entry):
        if self.fail:
            raise RuntimeError("Failed to write courier log: timeout")
        self.entries.append(entry)

    def list_for_order(self, order_id):
        return [
            {
                "order_id": entry.order_id,
                "action": entry.action.value,
                "status": entry.outcome.value,
                "message": entry.message,
            }
            for entry in self.entries
            if entry.order_id == order_id
        ]


class InMemoryCourierSettingsStore:
    def __init__(self, settings=None) -> None:
        self.settings = settings

    def get(self, provider):
        if self.settings is None or self.settings.provider != provider:
            return None
        return self.settings


class FakeCourierProvider:
    """Scripted courier provider; records every call."""

    provider = STEADFAST_PROVIDER

    def __init__(self) -> None:
        self.created = []
        self.status_checks = []
        self.delivery_status = "in_review"
        self.error = None
        self.closed = 0
        self._next_id = 1000

    def create_parcel(self, request, idempotency_key=None):
        self.created.append((request, idempotency_key))
        if self.error is not None:
            raise self.error
        self._next_id += 1
        return ParcelReceipt(
            consignment_id=str(self._next_id),
            tracking_id=f"TRK{self._next_id}",
            provider_status="in_review",
            raw_response={"status": 200, "consignment": {"consignment_id": self._next_id}},
        )

    def get_status(self, consignment_id):
        self.status_checks.append(consignment_id)
        if self.error is not None:
            raise self.error
        return self.delivery_status, {"status": 200, "delivery_status": self.delivery_status}

    def get_balance(self):
        if self.error is not None:
            raise self.error
        return {"status": 200, "current_balance": 1500}

    def close(self):
        self.closed += 1


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def lead_store(clock) -> InMemoryLeadStore:
    return InMemoryLeadStore(clock)


@pytest.fixture
def order_store(clock) -> InMemoryOrderStore:
    return InMemoryOrderStore(clock)


@pytest.fixture
def payment_methods() -> InMemoryPaymentMethodStore:
    return InMemoryPaymentMethodStore(
        [
            PaymentMethodRule(code="cod", id="pm-cod", name="Cash on Delivery"),
            PaymentMethodRule(
                code="bkash",
                id="pm-bkash",
                name="bKash",
                allow_partial_delivery_payment=True,
                partial_type=PartialType.DELIVERY_CHARGE,
                require_transaction_id=True,
            ),
            PaymentMethodRule(
                code="nagad",
                id="pm-nagad",
                name="Nagad",
                allow_partial_delivery_payment=True,
                partial_type=PartialType.FIXED_AMOUNT,
                fixed_partial_amount=Decimal("200.00"),
            ),
            PaymentMethodRule(code="card", id="pm-card", name="Card", is_enabled=False),
        ]
    )


@pytest.fixture
def coupon_store() -> InMemoryCouponStore:
    return InMemoryCouponStore()


@pytest.fixture
def courier_logs() -> InMemoryCourierLogStore:
    return InMemoryCourierLogStore()


@pytest.fixture
def courier_settings() -> InMemoryCourierSettingsStore:
    return InMemoryCourierSettingsStore(
        CourierSettings(
            provider=STEADFAST_PROVIDER,
            enabled=True,
            api_base_url="https://portal.example.test/api/v1",
            api_key="key-123",
            api_secret="secret-456",
        )
    )


@pytest.fixture
def provider() -> FakeCourierProvider:
    return FakeCourierProvider()


@pytest.fixture
def provider_error() -> CourierProviderError:
    return CourierProviderError(
        "Invalid recipient phone",
        status_code=422,
        response_payload={"status": 400, "message": "Invalid recipient phone"},
    )
