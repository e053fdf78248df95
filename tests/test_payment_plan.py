"""
Tests for `domain/payment.py`.

Covers contract rules:
- total = subtotal - discount + shipping_cost, never negative.
- delivery_charge / fixed_amount / disabled partial rules.
- advance + due == total for every plan.
- Transaction id is required when the rule says so.
- The rule snapshot stored on orders.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from hypothesis import given, strategies as st

from domain.payment import (
    PartialType,
    PaymentMethodRule,
    PaymentStatus,
    TransactionIdRequiredError,
    calculate_payment_plan,
    finalize_payment,
)

COD = PaymentMethodRule(code="cod")
DELIVERY_CHARGE = PaymentMethodRule(
    code="bkash",
    allow_partial_delivery_payment=True,
    partial_type=PartialType.DELIVERY_CHARGE,
    require_transaction_id=True,
)
FIXED_200 = PaymentMethodRule(
    code="nagad",
    allow_partial_delivery_payment=True,
    partial_type=PartialType.FIXED_AMOUNT,
    fixed_partial_amount=Decimal("200"),
)


@pytest.mark.parametrize(
    "rule, subtotal, shipping, discount, advance, due",
    [
        (DELIVERY_CHARGE, "1000", "120", "0", "120.00", "1000.00"),
        (FIXED_200, "1000", "120", "0", "200.00", "920.00"),
        (FIXED_200, "150", "0", "0", "150.00", "0.00"),
        (COD, "500", "60", "0", "0.00", "560.00"),
        (FIXED_200, "1000", "120", "100", "200.00", "820.00"),
        (DELIVERY_CHARGE, "0", "80", "0", "80.00", "0.00"),
    ],
)
def test_payment_plan_examples(rule, subtotal, shipping, discount, advance, due) -> None:
    """Verify the advance/due split for each partial rule type."""

    plan = calculate_payment_plan(subtotal, shipping, discount, rule)

    assert plan.advance_amount == Decimal(advance)
    assert plan.due_on_delivery == Decimal(due)
    assert plan.advance_amount + plan.due_on_delivery == plan.total


def test_partial_type_ignored_when_partial_payment_disabled() -> None:
    """A partial_type on a rule with partial payment switched off has no effect."""

    rule = PaymentMethodRule(
        code="bkash",
        allow_partial_delivery_payment=False,
        partial_type=PartialType.DELIVERY_CHARGE,
    )

    plan = calculate_payment_plan("1000", "120", "0", rule)

    assert plan.advance_amount == Decimal("0.00")
    assert plan.due_on_delivery == Decimal("1120.00")


def test_fixed_amount_without_value_means_no_advance() -> None:
    rule = PaymentMethodRule(
        code="nagad",
        allow_partial_delivery_payment=True,
        partial_type=PartialType.FIXED_AMOUNT,
        fixed_partial_amount=None,
    )

    plan = calculate_payment_plan("300", "60", "0", rule)

    assert plan.advance_amount == Decimal("0.00")
    assert plan.payment_status is PaymentStatus.UNPAID


def test_discount_is_clamped_and_total_never_negative() -> None:
    plan = calculate_payment_plan("100", "50", "500", DELIVERY_CHARGE)

    assert plan.discount == Decimal("150.00")
    assert plan.total == Decimal("0.00")
    assert plan.advance_amount == Decimal("0.00")
    assert plan.due_on_delivery == Decimal("0.00")


def test_delivery_charge_advance_capped_when_discount_eats_into_shipping() -> None:
    plan = calculate_payment_plan("100", "50", "120", DELIVERY_CHARGE)

    assert plan.total == Decimal("30.00")
    assert plan.advance_amount == Decimal("30.00")
    assert plan.due_on_delivery == Decimal("0.00")


def test_negative_inputs_are_rejected() -> None:
    with pytest.raises(ValueError):
        calculate_payment_plan("-1", "0", "0", COD)
    with pytest.raises(ValueError):
        calculate_payment_plan("10", "-5", "0", COD)


def test_float_inputs_are_converted_without_binary_noise() -> None:
    plan = calculate_payment_plan(0.1, 0.2, 0, COD)

    assert plan.total == Decimal("0.30")


@pytest.mark.parametrize(
    "rule, subtotal, shipping, expected",
    [
        (COD, "500", "60", PaymentStatus.UNPAID),
        (DELIVERY_CHARGE, "1000", "120", PaymentStatus.PARTIAL_PAID),
        (FIXED_200, "150", "0", PaymentStatus.PAID),
    ],
)
def test_payment_status(rule, subtotal, shipping, expected) -> None:
    assert calculate_payment_plan(subtotal, shipping, "0", rule).payment_status is expected


def test_transaction_id_required_when_rule_demands_it() -> None:
    plan = calculate_payment_plan("1000", "120", "0", DELIVERY_CHARGE)

    with pytest.raises(TransactionIdRequiredError):
        finalize_payment(plan, DELIVERY_CHARGE, None)
    with pytest.raises(TransactionIdRequiredError):
        finalize_payment(plan, DELIVERY_CHARGE, "   ")

    assert finalize_payment(plan, DELIVERY_CHARGE, " TX8841 ") == "TX8841"


def test_transaction_id_optional_otherwise() -> None:
    plan = calculate_payment_plan("500", "60", "0", COD)

    assert finalize_payment(plan, COD, "") is None


def test_rule_snapshot_is_json_ready() -> None:
    plan = calculate_payment_plan("1000", "120", "0", FIXED_200)
    captured_at = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    snapshot = FIXED_200.snapshot(plan, captured_at)

    assert snapshot["partial_type"] == "fixed_amount"
    assert snapshot["fixed_partial_amount"] == 200.0
    assert snapshot["advance_amount"] == 200.0
    assert snapshot["due_on_delivery"] == 920.0
    assert snapshot["captured_at"].startswith("2025-03-01T09:00:00")


def test_partial_type_parse_treats_blank_as_none() -> None:
    assert PartialType.parse(None) is PartialType.NONE
    assert PartialType.parse("") is PartialType.NONE
    assert PartialType.parse("delivery_charge") is PartialType.DELIVERY_CHARGE


# ============================================================================
# Properties
# ============================================================================

money = st.decimals(min_value=0, max_value=100000, places=2, allow_nan=False, allow_infinity=False)

rules = st.sampled_from(
    [
        COD,
        DELIVERY_CHARGE,
        FIXED_200,
        PaymentMethodRule(
            code="tiny",
            allow_partial_delivery_payment=True,
            partial_type=PartialType.FIXED_AMOUNT,
            fixed_partial_amount=Decimal("0.01"),
        ),
    ]
)


@given(subtotal=money, shipping=money, discount=money, rule=rules)
def test_advance_plus_due_always_equals_total(subtotal, shipping, discount, rule) -> None:
    plan = calculate_payment_plan(subtotal, shipping, discount, rule)

    assert plan.total >= 0
    assert plan.advance_amount >= 0
    assert plan.due_on_delivery >= 0
    assert plan.advance_amount <= plan.total
    assert plan.advance_amount + plan.due_on_delivery == plan.total


@given(subtotal=money, shipping=money, data=st.data())
def test_delivery_charge_advance_is_shipping_when_discount_within_subtotal(subtotal, shipping, data) -> None:
    discount = data.draw(st.decimals(min_value=0, max_value=subtotal, places=2))

    plan = calculate_payment_plan(subtotal, shipping, discount, DELIVERY_CHARGE)

    assert plan.advance_amount == shipping


@given(subtotal=money, shipping=money, discount=money, rule=rules)
def test_plan_is_deterministic(subtotal, shipping, discount, rule) -> None:
    assert calculate_payment_plan(subtotal, shipping, discount, rule) == calculate_payment_plan(
        subtotal, shipping, discount, rule
    )
