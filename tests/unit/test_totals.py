"""Unit tests for order total arithmetic."""

from decimal import Decimal

import pytest
from services.checkout_service.services.totals import (
    build_order_totals,
    calculate_total,
    product_discount,
)


@pytest.mark.unit
@pytest.mark.parametrize(
    "subtotal, shipping, tax, discount, expected",
    [
        ("500000", "25000", "0", "50000", "475000"),
        ("100000", "30000", "5000", "0", "135000"),
        ("50000", "0", "0", "80000", "0"),
        ("0", "0", "0", "0", "0"),
    ],
)
def test_total_is_clamped_sum(subtotal, shipping, tax, discount, expected):
    total = calculate_total(Decimal(subtotal), Decimal(shipping), Decimal(tax), Decimal(discount))

    assert total == Decimal(expected)


@pytest.mark.unit
def test_product_discount_never_negative():
    assert product_discount(Decimal("100000"), Decimal("120000")) == Decimal("0")
    assert product_discount(Decimal("120000"), Decimal("100000")) == Decimal("20000")


@pytest.mark.unit
def test_totals_flag_real_product_discount():
    totals = build_order_totals(
        Decimal("90000"),
        Decimal("30000"),
        Decimal("0"),
        Decimal("0"),
        original_subtotal=Decimal("100000"),
    )

    assert totals.total == Decimal("120000")
    assert totals.product_discount == Decimal("10000")
    assert totals.has_product_discount is True


@pytest.mark.unit
def test_totals_ignore_rounding_noise_discount():
    totals = build_order_totals(
        Decimal("99999.995"),
        Decimal("0"),
        Decimal("0"),
        Decimal("0"),
        original_subtotal=Decimal("100000"),
    )

    assert totals.has_product_discount is False


@pytest.mark.unit
def test_totals_without_original_subtotal():
    totals = build_order_totals(Decimal("100000"), Decimal("0"), Decimal("0"), Decimal("0"))

    assert totals.product_discount == Decimal("0")
    assert totals.has_product_discount is False
