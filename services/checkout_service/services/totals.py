"""Order totals. Pure functions, no I/O."""

from decimal import Decimal

from services.checkout_service.schemas.checkout import OrderTotals

ZERO = Decimal("0")
# Below this a "you saved" line is rounding noise
PRODUCT_DISCOUNT_DISPLAY_THRESHOLD = Decimal("0.009")


def calculate_total(
    subtotal: Decimal,
    shipping_fee: Decimal,
    tax_amount: Decimal,
    discount_amount: Decimal,
) -> Decimal:
    return max(ZERO, subtotal + shipping_fee + tax_amount - discount_amount)


def product_discount(original_subtotal: Decimal, subtotal: Decimal) -> Decimal:
    """Line-level savings shown to the shopper; independent of coupons."""
    return max(ZERO, original_subtotal - subtotal)


def build_order_totals(
    subtotal: Decimal,
    shipping_fee: Decimal,
    tax_amount: Decimal,
    discount_amount: Decimal,
    *,
    original_subtotal: Decimal | None = None,
) -> OrderTotals:
    saved = product_discount(
        original_subtotal if original_subtotal is not None else subtotal,
        subtotal,
    )
    return OrderTotals(
        subtotal=subtotal,
        shipping_fee=shipping_fee,
        tax_amount=tax_amount,
        discount_amount=discount_amount,
        total=calculate_total(subtotal, shipping_fee, tax_amount, discount_amount),
        product_discount=saved,
        has_product_discount=saved > PRODUCT_DISCOUNT_DISPLAY_THRESHOLD,
    )
