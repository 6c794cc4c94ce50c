"""Checkout service enums, re-exported for convenience."""

from services.checkout_service.models.enums import (
    AddressTarget,
    CheckoutPhase,
    CouponErrorReason,
    DiscountType,
    LocationLevel,
    NoticeLevel,
    ValidationCategory,
)

__all__ = [
    "AddressTarget",
    "CheckoutPhase",
    "CouponErrorReason",
    "DiscountType",
    "LocationLevel",
    "NoticeLevel",
    "ValidationCategory",
]
