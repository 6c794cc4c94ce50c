"""Enum definitions for the checkout service."""

import enum


class DiscountType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"

    @classmethod
    def _missing_(cls, value):
        # Older coupon payloads use the short form
        if isinstance(value, str) and value.upper() == "FIXED":
            return cls.FIXED_AMOUNT
        return None


class LocationLevel(str, enum.Enum):
    PROVINCE = "province"
    DISTRICT = "district"
    WARD = "ward"


class AddressTarget(str, enum.Enum):
    BILLING = "billing"
    SHIPPING = "shipping"


class CheckoutPhase(str, enum.Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    FAILED = "failed"


class CouponErrorReason(str, enum.Enum):
    MISSING_CODE = "MISSING_CODE"
    EMPTY_CART = "EMPTY_CART"
    MISSING_SESSION = "MISSING_SESSION"
    MIN_ORDER_NOT_MET = "MIN_ORDER_NOT_MET"
    EXPIRED_OR_INVALID = "EXPIRED_OR_INVALID"
    USAGE_LIMIT_REACHED = "USAGE_LIMIT_REACHED"
    UNKNOWN = "UNKNOWN"


class ValidationCategory(str, enum.Enum):
    EMPTY_CART = "empty_cart"
    MISSING_SESSION = "missing_session"
    BILLING_FIELDS = "billing_fields"
    BILLING_LOCATION = "billing_location"
    SHIPPING_FIELDS = "shipping_fields"
    SHIPPING_LOCATION = "shipping_location"


class NoticeLevel(str, enum.Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
