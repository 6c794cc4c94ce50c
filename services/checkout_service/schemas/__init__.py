"""Checkout service schemas."""

from services.checkout_service.schemas.api import (
    AddressUpdate,
    CheckoutResponse,
    CouponApply,
    LocationOptions,
    LocationSelect,
    OrderOptions,
    ShipToDifferentRequest,
    SubmitResponse,
)
from services.checkout_service.schemas.checkout import (
    AddressForm,
    AppliedCoupon,
    CartItem,
    CartSnapshot,
    CheckoutState,
    Coupon,
    GeoNode,
    LocationSelection,
    Money,
    Notice,
    OrderConfirmation,
    OrderTotals,
    SavedAddress,
    ShippingQuote,
)
from services.checkout_service.schemas.wire import (
    CouponApplyRequest,
    CouponApplyResponse,
    OrderAddress,
    OrderRequest,
    ShippingFeeRequest,
    to_payload,
)

__all__ = [
    "AddressForm",
    "AddressUpdate",
    "AppliedCoupon",
    "CartItem",
    "CartSnapshot",
    "CheckoutResponse",
    "CheckoutState",
    "Coupon",
    "CouponApply",
    "CouponApplyRequest",
    "CouponApplyResponse",
    "GeoNode",
    "LocationOptions",
    "LocationSelect",
    "LocationSelection",
    "Money",
    "Notice",
    "OrderAddress",
    "OrderConfirmation",
    "OrderOptions",
    "OrderRequest",
    "OrderTotals",
    "SavedAddress",
    "ShippingFeeRequest",
    "ShippingQuote",
    "ShipToDifferentRequest",
    "SubmitResponse",
    "to_payload",
]
