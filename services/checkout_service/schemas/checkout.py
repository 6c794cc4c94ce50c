"""Checkout snapshot models.

Every model here is frozen: state changes replace the whole snapshot through
``model_copy(update=...)`` so no half-applied update is ever observable.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, model_validator
from pydantic.alias_generators import to_camel
from services.checkout_service.models import (
    CheckoutPhase,
    DiscountType,
    NoticeLevel,
)


def _money_to_json(value: Decimal) -> Union[int, float]:
    return int(value) if value == value.to_integral_value() else float(value)


# Backends speak JSON numbers, not Decimal strings
Money = Annotated[Decimal, PlainSerializer(_money_to_json, when_used="json")]


class Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class WireSnapshot(BaseModel):
    """Frozen model that reads and writes the backends' camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )


# ============================================================================
# GEOGRAPHY
# ============================================================================


class GeoNode(Snapshot):
    """Province (int id), district (int id) or ward (str code)."""

    id: Union[int, str]
    name: str
    parent_id: Optional[int] = None

    @classmethod
    def from_province(cls, raw: dict[str, Any]) -> "GeoNode":
        return cls(id=int(raw["ProvinceID"]), name=str(raw["ProvinceName"]))

    @classmethod
    def from_district(cls, raw: dict[str, Any]) -> "GeoNode":
        return cls(
            id=int(raw["DistrictID"]),
            name=str(raw["DistrictName"]),
            parent_id=raw.get("ProvinceID"),
        )

    @classmethod
    def from_ward(cls, raw: dict[str, Any]) -> "GeoNode":
        return cls(
            id=str(raw["WardCode"]),
            name=str(raw["WardName"]),
            parent_id=raw.get("DistrictID"),
        )


class LocationSelection(Snapshot):
    province_id: Optional[int] = None
    province_name: str = ""
    district_id: Optional[int] = None
    district_name: str = ""
    ward_code: Optional[str] = None
    ward_name: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.province_id and self.district_id and self.ward_code)


# ============================================================================
# CART (owned by the cart service, read-only here)
# ============================================================================


class CartItem(WireSnapshot):
    id: Optional[int] = None
    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    product_name: str = ""
    quantity: int = Field(0, ge=0)
    unit_price: Money = Decimal("0")
    subtotal: Money = Decimal("0")


class CartSnapshot(WireSnapshot):
    session_id: Optional[str] = None
    user_id: Optional[int] = None
    items: tuple[CartItem, ...] = ()
    subtotal: Money = Decimal("0")
    original_subtotal: Money = Decimal("0")

    @model_validator(mode="before")
    @classmethod
    def _default_original_subtotal(cls, data: Any) -> Any:
        # Carts without line-level discounts omit originalSubtotal
        if not isinstance(data, dict):
            return data
        if data.get("originalSubtotal", data.get("original_subtotal")) is None:
            data = {
                key: value
                for key, value in data.items()
                if key not in ("originalSubtotal", "original_subtotal")
            }
            data["original_subtotal"] = data.get("subtotal", Decimal("0"))
        return data

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)


# ============================================================================
# COUPONS
# ============================================================================


class Coupon(WireSnapshot):
    id: Optional[int] = None
    code: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Money
    min_order_amount: Optional[Money] = None
    max_discount_amount: Optional[Money] = None
    usage_limit: Optional[int] = None
    usage_count: int = 0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: bool = True


class AppliedCoupon(Snapshot):
    code: str
    discount_type: DiscountType
    discount_value: Money
    discount_amount: Money
    subtotal_at_application: Money


# ============================================================================
# SHIPPING / TOTALS
# ============================================================================


class ShippingQuote(Snapshot):
    fee: Money = Decimal("0")
    fallback_applied: bool = False


class OrderTotals(Snapshot):
    subtotal: Money
    shipping_fee: Money
    tax_amount: Money
    discount_amount: Money
    total: Money
    product_discount: Money = Decimal("0")
    has_product_discount: bool = False


# ============================================================================
# ADDRESSES
# ============================================================================


class AddressForm(Snapshot):
    """Contact part of a billing or shipping block."""

    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    address_line1: str = ""
    address_line2: str = ""
    country: str = ""
    postcode: str = ""

    @property
    def recipient_name(self) -> str:
        return " ".join(part.strip() for part in (self.first_name, self.last_name) if part.strip())


class SavedAddress(WireSnapshot):
    """Address-book entry."""

    id: int
    label: Optional[str] = None
    recipient_name: str
    phone: str
    address_line1: str
    address_line2: Optional[str] = None
    province_id: Optional[int] = None
    province_name: Optional[str] = None
    district_id: Optional[int] = None
    district_name: Optional[str] = None
    ward_code: Optional[str] = None
    ward_name: Optional[str] = None
    is_default: bool = False

    def to_location(self) -> LocationSelection:
        return LocationSelection(
            province_id=self.province_id,
            province_name=self.province_name or "",
            district_id=self.district_id,
            district_name=self.district_name or "",
            ward_code=self.ward_code or None,
            ward_name=self.ward_name or "",
        )


# ============================================================================
# ORDERS / FEEDBACK / STATE
# ============================================================================


class OrderConfirmation(WireSnapshot):
    order_id: int
    order_number: str
    status: str
    payment_status: Optional[str] = None
    payment_method: Optional[str] = None
    subtotal_amount: Optional[Money] = None
    shipping_fee: Optional[Money] = None
    tax_amount: Optional[Money] = None
    discount_amount: Optional[Money] = None
    total_amount: Optional[Money] = None
    coupon_code: Optional[str] = None
    placed_at: Optional[datetime] = None


class Notice(Snapshot):
    """One message for the shopper-facing feedback channel (toast)."""

    level: NoticeLevel
    code: str
    message: str


class CheckoutState(Snapshot):
    billing: AddressForm = AddressForm()
    billing_location: LocationSelection = LocationSelection()
    shipping: AddressForm = AddressForm()
    shipping_location: LocationSelection = LocationSelection()
    ship_to_different_address: bool = False
    create_account: bool = False
    notes: Optional[str] = None
    applied_coupon: Optional[AppliedCoupon] = None
    shipping_quote: ShippingQuote = ShippingQuote()
    calculating_shipping: bool = False
    phase: CheckoutPhase = CheckoutPhase.IDLE
    last_order: Optional[OrderConfirmation] = None

    @property
    def active_location(self) -> LocationSelection:
        """Destination the parcel goes to."""
        if self.ship_to_different_address:
            return self.shipping_location
        return self.billing_location
