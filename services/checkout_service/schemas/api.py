"""Request/response schemas for the checkout HTTP surface."""

from typing import Optional, Union

from pydantic import BaseModel, Field
from services.checkout_service.models import LocationLevel
from services.checkout_service.schemas.checkout import (
    CartSnapshot,
    CheckoutState,
    GeoNode,
    Notice,
    OrderConfirmation,
    OrderTotals,
)

# ============================================================================
# REQUESTS
# ============================================================================


class AddressUpdate(BaseModel):
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=30)
    address_line1: Optional[str] = Field(None, max_length=255)
    address_line2: Optional[str] = Field(None, max_length=255)


class LocationSelect(BaseModel):
    level: LocationLevel
    # Province/district ids are ints, ward codes are strings; None clears
    value: Optional[Union[int, str]] = None


class ShipToDifferentRequest(BaseModel):
    enabled: bool
    copy_billing: bool = False


class CouponApply(BaseModel):
    code: str = Field(..., max_length=50)


class OrderOptions(BaseModel):
    create_account: Optional[bool] = None
    notes: Optional[str] = Field(None, max_length=1000)


# ============================================================================
# RESPONSES
# ============================================================================


class LocationOptions(BaseModel):
    """Option lists currently shown for one address block."""

    provinces: list[GeoNode] = []
    districts: list[GeoNode] = []
    wards: list[GeoNode] = []


class CheckoutResponse(BaseModel):
    session_id: str
    state: CheckoutState
    cart: CartSnapshot
    totals: OrderTotals
    billing_options: LocationOptions
    shipping_options: LocationOptions
    notices: list[Notice] = []


class SubmitResponse(BaseModel):
    order: OrderConfirmation
    notices: list[Notice] = []
