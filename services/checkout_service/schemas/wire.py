"""Request/response bodies exchanged with the storefront backend and carrier."""

from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field
from services.checkout_service.models import DiscountType
from services.checkout_service.schemas.checkout import Money, WireSnapshot


def to_payload(model: BaseModel) -> dict[str, Any]:
    """camelCase JSON body with unset optionals dropped."""
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


class ShippingFeeRequest(WireSnapshot):
    district_id: int
    ward_code: str
    weight: int
    insurance_value: int
    item_count: int
    subtotal: Money


class CouponApplyRequest(WireSnapshot):
    code: str
    user_id: Optional[int] = None
    session_id: Optional[str] = None


class CouponApplyResponse(WireSnapshot):
    coupon_id: Optional[int] = None
    code: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Money
    max_discount_amount: Optional[Money] = None
    min_order_amount: Optional[Money] = None
    subtotal: Money = Decimal("0")
    discount_amount: Money = Decimal("0")
    total_after_discount: Optional[Money] = None


class OrderAddress(WireSnapshot):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    address_line1: str = Field("", alias="address1")
    address_line2: str = Field("", alias="address2")
    country: str = ""
    postcode: str = ""
    district_id: Optional[int] = None
    ward_code: Optional[str] = None


class OrderRequest(WireSnapshot):
    user_id: Optional[int] = None
    session_id: str
    billing: OrderAddress
    shipping: OrderAddress
    ship_to_different_address: bool
    create_account: bool = False
    payment_method: str
    notes: Optional[str] = None
    shipping_fee: Money
    tax_amount: Money
    discount_amount: Money
    coupon_code: Optional[str] = None
