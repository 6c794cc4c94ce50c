"""HTTP clients for the services checkout depends on.

Each client turns transport failures into ``NetworkError`` and 4xx bodies into
``RemoteValidationError`` so callers never handle ``httpx`` types.
"""

from typing import Any, Optional

import httpx
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.common.service_client import ServiceClient, error_message
from pydantic import ValidationError
from services.checkout_service.errors import (
    GeoLookupError,
    NetworkError,
    RemoteValidationError,
)
from services.checkout_service.schemas.checkout import (
    CartSnapshot,
    Coupon,
    GeoNode,
    OrderConfirmation,
    SavedAddress,
)
from services.checkout_service.schemas.wire import (
    CouponApplyRequest,
    CouponApplyResponse,
    OrderRequest,
    ShippingFeeRequest,
    to_payload,
)

logger = get_logger(__name__)


def _check(response: httpx.Response, what: str) -> None:
    if response.status_code >= 500:
        raise NetworkError(f"{what} unavailable (HTTP {response.status_code})")
    if response.status_code >= 400:
        detail = error_message(response)
        raise RemoteValidationError(
            detail or f"{what} rejected",
            status_code=response.status_code,
            detail=detail,
        )


def _json(response: httpx.Response, what: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise NetworkError(f"{what} returned a malformed body") from exc


class StoreClient(ServiceClient):
    """Storefront backend (``STORE_API_URL``)."""

    def __init__(self, base_url: Optional[str] = None, **kwargs):
        super().__init__(base_url or get_settings().STORE_API_URL, **kwargs)

    async def call(self, method: str, path: str, what: str, **kwargs) -> httpx.Response:
        try:
            response = await self.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise NetworkError(f"{what} unreachable: {exc.__class__.__name__}") from exc
        _check(response, what)
        return response


# ============================================================================
# GEO REFERENCE (GHN master data)
# ============================================================================


class GeoClient(ServiceClient):
    """Province/district/ward lookups; responses use a ``{code, data, message}`` envelope."""

    def __init__(self, base_url: Optional[str] = None, *, token: Optional[str] = None, **kwargs):
        settings = get_settings()
        kwargs.setdefault("timeout", settings.GEO_TIMEOUT_SECONDS)
        super().__init__(
            base_url or settings.GHN_API_URL,
            headers={"token": token or settings.GHN_API_TOKEN},
            **kwargs,
        )

    async def _data(self, method: str, path: str, json: Optional[dict] = None) -> list[dict]:
        try:
            response = await self.request(method, path, json=json)
        except httpx.HTTPError as exc:
            raise GeoLookupError(f"Geo lookup {path} failed: {exc.__class__.__name__}") from exc
        if response.status_code != 200:
            raise GeoLookupError(f"Geo lookup {path} failed (HTTP {response.status_code})")
        try:
            body = response.json()
        except ValueError as exc:
            raise GeoLookupError(f"Geo lookup {path} returned a malformed body") from exc
        if not isinstance(body, dict) or body.get("code", 200) != 200:
            message = body.get("message") if isinstance(body, dict) else None
            raise GeoLookupError(f"Geo lookup {path} rejected: {message or 'unknown error'}")
        data = body.get("data") or []
        if not isinstance(data, list):
            raise GeoLookupError(f"Geo lookup {path} returned a malformed body")
        return data

    async def fetch_provinces(self) -> list[GeoNode]:
        rows = await self._data("GET", "/province")
        return _parse(rows, GeoNode.from_province, "/province")

    async def fetch_districts(self, province_id: int) -> list[GeoNode]:
        rows = await self._data("POST", "/district", {"province_id": province_id})
        return _parse(rows, GeoNode.from_district, "/district")

    async def fetch_wards(self, district_id: int) -> list[GeoNode]:
        rows = await self._data("POST", "/ward", {"district_id": district_id})
        return _parse(rows, GeoNode.from_ward, "/ward")


def _parse(rows: list[dict], build, path: str) -> list[GeoNode]:
    try:
        return [build(row) for row in rows]
    except (KeyError, TypeError, ValueError) as exc:
        raise GeoLookupError(f"Geo lookup {path} returned a malformed row") from exc


# ============================================================================
# COUPONS
# ============================================================================


class CouponClient(StoreClient):
    async def list_active(self) -> list[Coupon]:
        response = await self.call("GET", "/coupons", "Coupon list", params={"active": "true"})
        rows = _json(response, "Coupon list")
        try:
            return [Coupon.model_validate(row) for row in rows]
        except (ValidationError, TypeError) as exc:
            raise NetworkError("Coupon list returned a malformed body") from exc

    async def apply(self, payload: CouponApplyRequest) -> CouponApplyResponse:
        response = await self.call("POST", "/coupons/apply", "Coupon", json=to_payload(payload))
        try:
            return CouponApplyResponse.model_validate(_json(response, "Coupon"))
        except ValidationError as exc:
            raise NetworkError("Coupon service returned a malformed body") from exc


# ============================================================================
# SHIPPING
# ============================================================================


class ShippingClient(StoreClient):
    def __init__(self, base_url: Optional[str] = None, **kwargs):
        kwargs.setdefault("timeout", get_settings().SHIPPING_TIMEOUT_SECONDS)
        super().__init__(base_url, **kwargs)

    async def quote(self, payload: ShippingFeeRequest) -> dict[str, Any]:
        response = await self.call("POST", "/shipping/fee", "Shipping rate", json=to_payload(payload))
        body = _json(response, "Shipping rate")
        if not isinstance(body, dict):
            raise NetworkError("Shipping rate returned a malformed body")
        return body


# ============================================================================
# ORDERS
# ============================================================================


class OrderClient(StoreClient):
    async def place(self, payload: OrderRequest) -> OrderConfirmation:
        response = await self.call("POST", "/orders", "Order service", json=to_payload(payload))
        try:
            return OrderConfirmation.model_validate(_json(response, "Order service"))
        except ValidationError as exc:
            raise NetworkError("Order service returned a malformed body") from exc


# ============================================================================
# CART / ADDRESS BOOK (collaborators)
# ============================================================================


class CartClient(StoreClient):
    """Cart of one shopper, identified by user id and/or guest session id."""

    def __init__(
        self,
        session_id: Optional[str],
        user_id: Optional[int] = None,
        base_url: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(base_url, **kwargs)
        self.session_id = session_id
        self.user_id = user_id

    def _params(self) -> dict:
        return {"userId": self.user_id, "sessionId": self.session_id}

    async def get_cart(self) -> CartSnapshot:
        response = await self.call("GET", "/cart", "Cart", params=self._params())
        body = _json(response, "Cart")
        try:
            cart = CartSnapshot.model_validate(body)
        except ValidationError as exc:
            raise NetworkError("Cart service returned a malformed body") from exc
        if not cart.session_id and self.session_id:
            cart = cart.model_copy(update={"session_id": self.session_id})
        return cart

    async def clear_cart(self) -> None:
        await self.call("DELETE", "/cart", "Cart", params=self._params())


class AddressBookClient(StoreClient):
    async def list_addresses(self, user_id: int) -> list[SavedAddress]:
        response = await self.call("GET", "/addresses", "Address book", params={"userId": user_id})
        try:
            return [SavedAddress.model_validate(row) for row in _json(response, "Address book")]
        except (ValidationError, TypeError) as exc:
            raise NetworkError("Address book returned a malformed body") from exc
