import asyncio
from typing import Optional
from unittest.mock import AsyncMock

import pytest
from services.checkout_service.clients import (
    AddressBookClient,
    CouponClient,
    GeoClient,
    OrderClient,
    ShippingClient,
)
from services.checkout_service.errors import GeoLookupError, NetworkError
from services.checkout_service.schemas import CartSnapshot, GeoNode
from services.checkout_service.services.address_resolver import AddressResolver, GeoDirectory
from services.checkout_service.services.coupon_engine import CouponEngine
from services.checkout_service.services.feedback import FeedbackChannel
from services.checkout_service.services.orchestrator import CheckoutOrchestrator
from services.checkout_service.services.sessions import CheckoutSessions
from services.checkout_service.services.shipping_fee import ShippingFeeCalculator
from tests.factories import (
    DISTRICT_ROWS,
    PROVINCE_ROWS,
    WARD_ROWS,
    CartFactory,
    CartItemFactory,
    OrderConfirmationFactory,
    SavedAddressFactory,
)

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeGeoClient(GeoClient):
    """Serves the factory reference data; lookups can be gated or made to fail."""

    def __init__(self):
        super().__init__("http://geo.test", token="test-token")
        self.calls: list[tuple[str, Optional[int]]] = []
        self.failing: set[str] = set()
        self.gates: dict[tuple[str, int], asyncio.Event] = {}

    def gate(self, kind: str, parent_id: int) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[(kind, parent_id)] = event
        return event

    async def _serve(self, kind: str, parent_id: Optional[int], rows, build) -> list[GeoNode]:
        self.calls.append((kind, parent_id))
        gate = self.gates.get((kind, parent_id))
        if gate is not None:
            await gate.wait()
        if kind in self.failing:
            raise GeoLookupError(f"Geo lookup /{kind} failed (HTTP 503)")
        return [build(row) for row in rows]

    async def fetch_provinces(self) -> list[GeoNode]:
        return await self._serve("province", None, PROVINCE_ROWS, GeoNode.from_province)

    async def fetch_districts(self, province_id: int) -> list[GeoNode]:
        rows = DISTRICT_ROWS.get(province_id, [])
        return await self._serve("district", province_id, rows, GeoNode.from_district)

    async def fetch_wards(self, district_id: int) -> list[GeoNode]:
        rows = WARD_ROWS.get(district_id, [])
        return await self._serve("ward", district_id, rows, GeoNode.from_ward)


class FakeCartService:
    def __init__(self, cart: CartSnapshot):
        self.cart = cart
        self.cleared = False
        self.fail_clear = False

    async def get_cart(self) -> CartSnapshot:
        return self.cart

    async def clear_cart(self) -> None:
        if self.fail_clear:
            raise NetworkError("Cart unavailable (HTTP 503)")
        self.cleared = True
        self.cart = CartFactory.empty(session_id=self.cart.session_id)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def geo_client() -> FakeGeoClient:
    return FakeGeoClient()


@pytest.fixture
def geo_directory(geo_client) -> GeoDirectory:
    return GeoDirectory(geo_client)


@pytest.fixture
def resolver(geo_directory) -> AddressResolver:
    return AddressResolver(geo_directory)


@pytest.fixture
def coupon_client() -> AsyncMock:
    client = AsyncMock(spec=CouponClient)
    client.list_active.return_value = []
    return client


@pytest.fixture
def shipping_client() -> AsyncMock:
    client = AsyncMock(spec=ShippingClient)
    client.quote.return_value = {"shippingFee": 25000, "fallbackApplied": False}
    return client


@pytest.fixture
def order_client() -> AsyncMock:
    client = AsyncMock(spec=OrderClient)
    client.place.return_value = OrderConfirmationFactory.create()
    return client


@pytest.fixture
def cart_service() -> FakeCartService:
    items = (CartItemFactory.create(quantity=2, unit_price="250000"),)
    return FakeCartService(CartFactory.create(items=items))


@pytest.fixture
def orchestrator(
    cart_service, geo_directory, coupon_client, shipping_client, order_client
) -> CheckoutOrchestrator:
    return CheckoutOrchestrator(
        cart_service,
        geo=geo_directory,
        coupons=CouponEngine(coupon_client),
        shipping=ShippingFeeCalculator(shipping_client, timeout=1.0),
        orders=order_client,
        feedback=FeedbackChannel(),
    )


@pytest.fixture
def address_book() -> AsyncMock:
    client = AsyncMock(spec=AddressBookClient)
    client.list_addresses.return_value = [SavedAddressFactory.create()]
    return client


@pytest.fixture
def checkout_sessions(
    cart_service, geo_directory, coupon_client, shipping_client, order_client
) -> CheckoutSessions:
    """Registry whose orchestrators share the fakes above; the cart takes the path's session id."""

    def factory(session_id, user):
        cart_service.cart = cart_service.cart.model_copy(update={"session_id": session_id})
        return CheckoutOrchestrator(
            cart_service,
            geo=geo_directory,
            coupons=CouponEngine(coupon_client),
            shipping=ShippingFeeCalculator(shipping_client, timeout=1.0),
            orders=order_client,
            user=user,
        )

    return CheckoutSessions(factory)
