"""Integration tests for the checkout HTTP surface.

Requests go through the FastAPI app in-process; backends are the fakes from
tests/conftest.py.
"""

import pytest
from libs.auth.dependencies import get_optional_user
from services.checkout_service.app.main import app
from services.checkout_service.errors import NetworkError, RemoteValidationError
from tests.factories import (
    BA_DINH,
    HANOI,
    PHUC_XA,
    QUAN_1,
    AuthUserFactory,
    CouponApplyResponseFactory,
    CouponFactory,
)

SESSION = "sess-api-1"

CONTACT = {
    "first_name": "An",
    "last_name": "Nguyễn",
    "email": "an.nguyen@example.com",
    "phone": "0901234567",
    "address_line1": "12 Lý Thái Tổ",
}


async def _start(client, session_id=SESSION):
    response = await client.post(f"/checkout/{session_id}/start")
    assert response.status_code == 200, response.text
    return response.json()


async def _fill_billing(client, session_id=SESSION):
    response = await client.patch(f"/checkout/{session_id}/address/billing", json=CONTACT)
    assert response.status_code == 200
    for level, value in (("province", HANOI), ("district", BA_DINH), ("ward", PHUC_XA)):
        response = await client.post(
            f"/checkout/{session_id}/address/billing/location",
            json={"level": level, "value": value},
        )
        assert response.status_code == 200, response.text
    return response.json()


def _codes(body):
    return [notice["code"] for notice in body["notices"]]


# ---------------------------------------------------------------------------
# System / lookups
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "checkout"}
    assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
@pytest.mark.integration
async def test_location_lookups(client):
    provinces = await client.get("/checkout/locations/provinces")
    districts = await client.get(f"/checkout/locations/provinces/{HANOI}/districts")
    wards = await client.get(f"/checkout/locations/districts/{BA_DINH}/wards")

    assert [row["id"] for row in provinces.json()] == [HANOI, 202]
    assert [row["name"] for row in districts.json()] == ["Ba Đình", "Hoàn Kiếm"]
    assert wards.json()[0] == {"id": PHUC_XA, "name": "Phúc Xá", "parent_id": BA_DINH}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_location_lookup_failure_is_bad_gateway(client, geo_client):
    geo_client.failing.add("province")

    response = await client.get("/checkout/locations/provinces")

    assert response.status_code == 502


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_session_is_not_found(client):
    response = await client.get("/checkout/nope")

    assert response.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_start_returns_cart_and_options(client):
    body = await _start(client)

    assert body["session_id"] == SESSION
    assert body["cart"]["sessionId"] == SESSION
    assert body["totals"]["subtotal"] == 500000
    assert body["state"]["phase"] == "idle"
    assert [row["id"] for row in body["billing_options"]["provinces"]] == [HANOI, 202]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_start_prefills_signed_in_shopper(client):
    app.dependency_overrides[get_optional_user] = lambda: AuthUserFactory.create()

    body = await _start(client)

    assert body["state"]["billing"]["email"] == "an.nguyen@example.com"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_start_for_another_user_gets_fresh_checkout(client):
    alice = AuthUserFactory.create(backend_user_id=1, email="alice@example.com", first_name="Alice")
    bob = AuthUserFactory.create(backend_user_id=2, email="bob@example.com", first_name="Bob")
    app.dependency_overrides[get_optional_user] = lambda: alice
    await _start(client)
    await client.patch(f"/checkout/{SESSION}/address/billing", json={"phone": "0900000001"})

    app.dependency_overrides[get_optional_user] = lambda: bob
    body = await _start(client)

    billing = body["state"]["billing"]
    assert billing["email"] == "bob@example.com"
    assert billing["first_name"] == "Bob"
    assert billing["phone"] == ""


@pytest.mark.asyncio
@pytest.mark.integration
async def test_leave_discards_session(client, checkout_sessions):
    await _start(client)

    response = await client.delete(f"/checkout/{SESSION}")

    assert response.status_code == 204
    assert len(checkout_sessions) == 0
    assert (await client.get(f"/checkout/{SESSION}")).status_code == 404


# ---------------------------------------------------------------------------
# Addresses
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_ward_selection_quotes_shipping(client, shipping_client):
    await _start(client)

    body = await _fill_billing(client)

    assert body["state"]["billing_location"]["ward_name"] == "Phúc Xá"
    assert body["state"]["shipping_quote"] == {"fee": 25000, "fallback_applied": False}
    assert body["totals"]["total"] == 525000
    shipping_client.quote.assert_awaited_once()


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_district_is_bad_request(client):
    await _start(client)
    await client.post(
        f"/checkout/{SESSION}/address/billing/location",
        json={"level": "province", "value": HANOI},
    )

    response = await client.post(
        f"/checkout/{SESSION}/address/billing/location",
        json={"level": "district", "value": QUAN_1},
    )

    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_numeric_ids_accepted_as_strings(client):
    await _start(client)

    response = await client.post(
        f"/checkout/{SESSION}/address/billing/location",
        json={"level": "province", "value": str(HANOI)},
    )

    assert response.status_code == 200
    assert response.json()["state"]["billing_location"]["province_id"] == HANOI


@pytest.mark.asyncio
@pytest.mark.integration
async def test_saved_address_requires_sign_in(client):
    await _start(client)

    response = await client.post(f"/checkout/{SESSION}/address/billing/saved/7")

    assert response.status_code == 401


@pytest.mark.asyncio
@pytest.mark.integration
async def test_saved_address_fills_billing(client, address_book):
    app.dependency_overrides[get_optional_user] = lambda: AuthUserFactory.create()
    await _start(client)

    response = await client.post(f"/checkout/{SESSION}/address/billing/saved/7")

    assert response.status_code == 200
    body = response.json()
    assert body["state"]["billing"]["phone"] == "0901234567"
    assert body["state"]["billing_location"]["ward_code"] == PHUC_XA
    address_book.list_addresses.assert_awaited_once_with(42)


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_saved_address_is_not_found(client):
    app.dependency_overrides[get_optional_user] = lambda: AuthUserFactory.create()
    await _start(client)

    response = await client.post(f"/checkout/{SESSION}/address/billing/saved/999")

    assert response.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_ship_to_different_toggle(client):
    await _start(client)

    response = await client.post(
        f"/checkout/{SESSION}/ship-to-different",
        json={"enabled": True, "copy_billing": False},
    )

    assert response.status_code == 200
    assert response.json()["state"]["ship_to_different_address"] is True


# ---------------------------------------------------------------------------
# Coupons
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_coupon_apply_and_remove(client, coupon_client):
    coupon_client.apply.return_value = CouponApplyResponseFactory.create()
    await _start(client)

    applied = await client.post(f"/checkout/{SESSION}/coupon", json={"code": "sale10"})
    removed = await client.delete(f"/checkout/{SESSION}/coupon")

    assert applied.status_code == 200
    assert applied.json()["totals"]["discount_amount"] == 50000
    assert "COUPON_APPLIED" in _codes(applied.json())
    assert removed.json()["state"]["applied_coupon"] is None
    assert "COUPON_REMOVED" in _codes(removed.json())


@pytest.mark.asyncio
@pytest.mark.integration
async def test_coupon_min_order_is_unprocessable(client, coupon_client):
    coupon_client.list_active.return_value = [
        CouponFactory.create(code="BIG", min_order_amount=1000000)
    ]
    await _start(client)

    response = await client.post(f"/checkout/{SESSION}/coupon", json={"code": "BIG"})

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["reason"] == "MIN_ORDER_NOT_MET"
    assert detail["required_amount"] == 1000000
    assert detail["notices"][0]["code"] == "COUPON_ERROR"
    coupon_client.apply.assert_not_awaited()


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_submit_incomplete_form_is_bad_request(client, order_client):
    await _start(client)

    response = await client.post(f"/checkout/{SESSION}/submit")

    assert response.status_code == 400
    assert response.json()["detail"]["category"] == "billing_fields"
    order_client.place.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.integration
async def test_submit_places_order(client, coupon_client, order_client, cart_service):
    coupon_client.apply.return_value = CouponApplyResponseFactory.create()
    await _start(client)
    await _fill_billing(client)
    await client.post(f"/checkout/{SESSION}/coupon", json={"code": "SALE10"})
    await client.patch(f"/checkout/{SESSION}/options", json={"notes": "Giao giờ hành chính"})

    summary = (await client.get(f"/checkout/{SESSION}")).json()
    assert summary["totals"]["total"] == 475000

    response = await client.post(f"/checkout/{SESSION}/submit")

    assert response.status_code == 200
    body = response.json()
    assert body["order"]["orderNumber"] == "ORD-1001"
    assert "ORDER_PLACED" in _codes(body)
    request = order_client.place.await_args.args[0]
    assert request.session_id == SESSION
    assert request.notes == "Giao giờ hành chính"
    assert request.coupon_code == "SALE10"
    assert cart_service.cleared is True


@pytest.mark.asyncio
@pytest.mark.integration
async def test_submit_network_failure_is_bad_gateway(client, order_client):
    order_client.place.side_effect = NetworkError("Order service unavailable (HTTP 503)")
    await _start(client)
    await _fill_billing(client)

    response = await client.post(f"/checkout/{SESSION}/submit")

    assert response.status_code == 502
    assert response.json()["detail"]["retryable"] is True
    state = (await client.get(f"/checkout/{SESSION}")).json()["state"]
    assert state["phase"] == "idle"
    assert state["billing"]["phone"] == "0901234567"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_submit_rejection_is_unprocessable(client, order_client):
    order_client.place.side_effect = RemoteValidationError(
        "Out of stock", status_code=422, detail="Out of stock"
    )
    await _start(client)
    await _fill_billing(client)

    response = await client.post(f"/checkout/{SESSION}/submit")

    assert response.status_code == 422
    assert response.json()["detail"]["message"] == "Out of stock"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_placed_order_ends_session(client, checkout_sessions, order_client):
    await _start(client)
    await _fill_billing(client)
    assert (await client.post(f"/checkout/{SESSION}/submit")).status_code == 200

    response = await client.post(f"/checkout/{SESSION}/submit")

    assert response.status_code == 404
    assert SESSION not in checkout_sessions
    order_client.place.assert_awaited_once()


@pytest.mark.asyncio
@pytest.mark.integration
async def test_failed_submit_keeps_session(client, checkout_sessions, order_client):
    order_client.place.side_effect = NetworkError("Order service unavailable (HTTP 503)")
    await _start(client)
    await _fill_billing(client)

    await client.post(f"/checkout/{SESSION}/submit")

    assert SESSION in checkout_sessions
