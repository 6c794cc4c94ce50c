"""Unit tests for shared helpers: currency formatting, optional auth, settings."""

from decimal import Decimal

import pytest
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt
from libs.auth.dependencies import get_optional_user
from libs.common.config import Settings, get_settings
from libs.common.currency import amounts_differ, format_vnd, round_dong, to_amount


@pytest.mark.unit
@pytest.mark.parametrize(
    "amount, expected",
    [
        (Decimal("500000"), "500.000 ₫"),
        (30000, "30.000 ₫"),
        (Decimal("999.5"), "1.000 ₫"),
        (0, "0 ₫"),
        (Decimal("-1500"), "-1.500 ₫"),
    ],
)
def test_format_vnd(amount, expected):
    assert format_vnd(amount) == expected


@pytest.mark.unit
def test_to_amount_rejects_non_numbers():
    assert to_amount("12.5") == Decimal("12.5")
    assert to_amount("abc", default=None) is None
    assert to_amount(True, default=None) is None
    assert to_amount(float("nan"), default=None) is None


@pytest.mark.unit
def test_rounding_and_tolerance():
    assert round_dong(Decimal("1234.5")) == Decimal("1235")
    assert amounts_differ(Decimal("100000"), Decimal("100000.01"), Decimal("0.01")) is False
    assert amounts_differ(Decimal("100000"), Decimal("100000.02"), Decimal("0.01")) is True


@pytest.mark.unit
def test_settings_strip_trailing_slash():
    settings = Settings(STORE_API_URL="http://store.test/api/")

    assert settings.STORE_API_URL == "http://store.test/api"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_optional_user_decodes_valid_token():
    secret = get_settings().SUPABASE_JWT_SECRET
    token = jwt.encode(
        {"sub": "auth-1", "email": "an@example.com", "backend_user_id": 42},
        secret,
        algorithm="HS256",
    )

    user = await get_optional_user(HTTPAuthorizationCredentials(scheme="Bearer", credentials=token))

    assert user.user_id == "auth-1"
    assert user.backend_user_id == 42


@pytest.mark.asyncio
@pytest.mark.unit
async def test_optional_user_treats_bad_token_as_guest():
    assert await get_optional_user(None) is None
    assert (
        await get_optional_user(HTTPAuthorizationCredentials(scheme="Bearer", credentials="junk"))
        is None
    )
