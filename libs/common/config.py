from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    SERVICE_NAME: str = "checkout"

    # Supabase JWT (identity for the HTTP surface)
    SUPABASE_JWT_SECRET: str = "test-jwt-secret"

    # Storefront backend (cart, coupons, shipping, orders, address book)
    STORE_API_URL: str = "http://localhost:8080/api"
    SERVICE_TIMEOUT_SECONDS: float = 10.0

    # GHN master-data (province / district / ward reference service)
    GHN_API_URL: str = "https://online-gateway.ghn.vn/shiip/public-api/master-data"
    GHN_API_TOKEN: str = "test-ghn-token"
    GEO_TIMEOUT_SECONDS: float = 8.0

    # Shipping fee estimation
    SHIPPING_TIMEOUT_SECONDS: float = 8.0
    SHIPPING_PER_ITEM_WEIGHT_GRAMS: int = 500  # business estimate, varies per market
    SHIPPING_MIN_WEIGHT_GRAMS: int = 200
    SHIPPING_INSURANCE_RATE: Decimal = Decimal("0.10")
    SHIPPING_FALLBACK_FEE: Decimal = Decimal("30000")

    # Checkout
    DEFAULT_PAYMENT_METHOD: str = "COD"
    DEFAULT_TAX_AMOUNT: Decimal = Decimal("0")
    COUPON_SUBTOTAL_TOLERANCE: Decimal = Decimal("0.01")
    CHECKOUT_SESSION_IDLE_SECONDS: float = 1800.0
    CHECKOUT_MAX_SESSIONS: int = 1000

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("STORE_API_URL", "GHN_API_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
