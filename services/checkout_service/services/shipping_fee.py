"""Shipping fee estimation against the carrier rate service.

The carrier is treated as unreliable: any failure degrades to a flat fallback
fee and ``calculate`` never raises for remote problems.
"""

import asyncio
from collections.abc import Iterable
from decimal import Decimal
from typing import Optional

from libs.common.config import get_settings
from libs.common.currency import ZERO, round_dong, to_amount
from libs.common.logging import get_logger
from services.checkout_service.clients import ShippingClient
from services.checkout_service.errors import CheckoutError
from services.checkout_service.schemas.checkout import CartItem, LocationSelection, ShippingQuote
from services.checkout_service.schemas.wire import ShippingFeeRequest

logger = get_logger(__name__)


class ShippingFeeCalculator:
    def __init__(
        self,
        client: Optional[ShippingClient] = None,
        *,
        per_item_weight: Optional[int] = None,
        min_weight: Optional[int] = None,
        insurance_rate: Optional[Decimal] = None,
        fallback_fee: Optional[Decimal] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.client = client or ShippingClient()
        self.per_item_weight = (
            per_item_weight if per_item_weight is not None else settings.SHIPPING_PER_ITEM_WEIGHT_GRAMS
        )
        self.min_weight = min_weight if min_weight is not None else settings.SHIPPING_MIN_WEIGHT_GRAMS
        self.insurance_rate = (
            insurance_rate if insurance_rate is not None else settings.SHIPPING_INSURANCE_RATE
        )
        self.fallback_fee = fallback_fee if fallback_fee is not None else settings.SHIPPING_FALLBACK_FEE
        self.timeout = timeout if timeout is not None else settings.SHIPPING_TIMEOUT_SECONDS

    @property
    def fallback_quote(self) -> ShippingQuote:
        return ShippingQuote(fee=self.fallback_fee, fallback_applied=True)

    def build_request(
        self,
        destination: LocationSelection,
        items: Iterable[CartItem],
        subtotal: Decimal,
    ) -> ShippingFeeRequest:
        if not destination.district_id or not destination.ward_code:
            raise ValueError("Shipping destination needs both a district and a ward")
        items = list(items)
        item_count = sum(item.quantity for item in items)
        weight = max(self.min_weight, item_count * self.per_item_weight)
        insurance_value = max(ZERO, round_dong(subtotal * self.insurance_rate))
        return ShippingFeeRequest(
            district_id=destination.district_id,
            ward_code=destination.ward_code,
            weight=weight,
            insurance_value=int(insurance_value),
            item_count=item_count,
            subtotal=subtotal,
        )

    async def calculate(
        self,
        destination: LocationSelection,
        items: Iterable[CartItem],
        subtotal: Decimal,
    ) -> ShippingQuote:
        request = self.build_request(destination, items, subtotal)
        try:
            async with asyncio.timeout(self.timeout):
                body = await self.client.quote(request)
        except (CheckoutError, TimeoutError) as exc:
            logger.warning(
                "Shipping rate for district %s ward %s failed (%s); using fallback fee %s",
                request.district_id,
                request.ward_code,
                exc.__class__.__name__,
                self.fallback_fee,
            )
            return self.fallback_quote

        fee = to_amount(body.get("shippingFee"), default=None)
        if fee is None or fee < 0:
            logger.warning("Shipping rate response had no usable fee: %r", body)
            return self.fallback_quote
        return ShippingQuote(fee=fee, fallback_applied=bool(body.get("fallbackApplied", False)))
