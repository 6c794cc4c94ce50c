"""Coupon validation, application and invalidation.

Minimum-order validation happens twice: ``precheck`` uses the
prefetched catalog and never touches the network, then the coupon service
re-checks authoritatively during ``apply``.
"""

from decimal import Decimal
from typing import Optional

from libs.common.config import get_settings
from libs.common.currency import amounts_differ, format_vnd, to_amount
from libs.common.logging import get_logger
from services.checkout_service.clients import CouponClient
from services.checkout_service.errors import (
    CouponError,
    NetworkError,
    RemoteValidationError,
    StateInconsistencyError,
)
from services.checkout_service.models import CouponErrorReason
from services.checkout_service.schemas.checkout import AppliedCoupon, CartSnapshot, Coupon
from services.checkout_service.schemas.wire import CouponApplyRequest

logger = get_logger(__name__)

MIN_ORDER_PREFIX = "MIN_ORDER_REQUIREMENT:"
GENERIC_COUPON_ERROR = "Unable to apply this coupon. Please try again."

_INVALID_MARKERS = ("EXPIRED", "INVALID", "NOT FOUND", "INACTIVE", "NOT ACTIVE", "NOT STARTED")


def min_order_error(amount: Decimal, *, status_code: Optional[int] = None) -> CouponError:
    return CouponError(
        CouponErrorReason.MIN_ORDER_NOT_MET,
        f"This coupon requires a minimum order of {format_vnd(amount)}",
        required_amount=amount,
        status_code=status_code,
    )


def classify_rejection(exc: RemoteValidationError) -> CouponError:
    """Map a coupon-service rejection onto a structured reason.

    ``MIN_ORDER_REQUIREMENT:<amount>`` is machine-parseable; anything else is
    matched on its wording and surfaced verbatim.
    """
    detail = (exc.detail or "").strip()
    if detail.startswith(MIN_ORDER_PREFIX):
        amount = to_amount(detail[len(MIN_ORDER_PREFIX):].strip())
        return min_order_error(amount, status_code=exc.status_code)

    upper = detail.upper()
    if "USAGE" in upper and "LIMIT" in upper:
        reason = CouponErrorReason.USAGE_LIMIT_REACHED
    elif exc.status_code == 404 or any(marker in upper for marker in _INVALID_MARKERS):
        reason = CouponErrorReason.EXPIRED_OR_INVALID
    else:
        reason = CouponErrorReason.UNKNOWN
    return CouponError(reason, detail or GENERIC_COUPON_ERROR, status_code=exc.status_code)


class CouponEngine:
    def __init__(
        self,
        client: Optional[CouponClient] = None,
        *,
        tolerance: Optional[Decimal] = None,
    ):
        self.client = client or CouponClient()
        self.tolerance = (
            tolerance if tolerance is not None else get_settings().COUPON_SUBTOTAL_TOLERANCE
        )
        self.catalog: dict[str, Coupon] = {}
        self.applied: Optional[AppliedCoupon] = None
        self._generation = 0

    async def load_catalog(self) -> list[Coupon]:
        """Prefetch active coupons; a failure only disables the local pre-check."""
        try:
            coupons = await self.client.list_active()
        except (NetworkError, RemoteValidationError) as exc:
            logger.warning("Could not load coupon catalog: %s", exc)
            return []
        self.catalog = {coupon.code.strip().upper(): coupon for coupon in coupons}
        return coupons

    @staticmethod
    def normalize_code(raw_code: Optional[str]) -> str:
        code = (raw_code or "").strip().upper()
        if not code:
            raise CouponError(CouponErrorReason.MISSING_CODE, "Please enter a coupon code")
        return code

    def precheck(
        self,
        code: str,
        cart: CartSnapshot,
        *,
        requester_id: Optional[int] = None,
        coupon: Optional[Coupon] = None,
    ) -> None:
        """Local checks that must fail before any network call."""
        if cart.is_empty:
            raise CouponError(CouponErrorReason.EMPTY_CART, "Your cart is empty")
        if not cart.session_id and requester_id is None:
            raise CouponError(
                CouponErrorReason.MISSING_SESSION,
                "Your checkout session has expired. Please reload the page.",
            )
        meta = coupon or self.catalog.get(code)
        minimum = meta.min_order_amount if meta else None
        if minimum is not None and minimum > 0 and cart.subtotal < minimum:
            raise min_order_error(minimum)

    async def apply(
        self,
        raw_code: Optional[str],
        cart: CartSnapshot,
        requester_id: Optional[int] = None,
        *,
        coupon: Optional[Coupon] = None,
    ) -> Optional[AppliedCoupon]:
        """Apply a code against ``cart``.

        Returns the new ``AppliedCoupon``, or None when the call was superseded
        (another apply, a removal or a cancel) before its result arrived.
        Raises ``CouponError`` on rejection; the previous coupon is kept.
        """
        code = self.normalize_code(raw_code)
        self.precheck(code, cart, requester_id=requester_id, coupon=coupon)

        self._generation += 1
        issued = self._generation
        request = CouponApplyRequest(code=code, user_id=requester_id, session_id=cart.session_id)
        try:
            response = await self.client.apply(request)
        except RemoteValidationError as exc:
            if issued != self._generation:
                return None
            raise classify_rejection(exc) from exc
        except NetworkError as exc:
            if issued != self._generation:
                return None
            logger.warning("Coupon %s could not be applied: %s", code, exc)
            raise CouponError(CouponErrorReason.UNKNOWN, GENERIC_COUPON_ERROR) from exc

        if issued != self._generation:
            logger.info("Ignoring coupon %s result that arrived after it was superseded", code)
            return None

        self.applied = AppliedCoupon(
            code=response.code or code,
            discount_type=response.discount_type,
            discount_value=response.discount_value,
            discount_amount=response.discount_amount,
            subtotal_at_application=cart.subtotal,
        )
        logger.info(
            "Applied coupon %s: -%s on %s",
            self.applied.code,
            self.applied.discount_amount,
            cart.subtotal,
        )
        return self.applied

    def remove(self) -> Optional[AppliedCoupon]:
        removed = self.applied
        self._generation += 1
        self.applied = None
        return removed

    def observe_cart(self, cart: CartSnapshot) -> Optional[AppliedCoupon]:
        """Drop the coupon if ``cart`` no longer matches the subtotal it was applied to.

        Returns the invalidated coupon when a reapply is needed. An emptied cart
        drops the coupon without asking for a reapply.
        """
        applied = self.applied
        if applied is None:
            return None
        if cart.is_empty:
            self.applied = None
            return None
        if amounts_differ(cart.subtotal, applied.subtotal_at_application, self.tolerance):
            logger.info(
                "Coupon %s invalidated: subtotal %s -> %s",
                applied.code,
                applied.subtotal_at_application,
                cart.subtotal,
            )
            self.applied = None
            return applied
        return None

    def discount_for(self, cart: CartSnapshot) -> Decimal:
        """Discount that applies to ``cart`` right now."""
        applied = self.applied
        if applied is None:
            return Decimal("0")
        if cart.is_empty or amounts_differ(
            cart.subtotal, applied.subtotal_at_application, self.tolerance
        ):
            raise StateInconsistencyError(
                f"Coupon {applied.code} was applied to a different cart subtotal"
            )
        return applied.discount_amount

    def reset(self) -> None:
        """Forget the applied coupon and ignore any apply still in flight."""
        self._generation += 1
        self.applied = None
