"""Checkout error taxonomy.

Local validation errors never reach the network; remote rejections carry a
structured reason; network errors are fatal only on the order path.
"""

from decimal import Decimal
from typing import Optional

from services.checkout_service.models import (
    CheckoutPhase,
    CouponErrorReason,
    ValidationCategory,
)


class CheckoutError(Exception):
    """Base class for every checkout failure."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CheckoutValidationError(CheckoutError):
    """Form is incomplete; raised before any network call."""

    def __init__(self, category: ValidationCategory, message: str):
        super().__init__(message)
        self.category = category


class RemoteValidationError(CheckoutError):
    """A backend explicitly rejected the request."""

    def __init__(
        self,
        message: str,
        *,
        reason: Optional[str] = None,
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.status_code = status_code
        # Backend-supplied message, if the body carried one
        self.detail = detail


class CouponError(RemoteValidationError):
    def __init__(
        self,
        reason: CouponErrorReason,
        message: str,
        *,
        required_amount: Optional[Decimal] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, reason=reason.value, status_code=status_code)
        self.reason = reason
        self.required_amount = required_amount


class NetworkError(CheckoutError):
    """Connectivity failure, timeout or a 5xx from a dependency."""


class GeoLookupError(NetworkError):
    """Province/district/ward lookup failed; safe to retry."""


class UnknownLocationError(CheckoutError):
    """Selection refers to a node that is not in the loaded parent list."""


class StateInconsistencyError(CheckoutError):
    """Applied coupon no longer matches the cart it was applied to."""


class InvalidTransitionError(CheckoutError):
    def __init__(self, current: CheckoutPhase, target: CheckoutPhase):
        super().__init__(f"Cannot move checkout from {current.value} to {target.value}")
        self.current = current
        self.target = target


class OrderSubmissionError(CheckoutError):
    """Order placement failed; form data is kept for a retry."""

    def __init__(self, message: str, *, cause: CheckoutError):
        super().__init__(message)
        self.cause = cause

    @property
    def retryable(self) -> bool:
        return isinstance(self.cause, NetworkError)
