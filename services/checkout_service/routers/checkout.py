"""Checkout router: one orchestrator per cart session."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from libs.auth.dependencies import get_optional_user
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from services.checkout_service.clients import AddressBookClient
from services.checkout_service.errors import (
    CheckoutError,
    CheckoutValidationError,
    CouponError,
    InvalidTransitionError,
    NetworkError,
    OrderSubmissionError,
    RemoteValidationError,
    UnknownLocationError,
)
from services.checkout_service.models import AddressTarget, LocationLevel
from services.checkout_service.schemas import (
    AddressUpdate,
    CheckoutResponse,
    CouponApply,
    LocationOptions,
    LocationSelect,
    OrderOptions,
    ShipToDifferentRequest,
    SubmitResponse,
)
from services.checkout_service.services.address_resolver import AddressResolver
from services.checkout_service.services.orchestrator import CheckoutOrchestrator
from services.checkout_service.services.sessions import CheckoutSessions, get_sessions

logger = get_logger(__name__)

router = APIRouter(tags=["checkout"])


def get_address_book() -> AddressBookClient:
    return AddressBookClient()


# ============================================================================
# HELPERS
# ============================================================================


def _options(resolver: AddressResolver) -> LocationOptions:
    return LocationOptions(
        provinces=resolver.provinces,
        districts=resolver.districts,
        wards=resolver.wards,
    )


def _response(session_id: str, orchestrator: CheckoutOrchestrator) -> CheckoutResponse:
    totals = orchestrator.totals()
    return CheckoutResponse(
        session_id=session_id,
        state=orchestrator.state,
        cart=orchestrator.cart,
        totals=totals,
        billing_options=_options(orchestrator.billing_resolver),
        shipping_options=_options(orchestrator.shipping_resolver),
        notices=orchestrator.feedback.drain(),
    )


def _status_for(exc: CheckoutError) -> int:
    if isinstance(exc, (CheckoutValidationError, UnknownLocationError)):
        return 400
    if isinstance(exc, InvalidTransitionError):
        return 409
    if isinstance(exc, OrderSubmissionError):
        return 502 if exc.retryable else 422
    if isinstance(exc, NetworkError):
        return 502
    if isinstance(exc, RemoteValidationError):
        return 422
    return 400


def _http_error(exc: CheckoutError, orchestrator: Optional[CheckoutOrchestrator] = None) -> HTTPException:
    """Translate a checkout failure, carrying any notices it produced."""
    detail: dict = {"message": exc.message}
    if isinstance(exc, CheckoutValidationError):
        detail["category"] = exc.category.value
    if isinstance(exc, CouponError):
        detail["reason"] = exc.reason.value
        if exc.required_amount is not None:
            detail["required_amount"] = float(exc.required_amount)
    if isinstance(exc, OrderSubmissionError):
        detail["retryable"] = exc.retryable
    if orchestrator is not None:
        detail["notices"] = [
            notice.model_dump(mode="json") for notice in orchestrator.feedback.drain()
        ]
    return HTTPException(status_code=_status_for(exc), detail=detail)


def _require(sessions: CheckoutSessions, session_id: str) -> CheckoutOrchestrator:
    orchestrator = sessions.get(session_id)
    if orchestrator is None:
        raise HTTPException(status_code=404, detail="Checkout session not found")
    return orchestrator


def _location_value(level: LocationLevel, value):
    """Province and district ids are numeric; ward codes stay strings."""
    if value is None or value == "":
        return None
    if level is LocationLevel.WARD:
        return str(value)
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {level.value} id: {value}") from exc


# ============================================================================
# LIFECYCLE
# ============================================================================


@router.post("/{session_id}/start", response_model=CheckoutResponse)
async def start_checkout(
    session_id: str,
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    sessions: CheckoutSessions = Depends(get_sessions),
):
    """Open (or resume) the checkout for a cart session."""
    orchestrator = sessions.open(session_id, current_user)
    try:
        await orchestrator.start()
    except CheckoutError as exc:
        raise _http_error(exc, orchestrator) from exc
    return _response(session_id, orchestrator)


@router.get("/{session_id}", response_model=CheckoutResponse)
async def get_checkout(
    session_id: str,
    sessions: CheckoutSessions = Depends(get_sessions),
):
    return _response(session_id, _require(sessions, session_id))


@router.delete("/{session_id}", status_code=204)
async def leave_checkout(
    session_id: str,
    sessions: CheckoutSessions = Depends(get_sessions),
):
    if not sessions.close(session_id):
        raise HTTPException(status_code=404, detail="Checkout session not found")


@router.post("/{session_id}/cart/refresh", response_model=CheckoutResponse)
async def refresh_cart(
    session_id: str,
    sessions: CheckoutSessions = Depends(get_sessions),
):
    orchestrator = _require(sessions, session_id)
    try:
        await orchestrator.refresh_cart()
    except CheckoutError as exc:
        raise _http_error(exc, orchestrator) from exc
    return _response(session_id, orchestrator)


# ============================================================================
# ADDRESSES
# ============================================================================


@router.patch("/{session_id}/address/{target}", response_model=CheckoutResponse)
async def update_address(
    session_id: str,
    target: AddressTarget,
    payload: AddressUpdate,
    sessions: CheckoutSessions = Depends(get_sessions),
):
    orchestrator = _require(sessions, session_id)
    orchestrator.update_address(target, **payload.model_dump(exclude_unset=True, exclude_none=True))
    return _response(session_id, orchestrator)


@router.post("/{session_id}/address/{target}/location", response_model=CheckoutResponse)
async def select_location(
    session_id: str,
    target: AddressTarget,
    payload: LocationSelect,
    sessions: CheckoutSessions = Depends(get_sessions),
):
    orchestrator = _require(sessions, session_id)
    value = _location_value(payload.level, payload.value)
    try:
        await orchestrator.select_location(target, payload.level, value)
    except CheckoutError as exc:
        raise _http_error(exc, orchestrator) from exc
    return _response(session_id, orchestrator)


@router.post(
    "/{session_id}/address/{target}/saved/{address_id}",
    response_model=CheckoutResponse,
)
async def apply_saved_address(
    session_id: str,
    target: AddressTarget,
    address_id: int,
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    sessions: CheckoutSessions = Depends(get_sessions),
    address_book: AddressBookClient = Depends(get_address_book),
):
    """Fill a block from the signed-in shopper's address book."""
    orchestrator = _require(sessions, session_id)
    if current_user is None or current_user.backend_user_id is None:
        raise HTTPException(status_code=401, detail="Sign in to use saved addresses")

    try:
        addresses = await address_book.list_addresses(current_user.backend_user_id)
    except CheckoutError as exc:
        raise _http_error(exc, orchestrator) from exc
    saved = next((address for address in addresses if address.id == address_id), None)
    if saved is None:
        raise HTTPException(status_code=404, detail="Saved address not found")

    await orchestrator.apply_saved_address(target, saved)
    return _response(session_id, orchestrator)


@router.post("/{session_id}/ship-to-different", response_model=CheckoutResponse)
async def set_ship_to_different(
    session_id: str,
    payload: ShipToDifferentRequest,
    sessions: CheckoutSessions = Depends(get_sessions),
):
    orchestrator = _require(sessions, session_id)
    await orchestrator.set_ship_to_different_address(
        payload.enabled, copy_billing=payload.copy_billing
    )
    return _response(session_id, orchestrator)


@router.patch("/{session_id}/options", response_model=CheckoutResponse)
async def set_order_options(
    session_id: str,
    payload: OrderOptions,
    sessions: CheckoutSessions = Depends(get_sessions),
):
    orchestrator = _require(sessions, session_id)
    orchestrator.set_order_options(create_account=payload.create_account, notes=payload.notes)
    return _response(session_id, orchestrator)


# ============================================================================
# COUPONS
# ============================================================================


@router.post("/{session_id}/coupon", response_model=CheckoutResponse)
async def apply_coupon(
    session_id: str,
    payload: CouponApply,
    sessions: CheckoutSessions = Depends(get_sessions),
):
    orchestrator = _require(sessions, session_id)
    try:
        await orchestrator.apply_coupon(payload.code)
    except CheckoutError as exc:
        raise _http_error(exc, orchestrator) from exc
    return _response(session_id, orchestrator)


@router.delete("/{session_id}/coupon", response_model=CheckoutResponse)
async def remove_coupon(
    session_id: str,
    sessions: CheckoutSessions = Depends(get_sessions),
):
    orchestrator = _require(sessions, session_id)
    orchestrator.remove_coupon()
    return _response(session_id, orchestrator)


# ============================================================================
# SUBMISSION
# ============================================================================


@router.post("/{session_id}/submit", response_model=SubmitResponse)
async def submit_order(
    session_id: str,
    sessions: CheckoutSessions = Depends(get_sessions),
):
    orchestrator = _require(sessions, session_id)
    try:
        order = await orchestrator.submit()
    except CheckoutError as exc:
        raise _http_error(exc, orchestrator) from exc
    response = SubmitResponse(order=order, notices=orchestrator.feedback.drain())
    # A placed order ends the session, unless it was replaced while submitting
    if sessions.get(session_id) is orchestrator:
        sessions.close(session_id)
    return response
