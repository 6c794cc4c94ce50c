"""Checkout orchestration.

``CheckoutOrchestrator`` owns one shopper's checkout: two address resolvers
(billing and shipping), the coupon engine, shipping quotes and the submission
phase machine. The current ``CheckoutState`` is a frozen snapshot assembled
from those parts; every mutation replaces it whole.

Results of shipping and coupon calls are generation-guarded: ``leave()``, an
emptied cart or a change of shipping destination advances the generation and
late results are dropped.
"""

import asyncio
from decimal import Decimal
from typing import Optional, Protocol

from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.currency import format_vnd
from libs.common.logging import get_logger
from services.checkout_service.clients import OrderClient
from services.checkout_service.errors import (
    CheckoutValidationError,
    CouponError,
    NetworkError,
    OrderSubmissionError,
    RemoteValidationError,
    StateInconsistencyError,
)
from services.checkout_service.models import (
    AddressTarget,
    CheckoutPhase,
    LocationLevel,
    NoticeLevel,
    ValidationCategory,
)
from services.checkout_service.schemas.checkout import (
    AddressForm,
    AppliedCoupon,
    CartSnapshot,
    CheckoutState,
    LocationSelection,
    OrderConfirmation,
    OrderTotals,
    SavedAddress,
    ShippingQuote,
)
from services.checkout_service.schemas.wire import OrderAddress, OrderRequest
from services.checkout_service.services.address_resolver import (
    AddressResolver,
    GeoDirectory,
    get_geo_directory,
)
from services.checkout_service.services.coupon_engine import CouponEngine
from services.checkout_service.services.feedback import FeedbackChannel
from services.checkout_service.services.shipping_fee import ShippingFeeCalculator
from services.checkout_service.services.totals import build_order_totals
from services.checkout_service.services.transitions import advance

logger = get_logger(__name__)

# Notice codes
GEO_LOOKUP_FAILED = "GEO_LOOKUP_FAILED"
COUPON_APPLIED = "COUPON_APPLIED"
COUPON_REMOVED = "COUPON_REMOVED"
COUPON_ERROR = "COUPON_ERROR"
COUPON_REAPPLY_REQUIRED = "COUPON_REAPPLY_REQUIRED"
SHIPPING_FALLBACK = "SHIPPING_FALLBACK"
VALIDATION_FAILED = "VALIDATION_FAILED"
ORDER_PLACED = "ORDER_PLACED"
ORDER_FAILED = "ORDER_FAILED"

ORDER_NETWORK_MESSAGE = "We could not reach the order service. Please try again."
ORDER_GENERIC_MESSAGE = "Your order could not be placed. Please try again."


class CartService(Protocol):
    async def get_cart(self) -> CartSnapshot: ...

    async def clear_cart(self) -> None: ...


def format_address_for_submission(form: AddressForm, location: LocationSelection) -> OrderAddress:
    """Fold the resolved location into one free-text line.

    ``address_line1, ward, district, province``; the province doubles as
    ``country`` and the ward code as ``postcode``.
    """
    parts = [
        form.address_line1.strip(),
        location.ward_name,
        location.district_name,
        location.province_name,
    ]
    return OrderAddress(
        first_name=form.first_name,
        last_name=form.last_name,
        email=form.email,
        phone=form.phone,
        address_line1=", ".join(part for part in parts if part),
        address_line2=form.address_line2,
        country=location.province_name or form.country,
        postcode=location.ward_code or form.postcode,
        district_id=location.district_id,
        ward_code=location.ward_code,
    )


def _missing_contact(form: AddressForm) -> bool:
    return not (form.recipient_name and form.phone.strip() and form.address_line1.strip())


class CheckoutOrchestrator:
    def __init__(
        self,
        cart_service: CartService,
        *,
        geo: Optional[GeoDirectory] = None,
        coupons: Optional[CouponEngine] = None,
        shipping: Optional[ShippingFeeCalculator] = None,
        orders: Optional[OrderClient] = None,
        feedback: Optional[FeedbackChannel] = None,
        user: Optional[AuthUser] = None,
        tax_amount: Optional[Decimal] = None,
        payment_method: Optional[str] = None,
    ):
        settings = get_settings()
        geo = geo or get_geo_directory()
        self.cart_service = cart_service
        self.billing_resolver = AddressResolver(geo)
        self.shipping_resolver = AddressResolver(geo)
        self.coupons = coupons or CouponEngine()
        self.shipping = shipping or ShippingFeeCalculator()
        self.orders = orders or OrderClient()
        self.feedback = feedback or FeedbackChannel()
        self.user = user
        self.tax_amount = tax_amount if tax_amount is not None else settings.DEFAULT_TAX_AMOUNT
        self.payment_method = payment_method or settings.DEFAULT_PAYMENT_METHOD

        self.cart = CartSnapshot()
        self._state = CheckoutState()
        self._shipping_generation = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> CheckoutState:
        return self._state.model_copy(
            update={
                "billing_location": self.billing_resolver.selection,
                "shipping_location": self.shipping_resolver.selection,
                "applied_coupon": self.coupons.applied,
            }
        )

    @property
    def requester_id(self) -> Optional[int]:
        if self.user is not None and self.user.backend_user_id is not None:
            return self.user.backend_user_id
        return self.cart.user_id

    def _replace(self, **update) -> None:
        self._state = self._state.model_copy(update=update)

    def _advance(self, target: CheckoutPhase) -> None:
        self._replace(phase=advance(self._state.phase, target))

    def resolver(self, target: AddressTarget) -> AddressResolver:
        if target is AddressTarget.SHIPPING:
            return self.shipping_resolver
        return self.billing_resolver

    @property
    def active_target(self) -> AddressTarget:
        if self._state.ship_to_different_address:
            return AddressTarget.SHIPPING
        return AddressTarget.BILLING

    def _notify(self, level: NoticeLevel, code: str, message: str) -> None:
        self.feedback.publish(level, code, message)

    def _report_geo_error(self, resolver: AddressResolver) -> None:
        if resolver.last_error is not None:
            self._notify(
                NoticeLevel.ERROR,
                GEO_LOOKUP_FAILED,
                "Could not load the address list. Please try again.",
            )

    def _drop_shipping_quote(self) -> None:
        """Forget the current quote and any quote still in flight."""
        self._shipping_generation += 1
        self._replace(shipping_quote=ShippingQuote(), calculating_shipping=False)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> CheckoutState:
        """Load cart, provinces and the coupon catalog; prefill from the profile."""
        if self._state.phase is CheckoutPhase.SUCCESS:
            self._advance(CheckoutPhase.IDLE)
            self._state = CheckoutState()

        await self.refresh_cart()
        provinces, _ = await asyncio.gather(
            self.billing_resolver.list_provinces(),
            self.coupons.load_catalog(),
        )
        self.shipping_resolver.provinces = provinces
        self._report_geo_error(self.billing_resolver)

        if self.user is not None:
            billing = self._state.billing
            self._replace(
                billing=billing.model_copy(
                    update={
                        "email": billing.email or (self.user.email or ""),
                        "first_name": billing.first_name or (self.user.first_name or ""),
                        "last_name": billing.last_name or (self.user.last_name or ""),
                    }
                )
            )
        return self.state

    def leave(self) -> None:
        """Abandon the checkout: late shipping/coupon/address results are ignored.

        An order already in flight is left to finish; ``submit`` settles the
        phase and clears the cart once the order service answers.
        """
        self._shipping_generation += 1
        if self._state.phase is CheckoutPhase.SUBMITTING:
            logger.info("Checkout for session %s left with an order in flight", self.cart.session_id)
            return
        self.coupons.reset()
        self.billing_resolver.reset()
        self.shipping_resolver.reset()
        self._state = CheckoutState()
        logger.info("Checkout for session %s abandoned", self.cart.session_id)

    # ------------------------------------------------------------------
    # Cart observation
    # ------------------------------------------------------------------

    def observe_cart(self, cart: CartSnapshot) -> Optional[AppliedCoupon]:
        """Record a new cart snapshot and run coupon invalidation against it."""
        self.cart = cart
        invalidated = self.coupons.observe_cart(cart)
        if invalidated is not None:
            self._notify(
                NoticeLevel.INFO,
                COUPON_REAPPLY_REQUIRED,
                f"Your cart changed. Please reapply coupon {invalidated.code}.",
            )
        if cart.is_empty:
            self._shipping_generation += 1
            self.coupons.reset()
            self._replace(calculating_shipping=False)
        return invalidated

    async def refresh_cart(self) -> CartSnapshot:
        cart = await self.cart_service.get_cart()
        self.observe_cart(cart)
        return cart

    # ------------------------------------------------------------------
    # Addresses
    # ------------------------------------------------------------------

    def update_address(self, target: AddressTarget, **fields) -> AddressForm:
        current = self._state.billing if target is AddressTarget.BILLING else self._state.shipping
        form = AddressForm.model_validate({**current.model_dump(), **fields})
        self._replace(**{target.value: form})
        return form

    def update_billing(self, **fields) -> AddressForm:
        return self.update_address(AddressTarget.BILLING, **fields)

    def update_shipping(self, **fields) -> AddressForm:
        return self.update_address(AddressTarget.SHIPPING, **fields)

    async def select_location(
        self,
        target: AddressTarget,
        level: LocationLevel,
        value,
    ) -> LocationSelection:
        resolver = self.resolver(target)
        if level is LocationLevel.PROVINCE:
            selection = await resolver.select_province(value)
        elif level is LocationLevel.DISTRICT:
            selection = await resolver.select_district(value)
        else:
            selection = resolver.select_ward(value)
        self._report_geo_error(resolver)

        # Only a ward change on the active destination fetches a new quote
        if target is self.active_target:
            if level is LocationLevel.WARD:
                await self.recalculate_shipping()
            elif not resolver.selection.is_complete:
                self._drop_shipping_quote()
        return selection

    async def set_ship_to_different_address(self, enabled: bool, *, copy_billing: bool = False) -> None:
        if enabled == self._state.ship_to_different_address:
            return
        self.shipping_resolver.reset()
        self.shipping_resolver.provinces = self.billing_resolver.provinces
        shipping = AddressForm()
        if enabled and copy_billing:
            shipping = self._state.billing.model_copy(update={"country": "", "postcode": ""})
        self._replace(ship_to_different_address=enabled, shipping=shipping)
        await self.recalculate_shipping()

    async def apply_saved_address(self, target: AddressTarget, saved: SavedAddress) -> CheckoutState:
        current = self._state.billing if target is AddressTarget.BILLING else self._state.shipping
        first_name, _, last_name = saved.recipient_name.strip().partition(" ")
        form = current.model_copy(
            update={
                "first_name": first_name,
                "last_name": last_name.strip(),
                "email": current.email or (self.user.email if self.user and self.user.email else ""),
                "phone": saved.phone,
                "address_line1": saved.address_line1,
                "address_line2": saved.address_line2 or "",
                "country": saved.province_name or "",
                "postcode": saved.ward_code or "",
            }
        )
        self._replace(**{target.value: form})

        resolver = self.resolver(target)
        await resolver.restore(saved.to_location())
        self._report_geo_error(resolver)
        if target is self.active_target:
            await self.recalculate_shipping()
        return self.state

    # ------------------------------------------------------------------
    # Shipping
    # ------------------------------------------------------------------

    async def recalculate_shipping(self) -> Optional[ShippingQuote]:
        """Quote the active destination if it is fully resolved.

        Returns None when the destination is incomplete or the result was
        superseded before it arrived. An incomplete destination clears the
        quote and drops any quote still in flight.
        """
        destination = self.resolver(self.active_target).selection
        if not destination.is_complete:
            self._drop_shipping_quote()
            return None

        self._shipping_generation += 1
        issued = self._shipping_generation
        cart = self.cart
        self._replace(shipping_quote=ShippingQuote(), calculating_shipping=True)

        quote = await self.shipping.calculate(destination, cart.items, cart.subtotal)
        if issued != self._shipping_generation:
            logger.debug("Dropped stale shipping quote for ward %s", destination.ward_code)
            return None

        self._replace(shipping_quote=quote, calculating_shipping=False)
        if quote.fallback_applied:
            self._notify(
                NoticeLevel.WARNING,
                SHIPPING_FALLBACK,
                f"Could not calculate the shipping fee. A standard fee of {format_vnd(quote.fee)} applies.",
            )
        return quote

    # ------------------------------------------------------------------
    # Coupons
    # ------------------------------------------------------------------

    async def apply_coupon(self, code: Optional[str]) -> Optional[AppliedCoupon]:
        cart = self.cart
        try:
            applied = await self.coupons.apply(code, cart, self.requester_id)
        except CouponError as exc:
            local = exc.status_code is None and exc.__cause__ is None
            self._notify(
                NoticeLevel.WARNING if local else NoticeLevel.ERROR,
                COUPON_ERROR,
                exc.message,
            )
            raise
        if applied is None:
            return None

        self._notify(
            NoticeLevel.SUCCESS,
            COUPON_APPLIED,
            f"Coupon {applied.code} applied: -{format_vnd(applied.discount_amount)}",
        )
        # The cart may have moved while the call was in flight
        self.observe_cart(self.cart)
        return self.coupons.applied

    def remove_coupon(self) -> None:
        if self.coupons.remove() is not None:
            self._notify(NoticeLevel.INFO, COUPON_REMOVED, "Coupon removed")

    # ------------------------------------------------------------------
    # Totals / validation / submission
    # ------------------------------------------------------------------

    def totals(self) -> OrderTotals:
        cart = self.cart
        try:
            discount = self.coupons.discount_for(cart)
        except StateInconsistencyError as exc:
            logger.info("%s; clearing it", exc)
            self.observe_cart(cart)
            discount = Decimal("0")
        return build_order_totals(
            cart.subtotal,
            self._state.shipping_quote.fee,
            self.tax_amount,
            discount,
            original_subtotal=cart.original_subtotal,
        )

    def validate(self) -> None:
        """Fail fast on the first incomplete category."""
        cart = self.cart
        if cart.is_empty:
            raise CheckoutValidationError(ValidationCategory.EMPTY_CART, "Your cart is empty")
        if not cart.session_id:
            raise CheckoutValidationError(
                ValidationCategory.MISSING_SESSION,
                "Your checkout session has expired. Please reload the page.",
            )

        blocks = [
            (
                self._state.billing,
                self.billing_resolver.selection,
                ValidationCategory.BILLING_FIELDS,
                ValidationCategory.BILLING_LOCATION,
                "billing",
            )
        ]
        if self._state.ship_to_different_address:
            blocks.append(
                (
                    self._state.shipping,
                    self.shipping_resolver.selection,
                    ValidationCategory.SHIPPING_FIELDS,
                    ValidationCategory.SHIPPING_LOCATION,
                    "shipping",
                )
            )
        for form, location, fields_category, location_category, label in blocks:
            if _missing_contact(form):
                raise CheckoutValidationError(
                    fields_category,
                    f"Please fill in the recipient name, phone and address for {label}.",
                )
            if not location.is_complete:
                raise CheckoutValidationError(
                    location_category,
                    f"Please select a province, district and ward for the {label} address.",
                )

    def build_order_request(self) -> OrderRequest:
        totals = self.totals()
        applied = self.coupons.applied
        state = self.state
        billing = format_address_for_submission(state.billing, state.billing_location)
        shipping = billing
        if state.ship_to_different_address:
            shipping = format_address_for_submission(state.shipping, state.shipping_location)
        return OrderRequest(
            user_id=self.requester_id,
            session_id=self.cart.session_id,
            billing=billing,
            shipping=shipping,
            ship_to_different_address=state.ship_to_different_address,
            create_account=state.create_account,
            payment_method=self.payment_method,
            notes=state.notes,
            shipping_fee=totals.shipping_fee,
            tax_amount=totals.tax_amount,
            discount_amount=totals.discount_amount,
            coupon_code=applied.code if applied else None,
        )

    def set_order_options(
        self,
        *,
        create_account: Optional[bool] = None,
        notes: Optional[str] = None,
    ) -> None:
        update = {}
        if create_account is not None:
            update["create_account"] = create_account
        if notes is not None:
            update["notes"] = notes.strip() or None
        self._replace(**update)

    async def submit(self) -> OrderConfirmation:
        """Validate and place the order.

        Raises ``CheckoutValidationError`` before any network call, or
        ``OrderSubmissionError`` if the order service fails; in both cases the
        form is left exactly as entered.
        """
        self._advance(CheckoutPhase.VALIDATING)
        try:
            self.validate()
        except CheckoutValidationError as exc:
            self._advance(CheckoutPhase.IDLE)
            self._notify(NoticeLevel.ERROR, VALIDATION_FAILED, exc.message)
            raise

        payload = self.build_order_request()
        self._advance(CheckoutPhase.SUBMITTING)
        try:
            confirmation = await self.orders.place(payload)
        except (NetworkError, RemoteValidationError) as exc:
            self._advance(CheckoutPhase.FAILED)
            self._advance(CheckoutPhase.IDLE)
            if isinstance(exc, NetworkError):
                message = ORDER_NETWORK_MESSAGE
            else:
                message = exc.detail or ORDER_GENERIC_MESSAGE
            logger.warning("Order for session %s failed: %s", payload.session_id, exc)
            self._notify(NoticeLevel.ERROR, ORDER_FAILED, message)
            raise OrderSubmissionError(message, cause=exc) from exc

        self._advance(CheckoutPhase.SUCCESS)
        logger.info("Order %s placed for session %s", confirmation.order_number, payload.session_id)
        self._notify(
            NoticeLevel.SUCCESS,
            ORDER_PLACED,
            f"Order {confirmation.order_number} placed successfully",
        )

        try:
            await self.cart_service.clear_cart()
        except (NetworkError, RemoteValidationError) as exc:
            # The order exists; a failed clear only leaves a stale cart behind
            logger.warning("Could not clear cart after order %s: %s", confirmation.order_number, exc)

        self._shipping_generation += 1
        self.coupons.reset()
        self.billing_resolver.reset()
        self.shipping_resolver.reset()
        self.cart = CartSnapshot(session_id=self.cart.session_id, user_id=self.cart.user_id)
        self._state = CheckoutState(phase=CheckoutPhase.SUCCESS, last_order=confirmation)
        return confirmation
