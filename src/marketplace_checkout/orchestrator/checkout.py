"""Checkout orchestrator.

Reconciles the cart, a selected (incomplete) order, the shipping/billing
location selections and the payment intent lifecycle into one
:class:`CheckoutSession`.  Every mutation replaces the session and publishes
the new snapshot on :attr:`CheckoutOrchestrator.changes`.

Async operations capture the session generation when they start.  If
:meth:`CheckoutOrchestrator.reset` runs while they are suspended on the
network, their results are discarded and :class:`StaleSessionError` is
raised to whoever awaited them.
"""

from __future__ import annotations

from typing import Any

import structlog

from marketplace_checkout.config import Settings
from marketplace_checkout.errors import (
    AvailabilityError,
    CheckoutError,
    EmptyCartError,
    GatewayError,
    InvalidTransitionError,
    NotInitializedError,
    PaymentError,
    StaleSessionError,
    ValidationError,
)
from marketplace_checkout.gateways.cart import CartStore
from marketplace_checkout.gateways.orders import OrderGateway
from marketplace_checkout.gateways.products import ProductGateway
from marketplace_checkout.models import (
    AvailableProductRequest,
    BillingAddress,
    CheckoutFormData,
    CheckoutItemRequest,
    LocationSelection,
    Order,
    PaymentResult,
    ValidationResult,
)
from marketplace_checkout.orchestrator.session import (
    CheckoutPhase,
    CheckoutSession,
    require_phase,
)
from marketplace_checkout.orchestrator.summary import (
    calculate_order_summary,
    checkout_items_from_cart,
    checkout_items_from_order,
)
from marketplace_checkout.payments.bridge import (
    PaymentBridge,
    PaymentForm,
    PaymentOutcomeStatus,
)
from marketplace_checkout.streaming import SnapshotStream

logger = structlog.get_logger(__name__)

NOT_INITIALIZED_MESSAGE = "Payment system not initialized. Please refresh and try again."
SHIPPING_INCOMPLETE_MESSAGE = "Please select country, state, and city for shipping address."
BILLING_INCOMPLETE_MESSAGE = "Please select country, state, and city for billing address."


class CheckoutOrchestrator:
    """Owns one checkout session and dispatches checkout intents."""

    def __init__(
        self,
        cart_store: CartStore,
        orders: OrderGateway,
        products: ProductGateway,
        payment_bridge: PaymentBridge,
        settings: Settings,
    ) -> None:
        self._cart = cart_store
        self._orders = orders
        self._products = products
        self._bridge = payment_bridge
        self._settings = settings
        self._form: PaymentForm | None = None
        self._session = CheckoutSession()
        self.changes: SnapshotStream[CheckoutSession] = SnapshotStream(
            self._session.model_copy(deep=True), name="checkout"
        )

    # ------------------------------------------------------------------
    # State plumbing
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> CheckoutSession:
        """A deep copy of the current session."""
        return self._session.model_copy(deep=True)

    @property
    def payment_form(self) -> PaymentForm | None:
        return self._form

    def _update(self, **changes: Any) -> None:
        self._session = self._session.model_copy(update=changes)
        self.changes.publish(self._session.model_copy(deep=True))

    def _is_current(self, generation: int) -> bool:
        return self._session.generation == generation

    def _ensure_current(self, generation: int, operation: str) -> None:
        if not self._is_current(generation):
            logger.info("stale_result_discarded", operation=operation, generation=generation)
            raise StaleSessionError(f"Checkout was reset during {operation.replace('_', ' ')}")

    def _summary_updates(self, cart: Any, selected_order: Order | None) -> dict[str, Any]:
        return {
            "order_summary": calculate_order_summary(
                cart,
                selected_order,
                shipping_fee=self._settings.shipping_fee,
                tax_fee=self._settings.tax_fee,
            )
        }

    async def _ensure_bridge(self) -> None:
        if not self._bridge.is_initialized:
            await self._bridge.initialize()

    def _teardown_form(self) -> None:
        if self._form is not None:
            self._form.destroy()
            self._form = None

    # ------------------------------------------------------------------
    # Cart
    # ------------------------------------------------------------------

    async def initialize(self) -> CheckoutSession:
        """Load the cart and derive the summary.

        A selected order stays authoritative over the freshly loaded cart.

        Raises
        ------
        EmptyCartError
            If the cart has no items.  The session is left as it was.
        """
        require_phase("initialize", self._session.phase)
        previous_phase = self._session.phase
        generation = self._session.generation
        self._update(is_loading=True, phase=CheckoutPhase.LOADING)

        bridge_error: str | None = None
        try:
            cart = await self._cart.get_cart()
            self._ensure_current(generation, "initialize")
            if not cart.items:
                raise EmptyCartError()

            try:
                await self._ensure_bridge()
            except NotInitializedError as exc:
                # The cart view still loads; payment fails closed later.
                logger.warning("payment_bridge_unavailable", error=str(exc))
                bridge_error = str(exc)
            self._ensure_current(generation, "initialize")
        except StaleSessionError:
            raise
        except Exception:
            if self._is_current(generation):
                self._update(is_loading=False, phase=previous_phase)
            raise

        selected = self._session.selected_order
        self._update(
            cart=None if selected else cart,
            items=checkout_items_from_order(selected) if selected else checkout_items_from_cart(cart),
            is_loading=False,
            phase=CheckoutPhase.ORDER_SELECTED if selected else CheckoutPhase.CART_READY,
            error=bridge_error,
            **self._summary_updates(None if selected else cart, selected),
        )
        logger.info(
            "checkout_initialized",
            items=len(cart.items),
            total=self._session.order_summary.total if self._session.order_summary else None,
        )
        return self.snapshot

    async def clear_cart(self) -> None:
        await self._cart.clear_cart()

    # ------------------------------------------------------------------
    # Incomplete orders
    # ------------------------------------------------------------------

    async def load_incomplete_orders(self, page: int = 0, size: int | None = None) -> list[Order]:
        """Fetch resumable orders; a failure leaves the list empty."""
        generation = self._session.generation
        try:
            result = await self._orders.get_incomplete_orders(
                page=page, size=size or self._settings.incomplete_orders_page_size
            )
        except GatewayError as exc:
            logger.warning("incomplete_orders_fetch_failed", error=str(exc))
            orders: list[Order] = []
        else:
            orders = result.content

        self._ensure_current(generation, "load_incomplete_orders")
        self._update(incomplete_orders=orders)
        return orders

    async def select_incomplete_order(self, order: Order) -> CheckoutSession:
        """Make *order* the authoritative source and open its payment form."""
        require_phase("select_incomplete_order", self._session.phase)
        self._teardown_form()
        self._update(
            selected_order=order,
            cart=None,
            items=checkout_items_from_order(order),
            is_form_needed=False,
            show_payment_form=False,
            payment_form_mounted=False,
            phase=CheckoutPhase.ORDER_SELECTED,
            error=None,
            **self._summary_updates(None, order),
        )
        logger.info("incomplete_order_selected", order_id=order.id)

        if order.stripe_client_secret:
            await self._open_payment_form(self._session.generation)
        return self.snapshot

    async def clear_order_selection(self) -> CheckoutSession:
        """Drop the selected order and rebuild the cart view."""
        require_phase("clear_order_selection", self._session.phase)
        self._teardown_form()
        self._update(
            selected_order=None,
            is_form_needed=True,
            show_payment_form=False,
            payment_form_mounted=False,
            items=[],
            order_summary=None,
            phase=CheckoutPhase.EMPTY,
        )
        return await self.initialize()

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    def update_shipping_location(self, selection: LocationSelection) -> None:
        changes: dict[str, Any] = {"shipping_location": selection.model_copy(deep=True)}
        if self._session.same_as_shipping:
            changes["billing_location"] = selection.model_copy(deep=True)
        self._update(**changes)

    def update_billing_location(self, selection: LocationSelection) -> None:
        if self._session.same_as_shipping:
            # Billing mirrors shipping while the flag is set.
            return
        self._update(billing_location=selection.model_copy(deep=True))

    def sync_billing_with_shipping(self) -> None:
        self._update(billing_location=self._session.shipping_location.model_copy(deep=True))

    def set_same_as_shipping(self, same_as_shipping: bool) -> None:
        changes: dict[str, Any] = {"same_as_shipping": same_as_shipping}
        if same_as_shipping:
            changes["billing_location"] = self._session.shipping_location.model_copy(deep=True)
        self._update(**changes)

    def validate_location_selections(self, same_as_shipping: bool) -> ValidationResult:
        """Check that the address selections are complete.  Never mutates state."""
        if not self._session.shipping_location.is_complete():
            return ValidationResult(valid=False, error=SHIPPING_INCOMPLETE_MESSAGE)

        if not same_as_shipping and not self._session.billing_location.is_complete():
            return ValidationResult(valid=False, error=BILLING_INCOMPLETE_MESSAGE)

        return ValidationResult(valid=True)

    def mark_address_validated(self, same_as_shipping: bool) -> CheckoutSession:
        require_phase("mark_address_validated", self._session.phase)
        result = self.validate_location_selections(same_as_shipping)
        if not result.valid:
            raise ValidationError(result.error)
        self._update(phase=CheckoutPhase.ADDRESS_VALIDATED)
        return self.snapshot

    # ------------------------------------------------------------------
    # Order creation
    # ------------------------------------------------------------------

    def _order_payload(self, form_data: CheckoutFormData) -> CheckoutFormData:
        shipping = form_data.shipping.model_copy(
            update={"location": self._session.shipping_location.model_copy(deep=True)}
        )
        if form_data.same_as_shipping:
            billing = BillingAddress(**shipping.model_dump())
        elif form_data.billing is None:
            raise ValidationError("Please fill in the billing address.")
        else:
            billing = form_data.billing.model_copy(
                update={"location": self._session.billing_location.model_copy(deep=True)}
            )

        items = form_data.items or [
            CheckoutItemRequest(id=item.id, quantity=item.quantity)
            for item in self._session.items
        ]
        if not items:
            raise EmptyCartError("There are no items to order")

        return form_data.model_copy(
            update={"shipping": shipping, "billing": billing, "items": items}
        )

    async def create_incomplete_order(
        self, form_data: CheckoutFormData, resumed: bool = False
    ) -> Order:
        """Create an unpaid order from the checkout form and open its payment form.

        A fresh flow clears the cart; a resumed flow leaves the cart alone
        and lets the caller go straight to payment.
        """
        if self._session.is_creating_order:
            raise InvalidTransitionError("An order is already being created")
        require_phase("create_incomplete_order", self._session.phase)

        validation = self.validate_location_selections(form_data.same_as_shipping)
        if not validation.valid:
            raise ValidationError(validation.error)
        payload = self._order_payload(form_data)

        previous_phase = self._session.phase
        generation = self._session.generation
        self._update(
            is_creating_order=True,
            phase=CheckoutPhase.CREATING_ORDER,
            error=None,
        )

        try:
            order = await self._orders.create_order(payload)
        except Exception as exc:
            if self._is_current(generation):
                self._update(is_creating_order=False, phase=previous_phase, error=str(exc))
            logger.warning("order_creation_failed", error=str(exc))
            raise

        self._ensure_current(generation, "create_incomplete_order")
        self._teardown_form()
        self._update(
            selected_order=order,
            cart=None,
            items=checkout_items_from_order(order) or self._session.items,
            is_creating_order=False,
            is_form_needed=not resumed and self._session.is_form_needed,
            show_payment_form=True,
            payment_form_mounted=False,
            phase=CheckoutPhase.ORDER_SELECTED,
            **self._summary_updates(None, order),
        )

        if not resumed:
            try:
                await self._cart.clear_cart()
            except GatewayError as exc:
                logger.warning("cart_clear_failed", order_id=order.id, error=str(exc))
            self._ensure_current(generation, "create_incomplete_order")

        if order.stripe_client_secret:
            try:
                await self._open_payment_form(generation)
            except StaleSessionError:
                raise
            except CheckoutError as exc:
                # The order exists; retry_payment can reopen the form later.
                logger.warning("payment_form_unavailable", order_id=order.id, error=str(exc))
                self._update(error=str(exc))
        else:
            logger.warning("order_missing_client_secret", order_id=order.id)

        logger.info("incomplete_order_ready", order_id=order.id, resumed=resumed)
        return order

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    async def _open_payment_form(self, generation: int) -> None:
        order = self._session.selected_order
        if order is None or not order.stripe_client_secret:
            raise PaymentError("Selected order has no outstanding payment")

        await self._ensure_bridge()
        self._ensure_current(generation, "open_payment_form")

        self._teardown_form()
        self._form = self._bridge.create_form(order.stripe_client_secret)
        self._update(
            show_payment_form=True,
            payment_form_mounted=False,
            phase=CheckoutPhase.PAYMENT_FORM_SHOWN,
        )

    def mount_payment_method(self, payment_method: str) -> None:
        """Attach the user's payment method to the current payment form."""
        if self._form is None:
            raise NotInitializedError(NOT_INITIALIZED_MESSAGE)
        self._form.mount(payment_method)
        self._update(payment_form_mounted=True)

    async def retry_payment(self) -> CheckoutSession:
        """Reopen the payment form for the same order without recreating it."""
        require_phase("retry_payment", self._session.phase)
        await self._open_payment_form(self._session.generation)
        self._update(error=None)
        return self.snapshot

    async def process_payment(self, email: str) -> PaymentResult:
        """Check stock, confirm the payment, then confirm the order.

        Never raises for payment or gateway failures: they are reported in
        the returned :class:`PaymentResult`.  Re-entrant calls raise
        :class:`InvalidTransitionError`.
        """
        order = self._session.selected_order
        form = self._form
        if not self._bridge.is_initialized or form is None or not form.is_mounted or order is None:
            return PaymentResult(success=False, error=NOT_INITIALIZED_MESSAGE)

        if self._session.is_processing_payment:
            raise InvalidTransitionError("A payment is already being processed")
        require_phase("process_payment", self._session.phase)

        generation = self._session.generation
        self._update(
            is_processing_payment=True,
            phase=CheckoutPhase.PROCESSING_PAYMENT,
            error=None,
        )

        phase = CheckoutPhase.PAYMENT_FAILED
        updates: dict[str, Any] = {}
        result = PaymentResult(
            success=False,
            error="An error occurred while processing payment. Please try again.",
        )
        try:
            result, phase, updates = await self._charge(order, form, email, generation)
        except StaleSessionError:
            raise
        except CheckoutError as exc:
            result = PaymentResult(success=False, error=str(exc))
        except Exception as exc:
            logger.exception("payment_unexpected_error", order_id=order.id)
            if str(exc):
                result = PaymentResult(success=False, error=str(exc))
        finally:
            if self._is_current(generation):
                self._update(
                    is_processing_payment=False,
                    phase=phase,
                    error=result.error,
                    **updates,
                )

        return result

    async def _charge(
        self, order: Order, form: PaymentForm, email: str, generation: int
    ) -> tuple[PaymentResult, CheckoutPhase, dict[str, Any]]:
        availability = [
            AvailableProductRequest(id=item.product_id, quantity=item.quantity)
            for item in order.order_items
        ]
        try:
            await self._products.check_availability(availability)
        except AvailabilityError as exc:
            return PaymentResult(success=False, error=str(exc)), CheckoutPhase.PAYMENT_FAILED, {}
        self._ensure_current(generation, "process_payment")

        outcome = await self._bridge.confirm_payment(
            form,
            return_url=self._settings.payment_return_url,
            receipt_email=email,
        )
        self._ensure_current(generation, "process_payment")

        if outcome.status == PaymentOutcomeStatus.FAILED:
            logger.info("payment_failed", order_id=order.id, error=outcome.error)
            return (
                PaymentResult(
                    success=False,
                    payment_intent_id=outcome.payment_intent_id,
                    error=outcome.error or "Payment failed. Please try again.",
                ),
                CheckoutPhase.PAYMENT_FAILED,
                {},
            )

        if outcome.status == PaymentOutcomeStatus.REQUIRES_ACTION:
            logger.info("payment_requires_action", order_id=order.id)
            return (
                PaymentResult(
                    success=False,
                    requires_action=True,
                    payment_intent_id=outcome.payment_intent_id,
                    redirect_url=outcome.redirect_url,
                    error=outcome.error,
                ),
                CheckoutPhase.PAYMENT_FORM_SHOWN,
                {},
            )

        intent_id = outcome.payment_intent_id or form.payment_intent_id
        if outcome.status == PaymentOutcomeStatus.PROCESSING:
            logger.info("payment_processing", order_id=order.id, payment_intent_id=intent_id)
            return (
                PaymentResult(
                    success=False,
                    confirmation_pending=True,
                    payment_intent_id=intent_id,
                    error="Payment is still processing.",
                ),
                CheckoutPhase.CONFIRMATION_PENDING,
                {"reconciliation_pending": intent_id, "show_payment_form": False},
            )

        return await self._confirm_with_backend(intent_id, generation)

    async def _confirm_with_backend(
        self, intent_id: str, generation: int
    ) -> tuple[PaymentResult, CheckoutPhase, dict[str, Any]]:
        try:
            confirmed = await self._orders.confirm_order(intent_id)
        except GatewayError as exc:
            self._ensure_current(generation, "confirm_order")
            logger.error(
                "order_confirmation_pending",
                payment_intent_id=intent_id,
                error=str(exc),
            )
            return (
                PaymentResult(
                    success=True,
                    payment_intent_id=intent_id,
                    confirmation_pending=True,
                    error=f"Payment succeeded but the order could not be confirmed: {exc}",
                ),
                CheckoutPhase.CONFIRMATION_PENDING,
                {"reconciliation_pending": intent_id, "show_payment_form": False},
            )

        self._ensure_current(generation, "confirm_order")
        self._teardown_form()
        logger.info("payment_confirmed", order_id=confirmed.id, payment_intent_id=intent_id)
        return (
            PaymentResult(success=True, payment_intent_id=intent_id, order=confirmed),
            CheckoutPhase.CONFIRMED,
            {
                "selected_order": confirmed,
                "reconciliation_pending": None,
                "show_payment_form": False,
                "payment_form_mounted": False,
            },
        )

    async def reconcile_payment(self) -> PaymentResult:
        """Retry the order confirmation for a payment awaiting it."""
        require_phase("reconcile_payment", self._session.phase)
        if self._session.is_processing_payment:
            raise InvalidTransitionError("A payment is already being processed")

        intent_id = self._session.reconciliation_pending
        if intent_id is None:
            raise InvalidTransitionError("No payment is awaiting confirmation")

        generation = self._session.generation
        self._update(is_processing_payment=True)
        phase = CheckoutPhase.CONFIRMATION_PENDING
        updates: dict[str, Any] = {}
        result = PaymentResult(success=False, confirmation_pending=True, payment_intent_id=intent_id)
        try:
            result, phase, updates = await self._confirm_with_backend(intent_id, generation)
        finally:
            if self._is_current(generation):
                self._update(
                    is_processing_payment=False,
                    phase=phase,
                    error=result.error,
                    **updates,
                )

        if result.confirmation_pending:
            return result.model_copy(update={"success": False})
        return result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Restore defaults; any in-flight operation's result will be discarded."""
        self._teardown_form()
        self._session = CheckoutSession(generation=self._session.generation + 1)
        self.changes.publish(self._session.model_copy(deep=True))
        logger.info("checkout_reset", generation=self._session.generation)
