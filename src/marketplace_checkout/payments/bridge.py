"""Payment bridge to the third-party payment provider.

The checkout orchestrator talks to payments through the
:class:`PaymentBridge` protocol.  :class:`StripePaymentBridge` implements it
with the ``stripe`` SDK using client-side confirmation: the bridge holds
only the publishable key, and a :class:`PaymentForm` binds one payment
intent's client secret to the payment method the user entered.
"""

from __future__ import annotations

import asyncio
import enum
from typing import Any, Protocol

import stripe
import structlog
from pydantic import BaseModel

from marketplace_checkout.errors import NotInitializedError, PaymentError

logger = structlog.get_logger(__name__)

_SECRET_MARKER = "_secret_"


class PaymentOutcomeStatus(str, enum.Enum):
    SUCCEEDED = "succeeded"
    REQUIRES_ACTION = "requires_action"
    PROCESSING = "processing"
    FAILED = "failed"


class PaymentOutcome(BaseModel):
    """Result of a confirmation attempt."""

    status: PaymentOutcomeStatus
    payment_intent_id: str | None = None
    error: str | None = None
    redirect_url: str | None = None


class PaymentForm:
    """A payment form bound to a single payment intent's client secret."""

    def __init__(self, client_secret: str) -> None:
        if _SECRET_MARKER not in client_secret:
            raise PaymentError("Malformed payment client secret")
        self.client_secret = client_secret
        self.payment_intent_id = client_secret.split(_SECRET_MARKER, 1)[0]
        self.payment_method: str | None = None
        self.destroyed = False

    @property
    def is_mounted(self) -> bool:
        return self.payment_method is not None and not self.destroyed

    def mount(self, payment_method: str) -> None:
        """Attach the payment method collected from the user."""
        if self.destroyed:
            raise PaymentError("Payment form has been torn down")
        self.payment_method = payment_method

    def destroy(self) -> None:
        self.payment_method = None
        self.destroyed = True


class PaymentBridge(Protocol):
    """What the orchestrator needs from a payment provider."""

    @property
    def is_initialized(self) -> bool: ...

    async def initialize(self) -> None: ...

    def create_form(self, client_secret: str) -> PaymentForm: ...

    async def confirm_payment(
        self, form: PaymentForm, return_url: str, receipt_email: str
    ) -> PaymentOutcome: ...


class StripePaymentBridge:
    """Stripe implementation of :class:`PaymentBridge`."""

    def __init__(self, publishable_key: str) -> None:
        self._publishable_key = publishable_key
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Validate the publishable key.  A second call is a no-op."""
        if self._initialized:
            return
        if not self._publishable_key.startswith("pk_"):
            logger.warning("stripe_publishable_key_missing")
            raise NotInitializedError(
                "Stripe is not configured. Please set STRIPE_PUBLISHABLE_KEY environment variable."
            )
        self._initialized = True
        logger.info("stripe_bridge_initialized")

    def create_form(self, client_secret: str) -> PaymentForm:
        if not self._initialized:
            raise NotInitializedError("Payment bridge not initialized")
        return PaymentForm(client_secret)

    async def confirm_payment(
        self, form: PaymentForm, return_url: str, receipt_email: str
    ) -> PaymentOutcome:
        """Confirm the form's payment intent.

        The Stripe SDK is synchronous, so the call runs in a worker thread.
        """
        if not self._initialized or not form.is_mounted:
            raise NotInitializedError("Payment form is not mounted")

        params: dict[str, Any] = {
            "api_key": self._publishable_key,
            "client_secret": form.client_secret,
            "payment_method": form.payment_method,
            "return_url": return_url,
            "receipt_email": receipt_email,
        }

        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.confirm, form.payment_intent_id, **params
            )
        except stripe.error.CardError as e:
            logger.info("stripe_card_declined", payment_intent_id=form.payment_intent_id)
            return PaymentOutcome(
                status=PaymentOutcomeStatus.FAILED,
                payment_intent_id=form.payment_intent_id,
                error=e.user_message or "Your card was declined.",
            )
        except stripe.error.StripeError as e:
            logger.error(
                "stripe_confirm_failed",
                payment_intent_id=form.payment_intent_id,
                error=str(e),
            )
            return PaymentOutcome(
                status=PaymentOutcomeStatus.FAILED,
                payment_intent_id=form.payment_intent_id,
                error="Payment failed. Please try again.",
            )

        return _outcome_from_intent(intent)


def _outcome_from_intent(intent: Any) -> PaymentOutcome:
    status = getattr(intent, "status", None)
    intent_id = getattr(intent, "id", None)

    if status == "succeeded":
        return PaymentOutcome(status=PaymentOutcomeStatus.SUCCEEDED, payment_intent_id=intent_id)

    if status == "requires_action":
        next_action = getattr(intent, "next_action", None)
        redirect = getattr(next_action, "redirect_to_url", None) if next_action else None
        return PaymentOutcome(
            status=PaymentOutcomeStatus.REQUIRES_ACTION,
            payment_intent_id=intent_id,
            redirect_url=getattr(redirect, "url", None) if redirect else None,
            error="Additional authentication is required to complete this payment.",
        )

    if status == "processing":
        return PaymentOutcome(status=PaymentOutcomeStatus.PROCESSING, payment_intent_id=intent_id)

    last_error = getattr(intent, "last_payment_error", None)
    message = getattr(last_error, "message", None) if last_error else None
    return PaymentOutcome(
        status=PaymentOutcomeStatus.FAILED,
        payment_intent_id=intent_id,
        error=message or "Payment processing failed. Please try again.",
    )
