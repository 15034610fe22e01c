"""Checkout error taxonomy.

Every error raised by the orchestrator and its collaborators derives from
:class:`CheckoutError`, so the HTTP surface can map the whole family with a
single exception handler.
"""

from __future__ import annotations


class CheckoutError(Exception):
    """Base class for checkout failures."""

    status_code: int = 400


class EmptyCartError(CheckoutError):
    """Checkout was entered with no items in the cart."""

    status_code = 409

    def __init__(self, message: str = "Cart is empty") -> None:
        super().__init__(message)


class ValidationError(CheckoutError):
    """An address selection is incomplete."""

    status_code = 422


class AvailabilityError(CheckoutError):
    """Stock no longer covers one or more ordered items."""

    status_code = 409


class PaymentError(CheckoutError):
    """The payment provider declined or could not process the payment."""

    status_code = 402


class GatewayError(CheckoutError):
    """A backend request failed after retries."""

    status_code = 502

    def __init__(self, message: str, upstream_status: int | None = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status


class NotInitializedError(CheckoutError):
    """Payment was attempted before the bridge and form were set up."""

    status_code = 409


class InvalidTransitionError(CheckoutError):
    """The operation is not permitted in the session's current phase."""

    status_code = 409


class StaleSessionError(CheckoutError):
    """A response arrived after the session it belonged to was reset."""

    status_code = 409
