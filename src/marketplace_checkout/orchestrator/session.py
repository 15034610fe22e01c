"""Checkout session value and its lifecycle state machine.

A :class:`CheckoutSession` is owned by exactly one orchestrator and is
replaced wholesale on every mutation, so published snapshots never change
underneath their subscribers.  ``generation`` increases on every reset and
lets in-flight operations detect that the session they started on is gone.
"""

from __future__ import annotations

import enum

from pydantic import Field

from marketplace_checkout.errors import InvalidTransitionError
from marketplace_checkout.models import (
    Cart,
    CheckoutItem,
    LocationSelection,
    MarketplaceModel,
    Order,
    OrderSummary,
)


class CheckoutPhase(str, enum.Enum):
    """Lifecycle states of a checkout session."""

    EMPTY = "empty"
    LOADING = "loading"
    CART_READY = "cart_ready"
    ORDER_SELECTED = "order_selected"
    ADDRESS_VALIDATED = "address_validated"
    CREATING_ORDER = "creating_order"
    PAYMENT_FORM_SHOWN = "payment_form_shown"
    PROCESSING_PAYMENT = "processing_payment"
    PAYMENT_FAILED = "payment_failed"
    CONFIRMATION_PENDING = "confirmation_pending"
    CONFIRMED = "confirmed"


_P = CheckoutPhase

# Phases from which each phase-changing operation may be started.
ALLOWED_PHASES: dict[str, frozenset[CheckoutPhase]] = {
    "initialize": frozenset(
        {_P.EMPTY, _P.CART_READY, _P.ORDER_SELECTED, _P.ADDRESS_VALIDATED}
    ),
    "select_incomplete_order": frozenset(
        {
            _P.EMPTY,
            _P.CART_READY,
            _P.ORDER_SELECTED,
            _P.ADDRESS_VALIDATED,
            _P.PAYMENT_FORM_SHOWN,
            _P.PAYMENT_FAILED,
        }
    ),
    "clear_order_selection": frozenset(
        {_P.ORDER_SELECTED, _P.PAYMENT_FORM_SHOWN, _P.PAYMENT_FAILED}
    ),
    "mark_address_validated": frozenset(
        {_P.CART_READY, _P.ORDER_SELECTED, _P.ADDRESS_VALIDATED}
    ),
    "create_incomplete_order": frozenset(
        {_P.CART_READY, _P.ORDER_SELECTED, _P.ADDRESS_VALIDATED}
    ),
    "process_payment": frozenset({_P.PAYMENT_FORM_SHOWN, _P.PAYMENT_FAILED}),
    "retry_payment": frozenset(
        {_P.ORDER_SELECTED, _P.PAYMENT_FORM_SHOWN, _P.PAYMENT_FAILED}
    ),
    "reconcile_payment": frozenset({_P.CONFIRMATION_PENDING}),
}


def require_phase(operation: str, phase: CheckoutPhase) -> None:
    """Raise :class:`InvalidTransitionError` unless *operation* may run in *phase*."""
    if phase not in ALLOWED_PHASES[operation]:
        raise InvalidTransitionError(
            f"Cannot {operation.replace('_', ' ')} while checkout is {phase.value}"
        )


class CheckoutSession(MarketplaceModel):
    """Full state of one checkout flow."""

    generation: int = 0
    phase: CheckoutPhase = CheckoutPhase.EMPTY

    cart: Cart | None = None
    items: list[CheckoutItem] = Field(default_factory=list)
    order_summary: OrderSummary | None = None
    incomplete_orders: list[Order] = Field(default_factory=list)
    selected_order: Order | None = None
    is_form_needed: bool = True

    same_as_shipping: bool = True
    shipping_location: LocationSelection = Field(default_factory=LocationSelection)
    billing_location: LocationSelection = Field(default_factory=LocationSelection)

    is_loading: bool = False
    is_creating_order: bool = False
    is_processing_payment: bool = False
    show_payment_form: bool = False
    payment_form_mounted: bool = False

    reconciliation_pending: str | None = None
    error: str | None = None
