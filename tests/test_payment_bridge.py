"""Tests for the Stripe payment bridge."""

from types import SimpleNamespace
from unittest.mock import patch

import pytest
import stripe

from marketplace_checkout.errors import NotInitializedError, PaymentError
from marketplace_checkout.payments.bridge import (
    PaymentForm,
    PaymentOutcomeStatus,
    StripePaymentBridge,
)


@pytest.fixture
async def bridge():
    bridge = StripePaymentBridge("pk_test_123")
    await bridge.initialize()
    return bridge


@pytest.fixture
def mounted_form(bridge):
    form = bridge.create_form("pi_123_secret_abc")
    form.mount("pm_card_visa")
    return form


class TestPaymentForm:
    def test_intent_id_from_client_secret(self):
        form = PaymentForm("pi_3Nx_secret_Yz")

        assert form.payment_intent_id == "pi_3Nx"
        assert form.is_mounted is False

    def test_malformed_secret_rejected(self):
        with pytest.raises(PaymentError):
            PaymentForm("not-a-secret")

    def test_destroyed_form_cannot_mount(self):
        form = PaymentForm("pi_1_secret_2")
        form.mount("pm_card_visa")

        form.destroy()

        assert form.is_mounted is False
        with pytest.raises(PaymentError):
            form.mount("pm_card_visa")


class TestInitialize:
    async def test_missing_key_fails_closed(self):
        bridge = StripePaymentBridge("")

        with pytest.raises(NotInitializedError):
            await bridge.initialize()
        assert bridge.is_initialized is False

    async def test_initialize_is_idempotent(self, bridge):
        await bridge.initialize()

        assert bridge.is_initialized is True

    def test_create_form_requires_initialize(self):
        with pytest.raises(NotInitializedError):
            StripePaymentBridge("pk_test_123").create_form("pi_1_secret_2")


class TestConfirmPayment:
    async def test_succeeded(self, bridge, mounted_form):
        intent = SimpleNamespace(id="pi_123", status="succeeded")
        with patch.object(stripe.PaymentIntent, "confirm", return_value=intent) as confirm:
            outcome = await bridge.confirm_payment(
                mounted_form,
                return_url="http://localhost:4200/profile",
                receipt_email="ada@example.com",
            )

        assert outcome.status == PaymentOutcomeStatus.SUCCEEDED
        assert outcome.payment_intent_id == "pi_123"
        confirm.assert_called_once_with(
            "pi_123",
            api_key="pk_test_123",
            client_secret="pi_123_secret_abc",
            payment_method="pm_card_visa",
            return_url="http://localhost:4200/profile",
            receipt_email="ada@example.com",
        )

    async def test_requires_action(self, bridge, mounted_form):
        intent = SimpleNamespace(
            id="pi_123",
            status="requires_action",
            next_action=SimpleNamespace(
                redirect_to_url=SimpleNamespace(url="https://hooks.stripe.com/3d_secure")
            ),
        )
        with patch.object(stripe.PaymentIntent, "confirm", return_value=intent):
            outcome = await bridge.confirm_payment(mounted_form, "http://r", "a@b.c")

        assert outcome.status == PaymentOutcomeStatus.REQUIRES_ACTION
        assert outcome.redirect_url == "https://hooks.stripe.com/3d_secure"

    async def test_processing(self, bridge, mounted_form):
        intent = SimpleNamespace(id="pi_123", status="processing")
        with patch.object(stripe.PaymentIntent, "confirm", return_value=intent):
            outcome = await bridge.confirm_payment(mounted_form, "http://r", "a@b.c")

        assert outcome.status == PaymentOutcomeStatus.PROCESSING

    async def test_failed_intent_reports_last_error(self, bridge, mounted_form):
        intent = SimpleNamespace(
            id="pi_123",
            status="requires_payment_method",
            last_payment_error=SimpleNamespace(message="Your card has insufficient funds."),
        )
        with patch.object(stripe.PaymentIntent, "confirm", return_value=intent):
            outcome = await bridge.confirm_payment(mounted_form, "http://r", "a@b.c")

        assert outcome.status == PaymentOutcomeStatus.FAILED
        assert outcome.error == "Your card has insufficient funds."

    async def test_card_error(self, bridge, mounted_form):
        error = stripe.error.CardError("Your card was declined.", None, "card_declined")
        with patch.object(stripe.PaymentIntent, "confirm", side_effect=error):
            outcome = await bridge.confirm_payment(mounted_form, "http://r", "a@b.c")

        assert outcome.status == PaymentOutcomeStatus.FAILED
        assert outcome.payment_intent_id == "pi_123"
        assert outcome.error == "Your card was declined."

    async def test_stripe_error(self, bridge, mounted_form):
        error = stripe.error.APIConnectionError("Network unreachable")
        with patch.object(stripe.PaymentIntent, "confirm", side_effect=error):
            outcome = await bridge.confirm_payment(mounted_form, "http://r", "a@b.c")

        assert outcome.status == PaymentOutcomeStatus.FAILED
        assert outcome.error == "Payment failed. Please try again."

    async def test_unmounted_form_rejected(self, bridge):
        form = bridge.create_form("pi_123_secret_abc")

        with patch.object(stripe.PaymentIntent, "confirm") as confirm:
            with pytest.raises(NotInitializedError):
                await bridge.confirm_payment(form, "http://r", "a@b.c")

        confirm.assert_not_called()
