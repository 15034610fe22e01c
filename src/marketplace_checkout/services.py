"""Wiring of the checkout orchestrator and its backend collaborators."""

from __future__ import annotations

import httpx
import structlog

from marketplace_checkout.config import Settings
from marketplace_checkout.gateways.cart import CartStore
from marketplace_checkout.gateways.orders import OrderGateway
from marketplace_checkout.gateways.products import ProductGateway
from marketplace_checkout.orchestrator.checkout import CheckoutOrchestrator
from marketplace_checkout.payments.bridge import PaymentBridge, StripePaymentBridge
from marketplace_checkout.protocols.api_client import MarketplaceClient, TokenProvider

logger = structlog.get_logger(__name__)


class CheckoutServices:
    """Owns the HTTP client, the gateways and the orchestrator built on them.

    Parameters
    ----------
    settings:
        Service configuration.
    transport:
        Optional httpx transport, e.g. an ``ASGITransport`` pointing at the
        mock marketplace.
    token_provider:
        Callable returning the current bearer token; defaults to the
        configured ``api_token``.
    payment_bridge:
        Payment provider; defaults to Stripe with the configured
        publishable key.
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
        token_provider: TokenProvider | None = None,
        payment_bridge: PaymentBridge | None = None,
    ) -> None:
        self.settings = settings
        self.client = MarketplaceClient(
            settings.api_url,
            token_provider=token_provider or (lambda: settings.api_token),
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            transport=transport,
        )
        self.products = ProductGateway(self.client)
        self.cart = CartStore(self.client)
        self.orders = OrderGateway(
            self.client,
            self.products,
            confirm_retry_attempts=settings.confirm_retry_attempts,
        )
        self.payment_bridge = payment_bridge or StripePaymentBridge(
            settings.stripe_publishable_key
        )
        self.orchestrator = CheckoutOrchestrator(
            cart_store=self.cart,
            orders=self.orders,
            products=self.products,
            payment_bridge=self.payment_bridge,
            settings=settings,
        )

    async def close(self) -> None:
        """End snapshot streams and shut down the HTTP client."""
        self.orchestrator.changes.close()
        self.cart.changes.close()
        await self.client.close()
        logger.info("checkout_services_closed")
