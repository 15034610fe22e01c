"""Entry point for the marketplace checkout service.

Creates the main FastAPI application, optionally mounts the in-memory
mock marketplace backend, configures logging, and starts the uvicorn
server.
"""

from __future__ import annotations

import httpx
import structlog
import uvicorn

from common import setup_logging

from marketplace_checkout.api import create_app
from marketplace_checkout.config import Settings, get_settings
from marketplace_checkout.mock_backend.factory import MarketplaceFactory
from marketplace_checkout.services import CheckoutServices

logger = structlog.get_logger(__name__)

MOCK_MOUNT_PATH = "/mock-api"
_MOCK_BASE_URL = "http://mock-marketplace/"


def build_app(settings: Settings | None = None) -> object:
    """Construct the fully-configured application.

    With ``mount_mock_backend`` enabled the checkout client talks to an
    in-process mock marketplace (seeded with a demo cart), which is also
    mounted at ``/mock-api`` for direct inspection.
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level, json_logs=settings.environment == "production")

    if not settings.mount_mock_backend:
        app = create_app(settings)
        logger.info(
            "application_ready",
            service=settings.service_name,
            version=settings.service_version,
            api_url=settings.api_url,
        )
        return app

    marketplace = MarketplaceFactory.create_marketplace(seed_cart={"P1": 2, "P2": 1})
    client_settings = settings.model_copy(update={"api_url": _MOCK_BASE_URL})
    services = CheckoutServices(
        client_settings,
        transport=httpx.ASGITransport(app=marketplace.app),
    )

    app = create_app(client_settings, services)
    app.mount(MOCK_MOUNT_PATH, marketplace.app, name="mock-marketplace")
    logger.info(
        "mock_marketplace_mounted",
        path=MOCK_MOUNT_PATH,
        products=len(marketplace.products),
        cart_items=len(marketplace.cart_items),
    )

    logger.info(
        "application_ready",
        service=settings.service_name,
        version=settings.service_version,
        docs_url=f"http://localhost:{settings.port}/docs",
    )

    return app


def main() -> None:
    """Launch the marketplace checkout server."""
    settings = get_settings()
    setup_logging(settings.log_level)

    app = build_app(settings)

    uvicorn.run(
        app,  # type: ignore[arg-type]
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
