"""Product, media and user lookups plus the batch stock-availability check."""

from __future__ import annotations

import structlog

from marketplace_checkout.errors import AvailabilityError, GatewayError
from marketplace_checkout.models import AvailableProductRequest, Media, Product, User
from marketplace_checkout.protocols.api_client import MarketplaceClient

logger = structlog.get_logger(__name__)


class ProductGateway:
    """Read access to the product, media and user services."""

    def __init__(self, client: MarketplaceClient) -> None:
        self._client = client

    async def get_product(self, product_id: str) -> Product:
        data = await self._client.get(f"product/{product_id}")
        return Product.model_validate(data)

    async def get_product_media(self, product_id: str) -> list[Media]:
        data = await self._client.get(f"media/product/{product_id}")
        return [Media.model_validate(m) for m in data or []]

    async def get_user(self, user_id: str) -> User:
        data = await self._client.get(f"users/{user_id}")
        return User.model_validate(data)

    async def check_availability(
        self, items: list[AvailableProductRequest]
    ) -> list[Product]:
        """Confirm current stock covers every requested quantity.

        Raises
        ------
        AvailabilityError
            If the backend rejects one or more items.
        """
        payload = [item.to_wire() for item in items]
        try:
            data = await self._client.post("product/available", json_body=payload)
        except GatewayError as exc:
            if exc.upstream_status is not None and 400 <= exc.upstream_status < 500:
                logger.info("products_unavailable", items=len(items), error=str(exc))
                raise AvailabilityError(
                    f"Product not available. {exc}. Please try again."
                ) from exc
            raise

        return [Product.model_validate(p) for p in data or []]
