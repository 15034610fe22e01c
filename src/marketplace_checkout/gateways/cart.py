"""Cart store backed by the marketplace cart endpoints.

The cart is shared by the whole application; every successful write
re-publishes the latest cart on :attr:`CartStore.changes`.
"""

from __future__ import annotations

import structlog

from marketplace_checkout.models import AddToCartRequest, Cart
from marketplace_checkout.protocols.api_client import MarketplaceClient
from marketplace_checkout.streaming import SnapshotStream

logger = structlog.get_logger(__name__)


class CartStore:
    """Cart operations plus a change notification stream."""

    def __init__(self, client: MarketplaceClient) -> None:
        self._client = client
        self.changes: SnapshotStream[Cart | None] = SnapshotStream(None, name="cart")

    @property
    def current(self) -> Cart | None:
        return self.changes.value

    def _publish(self, data: object) -> Cart:
        cart = Cart.model_validate(data) if data is not None else Cart()
        self.changes.publish(cart)
        return cart

    async def get_cart(self) -> Cart:
        return self._publish(await self._client.get("cart"))

    async def add_item(self, product_id: str, quantity: int = 1) -> Cart:
        body = AddToCartRequest(product_id=product_id, quantity=quantity).to_wire()
        cart = self._publish(await self._client.post("cart/items", json_body=body))
        logger.info("cart_item_added", product_id=product_id, quantity=quantity)
        return cart

    async def update_item(self, item_id: str, quantity: int) -> Cart:
        data = await self._client.put(f"cart/items/{item_id}", json_body={"quantity": quantity})
        return self._publish(data)

    async def remove_item(self, item_id: str) -> Cart:
        return self._publish(await self._client.delete(f"cart/items/{item_id}"))

    async def clear_cart(self) -> Cart:
        await self._client.delete("cart")
        logger.info("cart_cleared")
        return self._publish(None)
