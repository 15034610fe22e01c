"""Order gateway: create, confirm, retrieve and search orders.

Raw orders only reference products and users by id.  Retrieval methods
enrich each order with its customer and a ``full_order_item`` list (seller,
product and media per line) by fanning out to the product, media and user
services concurrently.
"""

from __future__ import annotations

import asyncio

import structlog

from marketplace_checkout.models import (
    CheckoutFormData,
    FullProduct,
    Order,
    OrderItem,
    OrderSearchParams,
    Page,
    User,
)
from marketplace_checkout.gateways.products import ProductGateway
from marketplace_checkout.protocols.api_client import MarketplaceClient

logger = structlog.get_logger(__name__)


class OrderGateway:
    """CRUD and search over persisted orders."""

    def __init__(
        self,
        client: MarketplaceClient,
        products: ProductGateway,
        confirm_retry_attempts: int = 3,
    ) -> None:
        self._client = client
        self._products = products
        self._confirm_retry_attempts = confirm_retry_attempts

    # ------------------------------------------------------------------
    # Checkout lifecycle
    # ------------------------------------------------------------------

    async def create_order(self, form_data: CheckoutFormData) -> Order:
        """Create an incomplete order carrying a payment client secret.

        Never retried: a repeated POST could create a duplicate order.
        """
        data = await self._client.post(
            "order/checkout/integrated",
            json_body=form_data.to_wire(),
            retries=0,
        )
        order = Order.model_validate(data)
        logger.info("order_created", order_id=order.id, total=order.total_amount)
        return order

    async def confirm_order(self, payment_intent_id: str) -> Order:
        """Confirm an order against a succeeded payment intent."""
        data = await self._client.post(
            "order/confirm",
            json_body={"paymentIntentId": payment_intent_id},
            retries=self._confirm_retry_attempts,
        )
        order = Order.model_validate(data)
        logger.info(
            "order_confirmed",
            order_id=order.id,
            payment_intent_id=payment_intent_id,
            payment_status=order.payment_status.value,
        )
        return order

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def get_order(self, order_id: str) -> Order:
        data = await self._client.get(f"order/{order_id}")
        return await self._enrich(Order.model_validate(data))

    async def get_incomplete_orders(self, page: int = 0, size: int = 10) -> Page[Order]:
        """List the user's unpaid orders that can be resumed."""
        data = await self._client.get(
            "order/incomplete/user",
            params={"page": str(page), "size": str(size)},
        )
        return await self._enrich_page(data)

    async def search_orders(self, params: OrderSearchParams) -> Page[Order]:
        data = await self._client.get("order/search", params=params.to_query())
        return await self._enrich_page(data)

    async def cancel_order(self, order_id: str, reason: str) -> Order:
        data = await self._client.put(
            f"order/{order_id}/cancel",
            json_body={"orderId": order_id, "reason": reason},
        )
        logger.info("order_cancelled", order_id=order_id)
        return await self._enrich(Order.model_validate(data))

    async def delete_order(self, order_id: str) -> Order:
        data = await self._client.delete(f"order/{order_id}")
        return Order.model_validate(data)

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    async def _enrich_page(self, data: object) -> Page[Order]:
        page = Page[Order].model_validate(data or {})
        if not page.content:
            return page
        enriched = await asyncio.gather(*(self._enrich(order) for order in page.content))
        return page.model_copy(update={"content": list(enriched)})

    async def _enrich(self, order: Order) -> Order:
        customer, items = await asyncio.gather(
            self._customer(order),
            asyncio.gather(*(self._full_item(item) for item in order.order_items)),
        )
        return order.model_copy(update={"full_order_item": list(items), "customer": customer})

    async def _customer(self, order: Order) -> User | None:
        if not order.user_id:
            return order.customer
        return await self._products.get_user(order.user_id)

    async def _full_item(self, item: OrderItem) -> FullProduct:
        seller, product, media = await asyncio.gather(
            self._products.get_user(item.seller_id),
            self._products.get_product(item.product_id),
            self._products.get_product_media(item.product_id),
        )
        return FullProduct(user=seller, product=product, media=media)
