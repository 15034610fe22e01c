"""In-memory mock of the marketplace backend.

Creates a self-contained FastAPI sub-app implementing the product, media,
user, cart and order endpoints the checkout client calls, wrapped in the
backend's ``{status, message, data}`` envelope.  Designed to be mounted
inside the checkout service for demo runs and used directly in tests.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Header, HTTPException, Query
from pydantic import BaseModel, Field

SHIPPING_FEE = 100.0
TAX_FEE = 10.0


# ---------------------------------------------------------------------------
# Request models (lightweight, internal to the mock)
# ---------------------------------------------------------------------------


class AddCartItemRequest(BaseModel):
    productId: str  # noqa: N815
    quantity: int = 1


class UpdateCartItemRequest(BaseModel):
    quantity: int


class ConfirmOrderRequest(BaseModel):
    paymentIntentId: str  # noqa: N815


class CancelOrderRequest(BaseModel):
    orderId: str | None = None  # noqa: N815
    reason: str = ""


class AvailabilityItem(BaseModel):
    id: str
    quantity: int


class IntegratedCheckoutRequest(BaseModel):
    email: str
    phone: str | None = None
    shipping: dict[str, Any]
    billing: dict[str, Any] | None = None
    items: list[AvailabilityItem] = Field(default_factory=list)


def _now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def _envelope(data: Any, message: str = "OK", status: int = 200) -> dict[str, Any]:
    return {"status": status, "message": message, "data": data}


def _page(items: list[dict[str, Any]], page: int, size: int) -> dict[str, Any]:
    start = page * size
    total = len(items)
    return {
        "content": items[start : start + size],
        "totalElements": total,
        "totalPages": (total + size - 1) // size if size else 0,
        "number": page,
        "size": size,
    }


# ---------------------------------------------------------------------------
# Mock marketplace mini-app
# ---------------------------------------------------------------------------


class MockMarketplaceApp:
    """A self-contained mock marketplace backend for one signed-in buyer.

    Parameters
    ----------
    users:
        Users (buyers and sellers) keyed by nothing; looked up by ``id``.
    products:
        Product catalog in wire format (``quantity`` is stock on hand).
    media:
        Product images in wire format.
    customer_id:
        The buyer every cart and order belongs to.
    fail_confirmations:
        Number of upcoming ``order/confirm`` calls to fail with a 503.
    """

    def __init__(
        self,
        users: list[dict[str, Any]],
        products: list[dict[str, Any]],
        media: list[dict[str, Any]],
        customer_id: str = "u-client-1",
        fail_confirmations: int = 0,
    ) -> None:
        self.users = {u["id"]: u for u in users}
        self.products = {p["id"]: p for p in products}
        self.media = media
        self.customer_id = customer_id
        self.fail_confirmations = fail_confirmations

        # In-memory state
        self.cart_items: list[dict[str, Any]] = []
        self.orders: dict[str, dict[str, Any]] = {}
        self.request_log: list[str] = []

        self.app = self._build_app()

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _product(self, product_id: str) -> dict[str, Any]:
        product = self.products.get(product_id)
        if product is None:
            raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
        return product

    def _media_for(self, product_id: str) -> list[dict[str, Any]]:
        return [m for m in self.media if m["productId"] == product_id]

    def _cart(self) -> dict[str, Any]:
        return {
            "userId": self.customer_id,
            "items": self.cart_items,
            "totalItems": sum(i["quantity"] for i in self.cart_items),
            "totalAmount": round(sum(i["price"] * i["quantity"] for i in self.cart_items), 2),
            "createdAt": _now(),
            "updatedAt": _now(),
        }

    def _unavailable(self, items: list[AvailabilityItem]) -> list[str]:
        short = []
        for item in items:
            product = self._product(item.id)
            if product["quantity"] < item.quantity:
                short.append(product["name"])
        return short

    def seed_cart(self, product_id: str, quantity: int) -> None:
        """Put an item straight into the cart (test and demo helper)."""
        product = self._product(product_id)
        self.cart_items.append(
            {
                "id": f"ci-{uuid.uuid4().hex[:8]}",
                "item": {"product": dict(product), "media": self._media_for(product_id)},
                "quantity": quantity,
                "price": product["price"],
                "addedAt": _now(),
            }
        )

    # ------------------------------------------------------------------
    # App builder
    # ------------------------------------------------------------------

    def _build_app(self) -> FastAPI:
        """Construct the FastAPI sub-app with all marketplace endpoints."""
        app = FastAPI(title="Mock Marketplace Backend")

        backend = self  # capture for closures

        def authorize(authorization: str | None) -> None:
            if not authorization or not authorization.startswith("Bearer "):
                raise HTTPException(status_code=401, detail="Missing bearer token")

        # -- Users, products, media --------------------------------------

        @app.get("/users/{user_id}")
        async def get_user(user_id: str) -> dict[str, Any]:
            user = backend.users.get(user_id)
            if user is None:
                raise HTTPException(status_code=404, detail=f"User {user_id} not found")
            return _envelope(user)

        @app.get("/product/{product_id}")
        async def get_product(product_id: str) -> dict[str, Any]:
            return _envelope(backend._product(product_id))

        @app.get("/media/product/{product_id}")
        async def get_media(product_id: str) -> dict[str, Any]:
            return _envelope(backend._media_for(product_id))

        @app.post("/product/available")
        async def product_available(
            items: list[AvailabilityItem],
            authorization: str | None = Header(None),
        ) -> dict[str, Any]:
            """Confirm stock covers every requested quantity."""
            authorize(authorization)
            backend.request_log.append("product/available")
            short = backend._unavailable(items)
            if short:
                raise HTTPException(
                    status_code=409,
                    detail=f"Insufficient stock for: {', '.join(short)}",
                )
            return _envelope([backend._product(i.id) for i in items])

        # -- Cart ------------------------------------------------------

        @app.get("/cart")
        async def get_cart(authorization: str | None = Header(None)) -> dict[str, Any]:
            authorize(authorization)
            return _envelope(backend._cart())

        @app.post("/cart/items")
        async def add_cart_item(
            req: AddCartItemRequest, authorization: str | None = Header(None)
        ) -> dict[str, Any]:
            authorize(authorization)
            for item in backend.cart_items:
                if item["item"]["product"]["id"] == req.productId:
                    item["quantity"] += req.quantity
                    return _envelope(backend._cart())
            backend.seed_cart(req.productId, req.quantity)
            return _envelope(backend._cart())

        @app.put("/cart/items/{item_id}")
        async def update_cart_item(
            item_id: str, req: UpdateCartItemRequest, authorization: str | None = Header(None)
        ) -> dict[str, Any]:
            authorize(authorization)
            for item in backend.cart_items:
                if item["id"] == item_id:
                    item["quantity"] = req.quantity
                    return _envelope(backend._cart())
            raise HTTPException(status_code=404, detail="Cart item not found")

        @app.delete("/cart/items/{item_id}")
        async def remove_cart_item(
            item_id: str, authorization: str | None = Header(None)
        ) -> dict[str, Any]:
            authorize(authorization)
            backend.cart_items = [i for i in backend.cart_items if i["id"] != item_id]
            return _envelope(backend._cart())

        @app.delete("/cart")
        async def clear_cart(authorization: str | None = Header(None)) -> dict[str, Any]:
            authorize(authorization)
            backend.request_log.append("cart/clear")
            backend.cart_items = []
            return _envelope(backend._cart(), message="Cart cleared")

        # -- Orders ----------------------------------------------------

        @app.post("/order/checkout/integrated")
        async def integrated_checkout(
            req: IntegratedCheckoutRequest, authorization: str | None = Header(None)
        ) -> dict[str, Any]:
            """Create an incomplete order with a payment client secret."""
            authorize(authorization)
            backend.request_log.append("order/checkout/integrated")
            if not req.items:
                raise HTTPException(status_code=400, detail="Order has no items")

            order_items = []
            subtotal = 0.0
            for item in req.items:
                product = backend._product(item.id)
                line_total = round(product["price"] * item.quantity, 2)
                subtotal += line_total
                order_items.append(
                    {
                        "productId": product["id"],
                        "productName": product["name"],
                        "unitPrice": product["price"],
                        "quantity": item.quantity,
                        "totalPrice": line_total,
                        "sellerId": product["userID"],
                    }
                )

            intent_id = f"pi_{uuid.uuid4().hex[:16]}"
            order_id = f"ORD-{uuid.uuid4().hex[:8].upper()}"
            order = {
                "id": order_id,
                "status": "PENDING",
                "paymentStatus": "INCOMPLETE",
                "stripePaymentIntentId": intent_id,
                "stripeClientSecret": f"{intent_id}_secret_{uuid.uuid4().hex[:12]}",
                "subtotal": round(subtotal, 2),
                "shipping": SHIPPING_FEE,
                "tax": TAX_FEE,
                "totalAmount": round(subtotal + SHIPPING_FEE + TAX_FEE, 2),
                "currency": "usd",
                "userId": backend.customer_id,
                "email": req.email,
                "phone": req.phone,
                "shippingAddress": req.shipping,
                "billingAddress": req.billing or req.shipping,
                "orderItems": order_items,
                "statusHistory": [
                    {"status": "PENDING", "paymentStatus": "INCOMPLETE", "timestamp": _now()}
                ],
                "createdAt": _now(),
                "updatedAt": _now(),
            }
            backend.orders[order_id] = order
            return _envelope(order, message="Order created")

        @app.post("/order/confirm")
        async def confirm_order(
            req: ConfirmOrderRequest, authorization: str | None = Header(None)
        ) -> dict[str, Any]:
            authorize(authorization)
            backend.request_log.append("order/confirm")
            if backend.fail_confirmations > 0:
                backend.fail_confirmations -= 1
                raise HTTPException(status_code=503, detail="Order service unavailable")

            for order in backend.orders.values():
                if order["stripePaymentIntentId"] == req.paymentIntentId:
                    for line in order["orderItems"]:
                        backend._product(line["productId"])["quantity"] -= line["quantity"]
                    order["paymentStatus"] = "COMPLETED"
                    order["stripeClientSecret"] = None
                    order["completedAt"] = _now()
                    order["statusHistory"].append(
                        {"status": order["status"], "paymentStatus": "COMPLETED", "timestamp": _now()}
                    )
                    return _envelope(order, message="Order confirmed")
            raise HTTPException(status_code=404, detail="No order for payment intent")

        @app.get("/order/incomplete/user")
        async def incomplete_orders(
            page: int = Query(0, ge=0),
            size: int = Query(10, ge=1, le=100),
            authorization: str | None = Header(None),
        ) -> dict[str, Any]:
            authorize(authorization)
            orders = [
                o
                for o in backend.orders.values()
                if o["paymentStatus"] == "INCOMPLETE" and o["userId"] == backend.customer_id
            ]
            return _envelope(_page(orders, page, size))

        @app.get("/order/search")
        async def search_orders(
            keyword: str | None = Query(None),
            status: str | None = Query(None),
            paymentStatus: str | None = Query(None),  # noqa: N803
            page: int = Query(0, ge=0),
            size: int = Query(10, ge=1, le=100),
            authorization: str | None = Header(None),
        ) -> dict[str, Any]:
            authorize(authorization)
            results = list(backend.orders.values())
            if keyword:
                kw = keyword.lower()
                results = [
                    o
                    for o in results
                    if kw in o["id"].lower()
                    or any(kw in line["productName"].lower() for line in o["orderItems"])
                ]
            if status:
                results = [o for o in results if o["status"] == status]
            if paymentStatus:
                results = [o for o in results if o["paymentStatus"] == paymentStatus]
            return _envelope(_page(results, page, size))

        @app.get("/order/{order_id}")
        async def get_order(order_id: str, authorization: str | None = Header(None)) -> dict[str, Any]:
            authorize(authorization)
            order = backend.orders.get(order_id)
            if order is None:
                raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
            return _envelope(order)

        @app.put("/order/{order_id}/cancel")
        async def cancel_order(
            order_id: str, req: CancelOrderRequest, authorization: str | None = Header(None)
        ) -> dict[str, Any]:
            authorize(authorization)
            order = backend.orders.get(order_id)
            if order is None:
                raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
            if order["paymentStatus"] == "COMPLETED":
                raise HTTPException(status_code=400, detail="Paid orders cannot be cancelled")
            order["status"] = "CANCELLED"
            order["paymentStatus"] = "CANCELLED"
            order["cancelReason"] = req.reason
            order["cancelledAt"] = _now()
            return _envelope(order, message="Order cancelled")

        @app.delete("/order/{order_id}")
        async def delete_order(order_id: str, authorization: str | None = Header(None)) -> dict[str, Any]:
            authorize(authorization)
            order = backend.orders.pop(order_id, None)
            if order is None:
                raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
            return _envelope(order, message="Order deleted")

        return app
