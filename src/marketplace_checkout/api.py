"""FastAPI application for the marketplace checkout client.

Exposes REST endpoints for:
- Checkout session lifecycle (start, snapshot, reset)
- SSE streaming of checkout session snapshots
- Shipping/billing location selection and validation
- Resuming incomplete orders
- Order creation, payment and payment reconciliation
- Cart and order history passthroughs
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import structlog
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from common import ErrorResponse, HealthResponse

from marketplace_checkout.config import Settings
from marketplace_checkout.errors import CheckoutError
from marketplace_checkout.models import (
    CheckoutFormData,
    LocationSelection,
    MarketplaceModel,
    OrderSearchParams,
    OrderStatus,
    PaymentStatus,
)
from marketplace_checkout.services import CheckoutServices

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SameAsShippingRequest(MarketplaceModel):
    same_as_shipping: bool


class ValidateRequest(MarketplaceModel):
    """Address validation request; ``mark`` records the validated phase."""

    same_as_shipping: bool = True
    mark: bool = True


class CreateOrderRequest(CheckoutFormData):
    resumed: bool = False


class PaymentMethodRequest(MarketplaceModel):
    payment_method: str


class PaymentRequest(MarketplaceModel):
    email: str


class AddCartItemRequest(MarketplaceModel):
    product_id: str
    quantity: int = 1


class CancelOrderRequest(MarketplaceModel):
    reason: str


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    services: CheckoutServices | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or Settings()
    services = services or CheckoutServices(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await services.close()

    app = FastAPI(
        title="Marketplace Checkout",
        description=(
            "Checkout orchestration for the marketplace: cart and incomplete "
            "order reconciliation, address selection and payment confirmation."
        ),
        version=settings.service_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.services = services
    app.state.settings = settings

    checkout = services.orchestrator

    # -------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        return HealthResponse(
            status="healthy",
            service=settings.service_name,
            version=settings.service_version,
        )

    # -------------------------------------------------------------------
    # Checkout session
    # -------------------------------------------------------------------

    @app.post("/api/v1/checkout", tags=["checkout"])
    async def start_checkout() -> dict[str, Any]:
        """Load the cart into the checkout session."""
        session = await checkout.initialize()
        return session.to_wire()

    @app.get("/api/v1/checkout", tags=["checkout"])
    async def get_checkout() -> dict[str, Any]:
        return checkout.snapshot.to_wire()

    @app.get("/api/v1/checkout/stream", tags=["checkout"])
    async def stream_checkout() -> EventSourceResponse:
        """SSE stream of checkout session snapshots (latest value only)."""

        async def event_generator():  # type: ignore[no-untyped-def]
            async for session in checkout.changes.subscribe():
                yield {
                    "event": session.phase.value,
                    "data": json.dumps(session.to_wire()),
                }

        return EventSourceResponse(event_generator())

    @app.delete("/api/v1/checkout", tags=["checkout"])
    async def reset_checkout() -> dict[str, Any]:
        checkout.reset()
        return checkout.snapshot.to_wire()

    # -------------------------------------------------------------------
    # Locations
    # -------------------------------------------------------------------

    @app.put("/api/v1/checkout/shipping-location", tags=["address"])
    async def update_shipping_location(selection: LocationSelection) -> dict[str, Any]:
        checkout.update_shipping_location(selection)
        return checkout.snapshot.to_wire()

    @app.put("/api/v1/checkout/billing-location", tags=["address"])
    async def update_billing_location(selection: LocationSelection) -> dict[str, Any]:
        checkout.update_billing_location(selection)
        return checkout.snapshot.to_wire()

    @app.put("/api/v1/checkout/same-as-shipping", tags=["address"])
    async def set_same_as_shipping(req: SameAsShippingRequest) -> dict[str, Any]:
        checkout.set_same_as_shipping(req.same_as_shipping)
        return checkout.snapshot.to_wire()

    @app.post("/api/v1/checkout/validate", tags=["address"])
    async def validate_locations(req: ValidateRequest) -> dict[str, Any]:
        result = checkout.validate_location_selections(req.same_as_shipping)
        if result.valid and req.mark:
            checkout.mark_address_validated(req.same_as_shipping)
        return result.to_wire()

    # -------------------------------------------------------------------
    # Incomplete orders
    # -------------------------------------------------------------------

    @app.get("/api/v1/checkout/incomplete-orders", tags=["orders"])
    async def list_incomplete_orders(
        page: int = Query(0, ge=0),
        size: int | None = Query(None, ge=1, le=100),
    ) -> list[dict[str, Any]]:
        orders = await checkout.load_incomplete_orders(page=page, size=size)
        return [order.to_wire() for order in orders]

    @app.post("/api/v1/checkout/incomplete-orders/{order_id}/select", tags=["orders"])
    async def select_incomplete_order(order_id: str) -> dict[str, Any]:
        """Resume an incomplete order, fetching it if it is not in the loaded list."""
        known = {o.id: o for o in checkout.snapshot.incomplete_orders}
        order = known.get(order_id) or await services.orders.get_order(order_id)
        session = await checkout.select_incomplete_order(order)
        return session.to_wire()

    @app.delete("/api/v1/checkout/selection", tags=["orders"])
    async def clear_order_selection() -> dict[str, Any]:
        session = await checkout.clear_order_selection()
        return session.to_wire()

    # -------------------------------------------------------------------
    # Order and payment
    # -------------------------------------------------------------------

    @app.post("/api/v1/checkout/order", tags=["payment"])
    async def create_order(req: CreateOrderRequest) -> dict[str, Any]:
        """Create the incomplete order and open its payment form."""
        form_data = CheckoutFormData.model_validate(req.model_dump(exclude={"resumed"}))
        order = await checkout.create_incomplete_order(form_data, resumed=req.resumed)
        return order.to_wire()

    @app.post("/api/v1/checkout/payment-method", tags=["payment"])
    async def mount_payment_method(req: PaymentMethodRequest) -> dict[str, Any]:
        checkout.mount_payment_method(req.payment_method)
        return checkout.snapshot.to_wire()

    @app.post("/api/v1/checkout/payment", tags=["payment"])
    async def process_payment(req: PaymentRequest) -> dict[str, Any]:
        result = await checkout.process_payment(req.email)
        return result.to_wire()

    @app.post("/api/v1/checkout/payment/retry", tags=["payment"])
    async def retry_payment() -> dict[str, Any]:
        session = await checkout.retry_payment()
        return session.to_wire()

    @app.post("/api/v1/checkout/payment/reconcile", tags=["payment"])
    async def reconcile_payment() -> dict[str, Any]:
        result = await checkout.reconcile_payment()
        return result.to_wire()

    # -------------------------------------------------------------------
    # Cart
    # -------------------------------------------------------------------

    @app.get("/api/v1/cart", tags=["cart"])
    async def get_cart() -> dict[str, Any]:
        cart = await services.cart.get_cart()
        return cart.to_wire()

    @app.post("/api/v1/cart/items", tags=["cart"])
    async def add_cart_item(req: AddCartItemRequest) -> dict[str, Any]:
        cart = await services.cart.add_item(req.product_id, req.quantity)
        return cart.to_wire()

    @app.delete("/api/v1/cart", tags=["cart"])
    async def clear_cart() -> dict[str, Any]:
        await checkout.clear_cart()
        return {"status": "cleared"}

    # -------------------------------------------------------------------
    # Order history
    # -------------------------------------------------------------------

    @app.get("/api/v1/orders", tags=["orders"])
    async def search_orders(
        keyword: str | None = Query(None),
        status: OrderStatus | None = Query(None),
        payment_status: PaymentStatus | None = Query(None),
        page: int = Query(0, ge=0),
        size: int = Query(10, ge=1, le=100),
    ) -> dict[str, Any]:
        params = OrderSearchParams(
            keyword=keyword,
            status=status,
            payment_status=payment_status,
            page=page,
            size=size,
        )
        result = await services.orders.search_orders(params)
        return result.to_wire()

    @app.get("/api/v1/orders/{order_id}", tags=["orders"])
    async def get_order(order_id: str) -> dict[str, Any]:
        order = await services.orders.get_order(order_id)
        return order.to_wire()

    @app.put("/api/v1/orders/{order_id}/cancel", tags=["orders"])
    async def cancel_order(order_id: str, req: CancelOrderRequest) -> dict[str, Any]:
        order = await services.orders.cancel_order(order_id, req.reason)
        return order.to_wire()

    @app.delete("/api/v1/orders/{order_id}", tags=["orders"])
    async def delete_order(order_id: str) -> dict[str, Any]:
        order = await services.orders.delete_order(order_id)
        return order.to_wire()

    # -------------------------------------------------------------------
    # Error handlers
    # -------------------------------------------------------------------

    @app.exception_handler(CheckoutError)
    async def checkout_exception_handler(
        request: Request, exc: CheckoutError
    ) -> JSONResponse:
        logger.info(
            "checkout_request_rejected",
            error=type(exc).__name__,
            detail=str(exc),
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=type(exc).__name__,
                detail=str(exc),
                status_code=exc.status_code,
                path=request.url.path,
            ).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "unhandled_exception", error=str(exc), path=request.url.path
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="Internal server error",
                detail=str(exc),
                status_code=500,
                path=request.url.path,
            ).model_dump(),
        )

    return app
