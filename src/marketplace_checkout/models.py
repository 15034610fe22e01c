"""Pydantic models for the marketplace checkout client.

Covers the backend response envelope, products and media, carts, location
selections and addresses, orders, checkout form data, order summaries, and
payment results.  The backend speaks camelCase JSON; every model accepts
both the wire names and the Python attribute names.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class MarketplaceModel(BaseModel):
    """Base model mapping snake_case attributes to camelCase wire names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """Serialise for the backend (camelCase, JSON-safe)."""
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class OrderStatus(str, enum.Enum):
    """Fulfilment status of an order."""

    PENDING = "PENDING"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    """Payment status of an order."""

    INCOMPLETE = "INCOMPLETE"
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    EXPIRED = "EXPIRED"


class Role(str, enum.Enum):
    CLIENT = "CLIENT"
    SELLER = "SELLER"


# ---------------------------------------------------------------------------
# Backend envelope
# ---------------------------------------------------------------------------


class ApiResponse(MarketplaceModel, Generic[T]):
    """Envelope wrapping every backend response."""

    status: int | None = None
    message: str = ""
    data: T | None = None


class Page(MarketplaceModel, Generic[T]):
    """A page of results."""

    content: list[T] = Field(default_factory=list)
    total_elements: int = 0
    total_pages: int = 0
    number: int = 0
    size: int = 0


# ---------------------------------------------------------------------------
# Users, products and media
# ---------------------------------------------------------------------------


class User(MarketplaceModel):
    id: str
    name: str = ""
    email: str = ""
    role: Role | None = None
    avatar: str | None = None


class Product(MarketplaceModel):
    id: str
    name: str = ""
    description: str = ""
    price: float = 0.0
    quantity: int = 0
    user_id: str = Field(default="", alias="userID")


class Media(MarketplaceModel):
    id: str = ""
    image_path: str = ""
    product_id: str = ""


class ProductMedia(MarketplaceModel):
    """A product with its media, as carried by cart items."""

    product: Product
    media: list[Media] = Field(default_factory=list)


class FullProduct(MarketplaceModel):
    """A product enriched with its seller and media, for order display."""

    user: User | None = None
    product: Product
    media: list[Media] = Field(default_factory=list)


class AvailableProductRequest(MarketplaceModel):
    """One entry of a batch stock-availability check."""

    id: str
    quantity: int


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------


class CartItem(MarketplaceModel):
    id: str
    item: ProductMedia
    quantity: int
    price: float
    added_at: datetime | None = None


class Cart(MarketplaceModel):
    user_id: str = ""
    items: list[CartItem] = Field(default_factory=list)
    total_items: int = 0
    total_amount: float = 0.0
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AddToCartRequest(MarketplaceModel):
    product_id: str
    quantity: int = 1


# ---------------------------------------------------------------------------
# Locations and addresses
# ---------------------------------------------------------------------------


class Country(MarketplaceModel):
    model_config = ConfigDict(frozen=True)

    name: str
    iso_code: str


class State(MarketplaceModel):
    model_config = ConfigDict(frozen=True)

    name: str
    iso_code: str


class City(MarketplaceModel):
    model_config = ConfigDict(frozen=True)

    name: str


class LocationSelection(MarketplaceModel):
    """Country / state / city picked from the geographic dataset."""

    country: Country | None = None
    state: State | None = None
    city: City | None = None

    def is_complete(self) -> bool:
        return self.country is not None and self.state is not None and self.city is not None


class ShippingAddress(MarketplaceModel):
    full_name: str
    address1: str
    address2: str | None = None
    postal_code: str
    location: LocationSelection = Field(default_factory=LocationSelection)


class BillingAddress(ShippingAddress):
    pass


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


class OrderItem(MarketplaceModel):
    product_id: str
    product_name: str = ""
    unit_price: float = 0.0
    quantity: int = 1
    total_price: float = 0.0
    seller_id: str = ""


class OrderStatusHistory(MarketplaceModel):
    status: OrderStatus
    payment_status: PaymentStatus
    timestamp: datetime | None = None


class Order(MarketplaceModel):
    """A persisted order as returned by the backend."""

    id: str
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.INCOMPLETE
    stripe_payment_intent_id: str | None = None
    stripe_client_secret: str | None = None
    total_amount: float = 0.0
    subtotal: float = 0.0
    shipping: float = 0.0
    tax: float = 0.0
    currency: str = "usd"
    user_id: str = ""
    cancel_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    cancelled_at: datetime | None = None
    completed_at: datetime | None = None

    email: str | None = None
    phone: str | None = None

    status_history: list[OrderStatusHistory] = Field(default_factory=list)
    shipping_address: ShippingAddress | None = None
    billing_address: BillingAddress | None = None
    order_items: list[OrderItem] = Field(default_factory=list)
    full_order_item: list[FullProduct] = Field(default_factory=list)
    customer: User | None = None


class OrderSearchParams(MarketplaceModel):
    """Filters accepted by ``GET order/search``."""

    keyword: str | None = None
    status: OrderStatus | None = None
    payment_status: PaymentStatus | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    page: int = 0
    size: int = 10

    def to_query(self) -> dict[str, str]:
        params: dict[str, str] = {"page": str(self.page), "size": str(self.size)}
        if self.keyword:
            params["keyword"] = self.keyword
        if self.status:
            params["status"] = self.status.value
        if self.payment_status:
            params["paymentStatus"] = self.payment_status.value
        if self.start_date:
            params["startDate"] = self.start_date.date().isoformat()
        if self.end_date:
            params["endDate"] = self.end_date.date().isoformat()
        return params


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


class CheckoutItemRequest(MarketplaceModel):
    id: str
    quantity: int


class CheckoutFormData(MarketplaceModel):
    """Order payload sent to ``POST order/checkout/integrated``."""

    email: str
    phone: str | None = None
    shipping: ShippingAddress
    billing: BillingAddress | None = None
    items: list[CheckoutItemRequest] = Field(default_factory=list)
    same_as_shipping: bool = True


class CheckoutItem(MarketplaceModel):
    """Display-ready line item derived from the cart."""

    id: str
    name: str
    price: float
    quantity: int
    image_url: str = ""


class SummaryItem(MarketplaceModel):
    item: ProductMedia
    quantity: int


class OrderSummary(MarketplaceModel):
    items: list[SummaryItem] = Field(default_factory=list)
    subtotal: float
    shipping: float
    tax: float
    total: float


class ValidationResult(MarketplaceModel):
    valid: bool
    error: str | None = None


class PaymentResult(MarketplaceModel):
    """Uniform outcome of a payment attempt."""

    success: bool
    payment_intent_id: str | None = None
    error: str | None = None
    requires_action: bool = False
    redirect_url: str | None = None
    confirmation_pending: bool = False
    order: Order | None = None
