"""Shared test fixtures for the marketplace checkout client."""

import asyncio

import httpx
import pytest

from marketplace_checkout.config import Settings
from marketplace_checkout.errors import AvailabilityError, NotInitializedError
from marketplace_checkout.mock_backend.factory import MarketplaceFactory
from marketplace_checkout.models import (
    Cart,
    CartItem,
    CheckoutFormData,
    City,
    Country,
    FullProduct,
    LocationSelection,
    Media,
    Order,
    OrderItem,
    Page,
    PaymentStatus,
    Product,
    ProductMedia,
    ShippingAddress,
    State,
    User,
)
from marketplace_checkout.orchestrator.checkout import CheckoutOrchestrator
from marketplace_checkout.payments.bridge import (
    PaymentForm,
    PaymentOutcome,
    PaymentOutcomeStatus,
)
from marketplace_checkout.protocols.api_client import MarketplaceClient
from marketplace_checkout.streaming import SnapshotStream


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeCartStore:
    def __init__(self, cart: Cart) -> None:
        self.cart = cart
        self.calls: list[str] = []
        self.changes: SnapshotStream[Cart | None] = SnapshotStream(None, name="cart")

    async def get_cart(self) -> Cart:
        self.calls.append("get_cart")
        return self.cart.model_copy(deep=True)

    async def clear_cart(self) -> Cart:
        self.calls.append("clear_cart")
        self.cart = Cart()
        self.changes.publish(self.cart)
        return self.cart


class FakeOrderGateway:
    def __init__(self, order: Order) -> None:
        self.order = order
        self.create_calls: list[CheckoutFormData] = []
        self.confirm_calls: list[str] = []
        self.create_error: Exception | None = None
        self.confirm_error: Exception | None = None
        self.incomplete_error: Exception | None = None
        self.gate: asyncio.Event | None = None

    async def create_order(self, form_data: CheckoutFormData) -> Order:
        self.create_calls.append(form_data)
        if self.gate is not None:
            await self.gate.wait()
        if self.create_error is not None:
            raise self.create_error
        return self.order.model_copy(deep=True)

    async def confirm_order(self, payment_intent_id: str) -> Order:
        self.confirm_calls.append(payment_intent_id)
        if self.confirm_error is not None:
            raise self.confirm_error
        return self.order.model_copy(
            update={"payment_status": PaymentStatus.COMPLETED, "stripe_client_secret": None}
        )

    async def get_incomplete_orders(self, page: int = 0, size: int = 10) -> Page[Order]:
        if self.incomplete_error is not None:
            raise self.incomplete_error
        return Page[Order](content=[self.order], total_elements=1, total_pages=1, size=size)

    async def get_order(self, order_id: str) -> Order:
        return self.order.model_copy(deep=True)


class FakeProductGateway:
    def __init__(self) -> None:
        self.availability_calls: list[list[str]] = []
        self.unavailable = False

    async def check_availability(self, items):  # type: ignore[no-untyped-def]
        self.availability_calls.append([item.id for item in items])
        if self.unavailable:
            raise AvailabilityError("Product not available. Insufficient stock. Please try again.")
        return []


class FakePaymentBridge:
    def __init__(self, fail_init: bool = False) -> None:
        self.fail_init = fail_init
        self.initialized = False
        self.initialize_calls = 0
        self.confirm_calls: list[dict[str, str]] = []
        self.status = PaymentOutcomeStatus.SUCCEEDED
        self.error: str | None = None
        self.redirect_url: str | None = None
        self.confirm_error: Exception | None = None
        self.gate: asyncio.Event | None = None

    @property
    def is_initialized(self) -> bool:
        return self.initialized

    async def initialize(self) -> None:
        self.initialize_calls += 1
        if self.fail_init:
            raise NotInitializedError("Stripe is not configured.")
        self.initialized = True

    def create_form(self, client_secret: str) -> PaymentForm:
        if not self.initialized:
            raise NotInitializedError("Payment bridge not initialized")
        return PaymentForm(client_secret)

    async def confirm_payment(
        self, form: PaymentForm, return_url: str, receipt_email: str
    ) -> PaymentOutcome:
        self.confirm_calls.append(
            {
                "payment_intent_id": form.payment_intent_id,
                "payment_method": form.payment_method,
                "return_url": return_url,
                "receipt_email": receipt_email,
            }
        )
        if self.gate is not None:
            await self.gate.wait()
        if self.confirm_error is not None:
            raise self.confirm_error
        return PaymentOutcome(
            status=self.status,
            payment_intent_id=form.payment_intent_id,
            error=self.error,
            redirect_url=self.redirect_url,
        )


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings():
    """Create test settings."""
    return Settings(
        environment="testing",
        stripe_publishable_key="pk_test_123",
        api_token="test-token",
        mount_mock_backend=False,
    )


@pytest.fixture
def cart():
    """A cart holding two units of P1 at 10.00."""
    product = Product(id="P1", name="Walnut Desk Organizer", price=10.0, user_id="u-seller-1")
    media = [Media(id="m-1", image_path="desk-organizer.jpg", product_id="P1")]
    return Cart(
        user_id="u-client-1",
        items=[
            CartItem(
                id="ci-1",
                item=ProductMedia(product=product, media=media),
                quantity=2,
                price=10.0,
            )
        ],
        total_items=2,
        total_amount=20.0,
    )


@pytest.fixture
def order():
    """An incomplete order for the cart above."""
    return Order(
        id="ORD-1",
        stripe_payment_intent_id="pi_123",
        stripe_client_secret="pi_123_secret_abc",
        subtotal=20.0,
        shipping=100.0,
        tax=10.0,
        total_amount=130.0,
        user_id="u-client-1",
        order_items=[
            OrderItem(
                product_id="P1",
                product_name="Walnut Desk Organizer",
                unit_price=10.0,
                quantity=2,
                total_price=20.0,
                seller_id="u-seller-1",
            )
        ],
    )


@pytest.fixture
def enriched_order(order):
    """The same order after product, media and seller enrichment."""
    return order.model_copy(
        update={
            "total_amount": 999.0,
            "full_order_item": [
                FullProduct(
                    user=User(id="u-seller-1", name="Kofi Crafts"),
                    product=Product(id="P1", name="Walnut Desk Organizer", price=10.0),
                    media=[Media(id="m-1", image_path="desk-organizer.jpg", product_id="P1")],
                )
            ],
        }
    )


@pytest.fixture
def toronto():
    return LocationSelection(
        country=Country(name="Canada", iso_code="CA"),
        state=State(name="Ontario", iso_code="ON"),
        city=City(name="Toronto"),
    )


@pytest.fixture
def lisbon():
    return LocationSelection(
        country=Country(name="Portugal", iso_code="PT"),
        state=State(name="Lisboa", iso_code="11"),
        city=City(name="Lisbon"),
    )


@pytest.fixture
def form_data():
    return CheckoutFormData(
        email="ada@example.com",
        phone="555-0100",
        shipping=ShippingAddress(
            full_name="Ada Buyer",
            address1="1 King St W",
            postal_code="M5H 1A1",
        ),
    )


# ---------------------------------------------------------------------------
# Orchestrator fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_cart(cart):
    return FakeCartStore(cart)


@pytest.fixture
def fake_orders(order):
    return FakeOrderGateway(order)


@pytest.fixture
def fake_products():
    return FakeProductGateway()


@pytest.fixture
def fake_bridge():
    return FakePaymentBridge()


@pytest.fixture
def orchestrator(fake_cart, fake_orders, fake_products, fake_bridge, settings):
    return CheckoutOrchestrator(
        cart_store=fake_cart,
        orders=fake_orders,
        products=fake_products,
        payment_bridge=fake_bridge,
        settings=settings,
    )


# ---------------------------------------------------------------------------
# Mock marketplace fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def marketplace():
    """In-memory marketplace with two units of P1 in the cart."""
    return MarketplaceFactory.create_marketplace(seed_cart={"P1": 2})


@pytest.fixture
async def api_client(marketplace):
    client = MarketplaceClient(
        "http://mock-marketplace/",
        token_provider=lambda: "test-token",
        max_retries=2,
        transport=httpx.ASGITransport(app=marketplace.app),
    )
    yield client
    await client.close()
