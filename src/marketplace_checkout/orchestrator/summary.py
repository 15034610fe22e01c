"""Line-item and order-summary derivation.

Exactly one source is authoritative for the summary: a selected order
supersedes the cart.  Cart-sourced summaries add flat shipping and tax
surcharges; order-sourced summaries use the order's own monetary fields.
"""

from __future__ import annotations

from marketplace_checkout.models import (
    Cart,
    CheckoutItem,
    Order,
    OrderSummary,
    Product,
    ProductMedia,
    SummaryItem,
)

DEFAULT_SHIPPING_FEE = 100.0
DEFAULT_TAX_FEE = 10.0


def checkout_items_from_cart(cart: Cart) -> list[CheckoutItem]:
    return [
        CheckoutItem(
            id=cart_item.item.product.id,
            name=cart_item.item.product.name,
            price=cart_item.price,
            quantity=cart_item.quantity,
            image_url=cart_item.item.media[0].image_path if cart_item.item.media else "",
        )
        for cart_item in cart.items
    ]


def checkout_items_from_order(order: Order) -> list[CheckoutItem]:
    media_by_product = {
        full.product.id: full.media for full in order.full_order_item
    }
    items = []
    for line in order.order_items:
        media = media_by_product.get(line.product_id) or []
        items.append(
            CheckoutItem(
                id=line.product_id,
                name=line.product_name,
                price=line.unit_price,
                quantity=line.quantity,
                image_url=media[0].image_path if media else "",
            )
        )
    return items


def _order_summary_items(order: Order) -> list[SummaryItem]:
    quantities = {line.product_id: line.quantity for line in order.order_items}

    if order.full_order_item:
        return [
            SummaryItem(
                item=ProductMedia(product=full.product, media=full.media),
                quantity=quantities.get(full.product.id, 1),
            )
            for full in order.full_order_item
        ]

    # Not yet enriched: build bare products from the order lines.
    return [
        SummaryItem(
            item=ProductMedia(
                product=Product(
                    id=line.product_id,
                    name=line.product_name,
                    price=line.unit_price,
                )
            ),
            quantity=line.quantity,
        )
        for line in order.order_items
    ]


def calculate_order_summary(
    cart: Cart | None,
    selected_order: Order | None,
    shipping_fee: float = DEFAULT_SHIPPING_FEE,
    tax_fee: float = DEFAULT_TAX_FEE,
) -> OrderSummary | None:
    """Derive the summary from the authoritative source.

    Returns ``None`` when neither the selected order nor the cart has items.
    """
    if selected_order is not None and (
        selected_order.full_order_item or selected_order.order_items
    ):
        return OrderSummary(
            items=_order_summary_items(selected_order),
            subtotal=selected_order.subtotal,
            shipping=selected_order.shipping,
            tax=selected_order.tax,
            total=selected_order.total_amount,
        )

    if cart is not None and cart.items:
        subtotal = cart.total_amount or sum(i.price * i.quantity for i in cart.items)
        return OrderSummary(
            items=[SummaryItem(item=i.item, quantity=i.quantity) for i in cart.items],
            subtotal=round(subtotal, 2),
            shipping=shipping_fee,
            tax=tax_fee,
            total=round(subtotal + shipping_fee + tax_fee, 2),
        )

    return None
