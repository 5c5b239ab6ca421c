# core/checkout.py
"""
Checkout: turn a retailer's cart into orders.

A cart may mix products from several wholesalers; each wholesaler receives
its own order. Line items snapshot the product name and the unit price after
promotion discount at checkout time, so later catalogue edits never change a
placed order.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from core.actions import AddOrder
from core.errors import ValidationError
from core.models import (
    ModerationStatus,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    Product,
    Promotion,
)
from core.state import AppState


@dataclass(frozen=True)
class CartLine:
    product_id: str
    quantity: int


def active_promotion_for(product_id: str, promotions: Sequence[Promotion]) -> Optional[Promotion]:
    """First approved, active promotion that covers ``product_id``."""
    for promo in promotions:
        if promo.active and promo.status == ModerationStatus.APPROVED and product_id in promo.product_ids:
            return promo
    return None


def discounted_price(product: Product, promotions: Sequence[Promotion]) -> float:
    promo = active_promotion_for(product.id, promotions)
    if promo is None:
        return product.price
    return round(product.price * (1 - promo.discount / 100), 2)


def cart_savings(state: AppState, cart: Sequence[CartLine]) -> float:
    """Total discount granted by promotions across the cart."""
    products = {p.id: p for p in state.products}
    saved = 0.0
    for line in cart:
        product = products.get(line.product_id)
        if product is not None:
            saved += (product.price - discounted_price(product, state.promotions)) * line.quantity
    return round(saved, 2)


def _check_line(line: CartLine, product: Optional[Product]) -> Product:
    if product is None:
        raise ValidationError(f"Unknown product: {line.product_id}")
    if not product.available:
        raise ValidationError(f"{product.name} is not available")
    if line.quantity < product.min_order_quantity:
        raise ValidationError(
            f"{product.name}: minimum order quantity is {product.min_order_quantity}"
        )
    if line.quantity > product.stock:
        raise ValidationError(f"{product.name}: only {product.stock} in stock")
    return product


def build_orders(
    state: AppState,
    cart: Sequence[CartLine],
    retailer_id: str,
    payment_method: Optional[str] = None,
    notes: Optional[str] = None,
    at: Optional[datetime] = None,
) -> List[AddOrder]:
    """
    Split ``cart`` into one pending ``AddOrder`` per wholesaler.

    Parameters
    ----------
    state : AppState
        Current state; supplies products and promotions.
    cart : sequence of CartLine
        Requested products and quantities.
    retailer_id : str
        Buyer placing the orders.

    Returns
    -------
    list of AddOrder
        In order of first appearance of each wholesaler in the cart.

    Raises
    ------
    ValidationError
        Empty cart, unknown or unavailable product, or a quantity outside
        ``[min_order_quantity, stock]``.
    """
    if not cart:
        raise ValidationError("Cart is empty")

    products = {p.id: p for p in state.products}
    at = at or datetime.now(timezone.utc)
    groups: Dict[str, List[OrderItem]] = {}

    for line in cart:
        product = _check_line(line, products.get(line.product_id))
        price = discounted_price(product, state.promotions)
        groups.setdefault(product.wholesaler_id, []).append(
            OrderItem(
                product_id=product.id,
                product_name=product.name,
                quantity=line.quantity,
                price=price,
                total=round(price * line.quantity, 2),
            )
        )

    actions = []
    for wholesaler_id, items in groups.items():
        order = Order(
            id=str(uuid.uuid4()),
            retailer_id=retailer_id,
            wholesaler_id=wholesaler_id,
            items=tuple(items),
            total=round(sum(i.total for i in items), 2),
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            payment_method=payment_method,
            notes=notes,
            created_at=at,
            updated_at=at,
        )
        actions.append(AddOrder(order, at=at))
    return actions
