# tests/test_checkout_payments.py
"""Cart split into per-wholesaler orders and payment outcome handling."""

import pytest

from core import actions as a
from core.checkout import CartLine, build_orders, cart_savings, discounted_price
from core.errors import ValidationError
from core.models import OrderStatus, PaymentStatus, Role, User
from core.payments import PaymentCancelled, PaymentFailed, PaymentSucceeded, payment_action
from core.reducer import reduce, reduce_with_result
from core.state import initial_state
from factories import ADMIN, RETAILER, T0, WHOLESALER, order, product, promotion

OTHER_WHOLESALER = "w-2"


def catalogue():
    other = User(id=OTHER_WHOLESALER, name="Second Supplier", email="w2@example.com", role=Role.WHOLESALER)
    state = initial_state()
    for action in (
        a.AddUser(other),
        a.AddProduct(product("p1", price=100, stock=20)),
        a.AddProduct(product("p2", price=50, stock=20, min_order_quantity=5)),
        a.AddProduct(product("p3", wholesaler_id=OTHER_WHOLESALER, price=10, stock=3)),
        a.AddPromotion(promotion("promo1", discount=10, product_ids=("p1",))),
        a.ApprovePromotion("promo1", ADMIN),
    ):
        state = reduce(state, action)
    return state


def test_cart_is_split_per_wholesaler_with_discounted_snapshots():
    state = catalogue()
    actions = build_orders(
        state,
        [CartLine("p1", 2), CartLine("p3", 1), CartLine("p2", 5)],
        retailer_id=RETAILER,
        payment_method="payfast",
        at=T0,
    )

    assert [x.order.wholesaler_id for x in actions] == [WHOLESALER, OTHER_WHOLESALER]
    first = actions[0].order
    assert [(i.product_id, i.price, i.total) for i in first.items] == [("p1", 90.0, 180.0), ("p2", 50, 250)]
    assert first.total == 430
    assert first.status == OrderStatus.PENDING
    assert first.payment_status == PaymentStatus.PENDING
    assert actions[1].order.total == 10
    assert all(x.at == T0 for x in actions)


def test_pending_promotion_gives_no_discount():
    state = reduce(initial_state(), a.AddPromotion(promotion("promo1", discount=50)))
    assert discounted_price(product("p1", price=100), state.promotions) == 100


def test_cart_savings():
    assert cart_savings(catalogue(), [CartLine("p1", 3), CartLine("p2", 5)]) == 30


@pytest.mark.parametrize(
    "line, message",
    [
        (CartLine("ghost", 1), "Unknown product"),
        (CartLine("p2", 2), "minimum order quantity"),
        (CartLine("p3", 4), "only 3 in stock"),
    ],
)
def test_invalid_cart_lines_are_rejected_before_dispatch(line, message):
    with pytest.raises(ValidationError, match=message):
        build_orders(catalogue(), [line], retailer_id=RETAILER)


def test_empty_cart_is_rejected():
    with pytest.raises(ValidationError):
        build_orders(catalogue(), [], retailer_id=RETAILER)


def test_placed_orders_reach_the_store_and_notify_wholesalers():
    state = catalogue()
    for action in build_orders(state, [CartLine("p1", 1), CartLine("p3", 1)], retailer_id=RETAILER):
        state = reduce(state, action)
    assert len(state.orders) == 2
    recipients = {n.user_id for n in state.notifications if n.id.startswith("order-created")}
    assert recipients == {WHOLESALER, OTHER_WHOLESALER, "admin"}


# --------------------------------------------------------------------------- #
# Payments
# --------------------------------------------------------------------------- #

def placed():
    return reduce(initial_state(), a.AddOrder(order("o1"))), order("o1")


def test_successful_payment_marks_order_paid():
    state, o = placed()
    after = reduce(state, payment_action(o, PaymentSucceeded(amount=200.0)))
    assert after.orders[0].payment_status == PaymentStatus.PAID
    assert after.orders[0].status == OrderStatus.PENDING


def test_failed_payment_keeps_order_open():
    state, o = placed()
    after = reduce(state, payment_action(o, PaymentFailed(reason="card declined")))
    assert after.orders[0].payment_status == PaymentStatus.FAILED
    assert after.orders[0].status == OrderStatus.PENDING


def test_cancelled_payment_cancels_order_and_tells_retailer():
    state, o = placed()
    result = reduce_with_result(state, payment_action(o, PaymentCancelled()))
    assert result.state.orders[0].status == OrderStatus.CANCELLED
    assert result.state.orders[0].payment_status == PaymentStatus.FAILED
    assert [n.user_id for n in result.notifications] == [RETAILER]


def test_unknown_outcome_is_a_type_error():
    with pytest.raises(TypeError):
        payment_action(order("o1"), object())
