# core/payments.py
"""
Payment outcomes reported by the payment provider, and the order update each
one implies.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from core.actions import UpdateOrder
from core.models import Order, OrderStatus, PaymentStatus


@dataclass(frozen=True)
class PaymentSucceeded:
    amount: float
    reference: str = ""


@dataclass(frozen=True)
class PaymentFailed:
    reason: str


@dataclass(frozen=True)
class PaymentCancelled:
    pass


PaymentOutcome = Union[PaymentSucceeded, PaymentFailed, PaymentCancelled]


def payment_action(order: Order, outcome: PaymentOutcome) -> UpdateOrder:
    """
    Map a payment outcome onto an ``UpdateOrder``.

    - success   -> payment_status paid
    - failure   -> payment_status failed, order left as is
    - cancelled -> order cancelled, payment_status failed
    """
    if isinstance(outcome, PaymentSucceeded):
        update = {"payment_status": PaymentStatus.PAID}
    elif isinstance(outcome, PaymentFailed):
        update = {"payment_status": PaymentStatus.FAILED}
    elif isinstance(outcome, PaymentCancelled):
        update = {"payment_status": PaymentStatus.FAILED, "status": OrderStatus.CANCELLED}
    else:
        raise TypeError(f"Unknown payment outcome: {type(outcome).__name__}")
    return UpdateOrder(order.model_copy(update=update))
