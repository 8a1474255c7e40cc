# storefront/domain/state_machine.py
"""
Allowed order and payment status transitions.

PENDING     -> CONFIRMED, CANCELLED
CONFIRMED   -> PROCESSING, CANCELLED
PROCESSING  -> SHIPPED, CANCELLED
SHIPPED     -> DELIVERED
DELIVERED   -> REFUNDED, RETURNED
CANCELLED, REFUNDED, RETURNED are terminal.

Payment status moves loosely alongside the order:

PENDING     -> AUTHORIZED, PAID, FAILED, CANCELLED
AUTHORIZED  -> PAID, FAILED, CANCELLED
PAID        -> REFUNDED, PARTIALLY_REFUNDED
FAILED      -> PENDING (retried attempt on the same record), CANCELLED
PARTIALLY_REFUNDED -> REFUNDED
"""
from storefront.domain.enums import OrderStatus, PaymentStatus
from storefront.domain.errors import InvalidTransition

ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED, OrderStatus.RETURNED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
    OrderStatus.RETURNED: frozenset(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.AUTHORIZED,
        PaymentStatus.PAID,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    }),
    PaymentStatus.AUTHORIZED: frozenset({
        PaymentStatus.PAID,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    }),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING, PaymentStatus.CANCELLED}),
    PaymentStatus.PARTIALLY_REFUNDED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.CANCELLED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}

CANCELLABLE_ORDER_STATUSES = frozenset(
    s for s, targets in ORDER_TRANSITIONS.items() if OrderStatus.CANCELLED in targets
)


def can_transition_order(current, target) -> bool:
    return OrderStatus(target) in ORDER_TRANSITIONS[OrderStatus(current)]


def can_transition_payment(current, target) -> bool:
    return PaymentStatus(target) in PAYMENT_TRANSITIONS[PaymentStatus(current)]


def check_order_transition(current, target) -> None:
    if not can_transition_order(current, target):
        raise InvalidTransition(
            f"Order cannot move from {OrderStatus(current).value} to {OrderStatus(target).value}"
        )


def check_payment_transition(current, target) -> None:
    if not can_transition_payment(current, target):
        raise InvalidTransition(
            f"Payment cannot move from {PaymentStatus(current).value} to {PaymentStatus(target).value}"
        )
