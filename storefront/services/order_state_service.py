# storefront/services/order_state_service.py
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from storefront.data.models.order import OrderModel
from storefront.data.models.payment import PaymentModel
from storefront.domain.enums import OrderStatus, PaymentStatus
from storefront.domain.errors import InvalidTransition
from storefront.domain.state_machine import (
    can_transition_payment,
    check_order_transition,
    check_payment_transition,
)
from storefront.repos.catalog_repo import CatalogRepo
from storefront.repos.order_repo import OrderRepo
from storefront.repos.payment_repo import PaymentRepo
from storefront.services.notification_service import (
    ORDER_CANCELLED,
    ORDER_CONFIRMED,
    PAYMENT_FAILED,
    NotificationService,
)
from storefront.utils.clock import utcnow
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class OrderStateService:
    """
    The single gate for order and payment status changes.

    Every transition is checked against the transition table and then
    applied as a compare-and-set on the status the caller observed, so of two
    racing writers (webhook vs. cancellation) the second one matches zero
    rows and gets InvalidTransition instead of overwriting.

    Works inside the caller's transaction and never commits. Notifications
    are buffered and only sent when the caller calls ``flush_events`` after
    its commit.
    """

    def __init__(self, db: Session, notifier: NotificationService | None = None):
        self.db = db
        self.orders = OrderRepo(db)
        self.payments = PaymentRepo(db)
        self.catalog = CatalogRepo(db)
        self.notifier = notifier or NotificationService()
        self._outbox: list[tuple[str, dict]] = []

    def transition_order(self, order: OrderModel, target: OrderStatus) -> None:
        target = OrderStatus(target)
        if target == OrderStatus.CANCELLED:
            self.cancel(order)
            return

        current = order.status
        check_order_transition(current, target)

        self.db.flush()
        if not self.orders.compare_and_set_status(order.id, current, target):
            raise InvalidTransition(
                f"Order {order.order_number} is no longer {current.value}, cannot move to {target.value}"
            )

        set_committed_value(order, "status", target)
        logger.info(f"Order {order.order_number}: {current.value} -> {target.value}")

        if target == OrderStatus.CONFIRMED:
            self._queue(ORDER_CONFIRMED, order)

    def transition_payment(self, order: OrderModel, payment: PaymentModel, target: PaymentStatus) -> None:
        target = PaymentStatus(target)
        current = payment.status
        check_payment_transition(current, target)

        self.db.flush()
        if not self.payments.compare_and_set_status(payment.id, current, target):
            raise InvalidTransition(
                f"Payment of order {order.order_number} is no longer {current.value}, "
                f"cannot move to {target.value}"
            )
        self.orders.mirror_payment_status(order.id, target)

        set_committed_value(payment, "status", target)
        set_committed_value(order, "payment_status", target)
        logger.info(f"Order {order.order_number} payment: {current.value} -> {target.value}")

        if target == PaymentStatus.FAILED:
            self._queue(PAYMENT_FAILED, order)

    def cancel(self, order: OrderModel, reason: str | None = None) -> None:
        current = order.status
        check_order_transition(current, OrderStatus.CANCELLED)

        if order.payment_status == PaymentStatus.PAID:
            raise InvalidTransition(f"Order {order.order_number} is paid, it has to be refunded instead")

        self.db.flush()
        if not self.orders.compare_and_set_cancelled(order.id, current, reason):
            raise InvalidTransition(f"Order {order.order_number} changed concurrently, cannot cancel")

        now = utcnow()
        set_committed_value(order, "status", OrderStatus.CANCELLED)
        set_committed_value(order, "cancellation_reason", reason)
        set_committed_value(order, "cancelled_at", now)
        logger.info(f"Order {order.order_number}: {current.value} -> CANCELLED ({reason})")

        payment = self.payments.get_by_order(order.id)
        if payment is not None and can_transition_payment(payment.status, PaymentStatus.CANCELLED):
            self.transition_payment(order, payment, PaymentStatus.CANCELLED)

        self.release_stock(order)
        self._queue(ORDER_CANCELLED, order)

    def release_stock(self, order: OrderModel) -> bool:
        """Give reserved stock back to the catalog, at most once per order."""
        if not self.orders.claim_stock_release(order.id):
            logger.info(f"Stock of order {order.order_number} already released")
            return False

        for item in order.items:
            self.catalog.release_stock(item.product_id, item.variant_id, item.quantity)

        set_committed_value(order, "stock_released", True)
        logger.info(f"Released stock of order {order.order_number} ({len(order.items)} lines)")
        return True

    #outbox
    def _queue(self, event: str, order: OrderModel) -> None:
        self._outbox.append(
            (
                event,
                {
                    "order_number": order.order_number,
                    "user_id": order.user_id,
                    "contact_email": order.contact_email,
                    "total": str(order.total),
                },
            )
        )

    def flush_events(self) -> None:
        events, self._outbox = self._outbox, []
        for event, payload in events:
            self.notifier.emit(event, payload)

    def discard_events(self) -> None:
        self._outbox = []
