# storefront/services/reconciliation_service.py
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.payment import PaymentModel
from storefront.domain.enums import CallbackOutcome, OrderStatus, PaymentStatus
from storefront.domain.errors import DuplicateCallback, InvalidTransition
from storefront.repos.order_repo import OrderRepo
from storefront.repos.payment_repo import PaymentRepo, ProcessedEventRepo
from storefront.services.notification_service import NotificationService
from storefront.services.order_state_service import OrderStateService
from storefront.utils.logging import get_logger
from storefront.utils.retry import storage_guard
from storefront.utils.settings import MAX_PAYMENT_FAILURES

logger = get_logger(__name__)


@dataclass(frozen=True)
class CallbackResult:
    duplicate: bool = False
    ignored: bool = False
    order_number: str | None = None
    order_status: OrderStatus | None = None
    payment_status: PaymentStatus | None = None


def outcome_for_stripe_event(event) -> tuple[CallbackOutcome, str] | None:
    """
    Map a verified Stripe event to (outcome, checkout session id).

    Returns None for event types the pipeline does not act on.
    """
    event_type = event["type"]
    session = event["data"]["object"]

    match event_type:
        case "checkout.session.completed":
            # delayed methods (bank debits) complete unpaid and settle later
            if session["payment_status"] != "paid":
                return None
            return CallbackOutcome.SUCCEEDED, session["id"]
        case "checkout.session.async_payment_succeeded":
            return CallbackOutcome.SUCCEEDED, session["id"]
        case "checkout.session.async_payment_failed" | "checkout.session.expired":
            return CallbackOutcome.FAILED, session["id"]
        case _:
            return None


class ReconciliationService:
    """
    Applies asynchronous payment provider results to orders.

    Every provider event id is applied at most once: the id is inserted into
    processed_events in the same transaction as the status change, so a
    redelivery either finds the row or loses the insert race and becomes a
    no-op. The status change itself goes through the compare-and-set gate,
    which is what settles a callback racing a cancellation.
    """

    def __init__(
        self,
        db: Session,
        notifier: NotificationService | None = None,
        max_failures: int = MAX_PAYMENT_FAILURES,
    ):
        self.db = db
        self.orders = OrderRepo(db)
        self.payments = PaymentRepo(db)
        self.events = ProcessedEventRepo(db)
        self.state = OrderStateService(db, notifier)
        self.max_failures = max_failures

    @storage_guard
    def handle_callback(
        self,
        provider_event_id: str,
        provider_session_id: str,
        outcome: CallbackOutcome,
    ) -> CallbackResult:
        outcome = CallbackOutcome(outcome)

        try:
            if self.events.exists(provider_event_id):
                raise DuplicateCallback(f"Event {provider_event_id} already processed")

            payment = self.payments.get_by_session(provider_session_id)
            if payment is None:
                logger.warning(f"Event {provider_event_id} for unknown session {provider_session_id}, discarded")
                return CallbackResult(ignored=True)

            order = payment.order

            try:
                self._consume(provider_event_id, provider_session_id, outcome)
                self._apply(order, payment, outcome)
                self.orders.commit()
            except InvalidTransition as e:
                self.orders.rollback()
                self.state.discard_events()
                logger.warning(f"Event {provider_event_id} ({outcome.value}) rejected: {e.message}")
                self._record_rejected(provider_event_id, provider_session_id, outcome)
                raise
            except Exception:
                self.orders.rollback()
                self.state.discard_events()
                raise
        except DuplicateCallback as e:
            logger.info(f"{e.message}, skipping")
            return self._current(provider_session_id, duplicate=True)

        self.state.flush_events()

        logger.info(
            f"Event {provider_event_id} applied to order {order.order_number}: "
            f"{order.status.value}/{order.payment_status.value}"
        )
        return CallbackResult(
            order_number=order.order_number,
            order_status=order.status,
            payment_status=order.payment_status,
        )

    def _consume(self, provider_event_id: str, provider_session_id: str, outcome: CallbackOutcome) -> None:
        try:
            self.events.record(provider_event_id, provider_session_id, outcome.value)
        except IntegrityError as e:
            # a concurrent delivery of the same event committed first
            raise DuplicateCallback(f"Event {provider_event_id} recorded by a concurrent delivery") from e

    def _apply(self, order: OrderModel, payment: PaymentModel, outcome: CallbackOutcome) -> None:
        match outcome:
            case CallbackOutcome.SUCCEEDED:
                if payment.status == PaymentStatus.PAID:
                    logger.info(f"Order {order.order_number} already paid")
                else:
                    self.state.transition_payment(order, payment, PaymentStatus.PAID)
                if order.status == OrderStatus.PENDING:
                    self.state.transition_order(order, OrderStatus.CONFIRMED)

            case CallbackOutcome.AUTHORIZED:
                self.state.transition_payment(order, payment, PaymentStatus.AUTHORIZED)

            case CallbackOutcome.FAILED:
                self.state.transition_payment(order, payment, PaymentStatus.FAILED)
                self.orders.increment_failed_attempts(order.id)
                self.db.refresh(order, ["failed_payment_attempts"])

                if order.failed_payment_attempts >= self.max_failures:
                    self.state.cancel(
                        order,
                        reason=f"Payment failed {order.failed_payment_attempts} times",
                    )

    def _record_rejected(self, provider_event_id: str, provider_session_id: str, outcome: CallbackOutcome) -> None:
        #rejected events are still consumed so redelivery stays a no-op
        try:
            self._consume(provider_event_id, provider_session_id, outcome)
            self.orders.commit()
        except DuplicateCallback:
            self.orders.rollback()

    def _current(self, provider_session_id: str, duplicate: bool) -> CallbackResult:
        payment = self.payments.get_by_session(provider_session_id)
        if payment is None:
            return CallbackResult(duplicate=duplicate)
        order = payment.order
        return CallbackResult(
            duplicate=duplicate,
            order_number=order.order_number,
            order_status=order.status,
            payment_status=order.payment_status,
        )
