# storefront/services/order_service.py
from typing import Any, Dict

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.domain.enums import OrderStatus, PaymentMethod, PaymentStatus
from storefront.domain.errors import Forbidden, NotFound, ValidationError
from storefront.domain.identity import Identity, SessionIdentity, UserIdentity, describe
from storefront.repos.order_repo import OrderRepo
from storefront.repos.payment_repo import PaymentRepo
from storefront.services.notification_service import NotificationService
from storefront.services.order_state_service import OrderStateService
from storefront.services.payment_gateways import HostedCheckoutGateway
from storefront.services.stripe_client import StripeClient
from storefront.utils.logging import get_logger
from storefront.utils.retry import storage_guard

logger = get_logger(__name__)


def order_view(order: OrderModel, redirect_url: str | None = None) -> Dict[str, Any]:
    return {
        "order_number": order.order_number,
        "user_id": order.user_id,
        "contact_email": order.contact_email,
        "status": order.status,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "subtotal": order.subtotal,
        "shipping_cost": order.shipping_cost,
        "discount_amount": order.discount_amount,
        "tax_amount": order.tax_amount,
        "total": order.total,
        "currency": order.currency,
        "coupon_code": order.coupon_code,
        "shipping_address": order.shipping_address,
        "billing_address": order.billing_address,
        "items": [
            {
                "product_id": item.product_id,
                "variant_id": item.variant_id,
                "product_name": item.product_name,
                "variant_name": item.variant_name,
                "sku": item.sku,
                "unit_price": item.unit_price,
                "quantity": item.quantity,
                "total_price": item.total_price,
            }
            for item in order.items
        ],
        "failed_payment_attempts": order.failed_payment_attempts,
        "cancellation_reason": order.cancellation_reason,
        "cancelled_at": order.cancelled_at,
        "created_at": order.created_at,
        "redirect_url": redirect_url,
    }


class OrderService:
    """
    Order queries and the commands that follow checkout: customer
    cancellation, a new payment attempt after a failure, and back-office
    status updates. Status changes all go through OrderStateService.
    """

    def __init__(
        self,
        db: Session,
        notifier: NotificationService | None = None,
        stripe_client: StripeClient | None = None,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.payments = PaymentRepo(db)
        self.state = OrderStateService(db, notifier)
        self.stripe_client = stripe_client

    #queries
    @storage_guard
    def get_order(self, identity: Identity, order_number: str, email: str | None = None) -> Dict[str, Any]:
        return order_view(self._owned(identity, order_number, email))

    @storage_guard
    def lookup_guest(self, order_number: str, email: str) -> Dict[str, Any]:
        if not order_number or not email:
            raise ValidationError("Order number and email are required")

        order = self.repo.find_for_guest(order_number.strip(), email)
        if order is None:
            raise NotFound(f"Order {order_number} not found")
        return order_view(order)

    #commands
    @storage_guard
    def cancel_order(
        self,
        identity: Identity,
        order_number: str,
        reason: str | None = None,
        email: str | None = None,
    ) -> Dict[str, Any]:
        order = self._owned(identity, order_number, email)

        try:
            self.state.cancel(order, reason=reason or "Cancelled by customer")
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            self.state.discard_events()
            raise

        self.state.flush_events()
        logger.info(f"Order {order_number} cancelled by {describe(identity)}")
        return order_view(order)

    @storage_guard
    def retry_payment(self, identity: Identity, order_number: str, email: str | None = None) -> Dict[str, Any]:
        order = self._owned(identity, order_number, email)
        if order.payment_method != PaymentMethod.HOSTED_CHECKOUT:
            raise ValidationError(f"Order {order_number} is not paid online")

        gateway = HostedCheckoutGateway(self.db, self.state, client=self.stripe_client)

        try:
            session = gateway.retry_session(order)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            self.state.discard_events()
            raise

        self.state.flush_events()
        return order_view(order, redirect_url=session.redirect_url)

    @storage_guard
    def update_status(self, order_number: str, status: OrderStatus, reason: str | None = None) -> Dict[str, Any]:
        order = self._get(order_number)
        target = OrderStatus(status)

        try:
            if target == OrderStatus.CANCELLED:
                self.state.cancel(order, reason=reason or "Cancelled by staff")
            else:
                self.state.transition_order(order, target)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            self.state.discard_events()
            raise

        self.state.flush_events()
        logger.info(f"Admin moved order {order_number} to {target.value}")
        return order_view(order)

    @storage_guard
    def update_payment_status(self, order_number: str, status: PaymentStatus) -> Dict[str, Any]:
        order = self._get(order_number)
        payment = self.payments.get_by_order(order.id)
        if payment is None:
            raise NotFound(f"No payment for order {order_number}")

        target = PaymentStatus(status)

        try:
            self.state.transition_payment(order, payment, target)
            # cash collected on a still pending order settles it like a provider callback
            if target == PaymentStatus.PAID and order.status == OrderStatus.PENDING:
                self.state.transition_order(order, OrderStatus.CONFIRMED)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            self.state.discard_events()
            raise

        self.state.flush_events()
        logger.info(f"Admin moved payment of order {order_number} to {target.value}")
        return order_view(order)

    #helpers
    def _get(self, order_number: str) -> OrderModel:
        order = self.repo.get_by_number(order_number)
        if order is None:
            raise NotFound(f"Order {order_number} not found")
        return order

    def _owned(self, identity: Identity, order_number: str, email: str | None) -> OrderModel:
        order = self._get(order_number)

        match identity:
            case UserIdentity(user_id=user_id) if order.user_id == user_id:
                return order
            case SessionIdentity() if (
                order.user_id is None
                and email
                and order.contact_email
                and order.contact_email.lower() == email.strip().lower()
            ):
                return order

        raise Forbidden(f"No access to order {order_number}")
