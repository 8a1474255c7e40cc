# storefront/services/payment_gateways.py
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.payment import PaymentModel
from storefront.domain.enums import OrderStatus, PaymentMethod, PaymentStatus
from storefront.domain.errors import InvalidTransition, NotFound, PaymentMethodUnavailable
from storefront.domain.money import CURRENCY, ZERO, bdt_to_usd_cents, format_bdt, to_money
from storefront.repos.payment_repo import PaymentRepo
from storefront.services.order_state_service import OrderStateService
from storefront.services.stripe_client import StripeClient
from storefront.utils.logging import get_logger
from storefront.utils.settings import (
    BDT_TO_USD_RATE,
    COD_ENABLED,
    COD_MAX_TOTAL,
    COD_MIN_TOTAL,
    FRONTEND_URL,
    HOSTED_CHECKOUT_MAX_TOTAL,
)

logger = get_logger(__name__)

SETTLEMENT_CURRENCY = "USD"
#Stripe refuses card charges below 0.50 USD
MIN_CHARGE_CENTS = 50


@dataclass(frozen=True)
class PaymentSession:
    payment: PaymentModel
    redirect_url: str | None = None


class PaymentGateway(Protocol):
    method: PaymentMethod

    def create_session(self, order: OrderModel) -> PaymentSession:
        ...


class HostedCheckoutGateway:
    """
    Stripe Checkout. The customer is redirected to the provider, the result
    arrives later as a webhook, so this gateway never marks anything paid.
    """

    method = PaymentMethod.HOSTED_CHECKOUT

    def __init__(
        self,
        db: Session,
        state: OrderStateService,
        client: StripeClient | None = None,
        exchange_rate: Decimal = BDT_TO_USD_RATE,
        max_total: Decimal = HOSTED_CHECKOUT_MAX_TOTAL,
        frontend_url: str = FRONTEND_URL,
    ):
        self.payments = PaymentRepo(db)
        self.state = state
        self.client = client or StripeClient()
        self.exchange_rate = Decimal(exchange_rate)
        self.max_total = Decimal(max_total)
        self.frontend_url = frontend_url.rstrip("/")

    def create_session(self, order: OrderModel) -> PaymentSession:
        amount_cents = self._validate(order)
        provider = self._open_provider_session(order, amount_cents, f"checkout-{order.order_number}")

        payment = self.payments.create_payment(
            PaymentModel(
                order_id=order.id,
                method=self.method,
                status=PaymentStatus.PENDING,
                provider_session_id=provider["id"],
                amount=Decimal(amount_cents) / 100,
                currency=SETTLEMENT_CURRENCY,
                exchange_rate=self.exchange_rate,
            )
        )

        logger.info(
            f"Hosted checkout for order {order.order_number}: {format_bdt(order.total)} "
            f"charged as {amount_cents} USD cents"
        )
        return PaymentSession(payment=payment, redirect_url=provider["url"])

    def retry_session(self, order: OrderModel) -> PaymentSession:
        """Open a fresh provider session on the same Payment row after a failure."""
        if order.status != OrderStatus.PENDING:
            raise InvalidTransition(f"Order {order.order_number} is {order.status.value}, payment cannot be retried")

        payment = self.payments.get_by_order(order.id)
        if payment is None or payment.method != self.method:
            raise NotFound(f"No hosted payment for order {order.order_number}")

        amount_cents = self._validate(order)
        self.state.transition_payment(order, payment, PaymentStatus.PENDING)
        provider = self._open_provider_session(
            order,
            amount_cents,
            f"checkout-{order.order_number}-retry-{order.failed_payment_attempts}",
        )

        payment.provider_session_id = provider["id"]
        payment.amount = Decimal(amount_cents) / 100
        payment.exchange_rate = self.exchange_rate

        logger.info(f"Payment retry for order {order.order_number}, new session {provider['id']}")
        return PaymentSession(payment=payment, redirect_url=provider["url"])

    def _validate(self, order: OrderModel) -> int:
        total = to_money(order.total)
        if total <= ZERO:
            raise PaymentMethodUnavailable("Nothing to pay online for a zero total")
        if total > self.max_total:
            raise PaymentMethodUnavailable(f"Online payment is limited to {format_bdt(self.max_total)}")

        amount_cents = bdt_to_usd_cents(total, self.exchange_rate)
        if amount_cents < MIN_CHARGE_CENTS:
            raise PaymentMethodUnavailable("Order total is below the online payment minimum")
        return amount_cents

    def _open_provider_session(self, order: OrderModel, amount_cents: int, idempotency_key: str) -> dict:
        # a storage retry of the same checkout gets the same session back
        return self.client.create_checkout_session(
            idempotency_key=idempotency_key,
            order_number=order.order_number,
            amount_cents=amount_cents,
            currency=SETTLEMENT_CURRENCY,
            customer_email=order.contact_email,
            success_url=(
                f"{self.frontend_url}/checkout/payment/success"
                f"?session_id={{CHECKOUT_SESSION_ID}}&order={order.order_number}"
            ),
            cancel_url=f"{self.frontend_url}/checkout/payment/cancel?order={order.order_number}",
            metadata={
                "order_number": order.order_number,
                "total_bdt": str(order.total),
                "currency": CURRENCY,
            },
        )


class CashOnDeliveryGateway:
    """
    Cash collected by the courier. The order is confirmed right away and the
    payment stays PENDING until collection is reported out of band.
    """

    method = PaymentMethod.CASH_ON_DELIVERY

    def __init__(
        self,
        db: Session,
        state: OrderStateService,
        enabled: bool = COD_ENABLED,
        min_total: Decimal = COD_MIN_TOTAL,
        max_total: Decimal = COD_MAX_TOTAL,
    ):
        self.payments = PaymentRepo(db)
        self.state = state
        self.enabled = enabled
        self.min_total = Decimal(min_total)
        self.max_total = Decimal(max_total)

    def create_session(self, order: OrderModel) -> PaymentSession:
        total = to_money(order.total)

        if not self.enabled:
            raise PaymentMethodUnavailable("Cash on delivery is disabled")
        if total < self.min_total:
            raise PaymentMethodUnavailable(f"Cash on delivery requires at least {format_bdt(self.min_total)}")
        if total > self.max_total:
            raise PaymentMethodUnavailable(f"Cash on delivery is limited to {format_bdt(self.max_total)}")

        payment = self.payments.create_payment(
            PaymentModel(
                order_id=order.id,
                method=self.method,
                status=PaymentStatus.PENDING,
                amount=total,
                currency=CURRENCY,
            )
        )

        self.state.transition_order(order, OrderStatus.CONFIRMED)
        return PaymentSession(payment=payment)


def build_gateways(
    db: Session,
    state: OrderStateService,
    stripe_client: StripeClient | None = None,
) -> dict[PaymentMethod, PaymentGateway]:
    gateways: dict[PaymentMethod, PaymentGateway] = {}
    for method in PaymentMethod:
        match method:
            case PaymentMethod.HOSTED_CHECKOUT:
                gateways[method] = HostedCheckoutGateway(db, state, client=stripe_client)
            case PaymentMethod.CASH_ON_DELIVERY:
                gateways[method] = CashOnDeliveryGateway(db, state)
    return gateways
