# storefront/services/stripe_client.py
import stripe

from storefront.domain.errors import Unavailable
from storefront.utils.logging import get_logger
from storefront.utils.retry import stripe_retry
from storefront.utils.settings import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET

logger = get_logger(__name__)


class StripeClient:
    """Thin wrapper over the Stripe SDK: Checkout sessions and webhook verification."""

    def __init__(self, api_key: str | None = None, webhook_secret: str | None = None):
        self.api_key = api_key or STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or STRIPE_WEBHOOK_SECRET

    def create_checkout_session(
        self,
        *,
        order_number: str,
        amount_cents: int,
        currency: str,
        customer_email: str | None,
        success_url: str,
        cancel_url: str,
        metadata: dict,
        idempotency_key: str | None = None,
    ) -> dict:
        """
        Open a Checkout session. A repeated ``idempotency_key`` returns the
        session Stripe created for the first request instead of a new one.
        """
        try:
            session = self._create(
                idempotency_key=idempotency_key,
                mode="payment",
                payment_method_types=["card"],
                customer_email=customer_email,
                line_items=[
                    {
                        "price_data": {
                            "currency": currency.lower(),
                            "product_data": {"name": f"Order {order_number}"},
                            "unit_amount": amount_cents,
                        },
                        "quantity": 1,
                    }
                ],
                client_reference_id=order_number,
                metadata=metadata,
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe session for order {order_number} failed: {e}")
            raise Unavailable("Payment provider unavailable") from e

        logger.info(f"Stripe session {session.id} created for order {order_number}")
        return {"id": session.id, "url": session.url}

    @stripe_retry()
    def _create(self, **params):
        return stripe.checkout.Session.create(api_key=self.api_key, **params)

    def parse_event(self, payload: bytes, signature: str):
        """Verify the Stripe-Signature header, raises stripe.SignatureVerificationError or ValueError."""
        return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
