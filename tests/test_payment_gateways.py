# tests/test_payment_gateways.py
from decimal import Decimal

import pytest

from storefront.domain.enums import PaymentMethod
from storefront.domain.errors import PaymentMethodUnavailable
from storefront.services.payment_gateways import (
    CashOnDeliveryGateway,
    HostedCheckoutGateway,
    build_gateways,
)


class _Order:
    def __init__(self, total, order_number="ORD-20260101-ABCDEF12"):
        self.id = 1
        self.total = Decimal(total)
        self.order_number = order_number
        self.contact_email = "buyer@gmail.com"


def test_build_gateways_covers_every_method(db, state_service, stripe_client):
    gateways = build_gateways(db, state_service, stripe_client)
    assert set(gateways) == set(PaymentMethod)
    assert isinstance(gateways[PaymentMethod.HOSTED_CHECKOUT], HostedCheckoutGateway)
    assert isinstance(gateways[PaymentMethod.CASH_ON_DELIVERY], CashOnDeliveryGateway)


@pytest.mark.parametrize("total", ["0", "40", "500000.01"])
def test_hosted_rejects_out_of_range_totals(db, state_service, stripe_client, total):
    gateway = HostedCheckoutGateway(db, state_service, client=stripe_client, max_total=Decimal("500000"))
    with pytest.raises(PaymentMethodUnavailable):
        gateway.create_session(_Order(total))
    assert stripe_client.sessions == []


def test_hosted_session_urls(db, state_service, stripe_client):
    gateway = HostedCheckoutGateway(
        db, state_service, client=stripe_client, frontend_url="https://shop.example.bd/"
    )
    gateway._open_provider_session(_Order("1800"), 1638, "checkout-ORD-20260101-ABCDEF12")

    sent = stripe_client.sessions[0]
    assert sent["success_url"] == (
        "https://shop.example.bd/checkout/payment/success"
        "?session_id={CHECKOUT_SESSION_ID}&order=ORD-20260101-ABCDEF12"
    )
    assert sent["cancel_url"].startswith("https://shop.example.bd/checkout/payment/cancel")
    assert sent["currency"] == "USD"
    assert sent["idempotency_key"] == "checkout-ORD-20260101-ABCDEF12"


def test_cod_minimum(db, state_service):
    gateway = CashOnDeliveryGateway(db, state_service, min_total=Decimal("100"))
    with pytest.raises(PaymentMethodUnavailable):
        gateway.create_session(_Order("99.99"))
