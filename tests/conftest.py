# tests/conftest.py
import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.data import models  # noqa: F401
from storefront.data.database import Base
from storefront.data.models import AddressModel, CouponModel, ProductModel, ProductVariantModel
from storefront.domain.enums import DiscountType
from storefront.domain.errors import Unavailable
from storefront.domain.identity import SessionIdentity, UserIdentity
from storefront.services.cart_service import CartService
from storefront.services.checkout_service import CheckoutService
from storefront.services.order_state_service import OrderStateService
from storefront.services.reconciliation_service import ReconciliationService


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def emit(self, event, payload):
        self.events.append((event, payload))

    def names(self):
        return [event for event, _ in self.events]


class FakeStripeClient:
    """Stands in for StripeClient: hands out session ids, signature 'valid' passes."""

    def __init__(self):
        self.sessions = []
        self.requests = 0
        self.fail = False
        self._by_key = {}

    def create_checkout_session(self, *, order_number, amount_cents, currency, customer_email,
                                success_url, cancel_url, metadata, idempotency_key=None):
        self.requests += 1
        if self.fail:
            raise Unavailable("Payment provider unavailable")
        if idempotency_key in self._by_key:
            return self._by_key[idempotency_key]
        session_id = f"cs_test_{len(self.sessions) + 1}"
        self.sessions.append(
            {
                "id": session_id,
                "order_number": order_number,
                "amount_cents": amount_cents,
                "currency": currency,
                "success_url": success_url,
                "cancel_url": cancel_url,
                "metadata": metadata,
                "idempotency_key": idempotency_key,
            }
        )
        session = {"id": session_id, "url": f"https://checkout.stripe.test/{session_id}"}
        if idempotency_key is not None:
            self._by_key[idempotency_key] = session
        return session

    def parse_event(self, payload, signature):
        if signature != "valid":
            raise ValueError("No signatures found matching the expected signature for payload")
        return json.loads(payload)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(bind=engine, autoflush=True, expire_on_commit=True)
    session = TestingSession()
    yield session
    session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def stripe_client():
    return FakeStripeClient()


@pytest.fixture
def user():
    return UserIdentity(7)


@pytest.fixture
def guest():
    return SessionIdentity("guest-token-1")


#factories
@pytest.fixture
def make_product(db):
    counter = {"n": 0}

    def _make(price="1000.00", stock=10, name=None, is_active=True):
        counter["n"] += 1
        product = ProductModel(
            name=name or f"Product {counter['n']}",
            sku=f"SKU-{counter['n']:04d}",
            price=Decimal(price),
            stock=stock,
            is_active=is_active,
        )
        db.add(product)
        db.commit()
        return product

    return _make


@pytest.fixture
def make_variant(db):
    counter = {"n": 0}

    def _make(product, price=None, stock=5, name="L", is_active=True):
        counter["n"] += 1
        variant = ProductVariantModel(
            product_id=product.id,
            name=name,
            sku=f"{product.sku}-V{counter['n']}",
            price=Decimal(price) if price is not None else None,
            stock=stock,
            is_active=is_active,
        )
        db.add(variant)
        db.commit()
        return variant

    return _make


@pytest.fixture
def make_address(db):
    def _make(user_id=None, district="Dhaka", division="Dhaka", session_token=None):
        address = AddressModel(
            user_id=user_id,
            session_token=session_token,
            full_name="Rahim Uddin",
            phone="01711111111",
            line1="House 5, Road 2",
            area="Mirpur",
            district=district,
            division=division,
            postal_code="1216",
        )
        db.add(address)
        db.commit()
        return address

    return _make


@pytest.fixture
def make_coupon(db):
    def _make(code="SAVE10", discount_type=DiscountType.PERCENTAGE, value="10", **kwargs):
        coupon = CouponModel(
            code=code.upper(),
            discount_type=discount_type,
            value=Decimal(value),
            **kwargs,
        )
        db.add(coupon)
        db.commit()
        return coupon

    return _make


#services
@pytest.fixture
def cart_service(db):
    return CartService(db)


@pytest.fixture
def checkout_service(db, notifier, stripe_client):
    return CheckoutService(db, notifier=notifier, stripe_client=stripe_client)


@pytest.fixture
def state_service(db, notifier):
    return OrderStateService(db, notifier)


@pytest.fixture
def reconciliation_service(db, notifier):
    return ReconciliationService(db, notifier=notifier, max_failures=3)
