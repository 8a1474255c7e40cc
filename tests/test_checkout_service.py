# tests/test_checkout_service.py
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from storefront.data.models import CouponModel, OrderModel, PaymentModel
from storefront.domain.enums import DiscountType, OrderStatus, PaymentMethod, PaymentStatus
from storefront.domain.errors import (
    CouponExhausted,
    CouponExpired,
    CouponPerUserLimitReached,
    EmptyCart,
    NotFound,
    PaymentMethodUnavailable,
    StockChanged,
    Unavailable,
    ValidationError,
)
from storefront.domain.identity import SessionIdentity, UserIdentity
from storefront.services import checkout_service as checkout_module
from storefront.services.checkout_service import CheckoutService
from storefront.services.notification_service import ORDER_CONFIRMED
from storefront.services.payment_gateways import CashOnDeliveryGateway, HostedCheckoutGateway
from storefront.utils.clock import utcnow


class ExplodingGateway:
    method = PaymentMethod.HOSTED_CHECKOUT

    def create_session(self, order):
        raise RuntimeError("provider crashed mid-checkout")


def _count(db, model):
    return db.query(model).count()


def test_hosted_checkout_creates_pending_order(db, checkout_service, stripe_client, cart_service, user,
                                               make_product, make_address):
    product = make_product(price="1000.00", stock=5)
    address = make_address(user_id=user.user_id, district="Dhaka")
    cart_service.add_item(user, product.id, None, 2)

    result = checkout_service.checkout(user, address.id, PaymentMethod.HOSTED_CHECKOUT)

    order = result.order
    assert order.status == OrderStatus.PENDING
    assert order.payment_status == PaymentStatus.PENDING
    assert order.order_number.startswith("ORD-")
    assert order.total == order.subtotal - order.discount_amount + order.shipping_cost + order.tax_amount
    assert order.subtotal == sum(item.total_price for item in order.items)

    assert result.redirect_url == "https://checkout.stripe.test/cs_test_1"
    assert result.payment.provider_session_id == "cs_test_1"
    assert result.payment.currency == "USD"
    # 2000 BDT * 0.0091
    assert stripe_client.sessions[0]["amount_cents"] == 1820
    assert stripe_client.sessions[0]["metadata"]["order_number"] == order.order_number

    db.refresh(product)
    assert product.stock == 3
    assert cart_service.get_cart(user)["items"] == []


def test_save10_checkout_totals(db, checkout_service, cart_service, user, make_product, make_address, make_coupon):
    product = make_product(price="1000.00", stock=10)
    coupon = make_coupon("SAVE10", value="10", min_order_amount=Decimal("1500"))
    address = make_address(user_id=user.user_id, district="Khulna", division="Khulna")
    cart_service.add_item(user, product.id, None, 2)
    cart_service.apply_coupon(user, "SAVE10")

    order = checkout_service.checkout(user, address.id, PaymentMethod.CASH_ON_DELIVERY).order

    assert order.subtotal == Decimal("2000.00")
    assert order.discount_amount == Decimal("200.00")
    assert order.shipping_cost == Decimal("0.00")
    assert order.total == Decimal("1800.00")
    assert order.coupon_code == "SAVE10"

    db.refresh(coupon)
    assert coupon.used_count == 1


def test_shipping_uses_address_district(checkout_service, cart_service, user, make_product, make_address):
    product = make_product(price="500.00")
    address = make_address(user_id=user.user_id, district="Sylhet", division="Sylhet")
    cart_service.add_item(user, product.id, None, 1)

    order = checkout_service.checkout(user, address.id, PaymentMethod.CASH_ON_DELIVERY).order
    assert order.shipping_cost == Decimal("120.00")
    assert order.total == Decimal("620.00")


def test_cod_confirms_order_and_notifies_after_commit(checkout_service, notifier, cart_service, user,
                                                      make_product, make_address):
    product = make_product(price="500.00")
    address = make_address(user_id=user.user_id)
    cart_service.add_item(user, product.id, None, 1)

    result = checkout_service.checkout(user, address.id, PaymentMethod.CASH_ON_DELIVERY)

    assert result.order.status == OrderStatus.CONFIRMED
    assert result.payment.status == PaymentStatus.PENDING
    assert result.payment.currency == "BDT"
    assert result.payment.provider_session_id is None
    assert result.redirect_url is None
    assert notifier.names() == [ORDER_CONFIRMED]


def test_empty_cart(checkout_service, user, make_address):
    address = make_address(user_id=user.user_id)
    with pytest.raises(EmptyCart):
        checkout_service.checkout(user, address.id, PaymentMethod.CASH_ON_DELIVERY)


def test_guest_needs_email(checkout_service, cart_service, guest, make_product, make_address):
    product = make_product()
    address = make_address(session_token=guest.token)
    cart_service.add_item(guest, product.id, None, 1)

    with pytest.raises(ValidationError):
        checkout_service.checkout(guest, address.id, PaymentMethod.CASH_ON_DELIVERY)

    order = checkout_service.checkout(
        guest, address.id, PaymentMethod.CASH_ON_DELIVERY, contact_email="buyer@example.com"
    ).order
    assert order.user_id is None
    assert order.contact_email == "buyer@example.com"


def test_address_must_belong_to_buyer(checkout_service, cart_service, user, make_product, make_address):
    product = make_product()
    someone_else = make_address(user_id=99)
    cart_service.add_item(user, product.id, None, 1)

    with pytest.raises(NotFound):
        checkout_service.checkout(user, someone_else.id, PaymentMethod.CASH_ON_DELIVERY)


def test_invalid_coupon_argument_aborts(db, checkout_service, cart_service, user, make_product, make_address,
                                        make_coupon):
    product = make_product(stock=5)
    make_coupon("OLD", expires_at=utcnow() - timedelta(days=1))
    address = make_address(user_id=user.user_id)
    cart_service.add_item(user, product.id, None, 1)

    with pytest.raises(CouponExpired):
        checkout_service.checkout(user, address.id, PaymentMethod.CASH_ON_DELIVERY, coupon_code="old")

    assert _count(db, OrderModel) == 0
    db.refresh(product)
    assert product.stock == 5


def test_last_unit_goes_to_one_buyer(db, checkout_service, cart_service, make_product, make_address):
    product = make_product(stock=1)
    alice, bob = UserIdentity(1), UserIdentity(2)
    alice_address = make_address(user_id=1)
    bob_address = make_address(user_id=2)
    # both carts were filled while the unit was still there
    cart_service.add_item(alice, product.id, None, 1)
    cart_service.add_item(bob, product.id, None, 1)

    checkout_service.checkout(alice, alice_address.id, PaymentMethod.CASH_ON_DELIVERY)
    with pytest.raises(StockChanged):
        checkout_service.checkout(bob, bob_address.id, PaymentMethod.CASH_ON_DELIVERY)

    db.refresh(product)
    assert product.stock == 0
    assert _count(db, OrderModel) == 1
    assert len(cart_service.get_cart(bob)["items"]) == 1


def test_checkout_is_atomic_under_gateway_fault(db, notifier, cart_service, user, make_product, make_address,
                                                 make_coupon):
    product = make_product(price="1000.00", stock=5)
    coupon = make_coupon("SAVE10", usage_limit=5)
    address = make_address(user_id=user.user_id)
    cart_service.add_item(user, product.id, None, 2)
    cart_service.apply_coupon(user, "SAVE10")

    service = CheckoutService(
        db,
        notifier=notifier,
        gateways={PaymentMethod.HOSTED_CHECKOUT: ExplodingGateway()},
    )
    with pytest.raises(RuntimeError):
        service.checkout(user, address.id, PaymentMethod.HOSTED_CHECKOUT)

    db.refresh(product)
    db.refresh(coupon)
    assert product.stock == 5
    assert coupon.used_count == 0
    assert _count(db, OrderModel) == 0
    assert _count(db, PaymentModel) == 0
    assert len(cart_service.get_cart(user)["items"]) == 1
    assert notifier.events == []


def test_cod_above_maximum_leaves_nothing_behind(db, notifier, stripe_client, cart_service, user, make_product,
                                                 make_address):
    product = make_product(price="30000.00", stock=5)
    address = make_address(user_id=user.user_id)
    cart_service.add_item(user, product.id, None, 2)

    service = CheckoutService(db, notifier=notifier, stripe_client=stripe_client)
    service.gateways[PaymentMethod.CASH_ON_DELIVERY] = CashOnDeliveryGateway(
        db, service.state, enabled=True, max_total=Decimal("50000")
    )

    with pytest.raises(PaymentMethodUnavailable):
        service.checkout(user, address.id, PaymentMethod.CASH_ON_DELIVERY)

    db.refresh(product)
    assert product.stock == 5
    assert _count(db, OrderModel) == 0


def test_cod_disabled(db, notifier, cart_service, user, make_product, make_address):
    product = make_product()
    address = make_address(user_id=user.user_id)
    cart_service.add_item(user, product.id, None, 1)

    service = CheckoutService(db, notifier=notifier)
    service.gateways[PaymentMethod.CASH_ON_DELIVERY] = CashOnDeliveryGateway(db, service.state, enabled=False)

    with pytest.raises(PaymentMethodUnavailable):
        service.checkout(user, address.id, PaymentMethod.CASH_ON_DELIVERY)


def test_hosted_limit(db, notifier, stripe_client, cart_service, user, make_product, make_address):
    product = make_product(price="1000.00")
    address = make_address(user_id=user.user_id)
    cart_service.add_item(user, product.id, None, 1)

    service = CheckoutService(db, notifier=notifier, stripe_client=stripe_client)
    service.gateways[PaymentMethod.HOSTED_CHECKOUT] = HostedCheckoutGateway(
        db, service.state, client=stripe_client, max_total=Decimal("500")
    )

    with pytest.raises(PaymentMethodUnavailable):
        service.checkout(user, address.id, PaymentMethod.HOSTED_CHECKOUT)
    assert stripe_client.sessions == []


def test_order_snapshot_survives_catalog_edits(db, checkout_service, cart_service, user, make_product,
                                               make_address):
    product = make_product(price="750.00", name="Nakshi Kantha")
    address = make_address(user_id=user.user_id)
    cart_service.add_item(user, product.id, None, 1)
    order = checkout_service.checkout(user, address.id, PaymentMethod.CASH_ON_DELIVERY).order

    product.price = Decimal("999.00")
    product.name = "Renamed"
    address.line1 = "Moved away"
    db.commit()

    db.refresh(order)
    item = order.items[0]
    assert item.unit_price == Decimal("750.00")
    assert item.product_name == "Nakshi Kantha"
    assert order.shipping_address["line1"] == "House 5, Road 2"


def test_coupon_exhausted_by_earlier_order_aborts_checkout(db, checkout_service, cart_service, make_product,
                                                           make_address, make_coupon):
    product = make_product(price="500.00", stock=10)
    make_coupon("ONCE", discount_type=DiscountType.FIXED, value="50", usage_limit=1)
    first, second = UserIdentity(1), UserIdentity(2)
    first_address = make_address(user_id=1)
    second_address = make_address(user_id=2)
    cart_service.add_item(first, product.id, None, 1)
    cart_service.add_item(second, product.id, None, 1)
    cart_service.apply_coupon(first, "ONCE")
    cart_service.apply_coupon(second, "ONCE")

    checkout_service.checkout(first, first_address.id, PaymentMethod.CASH_ON_DELIVERY)

    with pytest.raises(CouponExhausted):
        checkout_service.checkout(second, second_address.id, PaymentMethod.CASH_ON_DELIVERY)

    assert db.query(CouponModel).filter_by(code="ONCE").one().used_count == 1


def test_guest_cannot_use_another_guests_address(db, checkout_service, cart_service, guest, make_product,
                                                 make_address):
    product = make_product(stock=5)
    theirs = make_address(session_token="someone-else")
    cart_service.add_item(guest, product.id, None, 1)

    with pytest.raises(NotFound):
        checkout_service.checkout(
            guest, theirs.id, PaymentMethod.CASH_ON_DELIVERY, contact_email="buyer@example.com"
        )
    # a guest address is not anyone's account address either
    cart_service.add_item(UserIdentity(1), product.id, None, 1)
    with pytest.raises(NotFound):
        checkout_service.checkout(UserIdentity(1), theirs.id, PaymentMethod.CASH_ON_DELIVERY)

    assert _count(db, OrderModel) == 0
    db.refresh(product)
    assert product.stock == 5


def test_per_user_coupon_limit_at_checkout(db, checkout_service, cart_service, user, make_product, make_address,
                                           make_coupon):
    product = make_product(price="1000.00", stock=10)
    make_coupon("WELCOME", discount_type=DiscountType.FIXED, value="100", per_user_limit=1)
    address = make_address(user_id=user.user_id)

    cart_service.add_item(user, product.id, None, 1)
    first = checkout_service.checkout(user, address.id, PaymentMethod.CASH_ON_DELIVERY, coupon_code="WELCOME")
    assert first.order.discount_amount == Decimal("100.00")

    cart_service.add_item(user, product.id, None, 1)
    with pytest.raises(CouponPerUserLimitReached):
        checkout_service.checkout(user, address.id, PaymentMethod.CASH_ON_DELIVERY, coupon_code="WELCOME")

    assert _count(db, OrderModel) == 1
    db.refresh(product)
    assert product.stock == 9

    # another customer still gets it
    other = UserIdentity(8)
    cart_service.add_item(other, product.id, None, 1)
    second = checkout_service.checkout(
        other, make_address(user_id=8).id, PaymentMethod.CASH_ON_DELIVERY, coupon_code="WELCOME"
    )
    assert second.order.coupon_code == "WELCOME"


def test_per_user_coupon_limit_for_guests_goes_by_email(checkout_service, cart_service, make_product,
                                                        make_address, make_coupon):
    product = make_product(price="1000.00", stock=10)
    make_coupon("WELCOME", discount_type=DiscountType.FIXED, value="100", per_user_limit=1)

    first_device, second_device = SessionIdentity("phone"), SessionIdentity("laptop")
    cart_service.add_item(first_device, product.id, None, 1)
    checkout_service.checkout(
        first_device,
        make_address(session_token="phone").id,
        PaymentMethod.CASH_ON_DELIVERY,
        coupon_code="WELCOME",
        contact_email="buyer@example.com",
    )

    cart_service.add_item(second_device, product.id, None, 1)
    with pytest.raises(CouponPerUserLimitReached):
        checkout_service.checkout(
            second_device,
            make_address(session_token="laptop").id,
            PaymentMethod.CASH_ON_DELIVERY,
            coupon_code="WELCOME",
            contact_email="Buyer@Example.com",
        )


def test_storage_retry_reuses_the_provider_session(db, checkout_service, stripe_client, cart_service, user,
                                                   make_product, make_address, monkeypatch):
    product = make_product(price="1000.00", stock=5)
    address = make_address(user_id=user.user_id)
    cart_service.add_item(user, product.id, None, 2)

    clear_cart = checkout_service.carts.clear_cart
    dropped = []

    def clear_cart_once_dropped(cart):
        if not dropped:
            dropped.append(cart.id)
            raise OperationalError("DELETE FROM cart_items", {}, Exception("connection reset by peer"))
        clear_cart(cart)

    monkeypatch.setattr(checkout_service.carts, "clear_cart", clear_cart_once_dropped)

    result = checkout_service.checkout(user, address.id, PaymentMethod.HOSTED_CHECKOUT)

    assert dropped
    assert stripe_client.requests == 2
    assert len(stripe_client.sessions) == 1
    assert stripe_client.sessions[0]["idempotency_key"] == f"checkout-{result.order.order_number}"
    assert result.payment.provider_session_id == "cs_test_1"
    assert _count(db, OrderModel) == 1
    assert _count(db, PaymentModel) == 1
    db.refresh(product)
    assert product.stock == 3


def test_order_number_collision_draws_a_new_number(db, checkout_service, cart_service, user, make_product,
                                                   make_address, monkeypatch):
    product = make_product(stock=5)
    address = make_address(user_id=user.user_id)
    cart_service.add_item(user, product.id, None, 1)
    taken = checkout_service.checkout(user, address.id, PaymentMethod.CASH_ON_DELIVERY).order.order_number

    numbers = iter([taken, "ORD-20260101-0000FEED"])
    monkeypatch.setattr(checkout_module, "generate_order_number", lambda: next(numbers))
    cart_service.add_item(user, product.id, None, 1)

    order = checkout_service.checkout(user, address.id, PaymentMethod.CASH_ON_DELIVERY).order

    assert order.order_number == "ORD-20260101-0000FEED"
    assert _count(db, OrderModel) == 2
    db.refresh(product)
    assert product.stock == 3


def test_order_number_collisions_give_up(db, checkout_service, cart_service, user, make_product, make_address,
                                         monkeypatch):
    product = make_product(stock=5)
    address = make_address(user_id=user.user_id)
    cart_service.add_item(user, product.id, None, 1)
    taken = checkout_service.checkout(user, address.id, PaymentMethod.CASH_ON_DELIVERY).order.order_number

    monkeypatch.setattr(checkout_module, "generate_order_number", lambda: taken)
    cart_service.add_item(user, product.id, None, 1)

    with pytest.raises(Unavailable):
        checkout_service.checkout(user, address.id, PaymentMethod.CASH_ON_DELIVERY)

    assert _count(db, OrderModel) == 1
    db.refresh(product)
    assert product.stock == 4
    assert len(cart_service.get_cart(user)["items"]) == 1
