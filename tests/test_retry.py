# tests/test_retry.py
import pytest
from sqlalchemy.exc import OperationalError, ProgrammingError

from storefront.domain.enums import PaymentMethod
from storefront.domain.errors import EmptyCart, Unavailable


def _connection_dropped(statement="SELECT 1"):
    return OperationalError(statement, {}, Exception("server closed the connection unexpectedly"))


def test_operational_error_retried_once_then_unavailable(checkout_service, user, monkeypatch):
    calls = []

    def find_cart(identity):
        calls.append(identity)
        raise _connection_dropped()

    monkeypatch.setattr(checkout_service.carts, "find_cart", find_cart)

    with pytest.raises(Unavailable) as excinfo:
        checkout_service.checkout(user, 1, PaymentMethod.CASH_ON_DELIVERY)

    assert len(calls) == 2
    assert excinfo.value.code == "UNAVAILABLE"
    assert excinfo.value.status_code == 503
    assert isinstance(excinfo.value.__cause__, OperationalError)


def test_transient_error_is_invisible_to_the_caller(cart_service, user, make_product, monkeypatch):
    product = make_product(price="100.00")
    cart_service.add_item(user, product.id, None, 2)

    find_cart = cart_service.repo.find_cart
    calls = []

    def flaky_find_cart(identity):
        calls.append(identity)
        if len(calls) == 1:
            raise _connection_dropped()
        return find_cart(identity)

    monkeypatch.setattr(cart_service.repo, "find_cart", flaky_find_cart)

    view = cart_service.get_cart(user)

    assert len(calls) == 2
    assert view["items"][0]["quantity"] == 2


def test_other_storage_errors_are_not_retried(cart_service, user, monkeypatch):
    calls = []

    def broken_find_cart(identity):
        calls.append(identity)
        raise ProgrammingError("SELECT * FROM carts", {}, Exception("relation \"carts\" does not exist"))

    monkeypatch.setattr(cart_service.repo, "find_cart", broken_find_cart)

    with pytest.raises(Unavailable):
        cart_service.get_cart(user)
    assert len(calls) == 1


def test_domain_errors_pass_through_untouched(checkout_service, user):
    # EmptyCart is not a storage failure, so nothing is retried or wrapped
    with pytest.raises(EmptyCart):
        checkout_service.checkout(user, 1, PaymentMethod.CASH_ON_DELIVERY)
