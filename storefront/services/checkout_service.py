# storefront/services/checkout_service.py
import uuid
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.address import AddressModel
from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.payment import PaymentModel
from storefront.domain.enums import OrderStatus, PaymentMethod, PaymentStatus
from storefront.domain.errors import EmptyCart, NotFound, StockChanged, Unavailable, ValidationError
from storefront.domain.identity import Identity, SessionIdentity, UserIdentity, describe
from storefront.domain.money import CURRENCY
from storefront.repos.catalog_repo import CatalogRepo
from storefront.repos.order_repo import OrderRepo
from storefront.services.cart_service import CartService
from storefront.services.notification_service import NotificationService
from storefront.services.order_state_service import OrderStateService
from storefront.services.payment_gateways import PaymentGateway, build_gateways
from storefront.services.stripe_client import StripeClient
from storefront.utils.clock import utcnow
from storefront.utils.logging import get_logger
from storefront.utils.retry import storage_guard

logger = get_logger(__name__)

ORDER_NUMBER_ATTEMPTS = 3


class OrderNumberTaken(Exception):
    """A freshly generated order number collided with an existing order."""


@dataclass(frozen=True)
class CheckoutResult:
    order: OrderModel
    payment: PaymentModel
    redirect_url: str | None = None


def generate_order_number(now=None) -> str:
    now = now or utcnow()
    return f"ORD-{now:%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


class CheckoutService:
    """
    Turns a cart into an order paired with a payment.

    Use Case: checkout.

    1. Re-prices the cart from the live catalog (strict, coupon errors abort)
    2. Reserves stock line by line with a conditional decrement
    3. Snapshots items and addresses into the order, redeems the coupon
    4. Opens the payment through the gateway of the chosen method
    5. Clears the cart

    Steps 2-5 share one transaction: any failure rolls back every stock
    decrement, the coupon use and the order rows. Notifications only go out
    after the commit.

    The order number is drawn before the transaction starts, so a storage
    retry replays the attempt under the same number and the provider hands
    back the session it already opened. A number that collides with an
    existing order is redrawn, at most ORDER_NUMBER_ATTEMPTS times.
    """

    def __init__(
        self,
        db: Session,
        notifier: NotificationService | None = None,
        stripe_client: StripeClient | None = None,
        cart_service: CartService | None = None,
        gateways: dict[PaymentMethod, PaymentGateway] | None = None,
    ):
        self.db = db
        self.orders = OrderRepo(db)
        self.catalog = CatalogRepo(db)
        self.carts = cart_service or CartService(db)
        self.state = OrderStateService(db, notifier)
        self.gateways = gateways or build_gateways(db, self.state, stripe_client)

    def checkout(
        self,
        identity: Identity,
        shipping_address_id: int,
        payment_method: PaymentMethod,
        billing_address_id: int | None = None,
        coupon_code: str | None = None,
        contact_email: str | None = None,
    ) -> CheckoutResult:
        # the number is fixed before the storage retry so a replayed attempt
        # reuses it, and with it the provider idempotency key
        for _ in range(ORDER_NUMBER_ATTEMPTS):
            order_number = generate_order_number()
            try:
                return self._place_order(
                    order_number,
                    identity,
                    shipping_address_id,
                    payment_method,
                    billing_address_id=billing_address_id,
                    coupon_code=coupon_code,
                    contact_email=contact_email,
                )
            except OrderNumberTaken:
                logger.warning(f"Order number {order_number} already taken, generating a new one")

        raise Unavailable("Could not allocate an order number")

    @storage_guard
    def _place_order(
        self,
        order_number: str,
        identity: Identity,
        shipping_address_id: int,
        payment_method: PaymentMethod,
        billing_address_id: int | None = None,
        coupon_code: str | None = None,
        contact_email: str | None = None,
    ) -> CheckoutResult:
        payment_method = PaymentMethod(payment_method)
        contact_email = contact_email.strip() if contact_email else None

        if isinstance(identity, SessionIdentity) and not contact_email:
            raise ValidationError("Guest checkout requires a contact email")

        cart = self.carts.find_cart(identity)
        if cart is None or not cart.items:
            raise EmptyCart("Cart is empty")

        shipping_address = self._owned_address(identity, shipping_address_id)
        billing_address = (
            self._owned_address(identity, billing_address_id)
            if billing_address_id is not None
            else shipping_address
        )

        gateway = self.gateways[payment_method]

        try:
            totals = self.carts.compute_totals(
                cart,
                district=shipping_address.district,
                coupon_code=coupon_code or cart.coupon_code,
                strict=True,
                contact_email=contact_email,
            )

            for line in totals.lines:
                item = line.item
                if not self.catalog.reserve_stock(item.product_id, item.variant_id, item.quantity):
                    raise StockChanged(
                        f"Product {item.product_id} no longer has {item.quantity} in stock"
                    )

            order = self._insert_order(
                OrderModel(
                    order_number=order_number,
                    user_id=identity.user_id if isinstance(identity, UserIdentity) else None,
                    contact_email=contact_email,
                    status=OrderStatus.PENDING,
                    payment_status=PaymentStatus.PENDING,
                    payment_method=payment_method,
                    subtotal=totals.subtotal,
                    shipping_cost=totals.shipping_estimate,
                    discount_amount=totals.discount,
                    tax_amount=totals.tax,
                    total=totals.total,
                    currency=CURRENCY,
                    coupon_code=totals.coupon.coupon_code if totals.coupon else None,
                    shipping_address=shipping_address.snapshot(),
                    billing_address=billing_address.snapshot(),
                    stock_released=False,
                    failed_payment_attempts=0,
                    items=[
                        OrderItemModel(
                            product_id=line.product.id,
                            variant_id=line.variant.id if line.variant is not None else None,
                            product_name=line.product.name,
                            variant_name=line.variant.name if line.variant is not None else None,
                            sku=line.variant.sku if line.variant is not None else line.product.sku,
                            unit_price=line.unit_price,
                            quantity=line.item.quantity,
                            total_price=line.line_total,
                        )
                        for line in totals.lines
                    ],
                )
            )

            if totals.coupon is not None:
                self.carts.coupons.redeem(totals.coupon)

            session = gateway.create_session(order)

            self.carts.clear_cart(cart)
            self.orders.commit()
        except Exception:
            self.orders.rollback()
            self.state.discard_events()
            raise

        self.state.flush_events()

        logger.info(
            f"Checkout for {describe(identity)}: order {order.order_number} "
            f"total {order.total} {order.currency} via {payment_method.value}"
        )
        return CheckoutResult(order=order, payment=session.payment, redirect_url=session.redirect_url)

    def _insert_order(self, order: OrderModel) -> OrderModel:
        try:
            return self.orders.create_order(order)
        except IntegrityError:
            self.orders.rollback()
            if self.orders.get_by_number(order.order_number) is not None:
                raise OrderNumberTaken(order.order_number)
            raise

    def _owned_address(self, identity: Identity, address_id: int) -> AddressModel:
        address = self.catalog.get_address(address_id)
        if address is None:
            raise NotFound(f"Address {address_id} not found")

        match identity:
            case UserIdentity(user_id=user_id):
                owned = address.user_id == user_id
            case SessionIdentity(token=token):
                owned = address.user_id is None and address.session_token == token
            case _:
                owned = False

        if not owned:
            # someone else's address reads the same as a missing one
            raise NotFound(f"Address {address_id} not found")
        return address
