#import all models so SQLAlchemy registers them in Base.metadata

from storefront.data.models.product import ProductModel, ProductVariantModel
from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.coupon import CouponModel
from storefront.data.models.address import AddressModel
from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.payment import PaymentModel
from storefront.data.models.processed_event import ProcessedEventModel

__all__ = [
    "ProductModel",
    "ProductVariantModel",
    "CartModel",
    "CartItemModel",
    "CouponModel",
    "AddressModel",
    "OrderModel",
    "OrderItemModel",
    "PaymentModel",
    "ProcessedEventModel",
]
