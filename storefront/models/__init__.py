"""Models package - exports all SQLAlchemy models."""
from storefront.models.app_user import AppUser
from storefront.models.address import Address
from storefront.models.brand import Brand
from storefront.models.product import Product, ProductVariant
from storefront.models.cart_item import CartItem
from storefront.models.coupon import Coupon, normalize_coupon_code
from storefront.models.order_intent import OrderIntent, IntentStatus
from storefront.models.order import Order, OrderItem, OrderStatus

__all__ = [
    'AppUser', 'Address', 'Brand',
    'Product', 'ProductVariant', 'CartItem',
    'Coupon', 'normalize_coupon_code',
    'OrderIntent', 'IntentStatus',
    'Order', 'OrderItem', 'OrderStatus',
]
