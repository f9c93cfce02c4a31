"""Order and order item models."""
import enum
from sqlalchemy import Column, BigInteger, String, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntegerPK


class OrderStatus(str, enum.Enum):
    """Fulfilment status of a brand order."""
    PENDING = 'pending'
    PROCESSING = 'processing'
    SHIPPED = 'shipped'
    DELIVERED = 'delivered'
    CANCELLED = 'cancelled'


class Order(Base):
    """One brand's share of a checkout. Amounts in paise."""

    __tablename__ = 'order'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False, index=True)
    brand_id = Column(BigInteger, ForeignKey('brand.id'), nullable=False, index=True)
    address_id = Column(BigInteger, ForeignKey('address.id'), nullable=False)
    intent_id = Column(String(36), ForeignKey('order_intent.id'), nullable=True, index=True)
    coupon_code = Column(String(50), nullable=True)
    total_amount = Column(BigInteger, nullable=False)
    discount_amount = Column(BigInteger, nullable=False, default=0)
    delivery_amount = Column(BigInteger, nullable=False, default=0)
    tax_amount = Column(BigInteger, nullable=False, default=0)
    total_items = Column(BigInteger, nullable=False)
    payment_method = Column(String(20), nullable=False, default='razorpay')
    gateway_order_id = Column(String(64), nullable=False, index=True)
    gateway_payment_id = Column(String(64), nullable=True)
    shiprocket_order_id = Column(String(64), nullable=True)
    shiprocket_shipment_id = Column(String(64), nullable=True)
    status = Column(
        Enum(OrderStatus, name='order_status', values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=OrderStatus.PENDING
    )
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    user = relationship('AppUser')
    brand = relationship('Brand')
    address = relationship('Address')
    intent = relationship('OrderIntent', back_populates='orders')
    items = relationship('OrderItem', back_populates='order', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'brand_id': self.brand_id,
            'address_id': self.address_id,
            'intent_id': self.intent_id,
            'coupon_code': self.coupon_code,
            'total_amount': self.total_amount,
            'discount_amount': self.discount_amount,
            'delivery_amount': self.delivery_amount,
            'tax_amount': self.tax_amount,
            'total_items': self.total_items,
            'payment_method': self.payment_method,
            'gateway_order_id': self.gateway_order_id,
            'status': OrderStatus(self.status).value,
            'items': [item.to_dict() for item in self.items],
        }

    def __repr__(self):
        return f"<Order(id={self.id}, brand_id={self.brand_id}, total={self.total_amount})>"


class OrderItem(Base):
    """Denormalized line of an order, copied from the priced cart."""

    __tablename__ = 'order_item'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    order_id = Column(BigInteger, ForeignKey('order.id'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    variant_id = Column(BigInteger, ForeignKey('product_variant.id'), nullable=True)
    brand_id = Column(BigInteger, nullable=False)
    sku = Column(String(64), nullable=True)
    category_id = Column(String(64), nullable=True)
    price = Column(BigInteger, nullable=False)
    quantity = Column(BigInteger, nullable=False)

    order = relationship('Order', back_populates='items')

    def to_dict(self):
        return {
            'product_id': self.product_id,
            'variant_id': self.variant_id,
            'brand_id': self.brand_id,
            'sku': self.sku,
            'category_id': self.category_id,
            'price': self.price,
            'quantity': self.quantity,
        }

    def __repr__(self):
        return f"<OrderItem(id={self.id}, product_id={self.product_id}, qty={self.quantity})>"
