"""Cart item model."""
from sqlalchemy import Column, BigInteger, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntegerPK


class CartItem(Base):
    """One product (optionally a variant) in a user's bag."""

    __tablename__ = 'cart_item'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    variant_id = Column(BigInteger, ForeignKey('product_variant.id'), nullable=True)
    quantity = Column(BigInteger, nullable=False, default=1)
    # Unchecked items stay in the bag but are left out of checkout
    status = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    user = relationship('AppUser', back_populates='cart_items')
    product = relationship('Product')
    variant = relationship('ProductVariant')

    def __repr__(self):
        return f"<CartItem(id={self.id}, product_id={self.product_id}, qty={self.quantity})>"
