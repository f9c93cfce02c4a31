"""Product and variant models."""
from sqlalchemy import Column, BigInteger, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntegerPK


class Product(Base):
    """Product model. Prices are stored in paise."""

    __tablename__ = 'product'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    brand_id = Column(BigInteger, ForeignKey('brand.id'), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    native_sku = Column(String(64), nullable=True)
    price = Column(BigInteger, nullable=True)
    compare_at_price = Column(BigInteger, nullable=True)
    # Coupon scope keys
    category_id = Column(String(64), nullable=True, index=True)
    sub_category_id = Column(String(64), nullable=True)
    product_type_id = Column(String(64), nullable=True)
    # None means stock is tracked per variant (or not at all)
    quantity = Column(BigInteger, nullable=True)
    is_published = Column(Boolean, nullable=False, default=True)
    verification_status = Column(String(20), nullable=False, default='approved')
    is_available = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    brand = relationship('Brand', back_populates='products')
    variants = relationship('ProductVariant', back_populates='product', cascade='all, delete-orphan')

    @property
    def is_sellable(self):
        """Published, approved, live and (when tracked) in stock."""
        return (
            self.is_published
            and self.verification_status == 'approved'
            and not self.is_deleted
            and self.is_available
            and self.is_active
            and (self.quantity is None or self.quantity > 0)
        )

    def __repr__(self):
        return f"<Product(id={self.id}, title='{self.title}', brand_id={self.brand_id})>"


class ProductVariant(Base):
    """Size/colour variant; its price overrides the product price when set."""

    __tablename__ = 'product_variant'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False, index=True)
    name = Column(String(100), nullable=True)
    native_sku = Column(String(64), nullable=True)
    price = Column(BigInteger, nullable=True)
    compare_at_price = Column(BigInteger, nullable=True)
    quantity = Column(BigInteger, nullable=False, default=0)
    is_deleted = Column(Boolean, nullable=False, default=False)

    product = relationship('Product', back_populates='variants')

    def __repr__(self):
        return f"<ProductVariant(id={self.id}, product_id={self.product_id}, sku='{self.native_sku}')>"
