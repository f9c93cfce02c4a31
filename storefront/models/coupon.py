"""Coupon model."""
from datetime import datetime, timezone
from sqlalchemy import Column, BigInteger, String, Boolean, DateTime, Enum
from sqlalchemy.orm import validates
from sqlalchemy.sql import func
from storefront.database import Base, BigIntegerPK
from storefront.services.pricing_service import CouponRules, DiscountType


class Coupon(Base):
    """Discount coupon. Amounts in paise, percentage values in points."""

    __tablename__ = 'coupon'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(String(500), nullable=True)
    discount_type = Column(
        Enum(DiscountType, name='discount_type', values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )
    discount_value = Column(BigInteger, nullable=False, default=0)
    min_order_amount = Column(BigInteger, nullable=False, default=0)
    max_discount_amount = Column(BigInteger, nullable=True)
    # Scope filters; NULL applies to everything
    category_id = Column(String(64), nullable=True)
    sub_category_id = Column(String(64), nullable=True)
    product_type_id = Column(String(64), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    max_uses = Column(BigInteger, nullable=False, default=0)  # 0 = unlimited
    uses = Column(BigInteger, nullable=False, default=0)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    @validates('code')
    def _normalize_code(self, key, value):
        return normalize_coupon_code(value)

    def is_expired(self, now=None):
        if not self.expires_at:
            return False
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            # SQLite hands back naive datetimes
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= now

    def to_rules(self) -> CouponRules:
        """Value object consumed by the price calculator."""
        return CouponRules(
            discount_type=DiscountType(self.discount_type),
            discount_value=int(self.discount_value or 0),
            max_discount_amount=self.max_discount_amount,
            category_id=self.category_id,
            sub_category_id=self.sub_category_id,
            product_type_id=self.product_type_id,
        )

    def to_dict(self):
        return {
            'code': self.code,
            'description': self.description,
            'discount_type': DiscountType(self.discount_type).value,
            'discount_value': self.discount_value,
            'min_order_amount': self.min_order_amount,
            'max_discount_amount': self.max_discount_amount,
            'category_id': self.category_id,
            'sub_category_id': self.sub_category_id,
            'product_type_id': self.product_type_id,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
        }

    def __repr__(self):
        return f"<Coupon(code='{self.code}', type={self.discount_type}, value={self.discount_value})>"


def normalize_coupon_code(code):
    """Canonical (upper-case, trimmed) form of a coupon code."""
    if code is None:
        return None
    return code.strip().upper()
