"""Application user model (identity lives with the external auth provider)."""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntegerPK


class AppUser(Base):
    """Local mirror of an authenticated customer."""

    __tablename__ = 'app_user'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    external_id = Column(String(64), unique=True, nullable=True, index=True)
    email = Column(String(255), unique=True, nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    addresses = relationship('Address', back_populates='user', cascade='all, delete-orphan')
    cart_items = relationship('CartItem', back_populates='user', cascade='all, delete-orphan')

    @property
    def full_name(self):
        return ' '.join(part for part in (self.first_name, self.last_name) if part)

    def __repr__(self):
        return f"<AppUser(id={self.id}, email='{self.email}')>"
