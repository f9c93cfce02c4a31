"""Shipping address model."""
from sqlalchemy import Column, BigInteger, String, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from storefront.database import Base, BigIntegerPK


class Address(Base):
    """Delivery destination selected during the address step."""

    __tablename__ = 'address'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=False)
    street = Column(String(500), nullable=False)
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=False)
    zip = Column(String(10), nullable=False)
    is_primary = Column(Boolean, nullable=False, default=False)

    user = relationship('AppUser', back_populates='addresses')

    def __repr__(self):
        return f"<Address(id={self.id}, city='{self.city}', zip='{self.zip}')>"
