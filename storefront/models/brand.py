"""Brand (seller) model."""
from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base, BigIntegerPK


class Brand(Base):
    """A seller; each brand fulfils and ships its own orders."""

    __tablename__ = 'brand'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    products = relationship('Product', back_populates='brand')

    def __repr__(self):
        return f"<Brand(id={self.id}, name='{self.name}')>"
