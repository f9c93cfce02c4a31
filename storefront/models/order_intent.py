"""Order intent model."""
import enum
import uuid
from sqlalchemy import Column, BigInteger, String, DateTime, Enum, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from storefront.database import Base


class IntentStatus(str, enum.Enum):
    """Lifecycle of a pre-payment intent."""
    CREATED = 'created'
    LINKED = 'linked'
    ABANDONED = 'abandoned'


class OrderIntent(Base):
    """
    Snapshot of what a user intends to buy, written before the gateway
    session is opened so every payment can be traced to an order attempt.
    """

    __tablename__ = 'order_intent'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False, index=True)
    products = Column(JSON, nullable=False)
    total_amount = Column(BigInteger, nullable=False)
    status = Column(
        Enum(IntentStatus, name='intent_status', values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=IntentStatus.CREATED
    )
    gateway_order_id = Column(String(64), unique=True, nullable=True, index=True)
    # Priced line items, breakdown and address, frozen at initiation
    checkout_payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    linked_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship('AppUser')
    orders = relationship('Order', back_populates='intent')

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'products': self.products,
            'total_amount': self.total_amount,
            'status': IntentStatus(self.status).value,
            'gateway_order_id': self.gateway_order_id,
            'order_ids': [order.id for order in self.orders],
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'linked_at': self.linked_at.isoformat() if self.linked_at else None,
        }

    def __repr__(self):
        return f"<OrderIntent(id='{self.id}', status={self.status}, total={self.total_amount})>"
