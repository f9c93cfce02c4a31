"""
Order persistence for the checkout flow.

OrderBackend is the SQLAlchemy implementation of the backend CheckoutFlow
drives. Every method commits (or rolls back) its own transaction.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session, joinedload

from storefront.exceptions import BusinessLogicError, NotFoundError
from storefront.models import Order, OrderIntent, OrderItem, IntentStatus, Product
from storefront.services.cart_service import clear_cart as clear_cart_rows
from storefront.services.coupon_service import increment_coupon_usage

logger = logging.getLogger(__name__)


class OrderBackend:
    """Intent, order and linkage storage backed by one session."""

    def __init__(self, session: Session):
        self.session = session

    def create_intent(self, user_id: int, products: List[Dict[str, Any]], total_amount: int) -> str:
        """
        Persist an order intent before any payment is attempted.

        Returns:
            The new intent id

        Raises:
            BusinessLogicError: empty product list or negative total
            NotFoundError: a product does not exist
        """
        if not products:
            raise BusinessLogicError('Order intent requires at least one product')
        if total_amount < 0:
            raise BusinessLogicError('Order intent total cannot be negative')

        product_ids = {p['product_id'] for p in products}
        found = {
            row.id for row in
            self.session.query(Product.id).filter(Product.id.in_(product_ids)).all()
        }
        missing = product_ids - found
        if missing:
            raise NotFoundError(f'Products not found: {sorted(missing)}')

        try:
            intent = OrderIntent(
                user_id=user_id,
                products=products,
                total_amount=total_amount,
                status=IntentStatus.CREATED,
            )
            self.session.add(intent)
            self.session.commit()
            return intent.id
        except Exception:
            self.session.rollback()
            raise

    def record_gateway_session(self, initiation) -> None:
        """Attach the gateway order id and the priced snapshot to the intent."""
        intent = self._get_intent(initiation.intent_id)
        try:
            intent.gateway_order_id = initiation.gateway_order_id
            intent.checkout_payload = initiation.to_payload()
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def load_initiation(self, gateway_order_id: str):
        """Rebuild the PaymentInitiation of a gateway order."""
        from storefront.services.checkout_service import PaymentInitiation

        intent = self.get_intent_by_gateway_order(gateway_order_id)
        if not intent or not intent.checkout_payload:
            raise NotFoundError(f'No checkout found for payment order {gateway_order_id}')
        return PaymentInitiation.from_payload(intent.id, intent.gateway_order_id, intent.checkout_payload)

    def create_orders(self, groups: Sequence) -> Tuple[List[Order], bool]:
        """
        Create one order per brand group in a single transaction.

        Orders already stored for the same gateway order are returned as is,
        so a repeated callback never duplicates them. The coupon use is
        counted once per payment.

        Returns:
            (orders, created): created is False when the orders already existed
        """
        if not groups:
            raise BusinessLogicError('No order groups to create')

        gateway_order_id = groups[0].gateway_order_id
        intent_id = groups[0].intent_id
        try:
            if intent_id:
                # Serialize concurrent callback/webhook on the intent row
                self.session.query(OrderIntent).filter(
                    OrderIntent.id == intent_id
                ).with_for_update().first()

            existing = self.get_orders_by_gateway_order(gateway_order_id)
            if existing:
                logger.info(f"[CHECKOUT] Orders for {gateway_order_id} already exist: {[o.id for o in existing]}")
                self.session.commit()
                return existing, False

            orders = []
            for group in groups:
                order = Order(
                    user_id=group.user_id,
                    brand_id=group.brand_id,
                    address_id=group.address_id,
                    intent_id=group.intent_id,
                    coupon_code=group.coupon_code,
                    total_amount=group.total_amount,
                    discount_amount=group.discount_amount,
                    delivery_amount=group.delivery_amount,
                    tax_amount=group.tax_amount,
                    total_items=group.total_items,
                    payment_method=group.payment_method,
                    gateway_order_id=group.gateway_order_id,
                    gateway_payment_id=group.gateway_payment_id,
                    shiprocket_order_id=group.shiprocket_order_id,
                    shiprocket_shipment_id=group.shiprocket_shipment_id,
                )
                for item in group.items:
                    order.items.append(OrderItem(
                        product_id=item.product_id,
                        variant_id=item.variant_id,
                        brand_id=item.brand_id,
                        sku=item.sku,
                        category_id=item.category_id,
                        price=item.unit_price,
                        quantity=item.quantity,
                    ))
                self.session.add(order)
                orders.append(order)

            increment_coupon_usage(self.session, groups[0].coupon_code)
            self.session.commit()

            logger.info(f"[CHECKOUT] Created {len(orders)} orders for payment order {gateway_order_id}")
            return orders, True

        except Exception:
            self.session.rollback()
            raise

    def link_intent(self, intent_id: str, order_ids: List[int]) -> bool:
        """
        Mark the intent linked to the orders created from its payment.

        Returns:
            True if this call linked the intent, False if it was already linked
        """
        self._get_intent(intent_id)
        try:
            if order_ids:
                self.session.query(Order).filter(Order.id.in_(order_ids)).update(
                    {Order.intent_id: intent_id}, synchronize_session=False
                )
            # Conditional update: only one completer wins the link
            claimed = self.session.query(OrderIntent).filter(
                OrderIntent.id == intent_id,
                OrderIntent.status != IntentStatus.LINKED,
            ).update(
                {OrderIntent.status: IntentStatus.LINKED, OrderIntent.linked_at: datetime.now(timezone.utc)},
                synchronize_session=False
            )
            self.session.commit()
            return claimed == 1
        except Exception:
            self.session.rollback()
            raise

    def get_linked_orders(self, intent_id: str) -> List[Order]:
        """Orders of an intent that is already linked; empty otherwise."""
        intent = self.session.get(OrderIntent, intent_id)
        if not intent or IntentStatus(intent.status) != IntentStatus.LINKED:
            return []
        return (
            self.session.query(Order)
            .filter(Order.intent_id == intent_id)
            .order_by(Order.id)
            .all()
        )

    def clear_cart(self, user_id: int, product_ids: Optional[List[int]] = None) -> int:
        """Remove ordered lines from the user's bag."""
        try:
            removed = clear_cart_rows(self.session, user_id, product_ids)
            self.session.commit()
            return removed
        except Exception:
            self.session.rollback()
            raise

    def get_intent(self, intent_id: str, user_id: Optional[int] = None) -> OrderIntent:
        """Intent by id, optionally restricted to its owner."""
        query = self.session.query(OrderIntent).filter(OrderIntent.id == intent_id)
        if user_id is not None:
            query = query.filter(OrderIntent.user_id == user_id)
        intent = query.first()
        if not intent:
            raise NotFoundError(f'Order intent {intent_id} not found')
        return intent

    def get_intent_by_gateway_order(self, gateway_order_id: str) -> Optional[OrderIntent]:
        return self.session.query(OrderIntent).filter(
            OrderIntent.gateway_order_id == gateway_order_id
        ).first()

    def get_orders_by_gateway_order(self, gateway_order_id: str) -> List[Order]:
        return (
            self.session.query(Order)
            .filter(Order.gateway_order_id == gateway_order_id)
            .order_by(Order.id)
            .all()
        )

    def list_orders_for_user(self, user_id: int) -> List[Order]:
        return (
            self.session.query(Order)
            .options(joinedload(Order.items))
            .filter(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )

    def mark_abandoned_intents(self, older_than_hours: int, now: Optional[datetime] = None) -> int:
        """
        Flag unlinked intents older than the cutoff as abandoned.

        Nothing is deleted; the rows stay for reconciliation.
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(hours=older_than_hours)
        try:
            count = self.session.query(OrderIntent).filter(
                OrderIntent.status == IntentStatus.CREATED,
                OrderIntent.created_at < cutoff,
            ).update({OrderIntent.status: IntentStatus.ABANDONED}, synchronize_session=False)
            self.session.commit()
            logger.info(f"[CHECKOUT] Marked {count} intents older than {older_than_hours}h as abandoned")
            return count
        except Exception:
            self.session.rollback()
            raise

    def _get_intent(self, intent_id: str) -> OrderIntent:
        intent = self.session.get(OrderIntent, intent_id)
        if not intent:
            raise NotFoundError(f'Order intent {intent_id} not found')
        return intent
