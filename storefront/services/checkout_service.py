"""
Checkout orchestration: order intent, gateway session, brand orders, linkage.

The flow is a saga of separately committed steps:

    intent -> gateway session -> (payment) -> brand orders -> intent link

CheckoutFlow does no I/O itself. It drives a backend (persistence) and a
gateway (payments) passed in by the caller, and returns values describing
what happened. Analytics and emails are sent by the caller from those
values.
"""
import enum
import logging
import time
import uuid
from dataclasses import dataclass, asdict, field
from typing import Any, Callable, Dict, List, Optional

from storefront.exceptions import BusinessLogicError, CheckoutPreconditionError, PaymentGatewayError
from storefront.services.partition_service import ALLOCATION_LARGEST_REMAINDER, partition_by_brand
from storefront.services.pricing_service import (
    CouponRules, DELIVERY_CHARGE, FREE_DELIVERY_THRESHOLD, LineItem, PriceBreakdown, price_line_items
)
from storefront.services.retry_service import MAX_RETRIES, RETRY_DELAY_BASE, retry_create_order

logger = logging.getLogger(__name__)


class CheckoutState(str, enum.Enum):
    NONE = 'none'
    INTENT_CREATED = 'intent_created'
    GATEWAY_SESSION_OPEN = 'gateway_session_open'
    PAYMENT_CALLBACK_RECEIVED = 'payment_callback_received'
    ORDERS_CREATING = 'orders_creating'
    LINKED = 'linked'
    FAILED = 'failed'


# A callback may resume a checkout persisted by an earlier request (NONE)
_TRANSITIONS = {
    CheckoutState.NONE: {CheckoutState.INTENT_CREATED, CheckoutState.PAYMENT_CALLBACK_RECEIVED},
    CheckoutState.INTENT_CREATED: {CheckoutState.GATEWAY_SESSION_OPEN},
    CheckoutState.GATEWAY_SESSION_OPEN: {CheckoutState.PAYMENT_CALLBACK_RECEIVED},
    CheckoutState.PAYMENT_CALLBACK_RECEIVED: {CheckoutState.ORDERS_CREATING, CheckoutState.LINKED},
    CheckoutState.ORDERS_CREATING: {CheckoutState.LINKED},
    CheckoutState.LINKED: set(),
    CheckoutState.FAILED: set(),
}


@dataclass(frozen=True)
class CheckoutContext:
    """Everything the checkout needs, passed explicitly."""
    user_id: Optional[int]
    address_id: Optional[int]
    items: List[LineItem]
    coupon: Optional[CouponRules] = None
    coupon_code: Optional[str] = None
    buy_now: bool = False


@dataclass(frozen=True)
class ConversionEvent:
    """Analytics event for the caller to emit; value in paise."""
    name: str
    event_id: str
    value: int
    currency: str
    contents: List[Dict[str, Any]]
    order_ids: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class PaymentInitiation:
    """State handed from initiation to the payment callback."""
    intent_id: str
    gateway_order_id: str
    amount: int
    user_id: int
    address_id: int
    items: List[LineItem]
    price_breakdown: PriceBreakdown
    coupon_code: Optional[str] = None
    buy_now: bool = False
    currency: str = 'INR'
    events: List[ConversionEvent] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        """JSON-safe snapshot persisted with the intent."""
        return {
            'user_id': self.user_id,
            'address_id': self.address_id,
            'amount': self.amount,
            'currency': self.currency,
            'coupon_code': self.coupon_code,
            'buy_now': self.buy_now,
            'items': [item.to_dict() for item in self.items],
            'price_breakdown': self.price_breakdown.to_dict(),
        }

    @classmethod
    def from_payload(cls, intent_id: str, gateway_order_id: str, payload: Dict[str, Any]) -> 'PaymentInitiation':
        return cls(
            intent_id=intent_id,
            gateway_order_id=gateway_order_id,
            amount=int(payload['amount']),
            user_id=payload['user_id'],
            address_id=payload['address_id'],
            items=[LineItem.from_dict(item) for item in payload['items']],
            price_breakdown=PriceBreakdown.from_dict(payload['price_breakdown']),
            coupon_code=payload.get('coupon_code'),
            currency=payload.get('currency', 'INR'),
            buy_now=bool(payload.get('buy_now', False)),
        )


@dataclass(frozen=True)
class PaymentConfirmation:
    """Gateway success callback data (signature checked by the caller)."""
    gateway_order_id: str
    gateway_payment_id: str
    signature: Optional[str] = None


@dataclass(frozen=True)
class CheckoutOutcome:
    """Result of a completed payment."""
    intent_id: str
    order_ids: List[int]
    linked: bool
    events: List[ConversionEvent] = field(default_factory=list)
    already_processed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop('events')
        return data


def intent_products(items: List[LineItem]) -> List[Dict[str, Any]]:
    """Intent snapshot of the bag."""
    return [
        {
            'product_id': item.product_id,
            'variant_id': item.variant_id,
            'quantity': item.quantity,
            'price': item.unit_price,
            'sku': item.sku,
        }
        for item in items
    ]


def event_contents(items: List[LineItem]) -> List[Dict[str, Any]]:
    return [
        {'id': item.product_id, 'quantity': item.quantity, 'price': item.unit_price}
        for item in items
    ]


class CheckoutFlow:
    """
    One checkout attempt, from intent creation to linked orders.

    backend must provide create_intent, record_gateway_session,
    create_orders (returning (orders, created)), link_intent (returning
    whether this call linked the intent) and get_linked_orders (see
    order_service.OrderBackend). gateway must provide
    create_order(amount, receipt=...) returning a dict with an 'id'.
    """

    def __init__(
        self,
        backend,
        gateway,
        *,
        free_delivery_threshold: int = FREE_DELIVERY_THRESHOLD,
        delivery_charge: int = DELIVERY_CHARGE,
        max_retries: int = MAX_RETRIES,
        retry_delay_base: float = RETRY_DELAY_BASE,
        sleep: Optional[Callable[[float], None]] = None,
        split_delivery: bool = False,
        allocation: str = ALLOCATION_LARGEST_REMAINDER,
        currency: str = 'INR',
    ):
        self.backend = backend
        self.gateway = gateway
        self.free_delivery_threshold = free_delivery_threshold
        self.delivery_charge = delivery_charge
        self.max_retries = max_retries
        self.retry_delay_base = retry_delay_base
        self.sleep = sleep or time.sleep
        self.split_delivery = split_delivery
        self.allocation = allocation
        self.currency = currency
        self.state = CheckoutState.NONE

    @classmethod
    def from_config(cls, config, backend, gateway, **overrides) -> 'CheckoutFlow':
        """Build a flow from a Flask config mapping."""
        options = dict(
            free_delivery_threshold=config.get('FREE_DELIVERY_THRESHOLD', FREE_DELIVERY_THRESHOLD),
            delivery_charge=config.get('DELIVERY_CHARGE', DELIVERY_CHARGE),
            max_retries=config.get('ORDER_MAX_RETRIES', MAX_RETRIES),
            retry_delay_base=config.get('ORDER_RETRY_DELAY_BASE', RETRY_DELAY_BASE),
            split_delivery=config.get('SPLIT_DELIVERY', False),
            allocation=config.get('COUPON_ALLOCATION', ALLOCATION_LARGEST_REMAINDER),
            currency=config.get('CURRENCY', 'INR'),
        )
        options.update(overrides)
        return cls(backend, gateway, **options)

    def _transition(self, new_state: CheckoutState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise BusinessLogicError(f'Invalid checkout transition {self.state.value} -> {new_state.value}')
        logger.info(f"[CHECKOUT] {self.state.value} -> {new_state.value}")
        self.state = new_state

    def price(self, context: CheckoutContext) -> PriceBreakdown:
        return price_line_items(
            context.items,
            context.coupon,
            free_delivery_threshold=self.free_delivery_threshold,
            delivery_charge=self.delivery_charge,
        )

    @staticmethod
    def check_preconditions(context: CheckoutContext) -> None:
        """Raise before any network call when the checkout cannot start."""
        if not context.address_id:
            raise CheckoutPreconditionError('No shipping address selected')
        if not context.items:
            raise CheckoutPreconditionError('Cart is empty')
        if not context.user_id:
            raise CheckoutPreconditionError('User not loaded')

    def initiate(self, context: CheckoutContext) -> PaymentInitiation:
        """
        Create the order intent and open a gateway session for the total.

        Each call creates a fresh intent; retrying after a failure leaves
        the previous intent unlinked.

        Raises:
            CheckoutPreconditionError: nothing was created
            PaymentGatewayError: no gateway session; the intent stays unlinked
        """
        if self.state not in (CheckoutState.NONE, CheckoutState.FAILED):
            raise BusinessLogicError('Checkout already in progress')
        self.state = CheckoutState.NONE

        self.check_preconditions(context)
        breakdown = self.price(context)

        try:
            intent_id = self.backend.create_intent(
                user_id=context.user_id,
                products=intent_products(context.items),
                total_amount=breakdown.total,
            )
            self._transition(CheckoutState.INTENT_CREATED)
            logger.info(f"[CHECKOUT] Intent {intent_id} created for user {context.user_id}, total {breakdown.total}")

            try:
                gateway_order = self.gateway.create_order(breakdown.total, receipt=intent_id)
            except PaymentGatewayError:
                raise
            except Exception as e:
                raise PaymentGatewayError(f'Failed to create payment order: {e}') from e

            gateway_order_id = (gateway_order or {}).get('id')
            if not gateway_order_id:
                raise PaymentGatewayError('Failed to create payment order')

            initiation = PaymentInitiation(
                intent_id=intent_id,
                gateway_order_id=gateway_order_id,
                amount=breakdown.total,
                user_id=context.user_id,
                address_id=context.address_id,
                items=list(context.items),
                price_breakdown=breakdown,
                coupon_code=context.coupon_code if breakdown.coupon else None,
                buy_now=context.buy_now,
                currency=self.currency,
                events=[ConversionEvent(
                    name='InitiateCheckout',
                    event_id=str(uuid.uuid4()),
                    value=breakdown.total,
                    currency=self.currency,
                    contents=event_contents(context.items),
                )],
            )
            self.backend.record_gateway_session(initiation)
            self._transition(CheckoutState.GATEWAY_SESSION_OPEN)
        except Exception:
            self.state = CheckoutState.FAILED
            raise

        return initiation

    def complete(self, initiation: PaymentInitiation, confirmation: PaymentConfirmation) -> CheckoutOutcome:
        """
        Turn a successful payment into brand orders and link them to the intent.

        All brand orders of the payment are one retryable unit. A failed
        link is logged and reported as linked=False; the orders stay.
        Orders created by a concurrent completer come back with
        already_processed=True, and only the call that links the intent
        carries the Purchase event.

        Raises:
            PaymentGatewayError: the confirmation belongs to another session
            Exception: the last order-creation error, unchanged
        """
        if confirmation.gateway_order_id != initiation.gateway_order_id:
            self.state = CheckoutState.FAILED
            raise PaymentGatewayError('Payment does not belong to this checkout')

        self._transition(CheckoutState.PAYMENT_CALLBACK_RECEIVED)

        existing = self.backend.get_linked_orders(initiation.intent_id)
        if existing:
            logger.info(f"[CHECKOUT] Intent {initiation.intent_id} already linked, skipping order creation")
            self._transition(CheckoutState.LINKED)
            return CheckoutOutcome(
                intent_id=initiation.intent_id,
                order_ids=[order.id for order in existing],
                linked=True,
                already_processed=True,
            )

        groups = partition_by_brand(
            initiation.items,
            initiation.price_breakdown,
            user_id=initiation.user_id,
            address_id=initiation.address_id,
            gateway_order_id=initiation.gateway_order_id,
            coupon_code=initiation.coupon_code,
            split_delivery=self.split_delivery,
            allocation=self.allocation,
            intent_id=initiation.intent_id,
            gateway_payment_id=confirmation.gateway_payment_id,
        )
        self._transition(CheckoutState.ORDERS_CREATING)

        try:
            orders, created = retry_create_order(
                self.backend.create_orders,
                groups,
                max_retries=self.max_retries,
                delay_base=self.retry_delay_base,
                sleep=self.sleep,
            )
        except Exception:
            self.state = CheckoutState.FAILED
            raise

        order_ids = [order.id for order in orders]
        if not created:
            logger.info(f"[CHECKOUT] Orders {order_ids} for intent {initiation.intent_id} were created by another request")

        linked = False
        claimed = False
        try:
            claimed = self.backend.link_intent(initiation.intent_id, order_ids)
            linked = True
            logger.info(f"[CHECKOUT] Intent {initiation.intent_id} linked to orders {order_ids}")
        except Exception as e:
            logger.exception(f"[CHECKOUT] Failed to link intent {initiation.intent_id} to orders {order_ids}: {e}")

        self._transition(CheckoutState.LINKED)

        # Purchase goes with the call that actually linked the intent
        events = []
        if claimed:
            events.append(ConversionEvent(
                name='Purchase',
                event_id=initiation.intent_id,
                value=initiation.amount,
                currency=initiation.currency,
                contents=event_contents(initiation.items),
                order_ids=order_ids,
            ))

        return CheckoutOutcome(
            intent_id=initiation.intent_id,
            order_ids=order_ids,
            linked=linked,
            events=events,
            already_processed=not created,
        )
