"""
Unit tests for the checkout state machine with a fake backend and gateway.
"""

import pytest
from types import SimpleNamespace

from storefront.exceptions import BusinessLogicError, CheckoutPreconditionError, PaymentGatewayError
from storefront.services.checkout_service import (
    CheckoutContext, CheckoutFlow, CheckoutState, PaymentConfirmation, PaymentInitiation
)
from storefront.services.pricing_service import CouponRules, DiscountType, LineItem


class FakeBackend:
    """In-memory backend recording every call."""

    def __init__(self, create_failures=0, link_error=None):
        self.calls = []
        self.create_failures = create_failures
        self.link_error = link_error
        self.linked = {}
        self.intents = 0
        self.next_order_id = 100
        self.created = None

    def create_intent(self, user_id, products, total_amount):
        self.intents += 1
        self.calls.append(('create_intent', user_id, total_amount))
        return f'intent-{self.intents}'

    def record_gateway_session(self, initiation):
        self.calls.append(('record_gateway_session', initiation.intent_id, initiation.gateway_order_id))

    def create_orders(self, groups):
        self.calls.append(('create_orders', len(groups)))
        if self.created:
            return self.created, False
        if self.create_failures:
            self.create_failures -= 1
            raise RuntimeError('deadlock detected')
        orders = []
        for _ in groups:
            self.next_order_id += 1
            orders.append(SimpleNamespace(id=self.next_order_id))
        self.groups = groups
        self.created = orders
        return orders, True

    def link_intent(self, intent_id, order_ids):
        self.calls.append(('link_intent', intent_id, tuple(order_ids)))
        if self.link_error:
            raise self.link_error
        if intent_id in self.linked:
            return False
        self.linked[intent_id] = [SimpleNamespace(id=order_id) for order_id in order_ids]
        return True

    def get_linked_orders(self, intent_id):
        return self.linked.get(intent_id, [])

    def names(self):
        return [call[0] for call in self.calls]


class FakeGateway:
    def __init__(self, response=None, error=None):
        self.response = {'id': 'order_rzp_1'} if response is None else response
        self.error = error
        self.calls = []

    def create_order(self, amount, receipt=None):
        self.calls.append((amount, receipt))
        if self.error:
            raise self.error
        return self.response


def bag():
    return [
        LineItem(product_id=1, brand_id=10, unit_price=30000, quantity=1, category_id='apparel'),
        LineItem(product_id=2, brand_id=20, unit_price=35000, quantity=2, category_id='home'),
    ]


def context(**overrides):
    values = dict(user_id=7, address_id=3, items=bag())
    values.update(overrides)
    return CheckoutContext(**values)


def make_flow(backend=None, gateway=None, sleeps=None):
    return CheckoutFlow(
        backend or FakeBackend(),
        gateway or FakeGateway(),
        sleep=(sleeps.append if sleeps is not None else (lambda seconds: None)),
    )


class TestPreconditions:
    """Tests for checks that run before any backend or gateway call."""

    @pytest.mark.parametrize('overrides,message', [
        ({'address_id': None}, 'No shipping address selected'),
        ({'items': []}, 'Cart is empty'),
        ({'user_id': None}, 'User not loaded'),
    ])
    def test_precondition_failure_makes_no_calls(self, overrides, message):
        backend, gateway = FakeBackend(), FakeGateway()
        flow = make_flow(backend, gateway)

        with pytest.raises(CheckoutPreconditionError) as exc_info:
            flow.initiate(context(**overrides))

        assert exc_info.value.message == message
        assert backend.calls == []
        assert gateway.calls == []
        assert flow.state == CheckoutState.NONE


class TestInitiate:
    """Tests for intent creation and gateway session."""

    def test_opens_gateway_session_for_total(self):
        backend, gateway = FakeBackend(), FakeGateway()
        flow = make_flow(backend, gateway)

        initiation = flow.initiate(context())

        assert flow.state == CheckoutState.GATEWAY_SESSION_OPEN
        assert backend.names() == ['create_intent', 'record_gateway_session']
        assert gateway.calls == [(100000, 'intent-1')]
        assert initiation.amount == 100000
        assert initiation.gateway_order_id == 'order_rzp_1'
        assert initiation.intent_id == 'intent-1'

    def test_initiate_checkout_event(self):
        initiation = make_flow().initiate(context())

        [event] = initiation.events
        assert event.name == 'InitiateCheckout'
        assert event.value == 100000
        assert event.currency == 'INR'
        assert event.contents == [
            {'id': 1, 'quantity': 1, 'price': 30000},
            {'id': 2, 'quantity': 2, 'price': 35000},
        ]

    def test_coupon_lowers_gateway_amount(self):
        gateway = FakeGateway()
        coupon = CouponRules(DiscountType.PERCENTAGE, 10, category_id='home')
        initiation = make_flow(gateway=gateway).initiate(context(coupon=coupon, coupon_code='HOME10'))

        assert initiation.price_breakdown.coupon == 7000
        assert gateway.calls[0][0] == 93000
        assert initiation.coupon_code == 'HOME10'

    def test_coupon_code_dropped_when_nothing_discounted(self):
        coupon = CouponRules(DiscountType.PERCENTAGE, 10, category_id='toys')
        initiation = make_flow().initiate(context(coupon=coupon, coupon_code='TOYS10'))

        assert initiation.price_breakdown.coupon == 0
        assert initiation.coupon_code is None

    def test_missing_gateway_id_aborts(self):
        backend = FakeBackend()
        flow = make_flow(backend, FakeGateway(response={'status': 'created'}))

        with pytest.raises(PaymentGatewayError):
            flow.initiate(context())

        assert flow.state == CheckoutState.FAILED
        assert backend.names() == ['create_intent']

    def test_gateway_exception_is_wrapped(self):
        flow = make_flow(gateway=FakeGateway(error=ConnectionError('timed out')))

        with pytest.raises(PaymentGatewayError, match='timed out'):
            flow.initiate(context())
        assert flow.state == CheckoutState.FAILED

    def test_retry_after_failure_creates_new_intent(self):
        backend = FakeBackend()
        gateway = FakeGateway(error=ConnectionError('down'))
        flow = make_flow(backend, gateway)

        with pytest.raises(PaymentGatewayError):
            flow.initiate(context())

        gateway.error = None
        initiation = flow.initiate(context())

        assert initiation.intent_id == 'intent-2'
        assert flow.state == CheckoutState.GATEWAY_SESSION_OPEN

    def test_second_initiate_while_open_is_rejected(self):
        flow = make_flow()
        flow.initiate(context())

        with pytest.raises(BusinessLogicError):
            flow.initiate(context())


class TestComplete:
    """Tests for order creation and intent linkage after payment."""

    def confirm(self, initiation, payment_id='pay_1'):
        return PaymentConfirmation(initiation.gateway_order_id, payment_id, 'sig')

    def test_creates_one_order_per_brand_and_links(self):
        backend = FakeBackend()
        flow = make_flow(backend)
        initiation = flow.initiate(context())

        outcome = flow.complete(initiation, self.confirm(initiation))

        assert flow.state == CheckoutState.LINKED
        assert outcome.linked is True
        assert outcome.order_ids == [101, 102]
        assert backend.calls[-1] == ('link_intent', 'intent-1', (101, 102))
        assert [g.brand_id for g in backend.groups] == [10, 20]
        assert [g.total_amount for g in backend.groups] == [30000, 70000]
        assert all(g.gateway_payment_id == 'pay_1' for g in backend.groups)
        assert all(g.intent_id == 'intent-1' for g in backend.groups)

    def test_purchase_event_once_on_link(self):
        flow = make_flow()
        initiation = flow.initiate(context())

        outcome = flow.complete(initiation, self.confirm(initiation))

        [event] = outcome.events
        assert event.name == 'Purchase'
        assert event.event_id == 'intent-1'
        assert event.value == initiation.amount
        assert event.order_ids == [101, 102]

    def test_retries_order_creation(self):
        sleeps = []
        backend = FakeBackend(create_failures=2)
        flow = make_flow(backend, sleeps=sleeps)
        initiation = flow.initiate(context())

        outcome = flow.complete(initiation, self.confirm(initiation))

        assert outcome.linked is True
        assert backend.names().count('create_orders') == 3
        assert sleeps == [1.0, 2.0]

    def test_exhausted_retries_fail_without_link(self):
        backend = FakeBackend(create_failures=5)
        flow = make_flow(backend)
        initiation = flow.initiate(context())

        with pytest.raises(RuntimeError, match='deadlock detected'):
            flow.complete(initiation, self.confirm(initiation))

        assert flow.state == CheckoutState.FAILED
        assert backend.names().count('create_orders') == 3
        assert 'link_intent' not in backend.names()

    def test_link_failure_is_not_raised(self):
        backend = FakeBackend(link_error=RuntimeError('connection reset'))
        flow = make_flow(backend)
        initiation = flow.initiate(context())

        outcome = flow.complete(initiation, self.confirm(initiation))

        assert outcome.linked is False
        assert outcome.order_ids == [101, 102]
        assert outcome.events == []

    def test_already_linked_intent_returns_existing_orders(self):
        backend = FakeBackend()
        flow = make_flow(backend)
        initiation = flow.initiate(context())
        flow.complete(initiation, self.confirm(initiation))

        replay = make_flow(backend).complete(initiation, self.confirm(initiation))

        assert replay.already_processed is True
        assert replay.order_ids == [101, 102]
        assert replay.events == []
        assert backend.names().count('create_orders') == 1

    def test_orders_from_another_request_are_already_processed(self):
        """Test orders created by a concurrent completer are linked but not reported as new."""
        backend = FakeBackend()
        flow = make_flow(backend)
        initiation = flow.initiate(context())
        backend.created = [SimpleNamespace(id=7), SimpleNamespace(id=8)]

        outcome = flow.complete(initiation, self.confirm(initiation))

        assert outcome.already_processed is True
        assert outcome.order_ids == [7, 8]
        assert outcome.linked is True
        assert [e.name for e in outcome.events] == ['Purchase']

    def test_lost_link_claim_emits_no_purchase(self):
        """Test only the request that links the intent carries the Purchase event."""
        class RacedBackend(FakeBackend):
            def link_intent(self, intent_id, order_ids):
                self.linked.setdefault(intent_id, [SimpleNamespace(id=i) for i in order_ids])
                return super().link_intent(intent_id, order_ids)

        flow = make_flow(RacedBackend())
        initiation = flow.initiate(context())

        outcome = flow.complete(initiation, self.confirm(initiation))

        assert outcome.linked is True
        assert outcome.already_processed is False
        assert outcome.events == []

    def test_confirmation_for_another_order_is_rejected(self):
        backend = FakeBackend()
        flow = make_flow(backend)
        initiation = flow.initiate(context())

        with pytest.raises(PaymentGatewayError):
            flow.complete(initiation, PaymentConfirmation('order_other', 'pay_1'))
        assert 'create_orders' not in backend.names()

    def test_resumes_from_persisted_initiation(self):
        """Test a fresh flow completes an initiation rebuilt from its payload."""
        backend = FakeBackend()
        initiation = make_flow(backend).initiate(context(buy_now=True))

        restored = PaymentInitiation.from_payload(
            initiation.intent_id, initiation.gateway_order_id, initiation.to_payload()
        )
        outcome = make_flow(backend).complete(restored, self.confirm(restored))

        assert restored.items == initiation.items
        assert restored.buy_now is True
        assert outcome.linked is True


def test_from_config():
    config = {
        'FREE_DELIVERY_THRESHOLD': 1000,
        'DELIVERY_CHARGE': 99,
        'ORDER_MAX_RETRIES': 5,
        'ORDER_RETRY_DELAY_BASE': 0.0,
        'SPLIT_DELIVERY': True,
        'COUPON_ALLOCATION': 'proportional',
        'CURRENCY': 'INR',
    }
    flow = CheckoutFlow.from_config(config, FakeBackend(), FakeGateway())

    assert flow.max_retries == 5
    assert flow.split_delivery is True
    assert flow.allocation == 'proportional'
    assert flow.price(context()).delivery == 0
