"""Checkout blueprint - pricing, coupons, payment initiation and callback."""
import logging
from typing import List, Optional

from flask import Blueprint, request, jsonify, current_app, g

from storefront.database import get_session
from storefront.exceptions import BusinessLogicError, CouponError, NotFoundError, PaymentGatewayError, StorefrontError
from storefront.middleware import require_login
from storefront.models import Address, AppUser
from storefront.services import cart_service, coupon_service
from storefront.services.analytics_service import send_conversion_events
from storefront.services.checkout_service import CheckoutContext, CheckoutFlow, PaymentConfirmation
from storefront.services.email_service import send_order_confirmation_email
from storefront.services.order_service import OrderBackend
from storefront.services.pricing_service import LineItem
from storefront.services.razorpay_client import RazorpayClient
from storefront.blueprints.metrics import (
    checkout_completed_total, checkout_failures_total, checkout_initiated_total, orders_created_total
)

logger = logging.getLogger(__name__)

checkout_bp = Blueprint('checkout', __name__, url_prefix='/checkout')


def _items_subtotal(items: List[LineItem]) -> int:
    return sum(item.line_amount for item in items)


def _resolve_coupon(db_session, code: Optional[str], items: List[LineItem]):
    """Validated, applicable coupon for the items, or None when no code."""
    if not code:
        return None
    coupon = coupon_service.validate_coupon(db_session, code, _items_subtotal(items))
    if not coupon_service.is_coupon_applicable(coupon, items):
        raise CouponError('Coupon is not applicable to the items in your cart')
    return coupon


def _flow(db_session, gateway=None) -> CheckoutFlow:
    return CheckoutFlow.from_config(current_app.config, OrderBackend(db_session), gateway)


def _client_info() -> dict:
    return {
        'client_ip': request.headers.get('X-Forwarded-For', request.remote_addr),
        'user_agent': request.user_agent.string if request.user_agent else None,
        'event_source_url': request.referrer,
    }


@checkout_bp.route('/summary', methods=['GET'])
@require_login
def summary():
    """Price breakdown of the user's checkout-eligible bag."""
    db_session = get_session()

    cart = cart_service.get_cart_for_user(db_session, g.user_id)
    available, unavailable = cart_service.split_available_items(cart)
    items = [cart_service.to_line_item(row.product, row.variant, row.quantity) for row in available]

    coupon = _resolve_coupon(db_session, request.args.get('coupon'), items)
    breakdown = _flow(db_session).price(
        CheckoutContext(g.user_id, None, items, coupon=coupon.to_rules() if coupon else None)
    )

    return jsonify({
        'status': 'success',
        'items': [item.to_dict() for item in items],
        'unavailable_product_ids': [row.product_id for row in unavailable],
        'coupon': coupon.to_dict() if coupon else None,
        'price_breakdown': breakdown.to_dict(),
        'free_delivery_threshold': current_app.config['FREE_DELIVERY_THRESHOLD'],
    })


@checkout_bp.route('/coupons', methods=['GET'])
@require_login
def coupons():
    """Active coupons whose scope matches the bag."""
    db_session = get_session()
    items = cart_service.get_available_line_items(db_session, g.user_id)
    active = coupon_service.list_active_coupon_dicts(db_session)
    return jsonify({
        'status': 'success',
        'coupons': coupon_service.filter_applicable_coupons(active, items),
    })


@checkout_bp.route('/coupon', methods=['POST'])
@require_login
def apply_coupon():
    """Validate a coupon code against the bag and return the new breakdown."""
    db_session = get_session()
    payload = request.get_json(silent=True) or {}
    code = (payload.get('code') or '').strip()
    if not code:
        raise BusinessLogicError('Coupon code is required')

    items = cart_service.get_available_line_items(db_session, g.user_id)
    if not items:
        raise BusinessLogicError('Cart is empty')

    coupon = _resolve_coupon(db_session, code, items)
    breakdown = _flow(db_session).price(CheckoutContext(g.user_id, None, items, coupon=coupon.to_rules()))

    return jsonify({
        'status': 'success',
        'message': f'Coupon {coupon.code} applied',
        'coupon': coupon.to_dict(),
        'price_breakdown': breakdown.to_dict(),
    })


@checkout_bp.route('/pay', methods=['POST'])
@require_login
def pay():
    """
    Create the order intent and open a Razorpay order for the total.

    Body: address_id, coupon_code (optional), buy_now {product_id, variant_id, quantity} (optional)
    """
    db_session = get_session()
    payload = request.get_json(silent=True) or {}

    address = None
    address_id = payload.get('address_id')
    if address_id:
        address = db_session.query(Address).filter_by(id=address_id, user_id=g.user_id).first()
        if not address:
            raise NotFoundError('Shipping address not found')

    buy_now = payload.get('buy_now')
    if buy_now:
        try:
            items = [cart_service.get_buy_now_line_item(
                db_session,
                int(buy_now['product_id']),
                int(buy_now['variant_id']) if buy_now.get('variant_id') is not None else None,
                int(buy_now.get('quantity', 1)),
            )]
        except (KeyError, TypeError, ValueError):
            raise BusinessLogicError('Invalid buy now item')
    else:
        items = cart_service.get_available_line_items(db_session, g.user_id)

    coupon_code = payload.get('coupon_code')
    coupon = _resolve_coupon(db_session, coupon_code, items) if items else None

    context = CheckoutContext(
        user_id=g.user_id,
        address_id=address.id if address else None,
        items=items,
        coupon=coupon.to_rules() if coupon else None,
        coupon_code=coupon.code if coupon else None,
        buy_now=bool(buy_now),
    )
    CheckoutFlow.check_preconditions(context)

    gateway = RazorpayClient()
    flow = _flow(db_session, gateway)
    try:
        initiation = flow.initiate(context)
    except PaymentGatewayError:
        checkout_failures_total.labels(stage='gateway').inc()
        raise

    checkout_initiated_total.inc()
    send_conversion_events(initiation.events, user=g.user, address=address, **_client_info())

    return jsonify({
        'status': 'success',
        'intent_id': initiation.intent_id,
        'gateway_order_id': initiation.gateway_order_id,
        'amount': initiation.amount,
        'currency': initiation.currency,
        'key_id': gateway.key_id,
        'price_breakdown': initiation.price_breakdown.to_dict(),
    }), 201


def complete_checkout(db_session, initiation, confirmation: PaymentConfirmation, client_info: Optional[dict] = None):
    """
    Create, link and announce the orders of a confirmed payment.

    Shared by the payment callback and the Razorpay webhook.
    """
    flow = _flow(db_session)
    try:
        outcome = flow.complete(initiation, confirmation)
    except StorefrontError:
        checkout_failures_total.labels(stage='orders').inc()
        raise
    except Exception as e:
        checkout_failures_total.labels(stage='orders').inc()
        logger.exception(f"[CHECKOUT] Order creation failed for intent {initiation.intent_id}: {e}")
        raise StorefrontError(f'Order creation failed: {e}') from e

    if outcome.already_processed and not outcome.events:
        return outcome

    backend = flow.backend
    if not outcome.already_processed:
        orders_created_total.inc(len(outcome.order_ids))
        checkout_completed_total.labels(linked=str(outcome.linked).lower()).inc()

        if not initiation.buy_now:
            try:
                backend.clear_cart(initiation.user_id, [item.product_id for item in initiation.items])
            except Exception as e:
                logger.exception(f"[CHECKOUT] Failed to clear cart for user {initiation.user_id}: {e}")

    user = db_session.get(AppUser, initiation.user_id)
    address = db_session.get(Address, initiation.address_id)
    send_conversion_events(outcome.events, user=user, address=address, **(client_info or {}))

    if not outcome.already_processed and user and user.email:
        send_order_confirmation_email(
            user.email,
            user.full_name,
            backend.get_orders_by_gateway_order(initiation.gateway_order_id),
            initiation.amount,
        )

    return outcome


@checkout_bp.route('/payment/callback', methods=['POST'])
@require_login
def payment_callback():
    """Razorpay checkout success handler: verify, then create and link orders."""
    db_session = get_session()
    payload = request.get_json(silent=True) or {}

    order_id = payload.get('razorpay_order_id')
    payment_id = payload.get('razorpay_payment_id')
    signature = payload.get('razorpay_signature')
    if not order_id or not payment_id or not signature:
        raise BusinessLogicError('Incomplete payment confirmation')

    gateway = RazorpayClient()
    if not gateway.verify_payment_signature(order_id, payment_id, signature):
        checkout_failures_total.labels(stage='signature').inc()
        raise PaymentGatewayError('Payment verification failed')

    initiation = OrderBackend(db_session).load_initiation(order_id)
    if initiation.user_id != g.user_id:
        raise NotFoundError(f'No checkout found for payment order {order_id}')

    outcome = complete_checkout(
        db_session,
        initiation,
        PaymentConfirmation(order_id, payment_id, signature),
        _client_info(),
    )

    return jsonify({'status': 'success', **outcome.to_dict()}), 200 if outcome.already_processed else 201

