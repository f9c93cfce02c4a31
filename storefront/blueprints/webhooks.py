"""
Webhooks Blueprint for Razorpay notifications.
Completes paid checkouts whose browser callback never arrived.
"""

import logging
from flask import Blueprint, request, jsonify
from storefront.database import get_session
from storefront.exceptions import NotFoundError
from storefront.models import IntentStatus
from storefront.services.checkout_service import PaymentConfirmation
from storefront.services.order_service import OrderBackend
from storefront.services.razorpay_client import RazorpayClient

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint('webhooks', __name__, url_prefix='/webhooks')


@webhooks_bp.route('/razorpay', methods=['POST'])
def razorpay_webhook():
    """
    Handle Razorpay webhook notifications.

    Expected events:
    - payment.captured (creates and links orders if the callback was missed)
    Everything else is acknowledged and ignored.
    """
    try:
        signature = request.headers.get('X-Razorpay-Signature', '')
        if not RazorpayClient().verify_webhook_signature(request.get_data(), signature):
            logger.warning("Invalid Razorpay webhook signature")
            return jsonify({'error': 'Invalid signature'}), 401

        data = request.get_json(silent=True)
        if not data:
            logger.warning("Empty webhook payload")
            return jsonify({'error': 'Empty payload'}), 400

        event_type = data.get('event')
        logger.info(f"Received Razorpay webhook: event={event_type}")

        if event_type == 'payment.captured':
            return handle_payment_captured(data)

        logger.info(f"Unhandled webhook event: {event_type}")
        return jsonify({'status': 'ignored', 'event': event_type}), 200

    except Exception as e:
        logger.exception(f"Error processing Razorpay webhook: {e}")
        return jsonify({'error': 'Internal server error'}), 500


def handle_payment_captured(data: dict) -> tuple:
    """
    Complete the checkout of a captured payment.

    Args:
        data: Webhook payload

    Returns:
        tuple: (response, status_code)
    """
    from storefront.blueprints.checkout import complete_checkout

    payment = data.get('payload', {}).get('payment', {}).get('entity', {})
    order_id = payment.get('order_id')
    payment_id = payment.get('id')

    if not order_id or not payment_id:
        logger.warning(f"Missing order or payment id in webhook: {payment}")
        return jsonify({'status': 'acknowledged', 'message': 'Missing order id'}), 200

    db_session = get_session()
    backend = OrderBackend(db_session)

    intent = backend.get_intent_by_gateway_order(order_id)
    if intent and IntentStatus(intent.status) == IntentStatus.LINKED:
        logger.info(f"Payment {payment_id} for {order_id} already processed")
        return jsonify({'status': 'already_processed', 'intent_id': intent.id}), 200

    try:
        initiation = backend.load_initiation(order_id)
    except NotFoundError:
        logger.warning(f"No checkout found for Razorpay order {order_id}")
        return jsonify({'status': 'acknowledged', 'message': 'Unknown order'}), 200

    outcome = complete_checkout(db_session, initiation, PaymentConfirmation(order_id, payment_id))
    logger.info(f"Webhook completed intent {outcome.intent_id}: orders {outcome.order_ids}")
    return jsonify({'status': 'processed', **outcome.to_dict()}), 200
