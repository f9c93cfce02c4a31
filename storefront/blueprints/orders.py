"""Orders blueprint - read back a customer's orders and intents."""
from flask import Blueprint, jsonify, g

from storefront.database import get_session
from storefront.middleware import require_login
from storefront.services.order_service import OrderBackend

orders_bp = Blueprint('orders', __name__, url_prefix='/orders')


@orders_bp.route('/', methods=['GET'])
@require_login
def list_orders():
    """All brand orders of the current user, newest first."""
    orders = OrderBackend(get_session()).list_orders_for_user(g.user_id)
    return jsonify({'status': 'success', 'orders': [order.to_dict() for order in orders]})


@orders_bp.route('/intents/<intent_id>', methods=['GET'])
@require_login
def get_intent(intent_id):
    """One order intent of the current user, with the orders linked to it."""
    intent = OrderBackend(get_session()).get_intent(intent_id, user_id=g.user_id)
    return jsonify({'status': 'success', 'intent': intent.to_dict()})
