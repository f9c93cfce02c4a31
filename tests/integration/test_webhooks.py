"""
Integration tests for the Razorpay webhook.
"""

import hashlib
import hmac
import json
import pytest
from unittest.mock import patch

from storefront.models import Order, OrderIntent, IntentStatus


def signed_post(client, payload, secret='rzp_webhook_secret', signature=None):
    body = json.dumps(payload).encode()
    if signature is None:
        signature = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return client.post(
        '/webhooks/razorpay',
        data=body,
        content_type='application/json',
        headers={'X-Razorpay-Signature': signature},
    )


def captured(order_id='order_rzp_hook', payment_id='pay_hook_1'):
    return {
        'event': 'payment.captured',
        'payload': {'payment': {'entity': {'id': payment_id, 'order_id': order_id, 'amount': 50000}}},
    }


@pytest.fixture
def initiated(authenticated_client, catalog):
    """A checkout whose browser callback never arrived."""
    with patch('storefront.services.razorpay_client.requests.post') as mock_post:
        mock_post.return_value.json.return_value = {'id': 'order_rzp_hook'}
        response = authenticated_client.post('/checkout/pay', json={'address_id': catalog['address_id']})
    return response.get_json()['intent_id']


class TestRazorpayWebhook:
    """Test POST /webhooks/razorpay."""

    def test_invalid_signature(self, client, catalog):
        response = signed_post(client, captured(), signature='bad')
        assert response.status_code == 401

    def test_missing_signature(self, client, catalog):
        response = client.post('/webhooks/razorpay', json=captured())
        assert response.status_code == 401

    def test_other_events_are_ignored(self, client, catalog):
        response = signed_post(client, {'event': 'refund.processed', 'payload': {}})

        assert response.status_code == 200
        assert response.get_json()['status'] == 'ignored'

    def test_unknown_order_is_acknowledged(self, client, catalog):
        response = signed_post(client, captured(order_id='order_nobody'))

        assert response.status_code == 200
        assert response.get_json()['status'] == 'acknowledged'

    def test_payment_captured_completes_checkout(self, client, initiated, session):
        response = signed_post(client, captured())
        data = response.get_json()

        assert response.status_code == 200
        assert data['status'] == 'processed'
        assert data['intent_id'] == initiated
        assert len(data['order_ids']) == 2
        assert session.get(OrderIntent, initiated).status == IntentStatus.LINKED
        assert all(o.gateway_payment_id == 'pay_hook_1' for o in session.query(Order).all())

    def test_second_delivery_is_already_processed(self, client, initiated, session):
        signed_post(client, captured())

        response = signed_post(client, captured())

        assert response.get_json()['status'] == 'already_processed'
        assert session.query(Order).count() == 2

    def test_callback_after_webhook_returns_same_orders(self, authenticated_client, initiated, session):
        order_ids = signed_post(authenticated_client, captured()).get_json()['order_ids']

        signature = hmac.new(b'rzp_test_secret', b'order_rzp_hook|pay_hook_1', hashlib.sha256).hexdigest()
        response = authenticated_client.post('/checkout/payment/callback', json={
            'razorpay_order_id': 'order_rzp_hook',
            'razorpay_payment_id': 'pay_hook_1',
            'razorpay_signature': signature,
        })

        assert response.status_code == 200
        assert response.get_json()['order_ids'] == order_ids
        assert session.query(Order).count() == 2
