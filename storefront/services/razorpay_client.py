"""Razorpay API client for checkout payments."""
import hashlib
import hmac
import os
from typing import Any, Dict, Optional

import requests
from flask import current_app, has_app_context

from storefront.exceptions import PaymentGatewayError


class RazorpayClient:
    """Client for the Razorpay Orders and Payments APIs. Amounts in paise."""

    BASE_URL = "https://api.razorpay.com/v1"

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        timeout: int = 10
    ):
        """
        Initialize Razorpay client.

        Args:
            key_id: API key id. If None, reads RAZORPAY_KEY_ID from app config or env
            key_secret: API key secret. If None, reads RAZORPAY_KEY_SECRET
            webhook_secret: Webhook signing secret. If None, reads RAZORPAY_WEBHOOK_SECRET
            timeout: HTTP timeout in seconds
        """
        self.key_id = key_id or self._setting('RAZORPAY_KEY_ID')
        self.key_secret = key_secret or self._setting('RAZORPAY_KEY_SECRET')
        self.webhook_secret = webhook_secret or self._setting('RAZORPAY_WEBHOOK_SECRET')
        if not self.key_id or not self.key_secret:
            raise ValueError("RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET are required")

        self.timeout = timeout
        self.auth = (self.key_id, self.key_secret)

    @staticmethod
    def _setting(name: str) -> Optional[str]:
        if has_app_context():
            value = current_app.config.get(name)
            if value:
                return value
        return os.getenv(name)

    def create_order(
        self,
        amount: int,
        receipt: Optional[str] = None,
        currency: str = 'INR',
        notes: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """
        Open a payment session (Razorpay order) for an amount.

        Args:
            amount: Amount in paise
            receipt: Our reference, the order intent id
            currency: ISO currency code
            notes: Free-form key/values shown in the dashboard

        Returns:
            Dict with Razorpay's response, including the order 'id'

        Raises:
            PaymentGatewayError: If Razorpay rejects the request or is unreachable
        """
        url = f"{self.BASE_URL}/orders"

        payload = {
            "amount": int(amount),
            "currency": currency,
            "payment_capture": 1,
        }
        if receipt:
            payload["receipt"] = str(receipt)[:40]
        if notes:
            payload["notes"] = notes

        current_app.logger.info(f"[RAZORPAY] Creating order for {amount} {currency} (receipt {receipt})")

        try:
            response = requests.post(url, json=payload, auth=self.auth, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()

            current_app.logger.info(f"[RAZORPAY] Order created: {data.get('id')} - status: {data.get('status')}")

            return data

        except requests.HTTPError as e:
            current_app.logger.error(f"[RAZORPAY] Error creating order: {e.response.text}")
            raise PaymentGatewayError('Payment gateway rejected the order') from e
        except requests.RequestException as e:
            current_app.logger.error(f"[RAZORPAY] Unexpected error: {str(e)}")
            raise PaymentGatewayError('Payment gateway unavailable') from e

    def fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        """
        Fetch a payment by id.

        Raises:
            PaymentGatewayError: If Razorpay returns an error
        """
        url = f"{self.BASE_URL}/payments/{payment_id}"

        current_app.logger.info(f"[RAZORPAY] Getting payment: {payment_id}")

        try:
            response = requests.get(url, auth=self.auth, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()

            current_app.logger.info(f"[RAZORPAY] Payment status: {data.get('status')} - {payment_id}")

            return data

        except requests.HTTPError as e:
            current_app.logger.error(f"[RAZORPAY] Error getting payment: {e.response.text}")
            raise PaymentGatewayError(f'Payment {payment_id} could not be fetched') from e
        except requests.RequestException as e:
            current_app.logger.error(f"[RAZORPAY] Unexpected error: {str(e)}")
            raise PaymentGatewayError('Payment gateway unavailable') from e

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Check the checkout callback signature: HMAC-SHA256 of 'order_id|payment_id'."""
        if not order_id or not payment_id or not signature:
            return False
        expected = hmac.new(
            self.key_secret.encode('utf-8'),
            f"{order_id}|{payment_id}".encode('utf-8'),
            hashlib.sha256
        ).hexdigest()
        is_valid = hmac.compare_digest(expected, signature)
        if not is_valid:
            current_app.logger.warning(f"[RAZORPAY] Invalid payment signature for order {order_id}")
        return is_valid

    def verify_webhook_signature(self, body: bytes, signature: str) -> bool:
        """Check the X-Razorpay-Signature header: HMAC-SHA256 of the raw body."""
        if not self.webhook_secret:
            current_app.logger.warning("[RAZORPAY] RAZORPAY_WEBHOOK_SECRET not set, rejecting webhook")
            return False
        if not signature:
            current_app.logger.warning("[RAZORPAY] Missing X-Razorpay-Signature header")
            return False

        expected = hmac.new(
            self.webhook_secret.encode('utf-8'),
            body,
            hashlib.sha256
        ).hexdigest()
        return hmac.compare_digest(expected, signature)
