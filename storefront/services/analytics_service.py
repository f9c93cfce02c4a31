"""
Facebook Conversions API (server-side pixel events).

Events are fire-and-forget: a failure is logged and never breaks checkout.
"""
import hashlib
import logging
import time
from typing import Any, Dict, Iterable, List, Optional

import requests
from flask import current_app

logger = logging.getLogger(__name__)

GRAPH_URL = "https://graph.facebook.com"


def _capi_enabled() -> bool:
    cfg = current_app.config
    return bool(cfg.get("FB_PIXEL_ID") and cfg.get("FB_CAPI_ACCESS_TOKEN"))


def hash_value(value: Optional[str]) -> Optional[str]:
    """SHA-256 of a trimmed, lower-cased identifier (None stays None)."""
    if value is None:
        return None
    normalized = str(value).strip().lower()
    if not normalized:
        return None
    return hashlib.sha256(normalized.encode('utf-8')).hexdigest()


def paise_to_rupees(amount: int) -> float:
    return round(int(amount) / 100, 2)


def build_user_data(user=None, address=None, client_ip: Optional[str] = None,
                    user_agent: Optional[str] = None) -> Dict[str, Any]:
    """Hashed customer identifiers in CAPI's user_data format."""
    fields = {}
    if user is not None:
        fields['em'] = hash_value(getattr(user, 'email', None))
        fields['fn'] = hash_value(getattr(user, 'first_name', None))
        fields['ln'] = hash_value(getattr(user, 'last_name', None))
        fields['ph'] = hash_value(_digits(getattr(user, 'phone', None)))
        fields['external_id'] = hash_value(getattr(user, 'id', None))
    if address is not None:
        fields['ct'] = hash_value(getattr(address, 'city', None))
        fields['st'] = hash_value(getattr(address, 'state', None))
        fields['zp'] = hash_value(getattr(address, 'zip', None))
        if not fields.get('ph'):
            fields['ph'] = hash_value(_digits(getattr(address, 'phone', None)))
        fields['country'] = hash_value('in')

    user_data = {key: [value] for key, value in fields.items() if value}
    if client_ip:
        user_data['client_ip_address'] = client_ip
    if user_agent:
        user_data['client_user_agent'] = user_agent
    return user_data


def _digits(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return ''.join(ch for ch in str(value) if ch.isdigit()) or None


def build_event_payload(event, user_data: Dict[str, Any], event_source_url: Optional[str] = None,
                        event_time: Optional[int] = None) -> Dict[str, Any]:
    """One CAPI event from a ConversionEvent; money goes out in rupees."""
    custom_data = {
        'value': paise_to_rupees(event.value),
        'currency': event.currency,
        'content_type': 'product',
        'content_ids': [str(c['id']) for c in event.contents],
        'contents': [
            {'id': str(c['id']), 'quantity': c['quantity'], 'item_price': paise_to_rupees(c['price'])}
            for c in event.contents
        ],
        'num_items': sum(c['quantity'] for c in event.contents),
    }
    if event.order_ids:
        custom_data['order_id'] = ','.join(str(order_id) for order_id in event.order_ids)

    payload = {
        'event_name': event.name,
        'event_time': event_time or int(time.time()),
        'event_id': event.event_id,
        'action_source': 'website',
        'user_data': user_data,
        'custom_data': custom_data,
    }
    if event_source_url:
        payload['event_source_url'] = event_source_url
    return payload


def send_conversion_events(
    events: Iterable,
    user=None,
    address=None,
    client_ip: Optional[str] = None,
    user_agent: Optional[str] = None,
    event_source_url: Optional[str] = None,
) -> bool:
    """
    Post ConversionEvents to the Conversions API.

    Returns:
        True if sent (or nothing to send), False on any error
    """
    events = list(events)
    if not events:
        return True

    if not _capi_enabled():
        logger.info(f"[CAPI DISABLED] Skipped {[e.name for e in events]}")
        return True

    cfg = current_app.config
    url = f"{GRAPH_URL}/{cfg.get('FB_GRAPH_API_VERSION', 'v19.0')}/{cfg['FB_PIXEL_ID']}/events"
    user_data = build_user_data(user, address, client_ip, user_agent)
    data: List[Dict[str, Any]] = [build_event_payload(e, user_data, event_source_url) for e in events]

    body = {'data': data}
    if cfg.get('FB_TEST_EVENT_CODE'):
        body['test_event_code'] = cfg['FB_TEST_EVENT_CODE']

    try:
        response = requests.post(
            url,
            json=body,
            params={'access_token': cfg['FB_CAPI_ACCESS_TOKEN']},
            timeout=5
        )
        response.raise_for_status()
        logger.info(f"[CAPI] Sent {[e.name for e in events]}: {response.json().get('events_received')} received")
        return True

    except requests.HTTPError as e:
        logger.error(f"[CAPI] Error sending events: {e.response.text}")
        return False
    except Exception as e:
        logger.exception(f"[CAPI] Unexpected error sending events: {e}")
        return False
