"""Coupon eligibility and validation."""
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence

from sqlalchemy import or_

from storefront.exceptions import CouponError
from storefront.models import Coupon, normalize_coupon_code
from storefront.services.pricing_service import CouponRules, DiscountType

logger = logging.getLogger(__name__)


def _rules(coupon) -> CouponRules:
    if isinstance(coupon, CouponRules):
        return coupon
    if isinstance(coupon, dict):
        return rules_from_dict(coupon)
    return coupon.to_rules()


def rules_from_dict(data: dict) -> CouponRules:
    """Rules from a serialized coupon (see Coupon.to_dict)."""
    return CouponRules(
        discount_type=DiscountType(data['discount_type']),
        discount_value=int(data.get('discount_value') or 0),
        max_discount_amount=data.get('max_discount_amount'),
        category_id=data.get('category_id'),
        sub_category_id=data.get('sub_category_id'),
        product_type_id=data.get('product_type_id'),
    )


def is_coupon_applicable(coupon, cart_items: Sequence[Any]) -> bool:
    """
    Whether a coupon's scope matches the bag.

    An unscoped coupon applies to everything. A scoped one needs at least one
    item matching every scope field it sets (on the same item).
    """
    rules = _rules(coupon)
    if not rules.is_scoped:
        return True
    return any(rules.matches(item) for item in cart_items)


def filter_applicable_coupons(coupons: Iterable, cart_items: Sequence[Any]) -> List:
    """Keep only the coupons worth showing for this bag."""
    return [coupon for coupon in coupons if is_coupon_applicable(coupon, cart_items)]


def get_coupon_by_code(session, code: str) -> Optional[Coupon]:
    return session.query(Coupon).filter(Coupon.code == normalize_coupon_code(code)).first()


def validate_coupon(session, code: str, total_amount: int, now: Optional[datetime] = None) -> Coupon:
    """
    Server-side checks before a coupon may be applied.

    Args:
        session: SQLAlchemy session
        code: coupon code as typed by the user (case-insensitive)
        total_amount: bag subtotal in paise
        now: clock override for tests

    Returns:
        The Coupon row

    Raises:
        CouponError: invalid, expired, below minimum, exhausted or oversized
    """
    now = now or datetime.now(timezone.utc)
    coupon = get_coupon_by_code(session, code or '')

    if not coupon or not coupon.is_active:
        raise CouponError('Coupon is invalid', status_code=404)
    if coupon.is_expired(now):
        raise CouponError('Coupon has expired')
    if total_amount < coupon.min_order_amount:
        raise CouponError(
            f'Coupon requires a minimum order amount of ₹{format_rupees(coupon.min_order_amount)}'
        )
    if coupon.max_uses and coupon.uses >= coupon.max_uses:
        raise CouponError('Coupon has reached maximum usage limit')
    if coupon.max_discount_amount and coupon.max_discount_amount > total_amount:
        raise CouponError('Coupon cannot be applied as the discount exceeds the total amount')

    logger.info(f"[COUPON] {coupon.code} validated for amount {total_amount}")
    return coupon


def list_active_coupons(session, now: Optional[datetime] = None) -> List[Coupon]:
    """Active, unexpired coupons (usage limits are checked on apply)."""
    now = now or datetime.now(timezone.utc)
    return (
        session.query(Coupon)
        .filter(
            Coupon.is_active.is_(True),
            or_(Coupon.expires_at.is_(None), Coupon.expires_at > now)
        )
        .order_by(Coupon.code)
        .all()
    )


def list_active_coupon_dicts(session, now: Optional[datetime] = None) -> List[dict]:
    """
    Serialized active coupons, served from cache when Redis is up.

    Cached entries are re-checked against now, so a coupon that expired
    after it was cached is not listed.
    """
    from storefront.services.cache_service import get_cache

    now = now or datetime.now(timezone.utc)
    cache = get_cache()
    coupons = cache.memoize(
        'coupons',
        'active',
        lambda: [coupon.to_dict() for coupon in list_active_coupons(session, now)],
        ttl=cache.coupons_ttl,
    )
    return [coupon for coupon in coupons if not _expired(coupon.get('expires_at'), now)]


def _expired(expires_at: Optional[str], now: datetime) -> bool:
    if not expires_at:
        return False
    expires = datetime.fromisoformat(expires_at)
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires <= now


def increment_coupon_usage(session, code: Optional[str]) -> None:
    """Count one use of the coupon; caller commits."""
    if not code:
        return
    coupon = get_coupon_by_code(session, code)
    if coupon:
        coupon.uses = (coupon.uses or 0) + 1


def format_rupees(paise: int) -> str:
    """Display-only conversion, e.g. 49900 -> '499', 49950 -> '499.50'."""
    rupees, rem = divmod(int(paise), 100)
    return f"{rupees:,}" if rem == 0 else f"{rupees:,}.{rem:02d}"
