"""
Coupon-aware price calculation.

Pure functions over integer paise. Nothing here touches the database or the
request, so the checkout can re-price the bag on every request.
"""
import enum
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Sequence

# Paise
FREE_DELIVERY_THRESHOLD = 50000
DELIVERY_CHARGE = 5000

SCOPE_FIELDS = ('category_id', 'sub_category_id', 'product_type_id')


class DiscountType(str, enum.Enum):
    """How a coupon's discount_value is interpreted."""
    PERCENTAGE = 'percentage'
    FIXED = 'fixed'


@dataclass(frozen=True)
class CouponRules:
    """The subset of a coupon the calculator needs."""
    discount_type: DiscountType
    discount_value: int
    max_discount_amount: Optional[int] = None
    category_id: Optional[str] = None
    sub_category_id: Optional[str] = None
    product_type_id: Optional[str] = None

    @property
    def is_scoped(self) -> bool:
        return any(getattr(self, name) is not None for name in SCOPE_FIELDS)

    def matches(self, item: Any) -> bool:
        """True when the item satisfies every scope field the coupon sets."""
        for name in SCOPE_FIELDS:
            required = getattr(self, name)
            if required is not None and getattr(item, name, None) != required:
                return False
        return True


@dataclass(frozen=True)
class LineItemMeta:
    """Scope data of a line, for callers that only have category ids."""
    category_id: Optional[str] = None
    sub_category_id: Optional[str] = None
    product_type_id: Optional[str] = None


@dataclass(frozen=True)
class LineItem:
    """Priced snapshot of one cart line, taken at calculation time."""
    product_id: int
    brand_id: int
    unit_price: int
    quantity: int
    variant_id: Optional[int] = None
    sku: Optional[str] = None
    title: Optional[str] = None
    category_id: Optional[str] = None
    sub_category_id: Optional[str] = None
    product_type_id: Optional[str] = None
    compare_at_price: Optional[int] = None

    def __post_init__(self):
        if self.quantity < 1:
            raise ValueError(f'quantity must be >= 1, got {self.quantity}')
        if self.unit_price < 0:
            raise ValueError(f'unit_price must be >= 0, got {self.unit_price}')

    @property
    def line_amount(self) -> int:
        return self.unit_price * self.quantity

    @property
    def mrp_amount(self) -> int:
        """Line amount at compare-at price (falls back to the selling price)."""
        mrp = self.compare_at_price if self.compare_at_price is not None else self.unit_price
        return max(mrp, self.unit_price) * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LineItem':
        return cls(**data)


@dataclass(frozen=True)
class PriceBreakdown:
    """Derived totals of a checkout; recomputed, never stored as a source of truth."""
    items: int
    discount: int
    coupon: int
    delivery: int
    total: int

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PriceBreakdown':
        return cls(**{name: int(data[name]) for name in ('items', 'discount', 'coupon', 'delivery', 'total')})


def round_half_up(value) -> int:
    """Round to the nearest paisa, halves away from zero."""
    return int(Decimal(value).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def calculate_delivery(items_total: int, free_delivery_threshold: int = FREE_DELIVERY_THRESHOLD,
                       delivery_charge: int = DELIVERY_CHARGE) -> int:
    """Flat delivery fee, waived at or above the threshold."""
    return 0 if items_total >= free_delivery_threshold else delivery_charge


def calculate_coupon_discount(line_amounts: Sequence[int], coupon: Optional[CouponRules],
                              items: Sequence[Any]) -> int:
    """
    Coupon discount over the lines the coupon is scoped to.

    A coupon matching no line yields 0 instead of an error. The result is
    always within [0, subtotal].
    """
    if coupon is None:
        return 0

    subtotal = sum(line_amounts)
    base = sum(amount for amount, item in zip(line_amounts, items) if coupon.matches(item))
    if base <= 0:
        return 0

    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = round_half_up(Decimal(base) * Decimal(coupon.discount_value) / Decimal(100))
        if coupon.max_discount_amount is not None:
            discount = min(discount, coupon.max_discount_amount)
    elif coupon.discount_type == DiscountType.FIXED:
        discount = min(coupon.discount_value, base)
    else:
        raise ValueError(f'Unknown discount type: {coupon.discount_type}')

    return max(0, min(discount, subtotal))


def calculate_total_price_with_coupon(
    line_amounts: Sequence[int],
    coupon: Optional[CouponRules],
    items: Sequence[Any],
    free_delivery_threshold: int = FREE_DELIVERY_THRESHOLD,
    delivery_charge: int = DELIVERY_CHARGE,
    mrp_amounts: Optional[Sequence[int]] = None,
) -> PriceBreakdown:
    """
    Compute the price breakdown of a bag.

    Args:
        line_amounts: unit_price * quantity per line, in paise
        coupon: applied coupon rules, or None
        items: per-line scope data (category/sub-category/product type),
            aligned with line_amounts
        free_delivery_threshold: subtotal from which delivery is free
        delivery_charge: flat delivery fee below the threshold
        mrp_amounts: optional compare-at amounts per line, used only for
            the informational MRP discount

    Returns:
        PriceBreakdown with total = max(0, items - coupon + delivery)
    """
    if len(line_amounts) != len(items):
        raise ValueError('line_amounts and items must have the same length')

    items_total = sum(line_amounts)
    coupon_discount = calculate_coupon_discount(line_amounts, coupon, items)
    delivery = calculate_delivery(items_total, free_delivery_threshold, delivery_charge)

    mrp_discount = 0
    if mrp_amounts is not None:
        mrp_discount = max(0, sum(mrp_amounts) - items_total)

    total = max(0, items_total - coupon_discount + delivery)

    return PriceBreakdown(
        items=items_total,
        discount=mrp_discount,
        coupon=coupon_discount,
        delivery=delivery,
        total=total,
    )


def price_line_items(line_items: List[LineItem], coupon: Optional[CouponRules], **kwargs) -> PriceBreakdown:
    """Convenience wrapper pricing LineItem snapshots directly."""
    return calculate_total_price_with_coupon(
        [item.line_amount for item in line_items],
        coupon,
        line_items,
        mrp_amounts=[item.mrp_amount for item in line_items],
        **kwargs
    )
