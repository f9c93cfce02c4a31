"""
Brand partitioning of a paid checkout.

Every brand ships independently, so one payment becomes one order per brand.
The coupon discount (and optionally the delivery fee) is shared out across
those orders in proportion to each brand's pre-coupon subtotal.
"""
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from storefront.services.pricing_service import LineItem, PriceBreakdown, round_half_up

PAYMENT_METHOD = 'razorpay'

ALLOCATION_PROPORTIONAL = 'proportional'
ALLOCATION_LARGEST_REMAINDER = 'largest_remainder'
ALLOCATIONS = (ALLOCATION_PROPORTIONAL, ALLOCATION_LARGEST_REMAINDER)


@dataclass(frozen=True)
class BrandOrderGroup:
    """One brand's slice of a checkout; becomes exactly one Order."""
    brand_id: int
    user_id: int
    address_id: int
    gateway_order_id: str
    items: List[LineItem]
    total_amount: int
    discount_amount: int
    delivery_amount: int
    total_items: int
    coupon_code: Optional[str] = None
    tax_amount: int = 0
    payment_method: str = PAYMENT_METHOD
    shiprocket_order_id: Optional[str] = None
    shiprocket_shipment_id: Optional[str] = None
    intent_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['items'] = [item.to_dict() for item in self.items]
        return data


def group_items_by_brand(items: Sequence[LineItem]) -> Dict[int, List[LineItem]]:
    """Brand id -> items, brands in first-seen order."""
    groups: Dict[int, List[LineItem]] = {}
    for item in items:
        groups.setdefault(item.brand_id, []).append(item)
    return groups


def allocate_proportional(amount: int, weights: Sequence[int]) -> List[int]:
    """
    Round each share independently.

    The shares need not add up to amount; the drift is at most
    len(weights) - 1 paise.
    """
    total_weight = sum(weights)
    if amount <= 0 or total_weight <= 0:
        return [0] * len(weights)
    return [round_half_up(Decimal(amount) * Decimal(weight) / Decimal(total_weight)) for weight in weights]


def allocate_largest_remainder(amount: int, weights: Sequence[int]) -> List[int]:
    """
    Split amount by weight so the shares add up to amount exactly.

    Each share is floored, then the leftover paise go to the largest
    fractional remainders; ties go to the earlier weight.
    """
    total_weight = sum(weights)
    if amount <= 0 or total_weight <= 0:
        return [0] * len(weights)

    shares = []
    remainders = []
    for index, weight in enumerate(weights):
        share, remainder = divmod(amount * weight, total_weight)
        shares.append(share)
        remainders.append((remainder, -index))

    leftover = amount - sum(shares)
    for _, neg_index in sorted(remainders, reverse=True)[:leftover]:
        shares[-neg_index] += 1
    return shares


def allocate(amount: int, weights: Sequence[int], allocation: str) -> List[int]:
    if allocation == ALLOCATION_PROPORTIONAL:
        return allocate_proportional(amount, weights)
    if allocation == ALLOCATION_LARGEST_REMAINDER:
        return allocate_largest_remainder(amount, weights)
    raise ValueError(f'Unknown allocation policy: {allocation}')


def partition_by_brand(
    available_items: Sequence[LineItem],
    price_breakdown: PriceBreakdown,
    *,
    user_id: int,
    address_id: int,
    gateway_order_id: str,
    coupon_code: Optional[str] = None,
    split_delivery: bool = False,
    allocation: str = ALLOCATION_LARGEST_REMAINDER,
    intent_id: Optional[str] = None,
    gateway_payment_id: Optional[str] = None,
) -> List[BrandOrderGroup]:
    """
    Build one BrandOrderGroup per brand.

    Brand totals are summed from each brand's own items. The coupon discount
    is shared by brand subtotal. With split_delivery=False every group
    carries the full delivery fee; with True the fee is shared out so it is
    charged once overall.
    """
    by_brand = group_items_by_brand(available_items)
    brand_totals = [sum(item.line_amount for item in items) for items in by_brand.values()]

    discounts = allocate(price_breakdown.coupon, brand_totals, allocation)
    if split_delivery:
        deliveries = allocate_largest_remainder(price_breakdown.delivery, brand_totals)
        if price_breakdown.delivery and deliveries and not any(deliveries):
            # All-zero subtotals; charge the first brand
            deliveries[0] = price_breakdown.delivery
    else:
        deliveries = [price_breakdown.delivery] * len(brand_totals)

    groups = []
    for (brand_id, items), brand_total, discount, delivery in zip(
        by_brand.items(), brand_totals, discounts, deliveries
    ):
        groups.append(BrandOrderGroup(
            brand_id=brand_id,
            user_id=user_id,
            address_id=address_id,
            gateway_order_id=gateway_order_id,
            items=list(items),
            total_amount=brand_total,
            discount_amount=discount,
            delivery_amount=delivery,
            total_items=sum(item.quantity for item in items),
            coupon_code=coupon_code,
            intent_id=intent_id,
            gateway_payment_id=gateway_payment_id,
        ))
    return groups
