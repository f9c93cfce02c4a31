"""
Unit tests for brand partitioning of a paid checkout.
"""

import pytest
from storefront.services.partition_service import (
    ALLOCATION_PROPORTIONAL, PAYMENT_METHOD,
    allocate, allocate_largest_remainder, allocate_proportional,
    group_items_by_brand, partition_by_brand,
)
from storefront.services.pricing_service import CouponRules, DiscountType, LineItem, price_line_items


def item(product_id, brand_id, price, quantity=1, **kwargs):
    return LineItem(product_id=product_id, brand_id=brand_id, unit_price=price, quantity=quantity, **kwargs)


def partition(items, coupon=None, **kwargs):
    breakdown = price_line_items(items, coupon)
    groups = partition_by_brand(
        items, breakdown, user_id=7, address_id=3, gateway_order_id='order_abc', **kwargs
    )
    return breakdown, groups


class TestGrouping:
    """Tests for grouping by brand."""

    def test_first_seen_brand_order(self):
        items = [item(1, 20, 100), item(2, 10, 100), item(3, 20, 100)]
        grouped = group_items_by_brand(items)

        assert list(grouped) == [20, 10]
        assert [i.product_id for i in grouped[20]] == [1, 3]

    def test_one_group_per_brand(self):
        _, groups = partition([item(1, 1, 1000), item(2, 2, 2000), item(3, 1, 500, quantity=3)])

        assert [g.brand_id for g in groups] == [1, 2]
        assert [g.total_items for g in groups] == [4, 1]
        assert all(g.payment_method == PAYMENT_METHOD for g in groups)
        assert all(g.gateway_order_id == 'order_abc' for g in groups)
        assert all(g.shiprocket_order_id is None and g.shiprocket_shipment_id is None for g in groups)


class TestBrandTotals:
    """Tests for brand totals and discount allocation."""

    def test_two_brand_split(self):
        """Test a 10000 discount on 30000 + 70000 splits 3000 / 7000."""
        coupon = CouponRules(DiscountType.FIXED, 10000)
        breakdown, groups = partition([item(1, 1, 30000), item(2, 2, 70000)], coupon)

        assert breakdown.coupon == 10000
        assert [g.total_amount for g in groups] == [30000, 70000]
        assert [g.discount_amount for g in groups] == [3000, 7000]

    @pytest.mark.parametrize('prices', [
        [(1, 33333), (2, 33333), (3, 33334)],
        [(1, 101), (2, 203), (1, 999), (3, 7)],
        [(5, 49999)],
    ])
    def test_brand_totals_sum_to_subtotal(self, prices):
        items = [item(i, brand, price) for i, (brand, price) in enumerate(prices, start=1)]
        breakdown, groups = partition(items, CouponRules(DiscountType.PERCENTAGE, 17))

        assert sum(g.total_amount for g in groups) == breakdown.items

    def test_largest_remainder_is_exact(self):
        """Test the default allocation never drifts from the coupon."""
        items = [item(1, 1, 10000), item(2, 2, 10000), item(3, 3, 10000)]
        breakdown, groups = partition(items, CouponRules(DiscountType.FIXED, 1000))

        assert sum(g.discount_amount for g in groups) == breakdown.coupon == 1000
        assert [g.discount_amount for g in groups] == [334, 333, 333]

    def test_proportional_stays_within_tolerance(self):
        """Test per-group rounding drifts at most N - 1 paise."""
        items = [item(1, 1, 10000), item(2, 2, 10000), item(3, 3, 10000)]
        breakdown, groups = partition(items, CouponRules(DiscountType.FIXED, 1000), allocation=ALLOCATION_PROPORTIONAL)

        assert [g.discount_amount for g in groups] == [333, 333, 333]
        assert abs(sum(g.discount_amount for g in groups) - breakdown.coupon) <= len(groups) - 1

    def test_no_coupon_no_discount(self):
        _, groups = partition([item(1, 1, 100), item(2, 2, 200)])
        assert [g.discount_amount for g in groups] == [0, 0]
        assert all(g.coupon_code is None for g in groups)


class TestDeliveryFee:
    """Tests for delivery fee attachment."""

    def test_full_fee_on_every_group_by_default(self):
        breakdown, groups = partition([item(1, 1, 10000), item(2, 2, 20000)])

        assert breakdown.delivery == 5000
        assert [g.delivery_amount for g in groups] == [5000, 5000]

    def test_split_delivery_charges_once(self):
        breakdown, groups = partition([item(1, 1, 10000), item(2, 2, 20000)], split_delivery=True)

        assert sum(g.delivery_amount for g in groups) == breakdown.delivery
        assert [g.delivery_amount for g in groups] == [1667, 3333]

    def test_split_delivery_with_free_items(self):
        """Test an all-zero bag still charges the fee once."""
        _, groups = partition([item(1, 1, 0), item(2, 2, 0)], split_delivery=True)
        assert [g.delivery_amount for g in groups] == [5000, 0]


class TestAllocation:
    """Tests for the allocation helpers."""

    def test_ties_go_to_earlier_weight(self):
        assert allocate_largest_remainder(1, [1, 1]) == [1, 0]

    def test_zero_amount(self):
        assert allocate_largest_remainder(0, [5, 5]) == [0, 0]
        assert allocate_proportional(0, [5, 5]) == [0, 0]

    def test_zero_weights(self):
        assert allocate_largest_remainder(100, [0, 0]) == [0, 0]

    def test_proportional_rounds_half_up(self):
        assert allocate_proportional(5, [1, 1]) == [3, 3]

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            allocate(10, [1], 'random')


def test_group_to_dict_carries_items():
    _, groups = partition([item(1, 1, 100, sku='SKU-1')], intent_id='intent-1', gateway_payment_id='pay_1')
    data = groups[0].to_dict()

    assert data['intent_id'] == 'intent-1'
    assert data['gateway_payment_id'] == 'pay_1'
    assert data['items'][0]['sku'] == 'SKU-1'
