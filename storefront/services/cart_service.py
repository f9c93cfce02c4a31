"""Cart reads for checkout: availability filtering and priced snapshots."""
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session, joinedload

from storefront.exceptions import BusinessLogicError, NotFoundError
from storefront.models import CartItem, Product, ProductVariant
from storefront.services.pricing_service import LineItem


def get_cart_for_user(session: Session, user_id: int) -> List[CartItem]:
    """All bag rows of a user, oldest first."""
    return (
        session.query(CartItem)
        .options(joinedload(CartItem.product), joinedload(CartItem.variant))
        .filter(CartItem.user_id == user_id)
        .order_by(CartItem.id)
        .all()
    )


def is_cart_item_available(item: CartItem) -> bool:
    """Checked-out lines only: selected, sellable product, live in-stock variant."""
    if not item.status or not item.product or not item.product.is_sellable:
        return False
    if item.variant_id is not None:
        variant = item.variant
        if variant is None or variant.is_deleted or variant.quantity <= 0:
            return False
    return True


def split_available_items(items: List[CartItem]) -> Tuple[List[CartItem], List[CartItem]]:
    """Partition bag rows into (available, unavailable)."""
    available = [item for item in items if is_cart_item_available(item)]
    available_ids = {item.id for item in available}
    unavailable = [item for item in items if item.id not in available_ids]
    return available, unavailable


def resolve_unit_price(product: Product, variant: Optional[ProductVariant]) -> int:
    """Variant price wins, then product price, then 0."""
    if variant is not None and variant.price is not None:
        return int(variant.price)
    return int(product.price or 0)


def to_line_item(product: Product, variant: Optional[ProductVariant], quantity: int) -> LineItem:
    """Freeze a product/variant/quantity into a LineItem."""
    compare_at = None
    if variant is not None and variant.compare_at_price is not None:
        compare_at = int(variant.compare_at_price)
    elif product.compare_at_price is not None:
        compare_at = int(product.compare_at_price)

    return LineItem(
        product_id=product.id,
        brand_id=product.brand_id,
        unit_price=resolve_unit_price(product, variant),
        quantity=int(quantity),
        variant_id=variant.id if variant is not None else None,
        sku=(variant.native_sku if variant is not None and variant.native_sku else product.native_sku),
        title=product.title,
        category_id=product.category_id,
        sub_category_id=product.sub_category_id,
        product_type_id=product.product_type_id,
        compare_at_price=compare_at,
    )


def get_available_line_items(session: Session, user_id: int) -> List[LineItem]:
    """Priced snapshots of the user's checkout-eligible bag lines."""
    available, _ = split_available_items(get_cart_for_user(session, user_id))
    return [to_line_item(item.product, item.variant, item.quantity) for item in available]


def get_buy_now_line_item(session: Session, product_id: int, variant_id: Optional[int], quantity: int) -> LineItem:
    """Single-item checkout that bypasses the bag."""
    if quantity is None or int(quantity) < 1:
        raise BusinessLogicError('Quantity must be at least 1')

    product = session.query(Product).filter(Product.id == product_id).first()
    if not product or not product.is_sellable:
        raise NotFoundError(f'Product with ID {product_id} not available')

    variant = None
    if variant_id is not None:
        variant = session.query(ProductVariant).filter(
            ProductVariant.id == variant_id,
            ProductVariant.product_id == product_id,
            ProductVariant.is_deleted.is_(False)
        ).first()
        if not variant or variant.quantity <= 0:
            raise NotFoundError(f'Variant with ID {variant_id} for product {product_id} not available')

    return to_line_item(product, variant, quantity)


def clear_cart(session: Session, user_id: int, product_ids: Optional[List[int]] = None) -> int:
    """Remove ordered lines from the bag; caller commits."""
    query = session.query(CartItem).filter(CartItem.user_id == user_id)
    if product_ids is not None:
        query = query.filter(CartItem.product_id.in_(product_ids))
    return query.delete(synchronize_session=False)
