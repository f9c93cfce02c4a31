import pytest
from datetime import datetime, timedelta, timezone

from storefront import create_app
from storefront.database import db_session, get_session
from storefront.models import (
    AppUser, Address, Brand, Product, ProductVariant, CartItem, Coupon
)
from storefront.services.pricing_service import DiscountType


@pytest.fixture(scope='function')
def app():
    """Create application instance for testing (fresh in-memory database)."""
    app = create_app('config.TestConfig')
    with app.app_context():
        yield app
    db_session.remove()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Create database session for testing."""
    session = get_session()
    yield session
    session.rollback()


@pytest.fixture(scope='function')
def catalog(session):
    """
    Seed a customer with a two-brand bag and some coupons.

    Bag (paise):
        Brand A: shirt 30000 x1 (category 'apparel')
        Brand B: mug variant 20000 x1 (category 'home')
        Brand B: unpublished lamp (not checked out)

    Returns ids only; ORM instances detach after each request.
    """
    user = AppUser(email='asha@example.com', first_name='Asha', last_name='Rao', phone='+91 98765 43210')
    session.add(user)
    session.flush()

    address = Address(
        user_id=user.id, full_name='Asha Rao', phone='9876543210',
        street='12 MG Road', city='Bengaluru', state='Karnataka', zip='560001', is_primary=True
    )
    brand_a = Brand(name='Brand A', email='a@brands.test')
    brand_b = Brand(name='Brand B', email='b@brands.test')
    session.add_all([address, brand_a, brand_b])
    session.flush()

    shirt = Product(
        brand_id=brand_a.id, title='Linen Shirt', native_sku='SHIRT-1',
        price=30000, compare_at_price=40000, category_id='apparel', quantity=10
    )
    mug = Product(
        brand_id=brand_b.id, title='Stoneware Mug', native_sku='MUG-1',
        price=15000, category_id='home'
    )
    lamp = Product(
        brand_id=brand_b.id, title='Desk Lamp', native_sku='LAMP-1',
        price=90000, category_id='home', is_published=False
    )
    session.add_all([shirt, mug, lamp])
    session.flush()

    mug_large = ProductVariant(product_id=mug.id, name='Large', native_sku='MUG-1-L', price=20000, quantity=5)
    session.add(mug_large)
    session.flush()

    session.add_all([
        CartItem(user_id=user.id, product_id=shirt.id, quantity=1),
        CartItem(user_id=user.id, product_id=mug.id, variant_id=mug_large.id, quantity=1),
        CartItem(user_id=user.id, product_id=lamp.id, quantity=1),
    ])

    session.add_all([
        Coupon(code='save10', discount_type=DiscountType.PERCENTAGE, discount_value=10),
        Coupon(code='FLAT100', discount_type=DiscountType.FIXED, discount_value=10000, min_order_amount=20000),
        Coupon(code='HOME20', discount_type=DiscountType.PERCENTAGE, discount_value=20, category_id='home'),
        Coupon(code='TOYS5', discount_type=DiscountType.PERCENTAGE, discount_value=5, category_id='toys'),
        Coupon(
            code='OLD', discount_type=DiscountType.FIXED, discount_value=5000,
            expires_at=datetime.now(timezone.utc) - timedelta(days=1)
        ),
    ])
    session.commit()

    return {
        'user_id': user.id,
        'address_id': address.id,
        'brand_a_id': brand_a.id,
        'brand_b_id': brand_b.id,
        'shirt_id': shirt.id,
        'mug_id': mug.id,
        'mug_large_id': mug_large.id,
        'lamp_id': lamp.id,
    }


@pytest.fixture(scope='function')
def authenticated_client(client, catalog):
    """Test client logged in as the seeded customer."""
    with client.session_transaction() as sess:
        sess['user_id'] = catalog['user_id']
    return client
