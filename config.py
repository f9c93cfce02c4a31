"""Configuration module for the storefront Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    TESTING = False

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours

    # Database - Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'storefront')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'storefront')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'storefront')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Pricing (all amounts in paise)
    FREE_DELIVERY_THRESHOLD = int(os.getenv('FREE_DELIVERY_THRESHOLD', '50000'))
    DELIVERY_CHARGE = int(os.getenv('DELIVERY_CHARGE', '5000'))
    CURRENCY = os.getenv('CURRENCY', 'INR')

    # Checkout / order submission
    ORDER_MAX_RETRIES = int(os.getenv('ORDER_MAX_RETRIES', '3'))
    ORDER_RETRY_DELAY_BASE = float(os.getenv('ORDER_RETRY_DELAY_BASE', '1.0'))  # seconds
    # False keeps the full delivery fee on every brand order
    SPLIT_DELIVERY = os.getenv('SPLIT_DELIVERY', 'false').lower() == 'true'
    # 'largest_remainder' (exact) or 'proportional' (per-group rounding)
    COUPON_ALLOCATION = os.getenv('COUPON_ALLOCATION', 'largest_remainder')
    INTENT_ABANDON_HOURS = int(os.getenv('INTENT_ABANDON_HOURS', '24'))

    # Razorpay
    RAZORPAY_KEY_ID = os.getenv('RAZORPAY_KEY_ID')
    RAZORPAY_KEY_SECRET = os.getenv('RAZORPAY_KEY_SECRET')
    RAZORPAY_WEBHOOK_SECRET = os.getenv('RAZORPAY_WEBHOOK_SECRET')

    # Facebook Conversions API
    FB_PIXEL_ID = os.getenv('FB_PIXEL_ID')
    FB_CAPI_ACCESS_TOKEN = os.getenv('FB_CAPI_ACCESS_TOKEN')
    FB_GRAPH_API_VERSION = os.getenv('FB_GRAPH_API_VERSION', 'v19.0')
    FB_TEST_EVENT_CODE = os.getenv('FB_TEST_EVENT_CODE')

    # Email configuration
    MAIL_SERVER = os.getenv('SMTP_HOST', 'smtp.gmail.com')
    MAIL_PORT = int(os.getenv('SMTP_PORT', 587))
    MAIL_USE_TLS = True
    MAIL_USE_SSL = False
    MAIL_USERNAME = os.getenv('SMTP_USER') or ''
    MAIL_PASSWORD = os.getenv('SMTP_PASSWORD') or ''
    MAIL_DEFAULT_SENDER = (
        os.getenv('SMTP_FROM')
        or MAIL_USERNAME
        or 'no-reply@localhost'
    )
    MAIL_SUPPRESS_SEND = os.getenv('MAIL_SUPPRESS_SEND', 'false').lower() == 'true'
    STORE_NAME = os.getenv('STORE_NAME', 'Storefront')

    # Redis Cache Configuration
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_COUPONS_TTL = int(os.getenv('CACHE_COUPONS_TTL', '300'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'storefront')


class TestConfig(Config):
    """Configuration used by the pytest suite."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SECRET_KEY = 'test-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ECHO = False

    ORDER_RETRY_DELAY_BASE = 0.0

    RAZORPAY_KEY_ID = 'rzp_test_key'
    RAZORPAY_KEY_SECRET = 'rzp_test_secret'
    RAZORPAY_WEBHOOK_SECRET = 'rzp_webhook_secret'

    FB_PIXEL_ID = None
    FB_CAPI_ACCESS_TOKEN = None

    MAIL_SUPPRESS_SEND = True
    CACHE_ENABLED = False
