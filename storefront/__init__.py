"""Flask application factory."""
from flask import Flask, request, jsonify
from storefront.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            profiles_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Flask-Mail for order confirmations
    from storefront.services.email_service import init_mail
    init_mail(app)

    # Redis cache
    from storefront.services.cache_service import init_cache
    init_cache(app)

    # Prometheus metrics
    from storefront.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: trust the reverse proxy headers
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    from storefront.middleware import load_user

    @app.before_request
    def before_request_handler():
        """Load the logged-in user for each request."""
        load_user()

    # Error Handlers
    from storefront.exceptions import StorefrontError

    @app.errorhandler(StorefrontError)
    def handle_storefront_error(error):
        """Handle custom application exceptions."""
        app.logger.error(f"StorefrontError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        import traceback
        from werkzeug.exceptions import HTTPException
        if isinstance(error, HTTPException) and error.code != 500:
            return jsonify({'status': 'error', 'message': error.description}), error.code

        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from storefront.blueprints.checkout import checkout_bp
    from storefront.blueprints.orders import orders_bp
    from storefront.blueprints.metrics import metrics_bp
    from storefront.blueprints.webhooks import webhooks_bp

    app.register_blueprint(checkout_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(metrics_bp)
    app.register_blueprint(webhooks_bp)

    # Register CLI commands
    from storefront.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"MAIL_SERVER={app.config.get('MAIL_SERVER')}")
    app.logger.info(f"CHECKOUT split_delivery={app.config.get('SPLIT_DELIVERY')} allocation={app.config.get('COUPON_ALLOCATION')}")

    return app
