"""Flask application factory."""
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from fulfillment.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Initialize Sentry for error tracking in production
    if app.config.get('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=app.config['SENTRY_DSN'],
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=app.config.get('ENV'),
        )

    # Redis cache for store settings
    from fulfillment.services.cache_service import init_cache
    init_cache(app)

    # Prometheus metrics instrumentation
    from fulfillment.blueprints.metrics import setup_metrics_instrumentation, MetricsNotifier
    setup_metrics_instrumentation(app)

    # Initialize database
    init_db(app)

    # Collaborators shared by every request
    from fulfillment.services.notification_service import FanoutNotifier, LoggingNotifier
    from fulfillment.services.tracking_service import PositionFeed
    app.extensions['notifier'] = FanoutNotifier(MetricsNotifier(), LoggingNotifier())
    app.extensions['position_feed'] = PositionFeed()

    # Error Handlers
    from fulfillment.exceptions import FulfillmentError

    @app.errorhandler(FulfillmentError)
    def handle_fulfillment_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"{error.kind} [{error.status_code}]: {error.message}")
        else:
            app.logger.info(f"{error.kind} [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'error': error.description or error.name}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.exception(f"Unhandled Exception: {error}")
        return jsonify({'error': 'Internal server error'}), 500

    # Register blueprints
    from fulfillment.blueprints.orders import orders_bp
    from fulfillment.blueprints.deliveries import deliveries_bp
    from fulfillment.blueprints.drivers import drivers_bp
    from fulfillment.blueprints.shipping import shipping_bp
    from fulfillment.blueprints.settings import settings_bp
    from fulfillment.blueprints.payments import payments_bp
    from fulfillment.blueprints.metrics import metrics_bp

    app.register_blueprint(orders_bp)
    app.register_blueprint(deliveries_bp)
    app.register_blueprint(drivers_bp)
    app.register_blueprint(shipping_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(metrics_bp)

    # CLI commands
    from fulfillment.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
