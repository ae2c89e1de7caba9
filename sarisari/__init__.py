"""Flask application factory."""
import logging
import os

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from sarisari.database import init_db
from sarisari.utils.api_response import error


def create_app(config_object='config.Config', test_config=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Initialize Sentry for error tracking in production
    if app.config.get('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=app.config['SENTRY_DSN'],
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
            environment=app.config.get('ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Setup Prometheus metrics instrumentation
    from sarisari.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Initialize database and services
    store = init_db(app)
    from sarisari.services import init_services
    init_services(app, store)

    # Load caller identity before each request
    from sarisari.middleware import load_identity

    @app.before_request
    def before_request_handler():
        load_identity()

    # Error Handlers
    from sarisari.exceptions import PosError

    @app.errorhandler(PosError)
    def handle_pos_error(e):
        """Handle custom application exceptions."""
        if e.status_code >= 500:
            app.logger.error(f"{e.kind} [{e.status_code}]: {e.message}")
        else:
            app.logger.warning(f"{e.kind} [{e.status_code}]: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def not_found_error(e):
        return error('Not Found', 404)

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(e):
        if isinstance(e, HTTPException) and e.code < 500:
            return error(e.description or e.name, e.code)
        app.logger.exception(f"Unhandled Exception: {e}")
        return error('Internal Server Error', 500)

    # Register blueprints
    from sarisari.blueprints.sales import sales_bp
    from sarisari.blueprints.inventory import inventory_bp
    from sarisari.blueprints.metrics import metrics_bp

    app.register_blueprint(sales_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from sarisari.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"Ledger store ready ({store.engine.dialect.name})")

    return app
