"""Flask application factory."""
from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect, CSRFError
from werkzeug.exceptions import HTTPException
from mostrador.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # JSON clients send the token in the X-CSRFToken header
    csrf = CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({
            'status': 'error',
            'code': 'CSRF_ERROR',
            'message': 'La sesión ha expirado. Recarga la página.'
        }), 400

    # Sentry for error tracking in production
    sentry_dsn = app.config.get('SENTRY_DSN')
    if sentry_dsn and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[FlaskIntegration()],
            traces_sample_rate=app.config.get('SENTRY_TRACES_SAMPLE_RATE', 0.1),
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Plan feature cache (Redis)
    from mostrador.services.cache_service import init_cache
    init_cache(app)

    # Prometheus metrics instrumentation
    from mostrador.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind Nginx reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Multi-tenant: load user and tenant context before each request
    from mostrador.middleware import load_user_and_tenant

    @app.before_request
    def before_request_handler():
        """Load user and tenant context for each request."""
        load_user_and_tenant()

    # Error Handlers
    from mostrador.exceptions import SaasError

    @app.errorhandler(SaasError)
    def handle_saas_error(error):
        """Serialize application exceptions as JSON."""
        if error.status_code >= 500:
            app.logger.error(f"SaasError [{error.status_code}] {error.code}: {error.message}")
        else:
            app.logger.info(f"SaasError [{error.status_code}] {error.code}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException):
            return jsonify({
                'status': 'error',
                'code': error.name.upper().replace(' ', '_'),
                'message': error.description
            }), error.code
        app.logger.exception(f"Unhandled Exception on {request.method} {request.path}: {error}")
        return jsonify({'status': 'error', 'code': 'INTERNAL_ERROR', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from mostrador.blueprints.sales import sales_bp
    from mostrador.blueprints.cash import cash_bp
    from mostrador.blueprints.customers import customers_bp
    from mostrador.blueprints.metrics import metrics_bp

    app.register_blueprint(sales_bp)
    app.register_blueprint(cash_bp)
    app.register_blueprint(customers_bp)

    # Scraped by Prometheus, never posted to
    csrf.exempt(metrics_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from mostrador.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
