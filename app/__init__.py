"""Flask application factory."""
from flask import Flask, jsonify
from app.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Initialize Redis Cache (no-op when disabled or unreachable)
    from app.services.cache_service import init_cache
    init_cache(app)

    # Initialize database
    init_db(app)

    # Multi-Tenant: Load tenant and user context before each request
    from app.middleware import load_tenant_context

    @app.before_request
    def before_request_handler():
        """Load tenant context for each request."""
        load_tenant_context()

    # Error Handlers
    from app.exceptions import SaasError

    @app.errorhandler(SaasError)
    def handle_saas_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"SaasError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"SaasError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f"Unhandled Exception: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from app.blueprints.sales import sales_bp
    from app.blueprints.cash_register import cash_register_bp
    from app.blueprints.inventory import inventory_bp

    app.register_blueprint(sales_bp)
    app.register_blueprint(cash_register_bp)
    app.register_blueprint(inventory_bp)

    # CLI commands
    from app.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
