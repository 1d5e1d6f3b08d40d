"""
Flask application factory.

Creates and configures the Flask app, registers all blueprints.
"""
import os
from flask import Flask, jsonify

from app.engine.errors import (
    EngineError, AssessmentNotFoundError, AssessmentLockedError, DuplicateJobError, NoAgentAvailableError,
)


def create_app():
    """Create and configure the Flask application."""
    from app.logging_config import configure_logging

    app = Flask(__name__)
    configure_logging(app)

    app.secret_key = os.getenv('SECRET_KEY', 'dev-secret-change-me')

    # Register blueprints
    from app.routes.assessments import bp as assessments_bp
    from app.routes.payments import bp as payments_bp
    from app.routes.monitor import bp as monitor_bp

    app.register_blueprint(assessments_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(monitor_bp)

    # ── Engine errors → JSON ────────────────────────────────────────────
    @app.errorhandler(AssessmentNotFoundError)
    def _not_found(e):
        return jsonify({'error': str(e)}), 404

    @app.errorhandler(AssessmentLockedError)
    @app.errorhandler(DuplicateJobError)
    def _conflict(e):
        return jsonify({'error': str(e)}), 409

    @app.errorhandler(NoAgentAvailableError)
    def _unavailable(e):
        return jsonify({'error': str(e)}), 503

    @app.errorhandler(EngineError)
    def _engine_error(e):
        return jsonify({'error': str(e)}), 400

    # Initialize circuit breakers for external API services
    from app.extensions import redis_client
    from app.services.circuit_breaker import init_breakers
    init_breakers(redis_client)

    # Import models so Base.metadata knows about them.
    # Schema is managed by Alembic — no create_all() call.
    from app.database import import_models
    import_models()

    return app
