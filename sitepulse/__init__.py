"""
SitePulse survey service
Flask Application Factory.

Usage:
    from sitepulse import create_app
    app = create_app()           # defaults to APP_ENV, else "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from sitepulse.config import config
from sitepulse.middleware.logging_config import configure_logging
from sitepulse.middleware.rate_limiter import init_rate_limits
from sitepulse.middleware.timing import init_request_timing
from sitepulse.models import db

logger = logging.getLogger(__name__)

migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # limits are attached per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiated so ProductionConfig can refuse to start without its env vars
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    app.config.setdefault("MAX_CONTENT_LENGTH", 1024 * 1024)  # 1 MB

    # ── Import all models so Alembic can detect them ─────────────────────
    from sitepulse.models import survey as _survey_models  # noqa: F401

    # Development SQLite file lives under instance/
    os.makedirs(app.instance_path, exist_ok=True)

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from sitepulse.blueprints.delay_prediction_bp import delay_prediction_bp
    from sitepulse.blueprints.health_bp import health_bp
    from sitepulse.blueprints.survey_bp import survey_bp

    app.register_blueprint(survey_bp)
    app.register_blueprint(delay_prediction_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("release-stale-claims")
    def release_stale_claims_cmd():
        """Delete same-day survey claims abandoned mid-submission."""
        from sitepulse.services.survey_service import release_stale_claims
        count = release_stale_claims()
        logger.info("Released %s stale survey claims.", count)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
