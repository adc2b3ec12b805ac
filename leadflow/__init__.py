"""
Flask application factory.

Creates and configures the Flask app, registers all blueprints and owns the
notification engine (dedup ledger + scheduler) for the life of the process.
"""
import atexit
import importlib
import logging
import os

from flask import Flask

logger = logging.getLogger('leadflow')


def create_app(testing=False):
    """Create and configure the Flask application."""
    from leadflow.logging_config import configure_logging
    from leadflow.config import NOTIFICATIONS_ENABLED

    app = Flask(__name__)
    app.config['TESTING'] = testing

    configure_logging(app)

    app.secret_key = os.getenv('SECRET_KEY', 'dev-secret-change-me')

    # Register blueprints
    from leadflow.routes.dashboard import bp as dashboard_bp
    from leadflow.routes.entries import bp as entries_bp
    from leadflow.routes.imports import bp as imports_bp
    from leadflow.routes.notifications import bp as notifications_bp

    app.register_blueprint(dashboard_bp)
    app.register_blueprint(entries_bp)
    app.register_blueprint(imports_bp)
    app.register_blueprint(notifications_bp)

    # Import models so Base.metadata knows about them (required for SQLAlchemy).
    # Schema is managed by Alembic, no create_all() call.
    for module in ('lead', 'pipeline', 'pipeline_entry', 'appointment',
                   'notification', 'audit_log', 'import_log'):
        importlib.import_module(f'leadflow.models.{module}')

    # ── Notification engine ─────────────────────────────────────────────
    from leadflow.lifecycle.notifications import NotificationEngine, NotificationState
    from leadflow.services.notifications import record_notification

    engine = NotificationEngine(state=NotificationState(), deliver=record_notification)
    app.extensions['notification_engine'] = engine

    if NOTIFICATIONS_ENABLED and not app.config['TESTING']:
        if engine.start():
            atexit.register(engine.stop)
    else:
        logger.info("Notification scheduler not started (testing=%s, enabled=%s)",
                    app.config['TESTING'], NOTIFICATIONS_ENABLED)

    return app
