# backend/cafepos/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None, *, mongo_client=None) -> Flask:
    """
    Application factory.

    mongo_client lets callers (tests, embedding apps) hand in an existing
    pymongo-compatible client instead of connecting to MONGO_URI.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .storage import init_storage
    init_storage(app, mongo_client=mongo_client)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.catalog import catalog_bp
    from .routes.inventory import inventory_bp
    from .routes.orders import orders_bp
    from .routes.floor import floor_bp
    from .routes.customers import customers_bp
    from .routes.purchases import purchases_bp
    from .routes.expenses import expenses_bp
    from .routes.reports import reports_bp
    from .routes.sync import sync_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(floor_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(sync_bp)

    if app.config.get("SYNC_ENABLED") and app.extensions["cafepos"]["sync"] is not None:
        start_sync_worker(app)

    return app


def start_sync_worker(app: Flask):
    """Start the background replication thread for this app."""
    from .services.sync_service import SyncWorker

    worker = SyncWorker(
        app,
        interval=app.config["SYNC_INTERVAL_SECONDS"],
        backoff_base=app.config["SYNC_BACKOFF_BASE_SECONDS"],
        backoff_max=app.config["SYNC_BACKOFF_MAX_SECONDS"],
    )
    app.extensions["cafepos"]["worker"] = worker
    worker.start()
    return worker
