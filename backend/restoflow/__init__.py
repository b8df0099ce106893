# backend/restoflow/__init__.py
from __future__ import annotations

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None, publisher=None) -> Flask:
    """
    Application factory.

    config_overrides are applied after Config and before extensions are
    initialized (the database engine is created in db.init_app).
    publisher replaces the realtime publisher built from config.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.realtime_service import build_publisher
    app.extensions["realtime_publisher"] = publisher if publisher is not None else build_publisher(app.config)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.orders import orders_bp
    from .routes.catalog import catalog_bp
    from .routes.stocks import stocks_bp
    from .routes.subscription import subscription_bp
    from .routes.superadmin import superadmin_bp
    from .routes.webhooks import webhooks_bp
    from .routes.cron import cron_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(stocks_bp)
    app.register_blueprint(subscription_bp)
    app.register_blueprint(superadmin_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(cron_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["CORS_ALLOWED_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
