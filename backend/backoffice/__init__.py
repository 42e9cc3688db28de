# backend/backoffice/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import CLOCK_EXTENSION_KEY, db, migrate
from .time_utils import SystemClock



def create_app(config_class=Config, clock=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Business clock (local wall-clock "today"); tests pass a FixedClock
    app.extensions[CLOCK_EXTENSION_KEY] = clock or SystemClock(app.config["BUSINESS_TIMEZONE"])

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.transactions import transactions_bp
    from .routes.balances import balances_bp
    from .routes.confirmations import confirmations_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(balances_bp)
    app.register_blueprint(confirmations_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "X-User-Id, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
