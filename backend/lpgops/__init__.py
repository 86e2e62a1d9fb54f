# backend/lpgops/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate



def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)

    # Tests point SQLALCHEMY_DATABASE_URI elsewhere before the engine exists
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.customers import customers_bp
    from .routes.transactions import transactions_bp
    from .routes.b2c_transactions import b2c_transactions_bp
    from .routes.inventory import inventory_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(b2c_transactions_bp)
    app.register_blueprint(inventory_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
