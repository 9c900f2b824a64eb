# backend/barbercore/__init__.py
from flask import Flask
from sqlalchemy import event

from .config import Config
from .extensions import db, migrate


def _enable_sqlite_savepoints(engine) -> None:
    # pysqlite defers BEGIN on its own, which breaks SAVEPOINT; let SQLAlchemy emit it.
    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        with app.app_context():
            _enable_sqlite_savepoints(db.engine)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.cash_sessions import cash_sessions_bp
    from .routes.orders import orders_bp
    from .routes.cron import cron_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(cash_sessions_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(cron_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
