# -*- coding: utf-8 -*-
import atexit
import os
from pathlib import Path
from typing import Any, Dict, Optional

from flask import Flask
from flask_cors import CORS

from sprkz.config import Config
from sprkz.infra.db import db, build_session_factory
from sprkz.infra.log import init_logging, get_logger

# Observability imports
from sprkz.services.metrics import init_metrics
from sprkz.services.request_context import init_request_context

from sprkz.middleware import register_error_handlers
from sprkz.services.event_logger import EventLogger
from sprkz.services.execution_engine import ExecutionEngine
from sprkz.services.webhook_invoker import WebhookInvoker

BASE_DIR = Path(__file__).resolve().parent.parent

logger = get_logger('sprkz.startup')


def _normalize_db_url(url: str) -> str:
    """
    Normalize DATABASE_URL so SQLAlchemy loads the right DBAPI.
    We standardize on the psycopg v3 driver ('+psycopg').
    """
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://") and "+psycopg://" not in url:
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def _default_db_url() -> str:
    db_path = BASE_DIR / "instance" / "sprkz.db"
    os.makedirs(db_path.parent, exist_ok=True)
    return f"sqlite:///{db_path}"


def _migrate_db(app: Flask) -> None:
    """Run Alembic migrations to head using the app's DB URL."""
    from alembic import command
    from alembic.config import Config as AlembicConfig

    cfg = AlembicConfig()  # in-memory config, avoid alembic.ini dependency
    cfg.set_main_option("script_location", str(BASE_DIR / "migrations"))
    cfg.set_main_option("sqlalchemy.url", app.config["SQLALCHEMY_DATABASE_URI"])

    try:
        command.upgrade(cfg, "head")
        app.logger.info("Database migrations applied successfully")
    except Exception as e:
        app.logger.error(f"Migration failed: {e}")
        raise


def _init_engine(app: Flask) -> ExecutionEngine:
    """Wire the event logger, invoker and execution engine onto the app."""
    session_factory = build_session_factory()
    metrics = app.extensions.get('metrics')

    event_logger = EventLogger(session_factory)
    invoker = WebhookInvoker(event_logger, metrics=metrics)
    engine = ExecutionEngine(
        session_factory,
        invoker,
        event_logger,
        metrics=metrics,
    )

    app.extensions['session_factory'] = session_factory
    app.extensions['event_logger'] = event_logger
    app.extensions['automation_engine'] = engine
    return engine


def create_app(overrides: Optional[Dict[str, Any]] = None) -> Flask:
    app = Flask(__name__)
    app.url_map.strict_slashes = False

    # --- Config ---
    app.config.update(Config.from_env())
    if overrides:
        app.config.update(overrides)

    db_url = app.config.get("SQLALCHEMY_DATABASE_URI")
    db_url = _normalize_db_url(db_url) if db_url else _default_db_url()
    app.config["SQLALCHEMY_DATABASE_URI"] = db_url
    if db_url.startswith("sqlite"):
        # automation runs write from worker threads
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {
            "connect_args": {"check_same_thread": False, "timeout": 30},
        })
    else:
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {
            "pool_pre_ping": True,
            "pool_recycle": 300,
        })

    db.init_app(app)

    # --- CORS ---
    cors_origins = [
        origin.strip()
        for origin in app.config["CORS_ALLOWED_ORIGINS"].split(",")
        if origin.strip()
    ]
    CORS(app, resources={
        r"/api/*": {
            "origins": cors_origins,
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "X-Session-ID", "X-Request-ID"],
            "supports_credentials": False,
            "max_age": 600,
        }},
    )

    # --- Initialize observability ---
    init_logging(app)
    init_request_context(app)
    init_metrics(app)

    register_error_handlers(app)

    # --- Mount blueprints ---
    from sprkz.routes import automations, events, health, webhooks

    app.register_blueprint(health.health_bp)
    app.register_blueprint(webhooks.webhooks_bp)
    app.register_blueprint(automations.automations_bp)
    app.register_blueprint(events.events_bp)

    # --- DB schema & automation engine ---
    with app.app_context():
        import sprkz.models  # noqa: F401  register every table on db.metadata

        if app.config["TESTING"] or app.config["DB_AUTOCREATE"]:
            db.create_all()
        elif app.config["DB_MIGRATE_ON_START"]:
            _migrate_db(app)

        engine = _init_engine(app)

        driver = db_url.split("://", 1)[0]
        logger.info(f"DB ready (driver={driver})")

    atexit.register(engine.shutdown, wait=False)
    return app
