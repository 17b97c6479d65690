# -*- coding: utf-8 -*-
import os
from datetime import timedelta

from flask import Flask
from flask_cors import CORS
from flask_jwt_extended import JWTManager

from secret_message.infra.db import db

# Observability imports
from secret_message.services.metrics import init_metrics
from secret_message.services.request_context import init_request_context
from secret_message.services.structured_logging import init_logging


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


def _normalize_db_url(url: str) -> str:
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://") and "+psycopg://" not in url:
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def create_app() -> Flask:
    app = Flask(__name__)
    app.url_map.strict_slashes = False

    # --- Core config ---
    app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "dev-secret-key")
    app.config["TESTING"] = _env_flag("TESTING")
    app.config["MAX_CONTENT_LENGTH"] = int(os.environ.get("SM_MAX_UPLOAD_BYTES", 50 * 1024 * 1024))

    # --- JWT cookies ---
    app.config["JWT_SECRET_KEY"] = os.environ.get("JWT_SECRET_KEY") or app.config["SECRET_KEY"]
    app.config["JWT_ALGORITHM"] = "HS256"
    app.config["JWT_TOKEN_LOCATION"] = ["cookies"]
    app.config["JWT_COOKIE_SECURE"] = _env_flag("SM_JWT_COOKIE_SECURE", "true")
    app.config["JWT_COOKIE_SAMESITE"] = os.environ.get("SM_JWT_COOKIE_SAMESITE", "Lax")
    app.config["JWT_COOKIE_CSRF_PROTECT"] = _env_flag("SM_JWT_COOKIE_CSRF", "true")
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(hours=int(os.environ.get("SM_JWT_ACCESS_HOURS", 24)))
    app.config["JWT_REFRESH_TOKEN_EXPIRES"] = timedelta(days=int(os.environ.get("SM_JWT_REFRESH_DAYS", 30)))

    # --- DB config ---
    db_url = os.environ.get("DATABASE_URL")
    if not db_url:
        db_path = os.path.join(
            os.path.dirname(__file__),
            "..",
            "instance",
            "app.db")
        os.makedirs(os.path.dirname(db_path), exist_ok=True)
        db_url = f"sqlite:///{db_path}"
    else:
        db_url = _normalize_db_url(db_url)

    app.config["SQLALCHEMY_DATABASE_URI"] = db_url
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    db.init_app(app)

    JWTManager(app)

    # --- CORS ---
    cors_origins_str = os.environ.get("CORS_ALLOWED_ORIGINS", "http://localhost:5000,http://localhost:3000")
    cors_origins = [origin.strip() for origin in cors_origins_str.split(",") if origin.strip()]

    CORS(app, resources={
        r"/api/*": {
            "origins": cors_origins,
            "methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "X-CSRF-TOKEN", "X-Request-ID"],
            "supports_credentials": True,
            "max_age": 600,
        },
        # partner widget runs on arbitrary third-party sites
        r"/v1/*": {
            "origins": "*",
            "methods": ["GET", "POST", "OPTIONS"],
            "allow_headers": ["Content-Type", "X-Partner-Id"],
            "supports_credentials": False,
            "max_age": 86400,
        }}
    )

    # --- Initialize observability ---
    init_logging(app)
    init_request_context(app)
    init_metrics(app)

    # --- Error handlers ---
    from secret_message.middleware.errors import register_error_handlers
    register_error_handlers(app)

    # --- Rate limiting (memory, or Redis when configured) ---
    from secret_message.services.rate_limiter import init_rate_limiter
    app.extensions['sm_limiter'] = init_rate_limiter(app)

    # --- Mount blueprints ---
    with app.app_context():
        from secret_message import models  # noqa: F401  registers tables
        from secret_message.routes import (
            admin, auth, checkout, health, magic_link, messages, objects,
            stripe_webhooks, widget
        )
        app.register_blueprint(health.health_bp)
        app.register_blueprint(auth.auth_bp, url_prefix="/api")
        app.register_blueprint(magic_link.bp)
        app.register_blueprint(messages.messages_bp)
        app.register_blueprint(checkout.checkout_bp)
        app.register_blueprint(stripe_webhooks.stripe_webhooks_bp)
        app.register_blueprint(objects.objects_bp)
        app.register_blueprint(admin.admin_bp)
        app.register_blueprint(widget.widget_bp)

    # --- DB init ---
    with app.app_context():
        # Only auto-create tables in testing or if explicitly enabled
        if app.config["TESTING"] or _env_flag("SM_DB_AUTOCREATE"):
            db.create_all()

    return app
