"""
SteamFamily catalog application factory.

create_app() loads the config object named by APP_CONFIG, refuses to start
on a broken or insecure configuration, then wires extensions (rate limits,
CSRF), the Supabase client, the review content filter, blueprints, JSON
error handlers and CLI commands.
"""

from __future__ import annotations
import os
from typing import List
from flask import Flask, Response, jsonify
from dotenv import load_dotenv
from .cli import register_commands
from .extensions import csrf, limiter
from .routes.admin import admin_bp
from .routes.auth import auth_bp
from .routes.catalog import catalog_bp
from .services import supabase_client
from .services.content_filter import ContentFilter
from .utils.errors import AccessDenied, BackendError, ConfigurationError, SteamFamilyError, ValidationError

DEFAULT_CONFIG = "steamfamily.config.ProdConfig"
MIN_SECRET_KEY_LENGTH = 32

SECURITY_HEADERS = {
    # JSON only: nothing may be loaded or framed
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


def _production_problems(config) -> List[str]:
    """Everything wrong with a production config, as readable lines."""
    problems = []

    if not config.get("SESSION_COOKIE_SECURE", False):
        problems.append("SESSION_COOKIE_SECURE must be True in production.")

    secret_key = config.get("SECRET_KEY") or ""
    if not secret_key:
        problems.append(
            "FLASK_SECRET_KEY is not set "
            "(python -c 'import secrets; print(secrets.token_hex(32))' prints a good one)."
        )
    elif len(secret_key) < MIN_SECRET_KEY_LENGTH:
        problems.append(
            f"SECRET_KEY is too weak: {len(secret_key)} chars, need {MIN_SECRET_KEY_LENGTH}."
        )

    if config.get("DEBUG", False):
        problems.append("DEBUG must be off in production.")

    if not config.get("DOWNLOAD_IP_SALT"):
        problems.append("DOWNLOAD_IP_SALT is not set; download logs would hold unsalted IP hashes.")

    return problems


def _check_production(app: Flask, cfg_path: str) -> None:
    """Raise ConfigurationError when a ProdConfig is not safe to serve."""
    if "ProdConfig" not in cfg_path or app.config.get("TESTING", False):
        return

    problems = _production_problems(app.config)
    if problems:
        raise ConfigurationError(
            "Refusing to start with an insecure production config:\n"
            + "\n".join(f"  * {p}" for p in problems)
        )

    app.logger.info("Production config checks passed")


def _register_error_handlers(app: Flask) -> None:
    """Turn package errors into JSON responses. Nothing is retried."""

    @app.errorhandler(ValidationError)
    def handle_validation_error(e: ValidationError):
        app.logger.info(f"Validation failed: {e.reason}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(BackendError)
    def handle_backend_error(e: BackendError):
        app.logger.error(f"Backend error: {e} (code={e.code})")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(AccessDenied)
    def handle_access_denied(e: AccessDenied):
        app.logger.warning(f"Admin operation refused: gate={e.gate}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(SteamFamilyError)
    def handle_other(e: SteamFamilyError):
        app.logger.error(f"Unhandled application error: {e}")
        return jsonify(e.to_dict()), e.status_code


def create_app() -> Flask:
    # .env wins over the shell so local runs are reproducible
    load_dotenv(override=True)

    app = Flask(__name__)

    cfg_path = os.getenv("APP_CONFIG", DEFAULT_CONFIG)
    try:
        app.config.from_object(cfg_path)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Could not load config object {cfg_path}: {e}") from e

    _check_production(app, cfg_path)

    limiter.init_app(app)
    limiter.enabled = app.config.get("RATELIMIT_ENABLED", True)
    csrf.init_app(app)

    # Raises ConfigurationError without SUPABASE_URL / SUPABASE_ANON_KEY
    supabase_client.init_supabase(app)

    app.extensions["content_filter"] = ContentFilter(app.config.get("DISALLOWED_WORDS", ()))

    @app.after_request
    def add_security_headers(resp: Response) -> Response:
        for name, value in SECURITY_HEADERS.items():
            resp.headers[name] = value
        return resp

    _register_error_handlers(app)

    app.register_blueprint(catalog_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)

    register_commands(app)

    return app
