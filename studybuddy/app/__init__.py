"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time, so tests can build isolated
         app instances and Alembic can import the models without a server.

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Configure logging (LOG_LEVEL) for app.logger and the studybuddy loggers
  3. Initialise extensions (SQLAlchemy, Marshmallow) via init_app()
  4. Register all route blueprints under /api/v1
  5. Register global error handlers (AppError → JSON, Exception → 500)
  6. Log one access line per request

Note on model imports:
  All model classes are imported inside create_app() so that SQLAlchemy's
  metadata is populated before create_all() or Alembic inspects it.
"""

from __future__ import annotations

import logging
import traceback

from flask import Flask, g, jsonify, request
from flask.logging import default_handler
from marshmallow import ValidationError as SchemaValidationError
from werkzeug.exceptions import HTTPException

from studybuddy.config import (
    config_by_name,
    resolve_config_name,
    validate_production_config,
)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str | None = None) -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     When omitted, STUDYBUDDY_ENV or FLASK_ENV decides,
                     falling back to "development".
    """
    app = Flask(__name__)

    # ── Configuration ──────────────────────────────────────────────────────
    config_name = config_name or resolve_config_name()
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    from studybuddy.app.extensions import db, ma
    db.init_app(app)
    ma.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    with app.app_context():
        from studybuddy.app.models import (  # noqa: F401
            group,
            group_file,
            join_request,
            membership,
            study_session,
            user,
        )

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_request_hooks(app)

    @app.route("/api/health", methods=["GET"])
    def health():
        return jsonify({"data": {"status": "ok"}, "warnings": []}), 200

    return app


def _configure_logging(app: Flask) -> None:
    """
    Routes the service loggers (studybuddy.app.services.*) through Flask's
    default handler so both share one format and one level.
    """
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()

    package_logger = logging.getLogger("studybuddy")
    package_logger.setLevel(level)
    if default_handler not in package_logger.handlers:
        package_logger.addHandler(default_handler)

    # app.logger is "studybuddy.app" and propagates to the handler above.
    app.logger.removeHandler(default_handler)
    app.logger.setLevel(level)


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under the /api/v1 prefix.

    The url_prefix is set here so individual route files only specify
    the path relative to their resource (e.g. "/" and "/<int:id>").
    """
    from studybuddy.app.routes.auth import auth_bp
    from studybuddy.app.routes.dashboard import dashboard_bp
    from studybuddy.app.routes.files import files_bp
    from studybuddy.app.routes.groups import groups_bp
    from studybuddy.app.routes.sessions import sessions_bp

    app.register_blueprint(auth_bp,      url_prefix="/api/v1/auth")
    app.register_blueprint(groups_bp,    url_prefix="/api/v1/groups")
    # sessions_bp and files_bp own both group-scoped and ID paths.
    app.register_blueprint(sessions_bp,  url_prefix="/api/v1")
    app.register_blueprint(files_bp,     url_prefix="/api/v1")
    app.register_blueprint(dashboard_bp, url_prefix="/api/v1/dashboard")


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError              → structured JSON error envelope with its HTTP status
      SchemaValidationError → first marshmallow field error as MISSING_FIELD /
                              INVALID_FIELD (400)
      HTTPException         → unknown route / method as JSON with its status
      Exception             → generic INTERNAL_ERROR (500); traceback logged

    Stack traces never leave the server.
    """
    from studybuddy.app.errors import AppError, ErrorCode

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(SchemaValidationError)
    def handle_validation_error(error: SchemaValidationError):
        """
        Marshmallow raises with a messages dict keyed by field name. Only the
        FIRST error is returned: one error, not many.
        """
        messages = error.messages  # e.g. {"name": ["Missing data for required field."]}

        field = None
        message = "Invalid input."

        if isinstance(messages, dict) and messages:
            field_name, field_errors = next(iter(messages.items()))
            field = field_name if field_name != "_schema" else None
            if isinstance(field_errors, list):
                message = str(field_errors[0]) if field_errors else "Invalid value."
            elif isinstance(field_errors, dict):
                # Nested schema or list index; report the inner message.
                message = str(next(iter(field_errors.values()), "Invalid value."))
            else:
                message = str(field_errors)
        elif isinstance(messages, list) and messages:
            message = str(messages[0])

        code = (
            ErrorCode.MISSING_FIELD
            if message.startswith("Missing data for required field")
            else ErrorCode.INVALID_FIELD
        )

        body = {"error": {"code": code, "message": message}}
        if field is not None:
            body["error"]["field"] = field
        return jsonify(body), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        return jsonify({
            "error": {
                "code": (error.name or "HTTP_ERROR").upper().replace(" ", "_"),
                "message": error.description,
            }
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _register_request_hooks(app: Flask) -> None:
    """
    Access log and development CORS.

    CORS is enabled when DEBUG or TESTING is true so a frontend served from
    another local port can call the API with the session cookie.
    """

    @app.after_request
    def log_request(response):
        app.logger.info(
            "%s %s -> %s (user=%s)",
            request.method,
            request.path,
            response.status_code,
            g.get("user_id", "-"),
        )
        return response

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and (app.config.get("DEBUG") or app.config.get("TESTING")):
            # Credentialed requests need the exact origin, never "*".
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response
