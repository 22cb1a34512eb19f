from flask import Flask, current_app, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .extensions import db, login_manager
from .routes import auth, errors, health, products
from .utils.logging import configure_logging, register_request_logging
from config import Config
from . import models  # ensure models are registered with SQLAlchemy
from . import security  # noqa: F401  registers the login_manager callbacks
from .cli import register_cli

CORS_ALLOWED_METHODS = "GET,HEAD,PUT,PATCH,POST,DELETE"
CORS_ALLOWED_HEADERS = "Authorization,Content-Type,X-Request-ID"


def _ensure_superuser_account(admin_username: str, admin_password: str) -> None:
    """Create the configured admin user, or re-assert its role and password."""

    if not admin_username:
        return

    for attempt in range(3):
        try:
            user = models.User.query.filter_by(username=admin_username).first()
            if user is None:
                user = models.User(username=admin_username)
                db.session.add(user)

            if admin_password:
                user.set_password(admin_password)
            user.role = models.User.ROLE_ADMIN

            db.session.commit()
            return
        except IntegrityError:
            db.session.rollback()
            if attempt == 2:
                raise


def _ping_database() -> None:
    """Raise :class:`OperationalError` when the configured database is unreachable."""

    with db.engine.connect() as connection:
        connection.execute(text("SELECT 1"))


def _origin_allowed(origin: str) -> bool:
    allowed = current_app.config.get("CORS_ALLOWED_ORIGINS") or ()
    return origin in allowed


def create_app(config_override=None):
    app = Flask(__name__)

    # load configuration from environment variables
    app.config.from_object(Config)
    if config_override:
        app.config.update(config_override)

    configure_logging(app)

    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if database_uri.startswith("sqlite:///:memory:"):
        engine_options = app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {})
        connect_args = engine_options.setdefault("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        engine_options.setdefault("poolclass", StaticPool)

    db.init_app(app)
    login_manager.init_app(app)

    # Storage being unreachable at startup is the one fatal error.
    with app.app_context():
        try:
            _ping_database()
        except OperationalError as exc:
            root_cause = getattr(exc, "orig", exc)
            current_app.logger.error(
                "Database connection unavailable during startup: %s", root_cause
            )
            raise RuntimeError(
                "Unable to connect to the configured database. Check DB_URL."
            ) from exc

        try:
            db.create_all()
            _ensure_superuser_account(
                app.config.get("ADMIN_USER", "admin"),
                app.config.get("ADMIN_PASSWORD", "admin123"),
            )
        except SQLAlchemyError:
            current_app.logger.exception("Database initialization error")
            db.session.remove()
            raise

    register_request_logging(app)

    @app.before_request
    def _check_origin():
        origin = request.headers.get("Origin")
        if origin and not _origin_allowed(origin):
            current_app.logger.warning("Rejected request from origin %s", origin)
            return jsonify({"error": "Not allowed by CORS"}), 403

        if request.method == "OPTIONS" and origin:
            return current_app.make_default_options_response()
        return None

    @app.after_request
    def _add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and _origin_allowed(origin):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Methods"] = CORS_ALLOWED_METHODS
            response.headers["Access-Control-Allow-Headers"] = CORS_ALLOWED_HEADERS
            response.headers.add("Vary", "Origin")
        return response

    # register blueprints
    app.register_blueprint(errors.bp)
    app.register_blueprint(health.bp)
    app.register_blueprint(auth.bp)
    app.register_blueprint(products.bp)

    register_cli(app)

    return app
