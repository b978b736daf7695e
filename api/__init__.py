import logging

from flask import Flask
from flasgger import Swagger
from flask_cors import CORS

from .config import check_production_config, get_config
from .errors import register_error_handlers
from models.db_storage import DBStorage
from services.rotation import RotationCoordinator
from services.session import SessionService
from utils.security import AccessTokenCodec, AuthSettings, CredentialVerifier, build_password_hasher

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0.0",
    "info": {
        "title": "Auth Session API",
        "version": "1.0.0",
        "description": "Login, refresh token rotation, logout and access token validation.",
    },
    "basePath": "/",  # blueprints are mounted under /api/v1
    "schemes": ["http"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        }
    }
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,   # include all endpoints
            "model_filter": lambda tag: True,   # include all models
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(app: Flask) -> None:
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)
    app.logger.setLevel(level)


def build_session_service(storage: DBStorage, config) -> SessionService:
    """Wire the session services from an immutable snapshot of the config."""
    settings = AuthSettings.from_config(config)
    codec = AccessTokenCodec(settings)
    verifier = CredentialVerifier(build_password_hasher(config))
    coordinator = RotationCoordinator(storage, codec, settings)
    return SessionService(
        storage,
        verifier,
        codec,
        coordinator,
        register_as_premium=bool(config.get("REGISTER_AS_PREMIUM", True)),
    )


def create_app(config_name: str | None = None, overrides: dict | None = None) -> Flask:
    """
    Application factory: creates and configures the Flask app.
    `overrides` is applied on top of the selected config class (tests use it
    to point the app at a throwaway database).
    """
    app = Flask(__name__)

    # Load configuration (reads .env via get_config)
    app.config.from_object(get_config(config_name))
    if overrides:
        app.config.update(overrides)
    check_production_config(app.config)
    configure_logging(app)

    # Cross-Origin Resource Sharing: enable for dev, configurable for prod
    origins = app.config.get("CORS_ORIGINS", "*")
    if origins != "*":
        origins = [o.strip() for o in origins.split(",") if o.strip()]
    CORS(app, resources={r"/*": {"origins": origins}})

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    # Register global error handlers that return the uniform error envelope
    register_error_handlers(app)

    storage = DBStorage(
        app.config["DATABASE_URL"],
        timeout=app.config.get("DB_TIMEOUT_SECONDS", 5),
        echo=app.config.get("SQLALCHEMY_ECHO", False),
    )
    storage.reload()
    app.extensions["storage"] = storage
    app.extensions["session_service"] = build_session_service(storage, app.config)

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .users import bp as users_bp

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")
    app.register_blueprint(users_bp, url_prefix="/api/v1")

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        # This calls scoped_session.remove(), preventing connection leaks
        storage.close()

    @app.route("/")
    def root():
        return {
            "message": "Welcome to Auth Session API",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    app.logger.info("Auth Session API configured (%s)", app.config.get("APP_ENV"))
    return app
