"""
Environment-aware configuration.
Values come from the environment (a .env file is read if present); APP_ENV
selects the config class. Token settings are frozen into AuthSettings by the
app factory, core code never reads this module.
"""
import os
from dotenv import load_dotenv
from datetime import timedelta

load_dotenv()  # Read .env if present

DEV_JWT_SECRET = "dev-jwt-secret-change-me-0123456789abcdef"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def _env_int(name: str):
    value = os.getenv(name)
    return int(value) if value else None


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")  # Set a strong key in production
    DEBUG = False
    TESTING = False
    # CORS: in dev we usually allow '*', in prod supply a comma-separated list in env
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    APP_ENV = os.getenv("APP_ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///auth-session.db")
    DB_TIMEOUT_SECONDS = float(os.getenv("DB_TIMEOUT_SECONDS", "5"))
    SQLALCHEMY_ECHO = _env_bool("SQLALCHEMY_ECHO", "false")

    JWT_SECRET = os.getenv("JWT_SECRET", DEV_JWT_SECRET)
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "auth-session-api")
    JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "auth-session-clients")
    JWT_LEEWAY_SECONDS = int(os.getenv("JWT_LEEWAY_SECONDS", "0"))
    ACCESS_TOKEN_EXPIRES = timedelta(minutes=int(os.getenv("ACCESS_TOKEN_EXPIRES_MINUTES", "60")))
    REFRESH_TOKEN_EXPIRES = timedelta(days=int(os.getenv("REFRESH_TOKEN_EXPIRES_DAYS", "7")))

    # None -> argon2-cffi defaults
    ARGON2_TIME_COST = _env_int("ARGON2_TIME_COST")
    ARGON2_MEMORY_COST = _env_int("ARGON2_MEMORY_COST")
    ARGON2_PARALLELISM = _env_int("ARGON2_PARALLELISM")

    REGISTER_AS_PREMIUM = _env_bool("REGISTER_AS_PREMIUM", "true")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")


class ProductionConfig(BaseConfig):
    DEBUG = False


class TestingConfig(BaseConfig):
    TESTING = True
    DATABASE_URL = "sqlite:///:memory:"
    JWT_SECRET = "test-jwt-secret-0123456789abcdef0123456789"
    # cheap hashing keeps the suite fast
    ARGON2_TIME_COST = 1
    ARGON2_MEMORY_COST = 8
    ARGON2_PARALLELISM = 1


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/prod/test).
    """
    if name:
        name = name.lower()
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig


def check_production_config(config) -> None:
    """Refuse to serve production traffic with development secrets."""
    if config.get("DEBUG") or config.get("TESTING"):
        return
    if config.get("JWT_SECRET") in (DEV_JWT_SECRET, TestingConfig.JWT_SECRET):
        raise RuntimeError("JWT_SECRET must be set in production")
