"""
Environment-aware configuration.
Token lifetimes, the refresh cookie and the cleanup policy live here so
every component reads them from app.config.
Database URL is handled by DBStorage (DATABASE_URL).
"""
import os
from dotenv import load_dotenv
from datetime import timedelta

load_dotenv()  # Read .env if present


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")  # Set a strong key in production
    DEBUG = False
    TESTING = False
    # CORS: in dev we usually allow '*', in prod supply a comma-separated list in env
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    APP_ENV = os.getenv("APP_ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # jwt configurations
    JWT_SECRET = os.getenv("JWT_SECRET", "dev-jwt-secret-change-me-0123456789abcdef")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("ACCESS_TOKEN_EXPIRES_SECONDS", "3600")))
    REFRESH_TOKEN_EXPIRES = timedelta(days=int(os.getenv("REFRESH_TOKEN_EXPIRES_DAYS", "7")))
    # a replayed refresh token clears every session of its owner
    REFRESH_REUSE_REVOKES_FAMILY = _env_bool("REFRESH_REUSE_REVOKES_FAMILY", "true")

    # refresh token cookie
    REFRESH_COOKIE_NAME = "refreshToken"
    REFRESH_COOKIE_PATH = "/api/v1/auth"
    REFRESH_COOKIE_SAMESITE = os.getenv("REFRESH_COOKIE_SAMESITE", "Strict")
    REFRESH_COOKIE_SECURE = False

    # token cleanup job
    TOKEN_CLEANUP_USED_GRACE = timedelta(hours=1)
    TOKEN_CLEANUP_MAX_PER_USER = int(os.getenv("TOKEN_CLEANUP_MAX_PER_USER", "3"))
    TOKEN_CLEANUP_INACTIVE_AFTER = timedelta(days=int(os.getenv("TOKEN_CLEANUP_INACTIVE_DAYS", "60")))
    TOKEN_CLEANUP_SCHEDULE = os.getenv("TOKEN_CLEANUP_SCHEDULE", "2:00 AM UTC daily")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")


class TestingConfig(BaseConfig):
    TESTING = True
    JWT_SECRET = "testing-jwt-secret-0123456789abcdef0123"


class ProductionConfig(BaseConfig):
    DEBUG = False
    REFRESH_COOKIE_SECURE = True


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/testing/prod).
    """
    if name:
        name = name.lower()
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig
