"""
Runtime configuration for the Workspace Task Tracker.

All settings are read from environment variables once, at import time.
Invalid or out-of-range values are logged and replaced with safe defaults
so a typo in a deployment file never prevents the API from starting.
"""

import logging
import os
import secrets
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)


def is_production_like() -> bool:
    """
    Check if the current environment is production-like (production or staging).

    Returns:
        True if ENVIRONMENT is "production" or "staging", False otherwise
    """
    env = os.environ.get("ENVIRONMENT", "development").lower()
    return env in ("production", "staging")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int, minimum: int, maximum: int) -> int:
    """Parse an integer setting, falling back to the default when invalid or out of range."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"⚠️  Invalid {name} value in environment. Using default of {default}.")
        return default
    if value < minimum or value > maximum:
        logger.warning(
            f"⚠️  {name}={value} is outside safe range ({minimum}-{maximum}). "
            f"Using default of {default}."
        )
        return default
    return value


def _env_float(name: str, default: float, minimum: float, maximum: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"⚠️  Invalid {name} value in environment. Using default of {default}.")
        return default
    if value < minimum or value > maximum:
        logger.warning(
            f"⚠️  {name}={value} is outside safe range ({minimum}-{maximum}). "
            f"Using default of {default}."
        )
        return default
    return value


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.environ.get(name)
    if not raw:
        return default
    return [item.strip() for item in raw.split(",") if item.strip()]


ENVIRONMENT = os.environ.get("ENVIRONMENT", "development")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG" if not is_production_like() else "INFO").upper()

# ============== Database ==============

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./workspace_tracker.db")
AUTO_CREATE_TABLES = _env_bool("AUTO_CREATE_TABLES", not is_production_like())

# ============== HTTP ==============

CORS_ORIGINS = _env_list(
    "CORS_ORIGINS",
    [
        "http://localhost:3000",     # Production frontend
        "http://127.0.0.1:3000",     # Production frontend (IP)
        "http://localhost:3001",     # Development frontend
        "http://127.0.0.1:3001",     # Development frontend (IP)
    ],
)
APP_URL = os.environ.get("APP_URL", "http://localhost:3000").rstrip("/")

# ============== Authentication ==============

JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY")
if not JWT_SECRET_KEY:
    if is_production_like():
        raise ValueError(
            "JWT_SECRET_KEY environment variable is required in production. "
            "Generate a secure key with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
        )
    JWT_SECRET_KEY = "dev-insecure-key-" + secrets.token_urlsafe(32)
    logger.warning(
        "⚠️  JWT_SECRET_KEY not set! Using temporary development key. "
        "This is INSECURE for production. Set JWT_SECRET_KEY environment variable."
    )

SUPPORTED_ALGORITHMS = ["HS256", "HS384", "HS512"]
JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
if JWT_ALGORITHM not in SUPPORTED_ALGORITHMS:
    logger.warning(
        f"⚠️  Unsupported JWT_ALGORITHM={JWT_ALGORITHM}. Using HS256. "
        f"Supported: {', '.join(SUPPORTED_ALGORITHMS)}"
    )
    JWT_ALGORITHM = "HS256"

ACCESS_TOKEN_EXPIRE_MINUTES = _env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 60, 1, 1440)

# ============== Image storage ==============

UPLOAD_DIR = Path(os.environ.get("UPLOAD_DIR", "./uploads"))
MAX_IMAGE_SIZE = _env_int("MAX_IMAGE_SIZE", 1024 * 1024, 1024, 10 * 1024 * 1024)

# ============== Analytics ==============

ANALYTICS_MAX_WORKERS = _env_int("ANALYTICS_MAX_WORKERS", 10, 1, 32)
QUERY_TIMEOUT_SECONDS = _env_float("QUERY_TIMEOUT_SECONDS", 10.0, 0.1, 300.0)

# ============== Email notifications ==============

MAIL_SERVER = os.environ.get("MAIL_SERVER") or None  # None → log-only mode
MAIL_PORT = _env_int("MAIL_PORT", 587, 1, 65535)
MAIL_USE_TLS = _env_bool("MAIL_USE_TLS", True)
MAIL_USERNAME = os.environ.get("MAIL_USERNAME") or None
MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD") or None
MAIL_DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER", "no-reply@workspace-tracker.local")
