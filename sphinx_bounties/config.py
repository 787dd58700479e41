"""Configuration management for Sphinx Bounties.

Centralises environment variable loading and validation logic while keeping the
public API intentionally simple.
"""

from __future__ import annotations

import os
import warnings
from typing import Any, List, Mapping, Optional, TypedDict

_TRUTHY_VALUES = {"1", "true", "yes", "on"}

DEFAULT_JWT_SECRET = "dev-secret-CHANGE-ME-IN-PRODUCTION"
MIN_JWT_SECRET_LENGTH = 32

# Environments where cookies may travel over plain HTTP.
LOCAL_ENVIRONMENTS = {"development", "testing"}


class AppConfig(TypedDict, total=False):
    """Typed representation of the application's configuration."""

    FLASK_SECRET_KEY: Optional[str]
    FLASK_ENV: str
    FLASK_DEBUG: bool
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRY_HOURS: int
    SESSION_COOKIE_NAME: str
    SECURE_COOKIES: bool
    APP_URL: Optional[str]
    CHALLENGE_TTL_SECONDS: int
    CHALLENGE_COOKIE_NAME: str
    SUPER_ADMINS: List[str]
    GATE_ENABLED: bool
    GATE_PASSWORD: Optional[str]
    GATE_COOKIE_NAME: str
    GATE_COOKIE_MAX_AGE: int
    DATABASE_URL: str
    RATE_LIMIT_ENABLED: bool
    RATE_LIMIT_DEFAULT: str
    REDIS_URL: Optional[str]
    FORCE_HTTPS: bool
    LOG_LEVEL: str
    APP_NAME: str
    APP_VERSION: str


def _get_env_bool(name: str, default: bool) -> bool:
    """Return an environment variable as a boolean."""

    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in _TRUTHY_VALUES


def _get_env_int(name: str, default: int) -> int:
    """Return an environment variable as an integer, raising on invalid input."""

    raw_value = os.getenv(name)
    if raw_value is None or raw_value == "":
        return default

    try:
        return int(raw_value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer (got {raw_value!r})") from exc


def _get_env_list(name: str) -> List[str]:
    """Return a comma separated environment variable as a list of non-empty items."""

    return [item.strip() for item in os.getenv(name, "").split(",") if item.strip()]


def get_config() -> AppConfig:
    """Load application configuration from environment variables."""

    # Unset means production: local conveniences such as dev login must be asked for.
    flask_env = (os.getenv("FLASK_ENV") or "production").strip().lower()

    return {
        # Flask Configuration
        "FLASK_SECRET_KEY": os.getenv("FLASK_SECRET_KEY"),
        "FLASK_ENV": flask_env,
        "FLASK_DEBUG": _get_env_bool("FLASK_DEBUG", False),
        # Session token Configuration
        "JWT_SECRET": os.getenv("JWT_SECRET", DEFAULT_JWT_SECRET),
        "JWT_ALGORITHM": os.getenv("JWT_ALGORITHM", "HS256"),
        "JWT_EXPIRY_HOURS": _get_env_int("JWT_EXPIRY_HOURS", 168),
        "SESSION_COOKIE_NAME": os.getenv("SESSION_COOKIE_NAME", "sphinx_session"),
        "SECURE_COOKIES": _get_env_bool("SECURE_COOKIES", flask_env not in LOCAL_ENVIRONMENTS),
        # LNURL-auth Configuration
        # Public origin wallets call back; unset falls back to the request Host.
        "APP_URL": os.getenv("APP_URL") or None,
        "CHALLENGE_TTL_SECONDS": _get_env_int("CHALLENGE_TTL_SECONDS", 300),
        "CHALLENGE_COOKIE_NAME": os.getenv("CHALLENGE_COOKIE_NAME", "sphinx_challenge"),
        # Authorization
        "SUPER_ADMINS": _get_env_list("SUPER_ADMINS"),
        # Site-wide access gate
        "GATE_ENABLED": _get_env_bool("GATE_ENABLED", False),
        "GATE_PASSWORD": os.getenv("GATE_PASSWORD"),
        "GATE_COOKIE_NAME": os.getenv("GATE_COOKIE_NAME", "gate-access"),
        "GATE_COOKIE_MAX_AGE": _get_env_int("GATE_COOKIE_MAX_AGE", 7 * 24 * 60 * 60),
        # Database Configuration
        "DATABASE_URL": os.getenv("DATABASE_URL", "sqlite:///sphinx_bounties.db"),
        # Rate Limiting
        "RATE_LIMIT_ENABLED": _get_env_bool("RATE_LIMIT_ENABLED", True),
        "RATE_LIMIT_DEFAULT": os.getenv("RATE_LIMIT_DEFAULT", "300/hour"),
        "REDIS_URL": os.getenv("REDIS_URL") or None,
        "FORCE_HTTPS": _get_env_bool("FORCE_HTTPS", flask_env == "production"),
        # Logging
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO"),
        # Application Settings
        "APP_NAME": os.getenv("APP_NAME", "Sphinx Bounties"),
        "APP_VERSION": os.getenv("APP_VERSION", "0.1.0"),
    }


def session_max_age(config: Mapping[str, Any]) -> int:
    """Session validity window in seconds, shared by the token and its cookie."""

    return int(config.get("JWT_EXPIRY_HOURS", 168)) * 3600


def validate_config(config: Mapping[str, Any]) -> bool:
    """Validate critical configuration values.

    Args:
        config: Configuration mapping to validate.

    Returns:
        True if configuration is valid, raises ValueError otherwise.
    """

    if int(config.get("JWT_EXPIRY_HOURS", 168)) <= 0:
        raise ValueError("JWT_EXPIRY_HOURS must be positive")

    if int(config.get("CHALLENGE_TTL_SECONDS", 300)) <= 0:
        raise ValueError("CHALLENGE_TTL_SECONDS must be positive")

    if config.get("GATE_ENABLED") and not config.get("GATE_PASSWORD"):
        raise ValueError("GATE_PASSWORD must be set when GATE_ENABLED is on")

    if config.get("FLASK_ENV") == "production":
        secret = config.get("JWT_SECRET") or ""
        if secret == DEFAULT_JWT_SECRET:
            raise ValueError("JWT_SECRET must be changed for production!")

        if len(secret) < MIN_JWT_SECRET_LENGTH:
            raise ValueError(f"JWT_SECRET must be at least {MIN_JWT_SECRET_LENGTH} characters in production!")

        if not config.get("FLASK_SECRET_KEY"):
            raise ValueError("FLASK_SECRET_KEY must be set for production!")

        if not config.get("SECURE_COOKIES"):
            warnings.warn("SECURE_COOKIES disabled in production - session cookie will travel over HTTP!", stacklevel=2)

        if not config.get("APP_URL"):
            warnings.warn("APP_URL not set in production - wallet callbacks follow the request Host!", stacklevel=2)

        if str(config.get("DATABASE_URL", "")).startswith("sqlite"):
            warnings.warn("DATABASE_URL points at SQLite in production!", stacklevel=2)

    return True
