"""
Unit tests for configuration management.
"""

import os
from unittest.mock import patch

import pytest

from sphinx_bounties.config import DEFAULT_JWT_SECRET, get_config, session_max_age, validate_config


class TestGetConfig:
    """Test configuration loading from environment variables."""

    def test_get_config_defaults(self):
        """Test that get_config returns default values when env vars not set."""
        config = get_config()

        assert config["FLASK_ENV"] == "testing"  # Set in conftest
        assert config["JWT_ALGORITHM"] == "HS256"
        assert config["JWT_EXPIRY_HOURS"] == 168
        assert config["SESSION_COOKIE_NAME"] == "sphinx_session"
        assert config["CHALLENGE_TTL_SECONDS"] == 300
        assert config["GATE_COOKIE_NAME"] == "gate-access"
        assert config["APP_NAME"] == "Sphinx Bounties"

    def test_get_config_custom_values(self):
        """Test that get_config uses environment variables when provided."""
        with patch.dict(os.environ, {"APP_URL": "https://bounties.example", "APP_NAME": "CustomApp"}):
            config = get_config()

            assert config["APP_URL"] == "https://bounties.example"
            assert config["APP_NAME"] == "CustomApp"

    def test_get_config_boolean_parsing(self):
        """Test that boolean environment variables are parsed correctly."""
        with patch.dict(os.environ, {"FLASK_DEBUG": "1", "GATE_ENABLED": "true", "SECURE_COOKIES": "yes"}):
            config = get_config()

            assert config["FLASK_DEBUG"] is True
            assert config["GATE_ENABLED"] is True
            assert config["SECURE_COOKIES"] is True

    def test_get_config_integer_parsing(self):
        """Test that integer environment variables are parsed correctly."""
        with patch.dict(os.environ, {"JWT_EXPIRY_HOURS": "48", "CHALLENGE_TTL_SECONDS": "120"}):
            config = get_config()

            assert config["JWT_EXPIRY_HOURS"] == 48
            assert config["CHALLENGE_TTL_SECONDS"] == 120

    def test_get_config_invalid_integer_raises(self):
        """Invalid integer inputs should surface a helpful error."""
        with patch.dict(os.environ, {"JWT_EXPIRY_HOURS": "a-week"}):
            with pytest.raises(ValueError, match="JWT_EXPIRY_HOURS"):
                get_config()

    def test_super_admins_list(self):
        """Comma separated admin pubkeys are split and trimmed."""
        with patch.dict(os.environ, {"SUPER_ADMINS": " 02aa , ,03bb"}):
            assert get_config()["SUPER_ADMINS"] == ["02aa", "03bb"]

    def test_secure_cookies_default_follows_environment(self):
        """Cookies default to Secure everywhere except local environments."""
        env = {k: v for k, v in os.environ.items() if k != "SECURE_COOKIES"}
        with patch.dict(os.environ, env, clear=True):
            os.environ["FLASK_ENV"] = "production"
            assert get_config()["SECURE_COOKIES"] is True
            os.environ["FLASK_ENV"] = "development"
            assert get_config()["SECURE_COOKIES"] is False

    @pytest.mark.parametrize("value", [None, ""])
    def test_unset_environment_is_production(self, value):
        """A deploy that never sets FLASK_ENV gets production behaviour."""
        env = {k: v for k, v in os.environ.items() if k not in ("FLASK_ENV", "SECURE_COOKIES")}
        if value is not None:
            env["FLASK_ENV"] = value
        with patch.dict(os.environ, env, clear=True):
            config = get_config()

        assert config["FLASK_ENV"] == "production"
        assert config["SECURE_COOKIES"] is True

    def test_session_max_age_is_in_seconds(self):
        """The cookie lifetime matches the token validity window."""
        assert session_max_age({"JWT_EXPIRY_HOURS": 2}) == 7200


class TestValidateConfig:
    """Test configuration validation for production."""

    def test_validate_config_development_passes(self):
        """Test that development config validation passes."""
        config = {"FLASK_ENV": "development", "JWT_SECRET": DEFAULT_JWT_SECRET, "FLASK_SECRET_KEY": None}

        assert validate_config(config) is True

    def test_validate_config_production_fails_jwt_secret(self):
        """Test that production validation fails with default JWT secret."""
        config = {"FLASK_ENV": "production", "JWT_SECRET": DEFAULT_JWT_SECRET, "FLASK_SECRET_KEY": "some_secret"}

        with pytest.raises(ValueError, match="JWT_SECRET must be changed"):
            validate_config(config)

    def test_validate_config_production_fails_short_secret(self):
        """A short signing secret is rejected in production."""
        config = {"FLASK_ENV": "production", "JWT_SECRET": "short", "FLASK_SECRET_KEY": "some_secret"}

        with pytest.raises(ValueError, match="at least 32 characters"):
            validate_config(config)

    def test_validate_config_production_fails_flask_secret(self):
        """Test that production validation fails without Flask secret."""
        config = {"FLASK_ENV": "production", "JWT_SECRET": "s" * 40, "FLASK_SECRET_KEY": None}

        with pytest.raises(ValueError, match="FLASK_SECRET_KEY must be set"):
            validate_config(config)

    def test_validate_config_gate_without_password(self):
        """Enabling the site gate requires a password in any environment."""
        config = {"FLASK_ENV": "development", "GATE_ENABLED": True, "GATE_PASSWORD": None}

        with pytest.raises(ValueError, match="GATE_PASSWORD"):
            validate_config(config)

    def test_validate_config_rejects_non_positive_windows(self):
        with pytest.raises(ValueError, match="JWT_EXPIRY_HOURS"):
            validate_config({"JWT_EXPIRY_HOURS": 0})
        with pytest.raises(ValueError, match="CHALLENGE_TTL_SECONDS"):
            validate_config({"CHALLENGE_TTL_SECONDS": -5})

    def test_validate_config_production_passes(self):
        """Test that production validation passes with secure values."""
        config = {
            "FLASK_ENV": "production",
            "JWT_SECRET": "secure_jwt_secret_with_sufficient_entropy",
            "FLASK_SECRET_KEY": "secure_flask_secret_key",
            "SECURE_COOKIES": True,
            "DATABASE_URL": "postgresql://bounties@db/bounties",
        }

        assert validate_config(config) is True
