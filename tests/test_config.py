"""
Test configuration module for firex.
"""

import os
from unittest.mock import patch

from firex.config import Config


def load(env):
    """Build a Config from exactly ``env``, ignoring any local .env file."""
    with patch.dict(os.environ, env, clear=True):
        return Config(_env_file=None)


class TestConfig:
    """Test configuration loading and validation."""

    def test_config_defaults(self):
        """Test configuration defaults when env vars not set."""
        config = load({})
        assert config.project_id is None
        assert config.default_list_limit == 100
        assert config.watch_show_initial is False
        assert config.verbose is False
        assert config.log_level == "WARNING"
        assert config.timezone is None
        assert config.date_format is None
        assert config.raw_output is False

    def test_config_from_env(self):
        """Test configuration loading from environment variables."""
        config = load({
            "FIRESTORE_PROJECT_ID": "demo-project",
            "FIRESTORE_EMULATOR_HOST": "localhost:8080",
            "GOOGLE_APPLICATION_CREDENTIALS": "/keys/sa.json",
            "FIREX_DEFAULT_LIMIT": "25",
            "FIREX_DATE_FORMAT": "yyyy-MM-dd",
            "LOG_LEVEL": "debug",
        })
        assert config.project_id == "demo-project"
        assert config.emulator_host == "localhost:8080"
        assert config.credential_path == "/keys/sa.json"
        assert config.default_list_limit == 25
        assert config.date_format == "yyyy-MM-dd"
        assert config.log_level == "DEBUG"

    def test_explicit_values_win(self):
        with patch.dict(os.environ, {"FIREX_DEFAULT_LIMIT": "25"}, clear=True):
            config = Config(_env_file=None, default_list_limit=7)
        assert config.default_list_limit == 7

    def test_invalid_limit_falls_back(self):
        """Test unparsable or non-positive limits use the default."""
        for value in ("abc", "0", "-5", ""):
            assert load({"FIREX_DEFAULT_LIMIT": value}).default_list_limit == 100

    def test_true_flags(self):
        """Only the literal 'true' enables boolean flags."""
        config = load({"FIREX_WATCH_SHOW_INITIAL": "TRUE", "FIREX_VERBOSE": "true"})
        assert config.watch_show_initial is True
        assert config.verbose is True

        config = load({"FIREX_WATCH_SHOW_INITIAL": "1", "FIREX_VERBOSE": "yes"})
        assert config.watch_show_initial is False
        assert config.verbose is False

    def test_raw_output_accepts_one(self):
        assert load({"FIREX_RAW_OUTPUT": "1"}).raw_output is True
        assert load({"FIREX_RAW_OUTPUT": "true"}).raw_output is True
        assert load({"FIREX_RAW_OUTPUT": "no"}).raw_output is False

    def test_log_level_validation(self):
        """Test log level validation."""
        for level in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            assert load({"LOG_LEVEL": level}).log_level == level

    def test_invalid_log_level(self):
        """Test invalid log level falls back to INFO."""
        assert load({"LOG_LEVEL": "LOUD"}).log_level == "INFO"

    def test_timezone_precedence(self):
        """FIREX_TIMEZONE wins over TZ, which is used as a fallback."""
        assert load({"TZ": "Europe/Paris"}).timezone == "Europe/Paris"
        config = load({"TZ": "Europe/Paris", "FIREX_TIMEZONE": "Asia/Tokyo"})
        assert config.timezone == "Asia/Tokyo"

    def test_config_from_dotenv(self, tmp_path):
        """Test configuration loading from .env file."""
        env_file = tmp_path / ".env"
        env_file.write_text(
            "FIRESTORE_PROJECT_ID=env-project\n"
            "FIREX_TIMEZONE=Europe/Berlin\n"
        )

        with patch.dict(os.environ, {}, clear=True):
            config = Config(_env_file=str(env_file))

        assert config.project_id == "env-project"
        assert config.timezone == "Europe/Berlin"


class TestDescribe:
    """Test the settings summary shown by the config command."""

    def test_unset_values(self):
        described = load({}).describe()
        assert described["projectId"] == "(not set)"
        assert described["emulatorHost"] == "(not set)"
        assert described["defaultListLimit"] == 100
        assert described["rawOutput"] is False

    def test_set_values(self):
        described = load({"FIRESTORE_PROJECT_ID": "demo", "FIREX_TIMEZONE": "Asia/Tokyo"}).describe()
        assert described["projectId"] == "demo"
        assert described["timezone"] == "Asia/Tokyo"
