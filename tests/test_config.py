"""Tests for configuration loading, logging setup, errors, and versioning.

WHY: A wrong base URL or an unvalidated key fails on the first real
call, far away from where the setting was made. These tests pin the
environment contract and the error rendering callers rely on.

HOW: Environment variables are set with monkeypatch; .env files are
written into tmp_path. from_env(load_files=False) is used wherever the
developer's own .env files must not leak into the test.
"""

from __future__ import annotations

import logging

import pytest

from conftest import make_config
from revenium_runway.config import (
    DEFAULT_REVENIUM_BASE_URL,
    DEFAULT_RUNWAY_BASE_URL,
    DEFAULT_RUNWAY_VERSION,
    Config,
    load_env_files,
    normalize_revenium_base_url,
)
from revenium_runway.errors import (
    AuthenticationError,
    ConfigurationError,
    MeteringError,
    NetworkError,
    ProviderError,
    TaskError,
    ValidationError,
)
from revenium_runway.logging_setup import PACKAGE_LOGGER, configure_logging, parse_log_level
from revenium_runway.version import get_middleware_source

_ENV_VARS = (
    "RUNWAY_API_KEY",
    "RUNWAY_BASE_URL",
    "RUNWAY_VERSION",
    "REVENIUM_METERING_API_KEY",
    "REVENIUM_METERING_BASE_URL",
    "REVENIUM_ORGANIZATION_ID",
    "REVENIUM_PRODUCT_ID",
    "REVENIUM_LOG_LEVEL",
    "REVENIUM_VERBOSE_STARTUP",
)


@pytest.fixture
def clean_env(monkeypatch):
    # setenv first so monkeypatch also undoes values loaded from .env files
    for name in _ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


class TestFromEnv:
    """Config.from_env() reads RUNWAY_* / REVENIUM_* variables."""

    def test_defaults(self, clean_env):
        config = Config.from_env(load_files=False)
        assert config.runway_api_key == ""
        assert config.runway_base_url == DEFAULT_RUNWAY_BASE_URL
        assert config.runway_version == DEFAULT_RUNWAY_VERSION == "2024-11-06"
        assert config.revenium_base_url == DEFAULT_REVENIUM_BASE_URL
        assert config.log_level == "INFO"
        assert config.verbose_startup is False

    def test_reads_variables(self, clean_env):
        clean_env.setenv("RUNWAY_API_KEY", "  rw_key  ")
        clean_env.setenv("RUNWAY_BASE_URL", "https://runway.example/")
        clean_env.setenv("RUNWAY_VERSION", "2025-01-01")
        clean_env.setenv("REVENIUM_METERING_API_KEY", "hak_key")
        clean_env.setenv("REVENIUM_METERING_BASE_URL", "https://meter.example/meter/v2")
        clean_env.setenv("REVENIUM_ORGANIZATION_ID", "org-1")
        clean_env.setenv("REVENIUM_PRODUCT_ID", "prod-1")
        clean_env.setenv("REVENIUM_LOG_LEVEL", "DEBUG")
        clean_env.setenv("REVENIUM_VERBOSE_STARTUP", "1")

        config = Config.from_env(load_files=False)
        assert config.runway_api_key == "rw_key"
        assert config.runway_base_url == "https://runway.example"
        assert config.runway_version == "2025-01-01"
        assert config.revenium_api_key == "hak_key"
        assert config.revenium_base_url == "https://meter.example"
        assert config.revenium_organization_id == "org-1"
        assert config.revenium_product_id == "prod-1"
        assert config.log_level == "DEBUG"
        assert config.verbose_startup is True

    def test_overrides_win(self, clean_env):
        clean_env.setenv("RUNWAY_API_KEY", "rw_env")
        config = Config.from_env(load_files=False, runway_api_key="rw_explicit", runway_version=None)
        assert config.runway_api_key == "rw_explicit"
        assert config.runway_version == DEFAULT_RUNWAY_VERSION

    def test_env_file_does_not_override_process_env(self, clean_env, tmp_path):
        (tmp_path / ".env").write_text("RUNWAY_API_KEY=rw_from_file\nREVENIUM_PRODUCT_ID=prod-file\n")
        clean_env.setenv("RUNWAY_API_KEY", "rw_from_process")
        loaded = load_env_files(tmp_path)
        assert tmp_path / ".env" in loaded
        config = Config.from_env(load_files=False)
        assert config.runway_api_key == "rw_from_process"
        assert config.revenium_product_id == "prod-file"

    def test_env_local_loaded_before_env(self, clean_env, tmp_path):
        (tmp_path / ".env.local").write_text("REVENIUM_ORGANIZATION_ID=org-local\n")
        (tmp_path / ".env").write_text("REVENIUM_ORGANIZATION_ID=org-shared\n")
        load_env_files(tmp_path)
        assert Config.from_env(load_files=False).revenium_organization_id == "org-local"


class TestValidate:
    """validate() enforces required keys and the Revenium key format."""

    def test_valid_config(self):
        make_config().validate()

    def test_missing_revenium_key(self):
        with pytest.raises(ConfigurationError, match="REVENIUM_METERING_API_KEY is required"):
            make_config(revenium_api_key="").validate()

    def test_bad_revenium_key_prefix(self):
        with pytest.raises(ConfigurationError, match="invalid Revenium API key format"):
            make_config(revenium_api_key="sk_wrong").validate()

    def test_missing_runway_key(self):
        with pytest.raises(ConfigurationError, match="RUNWAY_API_KEY is required"):
            make_config(runway_api_key="").validate()


class TestNormalizeBaseUrl:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            (None, DEFAULT_REVENIUM_BASE_URL),
            ("", DEFAULT_REVENIUM_BASE_URL),
            ("https://api.revenium.ai", "https://api.revenium.ai"),
            ("https://api.revenium.ai/", "https://api.revenium.ai"),
            ("https://api.revenium.ai/meter/v2", "https://api.revenium.ai"),
            ("https://api.revenium.ai/meter/v2/", "https://api.revenium.ai"),
            ("https://api.revenium.ai/meter", "https://api.revenium.ai"),
            ("https://api.revenium.ai/v2", "https://api.revenium.ai"),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_revenium_base_url(raw) == expected

    def test_config_normalizes_on_construction(self):
        config = Config(revenium_base_url="https://meter.example/meter/v2/")
        assert config.revenium_base_url == "https://meter.example"


class TestLogging:
    @pytest.mark.parametrize(
        "name, level",
        [
            ("DEBUG", logging.DEBUG),
            ("info", logging.INFO),
            ("WARN", logging.WARNING),
            ("warning", logging.WARNING),
            ("ERROR", logging.ERROR),
            ("chatty", logging.INFO),
            (None, logging.INFO),
        ],
    )
    def test_parse_log_level(self, name, level):
        assert parse_log_level(name) == level

    def test_configure_sets_level_and_single_handler(self):
        logger = logging.getLogger(PACKAGE_LOGGER)
        saved_handlers, saved_level = list(logger.handlers), logger.level
        logger.handlers = []
        try:
            configure_logging("DEBUG")
            configure_logging("ERROR")
            assert logger.level == logging.ERROR
            assert len(logger.handlers) == 1
        finally:
            logger.handlers = saved_handlers
            logger.setLevel(saved_level)


class TestErrors:
    """Rendering and HTTP status defaults of the error hierarchy."""

    def test_str_without_cause(self):
        assert str(ConfigurationError("missing key")) == "[CONFIG_ERROR] missing key"

    def test_str_with_cause(self):
        err = NetworkError("HTTP request failed", ValueError("reset"))
        assert str(err) == "[NETWORK_ERROR] HTTP request failed: reset"

    @pytest.mark.parametrize(
        "error, status",
        [
            (ConfigurationError("x"), 400),
            (ValidationError("x"), 400),
            (AuthenticationError("x"), 401),
            (ProviderError("x"), 502),
            (TaskError("x"), 502),
            (NetworkError("x"), 503),
            (MeteringError("x"), 500),
            (ProviderError("x", status_code=429), 429),
        ],
    )
    def test_http_status(self, error, status):
        assert error.http_status == status

    def test_with_details_chains(self):
        err = ProviderError("x").with_details("code", "E1").with_details("type", "bad")
        assert err.details == {"code": "E1", "type": "bad"}

    def test_task_error_defaults(self):
        err = TaskError("x")
        assert err.reason is None
        assert err.last_status is None
        assert err.result is None


class TestVersion:
    def test_middleware_source_format(self):
        source = get_middleware_source()
        name, _, version = source.partition("@")
        assert name == "revenium-middleware-runway-python"
        assert version
