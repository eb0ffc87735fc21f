"""Configuration for the Runway provider and the Revenium metering endpoint.

WHY: Two services with two independent credentials are involved in every
call. Keeping their URLs, keys, API version, and logging level in one
validated object means the rest of the package never reads the
environment directly.

HOW: Config is a plain dataclass. Callers either construct it explicitly
or use Config.from_env(), which loads .env.local and .env via python-dotenv
and then reads the RUNWAY_* / REVENIUM_* variables. validate() enforces
the required keys before any client is built.

RULES:
- Existing process environment always wins over .env files
- Revenium keys must start with "hak_"
- revenium_base_url is stored normalised (no trailing slash, no legacy
  /meter, /meter/v2 or /v2 suffix)
- Defaults can be overridden by environment variables or keyword args
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from revenium_runway.errors import ConfigurationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_RUNWAY_BASE_URL = "https://api.runwayml.com"
DEFAULT_RUNWAY_VERSION = "2024-11-06"
DEFAULT_REVENIUM_BASE_URL = "https://api.revenium.ai"
DEFAULT_LOG_LEVEL = "INFO"

REVENIUM_KEY_PREFIX = "hak_"

_ENV_FILES = (".env.local", ".env")
_LEGACY_SUFFIXES = ("/meter/v2", "/meter", "/v2")


def normalize_revenium_base_url(base_url: str | None) -> str:
    """Return the Revenium base URL without trailing slash or legacy suffix.

    Older configurations pointed at ``.../meter/v2`` directly. The metering
    client appends the full path itself, so those suffixes are stripped.
    """
    if not base_url:
        return DEFAULT_REVENIUM_BASE_URL

    base_url = base_url.rstrip("/")
    for suffix in _LEGACY_SUFFIXES:
        if base_url.endswith(suffix):
            return base_url[: -len(suffix)]
    return base_url


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("true", "1")


def load_env_files(search_dir: Path | None = None) -> list[Path]:
    """Load .env.local and .env from the working directory and its parent.

    Files loaded first take precedence because python-dotenv never
    overrides a variable that is already set.
    """
    base = Path(search_dir) if search_dir is not None else Path.cwd()
    loaded: list[Path] = []
    for directory in (base, base.parent):
        for name in _ENV_FILES:
            path = directory / name
            if path.is_file() and load_dotenv(path, override=False):
                loaded.append(path)
    return loaded


@dataclass
class Config:
    """Connection and credential settings for both upstream services.

    WHY: The orchestrator, provider client, and metering client all need a
    subset of these values. Passing one object keeps them consistent.

    HOW: Plain dataclass with defaults for everything except the keys.

    RULES:
    - runway_api_key and revenium_api_key are required (see validate())
    - revenium_organization_id / revenium_product_id are optional defaults
      for the organizationId / productId usage fields
    - log_level is one of DEBUG, INFO, WARN/WARNING, ERROR
    """

    runway_api_key: str = ""
    runway_base_url: str = DEFAULT_RUNWAY_BASE_URL
    runway_version: str = DEFAULT_RUNWAY_VERSION
    revenium_api_key: str = ""
    revenium_base_url: str = DEFAULT_REVENIUM_BASE_URL
    revenium_organization_id: str = ""
    revenium_product_id: str = ""
    log_level: str = DEFAULT_LOG_LEVEL
    verbose_startup: bool = False

    def __post_init__(self) -> None:
        self.runway_base_url = (self.runway_base_url or DEFAULT_RUNWAY_BASE_URL).rstrip("/")
        self.revenium_base_url = normalize_revenium_base_url(self.revenium_base_url)

    @classmethod
    def from_env(cls, load_files: bool = True, **overrides) -> Config:
        """Build a Config from environment variables (and .env files).

        Keyword overrides win over the environment, mirroring explicit
        options passed to the client constructor.
        """
        if load_files:
            loaded = load_env_files()
            if loaded:
                logger.debug("Loaded env files: %s", ", ".join(str(p) for p in loaded))

        values = dict(
            runway_api_key=os.getenv("RUNWAY_API_KEY", "").strip(),
            runway_base_url=os.getenv("RUNWAY_BASE_URL") or DEFAULT_RUNWAY_BASE_URL,
            runway_version=os.getenv("RUNWAY_VERSION") or DEFAULT_RUNWAY_VERSION,
            revenium_api_key=os.getenv("REVENIUM_METERING_API_KEY", "").strip(),
            revenium_base_url=os.getenv("REVENIUM_METERING_BASE_URL") or DEFAULT_REVENIUM_BASE_URL,
            revenium_organization_id=os.getenv("REVENIUM_ORGANIZATION_ID", ""),
            revenium_product_id=os.getenv("REVENIUM_PRODUCT_ID", ""),
            log_level=os.getenv("REVENIUM_LOG_LEVEL") or DEFAULT_LOG_LEVEL,
            verbose_startup=_env_flag("REVENIUM_VERBOSE_STARTUP"),
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        config = cls(**values)

        if config.runway_api_key:
            logger.debug("Runway API key loaded (length: %d)", len(config.runway_api_key))
        return config

    def validate(self) -> None:
        """Raise ConfigurationError if a required setting is missing or malformed."""
        if not self.revenium_api_key:
            raise ConfigurationError("REVENIUM_METERING_API_KEY is required")
        if not self.revenium_api_key.startswith(REVENIUM_KEY_PREFIX):
            raise ConfigurationError("invalid Revenium API key format")
        if not self.runway_api_key:
            raise ConfigurationError("RUNWAY_API_KEY is required")
        logger.debug("Configuration validation passed")
