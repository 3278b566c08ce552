"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

from gmaps_coords.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes"}
_MAX_SUGGESTED_PARALLELISM = 16


@dataclass(frozen=True)
class Settings:
    webdriver_host: str = "localhost"
    base_port: int = 4444
    parallelism: int = 4
    retry_ceiling: int = 2
    lookup_timeout: float = 10.0
    poll_interval: float = 0.1
    headless: bool = True
    maps_base_url: str = "https://www.google.com/maps"

    def webdriver_url(self, slot_index: int) -> str:
        return f"http://{self.webdriver_host}:{self.base_port + slot_index}"


def _int_env(name: str, default: int, *, minimum: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    webdriver_host = os.getenv("WEBDRIVER_HOST", "localhost").strip() or "localhost"
    base_port = _int_env("WEBDRIVER_BASE_PORT", 4444, minimum=1)
    parallelism = _int_env("LOOKUP_PARALLELISM", 4, minimum=1)
    retry_ceiling = _int_env("LOOKUP_RETRY_CEILING", 2, minimum=0)
    lookup_timeout = _float_env("LOOKUP_TIMEOUT_SECONDS", 10.0)
    poll_interval = _float_env("LOOKUP_POLL_INTERVAL_SECONDS", 0.1)
    headless = os.getenv("WEBDRIVER_HEADLESS", "true").lower() in _TRUTHY
    maps_base_url = os.getenv("MAPS_BASE_URL", "https://www.google.com/maps").rstrip("/")

    if base_port + parallelism - 1 > 65535:
        raise ConfigurationError(
            f"Port range {base_port}..{base_port + parallelism - 1} exceeds 65535"
        )
    if parallelism > _MAX_SUGGESTED_PARALLELISM:
        logger.warning(
            "LOOKUP_PARALLELISM=%d is unusually high; each slot needs its own WebDriver server.",
            parallelism,
        )
    if poll_interval >= lookup_timeout:
        logger.warning(
            "LOOKUP_POLL_INTERVAL_SECONDS (%.2f) is not below LOOKUP_TIMEOUT_SECONDS (%.2f); "
            "each lookup will poll at most once.",
            poll_interval,
            lookup_timeout,
        )

    return Settings(
        webdriver_host=webdriver_host,
        base_port=base_port,
        parallelism=parallelism,
        retry_ceiling=retry_ceiling,
        lookup_timeout=lookup_timeout,
        poll_interval=poll_interval,
        headless=headless,
        maps_base_url=maps_base_url,
    )
