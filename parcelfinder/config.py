"""
Runtime configuration for parcelfinder.

Settings are read once from the process environment (optionally seeded
from a .env file, see env.py). Missing credentials fail here, at startup,
so that a resolution never fails halfway through for a config reason.
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from .errors import ConfigurationError

DEFAULT_SENDCLOUD_BASE_URL = "https://panel.sendcloud.sc"
DEFAULT_SEVENTEENTRACK_BASE_URL = "https://api.17track.net/track/v2.2"
DEFAULT_TRACKING_LINK_TEMPLATE = "https://t.17track.net/en#nums={tracking_number}"

TRACKING_PROVIDERS = ("sendcloud", "17track")


@dataclass(frozen=True)
class Settings:
    """Everything the engine and its adapters need to run."""

    wc_base_url: str
    wc_consumer_key: str
    wc_consumer_secret: str
    sendcloud_public_key: str
    sendcloud_secret_key: str
    sendcloud_base_url: str = DEFAULT_SENDCLOUD_BASE_URL
    tracking_provider: str = "sendcloud"
    seventeentrack_api_key: Optional[str] = None
    seventeentrack_base_url: str = DEFAULT_SEVENTEENTRACK_BASE_URL
    home_country: str = "FR"
    history_limit: int = 3
    tracking_meta_keys: Tuple[str, ...] = field(default_factory=tuple)
    order_lookback_per_page: int = 50
    fallback_status: str = "pending"
    tracking_link_template: str = DEFAULT_TRACKING_LINK_TEMPLATE
    http_timeout_seconds: float = 15.0
    http_max_retries: int = 2
    http_retry_base_delay: float = 0.5
    phone_probe_workers: int = 8

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)

        Raises:
            ConfigurationError: On a missing required variable or a bad value
        """
        env = os.environ if environ is None else environ

        provider = _optional(env, "TRACKING_PROVIDER", "sendcloud").lower()
        if provider not in TRACKING_PROVIDERS:
            raise ConfigurationError(
                f"TRACKING_PROVIDER must be one of {', '.join(TRACKING_PROVIDERS)}, got {provider!r}"
            )

        seventeentrack_key = env.get("SEVENTEENTRACK_API_KEY") or None
        if provider == "17track" and not seventeentrack_key:
            raise ConfigurationError("Missing env var: SEVENTEENTRACK_API_KEY (required by TRACKING_PROVIDER=17track)")

        return cls(
            wc_base_url=_require(env, "WC_BASE_URL").rstrip("/"),
            wc_consumer_key=_require(env, "WC_CONSUMER_KEY"),
            wc_consumer_secret=_require(env, "WC_CONSUMER_SECRET"),
            sendcloud_public_key=_require(env, "SENDCLOUD_PUBLIC_KEY"),
            sendcloud_secret_key=_require(env, "SENDCLOUD_SECRET_KEY"),
            sendcloud_base_url=_optional(env, "SENDCLOUD_BASE_URL", DEFAULT_SENDCLOUD_BASE_URL).rstrip("/"),
            tracking_provider=provider,
            seventeentrack_api_key=seventeentrack_key,
            seventeentrack_base_url=_optional(
                env, "SEVENTEENTRACK_BASE_URL", DEFAULT_SEVENTEENTRACK_BASE_URL
            ).rstrip("/"),
            home_country=_optional(env, "HOME_COUNTRY", "FR").upper(),
            history_limit=_int(env, "HISTORY_LIMIT", 3),
            tracking_meta_keys=_csv(env.get("TRACKING_META_KEYS", "")),
            order_lookback_per_page=_int(env, "ORDER_LOOKBACK_PER_PAGE", 50),
            fallback_status=_optional(env, "FALLBACK_STATUS", "pending"),
            tracking_link_template=_optional(env, "TRACKING_LINK_TEMPLATE", DEFAULT_TRACKING_LINK_TEMPLATE),
            http_timeout_seconds=_float(env, "HTTP_TIMEOUT_SECONDS", 15.0),
            http_max_retries=_int(env, "HTTP_MAX_RETRIES", 2),
            http_retry_base_delay=_float(env, "HTTP_RETRY_BASE_DELAY", 0.5),
            phone_probe_workers=_int(env, "PHONE_PROBE_WORKERS", 8),
        )


def _require(env: Mapping[str, str], name: str) -> str:
    value = (env.get(name) or "").strip()
    if not value:
        raise ConfigurationError(f"Missing env var: {name}")
    return value


def _optional(env: Mapping[str, str], name: str, default: str) -> str:
    value = (env.get(name) or "").strip()
    return value or default


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def _csv(raw: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())
