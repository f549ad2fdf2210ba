"""
Order fulfillment processor configuration.

Loads processor tuning and supplier connection settings from
config/order_fulfillment.yml (optional) and lets environment variables
override individual values.

Consumers:
  - OrderFulfillmentProcessor: poll interval, batch size, attempt budget
  - ReconciliationWorker: supplier call timeout
  - get_supplier_gateway: base URL, user token, mock mode

Usage:
    from orderflow.config.fulfillment import get_fulfillment_settings

    settings = get_fulfillment_settings()
    settings.batch_size          # 5
    settings.backoff_policy()    # BackoffPolicy(base=1.0, max=30.0, jitter=1.0)

Environment overrides:
    FULFILLMENT_CONFIG_PATH, FULFILLMENT_POLL_INTERVAL_SECONDS,
    FULFILLMENT_BATCH_SIZE, FULFILLMENT_MAX_ATTEMPTS,
    FULFILLMENT_SUPPLIER_TIMEOUT_SECONDS, FULFILLMENT_BACKOFF_BASE_SECONDS,
    FULFILLMENT_BACKOFF_MAX_SECONDS, FULFILLMENT_BACKOFF_JITTER_SECONDS,
    SUPPLIER_BASE_URL, SUPPLIER_USER_TOKEN, SUPPLIER_KIOSK_TOKEN,
    SUPPLIER_MOCK_MODE

SECURITY: supplier tokens are read from the environment only, never from
the YAML file, and are excluded from repr().
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 2.0
DEFAULT_BATCH_SIZE = 5
DEFAULT_MAX_ATTEMPTS = 15
DEFAULT_SUPPLIER_TIMEOUT_SECONDS = 10.0
DEFAULT_SUPPLIER_BASE_URL = "https://taphoammo.net/api"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class FulfillmentSettings:
    """
    Resolved settings for the fulfillment processor.

    Attributes:
        poll_interval_seconds: Seconds between scheduler ticks
        batch_size: Maximum supplier calls in flight per tick
        max_attempts: Attempt budget per order before manual review
        supplier_timeout_seconds: Hard timeout around one supplier call
        backoff_base_seconds: First backoff step
        backoff_max_seconds: Backoff cap (before jitter)
        backoff_jitter_seconds: Upper bound of the uniform jitter term
        supplier_base_url: Supplier API root
        supplier_user_token: Account-level supplier token
        supplier_kiosk_token: Default per-product token when an order has none
        supplier_mock_mode: Use the in-process mock gateway
    """

    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    batch_size: int = DEFAULT_BATCH_SIZE
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    supplier_timeout_seconds: float = DEFAULT_SUPPLIER_TIMEOUT_SECONDS
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 30.0
    backoff_jitter_seconds: float = 1.0
    supplier_base_url: str = DEFAULT_SUPPLIER_BASE_URL
    supplier_user_token: Optional[str] = field(default=None, repr=False)
    supplier_kiosk_token: Optional[str] = field(default=None, repr=False)
    supplier_mock_mode: bool = False

    def __post_init__(self):
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        if self.batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if self.supplier_timeout_seconds <= 0:
            raise ValueError("supplier_timeout_seconds must be positive")
        if self.backoff_base_seconds < 0 or self.backoff_max_seconds < 0:
            raise ValueError("backoff delays must not be negative")
        if self.backoff_jitter_seconds < 0:
            raise ValueError("backoff_jitter_seconds must not be negative")

    def backoff_policy(self):
        """Build the BackoffPolicy described by these settings."""
        from orderflow.fulfillment.backoff import BackoffPolicy

        return BackoffPolicy(
            base_delay_seconds=self.backoff_base_seconds,
            max_delay_seconds=self.backoff_max_seconds,
            max_jitter_seconds=self.backoff_jitter_seconds,
        )

    @classmethod
    def from_env(
        cls,
        environ: Optional[Dict[str, str]] = None,
        config_path: Optional[str] = None,
    ) -> "FulfillmentSettings":
        """
        Resolve settings from the YAML file and environment.

        Args:
            environ: Mapping to read variables from (default: os.environ)
            config_path: Explicit YAML path (default: FULFILLMENT_CONFIG_PATH
                or config/order_fulfillment.yml if present)

        Returns:
            FulfillmentSettings

        Raises:
            ValueError: If a value cannot be parsed or is out of range
        """
        env = os.environ if environ is None else environ
        raw = _load_yaml(config_path or env.get("FULFILLMENT_CONFIG_PATH"))

        fulfillment = raw.get("fulfillment") or {}
        backoff = fulfillment.get("backoff") or {}
        supplier = raw.get("supplier") or {}

        return cls(
            poll_interval_seconds=_float(
                env, "FULFILLMENT_POLL_INTERVAL_SECONDS",
                fulfillment.get("poll_interval_seconds", DEFAULT_POLL_INTERVAL_SECONDS),
            ),
            batch_size=_int(
                env, "FULFILLMENT_BATCH_SIZE",
                fulfillment.get("batch_size", DEFAULT_BATCH_SIZE),
            ),
            max_attempts=_int(
                env, "FULFILLMENT_MAX_ATTEMPTS",
                fulfillment.get("max_attempts", DEFAULT_MAX_ATTEMPTS),
            ),
            supplier_timeout_seconds=_float(
                env, "FULFILLMENT_SUPPLIER_TIMEOUT_SECONDS",
                fulfillment.get("supplier_timeout_seconds", DEFAULT_SUPPLIER_TIMEOUT_SECONDS),
            ),
            backoff_base_seconds=_float(
                env, "FULFILLMENT_BACKOFF_BASE_SECONDS",
                backoff.get("base_delay_seconds", 1.0),
            ),
            backoff_max_seconds=_float(
                env, "FULFILLMENT_BACKOFF_MAX_SECONDS",
                backoff.get("max_delay_seconds", 30.0),
            ),
            backoff_jitter_seconds=_float(
                env, "FULFILLMENT_BACKOFF_JITTER_SECONDS",
                backoff.get("max_jitter_seconds", 1.0),
            ),
            supplier_base_url=env.get(
                "SUPPLIER_BASE_URL",
                supplier.get("base_url", DEFAULT_SUPPLIER_BASE_URL),
            ).rstrip("/"),
            supplier_user_token=env.get("SUPPLIER_USER_TOKEN") or None,
            supplier_kiosk_token=env.get("SUPPLIER_KIOSK_TOKEN") or None,
            supplier_mock_mode=_bool(
                env, "SUPPLIER_MOCK_MODE", supplier.get("mock_mode", False),
            ),
        )


def _resolve_path(config_path: Optional[str]) -> Optional[Path]:
    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Fulfillment config not found: {config_path}")
        return path

    candidates = [
        Path(__file__).parent.parent.parent.parent / "config" / "order_fulfillment.yml",
        Path(os.getcwd()) / "config" / "order_fulfillment.yml",
    ]
    for p in candidates:
        resolved = p.resolve()
        if resolved.exists():
            return resolved
    return None


def _load_yaml(config_path: Optional[str]) -> Dict[str, Any]:
    path = _resolve_path(config_path)
    if path is None:
        logger.debug("No fulfillment config file found, using defaults")
        return {}

    logger.info("Loading fulfillment config from %s", path)
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Fulfillment config must be a mapping: {path}")
    return data


def _float(env: Dict[str, str], name: str, default: Any) -> float:
    value = env.get(name)
    if value is None or value == "":
        value = default
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number, got {value!r}")


def _int(env: Dict[str, str], name: str, default: Any) -> int:
    value = env.get(name)
    if value is None or value == "":
        value = default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _bool(env: Dict[str, str], name: str, default: Any) -> bool:
    value = env.get(name)
    if value is None:
        value = default
    if isinstance(value, bool):
        return value
    # YAML may hand back a quoted "false" or a bare 0/1
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a boolean, got {value!r}")
    lowered = value.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


# ------------------------------------------------------------------
# Module-level accessors
# ------------------------------------------------------------------

_settings: Optional[FulfillmentSettings] = None
_settings_lock = Lock()


def get_fulfillment_settings() -> FulfillmentSettings:
    """Return the process-wide FulfillmentSettings, loading them once."""
    global _settings
    if _settings is None:
        with _settings_lock:
            if _settings is None:
                _settings = FulfillmentSettings.from_env()
    return _settings


def reset_fulfillment_settings() -> None:
    """Reset cached settings (for tests only)."""
    global _settings
    _settings = None
