# -*- coding: utf-8 -*-
"""
Billing Engine Configuration

Centralized configuration for the billing calculation engine covering:
- Monetary rounding (decimal places)
- Strict versus lenient error policy
- Model defaults (currency, installment period)
- Service cache settings (enable, max size)
- Provenance and metrics toggles

All settings can be overridden via environment variables with the
``LB_BILLING_`` prefix (e.g. ``LB_BILLING_DECIMAL_PLACES``) or loaded
from a YAML file.

Example:
    >>> from licensebill.config import get_config
    >>> cfg = get_config()
    >>> print(cfg.decimal_places, cfg.strict_mode)
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from licensebill.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Environment prefix and setting conversion
# ---------------------------------------------------------------------------

_ENV_PREFIX = "LB_BILLING_"

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")

# Lower bounds for integer settings
_MINIMUMS = {
    "decimal_places": 0,
    "default_installment_months": 1,
    "cache_max_size": 1,
}


def _coerce_setting(name: str, default: Any, value: Any) -> Any:
    """Convert a raw setting to the type of its default.

    Raises:
        ValueError: If the value cannot be converted or is out of range.
    """
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        raise ValueError("expected a boolean")
    if isinstance(default, int):
        if isinstance(value, bool):
            raise ValueError("expected an integer")
        number = int(str(value).strip())
        minimum = _MINIMUMS.get(name)
        if minimum is not None and number < minimum:
            raise ValueError(f"must be >= {minimum}")
        return number
    if value is None or not str(value).strip():
        raise ValueError("expected a non-empty string")
    return str(value).strip()



# ---------------------------------------------------------------------------
# BillingConfig
# ---------------------------------------------------------------------------


@dataclass
class BillingConfig:
    """Complete configuration for the billing calculation engine.

    Attributes:
        decimal_places: Places every public monetary result is rounded to.
        strict_mode: Re-raise calculation errors from the lenient entry points.
        default_currency: Currency used when a record carries none.
        default_installment_months: Installment period when a client has none.
        cache_enabled: Whether BillingService caches monthly figures.
        cache_max_size: Maximum number of (client, year) cache entries.
        enable_provenance: Whether BillingService records a chained change log.
        enable_metrics: Whether Prometheus metrics are recorded.
    """

    # -- Rounding ------------------------------------------------------------
    decimal_places: int = 2

    # -- Error policy --------------------------------------------------------
    strict_mode: bool = False

    # -- Model defaults ------------------------------------------------------
    default_currency: str = "ZAR"
    default_installment_months: int = 12

    # -- Caching -------------------------------------------------------------
    cache_enabled: bool = True
    cache_max_size: int = 10000

    # -- Observability -------------------------------------------------------
    enable_provenance: bool = True
    enable_metrics: bool = True

    def __post_init__(self) -> None:
        if self.decimal_places < 0:
            raise ConfigurationError(
                "decimal_places must be >= 0",
                context={"decimal_places": self.decimal_places},
            )
        if self.default_installment_months < 1:
            raise ConfigurationError(
                "default_installment_months must be >= 1",
                context={"default_installment_months": self.default_installment_months},
            )

    # ------------------------------------------------------------------
    # Factory helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_mapping(cls, raw: Dict[str, Any], source: str = "mapping") -> BillingConfig:
        """Build a BillingConfig from raw setting values.

        Each value is converted to the field's type. Invalid or out-of-range
        values log a warning and keep the field's default.

        Args:
            raw: Field name to raw value (strings, numbers or booleans).
            source: Where the values came from, for log messages.

        Returns:
            Populated BillingConfig instance.
        """
        values: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in raw:
                continue
            try:
                values[f.name] = _coerce_setting(f.name, f.default, raw[f.name])
            except (TypeError, ValueError) as e:
                logger.warning(
                    "Invalid %s=%r in %s (%s), using default %r",
                    f.name, raw[f.name], source, e, f.default,
                )
        return cls(**values)

    @classmethod
    def from_env(cls) -> BillingConfig:
        """Build a BillingConfig from environment variables.

        Every field can be overridden via ``LB_BILLING_<FIELD_UPPER>``.
        Boolean values accept ``true/1/yes/on`` and ``false/0/no/off``
        (case-insensitive). Invalid values fall back to the default.

        Returns:
            Populated BillingConfig instance.
        """
        raw = {
            f.name: os.environ[f"{_ENV_PREFIX}{f.name.upper()}"]
            for f in fields(cls)
            if f"{_ENV_PREFIX}{f.name.upper()}" in os.environ
        }
        config = cls.from_mapping(raw, source="environment")

        logger.info(
            "BillingConfig loaded: decimal_places=%d, strict=%s, currency=%s, "
            "cache=%s/%d",
            config.decimal_places,
            config.strict_mode,
            config.default_currency,
            config.cache_enabled,
            config.cache_max_size,
        )
        return config

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> BillingConfig:
        """Build a BillingConfig from a YAML mapping.

        Unknown keys are ignored with a warning; invalid values fall back to
        the default with a warning.

        Args:
            path: Path to a YAML file with a top-level mapping.

        Returns:
            Populated BillingConfig instance.

        Raises:
            ConfigurationError: If the file is unreadable or not a mapping.
        """
        config_path = Path(path)
        try:
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Cannot load billing config from {config_path}: {e}",
                context={"path": str(config_path)},
            ) from e

        if not isinstance(raw, dict):
            raise ConfigurationError(
                "Billing config file must contain a mapping",
                context={"path": str(config_path), "type": type(raw).__name__},
            )

        known = {f.name for f in fields(cls)}
        for key in raw:
            if key not in known:
                logger.warning("Ignoring unknown billing config key: %s", key)

        config = cls.from_mapping(raw, source=str(config_path))
        logger.info("BillingConfig loaded from %s", config_path)
        return config




# ---------------------------------------------------------------------------
# Thread-safe singleton accessor
# ---------------------------------------------------------------------------

_config_instance: Optional[BillingConfig] = None
_config_lock = threading.Lock()


def get_config() -> BillingConfig:
    """Return the singleton BillingConfig, creating from env if needed.

    Returns:
        BillingConfig singleton instance.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = BillingConfig.from_env()
    return _config_instance


def set_config(config: BillingConfig) -> None:
    """Replace the singleton BillingConfig (useful for testing).

    Args:
        config: New configuration to install.
    """
    global _config_instance
    with _config_lock:
        _config_instance = config
    logger.info("BillingConfig replaced programmatically")


def reset_config() -> None:
    """Reset the singleton (primarily for test teardown)."""
    global _config_instance
    with _config_lock:
        _config_instance = None


__all__ = [
    "BillingConfig",
    "get_config",
    "set_config",
    "reset_config",
]
