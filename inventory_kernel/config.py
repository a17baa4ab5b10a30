"""
Inventory Configuration Schema.

Defines the structure and defaults for inventory kernel settings.  Values
come from code (``with_defaults``/``from_dict``), a YAML file
(``from_yaml``) or the process environment (``from_env``).

Failure modes:
    - ConfigurationError for out-of-range values or unknown keys.
    - FileNotFoundError / yaml.YAMLError propagate from ``from_yaml``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from inventory_kernel.exceptions import ConfigurationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("config")

DEFAULT_DATABASE_URL = "sqlite:///inventory.db"

# Environment variable -> field name
_ENV_PREFIX = "INVENTORY_"


@dataclass(frozen=True)
class InventoryConfig:
    """
    Configuration schema for the inventory kernel.

    Override at instantiation with deployment-specific values:

        config = InventoryConfig(
            database_url="postgresql://inventory@db/inventory",
            reservation_ttl_minutes=20,
        )
    """

    database_url: str = DEFAULT_DATABASE_URL

    # Reservations
    reservation_ttl_minutes: int = 15
    expiring_soon_minutes: int = 15
    sweep_interval_seconds: int = 60

    # Policy defaults applied when a record is lazily created
    default_low_stock_threshold: int = 10
    default_reorder_point: int = 10
    default_reorder_quantity: int = 50
    default_allow_backorder: bool = False

    # Status derivation: OVERSTOCKED above multiplier * low_stock_threshold
    overstock_multiplier: int = 5

    # Contention handling
    max_retries: int = 5
    retry_backoff_seconds: float = 0.01

    # Valuation
    cost_precision: int = 4

    # Ledger queries
    default_page_size: int = 50
    max_page_size: int = 500
    summary_recent_limit: int = 10

    def __post_init__(self):
        if not self.database_url:
            raise ConfigurationError("database_url", "must not be empty")
        if self.reservation_ttl_minutes <= 0:
            raise ConfigurationError("reservation_ttl_minutes", "must be positive")
        if self.expiring_soon_minutes < 0:
            raise ConfigurationError("expiring_soon_minutes", "cannot be negative")
        if self.sweep_interval_seconds <= 0:
            raise ConfigurationError("sweep_interval_seconds", "must be positive")

        for name in (
            "default_low_stock_threshold",
            "default_reorder_point",
            "default_reorder_quantity",
        ):
            if getattr(self, name) < 0:
                raise ConfigurationError(name, "cannot be negative")

        if self.overstock_multiplier < 1:
            raise ConfigurationError("overstock_multiplier", "must be at least 1")
        if self.max_retries < 1:
            raise ConfigurationError("max_retries", "must be at least 1")
        if self.retry_backoff_seconds < 0:
            raise ConfigurationError("retry_backoff_seconds", "cannot be negative")
        if not 0 <= self.cost_precision <= 9:
            raise ConfigurationError("cost_precision", "must be between 0 and 9")
        if self.default_page_size <= 0 or self.max_page_size <= 0:
            raise ConfigurationError("default_page_size", "page sizes must be positive")
        if self.default_page_size > self.max_page_size:
            raise ConfigurationError(
                "default_page_size", "cannot exceed max_page_size"
            )
        if self.summary_recent_limit < 0:
            raise ConfigurationError("summary_recent_limit", "cannot be negative")

    @classmethod
    def with_defaults(cls) -> InventoryConfig:
        """Create config with the built-in defaults."""
        logger.info("inventory_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InventoryConfig:
        """Create config from a dictionary (e.g., loaded from a file)."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(unknown[0], f"unknown configuration keys {unknown}")

        logger.info(
            "inventory_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str | Path) -> InventoryConfig:
        """
        Load config from a YAML file.

        The file may either hold the settings at top level or under an
        ``inventory:`` key.
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if "inventory" in data and isinstance(data["inventory"], dict):
            data = data["inventory"]
        return cls.from_dict(data)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> InventoryConfig:
        """
        Build config from ``INVENTORY_*`` environment variables.

        ``INVENTORY_DATABASE_URL`` maps to ``database_url``,
        ``INVENTORY_RESERVATION_TTL_MINUTES`` to ``reservation_ttl_minutes``
        and so on.  Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        data: dict[str, Any] = {}
        for f in fields(cls):
            raw = env.get(f"{_ENV_PREFIX}{f.name.upper()}")
            if raw is None:
                continue
            data[f.name] = _coerce(f.name, f.type, raw)
        return cls.from_dict(data)


def _coerce(name: str, type_name: Any, raw: str) -> Any:
    """Convert an environment string to the field's declared type."""
    type_name = type_name if isinstance(type_name, str) else type_name.__name__
    try:
        if type_name == "bool":
            return raw.strip().lower() in ("1", "true", "yes", "on")
        if type_name == "int":
            return int(raw)
        if type_name == "float":
            return float(raw)
    except ValueError as exc:
        raise ConfigurationError(name, f"cannot parse {raw!r} as {type_name}") from exc
    return raw
