"""
Configuration Loader (``silver_config.loader``).

Responsibility
--------------
Loads the billing YAML file and parses it into typed
``silver_config.schema`` dataclass instances.  Runtime callers go through
``silver_config.get_active_config()`` instead of calling this directly.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  No dependency on the kernel.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields have no silent defaults.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown enum values, bad numbers, duplicate channels or prefixes
  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from silver_config.schema import (
    BillingConfig,
    ChannelConfig,
    DatabaseConfig,
    LoggingConfig,
    TaxDefaults,
    VoucherConfig,
)

BALANCE_STRATEGIES = frozenset({"cached_field", "derived_sum"})
CUSTOMER_REMOVALS = frozenset({"deactivate", "delete"})
LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, name: str) -> Decimal:
    """Parse a YAML number without going through float rounding."""
    if isinstance(value, bool):
        raise ValueError(f"{name}: expected a number, got {value!r}")
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{name}: expected a number, got {value!r}") from None
    if not result.is_finite():
        raise ValueError(f"{name}: expected a finite number, got {value!r}")
    return result


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    lock_timeout = data.get("lock_timeout_ms")
    return DatabaseConfig(
        url=data["url"],
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 20)),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout=int(data.get("pool_timeout", 30)),
        lock_timeout_ms=int(lock_timeout) if lock_timeout is not None else None,
    )


def parse_voucher(data: dict[str, Any]) -> VoucherConfig:
    max_sequence = int(data.get("max_sequence", 9999))
    if not 1 <= max_sequence <= 9999:
        raise ValueError(f"voucher.max_sequence must be between 1 and 9999, got {max_sequence}")
    return VoucherConfig(
        max_sequence=max_sequence,
        timezone=str(data.get("timezone", "Asia/Kolkata")),
    )


def parse_tax(data: dict[str, Any]) -> TaxDefaults:
    cgst = parse_decimal(data.get("cgst_percent", "1.5"), "tax.cgst_percent")
    sgst = parse_decimal(data.get("sgst_percent", "1.5"), "tax.sgst_percent")
    if cgst < 0 or sgst < 0:
        raise ValueError("tax percentages must not be negative")
    return TaxDefaults(cgst_percent=cgst, sgst_percent=sgst)


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    level = str(data.get("level", "INFO")).upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {sorted(LOG_LEVELS)}, got {level!r}")
    return LoggingConfig(level=level)


def parse_channel(data: dict[str, Any]) -> ChannelConfig:
    """
    Parse one channel definition.

    Raises:
        KeyError: if name, voucher_prefix or balance_strategy is missing.
        ValueError: on an unknown strategy or removal mode, or a prefix
            that is not upper-case letters.
    """
    name = str(data["name"])
    prefix = "" if data["voucher_prefix"] is None else str(data["voucher_prefix"])
    if prefix and not (prefix.isalpha() and prefix.isupper()):
        raise ValueError(f"channel {name}: voucher_prefix must be upper-case letters, got {prefix!r}")

    strategy = str(data["balance_strategy"])
    if strategy not in BALANCE_STRATEGIES:
        raise ValueError(f"channel {name}: unknown balance_strategy {strategy!r}")

    removal = str(data.get("customer_removal", "deactivate"))
    if removal not in CUSTOMER_REMOVALS:
        raise ValueError(f"channel {name}: unknown customer_removal {removal!r}")

    return ChannelConfig(
        name=name,
        voucher_prefix=prefix,
        balance_strategy=strategy,
        tracks_silver_return=bool(data.get("tracks_silver_return", False)),
        supports_tax=bool(data.get("supports_tax", False)),
        customer_removal=removal,
        identify_by_phone_only=bool(data.get("identify_by_phone_only", False)),
    )


def parse_config(data: dict[str, Any]) -> BillingConfig:
    """
    Parse the whole configuration document.

    Raises:
        KeyError: if ``database``, ``database.url`` or ``channels`` is missing.
        ValueError: on invalid values or duplicate channel names / prefixes.
    """
    channels = tuple(parse_channel(c) for c in data["channels"])
    if not channels:
        raise ValueError("at least one channel must be configured")

    names = [c.name for c in channels]
    if len(set(names)) != len(names):
        raise ValueError(f"duplicate channel names: {names}")
    prefixes = [c.voucher_prefix for c in channels]
    if len(set(prefixes)) != len(prefixes):
        raise ValueError(f"channels must have distinct voucher prefixes: {prefixes}")

    return BillingConfig(
        database=parse_database(data["database"]),
        voucher=parse_voucher(data.get("voucher") or {}),
        tax=parse_tax(data.get("tax") or {}),
        logging=parse_logging(data.get("logging") or {}),
        channels=channels,
        currency_symbol=str(data.get("currency_symbol", "₹")),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
