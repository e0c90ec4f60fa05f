"""
Billing configuration schema.

Human-authored settings for one shop, parsed from YAML by the loader into
these frozen types.  The kernel never sees them directly:
``silver_config.bridges`` turns them into a ``BillingPolicy`` and an engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings handed to ``init_engine_from_config``."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    lock_timeout_ms: int | None = None  # PostgreSQL only


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


# ---------------------------------------------------------------------------
# Vouchers and tax
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VoucherConfig:
    max_sequence: int = 9999
    timezone: str = "Asia/Kolkata"  # business day for vouchers and sale dates


@dataclass(frozen=True)
class TaxDefaults:
    """GST percentages used when a sale does not supply its own."""

    cgst_percent: Decimal = Decimal("1.5")
    sgst_percent: Decimal = Decimal("1.5")


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChannelConfig:
    name: str
    voucher_prefix: str
    balance_strategy: str  # cached_field | derived_sum
    tracks_silver_return: bool = False
    supports_tax: bool = False
    customer_removal: str = "deactivate"  # deactivate | delete
    identify_by_phone_only: bool = False


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BillingConfig:
    """The complete configuration of a billing installation."""

    database: DatabaseConfig
    voucher: VoucherConfig = field(default_factory=VoucherConfig)
    tax: TaxDefaults = field(default_factory=TaxDefaults)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    channels: tuple[ChannelConfig, ...] = ()
    currency_symbol: str = "₹"
    checksum: str = ""

    def channel(self, name: str) -> ChannelConfig | None:
        for channel in self.channels:
            if channel.name == name:
                return channel
        return None
