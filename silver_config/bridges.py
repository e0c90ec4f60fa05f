"""
Config -> Kernel Bridges.

Functions that convert a BillingConfig into kernel inputs.  These live in
silver_config (the producer) because the kernel must NEVER import
silver_config.

Usage:
    from silver_config import get_active_config
    from silver_config.bridges import build_billing_service

    config = get_active_config()
    billing = build_billing_service(config)
"""

from __future__ import annotations

from types import MappingProxyType

from sqlalchemy.orm import sessionmaker

from silver_config.schema import BillingConfig, ChannelConfig
from silver_kernel.db.engine import init_engine_from_config
from silver_kernel.domain.clock import Clock
from silver_kernel.domain.invoice import TaxConfig
from silver_kernel.domain.policy import (
    BalanceStrategyKind,
    BillingPolicy,
    ChannelPolicy,
    CustomerRemoval,
)
from silver_kernel.logging_config import configure_logging
from silver_kernel.services.billing_service import BillingService


def build_channel_policy(channel: ChannelConfig) -> ChannelPolicy:
    return ChannelPolicy(
        name=channel.name,
        voucher_prefix=channel.voucher_prefix,
        balance_strategy=BalanceStrategyKind(channel.balance_strategy),
        tracks_silver_return=channel.tracks_silver_return,
        supports_tax=channel.supports_tax,
        customer_removal=CustomerRemoval(channel.customer_removal),
        identify_by_phone_only=channel.identify_by_phone_only,
    )


def build_billing_policy(config: BillingConfig) -> BillingPolicy:
    """Translate configuration into the kernel's BillingPolicy.

    Tax is never applicable by default; the percentages are the ones a
    sale uses when it opts into GST without naming its own.
    """
    return BillingPolicy(
        channels=MappingProxyType(
            {channel.name: build_channel_policy(channel) for channel in config.channels}
        ),
        default_tax=TaxConfig(
            applicable=False,
            cgst_percent=config.tax.cgst_percent,
            sgst_percent=config.tax.sgst_percent,
        ),
        max_voucher_sequence=config.voucher.max_sequence,
        timezone=config.voucher.timezone,
        currency_symbol=config.currency_symbol,
    )


def build_billing_service(
    config: BillingConfig, clock: Clock | None = None
) -> BillingService:
    """Set up logging and the engine from config and return a BillingService on it."""
    configure_logging(level=config.logging.level)
    engine = init_engine_from_config(config.database)
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    return BillingService(session_factory, build_billing_policy(config), clock)
