"""
Billing policy -- per-channel behavior the kernel is parameterized by.

Responsibility:
    Kernel-native description of the billing channels: voucher prefix,
    balance strategy, whether wholesale silver returns are tracked, whether
    GST may be charged, and how customers are removed.  Built from YAML by
    ``silver_config.bridges.build_billing_policy``; the kernel never reads
    configuration files itself.

Architecture position:
    Kernel > Domain -- pure, zero I/O.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType

from silver_kernel.domain.invoice import TaxConfig
from silver_kernel.domain.voucher import MAX_SEQUENCE
from silver_kernel.exceptions import InvalidChannelError


class BalanceStrategyKind(str, Enum):
    """Where a channel's customer balance is read from."""

    CACHED_FIELD = "cached_field"
    DERIVED_SUM = "derived_sum"


class CustomerRemoval(str, Enum):
    DEACTIVATE = "deactivate"
    DELETE = "delete"


@dataclass(frozen=True)
class ChannelPolicy:
    name: str
    voucher_prefix: str
    balance_strategy: BalanceStrategyKind
    tracks_silver_return: bool
    supports_tax: bool
    customer_removal: CustomerRemoval
    # Wholesale customers are found by phone; regular by name and phone
    identify_by_phone_only: bool = False


@dataclass(frozen=True)
class BillingPolicy:
    """
    Everything a BillingService needs to know about the shop's books.

    Guarantees:
        - ``channel()`` either returns a known ChannelPolicy or raises
          InvalidChannelError.
    """

    channels: MappingProxyType
    default_tax: TaxConfig = field(default_factory=TaxConfig)
    max_voucher_sequence: int = MAX_SEQUENCE
    timezone: str = "Asia/Kolkata"
    currency_symbol: str = "₹"

    def channel(self, name: str, operation: str = "billing") -> ChannelPolicy:
        policy = self.channels.get(str(name))
        if policy is None:
            raise InvalidChannelError(str(name), operation)
        return policy

    @property
    def channel_names(self) -> tuple[str, ...]:
        return tuple(self.channels)


def default_billing_policy() -> BillingPolicy:
    """The shop's standard two-book setup."""
    regular = ChannelPolicy(
        name="regular",
        voucher_prefix="REG",
        balance_strategy=BalanceStrategyKind.DERIVED_SUM,
        tracks_silver_return=False,
        supports_tax=False,
        customer_removal=CustomerRemoval.DELETE,
    )
    wholesale = ChannelPolicy(
        name="wholesale",
        voucher_prefix="",
        balance_strategy=BalanceStrategyKind.CACHED_FIELD,
        tracks_silver_return=True,
        supports_tax=True,
        customer_removal=CustomerRemoval.DEACTIVATE,
        identify_by_phone_only=True,
    )
    return BillingPolicy(
        channels=MappingProxyType({"regular": regular, "wholesale": wholesale}),
        default_tax=TaxConfig(
            applicable=False,
            cgst_percent=Decimal("1.5"),
            sgst_percent=Decimal("1.5"),
        ),
    )
