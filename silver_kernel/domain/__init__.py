"""
Pure domain layer.

Invoice math, sale status rules, voucher number format, billing policy and
the DTOs handed across the kernel boundary.  Nothing here opens a session
or reads the wall clock except through an injected Clock.
"""

from silver_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from silver_kernel.domain.dtos import (
    BillingStats,
    ChainBreak,
    ChannelTotals,
    CustomerInfo,
    CustomerLedger,
    DailyAnalysis,
    LedgerEntryRecord,
    Page,
    SaleDetail,
    SaleItemRecord,
    SaleRecord,
    SaleSummary,
    SaleUpdate,
    SilverRateInfo,
)
from silver_kernel.domain.invoice import (
    Invoice,
    InvoiceLine,
    ItemMeasurement,
    TaxConfig,
    calculate_invoice,
)
from silver_kernel.domain.policy import (
    BalanceStrategyKind,
    BillingPolicy,
    ChannelPolicy,
    CustomerRemoval,
    default_billing_policy,
)
from silver_kernel.domain.status import (
    SaleStatus,
    SilverReturnStatus,
    derive_silver_return_status,
    derive_status,
)
from silver_kernel.domain.voucher import (
    MAX_SEQUENCE,
    VoucherNumber,
    format_voucher_number,
    parse_voucher_number,
)

__all__ = [
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # DTOs
    "BillingStats",
    "ChainBreak",
    "ChannelTotals",
    "CustomerInfo",
    "CustomerLedger",
    "DailyAnalysis",
    "LedgerEntryRecord",
    "Page",
    "SaleDetail",
    "SaleItemRecord",
    "SaleRecord",
    "SaleSummary",
    "SaleUpdate",
    "SilverRateInfo",
    # Invoice
    "Invoice",
    "InvoiceLine",
    "ItemMeasurement",
    "TaxConfig",
    "calculate_invoice",
    # Policy
    "BalanceStrategyKind",
    "BillingPolicy",
    "ChannelPolicy",
    "CustomerRemoval",
    "default_billing_policy",
    # Status
    "SaleStatus",
    "SilverReturnStatus",
    "derive_silver_return_status",
    "derive_status",
    # Voucher
    "MAX_SEQUENCE",
    "VoucherNumber",
    "format_voucher_number",
    "parse_voucher_number",
]
