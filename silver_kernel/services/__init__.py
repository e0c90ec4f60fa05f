"""
Kernel services -- the write side of the silver ledger.

Every service except BillingService works inside the caller's session and
only flushes.  BillingService owns the unit of work.
"""

from silver_kernel.services.base import BaseService
from silver_kernel.services.billing_service import BillingService
from silver_kernel.services.customer_service import CustomerDetails, CustomerService
from silver_kernel.services.ledger_engine import (
    BalanceStrategy,
    CachedFieldStrategy,
    DerivedSumStrategy,
    LedgerEngine,
    strategy_for,
)
from silver_kernel.services.rate_service import RateProvider, parse_rate
from silver_kernel.services.sale_lifecycle import SaleLifecycleManager
from silver_kernel.services.sequence_service import SequenceService
from silver_kernel.services.voucher_allocator import VoucherAllocator

__all__ = [
    "BaseService",
    "BillingService",
    "CustomerDetails",
    "CustomerService",
    "BalanceStrategy",
    "CachedFieldStrategy",
    "DerivedSumStrategy",
    "LedgerEngine",
    "strategy_for",
    "RateProvider",
    "parse_rate",
    "SaleLifecycleManager",
    "SequenceService",
    "VoucherAllocator",
]
