"""Read-only query side of the silver ledger kernel."""

from silver_kernel.selectors.base import BaseSelector
from silver_kernel.selectors.ledger_selector import LedgerSelector
from silver_kernel.selectors.sale_selector import SaleSelector

__all__ = [
    "BaseSelector",
    "LedgerSelector",
    "SaleSelector",
]
