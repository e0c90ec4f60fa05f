"""SQLAlchemy ORM models for the silver ledger kernel."""

from silver_kernel.models.customer import BillingChannel, Customer
from silver_kernel.models.ledger import LedgerTransaction, PaymentMode, TransactionType
from silver_kernel.models.sale import Sale, SaleItem
from silver_kernel.models.sequence_counter import SequenceCounter
from silver_kernel.models.silver_rate import SilverRate

__all__ = [
    "BillingChannel",
    "Customer",
    "LedgerTransaction",
    "PaymentMode",
    "TransactionType",
    "Sale",
    "SaleItem",
    "SequenceCounter",
    "SilverRate",
]
