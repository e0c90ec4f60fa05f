"""
Module: silver_kernel.models.ledger
Responsibility: The append-only customer ledger.  Every change to what a
    customer owes is one LedgerTransaction row.
Architecture position: Kernel > Models.  May import from db/ only.
    Rows are written only by LedgerEngine.

Invariants enforced:
    - Append-only: updates and deletes are rejected by ORM listeners.
    - seq is unique and monotonic per customer (SequenceService counter
      "ledger:<customer_id>").
    - Per customer, ordered by (transaction_date, seq):
      balance_after[i] == balance_before[i + 1].
    - balance_after == balance_before + amount for every row.

Audit relevance:
    Replaying a customer's entries from zero reproduces the customer's
    balance.  The before/after pair on every row lets an auditor check the
    chain without recomputing the whole history.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, Date, DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from silver_kernel.db.base import TrackedBase, UUIDString
from silver_kernel.db.types import MoneyType, WeightType


class TransactionType(str, Enum):
    """Kind of ledger entry."""

    SALE = "sale"
    PAYMENT = "payment"
    SILVER_PAYMENT = "silver_payment"
    SILVER_RETURN = "silver_return"
    ADJUSTMENT = "adjustment"


class PaymentMode(str, Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    SILVER = "silver"


class LedgerTransaction(TrackedBase):
    """
    One immutable ledger entry for a customer.

    Sign convention: positive amount increases what the customer owes
    (a sale), negative decreases it (a payment or a reversal).  Silver
    returns carry zero amount and record the weight only.
    """

    __tablename__ = "ledger_transactions"

    __table_args__ = (
        Index("idx_ledger_customer_order", "customer_id", "transaction_date", "seq"),
        Index("idx_ledger_customer_entry_date", "customer_id", "entry_date"),
        Index("idx_ledger_sale", "sale_id"),
        UniqueConstraint("customer_id", "seq", name="uq_ledger_customer_seq"),
    )

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("customers.id"),
        nullable=False,
    )

    sale_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("sales.id"),
        nullable=True,
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    transaction_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # Business date in the shop's timezone, used for range filters
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)

    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    silver_weight: Mapped[Decimal | None] = mapped_column(WeightType, nullable=True)

    payment_mode: Mapped[str | None] = mapped_column(String(20), nullable=True)

    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    balance_before: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    balance_after: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<LedgerTransaction #{self.seq} {self.transaction_type} "
            f"{self.amount}: {self.balance_before} -> {self.balance_after}>"
        )
