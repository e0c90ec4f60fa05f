"""
Module: silver_kernel.models.customer
Responsibility: ORM persistence for the shop's customers on both billing
    channels.  A customer row is the lock target that serializes every
    balance change for that customer.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - balance is written ONLY by LedgerEngine under a row lock, and only for
      channels whose balance strategy is the cached running field.  For
      channels that derive the balance from the ledger it stays at zero.
    - Wholesale customers are unique per phone (partial unique index).
      Regular customers are unique per (name, phone), enforced by
      CustomerService because phone may be empty.

Failure modes:
    - IntegrityError on a duplicate wholesale phone (concurrent get-or-create).

Audit relevance:
    The customer is the counterparty of every ledger entry.  Sign convention:
    positive balance means the customer owes the shop.
"""

from decimal import Decimal
from enum import Enum
from sqlalchemy import Boolean, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from silver_kernel.db.base import TrackedBase
from silver_kernel.db.types import MoneyType


class BillingChannel(str, Enum):
    """The two independent billing books kept by the shop."""

    REGULAR = "regular"
    WHOLESALE = "wholesale"


class Customer(TrackedBase):
    """
    A customer on exactly one billing channel.

    Contract:
        channel is set at creation and never changes.  Contact fields may be
        edited through CustomerService.  balance moves only through ledger
        entries.

    Non-goals:
        - Does NOT compute balances itself; see LedgerEngine strategies.
    """

    __tablename__ = "customers"

    __table_args__ = (
        Index(
            "uq_customer_wholesale_phone",
            "phone",
            unique=True,
            postgresql_where=text("channel = 'wholesale'"),
            sqlite_where=text("channel = 'wholesale'"),
        ),
        Index("idx_customer_channel_name", "channel", "name"),
        Index("idx_customer_channel_phone", "channel", "phone"),
    )

    channel: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    address: Mapped[str | None] = mapped_column(Text, nullable=True)

    gst_number: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Running balance for cached_field channels
    balance: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0")
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Customer {self.name} ({self.channel})>"
