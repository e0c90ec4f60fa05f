"""
Module: silver_kernel.models.sale
Responsibility: ORM persistence for sales (one voucher each) and their items.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - voucher_number is unique (uq_sale_voucher_number) and never changes.
    - Invoice fields (totals, rate, tax) are frozen after creation; see
      db/immutability.py.  Settlement fields move with every payment.
    - balance_amount == total_amount - paid_amount while the sale is not
      cancelled, except that later payments floor balance_amount at zero.
    - status is always the result of derive_status() unless cancelled.
    - SaleItem rows are immutable and belong to exactly one sale.

Failure modes:
    - IntegrityError on a duplicate voucher number (only possible if the
      voucher counter is bypassed).

Audit relevance:
    The sale is the printed invoice.  previous_balance and closing_balance
    show the customer's running position around it.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from silver_kernel.db.base import TrackedBase, UUIDString
from silver_kernel.db.types import MoneyType, RateType, WeightType

if TYPE_CHECKING:
    from silver_kernel.models.customer import Customer


class Sale(TrackedBase):
    """
    A sale on one billing channel, identified by its voucher number.

    Contract:
        Created once by SaleLifecycleManager.create_sale() together with its
        items and ledger entries.  Afterwards only settlement fields change,
        always inside the same unit of work as the ledger entry causing it.

    Non-goals:
        - Does NOT hold its own ledger; entries live in ledger_transactions.
    """

    __tablename__ = "sales"

    __table_args__ = (
        UniqueConstraint("voucher_number", name="uq_sale_voucher_number"),
        Index("idx_sale_customer", "customer_id"),
        Index("idx_sale_channel_date", "channel", "sale_date"),
        Index("idx_sale_status", "status"),
    )

    voucher_number: Mapped[str] = mapped_column(String(30), nullable=False)

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("customers.id"),
        nullable=False,
    )

    channel: Mapped[str] = mapped_column(String(20), nullable=False)

    sale_date: Mapped[date] = mapped_column(Date, nullable=False)

    silver_rate: Mapped[Decimal] = mapped_column(RateType, nullable=False)

    # Invoice totals
    total_net_weight: Mapped[Decimal] = mapped_column(WeightType, nullable=False)
    total_wastage: Mapped[Decimal] = mapped_column(RateType, nullable=False)
    total_silver_weight: Mapped[Decimal] = mapped_column(WeightType, nullable=False)
    total_labor_charges: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    # Tax
    tax_applicable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cgst_percent: Mapped[Decimal] = mapped_column(RateType, nullable=False)
    sgst_percent: Mapped[Decimal] = mapped_column(RateType, nullable=False)
    cgst: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    sgst: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    # Settlement (paid_amount includes silver valued as cash)
    paid_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    paid_silver: Mapped[Decimal] = mapped_column(WeightType, nullable=False)
    balance_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    # Customer position around this sale
    previous_balance: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    closing_balance: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    payment_mode: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    # Wholesale silver owed back to the customer
    silver_to_return: Mapped[Decimal] = mapped_column(WeightType, nullable=False)
    silver_returned: Mapped[Decimal] = mapped_column(WeightType, nullable=False)
    silver_return_status: Mapped[str] = mapped_column(String(20), nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    customer: Mapped["Customer"] = relationship()

    items: Mapped[list["SaleItem"]] = relationship(
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.line_no",
        lazy="selectin",
    )

    @property
    def silver_remaining(self) -> Decimal:
        return self.silver_to_return - self.silver_returned

    def __repr__(self) -> str:
        return f"<Sale {self.voucher_number}: {self.total_amount} ({self.status})>"


class SaleItem(TrackedBase):
    """
    One priced line of a sale.

    Guarantees:
        - Immutable once flushed (ORM listener).
        - silver_weight, labor_charges and item_amount are the values the
          invoice calculator produced for these measurements.
    """

    __tablename__ = "sale_items"

    __table_args__ = (
        UniqueConstraint("sale_id", "line_no", name="uq_sale_item_line"),
    )

    sale_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("sales.id", ondelete="CASCADE"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Catalog reference; the catalog itself lives outside the kernel
    product_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)

    pieces: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Raw measurements
    gross_weight: Mapped[Decimal] = mapped_column(WeightType, nullable=False)
    stone_weight: Mapped[Decimal] = mapped_column(WeightType, nullable=False)
    net_weight: Mapped[Decimal] = mapped_column(WeightType, nullable=False)
    wastage: Mapped[Decimal] = mapped_column(RateType, nullable=False)
    touch: Mapped[Decimal] = mapped_column(RateType, nullable=False)
    labor_rate_per_kg: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    # Derived
    silver_weight: Mapped[Decimal] = mapped_column(WeightType, nullable=False)
    labor_charges: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    item_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    sale: Mapped[Sale] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<SaleItem {self.line_no}: {self.net_weight}g -> {self.item_amount}>"
