"""
DTOs -- immutable records returned across the kernel boundary.

Responsibility:
    Frozen dataclasses that carry customers, rates, sales, ledger entries and
    report aggregates out of services and selectors.  Callers never receive
    ORM instances, so nothing they do can write to the database.

Architecture position:
    Kernel > Domain -- pure, no I/O.  from_model() class methods are boundary
    converters invoked only from services and selectors.

Data flow:
    ORM row -> from_model() -> DTO -> caller (HTTP layer, reporting)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Generic, TypeVar
from uuid import UUID

if TYPE_CHECKING:
    from silver_kernel.models.customer import Customer
    from silver_kernel.models.ledger import LedgerTransaction
    from silver_kernel.models.sale import Sale, SaleItem
    from silver_kernel.models.silver_rate import SilverRate

T = TypeVar("T")


@dataclass(frozen=True)
class CustomerInfo:
    """
    A customer with the balance read through the channel's strategy.

    ``balance`` is passed in by the caller because a regular customer's
    stored balance column is not authoritative.
    """

    id: UUID
    channel: str
    name: str
    phone: str | None
    email: str | None
    address: str | None
    gst_number: str | None
    balance: Decimal
    is_active: bool
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: Customer, balance: Decimal | None = None) -> CustomerInfo:
        return cls(
            id=model.id,
            channel=model.channel,
            name=model.name,
            phone=model.phone,
            email=model.email,
            address=model.address,
            gst_number=model.gst_number,
            balance=model.balance if balance is None else balance,
            is_active=model.is_active,
            created_at=model.created_at,
        )


@dataclass(frozen=True)
class SilverRateInfo:
    id: UUID
    rate_date: date
    rate_per_gram: Decimal
    is_active: bool

    @classmethod
    def from_model(cls, model: SilverRate) -> SilverRateInfo:
        return cls(
            id=model.id,
            rate_date=model.rate_date,
            rate_per_gram=model.rate_per_gram,
            is_active=model.is_active,
        )


@dataclass(frozen=True)
class SaleItemRecord:
    id: UUID
    line_no: int
    description: str | None
    product_ref: str | None
    pieces: int
    gross_weight: Decimal
    stone_weight: Decimal
    net_weight: Decimal
    wastage: Decimal
    touch: Decimal
    labor_rate_per_kg: Decimal
    silver_weight: Decimal
    labor_charges: Decimal
    item_amount: Decimal

    @classmethod
    def from_model(cls, model: SaleItem) -> SaleItemRecord:
        return cls(
            id=model.id,
            line_no=model.line_no,
            description=model.description,
            product_ref=model.product_ref,
            pieces=model.pieces,
            gross_weight=model.gross_weight,
            stone_weight=model.stone_weight,
            net_weight=model.net_weight,
            wastage=model.wastage,
            touch=model.touch,
            labor_rate_per_kg=model.labor_rate_per_kg,
            silver_weight=model.silver_weight,
            labor_charges=model.labor_charges,
            item_amount=model.item_amount,
        )


@dataclass(frozen=True)
class SaleRecord:
    """
    Snapshot of a sale as persisted.

    Contract:
        All settlement figures are those committed by the operation that
        returned this record.
    """

    id: UUID
    voucher_number: str
    customer_id: UUID
    channel: str
    sale_date: date
    silver_rate: Decimal
    total_net_weight: Decimal
    total_wastage: Decimal
    total_silver_weight: Decimal
    total_labor_charges: Decimal
    subtotal: Decimal
    tax_applicable: bool
    cgst_percent: Decimal
    sgst_percent: Decimal
    cgst: Decimal
    sgst: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    paid_silver: Decimal
    balance_amount: Decimal
    previous_balance: Decimal
    closing_balance: Decimal
    payment_mode: str
    status: str
    silver_to_return: Decimal
    silver_returned: Decimal
    silver_return_status: str
    notes: str | None
    cancelled_at: datetime | None
    cancel_reason: str | None
    items: tuple[SaleItemRecord, ...] = ()

    @property
    def silver_remaining(self) -> Decimal:
        return self.silver_to_return - self.silver_returned

    @classmethod
    def from_model(cls, model: Sale, include_items: bool = True) -> SaleRecord:
        items = (
            tuple(SaleItemRecord.from_model(item) for item in model.items)
            if include_items
            else ()
        )
        return cls(
            id=model.id,
            voucher_number=model.voucher_number,
            customer_id=model.customer_id,
            channel=model.channel,
            sale_date=model.sale_date,
            silver_rate=model.silver_rate,
            total_net_weight=model.total_net_weight,
            total_wastage=model.total_wastage,
            total_silver_weight=model.total_silver_weight,
            total_labor_charges=model.total_labor_charges,
            subtotal=model.subtotal,
            tax_applicable=model.tax_applicable,
            cgst_percent=model.cgst_percent,
            sgst_percent=model.sgst_percent,
            cgst=model.cgst,
            sgst=model.sgst,
            total_amount=model.total_amount,
            paid_amount=model.paid_amount,
            paid_silver=model.paid_silver,
            balance_amount=model.balance_amount,
            previous_balance=model.previous_balance,
            closing_balance=model.closing_balance,
            payment_mode=model.payment_mode,
            status=model.status,
            silver_to_return=model.silver_to_return,
            silver_returned=model.silver_returned,
            silver_return_status=model.silver_return_status,
            notes=model.notes,
            cancelled_at=model.cancelled_at,
            cancel_reason=model.cancel_reason,
            items=items,
        )


@dataclass(frozen=True)
class LedgerEntryRecord:
    id: UUID
    seq: int
    customer_id: UUID
    sale_id: UUID | None
    transaction_date: datetime
    entry_date: date
    transaction_type: str
    amount: Decimal
    silver_weight: Decimal | None
    payment_mode: str | None
    reference_number: str | None
    balance_before: Decimal
    balance_after: Decimal
    notes: str | None
    voucher_number: str | None = None

    @classmethod
    def from_model(
        cls, model: LedgerTransaction, voucher_number: str | None = None
    ) -> LedgerEntryRecord:
        return cls(
            id=model.id,
            seq=model.seq,
            customer_id=model.customer_id,
            sale_id=model.sale_id,
            transaction_date=model.transaction_date,
            entry_date=model.entry_date,
            transaction_type=model.transaction_type,
            amount=model.amount,
            silver_weight=model.silver_weight,
            payment_mode=model.payment_mode,
            reference_number=model.reference_number,
            balance_before=model.balance_before,
            balance_after=model.balance_after,
            notes=model.notes,
            voucher_number=voucher_number,
        )


@dataclass(frozen=True)
class SaleUpdate:
    """Result of a money-moving operation: the sale and the entries it appended."""

    sale: SaleRecord
    entries: tuple[LedgerEntryRecord, ...]


@dataclass(frozen=True)
class ChainBreak:
    """Two consecutive entries whose balances do not link."""

    entry_id: UUID
    seq: int
    expected_balance_before: Decimal
    actual_balance_before: Decimal


@dataclass(frozen=True)
class CustomerLedger:
    """
    A customer's ledger over an optional date range.

    ``current_balance`` is the customer's balance today regardless of the
    range.  ``chain_breaks`` is empty when every entry links to the previous.
    """

    customer: CustomerInfo
    entries: tuple[LedgerEntryRecord, ...]
    start_date: date | None
    end_date: date | None
    opening_balance: Decimal
    closing_balance: Decimal
    current_balance: Decimal
    chain_breaks: tuple[ChainBreak, ...] = ()

    @property
    def chain_intact(self) -> bool:
        return not self.chain_breaks


@dataclass(frozen=True)
class SaleDetail:
    sale: SaleRecord
    customer: CustomerInfo
    entries: tuple[LedgerEntryRecord, ...]


@dataclass(frozen=True)
class Page(Generic[T]):
    items: tuple[T, ...]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass(frozen=True)
class SaleSummary:
    """One row of a sales listing."""

    id: UUID
    voucher_number: str
    sale_date: date
    channel: str
    customer_id: UUID
    customer_name: str
    customer_phone: str | None
    total_silver_weight: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    status: str
    silver_return_status: str


@dataclass(frozen=True)
class ChannelTotals:
    channel: str | None
    sale_count: int = 0
    total_silver_weight: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    paid_amount: Decimal = Decimal("0")
    balance_amount: Decimal = Decimal("0")


@dataclass(frozen=True)
class DailyAnalysis:
    """Sales of one business day, overall and per channel."""

    day: date
    totals: ChannelTotals
    by_channel: tuple[ChannelTotals, ...]
    sales: tuple[SaleSummary, ...] = field(default_factory=tuple)

    def for_channel(self, channel: str) -> ChannelTotals:
        for totals in self.by_channel:
            if totals.channel == channel:
                return totals
        return ChannelTotals(channel=channel)


@dataclass(frozen=True)
class BillingStats:
    """Dashboard figures for a channel (or all channels) and date range."""

    channel: str | None
    start_date: date | None
    end_date: date | None
    sale_count: int
    total_sales_amount: Decimal
    total_silver_weight: Decimal
    total_payments_received: Decimal
    pending_balance: Decimal
    pending_sale_count: int
    active_customers: int
    pending_silver_return: Decimal
    returned_silver: Decimal
