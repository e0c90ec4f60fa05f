"""
Module: silver_kernel.selectors.sale_selector
Responsibility: Read-only sale queries for listings, the sale detail screen,
    the daily analysis report and the billing dashboard.
Architecture position: Kernel > Selectors.

Invariants relied on:
    - Cancelled sales keep their invoice figures but contribute nothing to
      pending balances or pending silver.
    - Amounts are summed in SQL and re-quantized on the way out.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from silver_kernel.db.types import ZERO, round_money, round_weight
from silver_kernel.domain.dtos import (
    BillingStats,
    ChannelTotals,
    DailyAnalysis,
    LedgerEntryRecord,
    Page,
    SaleDetail,
    SaleRecord,
    SaleSummary,
)
from silver_kernel.domain.status import SaleStatus, SilverReturnStatus
from silver_kernel.exceptions import SaleNotFoundError
from silver_kernel.models.customer import Customer
from silver_kernel.models.ledger import LedgerTransaction, TransactionType
from silver_kernel.models.sale import Sale
from silver_kernel.selectors.base import BaseSelector

MAX_PAGE_SIZE = 200

_MONEY_TYPES = (TransactionType.PAYMENT.value, TransactionType.SILVER_PAYMENT.value)


def _dec(value) -> Decimal:
    return Decimal(str(value)) if value is not None else ZERO


def _summary(sale: Sale, customer: Customer) -> SaleSummary:
    return SaleSummary(
        id=sale.id,
        voucher_number=sale.voucher_number,
        sale_date=sale.sale_date,
        channel=sale.channel,
        customer_id=sale.customer_id,
        customer_name=customer.name,
        customer_phone=customer.phone,
        total_silver_weight=sale.total_silver_weight,
        total_amount=sale.total_amount,
        paid_amount=sale.paid_amount,
        balance_amount=sale.balance_amount,
        status=sale.status,
        silver_return_status=sale.silver_return_status,
    )


class SaleSelector(BaseSelector):
    """Read access to sales and sale aggregates."""

    def list_sales(
        self,
        channel: str | None = None,
        customer_id: UUID | None = None,
        status: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> Page[SaleSummary]:
        """Sales newest first, filtered and paginated."""
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        filters = []
        if channel is not None:
            filters.append(Sale.channel == channel)
        if customer_id is not None:
            filters.append(Sale.customer_id == customer_id)
        if status is not None:
            filters.append(Sale.status == status)
        if start_date is not None:
            filters.append(Sale.sale_date >= start_date)
        if end_date is not None:
            filters.append(Sale.sale_date <= end_date)

        total = self.session.execute(
            select(func.count(Sale.id)).where(*filters)
        ).scalar_one()

        rows = self.session.execute(
            select(Sale, Customer)
            .join(Customer, Customer.id == Sale.customer_id)
            .where(*filters)
            .order_by(Sale.sale_date.desc(), Sale.voucher_number.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()

        return Page(
            items=tuple(_summary(sale, customer) for sale, customer in rows),
            total=total,
            page=page,
            limit=limit,
        )

    def _sale(self, sale_id: UUID) -> Sale:
        sale = self.session.get(Sale, sale_id)
        if sale is None:
            raise SaleNotFoundError(str(sale_id))
        return sale

    def get_sale(self, sale_id: UUID) -> SaleRecord:
        return SaleRecord.from_model(self._sale(sale_id))

    def get_by_voucher(self, voucher_number: str) -> SaleRecord:
        sale = self.session.execute(
            select(Sale).where(Sale.voucher_number == voucher_number)
        ).scalar_one_or_none()
        if sale is None:
            raise SaleNotFoundError(voucher_number)
        return SaleRecord.from_model(sale)

    def get_sale_detail(self, sale_id: UUID) -> SaleDetail:
        """A sale with its items, its customer and the entries it caused."""
        sale = self._sale(sale_id)
        customer = self.session.get(Customer, sale.customer_id)
        entries = self.session.execute(
            select(LedgerTransaction)
            .where(LedgerTransaction.sale_id == sale.id)
            .order_by(LedgerTransaction.transaction_date, LedgerTransaction.seq)
        ).scalars().all()
        return SaleDetail(
            sale=SaleRecord.from_model(sale),
            customer=self.customer_info(customer),
            entries=tuple(
                LedgerEntryRecord.from_model(entry, voucher_number=sale.voucher_number)
                for entry in entries
            ),
        )

    def daily_analysis(self, day: date) -> DailyAnalysis:
        """
        Totals for one business day, overall and per channel.

        Cancelled sales are listed but left out of the totals.
        """
        rows = self.session.execute(
            select(Sale, Customer)
            .join(Customer, Customer.id == Sale.customer_id)
            .where(Sale.sale_date == day)
            .order_by(Sale.voucher_number)
        ).all()

        sales = tuple(_summary(sale, customer) for sale, customer in rows)
        counted = [s for s in sales if s.status != SaleStatus.CANCELLED.value]

        def totals_of(channel: str | None, subset: list[SaleSummary]) -> ChannelTotals:
            return ChannelTotals(
                channel=channel,
                sale_count=len(subset),
                total_silver_weight=round_weight(sum((s.total_silver_weight for s in subset), ZERO)),
                total_amount=round_money(sum((s.total_amount for s in subset), ZERO)),
                paid_amount=round_money(sum((s.paid_amount for s in subset), ZERO)),
                balance_amount=round_money(sum((s.balance_amount for s in subset), ZERO)),
            )

        by_channel = tuple(
            totals_of(name, [s for s in counted if s.channel == name])
            for name in self.policy.channel_names
        )
        return DailyAnalysis(
            day=day,
            totals=totals_of(None, counted),
            by_channel=by_channel,
            sales=sales,
        )

    def billing_stats(
        self,
        channel: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> BillingStats:
        """
        Dashboard figures.

        Sales figures honour the date range.  pending_balance and
        active_customers describe the customers as they stand now.
        """
        if channel is not None:
            self.policy.channel(channel, "billing_stats")

        sale_filters = [Sale.status != SaleStatus.CANCELLED.value]
        if channel is not None:
            sale_filters.append(Sale.channel == channel)
        if start_date is not None:
            sale_filters.append(Sale.sale_date >= start_date)
        if end_date is not None:
            sale_filters.append(Sale.sale_date <= end_date)

        count, amount, weight, returned = self.session.execute(
            select(
                func.count(Sale.id),
                func.coalesce(func.sum(Sale.total_amount), 0),
                func.coalesce(func.sum(Sale.total_silver_weight), 0),
                func.coalesce(func.sum(Sale.silver_returned), 0),
            ).where(*sale_filters)
        ).one()

        pending_silver = self.session.execute(
            select(
                func.coalesce(func.sum(Sale.silver_to_return - Sale.silver_returned), 0)
            ).where(
                *sale_filters,
                Sale.silver_return_status.in_(
                    (SilverReturnStatus.PENDING.value, SilverReturnStatus.PARTIAL.value)
                ),
            )
        ).scalar_one()

        pending_sales = self.session.execute(
            select(func.count(Sale.id)).where(
                *sale_filters,
                Sale.status.in_((SaleStatus.PENDING.value, SaleStatus.PARTIAL.value)),
            )
        ).scalar_one()

        payment_filters = [LedgerTransaction.transaction_type.in_(_MONEY_TYPES)]
        if start_date is not None:
            payment_filters.append(LedgerTransaction.entry_date >= start_date)
        if end_date is not None:
            payment_filters.append(LedgerTransaction.entry_date <= end_date)
        payment_stmt = select(
            func.coalesce(func.sum(-LedgerTransaction.amount), 0)
        ).where(*payment_filters)
        if channel is not None:
            payment_stmt = payment_stmt.join(
                Customer, Customer.id == LedgerTransaction.customer_id
            ).where(Customer.channel == channel)
        payments = self.session.execute(payment_stmt).scalar_one()

        customer_stmt = select(Customer).where(Customer.is_active.is_(True))
        if channel is not None:
            customer_stmt = customer_stmt.where(Customer.channel == channel)
        customers = self.session.execute(customer_stmt).scalars().all()
        pending_balance = ZERO
        for customer in customers:
            balance = self.balance_of(customer)
            if balance > ZERO:
                pending_balance += balance

        return BillingStats(
            channel=channel,
            start_date=start_date,
            end_date=end_date,
            sale_count=count,
            total_sales_amount=round_money(_dec(amount)),
            total_silver_weight=round_weight(_dec(weight)),
            total_payments_received=round_money(_dec(payments)),
            pending_balance=round_money(pending_balance),
            pending_sale_count=pending_sales,
            active_customers=len(customers),
            pending_silver_return=round_weight(_dec(pending_silver)),
            returned_silver=round_weight(_dec(returned)),
        )
