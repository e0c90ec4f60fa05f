"""
BillingService -- transactional entry point for every billing operation.

Responsibility:
    Opens one unit of work per call, wires the kernel services onto its
    session, runs the operation and commits.  Any exception rolls the whole
    operation back: a failed sale leaves no sale, no items, no ledger
    entries, no customer balance change and no consumed voucher number.

Architecture position:
    Kernel > Services -- imperative shell, owns transaction boundaries.
    The only service that commits.  Callers (HTTP handlers, jobs, tests)
    construct it once with a session factory and call it per request.

Invariants enforced:
    - One call, one transaction.
    - Every call runs inside LogContext.bind(operation=..., actor_id=...),
      so each log line of the operation carries who did what.

Failure modes:
    Propagates every BillingKernelError from the wrapped services after
    rolling back.

Audit relevance:
    billing_operation_completed / billing_operation_failed are logged for
    every write with the operation name and its duration.
"""

import time
from collections.abc import Mapping, Sequence
from contextlib import contextmanager
from datetime import date
from uuid import UUID

from silver_kernel.db.engine import get_session_factory, unit_of_work
from silver_kernel.db.types import ZERO
from silver_kernel.domain.clock import Clock, SystemClock
from silver_kernel.domain.dtos import (
    BillingStats,
    CustomerInfo,
    CustomerLedger,
    DailyAnalysis,
    Page,
    SaleDetail,
    SaleRecord,
    SaleSummary,
    SaleUpdate,
    SilverRateInfo,
)
from silver_kernel.domain.invoice import Invoice, ItemMeasurement, TaxConfig, calculate_invoice
from silver_kernel.domain.policy import BillingPolicy, default_billing_policy
from silver_kernel.exceptions import BillingKernelError
from silver_kernel.logging_config import LogContext, get_logger
from silver_kernel.models.ledger import PaymentMode
from silver_kernel.selectors.ledger_selector import LedgerSelector
from silver_kernel.selectors.sale_selector import SaleSelector
from silver_kernel.services.customer_service import CustomerDetails, CustomerService
from silver_kernel.services.ledger_engine import LedgerEngine
from silver_kernel.services.rate_service import RateProvider
from silver_kernel.services.sale_lifecycle import SaleLifecycleManager
from silver_kernel.services.sequence_service import SequenceService
from silver_kernel.services.voucher_allocator import VoucherAllocator

logger = get_logger("services.billing")


class _Kernel:
    """The services of one unit of work, sharing its session."""

    def __init__(self, session, policy: BillingPolicy, clock: Clock):
        sequences = SequenceService(session)
        self.session = session
        self.rates = RateProvider(session, clock, policy.timezone)
        self.ledger = LedgerEngine(session, policy, clock, sequences)
        self.vouchers = VoucherAllocator(session, sequences, policy.max_voucher_sequence)
        self.customers = CustomerService(session, policy, self.ledger)
        self.sales = SaleLifecycleManager(
            session,
            policy,
            clock,
            rates=self.rates,
            vouchers=self.vouchers,
            ledger=self.ledger,
        )
        self.ledger_reads = LedgerSelector(session, policy)
        self.sale_reads = SaleSelector(session, policy)


class BillingService:
    """
    Contract:
        Every public method is atomic.  Writes return DTOs built before
        the commit; reads open a unit of work that commits nothing.

    Non-goals:
        - Does NOT authenticate actors; actor_id is recorded as given.
    """

    def __init__(
        self,
        session_factory=None,
        policy: BillingPolicy | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory or get_session_factory()
        self._policy = policy or default_billing_policy()
        self._clock = clock or SystemClock()

    @property
    def policy(self) -> BillingPolicy:
        return self._policy

    @contextmanager
    def _operation(self, name: str, actor_id: UUID | None = None, **context):
        start = time.monotonic()
        with LogContext.bind(operation=name, actor_id=actor_id, **context):
            try:
                with unit_of_work(self._session_factory) as session:
                    yield _Kernel(session, self._policy, self._clock)
            except BillingKernelError as exc:
                logger.warning(
                    "billing_operation_failed",
                    extra={
                        "error_code": exc.code,
                        "duration_ms": round((time.monotonic() - start) * 1000, 2),
                    },
                )
                raise
            if actor_id is not None:
                logger.info(
                    "billing_operation_completed",
                    extra={"duration_ms": round((time.monotonic() - start) * 1000, 2)},
                )

    # ------------------------------------------------------------------
    # Silver rate
    # ------------------------------------------------------------------

    def set_silver_rate(
        self, rate_date: date, rate_per_gram, *, actor_id: UUID
    ) -> tuple[SilverRateInfo, bool]:
        with self._operation("set_silver_rate", actor_id) as k:
            return k.rates.set_rate(rate_date, rate_per_gram, actor_id)

    def deactivate_silver_rate(self, rate_date: date, *, actor_id: UUID) -> SilverRateInfo:
        with self._operation("deactivate_silver_rate", actor_id) as k:
            return k.rates.deactivate_rate(rate_date, actor_id)

    def get_current_rate(self, as_of: date | None = None) -> SilverRateInfo | None:
        with self._operation("get_current_rate") as k:
            return k.rates.get_current_rate(as_of)

    def list_rate_history(self, limit: int = 30) -> list[SilverRateInfo]:
        with self._operation("list_rate_history") as k:
            return k.rates.list_history(limit)

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    def quote(
        self,
        items: Sequence[ItemMeasurement | Mapping],
        silver_rate=None,
        tax: TaxConfig | None = None,
    ) -> Invoice:
        """Price items without creating a sale; uses today's rate if none given."""
        with self._operation("quote") as k:
            if silver_rate is None:
                silver_rate = k.rates.require_current_rate().rate_per_gram
            return calculate_invoice(items, silver_rate, tax or self._policy.default_tax)

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    def get_or_create_customer(
        self, channel: str, details: CustomerDetails, *, actor_id: UUID
    ) -> tuple[CustomerInfo, bool]:
        with self._operation("get_or_create_customer", actor_id) as k:
            return k.customers.get_or_create_customer(channel, details, actor_id)

    def create_customer(
        self, channel: str, details: CustomerDetails, *, actor_id: UUID
    ) -> CustomerInfo:
        with self._operation("create_customer", actor_id) as k:
            return k.customers.create_customer(channel, details, actor_id)

    def update_customer(self, customer_id: UUID, *, actor_id: UUID, **changes) -> CustomerInfo:
        with self._operation("update_customer", actor_id, customer_id=customer_id) as k:
            return k.customers.update_customer(customer_id, actor_id, **changes)

    def remove_customer(self, customer_id: UUID, *, actor_id: UUID) -> CustomerInfo | None:
        with self._operation("remove_customer", actor_id, customer_id=customer_id) as k:
            return k.customers.remove_customer(customer_id, actor_id)

    def get_customer(self, customer_id: UUID) -> CustomerInfo:
        with self._operation("get_customer", customer_id=customer_id) as k:
            return k.customers.get_customer(customer_id)

    def list_customers(
        self,
        channel: str,
        search: str | None = None,
        page: int = 1,
        limit: int = 50,
        include_inactive: bool = False,
    ) -> Page[CustomerInfo]:
        with self._operation("list_customers") as k:
            return k.customers.list_customers(channel, search, page, limit, include_inactive)

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def create_sale(
        self,
        customer_id: UUID,
        channel: str,
        items: Sequence[ItemMeasurement | Mapping],
        silver_rate=None,
        paid_amount=ZERO,
        paid_silver=ZERO,
        tax: TaxConfig | None = None,
        *,
        actor_id: UUID,
        payment_mode: str = PaymentMode.CASH.value,
        reference_number: str | None = None,
        notes: str | None = None,
    ) -> SaleUpdate:
        with self._operation("create_sale", actor_id, customer_id=customer_id) as k:
            return k.sales.create_sale(
                customer_id,
                channel,
                items,
                silver_rate,
                paid_amount,
                paid_silver,
                tax,
                actor_id=actor_id,
                payment_mode=payment_mode,
                reference_number=reference_number,
                notes=notes,
            )

    def add_payment(
        self,
        sale_id: UUID,
        amount,
        *,
        actor_id: UUID,
        payment_mode: str = PaymentMode.CASH.value,
        reference_number: str | None = None,
        notes: str | None = None,
    ) -> SaleUpdate:
        with self._operation("add_payment", actor_id, sale_id=sale_id) as k:
            return k.sales.add_payment(
                sale_id,
                amount,
                actor_id=actor_id,
                payment_mode=payment_mode,
                reference_number=reference_number,
                notes=notes,
            )

    def add_silver_payment(
        self,
        sale_id: UUID,
        silver_weight,
        silver_rate=None,
        *,
        actor_id: UUID,
        notes: str | None = None,
    ) -> SaleUpdate:
        with self._operation("add_silver_payment", actor_id, sale_id=sale_id) as k:
            return k.sales.add_silver_payment(
                sale_id, silver_weight, silver_rate, actor_id=actor_id, notes=notes
            )

    def add_silver_return(
        self,
        sale_id: UUID,
        silver_weight,
        *,
        actor_id: UUID,
        notes: str | None = None,
    ) -> SaleUpdate:
        with self._operation("add_silver_return", actor_id, sale_id=sale_id) as k:
            return k.sales.add_silver_return(
                sale_id, silver_weight, actor_id=actor_id, notes=notes
            )

    def cancel_sale(self, sale_id: UUID, reason: str, *, actor_id: UUID) -> SaleUpdate:
        with self._operation("cancel_sale", actor_id, sale_id=sale_id) as k:
            return k.sales.cancel_sale(sale_id, reason, actor_id=actor_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_sale(self, sale_id: UUID) -> SaleRecord:
        with self._operation("get_sale", sale_id=sale_id) as k:
            return k.sale_reads.get_sale(sale_id)

    def get_sale_by_voucher(self, voucher_number: str) -> SaleRecord:
        with self._operation("get_sale_by_voucher", voucher_number=voucher_number) as k:
            return k.sale_reads.get_by_voucher(voucher_number)

    def sale_detail(self, sale_id: UUID) -> SaleDetail:
        with self._operation("sale_detail", sale_id=sale_id) as k:
            return k.sale_reads.get_sale_detail(sale_id)

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
        with self._operation("list_sales") as k:
            return k.sale_reads.list_sales(
                channel, customer_id, status, start_date, end_date, page, limit
            )

    def customer_ledger(
        self,
        customer_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> CustomerLedger:
        with self._operation("customer_ledger", customer_id=customer_id) as k:
            return k.ledger_reads.customer_ledger(customer_id, start_date, end_date)

    def verify_ledger(self, customer_id: UUID) -> None:
        """Raise LedgerChainBrokenError if the customer's chain does not link."""
        with self._operation("verify_ledger", customer_id=customer_id) as k:
            k.ledger_reads.assert_chain_intact(customer_id)

    def daily_analysis(self, day: date | None = None) -> DailyAnalysis:
        with self._operation("daily_analysis") as k:
            return k.sale_reads.daily_analysis(day or self._clock.today(self._policy.timezone))

    def billing_stats(
        self,
        channel: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> BillingStats:
        with self._operation("billing_stats") as k:
            return k.sale_reads.billing_stats(channel, start_date, end_date)
