"""
SaleLifecycleManager -- every state change of a sale.

Responsibility:
    Creates sales and applies cash payments, silver payments, wholesale
    silver returns and cancellations.  Each operation updates the Sale,
    appends ledger entries through LedgerEngine and re-derives the sale's
    status, all within the caller's unit of work.

Architecture position:
    Kernel > Services.  Composes RateProvider, VoucherAllocator and
    LedgerEngine.  Wrapped by BillingService, which owns the transaction.

Invariants enforced:
    - Input is validated (amounts, channel, invoice math) before the first
      write.  Once anything has been written, a failure propagates and the
      caller's unit of work rolls everything back.
    - balance_amount == total_amount - paid_amount for a sale that is not
      cancelled, except that payments floor balance_amount at zero when a
      customer overpays.  The overpayment shows in the customer ledger.
    - status always comes from derive_status(); silver_return_status from
      derive_silver_return_status().
    - Silver returns never move the cash balance.
    - Corrections are compensating entries; items and earlier ledger
      entries are never edited.
    - Lock order: sale -> customer -> voucher counter -> ledger sequence.
      create_sale never locks an existing sale.

Failure modes:
    - CustomerNotFoundError, SaleNotFoundError, SilverRateNotFoundError
    - InvalidAmountError for non-positive payments, negative paid values
      and unknown payment modes
    - InvalidChannelError for channel mismatches, tax on a channel without
      GST, and silver returns outside wholesale billing
    - ExceedsRemainingError, VoucherExhaustedError, CalculationError
    - SaleCancelledError, SaleNotCancellableError, CustomerInactiveError

Audit relevance:
    Every operation logs its outcome with the voucher number, and every
    amount that changes what a customer owes has a ledger entry carrying
    the actor that caused it.
"""

from collections.abc import Mapping, Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from silver_kernel.db.types import ZERO, round_money, round_weight
from silver_kernel.domain.clock import Clock, SystemClock
from silver_kernel.domain.dtos import LedgerEntryRecord, SaleRecord, SaleUpdate
from silver_kernel.domain.invoice import ItemMeasurement, TaxConfig, calculate_invoice, to_decimal
from silver_kernel.domain.policy import BillingPolicy, default_billing_policy
from silver_kernel.domain.status import (
    SaleStatus,
    derive_silver_return_status,
    derive_status,
)
from silver_kernel.exceptions import (
    CalculationError,
    CustomerInactiveError,
    ExceedsRemainingError,
    InvalidAmountError,
    InvalidChannelError,
    SaleCancelledError,
    SaleNotCancellableError,
    SaleNotFoundError,
)
from silver_kernel.logging_config import LogContext, get_logger
from silver_kernel.models.ledger import LedgerTransaction, PaymentMode, TransactionType
from silver_kernel.models.sale import Sale, SaleItem
from silver_kernel.services.base import BaseService
from silver_kernel.services.ledger_engine import LedgerEngine
from silver_kernel.services.rate_service import RateProvider, parse_rate
from silver_kernel.services.sequence_service import SequenceService
from silver_kernel.services.voucher_allocator import VoucherAllocator

logger = get_logger("services.sale")

_CANCELLABLE = frozenset({SaleStatus.PENDING.value, SaleStatus.PARTIAL.value})


def _amount(value, field: str, *, allow_zero: bool) -> Decimal:
    """Parse a caller-supplied amount or weight; InvalidAmountError if unusable."""
    try:
        parsed = to_decimal(value, field)
    except CalculationError as exc:
        raise InvalidAmountError(field, repr(value), exc.reason) from None
    if parsed < ZERO or (parsed == ZERO and not allow_zero):
        reason = "must not be negative" if allow_zero else "must be greater than zero"
        raise InvalidAmountError(field, str(parsed), reason)
    return parsed


def _payment_mode(value: str | PaymentMode) -> str:
    try:
        return PaymentMode(value).value
    except ValueError:
        raise InvalidAmountError("payment_mode", repr(value), "unknown payment mode") from None


def _fmt(value: Decimal) -> str:
    """Plain number for notes: no exponent, no trailing zeros beyond cents."""
    return format(value.normalize(), "f")


class SaleLifecycleManager(BaseService):
    """
    Contract:
        Each public method performs one sale operation inside the session's
        current transaction and returns a SaleUpdate with the sale as it
        now stands and the ledger entries appended.

    Non-goals:
        - Does NOT commit.  BillingService.unit_of_work() does.
        - Does NOT decide tax or pricing policy; rates and GST percentages
          are applied as supplied.
    """

    def __init__(
        self,
        session,
        policy: BillingPolicy | None = None,
        clock: Clock | None = None,
        *,
        rates: RateProvider | None = None,
        vouchers: VoucherAllocator | None = None,
        ledger: LedgerEngine | None = None,
    ):
        super().__init__(session)
        self._policy = policy or default_billing_policy()
        self._clock = clock or SystemClock()
        sequences = SequenceService(session)
        self._rates = rates or RateProvider(session, self._clock, self._policy.timezone)
        self._vouchers = vouchers or VoucherAllocator(
            session, sequences, self._policy.max_voucher_sequence
        )
        self._ledger = ledger or LedgerEngine(session, self._policy, self._clock, sequences)

    # ------------------------------------------------------------------
    # create
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
        """
        Price the items, allocate a voucher and record the sale.

        Appends a ``sale`` entry for the invoice total and, when anything
        was paid at the counter, a ``payment`` entry for the cash plus the
        value of the silver handed over.
        """
        policy = self._policy.channel(channel, "create_sale")
        paid_amount = round_money(_amount(paid_amount, "paid_amount", allow_zero=True))
        paid_silver = round_weight(_amount(paid_silver, "paid_silver", allow_zero=True))
        payment_mode = _payment_mode(payment_mode)
        tax = tax if tax is not None else self._policy.default_tax
        if tax.applicable and not policy.supports_tax:
            raise InvalidChannelError(policy.name, "tax")

        sale_date = self._clock.today(self._policy.timezone)
        if silver_rate is None:
            rate = self._rates.require_current_rate(sale_date).rate_per_gram
        else:
            rate = silver_rate
        invoice = calculate_invoice(items, rate, tax)
        rate = invoice.silver_rate

        customer = self._ledger.lock_customer(customer_id)
        if customer.channel != policy.name:
            raise InvalidChannelError(policy.name, f"create_sale for a {customer.channel} customer")
        if not customer.is_active:
            raise CustomerInactiveError(str(customer.id))

        voucher_number = self._vouchers.allocate(policy.voucher_prefix, sale_date)

        paid_silver_value = round_money(paid_silver * rate)
        effective_paid = paid_amount + paid_silver_value
        balance_amount = invoice.total_amount - effective_paid
        previous_balance = round_money(self._ledger.balance_of(customer))
        closing_balance = previous_balance + balance_amount

        silver_to_return = invoice.total_silver_weight if policy.tracks_silver_return else ZERO
        sale = Sale(
            voucher_number=voucher_number,
            customer_id=customer.id,
            channel=policy.name,
            sale_date=sale_date,
            silver_rate=rate,
            total_net_weight=invoice.total_net_weight,
            total_wastage=invoice.total_wastage,
            total_silver_weight=invoice.total_silver_weight,
            total_labor_charges=invoice.total_labor_charges,
            subtotal=invoice.subtotal,
            tax_applicable=invoice.tax_applicable,
            cgst_percent=invoice.cgst_percent,
            sgst_percent=invoice.sgst_percent,
            cgst=invoice.cgst,
            sgst=invoice.sgst,
            total_amount=invoice.total_amount,
            paid_amount=effective_paid,
            paid_silver=paid_silver,
            balance_amount=balance_amount,
            previous_balance=previous_balance,
            closing_balance=closing_balance,
            payment_mode=payment_mode,
            status=derive_status(balance_amount, effective_paid).value,
            silver_to_return=silver_to_return,
            silver_returned=round_weight(ZERO),
            silver_return_status=derive_silver_return_status(
                silver_to_return, ZERO, policy.tracks_silver_return
            ).value,
            notes=notes or None,
            created_by_id=actor_id,
        )
        for line in invoice.lines:
            m = line.measurement
            sale.items.append(
                SaleItem(
                    line_no=line.line_no,
                    description=m.description,
                    product_ref=m.product_ref,
                    pieces=m.pieces,
                    gross_weight=round_weight(to_decimal(m.gross_weight, "gross_weight")),
                    stone_weight=round_weight(to_decimal(m.stone_weight, "stone_weight")),
                    net_weight=round_weight(to_decimal(m.net_weight, "net_weight")),
                    wastage=to_decimal(m.wastage, "wastage"),
                    touch=to_decimal(m.touch, "touch"),
                    labor_rate_per_kg=round_money(to_decimal(m.labor_rate_per_kg, "labor_rate_per_kg")),
                    silver_weight=line.silver_weight,
                    labor_charges=line.labor_charges,
                    item_amount=line.item_amount,
                    created_by_id=actor_id,
                )
            )
        self.session.add(sale)
        self.session.flush()

        entries = [
            self._ledger.apply_delta(
                customer.id,
                invoice.total_amount,
                TransactionType.SALE,
                actor_id=actor_id,
                sale_id=sale.id,
            )
        ]
        if effective_paid > ZERO:
            payment_note = None
            if paid_silver > ZERO:
                symbol = self._policy.currency_symbol
                payment_note = (
                    f"Paid: {symbol}{_fmt(paid_amount)} + {_fmt(paid_silver)}g silver "
                    f"({symbol}{paid_silver_value})"
                )
            entries.append(
                self._ledger.apply_delta(
                    customer.id,
                    -effective_paid,
                    TransactionType.PAYMENT,
                    actor_id=actor_id,
                    sale_id=sale.id,
                    payment_mode=payment_mode,
                    reference_number=reference_number,
                    notes=payment_note,
                )
            )
        sale.closing_balance = entries[-1].balance_after
        self.session.flush()

        with LogContext.bind(sale_id=sale.id, voucher_number=voucher_number):
            logger.info(
                "sale_created",
                extra={
                    "channel": policy.name,
                    "total_amount": sale.total_amount,
                    "paid_amount": sale.paid_amount,
                    "balance_amount": sale.balance_amount,
                    "status": sale.status,
                    "item_count": len(invoice.lines),
                },
            )
        return self._result(sale, entries)

    # ------------------------------------------------------------------
    # payments
    # ------------------------------------------------------------------

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
        """Record a cash (or card, UPI, ...) payment against a sale."""
        amount = round_money(_amount(amount, "amount", allow_zero=False))
        if amount <= ZERO:
            raise InvalidAmountError("amount", str(amount), "must be greater than zero")
        payment_mode = _payment_mode(payment_mode)

        sale = self._lock_open_sale(sale_id, "add_payment")
        entry = self._ledger.apply_delta(
            sale.customer_id,
            -amount,
            TransactionType.PAYMENT,
            actor_id=actor_id,
            sale_id=sale.id,
            payment_mode=payment_mode,
            reference_number=reference_number,
            notes=notes,
        )
        self._settle(sale, amount, entry, actor_id)

        self._log_settlement("payment_added", sale, amount)
        return self._result(sale, [entry])

    def add_silver_payment(
        self,
        sale_id: UUID,
        silver_weight,
        silver_rate=None,
        *,
        actor_id: UUID,
        notes: str | None = None,
    ) -> SaleUpdate:
        """
        Record silver handed over as payment, valued at ``silver_rate``
        (default: the current rate).
        """
        weight = round_weight(_amount(silver_weight, "silver_weight", allow_zero=False))
        if weight <= ZERO:
            raise InvalidAmountError("silver_weight", str(weight), "must be greater than zero")
        if silver_rate is None:
            rate = self._rates.require_current_rate(
                self._clock.today(self._policy.timezone)
            ).rate_per_gram
        else:
            rate = parse_rate(silver_rate)
        value = round_money(weight * rate)
        if value <= ZERO:
            raise InvalidAmountError("silver_weight", str(weight), "silver value rounds to zero")

        sale = self._lock_open_sale(sale_id, "add_silver_payment")
        symbol = self._policy.currency_symbol
        entry = self._ledger.apply_delta(
            sale.customer_id,
            -value,
            TransactionType.SILVER_PAYMENT,
            actor_id=actor_id,
            sale_id=sale.id,
            silver_weight=weight,
            payment_mode=PaymentMode.SILVER.value,
            notes=notes or f"Silver payment: {_fmt(weight)}g @ {symbol}{_fmt(rate)}/g",
        )
        sale.paid_silver = sale.paid_silver + weight
        self._settle(sale, value, entry, actor_id)

        self._log_settlement("silver_payment_added", sale, value, silver_weight=weight)
        return self._result(sale, [entry])

    # ------------------------------------------------------------------
    # silver return
    # ------------------------------------------------------------------

    def add_silver_return(
        self,
        sale_id: UUID,
        silver_weight,
        *,
        actor_id: UUID,
        notes: str | None = None,
    ) -> SaleUpdate:
        """
        Record fine silver given back to a wholesale customer.

        The ledger entry carries the weight and a zero amount; the cash
        balance does not move.
        """
        sale = self._lock_sale(sale_id)
        policy = self._policy.channel(sale.channel, "add_silver_return")
        if not policy.tracks_silver_return:
            raise InvalidChannelError(sale.channel, "add_silver_return")

        weight = round_weight(_amount(silver_weight, "silver_weight", allow_zero=False))
        if weight <= ZERO:
            raise InvalidAmountError("silver_weight", str(weight), "must be greater than zero")
        if sale.status == SaleStatus.CANCELLED.value:
            raise SaleCancelledError(str(sale.id), "add_silver_return")

        remaining = sale.silver_to_return - sale.silver_returned
        if weight > remaining:
            logger.warning(
                "silver_return_rejected",
                extra={"sale_id": sale.id, "requested": weight, "remaining": remaining},
            )
            raise ExceedsRemainingError(str(sale.id), str(weight), str(remaining))

        entry = self._ledger.apply_delta(
            sale.customer_id,
            ZERO,
            TransactionType.SILVER_RETURN,
            actor_id=actor_id,
            sale_id=sale.id,
            silver_weight=weight,
            notes=notes,
        )
        sale.silver_returned = sale.silver_returned + weight
        sale.silver_return_status = derive_silver_return_status(
            sale.silver_to_return, sale.silver_returned
        ).value
        sale.updated_by_id = actor_id
        self.session.flush()

        with LogContext.bind(sale_id=sale.id, voucher_number=sale.voucher_number):
            logger.info(
                "silver_return_added",
                extra={
                    "silver_weight": weight,
                    "silver_returned": sale.silver_returned,
                    "silver_return_status": sale.silver_return_status,
                },
            )
        return self._result(sale, [entry])

    # ------------------------------------------------------------------
    # cancellation
    # ------------------------------------------------------------------

    def cancel_sale(self, sale_id: UUID, reason: str, *, actor_id: UUID) -> SaleUpdate:
        """
        Reverse a sale that is not yet fully paid.

        Appends an ``adjustment`` of minus the invoice total.  Anything
        already paid stays in the ledger as credit for the customer.
        """
        sale = self._lock_sale(sale_id)
        if sale.status not in _CANCELLABLE:
            raise SaleNotCancellableError(str(sale.id), sale.status)

        entry = self._ledger.apply_delta(
            sale.customer_id,
            -sale.total_amount,
            TransactionType.ADJUSTMENT,
            actor_id=actor_id,
            sale_id=sale.id,
            reference_number=sale.voucher_number,
            notes=f"Cancelled {sale.voucher_number}: {reason}" if reason else f"Cancelled {sale.voucher_number}",
        )
        sale.status = SaleStatus.CANCELLED.value
        sale.balance_amount = round_money(ZERO)
        sale.closing_balance = entry.balance_after
        sale.cancelled_at = self._clock.now_utc()
        sale.cancel_reason = reason or None
        sale.updated_by_id = actor_id
        self.session.flush()

        with LogContext.bind(sale_id=sale.id, voucher_number=sale.voucher_number):
            logger.info(
                "sale_cancelled",
                extra={"total_amount": sale.total_amount, "reason": reason},
            )
        return self._result(sale, [entry])

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _lock_sale(self, sale_id: UUID) -> Sale:
        sale = self.session.execute(
            select(Sale)
            .where(Sale.id == sale_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if sale is None:
            raise SaleNotFoundError(str(sale_id))
        return sale

    def _lock_open_sale(self, sale_id: UUID, operation: str) -> Sale:
        sale = self._lock_sale(sale_id)
        if sale.status == SaleStatus.CANCELLED.value:
            raise SaleCancelledError(str(sale.id), operation)
        return sale

    def _settle(
        self, sale: Sale, value: Decimal, entry: LedgerTransaction, actor_id: UUID
    ) -> None:
        sale.paid_amount = sale.paid_amount + value
        sale.balance_amount = max(round_money(ZERO), sale.balance_amount - value)
        sale.closing_balance = entry.balance_after
        sale.status = derive_status(sale.balance_amount, sale.paid_amount).value
        sale.updated_by_id = actor_id
        self.session.flush()

    def _log_settlement(self, event: str, sale: Sale, value: Decimal, **extra) -> None:
        with LogContext.bind(sale_id=sale.id, voucher_number=sale.voucher_number):
            logger.info(
                event,
                extra={
                    "amount": value,
                    "paid_amount": sale.paid_amount,
                    "balance_amount": sale.balance_amount,
                    "status": sale.status,
                    **extra,
                },
            )

    def _result(self, sale: Sale, entries: list[LedgerTransaction]) -> SaleUpdate:
        return SaleUpdate(
            sale=SaleRecord.from_model(sale),
            entries=tuple(
                LedgerEntryRecord.from_model(entry, voucher_number=sale.voucher_number)
                for entry in entries
            ),
        )

