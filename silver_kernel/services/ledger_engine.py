"""
LedgerEngine -- the only writer of customer ledger entries and balances.

Responsibility:
    Appends one LedgerTransaction per balance change and keeps the customer's
    running balance consistent with it.  Every entry records the balance
    before and after, so the ledger is a verifiable chain.

Architecture position:
    Kernel > Services.  Called by SaleLifecycleManager inside its unit of
    work.  Flushes, never commits.

Invariants enforced:
    - The customer row is locked (SELECT ... FOR UPDATE) before the balance
      is read, so two concurrent entries for one customer serialize and
      each sees the other's balance_after as its balance_before.
    - balance_after == balance_before + amount for every entry.
    - Entries are ordered by a per-customer seq from SequenceService.  The
      counter row is locked only after the customer row, so entries for
      different customers never wait on each other.
    - Where the balance lives is a per-channel strategy:
        cached_field  -- customers.balance is the running total and is
                         updated with every entry.
        derived_sum   -- the balance is the sum of the customer's ledger
                         amounts; customers.balance is left untouched.

Failure modes:
    - CustomerNotFoundError if the customer does not exist.
    - OperationalError on lock timeout; the caller's unit rolls back.

Audit relevance:
    Replaying a customer's entries from zero reproduces the balance under
    either strategy.  LedgerSelector verifies the before/after chain.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from silver_kernel.db.types import ZERO, round_money, round_weight
from silver_kernel.domain.clock import Clock, SystemClock
from silver_kernel.domain.policy import BalanceStrategyKind, BillingPolicy, default_billing_policy
from silver_kernel.exceptions import CustomerNotFoundError
from silver_kernel.logging_config import get_logger
from silver_kernel.models.customer import Customer
from silver_kernel.models.ledger import LedgerTransaction, TransactionType
from silver_kernel.services.base import BaseService
from silver_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger")


class BalanceStrategy(ABC):
    """Where a customer's balance is read from and written to."""

    kind: BalanceStrategyKind

    @abstractmethod
    def read(self, session: Session, customer: Customer) -> Decimal:
        ...

    @abstractmethod
    def write(self, customer: Customer, balance_after: Decimal) -> None:
        ...


class CachedFieldStrategy(BalanceStrategy):
    """Running balance kept on the customer row."""

    kind = BalanceStrategyKind.CACHED_FIELD

    def read(self, session: Session, customer: Customer) -> Decimal:
        return customer.balance if customer.balance is not None else ZERO

    def write(self, customer: Customer, balance_after: Decimal) -> None:
        customer.balance = balance_after


class DerivedSumStrategy(BalanceStrategy):
    """Balance is the sum of all ledger amounts for the customer."""

    kind = BalanceStrategyKind.DERIVED_SUM

    def read(self, session: Session, customer: Customer) -> Decimal:
        total = session.execute(
            select(func.coalesce(func.sum(LedgerTransaction.amount), 0))
            .where(LedgerTransaction.customer_id == customer.id)
        ).scalar_one()
        return round_money(Decimal(str(total)))

    def write(self, customer: Customer, balance_after: Decimal) -> None:
        pass


_STRATEGIES: dict[BalanceStrategyKind, BalanceStrategy] = {
    BalanceStrategyKind.CACHED_FIELD: CachedFieldStrategy(),
    BalanceStrategyKind.DERIVED_SUM: DerivedSumStrategy(),
}


def strategy_for(kind: BalanceStrategyKind | str) -> BalanceStrategy:
    return _STRATEGIES[BalanceStrategyKind(kind)]


class LedgerEngine(BaseService):
    """
    Contract:
        ``apply_delta`` appends one entry and moves the customer's balance
        by exactly ``signed_amount``.

    Guarantees:
        - Balance read, entry append and balance write happen under the
          customer row lock within the caller's transaction.

    Non-goals:
        - Does NOT touch Sale rows; SaleLifecycleManager does that.
        - Does NOT validate business rules such as positive payments.
    """

    def __init__(
        self,
        session: Session,
        policy: BillingPolicy | None = None,
        clock: Clock | None = None,
        sequence_service: SequenceService | None = None,
    ):
        super().__init__(session)
        self._policy = policy or default_billing_policy()
        self._clock = clock or SystemClock()
        self._sequences = sequence_service or SequenceService(session)

    @staticmethod
    def counter_name(customer_id: UUID) -> str:
        return f"ledger:{customer_id}"

    def strategy_for_channel(self, channel: str) -> BalanceStrategy:
        return strategy_for(self._policy.channel(channel).balance_strategy)

    def get_customer(self, customer_id: UUID, lock: bool = False) -> Customer:
        stmt = select(Customer).where(Customer.id == customer_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        customer = self.session.execute(stmt).scalar_one_or_none()
        if customer is None:
            raise CustomerNotFoundError(str(customer_id))
        return customer

    def lock_customer(self, customer_id: UUID) -> Customer:
        return self.get_customer(customer_id, lock=True)

    def balance_of(self, customer: Customer) -> Decimal:
        return self.strategy_for_channel(customer.channel).read(self.session, customer)

    def current_balance(self, customer_id: UUID, lock: bool = False) -> Decimal:
        """Balance of a customer as seen by the channel's strategy."""
        return self.balance_of(self.get_customer(customer_id, lock=lock))

    def apply_delta(
        self,
        customer_id: UUID,
        signed_amount: Decimal,
        kind: TransactionType | str,
        *,
        actor_id: UUID,
        sale_id: UUID | None = None,
        silver_weight: Decimal | None = None,
        payment_mode: str | None = None,
        reference_number: str | None = None,
        notes: str | None = None,
    ) -> LedgerTransaction:
        """
        Append one ledger entry and move the customer's balance.

        Postconditions:
            - Returned entry has balance_after == balance_before + amount.
            - Under cached_field the customer row holds balance_after.
        """
        kind = TransactionType(kind)
        amount = round_money(signed_amount)

        customer = self.lock_customer(customer_id)
        strategy = self.strategy_for_channel(customer.channel)

        balance_before = round_money(strategy.read(self.session, customer))
        balance_after = balance_before + amount
        strategy.write(customer, balance_after)

        seq = self._sequences.next_value(self.counter_name(customer.id))
        entry = LedgerTransaction(
            customer_id=customer.id,
            sale_id=sale_id,
            seq=seq,
            transaction_date=self._clock.now_utc(),
            entry_date=self._clock.today(self._policy.timezone),
            transaction_type=kind.value,
            amount=amount,
            silver_weight=round_weight(silver_weight) if silver_weight is not None else None,
            payment_mode=payment_mode,
            reference_number=reference_number or None,
            balance_before=balance_before,
            balance_after=balance_after,
            notes=notes or None,
            created_by_id=actor_id,
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "ledger_entry_appended",
            extra={
                "entry_id": entry.id,
                "seq": seq,
                "transaction_type": kind.value,
                "amount": amount,
                "balance_before": balance_before,
                "balance_after": balance_after,
                "balance_strategy": strategy.kind.value,
            },
        )
        return entry
