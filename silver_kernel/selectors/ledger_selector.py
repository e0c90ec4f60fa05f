"""
Module: silver_kernel.selectors.ledger_selector
Responsibility: Read-only customer ledger queries: the ledger over a date
    range, the replayed balance, and verification of the before/after chain.
Architecture position: Kernel > Selectors.

Invariants checked:
    - Chain: per customer, ordered by (transaction_date, seq), each entry's
      balance_before equals the previous entry's balance_after, starting at
      zero.
    - Replay: the sum of a customer's amounts equals the customer's balance
      under either balance strategy.

Audit relevance:
    verify_chain() and assert_chain_intact() are the auditor's tools for
    proving that no ledger entry was altered or removed.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from silver_kernel.db.types import ZERO, round_money
from silver_kernel.domain.dtos import ChainBreak, CustomerLedger, LedgerEntryRecord
from silver_kernel.exceptions import CustomerNotFoundError, LedgerChainBrokenError
from silver_kernel.logging_config import get_logger
from silver_kernel.models.customer import Customer
from silver_kernel.models.ledger import LedgerTransaction
from silver_kernel.models.sale import Sale
from silver_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.ledger")


class LedgerSelector(BaseSelector):
    """Read access to customer ledgers."""

    def _customer(self, customer_id: UUID) -> Customer:
        customer = self.session.get(Customer, customer_id)
        if customer is None:
            raise CustomerNotFoundError(str(customer_id))
        return customer

    def _entries(
        self,
        customer_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[tuple[LedgerTransaction, str | None]]:
        stmt = (
            select(LedgerTransaction, Sale.voucher_number)
            .outerjoin(Sale, Sale.id == LedgerTransaction.sale_id)
            .where(LedgerTransaction.customer_id == customer_id)
        )
        if start_date is not None:
            stmt = stmt.where(LedgerTransaction.entry_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(LedgerTransaction.entry_date <= end_date)
        stmt = stmt.order_by(LedgerTransaction.transaction_date, LedgerTransaction.seq)
        return [(row[0], row[1]) for row in self.session.execute(stmt).all()]

    def entries(
        self,
        customer_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[LedgerEntryRecord]:
        return [
            LedgerEntryRecord.from_model(entry, voucher_number=voucher)
            for entry, voucher in self._entries(customer_id, start_date, end_date)
        ]

    def replay_balance(self, customer_id: UUID) -> Decimal:
        """Balance obtained by summing every entry from zero."""
        return self.ledger_sum(customer_id)

    def _balance_before(self, customer_id: UUID, start_date: date) -> Decimal:
        total = self.session.execute(
            select(func.coalesce(func.sum(LedgerTransaction.amount), 0))
            .where(LedgerTransaction.customer_id == customer_id)
            .where(LedgerTransaction.entry_date < start_date)
        ).scalar_one()
        return round_money(Decimal(str(total)))

    def customer_ledger(
        self,
        customer_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> CustomerLedger:
        """
        A customer's entries in order, with opening and closing balances for
        the range and the chain verified over the full history.
        """
        customer = self._customer(customer_id)
        rows = self._entries(customer_id, start_date, end_date)
        entries = tuple(
            LedgerEntryRecord.from_model(entry, voucher_number=voucher)
            for entry, voucher in rows
        )

        if entries:
            opening = entries[0].balance_before
            closing = entries[-1].balance_after
        else:
            opening = (
                self._balance_before(customer_id, start_date)
                if start_date is not None
                else round_money(ZERO)
            )
            closing = opening

        return CustomerLedger(
            customer=self.customer_info(customer),
            entries=entries,
            start_date=start_date,
            end_date=end_date,
            opening_balance=opening,
            closing_balance=closing,
            current_balance=self.balance_of(customer),
            chain_breaks=tuple(self.verify_chain(customer_id)),
        )

    def verify_chain(self, customer_id: UUID) -> list[ChainBreak]:
        """Every point where an entry does not continue from the previous one."""
        breaks = []
        expected = round_money(ZERO)
        for entry, _ in self._entries(customer_id):
            if entry.balance_before != expected:
                breaks.append(
                    ChainBreak(
                        entry_id=entry.id,
                        seq=entry.seq,
                        expected_balance_before=expected,
                        actual_balance_before=entry.balance_before,
                    )
                )
            expected = entry.balance_after
        if breaks:
            logger.warning(
                "ledger_chain_broken",
                extra={"customer_id": customer_id, "break_count": len(breaks)},
            )
        return breaks

    def assert_chain_intact(self, customer_id: UUID) -> None:
        """
        Raises:
            LedgerChainBrokenError: at the first entry that does not link.
        """
        breaks = self.verify_chain(customer_id)
        if breaks:
            first = breaks[0]
            raise LedgerChainBrokenError(
                customer_id=str(customer_id),
                entry_id=str(first.entry_id),
                expected=str(first.expected_balance_before),
                actual=str(first.actual_balance_before),
            )
