"""
Module: silver_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.  Selectors
    form the query side of the kernel, providing structured read access to
    customers, sales and the ledger without mutation capability.
Architecture position: Kernel > Selectors.  May import from db/, models/ and the
    pure domain DTOs.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: Selectors MUST NOT call session.add(), session.delete(),
      session.commit(), or session.flush().
    - DTO return convention: Selectors return frozen dataclasses, never ORM
      instances.
    - Session ownership: the caller owns the session and its transaction.
"""

from abc import ABC
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from silver_kernel.db.types import ZERO, round_money
from silver_kernel.domain.dtos import CustomerInfo
from silver_kernel.domain.policy import BalanceStrategyKind, BillingPolicy, default_billing_policy
from silver_kernel.models.customer import Customer
from silver_kernel.models.ledger import LedgerTransaction


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs.  They MUST NOT mutate any data.
    """

    def __init__(self, session: Session, policy: BillingPolicy | None = None):
        self.session = session
        self.policy = policy or default_billing_policy()

    def ledger_sum(self, customer_id) -> Decimal:
        """Sum of every ledger amount for a customer (replayed balance)."""
        total = self.session.execute(
            select(func.coalesce(func.sum(LedgerTransaction.amount), 0))
            .where(LedgerTransaction.customer_id == customer_id)
        ).scalar_one()
        return round_money(Decimal(str(total)))

    def balance_of(self, customer: Customer) -> Decimal:
        """Balance as the customer's channel records it."""
        channel = self.policy.channels.get(customer.channel)
        if channel is not None and channel.balance_strategy == BalanceStrategyKind.CACHED_FIELD:
            return customer.balance if customer.balance is not None else ZERO
        return self.ledger_sum(customer.id)

    def customer_info(self, customer: Customer) -> CustomerInfo:
        return CustomerInfo.from_model(customer, balance=self.balance_of(customer))
