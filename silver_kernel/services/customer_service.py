"""
CustomerService -- customer management for both billing channels.

Responsibility:
    Creates, finds, edits and removes customers.  Wholesale customers are
    identified by phone (get-or-create); regular customers by name and
    phone (create with duplicate detection).

Architecture position:
    Kernel > Services.  Flushes within the caller's transaction.

Invariants enforced:
    - A customer's channel never changes.
    - The balance column is never written here; it belongs to LedgerEngine.
    - Removal follows the channel's policy: wholesale customers are
      deactivated and keep their history, regular customers are deleted
      only if they have no sales and no ledger entries.

Failure modes:
    - CustomerNotFoundError for an unknown id.
    - DuplicateCustomerError when a regular customer with the same name and
      phone exists.
    - CustomerReferencedError when deleting a customer with history.
    - InvalidChannelError for an unknown channel.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import exists, func, or_, select
from sqlalchemy.exc import IntegrityError

from silver_kernel.domain.dtos import CustomerInfo, Page
from silver_kernel.domain.policy import BillingPolicy, CustomerRemoval, default_billing_policy
from silver_kernel.exceptions import (
    CustomerNotFoundError,
    CustomerReferencedError,
    DuplicateCustomerError,
    InvalidCustomerDataError,
)
from silver_kernel.logging_config import get_logger
from silver_kernel.models.customer import Customer
from silver_kernel.models.ledger import LedgerTransaction
from silver_kernel.models.sale import Sale
from silver_kernel.services.base import BaseService
from silver_kernel.services.ledger_engine import LedgerEngine

logger = get_logger("services.customer")

_CONTACT_FIELDS = ("name", "phone", "email", "address", "gst_number")


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass(frozen=True)
class CustomerDetails:
    """Contact details supplied by the caller."""

    name: str
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    gst_number: str | None = None

    def cleaned(self) -> "CustomerDetails":
        name = _clean(self.name)
        if not name:
            raise InvalidCustomerDataError("name", "customer name is required")
        return CustomerDetails(
            name=name,
            phone=_clean(self.phone),
            email=_clean(self.email),
            address=_clean(self.address),
            gst_number=_clean(self.gst_number),
        )


class CustomerService(BaseService):
    """
    Contract:
        All methods return CustomerInfo DTOs with the balance read through
        the channel's balance strategy.
    """

    def __init__(
        self,
        session,
        policy: BillingPolicy | None = None,
        ledger: LedgerEngine | None = None,
    ):
        super().__init__(session)
        self._policy = policy or default_billing_policy()
        self._ledger = ledger or LedgerEngine(session, self._policy)

    def _info(self, customer: Customer) -> CustomerInfo:
        return CustomerInfo.from_model(customer, balance=self._ledger.balance_of(customer))

    def get_or_create_customer(
        self, channel: str, details: CustomerDetails, actor_id: UUID
    ) -> tuple[CustomerInfo, bool]:
        """
        Find a customer by phone on a phone-identified channel, or create one.

        On channels that identify customers by name and phone this behaves
        like create_customer() but returns the existing customer instead of
        raising on a duplicate.

        Returns:
            (customer, created)
        """
        policy = self._policy.channel(channel, "get_or_create_customer")
        details = details.cleaned()
        if policy.identify_by_phone_only and details.phone is None:
            raise InvalidCustomerDataError("phone", f"{policy.name} customers are identified by phone")

        existing = self._find_existing(policy.name, details, policy.identify_by_phone_only)
        if existing is not None:
            return self._info(existing), False

        savepoint = self.session.begin_nested()
        try:
            customer = self._insert(policy.name, details, actor_id)
            savepoint.commit()
        except IntegrityError:
            # Same phone created concurrently
            savepoint.rollback()
            existing = self._find_existing(policy.name, details, policy.identify_by_phone_only)
            if existing is None:
                raise
            return self._info(existing), False
        return self._info(customer), True

    def create_customer(
        self, channel: str, details: CustomerDetails, actor_id: UUID
    ) -> CustomerInfo:
        """
        Raises:
            DuplicateCustomerError: if the same identity exists on the channel.
        """
        policy = self._policy.channel(channel, "create_customer")
        details = details.cleaned()

        existing = self._find_existing(policy.name, details, policy.identify_by_phone_only)
        if existing is not None:
            raise DuplicateCustomerError(details.name, details.phone, str(existing.id))

        return self._info(self._insert(policy.name, details, actor_id))

    def update_customer(self, customer_id: UUID, actor_id: UUID, **changes) -> CustomerInfo:
        """
        Edit contact fields.  Only name, phone, email, address and
        gst_number may be changed; anything else is rejected.
        """
        unknown = set(changes) - set(_CONTACT_FIELDS)
        if unknown:
            raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        customer = self._ledger.lock_customer(customer_id)
        for field_name, value in changes.items():
            value = _clean(value)
            if field_name == "name" and not value:
                raise InvalidCustomerDataError("name", "customer name is required")
            setattr(customer, field_name, value)
        customer.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "customer_updated",
            extra={"customer_id": customer.id, "fields": sorted(changes)},
        )
        return self._info(customer)

    def remove_customer(self, customer_id: UUID, actor_id: UUID) -> CustomerInfo | None:
        """
        Remove a customer according to the channel's removal policy.

        Returns:
            The deactivated customer, or None when the row was deleted.
        """
        customer = self._ledger.lock_customer(customer_id)
        policy = self._policy.channel(customer.channel, "remove_customer")

        if policy.customer_removal == CustomerRemoval.DEACTIVATE:
            customer.is_active = False
            customer.updated_by_id = actor_id
            self.session.flush()
            logger.info("customer_deactivated", extra={"customer_id": customer.id})
            return self._info(customer)

        if self._has_history(customer.id):
            raise CustomerReferencedError(str(customer.id))
        self.session.delete(customer)
        self.session.flush()
        logger.info("customer_deleted", extra={"customer_id": customer_id})
        return None

    def get_customer(self, customer_id: UUID) -> CustomerInfo:
        return self._info(self._ledger.get_customer(customer_id))

    def list_customers(
        self,
        channel: str,
        search: str | None = None,
        page: int = 1,
        limit: int = 50,
        include_inactive: bool = False,
    ) -> Page[CustomerInfo]:
        """Customers of one channel ordered by name, optionally filtered."""
        policy = self._policy.channel(channel, "list_customers")
        page = max(int(page), 1)
        limit = max(int(limit), 1)

        stmt = select(Customer).where(Customer.channel == policy.name)
        if not include_inactive:
            stmt = stmt.where(Customer.is_active.is_(True))
        search = _clean(search)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(
                or_(
                    Customer.name.ilike(pattern),
                    Customer.phone.ilike(pattern),
                    Customer.address.ilike(pattern),
                )
            )

        total = self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()
        rows = self.session.execute(
            stmt.order_by(Customer.name, Customer.id)
            .limit(limit)
            .offset((page - 1) * limit)
        ).scalars().all()

        return Page(
            items=tuple(self._info(row) for row in rows),
            total=total,
            page=page,
            limit=limit,
        )

    def _find_existing(
        self, channel: str, details: CustomerDetails, by_phone_only: bool
    ) -> Customer | None:
        stmt = select(Customer).where(Customer.channel == channel)
        if by_phone_only:
            if details.phone is None:
                return None
            stmt = stmt.where(Customer.phone == details.phone)
        else:
            stmt = stmt.where(Customer.name == details.name)
            if details.phone is not None:
                stmt = stmt.where(Customer.phone == details.phone)
        return self.session.execute(
            stmt.order_by(Customer.created_at).limit(1)
        ).scalar_one_or_none()

    def _insert(self, channel: str, details: CustomerDetails, actor_id: UUID) -> Customer:
        customer = Customer(
            channel=channel,
            name=details.name,
            phone=details.phone,
            email=details.email,
            address=details.address,
            gst_number=details.gst_number,
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(customer)
        self.session.flush()
        logger.info(
            "customer_created",
            extra={"customer_id": customer.id, "channel": channel},
        )
        return customer

    def _has_history(self, customer_id: UUID) -> bool:
        return bool(
            self.session.execute(
                select(
                    exists().where(Sale.customer_id == customer_id)
                    | exists().where(LedgerTransaction.customer_id == customer_id)
                )
            ).scalar()
        )
