"""
Typed Exception Hierarchy for the Silver Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Money-moving code must fail precisely. Callers (the HTTP layer, reporting
jobs, tests) catch by TYPE and read structured attributes instead of parsing
messages:

    try:
        billing.add_silver_return(sale_id, Decimal("80"), actor_id=actor)
    except ExceedsRemainingError as e:
        api_response(code=e.code, remaining=str(e.remaining))

Every exception carries:
  1. A CODE class attribute (machine-readable, API-safe, stable)
  2. Structured attributes for the values that caused the failure
  3. A human-readable message

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BillingKernelError (base)
    |
    +-- NotFoundError
    |   +-- CustomerNotFoundError
    |   +-- SaleNotFoundError
    |   +-- SilverRateNotFoundError
    |
    +-- InvalidAmountError
    +-- InvalidRateError
    +-- InvalidChannelError
    +-- ExceedsRemainingError
    +-- VoucherExhaustedError
    +-- CalculationError
    |
    +-- SaleStateError
    |   +-- SaleCancelledError
    |   +-- SaleNotCancellableError
    |
    +-- CustomerError
    |   +-- DuplicateCustomerError
    |   +-- CustomerReferencedError
    |   +-- CustomerInactiveError
    |   +-- InvalidCustomerDataError
    |
    +-- ImmutabilityViolationError
    +-- LedgerChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Not found       | CUSTOMER_NOT_FOUND          | Customer ID doesn't exist
                | SALE_NOT_FOUND              | Sale ID / voucher doesn't exist
                | SILVER_RATE_NOT_FOUND       | No active rate and none supplied
----------------|-----------------------------|-----------------------------------------
Amounts         | INVALID_AMOUNT              | Non-positive payment / negative paid
                | INVALID_RATE                | Non-positive or non-numeric rate
----------------|-----------------------------|-----------------------------------------
Channel         | INVALID_CHANNEL             | Silver return on a regular sale, etc.
Silver return   | EXCEEDS_REMAINING           | Return weight above what is pending
Voucher         | VOUCHER_EXHAUSTED           | More than the daily maximum of sales
Calculation     | CALCULATION_ERROR           | Malformed item measurements
----------------|-----------------------------|-----------------------------------------
Sale state      | SALE_CANCELLED              | Money movement on a cancelled sale
                | SALE_NOT_CANCELLABLE        | Cancel from a terminal status
----------------|-----------------------------|-----------------------------------------
Customer        | DUPLICATE_CUSTOMER          | Same name + phone already exists
                | CUSTOMER_REFERENCED         | Hard delete of a customer with history
                | CUSTOMER_INACTIVE           | Billing a deactivated customer
                | INVALID_CUSTOMER_DATA       | Missing name, or phone on wholesale
----------------|-----------------------------|-----------------------------------------
Audit           | IMMUTABILITY_VIOLATION      | Editing a ledger entry or sale item
                | LEDGER_CHAIN_BROKEN         | before/after balances do not link

Exceptions inherit from Exception (not ValueError etc.) so that domain
failures can be caught as a group without mixing in programming errors.
"""


class BillingKernelError(Exception):
    """
    Base exception for all billing kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BILLING_KERNEL_ERROR"


# Lookup failures


class NotFoundError(BillingKernelError):
    """Base exception for missing customers, sales and rates."""

    code: str = "NOT_FOUND"


class CustomerNotFoundError(NotFoundError):
    """Customer with given ID was not found."""

    code: str = "CUSTOMER_NOT_FOUND"

    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__(f"Customer not found: {customer_id}")


class SaleNotFoundError(NotFoundError):
    """Sale with given ID or voucher number was not found."""

    code: str = "SALE_NOT_FOUND"

    def __init__(self, sale_ref: str):
        self.sale_ref = sale_ref
        super().__init__(f"Sale not found: {sale_ref}")


class SilverRateNotFoundError(NotFoundError):
    """No active silver rate is effective on the requested date."""

    code: str = "SILVER_RATE_NOT_FOUND"

    def __init__(self, as_of: str):
        self.as_of = as_of
        super().__init__(f"No silver rate available as of {as_of}")


# Amount and rate validation


class InvalidAmountError(BillingKernelError):
    """Payment or paid amount is not acceptable."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: str, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value}: {reason}")


class InvalidRateError(BillingKernelError):
    """Silver rate is zero, negative or not a number."""

    code: str = "INVALID_RATE"

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid silver rate: {value}")


# Channel, silver return, voucher, calculation


class InvalidChannelError(BillingKernelError):
    """Operation is not available for the billing channel involved."""

    code: str = "INVALID_CHANNEL"

    def __init__(self, channel: str, operation: str):
        self.channel = channel
        self.operation = operation
        super().__init__(
            f"Operation '{operation}' is not applicable to {channel} billing"
        )


class ExceedsRemainingError(BillingKernelError):
    """Silver return weight is greater than what is still pending."""

    code: str = "EXCEEDS_REMAINING"

    def __init__(self, sale_id: str, requested: str, remaining: str):
        self.sale_id = sale_id
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Silver return of {requested}g on sale {sale_id} exceeds "
            f"pending {remaining}g"
        )


class VoucherExhaustedError(BillingKernelError):
    """All voucher numbers for a prefix and date have been used."""

    code: str = "VOUCHER_EXHAUSTED"

    def __init__(self, prefix: str, voucher_date: str, max_sequence: int):
        self.prefix = prefix
        self.voucher_date = voucher_date
        self.max_sequence = max_sequence
        super().__init__(
            f"Voucher numbers exhausted for '{prefix}{voucher_date}': "
            f"limit is {max_sequence} per day"
        )


class CalculationError(BillingKernelError):
    """Item measurements cannot produce an invoice."""

    code: str = "CALCULATION_ERROR"

    def __init__(self, reason: str, item_index: int | None = None, field: str | None = None):
        self.reason = reason
        self.item_index = item_index
        self.field = field
        location = ""
        if item_index is not None:
            location = f"item {item_index}"
            if field:
                location += f" field '{field}'"
            location += ": "
        super().__init__(f"Invoice calculation failed: {location}{reason}")


# Sale state


class SaleStateError(BillingKernelError):
    """Base exception for sale status violations."""

    code: str = "SALE_STATE_ERROR"


class SaleCancelledError(SaleStateError):
    """Money cannot move against a cancelled sale."""

    code: str = "SALE_CANCELLED"

    def __init__(self, sale_id: str, operation: str):
        self.sale_id = sale_id
        self.operation = operation
        super().__init__(f"Sale {sale_id} is cancelled; cannot {operation}")


class SaleNotCancellableError(SaleStateError):
    """Only pending or partial sales can be cancelled."""

    code: str = "SALE_NOT_CANCELLABLE"

    def __init__(self, sale_id: str, status: str):
        self.sale_id = sale_id
        self.status = status
        super().__init__(f"Sale {sale_id} cannot be cancelled from status {status}")


# Customer


class CustomerError(BillingKernelError):
    """Base exception for customer management errors."""

    code: str = "CUSTOMER_ERROR"


class DuplicateCustomerError(CustomerError):
    """A customer with the same identity already exists on the channel."""

    code: str = "DUPLICATE_CUSTOMER"

    def __init__(self, name: str, phone: str | None, existing_id: str):
        self.name = name
        self.phone = phone
        self.existing_id = existing_id
        super().__init__(
            f"Customer '{name}' with phone {phone or '-'} already exists: {existing_id}"
        )


class CustomerReferencedError(CustomerError):
    """Customer has sales or ledger entries and cannot be deleted."""

    code: str = "CUSTOMER_REFERENCED"

    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__(
            f"Customer {customer_id} cannot be deleted: referenced by sales or ledger entries"
        )


class CustomerInactiveError(CustomerError):
    """Customer has been deactivated."""

    code: str = "CUSTOMER_INACTIVE"

    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__(f"Customer is inactive: {customer_id}")


class InvalidCustomerDataError(CustomerError):
    """Customer details are missing a required field."""

    code: str = "INVALID_CUSTOMER_DATA"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid customer {field}: {reason}")


# Audit


class ImmutabilityViolationError(BillingKernelError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class LedgerChainBrokenError(BillingKernelError):
    """Consecutive ledger entries do not link their balances."""

    code: str = "LEDGER_CHAIN_BROKEN"

    def __init__(self, customer_id: str, entry_id: str, expected: str, actual: str):
        self.customer_id = customer_id
        self.entry_id = entry_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Ledger chain broken for customer {customer_id} at {entry_id}: "
            f"expected balance_before {expected}, found {actual}"
        )
