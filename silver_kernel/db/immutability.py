"""
ORM-Level Immutability Enforcement for billing records.

===============================================================================
WHY THIS EXISTS
===============================================================================

A customer's ledger is only trustworthy if what was written stays written.
Corrections are new entries (payments, silver payments, adjustments), never
edits of old ones.  The listeners in this module intercept UPDATE and DELETE
operations issued through SQLAlchemy before any SQL reaches the database:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | What is frozen                    | Why
--------------------|-----------------------------------|----------------------------------
LedgerTransaction   | ALWAYS (from creation)            | The log is the audit trail
SaleItem            | ALWAYS (from creation)            | Items are the basis of the invoice
Sale                | Invoice fields; rows never deleted| Voucher and totals are printed

Sale settlement fields (paid_amount, balance_amount, status, silver_returned,
closing_balance, cancellation fields) move with every payment and remain
mutable.  Only the invoice computed at creation is frozen.

===============================================================================
USAGE
===============================================================================

    from silver_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY - never in production):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect

from silver_kernel.exceptions import ImmutabilityViolationError
from silver_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Invoice fields computed at sale creation
SALE_INVOICE_FIELDS = frozenset({
    "voucher_number",
    "customer_id",
    "channel",
    "sale_date",
    "silver_rate",
    "total_net_weight",
    "total_wastage",
    "total_silver_weight",
    "total_labor_charges",
    "subtotal",
    "tax_applicable",
    "cgst_percent",
    "sgst_percent",
    "cgst",
    "sgst",
    "total_amount",
    "previous_balance",
    "silver_to_return",
})


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_ledger_transaction_immutability(mapper, connection, target):
    """Prevent any updates to LedgerTransaction records."""
    _block(
        "LedgerTransaction", target, "UPDATE",
        "Ledger transactions are append-only and cannot be modified",
    )


def _check_ledger_transaction_delete(mapper, connection, target):
    """Prevent deletion of LedgerTransaction records."""
    _block(
        "LedgerTransaction", target, "DELETE",
        "Ledger transactions cannot be deleted",
    )


def _check_sale_item_immutability(mapper, connection, target):
    """Prevent any updates to SaleItem records."""
    _block(
        "SaleItem", target, "UPDATE",
        "Sale items are fixed at invoice time and cannot be modified",
    )


def _check_sale_item_delete(mapper, connection, target):
    _block("SaleItem", target, "DELETE", "Sale items cannot be deleted")


def _check_sale_immutability(mapper, connection, target):
    """
    Block changes to the invoice fields of a Sale.

    Uses attribute history so that updates touching only settlement
    fields pass through.
    """
    state = inspect(target)
    changed = [
        name for name in SALE_INVOICE_FIELDS
        if state.attrs[name].history.has_changes()
    ]
    if changed:
        _block(
            "Sale", target, "UPDATE",
            f"Invoice fields are immutable: {', '.join(sorted(changed))}",
        )


def _check_sale_delete(mapper, connection, target):
    _block("Sale", target, "DELETE", "Sales are cancelled, never deleted")


def _listeners():
    from silver_kernel.models.ledger import LedgerTransaction
    from silver_kernel.models.sale import Sale, SaleItem

    return [
        (LedgerTransaction, "before_update", _check_ledger_transaction_immutability),
        (LedgerTransaction, "before_delete", _check_ledger_transaction_delete),
        (SaleItem, "before_update", _check_sale_item_immutability),
        (SaleItem, "before_delete", _check_sale_item_delete),
        (Sale, "before_update", _check_sale_immutability),
        (Sale, "before_delete", _check_sale_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call this after all models are imported but before any database
    operations begin.  Safe to call more than once.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
