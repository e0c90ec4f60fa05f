"""
Sale status derivation.

Responsibility:
    The single rule that maps a sale's settlement figures to its payment
    status, and the matching rule for wholesale silver returns.  Every
    mutation of a sale re-derives status through these functions instead
    of setting it by hand.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
"""

from decimal import Decimal
from enum import Enum

from silver_kernel.db.types import ZERO


class SaleStatus(str, Enum):
    """Payment status of a sale."""

    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    CANCELLED = "cancelled"


class SilverReturnStatus(str, Enum):
    """Progress of silver owed back to a wholesale customer."""

    NOT_APPLICABLE = "na"
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETED = "completed"


def derive_status(balance_amount: Decimal, paid_amount: Decimal) -> SaleStatus:
    """
    paid if nothing is owed, partial if something was paid, else pending.

    Never returns CANCELLED; cancellation is an explicit transition.
    """
    if balance_amount <= ZERO:
        return SaleStatus.PAID
    if paid_amount > ZERO:
        return SaleStatus.PARTIAL
    return SaleStatus.PENDING


def derive_silver_return_status(
    silver_to_return: Decimal,
    silver_returned: Decimal,
    tracks_silver_return: bool = True,
) -> SilverReturnStatus:
    """
    pending until the first return is recorded, then partial or completed.

    A wholesale sale that owes no silver still starts pending; only a
    recorded return can complete it.
    """
    if not tracks_silver_return:
        return SilverReturnStatus.NOT_APPLICABLE
    if silver_returned <= ZERO:
        return SilverReturnStatus.PENDING
    if silver_returned >= silver_to_return:
        return SilverReturnStatus.COMPLETED
    return SilverReturnStatus.PARTIAL
