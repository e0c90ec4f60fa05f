"""
VoucherAllocator -- per-day voucher numbers from a locked counter row.

Responsibility:
    Issues ``{prefix}{YYYYMMDD}{NNNN}`` voucher numbers.  Each (prefix, date)
    pair has its own counter row in ``sequence_counters``, so two sales on
    the same channel and day can never receive the same number, and two
    channels never contend with each other.

Architecture position:
    Kernel > Services.  Injected into SaleLifecycleManager.

Invariants enforced:
    - Voucher numbers are unique and, per (prefix, date), sequential from
      0001 without gaps among committed sales.
    - Allocation happens inside the caller's unit of work.  If the sale
      fails and the unit rolls back, the number is returned.

Failure modes:
    - VoucherExhaustedError once the daily maximum has been issued.  The
      counter increment is rolled back with the caller's unit.
"""

from datetime import date

from sqlalchemy.orm import Session

from silver_kernel.domain.voucher import MAX_SEQUENCE, format_voucher_number, voucher_day_key
from silver_kernel.exceptions import VoucherExhaustedError
from silver_kernel.logging_config import get_logger
from silver_kernel.services.sequence_service import SequenceService

logger = get_logger("services.voucher")


class VoucherAllocator:
    """
    Contract:
        ``allocate(prefix, on_date)`` returns the next voucher number for
        that channel prefix and business date.

    Non-goals:
        - Does NOT decide the business date; the caller passes it.
    """

    def __init__(
        self,
        session: Session,
        sequence_service: SequenceService | None = None,
        max_sequence: int = MAX_SEQUENCE,
    ):
        if not 1 <= max_sequence <= MAX_SEQUENCE:
            raise ValueError(f"max_sequence must be between 1 and {MAX_SEQUENCE}")
        self._sequences = sequence_service or SequenceService(session)
        self._max_sequence = max_sequence

    @staticmethod
    def counter_name(prefix: str, on_date: date) -> str:
        return f"voucher:{voucher_day_key(prefix, on_date)}"

    def allocate(self, channel_prefix: str, on_date: date) -> str:
        sequence = self._sequences.next_value(self.counter_name(channel_prefix, on_date))
        if sequence > self._max_sequence:
            logger.error(
                "voucher_exhausted",
                extra={
                    "prefix": channel_prefix,
                    "voucher_date": on_date,
                    "max_sequence": self._max_sequence,
                },
            )
            raise VoucherExhaustedError(
                prefix=channel_prefix,
                voucher_date=on_date.strftime("%Y%m%d"),
                max_sequence=self._max_sequence,
            )

        voucher_number = format_voucher_number(channel_prefix, on_date, sequence)
        logger.info(
            "voucher_allocated",
            extra={"voucher_number": voucher_number, "sequence": sequence},
        )
        return voucher_number

    def last_issued(self, channel_prefix: str, on_date: date) -> int:
        """Highest sequence issued for the day (0 if none)."""
        return self._sequences.current_value(self.counter_name(channel_prefix, on_date)) or 0
