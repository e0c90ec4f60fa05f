"""
Voucher number format.

A voucher number is ``{prefix}{YYYYMMDD}{NNNN}``: an optional channel prefix
(``REG`` for regular billing, empty for wholesale), the business date, and
a 4-digit daily sequence starting at 0001.  Allocation lives in
services/voucher_allocator.py; this module only formats and parses.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime

SEQUENCE_DIGITS = 4
MAX_SEQUENCE = 10 ** SEQUENCE_DIGITS - 1

_VOUCHER_RE = re.compile(r"^(?P<prefix>[A-Z]*)(?P<date>\d{8})(?P<seq>\d{4})$")


@dataclass(frozen=True)
class VoucherNumber:
    prefix: str
    voucher_date: date
    sequence: int

    def __str__(self) -> str:
        return format_voucher_number(self.prefix, self.voucher_date, self.sequence)


def voucher_day_key(prefix: str, voucher_date: date) -> str:
    """The ``{prefix}{YYYYMMDD}`` part shared by all vouchers of one day."""
    return f"{prefix}{voucher_date.strftime('%Y%m%d')}"


def format_voucher_number(prefix: str, voucher_date: date, sequence: int) -> str:
    """
    Raises:
        ValueError: If sequence does not fit in four digits.
    """
    if not 1 <= sequence <= MAX_SEQUENCE:
        raise ValueError(f"voucher sequence out of range: {sequence}")
    return f"{voucher_day_key(prefix, voucher_date)}{sequence:0{SEQUENCE_DIGITS}d}"


def parse_voucher_number(voucher_number: str) -> VoucherNumber:
    """
    Split a voucher number into prefix, date and sequence.

    Raises:
        ValueError: If the string is not a well-formed voucher number.
    """
    match = _VOUCHER_RE.match(voucher_number or "")
    if match is None:
        raise ValueError(f"malformed voucher number: {voucher_number!r}")
    voucher_date = datetime.strptime(match.group("date"), "%Y%m%d").date()
    sequence = int(match.group("seq"))
    if sequence < 1:
        raise ValueError(f"malformed voucher number: {voucher_number!r}")
    return VoucherNumber(match.group("prefix"), voucher_date, sequence)
