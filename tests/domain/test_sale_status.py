"""Tests for status derivation (silver_kernel/domain/status.py)."""

from decimal import Decimal

import pytest

from silver_kernel.domain.status import (
    SaleStatus,
    SilverReturnStatus,
    derive_silver_return_status,
    derive_status,
)


@pytest.mark.parametrize(
    "balance, paid, expected",
    [
        (Decimal("5892.50"), Decimal("0"), SaleStatus.PENDING),
        (Decimal("2142.50"), Decimal("3750"), SaleStatus.PARTIAL),
        (Decimal("0"), Decimal("5892.50"), SaleStatus.PAID),
        (Decimal("-10"), Decimal("5902.50"), SaleStatus.PAID),
        # A zero-value sale owes nothing
        (Decimal("0"), Decimal("0"), SaleStatus.PAID),
    ],
)
def test_derive_status(balance, paid, expected):
    assert derive_status(balance, paid) is expected


def test_derive_status_never_cancels():
    statuses = {
        derive_status(Decimal(b), Decimal(p))
        for b in ("-1", "0", "1")
        for p in ("0", "1")
    }
    assert SaleStatus.CANCELLED not in statuses


@pytest.mark.parametrize(
    "to_return, returned, expected",
    [
        ("77.900", "0", SilverReturnStatus.PENDING),
        ("77.900", "10", SilverReturnStatus.PARTIAL),
        ("77.900", "77.900", SilverReturnStatus.COMPLETED),
        ("0", "0", SilverReturnStatus.PENDING),
    ],
)
def test_derive_silver_return_status(to_return, returned, expected):
    assert derive_silver_return_status(Decimal(to_return), Decimal(returned)) is expected


def test_untracked_channel_is_not_applicable():
    status = derive_silver_return_status(Decimal("77.9"), Decimal("0"), tracks_silver_return=False)
    assert status is SilverReturnStatus.NOT_APPLICABLE
    assert status.value == "na"
