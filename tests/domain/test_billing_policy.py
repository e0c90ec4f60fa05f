"""Tests for the default billing policy and channel lookup."""

import pytest

from silver_kernel.domain.policy import (
    BalanceStrategyKind,
    CustomerRemoval,
    default_billing_policy,
)
from silver_kernel.exceptions import InvalidChannelError


@pytest.fixture
def billing_policy():
    return default_billing_policy()


def test_two_channels(billing_policy):
    assert billing_policy.channel_names == ("regular", "wholesale")


def test_regular_channel(billing_policy):
    regular = billing_policy.channel("regular")
    assert regular.voucher_prefix == "REG"
    assert regular.balance_strategy is BalanceStrategyKind.DERIVED_SUM
    assert regular.tracks_silver_return is False
    assert regular.supports_tax is False
    assert regular.customer_removal is CustomerRemoval.DELETE


def test_wholesale_channel(billing_policy):
    wholesale = billing_policy.channel("wholesale")
    assert wholesale.voucher_prefix == ""
    assert wholesale.balance_strategy is BalanceStrategyKind.CACHED_FIELD
    assert wholesale.tracks_silver_return is True
    assert wholesale.supports_tax is True
    assert wholesale.identify_by_phone_only is True


def test_tax_off_by_default(billing_policy):
    assert billing_policy.default_tax.applicable is False


def test_unknown_channel(billing_policy):
    with pytest.raises(InvalidChannelError) as exc_info:
        billing_policy.channel("retail", "create_sale")
    assert exc_info.value.channel == "retail"
    assert exc_info.value.operation == "create_sale"
    assert exc_info.value.code == "INVALID_CHANNEL"


def test_channels_are_read_only(billing_policy):
    with pytest.raises(TypeError):
        billing_policy.channels["retail"] = billing_policy.channel("regular")
