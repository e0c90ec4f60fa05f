"""
Tests for LedgerSelector.

Covers:
- Customer ledger ordering, voucher numbers and balances
- Date-range opening and closing balances
- Replay: summing the ledger reproduces the balance on both channels
- Chain verification, including rows altered outside the ORM
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import text

from silver_kernel.exceptions import CustomerNotFoundError, LedgerChainBrokenError
from silver_kernel.selectors.ledger_selector import LedgerSelector



@pytest.fixture
def selector(session, policy):
    return LedgerSelector(session, policy)


@pytest.fixture
def three_days(lifecycle, deterministic_clock, wholesale_customer, scenario_item, test_actor_id):
    """Sale on day 1, payment on day 2, second sale on day 3."""
    first = lifecycle.create_sale(
        wholesale_customer.id, "wholesale", [scenario_item], silver_rate=75, actor_id=test_actor_id
    )
    deterministic_clock.advance(86400)
    lifecycle.add_payment(first.sale.id, 2000, actor_id=test_actor_id)
    deterministic_clock.advance(86400)
    lifecycle.create_sale(
        wholesale_customer.id, "wholesale", [scenario_item], silver_rate=75, actor_id=test_actor_id
    )
    return first


class TestCustomerLedger:

    def test_full_history(self, selector, three_days, wholesale_customer):
        ledger = selector.customer_ledger(wholesale_customer.id)
        assert [e.transaction_type for e in ledger.entries] == ["sale", "payment", "sale"]
        assert [e.voucher_number for e in ledger.entries] == [
            "202401010001", "202401010001", "202401030001",
        ]
        assert ledger.opening_balance == Decimal("0.00")
        assert ledger.closing_balance == Decimal("9785.00")
        assert ledger.current_balance == Decimal("9785.00")
        assert ledger.chain_intact

    def test_date_range(self, selector, three_days, wholesale_customer):
        ledger = selector.customer_ledger(
            wholesale_customer.id, start_date=date(2024, 1, 2), end_date=date(2024, 1, 2)
        )
        assert [e.transaction_type for e in ledger.entries] == ["payment"]
        assert ledger.opening_balance == Decimal("5892.50")
        assert ledger.closing_balance == Decimal("3892.50")
        assert ledger.current_balance == Decimal("9785.00")

    def test_empty_range_uses_balance_before_start(self, selector, three_days, wholesale_customer):
        ledger = selector.customer_ledger(wholesale_customer.id, start_date=date(2024, 2, 1))
        assert ledger.entries == ()
        assert ledger.opening_balance == ledger.closing_balance == Decimal("9785.00")

    def test_unknown_customer(self, selector):
        with pytest.raises(CustomerNotFoundError):
            selector.customer_ledger(uuid4())


class TestReplay:

    def test_cached_balance_matches_replay(self, session, selector, three_days, wholesale_customer, ledger_engine):
        assert selector.replay_balance(wholesale_customer.id) == ledger_engine.current_balance(
            wholesale_customer.id
        )

    def test_derived_balance_matches_chain_end(self, selector, lifecycle, regular_customer, scenario_item, test_actor_id):
        sale = lifecycle.create_sale(
            regular_customer.id, "regular", [scenario_item], silver_rate=75,
            paid_amount=1000, actor_id=test_actor_id,
        )
        lifecycle.add_silver_payment(sale.sale.id, 5, 75, actor_id=test_actor_id)
        entries = selector.entries(regular_customer.id)
        assert selector.replay_balance(regular_customer.id) == entries[-1].balance_after
        assert entries[-1].balance_after == Decimal("4517.50")


class TestChainVerification:

    def test_intact_chain(self, selector, three_days, wholesale_customer):
        assert selector.verify_chain(wholesale_customer.id) == []
        selector.assert_chain_intact(wholesale_customer.id)

    def test_tampered_row_is_reported(self, session, selector, three_days, wholesale_customer, captured_logs):
        # Raw SQL bypasses the ORM immutability listeners
        entries = selector.entries(wholesale_customer.id)
        session.execute(
            text("UPDATE ledger_transactions SET balance_before = :value WHERE id = :id"),
            {"value": 1, "id": str(entries[1].id)},
        )
        session.expire_all()

        breaks = selector.verify_chain(wholesale_customer.id)
        assert len(breaks) == 1
        assert breaks[0].entry_id == entries[1].id
        assert breaks[0].expected_balance_before == Decimal("5892.50")
        assert any(r["message"] == "ledger_chain_broken" for r in captured_logs())

        with pytest.raises(LedgerChainBrokenError) as exc_info:
            selector.assert_chain_intact(wholesale_customer.id)
        assert exc_info.value.entry_id == str(entries[1].id)
        assert not selector.customer_ledger(wholesale_customer.id).chain_intact

    def test_same_timestamp_ordered_by_seq(self, selector, lifecycle, wholesale_customer, scenario_item, test_actor_id):
        # The clock does not move: sale and payment share a timestamp
        lifecycle.create_sale(
            wholesale_customer.id, "wholesale", [scenario_item], silver_rate=75,
            paid_amount=100, actor_id=test_actor_id,
        )
        entries = selector.entries(wholesale_customer.id)
        assert entries[0].transaction_date == entries[1].transaction_date
        assert [e.transaction_type for e in entries] == ["sale", "payment"]
        assert selector.verify_chain(wholesale_customer.id) == []
