"""
Pytest fixtures for the silver ledger test suite.

Provides:
- Database sessions isolated per test by an outer transaction
- A BillingService whose commits stay inside that transaction
- Deterministic clock, default billing policy and a silver rate fixture
- Captured structured logs

Environment Variables:
- DATABASE_URL: connection URL.  Defaults to an in-memory SQLite database.
  Tests marked ``postgres`` are skipped unless it points at PostgreSQL.
"""

import json
import logging
import os
import threading
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session, sessionmaker

from silver_kernel.db.base import Base
from silver_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from silver_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from silver_kernel.domain.clock import DeterministicClock
from silver_kernel.domain.policy import default_billing_policy
from silver_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from silver_kernel.services.billing_service import BillingService
from silver_kernel.services.customer_service import CustomerDetails, CustomerService
from silver_kernel.services.ledger_engine import LedgerEngine
from silver_kernel.services.rate_service import RateProvider
from silver_kernel.services.sale_lifecycle import SaleLifecycleManager
from silver_kernel.services.sequence_service import SequenceService
from silver_kernel.services.voucher_allocator import VoucherAllocator

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

DEFAULT_DATABASE_URL = "sqlite:///:memory:"

# 2024-01-01 17:30 in Asia/Kolkata
TEST_NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
TEST_DAY = date(2024, 1, 1)

# Scenario item: 77.900g fine silver, 50.00 labor, 5892.50 at rate 75
SCENARIO_ITEM = {
    "grossWeight": 100,
    "netWeight": 95,
    "wastage": 2,
    "touch": 80,
    "laborRatePerKg": 500,
}


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def is_postgres_url(url: str) -> bool:
    return url.startswith("postgresql")


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


def pytest_collection_modifyitems(config, items):
    if is_postgres_url(get_database_url()):
        return
    skip_pg = pytest.mark.skip(reason="requires DATABASE_URL pointing at PostgreSQL")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture silver_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, billing):
            billing.create_sale(...)
            assert any(r["message"] == "sale_created" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("silver_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Session-scoped DB infrastructure (create engine + tables ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    eng = init_engine_from_url(
        get_database_url(), echo=False,
        pool_size=30, max_overflow=20, pool_timeout=10,
    )
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end.

    Immutability listeners are registered once and remain active.
    """
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables()


def _delete_all_rows(engine):
    """Remove all data for tests that really commit."""
    with engine.connect() as conn:
        if is_postgres_url(str(engine.url)):
            names = ", ".join(t.name for t in reversed(Base.metadata.sorted_tables))
            conn.execute(text(f"TRUNCATE {names} CASCADE"))
        else:
            for table in reversed(Base.metadata.sorted_tables):
                conn.execute(table.delete())
        conn.commit()


# =============================================================================
# Per-test isolation
# =============================================================================


@pytest.fixture
def db_connection(db_tables, db_engine):
    """A connection holding an outer transaction that is rolled back at teardown."""
    conn = db_engine.connect()
    trans = conn.begin()
    yield conn
    try:
        trans.rollback()
    finally:
        conn.close()


@pytest.fixture
def session(db_connection) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins the outer transaction; ``session.commit()`` releases a
    savepoint instead of committing.
    """
    sess = Session(
        bind=db_connection,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
    )
    yield sess
    sess.close()


@pytest.fixture
def session_factory(db_connection):
    """Session factory for BillingService bound to the test transaction."""
    return sessionmaker(
        bind=db_connection,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
    )


@pytest.fixture
def pg_session_factory(db_engine, db_tables):
    """Tracked session factory for concurrent threads; real commits.

    On teardown every session is rolled back and closed, then all rows are
    deleted.
    """
    factory = get_session_factory()
    created_sessions = []
    lock = threading.Lock()

    def tracked_factory():
        with lock:
            s = factory()
            created_sessions.append(s)
            return s

    yield tracked_factory

    for s in created_sessions:
        try:
            if s.is_active:
                s.rollback()
        finally:
            s.close()
    _delete_all_rows(db_engine)


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(TEST_NOW)


@pytest.fixture
def policy():
    return default_billing_policy()


@pytest.fixture
def scenario_item():
    return dict(SCENARIO_ITEM)


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def sequence_service(session):
    return SequenceService(session)


@pytest.fixture
def ledger_engine(session, policy, deterministic_clock, sequence_service):
    return LedgerEngine(session, policy, deterministic_clock, sequence_service)


@pytest.fixture
def rate_provider(session, deterministic_clock, policy):
    return RateProvider(session, deterministic_clock, policy.timezone)


@pytest.fixture
def voucher_allocator(session, sequence_service, policy):
    return VoucherAllocator(session, sequence_service, policy.max_voucher_sequence)


@pytest.fixture
def customer_service(session, policy, ledger_engine):
    return CustomerService(session, policy, ledger_engine)


@pytest.fixture
def lifecycle(session, policy, deterministic_clock, rate_provider, voucher_allocator, ledger_engine):
    return SaleLifecycleManager(
        session,
        policy,
        deterministic_clock,
        rates=rate_provider,
        vouchers=voucher_allocator,
        ledger=ledger_engine,
    )


@pytest.fixture
def billing(session_factory, policy, deterministic_clock):
    return BillingService(session_factory, policy, deterministic_clock)


@pytest.fixture
def silver_rate(billing, test_actor_id):
    """Rate of 75.0000 per gram effective on the test day."""
    rate, _ = billing.set_silver_rate(TEST_DAY, Decimal("75"), actor_id=test_actor_id)
    return rate


@pytest.fixture
def regular_customer(customer_service, test_actor_id):
    return customer_service.create_customer(
        "regular", CustomerDetails(name="Asha Verma", phone="9000000001"), test_actor_id
    )


@pytest.fixture
def wholesale_customer(customer_service, test_actor_id):
    customer, _ = customer_service.get_or_create_customer(
        "wholesale",
        CustomerDetails(name="Kumar Jewellers", phone="9800000001", gst_number="29ABCDE1234F1Z5"),
        test_actor_id,
    )
    return customer


@pytest.fixture
def wholesale_buyer(billing, test_actor_id):
    """Wholesale customer committed through BillingService."""
    customer, _ = billing.get_or_create_customer(
        "wholesale",
        CustomerDetails(name="Sri Balaji Silver", phone="9800000002"),
        actor_id=test_actor_id,
    )
    return customer


@pytest.fixture
def counter_buyer(billing, test_actor_id):
    """Regular customer committed through BillingService."""
    return billing.create_customer(
        "regular",
        CustomerDetails(name="Ravi Kumar", phone="9000000002"),
        actor_id=test_actor_id,
    )
