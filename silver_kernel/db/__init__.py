"""Database layer - engine, base classes, column precision, and immutability."""

from silver_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from silver_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_config,
    init_engine_from_url,
    reset_engine,
    unit_of_work,
)
from silver_kernel.db.types import round_money, round_rate, round_weight

__all__ = [
    "init_engine_from_url",
    "init_engine_from_config",
    "get_session_factory",
    "unit_of_work",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "round_money",
    "round_rate",
    "round_weight",
]
