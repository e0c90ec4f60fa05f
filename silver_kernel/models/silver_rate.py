"""
Module: silver_kernel.models.silver_rate
Responsibility: Daily market rate of fine silver per gram.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One row per rate_date (uq_silver_rate_date).  Setting a rate for a
      date that already has one overwrites the value in place.
    - rate_per_gram > 0 (validated by RateProvider before write).
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from silver_kernel.db.base import TrackedBase
from silver_kernel.db.types import RateType


class SilverRate(TrackedBase):
    """Rate per gram effective from rate_date until the next dated rate."""

    __tablename__ = "silver_rates"

    __table_args__ = (
        UniqueConstraint("rate_date", name="uq_silver_rate_date"),
    )

    rate_date: Mapped[date] = mapped_column(Date, nullable=False)

    rate_per_gram: Mapped[Decimal] = mapped_column(
        RateType, nullable=False
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<SilverRate {self.rate_date}: {self.rate_per_gram}>"
