"""
RateProvider -- the daily silver rate per gram.

Responsibility:
    Records the market rate of fine silver per day and answers "what is the
    rate as of this date".  A sale that does not name a rate, and a silver
    payment without an explicit rate, are valued at the current rate.

Architecture position:
    Kernel > Services.  Flushes within the caller's transaction.

Invariants enforced:
    - One rate row per date; setting a rate again for the same date
      overwrites the value and re-activates the row.
    - Rates are positive Decimals rounded to 4 places.
    - The current rate as of D is the active rate with the latest
      rate_date on or before D.

Failure modes:
    - InvalidRateError on a non-positive or non-numeric rate.
    - SilverRateNotFoundError from require_current_rate() when no active
      rate exists on or before the date.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from silver_kernel.db.types import ZERO, round_rate
from silver_kernel.domain.clock import Clock, SystemClock
from silver_kernel.domain.dtos import SilverRateInfo
from silver_kernel.domain.invoice import to_decimal
from silver_kernel.exceptions import CalculationError, InvalidRateError, SilverRateNotFoundError
from silver_kernel.logging_config import get_logger
from silver_kernel.models.silver_rate import SilverRate
from silver_kernel.services.base import BaseService

logger = get_logger("services.rate")

DEFAULT_HISTORY_LIMIT = 30


def parse_rate(value) -> Decimal:
    """Validate and round a caller-supplied rate per gram."""
    try:
        rate = to_decimal(value, "rate_per_gram")
    except CalculationError:
        raise InvalidRateError(repr(value)) from None
    if rate <= ZERO:
        raise InvalidRateError(str(rate))
    return round_rate(rate)


class RateProvider(BaseService):
    """
    Contract:
        Read and write access to the silver rate history.

    Non-goals:
        - Does NOT fetch market rates from any external source.
    """

    def __init__(self, session, clock: Clock | None = None, timezone: str | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._timezone = timezone

    def _today(self) -> date:
        return self._clock.today(self._timezone)

    def _current_model(self, as_of: date | None) -> SilverRate | None:
        as_of = as_of or self._today()
        return self.session.execute(
            select(SilverRate)
            .where(SilverRate.is_active.is_(True))
            .where(SilverRate.rate_date <= as_of)
            .order_by(SilverRate.rate_date.desc())
            .limit(1)
        ).scalar_one_or_none()

    def get_current_rate(self, as_of: date | None = None) -> SilverRateInfo | None:
        """Most recent active rate on or before ``as_of`` (default today), or None."""
        model = self._current_model(as_of)
        return SilverRateInfo.from_model(model) if model else None

    def require_current_rate(self, as_of: date | None = None) -> SilverRateInfo:
        rate = self.get_current_rate(as_of)
        if rate is None:
            as_of = as_of or self._today()
            logger.warning("silver_rate_missing", extra={"as_of": as_of})
            raise SilverRateNotFoundError(as_of.isoformat())
        return rate

    def set_rate(
        self, rate_date: date, rate_per_gram, actor_id: UUID
    ) -> tuple[SilverRateInfo, bool]:
        """
        Create or overwrite the rate for ``rate_date``.

        Returns:
            (rate, created) where created is False when an existing row for
            that date was overwritten.
        """
        value = parse_rate(rate_per_gram)

        existing = self._lock_rate(rate_date)
        if existing is None:
            savepoint = self.session.begin_nested()
            try:
                model = SilverRate(
                    rate_date=rate_date,
                    rate_per_gram=value,
                    is_active=True,
                    created_by_id=actor_id,
                )
                self.session.add(model)
                self.session.flush()
                savepoint.commit()
                logger.info(
                    "silver_rate_set",
                    extra={"rate_date": rate_date, "rate_per_gram": value, "rate_created": True},
                )
                return SilverRateInfo.from_model(model), True
            except IntegrityError:
                # Same date inserted concurrently; overwrite it instead
                savepoint.rollback()
                existing = self._lock_rate(rate_date)
                if existing is None:
                    raise

        previous = existing.rate_per_gram
        existing.rate_per_gram = value
        existing.is_active = True
        existing.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "silver_rate_set",
            extra={
                "rate_date": rate_date,
                "rate_per_gram": value,
                "previous_rate": previous,
                "rate_created": False,
            },
        )
        return SilverRateInfo.from_model(existing), False

    def deactivate_rate(self, rate_date: date, actor_id: UUID) -> SilverRateInfo:
        """Withdraw a mistaken rate; earlier rates become current again."""
        existing = self._lock_rate(rate_date)
        if existing is None:
            raise SilverRateNotFoundError(rate_date.isoformat())
        existing.is_active = False
        existing.updated_by_id = actor_id
        self.session.flush()
        logger.info("silver_rate_deactivated", extra={"rate_date": rate_date})
        return SilverRateInfo.from_model(existing)

    def list_history(self, limit: int = DEFAULT_HISTORY_LIMIT) -> list[SilverRateInfo]:
        """Active rates, newest date first."""
        rows = self.session.execute(
            select(SilverRate)
            .where(SilverRate.is_active.is_(True))
            .order_by(SilverRate.rate_date.desc())
            .limit(limit)
        ).scalars().all()
        return [SilverRateInfo.from_model(row) for row in rows]

    def _lock_rate(self, rate_date: date) -> SilverRate | None:
        return self.session.execute(
            select(SilverRate)
            .where(SilverRate.rate_date == rate_date)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
