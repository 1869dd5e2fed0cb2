"""Monthly generation quota.

The attempt log is the source of truth: every attempt created in the calendar
month counts, whatever its status, so pending and failed attempts consume a
slot immediately and are never refunded.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import date, datetime

from vibetravels.clock import Clock, SystemClock, month_window, next_month_start
from vibetravels.db.repositories import AttemptRecord, PersistenceGateway
from vibetravels.errors import GenerationInProgressError, LimitExceededError
from vibetravels.models.common import LimitColor
from vibetravels.models.limits import LimitInfo

logger = logging.getLogger(__name__)

DEFAULT_MONTHLY_LIMIT = 10
YELLOW_THRESHOLD = 70.0
RED_THRESHOLD = 90.0


class LimiterMetrics:
    """Interface for quota metrics."""

    def inc_limit_rejection(self) -> None:
        """Increment rejected reservation counter."""
        pass


def color_for(percentage: float) -> LimitColor:
    """Usage band for a percentage of the monthly limit."""
    if percentage >= RED_THRESHOLD:
        return LimitColor.red
    if percentage >= YELLOW_THRESHOLD:
        return LimitColor.yellow
    return LimitColor.green


class UsageLimiter:
    """Tracks and enforces the per-user monthly generation cap."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        *,
        limit: int = DEFAULT_MONTHLY_LIMIT,
        clock: Clock | None = None,
        timezone: str = "UTC",
        metrics: LimiterMetrics | None = None,
    ) -> None:
        """Initialize limiter.

        Args:
            gateway: Persistence gateway holding the attempt log
            limit: Attempts allowed per calendar month
            clock: Time source for the month window
            timezone: IANA timezone the calendar month is defined in
            metrics: Metrics recorder (optional, defaults to no-op)
        """
        self._gateway = gateway
        self._limit = limit
        self._clock = clock or SystemClock()
        self._timezone = timezone
        self._metrics = metrics or LimiterMetrics()
        # Serializes reservations per user within this process; the database
        # row lock and partial unique index cover other processes
        self._user_locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def limit(self) -> int:
        return self._limit

    def current_window(self, now: datetime | None = None) -> tuple[datetime, datetime]:
        """UTC bounds of the calendar month containing ``now``."""
        return month_window(now or self._clock.now(), self._timezone)

    async def get_generation_count(
        self, user_id: int, period: tuple[datetime, datetime] | None = None
    ) -> int:
        """Count attempts in the period (default: current month), any status."""
        start, end = period or self.current_window()
        return await self._gateway.count_attempts(user_id, start, end)

    async def can_generate(self, user_id: int) -> bool:
        """True iff the user is below the monthly limit."""
        return await self.get_generation_count(user_id) < self._limit

    async def get_remaining(self, user_id: int) -> int:
        """Slots left this month."""
        return max(0, self._limit - await self.get_generation_count(user_id))

    async def has_reached_limit(self, user_id: int) -> bool:
        """True iff no slots are left this month."""
        return not await self.can_generate(user_id)

    def get_reset_date(self) -> date:
        """First day of next month."""
        return next_month_start(self._clock.now(), self._timezone)

    async def get_monthly_generations(self, user_id: int) -> list[AttemptRecord]:
        """Attempts of the current month, newest first."""
        start, end = self.current_window()
        return await self._gateway.list_attempts(user_id, start, end)

    async def reserve_slot(self, user_id: int, plan_id: int) -> AttemptRecord:
        """Reserve a slot by inserting a pending attempt.

        Raises:
            LimitExceededError: User is at or over the monthly limit
            GenerationInProgressError: Plan already has an active attempt
        """
        start, end = self.current_window()
        async with self._user_locks[user_id]:
            try:
                attempt = await self._gateway.reserve_attempt(
                    user_id,
                    plan_id,
                    limit=self._limit,
                    window_start=start,
                    window_end=end,
                )
            except LimitExceededError as e:
                self._metrics.inc_limit_rejection()
                logger.info(
                    "Generation limit reached",
                    extra={"structured": {"user_id": user_id, "used": e.used, "limit": e.limit}},
                )
                raise
            except GenerationInProgressError:
                logger.info(
                    "Generation already in progress",
                    extra={"structured": {"user_id": user_id, "plan_id": plan_id}},
                )
                raise

        logger.info(
            "Generation slot reserved",
            extra={
                "structured": {"user_id": user_id, "plan_id": plan_id, "attempt_id": attempt.id}
            },
        )
        return attempt

    async def rollback(self, attempt_id: int) -> bool:
        """Delete a still-pending attempt that never started.

        Returns:
            True if the attempt was removed
        """
        removed = await self._gateway.delete_pending_attempt(attempt_id)
        if removed:
            logger.info(
                "Rolled back pending attempt", extra={"structured": {"attempt_id": attempt_id}}
            )
        else:
            logger.warning(
                "Attempt not rolled back (not pending or already started)",
                extra={"structured": {"attempt_id": attempt_id}},
            )
        return removed

    async def get_limit_info(self, user_id: int) -> LimitInfo:
        """Snapshot of the user's quota for display."""
        used = await self.get_generation_count(user_id)
        percentage = round(used / self._limit * 100, 1) if self._limit > 0 else 100.0
        return LimitInfo(
            used=used,
            limit=self._limit,
            remaining=max(0, self._limit - used),
            percentage=percentage,
            can_generate=used < self._limit,
            reset_date=self.get_reset_date(),
            display_text=f"{used}/{self._limit}",
            color=color_for(percentage),
        )
