"""Stuck generation cleanup.

A worker that crashes or is killed by its timeout leaves its attempt pending
or processing with no failure signal. The reaper fails such attempts once they
are older than the job timeout plus a buffer, so they stop blocking the plan.
The consumed monthly slot is not refunded.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from vibetravels.clock import Clock, SystemClock
from vibetravels.db.repositories import PersistenceGateway
from vibetravels.errors import TIMEOUT_REAPED
from vibetravels.generation.job import GenerationMetrics
from vibetravels.models.common import GenerationStatus

logger = logging.getLogger(__name__)

DEFAULT_STUCK_AFTER_SECONDS = 180


@dataclass
class StuckAttempt:
    """Attempt selected by a sweep."""

    attempt_id: int
    user_id: int
    travel_plan_id: int | None
    status: GenerationStatus
    created_at: datetime
    age_seconds: int


@dataclass
class ReapReport:
    """Result of one sweep."""

    dry_run: bool
    cutoff: datetime
    candidates: list[StuckAttempt] = field(default_factory=list)
    reaped: list[int] = field(default_factory=list)

    @property
    def found(self) -> int:
        return len(self.candidates)


def timeout_message(stuck_after_seconds: int) -> str:
    """Synthetic error written onto reaped attempts."""
    minutes = stuck_after_seconds / 60
    return (
        f"{TIMEOUT_REAPED}: generation timed out "
        f"(no result after {minutes:g} minutes, marked failed by cleanup)"
    )


class StuckJobReaper:
    """Periodic sweep failing attempts that never reached a terminal state."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        *,
        stuck_after_seconds: int = DEFAULT_STUCK_AFTER_SECONDS,
        clock: Clock | None = None,
        metrics: GenerationMetrics | None = None,
    ) -> None:
        """Initialize reaper.

        Args:
            gateway: Persistence gateway
            stuck_after_seconds: Job timeout plus buffer
            clock: Time source
            metrics: Metrics recorder (optional, defaults to no-op)
        """
        self._gateway = gateway
        self._stuck_after = stuck_after_seconds
        self._clock = clock or SystemClock()
        self._metrics = metrics or GenerationMetrics()

    async def sweep(self, dry_run: bool = False) -> ReapReport:
        """Find stuck attempts and, unless ``dry_run``, mark them failed.

        An attempt is stuck when it is pending or processing and was created
        more than ``stuck_after_seconds`` ago.
        """
        now = self._clock.now()
        cutoff = now - timedelta(seconds=self._stuck_after)
        stale = await self._gateway.find_stale_attempts(cutoff)

        report = ReapReport(dry_run=dry_run, cutoff=cutoff)
        for attempt in stale:
            report.candidates.append(
                StuckAttempt(
                    attempt_id=attempt.id,
                    user_id=attempt.user_id,
                    travel_plan_id=attempt.travel_plan_id,
                    status=attempt.status,
                    created_at=attempt.created_at,
                    age_seconds=int((now - attempt.created_at).total_seconds()),
                )
            )

        if not report.candidates:
            logger.info("No stuck generations found")
            return report

        if dry_run:
            logger.info(
                "Dry run: stuck generations found",
                extra={"structured": {"count": report.found}},
            )
            return report

        message = timeout_message(self._stuck_after)
        for candidate in report.candidates:
            # Conditional update: an attempt that finished meanwhile is left alone
            if await self._gateway.mark_failed(candidate.attempt_id, message):
                report.reaped.append(candidate.attempt_id)
                logger.warning(
                    "Marked stuck generation as failed",
                    extra={
                        "structured": {
                            "attempt_id": candidate.attempt_id,
                            "user_id": candidate.user_id,
                            "plan_id": candidate.travel_plan_id,
                            "status": candidate.status.value,
                            "age_seconds": candidate.age_seconds,
                        }
                    },
                )

        self._metrics.inc_reaped(len(report.reaped))
        return report

    async def run_forever(self, interval_seconds: float, stop: asyncio.Event | None = None) -> None:
        """Sweep every ``interval_seconds`` until ``stop`` is set."""
        stop = stop or asyncio.Event()
        while not stop.is_set():
            try:
                await self.sweep()
            except Exception:
                # Retried on the next interval
                logger.exception(
                    "Stuck generation sweep failed",
                    extra={"structured": {"interval_seconds": interval_seconds}},
                )
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
            except TimeoutError:
                continue
