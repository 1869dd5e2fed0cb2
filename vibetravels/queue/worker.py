"""Worker pool executing queued generation jobs.

Each consumer processes one job at a time. A try is bounded by the job
timeout; failed or timed-out tries are re-enqueued with backoff until the try
budget is spent. A timed-out try does not fail the attempt: the stuck-job
reaper does. Queue errors are logged and never stop a consumer.
"""

import asyncio
import logging
from collections.abc import Sequence

from vibetravels.errors import AttemptNotFoundError
from vibetravels.generation.job import GenerationJob, GenerationMetrics
from vibetravels.models.jobs import JobOutcome, QueuedJob
from vibetravels.queue.queue import JobQueue

logger = logging.getLogger(__name__)


class GenerationWorker:
    """Bounded pool of consumers pulling from a job queue."""

    def __init__(
        self,
        queue: JobQueue,
        job: GenerationJob,
        *,
        concurrency: int = 2,
        tries: int = 2,
        timeout_seconds: float = 120,
        backoff_seconds: Sequence[int] = (10, 30),
        poll_timeout_seconds: float = 1.0,
        metrics: GenerationMetrics | None = None,
    ) -> None:
        """Initialize worker pool.

        Args:
            queue: Job queue to consume
            job: Job runner
            concurrency: Number of consumer tasks
            tries: Maximum deliveries per job
            timeout_seconds: Hard timeout of one try
            backoff_seconds: Delay before each retry (last value repeats)
            poll_timeout_seconds: How long one dequeue call blocks
            metrics: Metrics recorder (optional, defaults to no-op)
        """
        self._queue = queue
        self._job = job
        self._concurrency = concurrency
        self._tries = tries
        self._timeout = timeout_seconds
        self._backoff = list(backoff_seconds) or [0]
        self._poll_timeout = poll_timeout_seconds
        self._metrics = metrics or GenerationMetrics()

    def backoff_for(self, try_number: int) -> int:
        """Delay before the delivery following ``try_number``."""
        return self._backoff[min(try_number - 1, len(self._backoff) - 1)]

    async def process(self, queued: QueuedJob) -> JobOutcome | None:
        """Run one delivery of a job.

        Returns:
            JobOutcome on success, None when the try failed or was dropped
        """
        structured = {
            "job_id": queued.job_id,
            "attempt_id": queued.payload.attempt_id,
            "try_number": queued.try_number,
        }
        final_attempt = queued.try_number >= self._tries

        try:
            return await asyncio.wait_for(
                self._job.run(
                    queued.payload,
                    try_number=queued.try_number,
                    final_attempt=final_attempt,
                    job_id=queued.job_id,
                ),
                timeout=self._timeout,
            )
        except AttemptNotFoundError:
            logger.warning("Dropping job for missing attempt", extra={"structured": structured})
            return None
        except TimeoutError:
            logger.error(
                "Job exceeded timeout",
                extra={"structured": {**structured, "timeout_seconds": self._timeout}},
            )
            await self._retry_or_give_up(queued, "timeout")
            return None
        except Exception as e:
            logger.error(
                "Job failed",
                extra={"structured": {**structured, "error": type(e).__name__}},
            )
            await self._retry_or_give_up(queued, type(e).__name__)
            return None

    async def _retry_or_give_up(self, queued: QueuedJob, reason: str) -> None:
        if queued.try_number >= self._tries:
            logger.error(
                "Job permanently failed",
                extra={
                    "structured": {
                        "job_id": queued.job_id,
                        "attempt_id": queued.payload.attempt_id,
                        "tries": queued.try_number,
                        "reason": reason,
                    }
                },
            )
            return

        delay = self.backoff_for(queued.try_number)
        try:
            await self._queue.enqueue(queued.next_try(), delay_seconds=delay)
        except Exception:
            # The attempt stays processing until the stuck-job reaper fails it
            logger.exception(
                "Failed to schedule retry",
                extra={
                    "structured": {
                        "job_id": queued.job_id,
                        "attempt_id": queued.payload.attempt_id,
                        "reason": reason,
                    }
                },
            )
            return
        self._metrics.inc_retry()
        logger.info(
            "Job scheduled for retry",
            extra={
                "structured": {
                    "job_id": queued.job_id,
                    "attempt_id": queued.payload.attempt_id,
                    "next_try": queued.try_number + 1,
                    "delay_seconds": delay,
                }
            },
        )

    async def drain(self) -> int:
        """Process ready jobs one by one until the queue has none ready.

        Returns:
            Number of deliveries processed
        """
        processed = 0
        while True:
            queued = await self._queue.dequeue(timeout_seconds=0)
            if queued is None:
                return processed
            await self.process(queued)
            processed += 1

    async def _consume(self, index: int, stop: asyncio.Event) -> None:
        logger.info("Worker consumer started", extra={"structured": {"consumer": index}})
        while not stop.is_set():
            try:
                queued = await self._queue.dequeue(timeout_seconds=self._poll_timeout)
                if queued is not None:
                    await self.process(queued)
            except Exception:
                logger.exception(
                    "Worker consumer error", extra={"structured": {"consumer": index}}
                )
                # Pause before polling an unavailable queue again
                await asyncio.sleep(self._poll_timeout)

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Run consumers until ``stop`` is set."""
        stop = stop or asyncio.Event()
        await asyncio.gather(*(self._consume(i, stop) for i in range(self._concurrency)))
