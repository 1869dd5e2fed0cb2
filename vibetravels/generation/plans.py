"""Travel plan lifecycle sweeps."""

import logging
from zoneinfo import ZoneInfo

from vibetravels.clock import Clock, SystemClock
from vibetravels.db.repositories import PersistenceGateway

logger = logging.getLogger(__name__)


async def auto_complete_plans(
    gateway: PersistenceGateway, clock: Clock | None = None, timezone: str = "UTC"
) -> list[int]:
    """Mark planned trips that already ended as completed.

    Args:
        gateway: Persistence gateway
        clock: Time source
        timezone: IANA timezone "today" is evaluated in

    Returns:
        IDs of completed plans
    """
    today = (clock or SystemClock()).now().astimezone(ZoneInfo(timezone)).date()
    completed = await gateway.complete_past_plans(today)
    logger.info(
        "Auto-completed past trips",
        extra={"structured": {"count": len(completed), "plan_ids": completed}},
    )
    return completed
