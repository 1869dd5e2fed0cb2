"""Command-line entry point for operators and background processes.

Usage:
    vibetravels generate PLAN_ID
    vibetravels cleanup-stuck-generations [--dry-run]
    vibetravels limit-info USER_ID
    vibetravels reset-monthly-limits
    vibetravels auto-complete-plans
    vibetravels worker
    vibetravels reaper
    vibetravels init-db
    vibetravels seed-dev
"""

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Awaitable, Callable

from vibetravels.bootstrap import Services, build_services
from vibetravels.config import get_settings
from vibetravels.db.seed_dev import seed_dev_data
from vibetravels.errors import GenerationError
from vibetravels.generation.plans import auto_complete_plans
from vibetravels.utils.logging import configure_logging

logger = logging.getLogger(__name__)


def _install_stop_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)


async def cmd_generate(services: Services, args: argparse.Namespace) -> int:
    attempt = await services.service.generate(args.plan_id)
    print(f"Generation queued: attempt {attempt.id} for plan {args.plan_id}")
    if args.wait:
        await services.worker.drain()
        attempt = await services.service.get_attempt(attempt.id)
        print(f"Attempt {attempt.id}: {attempt.status.value}")
        if attempt.error_message:
            print(f"  error: {attempt.error_message}")
    return 0


async def cmd_cleanup(services: Services, args: argparse.Namespace) -> int:
    report = await services.reaper.sweep(dry_run=args.dry_run)
    if not report.candidates:
        print("No stuck generations found.")
        return 0

    print(f"Found {report.found} stuck generation(s) created before {report.cutoff.isoformat()}:")
    for c in report.candidates:
        print(
            f"  attempt={c.attempt_id} user={c.user_id} plan={c.travel_plan_id} "
            f"status={c.status.value} age={c.age_seconds}s"
        )
    if report.dry_run:
        print("Dry run: no changes made.")
    else:
        print(f"Marked {len(report.reaped)} generation(s) as failed.")
    return 0


async def cmd_limit_info(services: Services, args: argparse.Namespace) -> int:
    info = await services.service.get_limit_info(args.user_id)
    print(f"Used:      {info.display_text} ({info.percentage}%, {info.color.value})")
    print(f"Remaining: {info.remaining}")
    print(f"Can generate: {'yes' if info.can_generate else 'no'}")
    print(f"Resets on: {info.reset_date.isoformat()}")

    history = await services.service.get_monthly_generations(args.user_id)
    if history:
        print("This month:")
        for attempt in history:
            print(
                f"  {attempt.created_at.isoformat()} attempt={attempt.id} "
                f"plan={attempt.travel_plan_id} status={attempt.status.value}"
            )
    return 0


async def cmd_reset_limits(services: Services, args: argparse.Namespace) -> int:
    report = services.service.reset_monthly_limits()
    print(
        "Usage is counted per calendar month; no counters to reset. "
        f"Current window {report.window_start.isoformat()} - {report.window_end.isoformat()}, "
        f"limit {report.limit}, next reset {report.reset_date.isoformat()}."
    )
    return 0


async def cmd_auto_complete(services: Services, args: argparse.Namespace) -> int:
    completed = await auto_complete_plans(
        services.gateway, services.clock, services.settings.limit_timezone
    )
    print(f"Completed {len(completed)} plan(s).")
    return 0


async def cmd_worker(services: Services, args: argparse.Namespace) -> int:
    stop = asyncio.Event()
    _install_stop_handlers(stop)
    logger.info(
        "Worker starting",
        extra={"structured": {"concurrency": services.settings.worker_concurrency}},
    )
    await services.worker.run(stop)
    return 0


async def cmd_reaper(services: Services, args: argparse.Namespace) -> int:
    stop = asyncio.Event()
    _install_stop_handlers(stop)
    await services.reaper.run_forever(services.settings.reaper_interval_seconds, stop)
    return 0


async def cmd_init_db(services: Services, args: argparse.Namespace) -> int:
    if services.engine is None:
        print("DATABASE_URL not set; nothing to initialize.")
        return 1
    await services.init_db()
    print("Database tables created.")
    return 0


async def cmd_seed_dev(services: Services, args: argparse.Namespace) -> int:
    result = await seed_dev_data(services.gateway, services.clock)
    if result.created:
        print(f"Seeded user {result.user_id} with plan {result.plan_id}.")
    else:
        print(f"Dev user {result.user_id} already exists.")
    return 0


Command = Callable[[Services, argparse.Namespace], Awaitable[int]]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vibetravels", description="VibeTravels generation")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("generate", help="Request an itinerary for a plan")
    p.add_argument("plan_id", type=int)
    p.add_argument("--wait", action="store_true", help="Run queued jobs in this process")
    p.set_defaults(func=cmd_generate)

    p = sub.add_parser("cleanup-stuck-generations", help="Fail attempts stuck in flight")
    p.add_argument("--dry-run", action="store_true", help="Report without changing anything")
    p.set_defaults(func=cmd_cleanup)

    p = sub.add_parser("limit-info", help="Show a user's monthly quota")
    p.add_argument("user_id", type=int)
    p.set_defaults(func=cmd_limit_info)

    p = sub.add_parser("reset-monthly-limits", help="Report the monthly quota window")
    p.set_defaults(func=cmd_reset_limits)

    p = sub.add_parser("auto-complete-plans", help="Complete plans whose trip has ended")
    p.set_defaults(func=cmd_auto_complete)

    p = sub.add_parser("worker", help="Run the generation worker pool")
    p.set_defaults(func=cmd_worker)

    p = sub.add_parser("reaper", help="Run the stuck generation sweep periodically")
    p.set_defaults(func=cmd_reaper)

    p = sub.add_parser("init-db", help="Create database tables")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("seed-dev", help="Seed a dev user and a sample plan")
    p.set_defaults(func=cmd_seed_dev)

    return parser


async def _run(func: Command, args: argparse.Namespace) -> int:
    settings = get_settings()
    services = build_services(settings)
    try:
        return await func(services, args)
    except GenerationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await services.close()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(get_settings().log_level)
    return asyncio.run(_run(args.func, args))


if __name__ == "__main__":
    sys.exit(main())
