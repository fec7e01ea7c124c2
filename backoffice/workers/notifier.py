"""
Daily Notification Worker
=========================

Wakes once a day at ``NOTIFICATION_HOUR`` (local time, default 08:00)
and creates in-app notifications for admins:

* bookings past their end date that are still active or reserved,
* cars whose registration or insurance expires within
  ``EXPIRY_WARNING_DAYS``.

Concurrency safety
------------------
* **Redis distributed lock** ensures only one API instance runs the
  checks when several are deployed.
* The checks themselves are idempotent (existing notifications are not
  repeated), so a second run on the same day is harmless.

A failing run is logged and the loop carries on to the next day.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta

from backoffice.config import settings
from backoffice.infrastructure.database import async_session_factory
from backoffice.infrastructure.locks import DistributedLock
from backoffice.infrastructure.redis_client import get_redis
from backoffice.services.notifications import CheckResult, NotificationService

logger = logging.getLogger(__name__)

LOCK_NAME = "daily_notifications"

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_notification_loop() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info(
        "Notification worker started (daily at %02d:00)", settings.notification_hour
    )


async def stop_notification_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Notification worker stopped")


def seconds_until_next_run(now: datetime, hour: int) -> float:
    """Seconds from *now* to the next ``hour:00`` (tomorrow if already past)."""
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    """Sleep until the daily hour, run the checks, repeat."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        delay = seconds_until_next_run(datetime.now(), settings.notification_hour)
        try:
            await asyncio.wait_for(_stop_event.wait(), timeout=delay)
            break
        except asyncio.TimeoutError:
            pass  # time to run
        try:
            await run_daily_checks()
        except Exception:
            logger.exception("Unhandled error in daily notification checks")


async def run_daily_checks(today: date | None = None) -> CheckResult:
    """Run one round of checks under the distributed lock."""
    today = today or date.today()
    lock = DistributedLock(get_redis(), LOCK_NAME, ttl_seconds=300)

    if not await lock.acquire():
        logger.debug("Lock held by another worker – skipping daily checks")
        return CheckResult()

    result = CheckResult()
    try:
        async with async_session_factory() as session:
            service = NotificationService(
                session, warning_days=settings.expiry_warning_days
            )
            result = await service.run_daily_checks(today)
            await session.commit()
    except Exception:
        logger.exception("Error in daily notification checks")
    finally:
        await lock.release()

    return result
