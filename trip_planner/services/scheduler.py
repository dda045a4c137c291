"""Background jobs: deliver scheduled notifications and close expired polls.

``run_scheduled_jobs`` is a plain function so tests drive it with an explicit
``now``; ``scheduler_loop`` wraps it in an asyncio task the app lifespan
starts and cancels.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from trip_planner.core.config import Settings
from trip_planner.db.dal import Database
from trip_planner.services.clock import utc_now
from trip_planner.services.polls import close_poll

logger = logging.getLogger("trip_planner.scheduler")


@dataclass(frozen=True)
class JobRunResult:
    notifications_delivered: int
    polls_completed: int


def dispatch_due_notifications(db: Database, now: Optional[datetime] = None) -> int:
    delivered = db.deliver_due_notifications(now or utc_now())
    if delivered:
        logger.info("delivered %s scheduled notification(s)", delivered)
    return delivered


def complete_expired_polls(db: Database, now: Optional[datetime] = None) -> int:
    now = now or utc_now()
    completed = 0
    for poll in db.list_expired_active_polls(now):
        if close_poll(db, poll, now) is not None:
            completed += 1
    if completed:
        logger.info("completed %s expired poll(s)", completed)
    return completed


def run_scheduled_jobs(db: Database, now: Optional[datetime] = None) -> JobRunResult:
    now = now or utc_now()
    return JobRunResult(
        notifications_delivered=dispatch_due_notifications(db, now),
        polls_completed=complete_expired_polls(db, now),
    )


async def scheduler_loop(settings: Settings) -> None:
    db = Database(settings.db_path)  # type: ignore[arg-type]
    interval = settings.scheduler_interval_seconds
    logger.info("scheduler started (interval=%ss)", interval)
    while True:
        try:
            await asyncio.to_thread(run_scheduled_jobs, db)
        except Exception:
            # keep the loop alive; the next tick retries
            logger.exception("scheduled job run failed")
        await asyncio.sleep(interval)
