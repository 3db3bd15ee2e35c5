"""Scheduler for the periodic assignment jobs (daily distribution, weekly rotation)."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from src.core.config import settings
from src.core.logging import log_with_context
from src.services import assignment_store, distribution_service, rotation_service


logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()


async def assign_daily_chores_for_all_groups() -> None:
    """Distribute today's chores in every family group.

    Runs daily (01:00 by default). A failure in one group is logged and does
    not stop the others.
    """
    logger.info("Running daily chore assignment job")

    group_ids = await assignment_store.list_groups()
    assigned_groups = 0
    for group_id in group_ids:
        try:
            created = await distribution_service.distribute_daily(group_id=group_id)
        except Exception:
            logger.exception("Daily chore assignment failed", extra={"group_id": group_id})
            continue
        if created:
            assigned_groups += 1

    logger.info("Completed daily chore assignment job: %d/%d groups assigned", assigned_groups, len(group_ids))


async def rotate_weekly_duties_for_all_groups() -> None:
    """Rotate every active weekly duty in every family group.

    Runs on the first day of each period (Monday 00:01 by default).
    """
    logger.info("Running weekly duty rotation job")

    group_ids = await assignment_store.list_groups()
    rotated = 0
    for group_id in group_ids:
        try:
            created = await rotation_service.rotate_all(group_id=group_id)
        except Exception:
            logger.exception("Weekly duty rotation failed", extra={"group_id": group_id})
            continue
        rotated += len(created)
        log_with_context(logger, "debug", "Weekly duties rotated", group_id=group_id, rotated=len(created))

    logger.info("Completed weekly duty rotation job: %d duties rotated across %d groups", rotated, len(group_ids))


def start_scheduler() -> None:
    """Start the scheduler and register all jobs.

    This should be called during FastAPI app startup.
    """
    logger.info("Starting scheduler")

    scheduler.add_job(
        assign_daily_chores_for_all_groups,
        trigger=CronTrigger(hour=settings.daily_assignment_hour, minute=settings.daily_assignment_minute),
        id="daily_chore_assignment",
        name="Assign Daily Chores",
        replace_existing=True,
    )
    logger.info(
        "Scheduled daily assignment job: daily at %02d:%02d",
        settings.daily_assignment_hour,
        settings.daily_assignment_minute,
    )

    scheduler.add_job(
        rotate_weekly_duties_for_all_groups,
        trigger=CronTrigger(
            day_of_week=settings.period_start_weekday,
            hour=settings.weekly_rotation_hour,
            minute=settings.weekly_rotation_minute,
        ),
        id="weekly_duty_rotation",
        name="Rotate Weekly Duties",
        replace_existing=True,
    )
    logger.info(
        "Scheduled weekly rotation job: day %d at %02d:%02d",
        settings.period_start_weekday,
        settings.weekly_rotation_hour,
        settings.weekly_rotation_minute,
    )

    scheduler.start()
    logger.info("Scheduler started successfully")


def stop_scheduler() -> None:
    """Stop the scheduler.

    This should be called during FastAPI app shutdown.
    """
    logger.info("Stopping scheduler")
    scheduler.shutdown(wait=True)
    logger.info("Scheduler stopped")
