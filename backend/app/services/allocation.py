"""Monthly points allocation batch job.

Each user is credited in their own ledger transaction; a failed user is
logged and reported while the rest of the run continues.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.cron import CronTrigger

from backend.app.core.config import settings
from backend.app.core.database import Database
from backend.app.db.models import TransactionType
from backend.app.services.points import MONTHLY_ALLOCATION_DESCRIPTION, PointsLedger

logger = logging.getLogger(__name__)

ALLOCATION_JOB_ID = "monthly_points_allocation"


@dataclass
class AllocationReport:
    credited: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    total_points: int = 0

    def as_dict(self) -> dict:
        return {
            "credited": len(self.credited),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
            "total_points": self.total_points,
        }


def run_monthly_allocation(ledger: PointsLedger) -> AllocationReport:
    """Credit every active user their configured monthly allocation once."""
    report = AllocationReport()
    targets = ledger.list_allocation_targets()
    logger.info("Starting monthly points allocation", extra={"data": {"users": len(targets)}})

    for user_id, allocation in targets:
        if allocation <= 0:
            report.skipped.append(user_id)
            continue
        try:
            ledger.credit(
                user_id,
                allocation,
                MONTHLY_ALLOCATION_DESCRIPTION,
                type=TransactionType.ALLOCATED,
            )
        except Exception as exc:
            logger.error(
                "Monthly allocation failed for user",
                exc_info=True,
                extra={"data": {"user_id": user_id, "allocation": allocation}},
            )
            report.failed[user_id] = str(exc)
            continue
        report.credited.append(user_id)
        report.total_points += allocation

    logger.info("Monthly points allocation completed", extra={"data": report.as_dict()})
    return report


def allocation_trigger() -> CronTrigger:
    return CronTrigger(
        day=settings.allocation_day,
        hour=settings.allocation_hour,
        minute=settings.allocation_minute,
        timezone=settings.allocation_timezone,
    )


def schedule_monthly_allocation(scheduler: BaseScheduler, db: Database) -> None:
    """Register the allocation run on ``scheduler`` using the configured cron slot."""

    def _run() -> None:
        run_monthly_allocation(PointsLedger(db))

    scheduler.add_job(
        _run,
        allocation_trigger(),
        id=ALLOCATION_JOB_ID,
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )
    logger.info(
        "Monthly allocation scheduled",
        extra={
            "data": {
                "day": settings.allocation_day,
                "hour": settings.allocation_hour,
                "minute": settings.allocation_minute,
                "timezone": settings.allocation_timezone,
            }
        },
    )
