"""Periodic achievement reconciliation sweep."""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker
import structlog

from app.core.catalog import CatalogClient
from app.core.config import settings
from app.gamification.achievement_engine import AchievementEngine
from app.models.progress import CourseProgress

logger = structlog.get_logger()

CatalogFactory = Callable[[], Awaitable[CatalogClient]]


@dataclass
class SweepReport:
    users_evaluated: int = 0
    achievements_awarded: int = 0
    failures: List[str] = field(default_factory=list)


async def run_reconciliation_sweep(
    session_factory: async_sessionmaker,
    catalog: CatalogClient,
    concurrency: int = 1
) -> SweepReport:
    """Re-evaluate achievements for every active user.

    Each user gets its own session; a failure for one user is logged and
    recorded in the report, never raised.
    """
    async with session_factory() as db:
        result = await db.execute(
            select(CourseProgress.user_id).distinct().order_by(CourseProgress.user_id)
        )
        user_ids = list(result.scalars().all())

    logger.info("Achievement sweep started", users=len(user_ids), concurrency=concurrency)
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def evaluate(user_id: str) -> Tuple[str, int, bool]:
        async with semaphore:
            async with session_factory() as db:
                try:
                    awarded = await AchievementEngine(db, catalog).evaluate_and_award(user_id)
                    return user_id, len(awarded), True
                except Exception as e:
                    logger.error("Achievement sweep failed for user", user_id=user_id, error=str(e))
                    await db.rollback()
                    return user_id, 0, False

    report = SweepReport()
    for user_id, awarded, ok in await asyncio.gather(*(evaluate(u) for u in user_ids)):
        report.users_evaluated += 1
        report.achievements_awarded += awarded
        if not ok:
            report.failures.append(user_id)

    logger.info(
        "Achievement sweep finished",
        users_evaluated=report.users_evaluated,
        achievements_awarded=report.achievements_awarded,
        failures=len(report.failures)
    )
    return report


class AchievementSweepScheduler:
    """Runs the sweep on a fixed interval inside the application loop."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        catalog_factory: CatalogFactory,
        interval_seconds: Optional[int] = None,
        concurrency: Optional[int] = None
    ):
        self.session_factory = session_factory
        self.catalog_factory = catalog_factory
        self.interval_seconds = interval_seconds or settings.ACHIEVEMENT_SWEEP_INTERVAL_SECONDS
        self.concurrency = concurrency or settings.ACHIEVEMENT_SWEEP_CONCURRENCY
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="achievement-sweep")
        logger.info("Achievement sweep scheduled", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def run_once(self) -> SweepReport:
        catalog = await self.catalog_factory()
        return await run_reconciliation_sweep(self.session_factory, catalog, self.concurrency)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except Exception as e:
                logger.error("Achievement sweep crashed", error=str(e))
