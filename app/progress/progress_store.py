"""Per-user course progress store."""

from typing import Any, Dict, Optional
from datetime import datetime
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, func, case
import structlog

from app.core.catalog import CatalogClient
from app.core.config import settings
from app.core.database import upsert_insert
from app.core.exceptions import ConflictError, ValidationError
from app.core.rounding import round_half_up
from app.gamification.achievement_engine import AchievementEngine, total_points
from app.models.progress import CourseProgress

logger = structlog.get_logger()

RECENT_PROGRESS_LIMIT = 5


class ProgressStore:
    """Owns CourseProgress rows; the only writer of completion state."""

    def __init__(
        self,
        db: AsyncSession,
        catalog: CatalogClient,
        achievement_engine: Optional[AchievementEngine] = None
    ):
        self.db = db
        self.catalog = catalog
        self.achievement_engine = achievement_engine or AchievementEngine(db, catalog)

    async def get_progress(self, user_id: str, course_id: str) -> CourseProgress:
        """Return the stored row, or an unsaved zero-value default."""
        progress = await self._get_row(user_id, course_id)
        if progress is None:
            return CourseProgress(
                user_id=user_id,
                course_id=course_id,
                track_id=None,
                percentage=0,
                completed=False,
                started_at=None,
                completed_at=None,
                updated_at=None
            )
        return progress

    async def upsert_progress(
        self,
        user_id: str,
        course_id: str,
        percentage: int,
        completed: bool = False
    ) -> CourseProgress:
        """Insert or update progress for ``(user_id, course_id)``.

        Completing a course triggers achievement evaluation for the user.
        Evaluation failures are logged and never fail the update.
        """
        if isinstance(percentage, bool) or not isinstance(percentage, int) or not 0 <= percentage <= 100:
            raise ValidationError.for_field("percentage", "Must be an integer between 0 and 100")

        course = await self.catalog.get_course(course_id)
        existing = await self._get_row(user_id, course_id, for_update=True)
        try:
            self._check_regression(existing, percentage, completed)
        except ConflictError:
            await self.db.rollback()
            raise

        now = datetime.utcnow()
        insert = upsert_insert(self.db, CourseProgress.__table__)
        stmt = insert.values(
            id=uuid.uuid4(),
            user_id=user_id,
            course_id=course_id,
            track_id=course.track_id,
            percentage=percentage,
            completed=completed,
            started_at=now,
            completed_at=now if completed else None,
            updated_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "course_id"],
            set_={
                "track_id": stmt.excluded.track_id,
                "percentage": stmt.excluded.percentage,
                "completed": stmt.excluded.completed,
                # Keep the first completion time across repeated completions
                "completed_at": case(
                    (
                        stmt.excluded.completed.is_(True),
                        func.coalesce(CourseProgress.__table__.c.completed_at, stmt.excluded.completed_at)
                    ),
                    else_=None
                ),
                "updated_at": stmt.excluded.updated_at,
            }
        )

        try:
            await self.db.execute(stmt)
            await self.db.commit()
        except Exception as e:
            logger.error(
                "Failed to upsert progress",
                user_id=user_id,
                course_id=course_id,
                error=str(e)
            )
            await self.db.rollback()
            raise

        logger.info(
            "Course progress updated",
            user_id=user_id,
            course_id=course_id,
            percentage=percentage,
            completed=completed
        )

        if completed:
            await self._evaluate_achievements(user_id)

        return await self._get_row(user_id, course_id, refresh=True)

    async def get_overview(self, user_id: str) -> Dict[str, Any]:
        """Aggregate stats, recent progress and earned achievements."""
        stats_result = await self.db.execute(
            select(
                func.count(case((CourseProgress.completed.is_(True), 1))).label("completed"),
                func.count(CourseProgress.id).label("total"),
                func.avg(CourseProgress.percentage).label("average")
            ).where(CourseProgress.user_id == user_id)
        )
        stats = stats_result.one()

        recent_result = await self.db.execute(
            select(CourseProgress)
            .where(CourseProgress.user_id == user_id)
            .order_by(CourseProgress.updated_at.desc())
            .limit(RECENT_PROGRESS_LIMIT)
        )

        earned = await self.achievement_engine.list_user_achievements(user_id)

        return {
            "stats": {
                "completed_courses": stats.completed or 0,
                "total_enrolled": stats.total or 0,
                "average_progress_percent": round_half_up(float(stats.average)) if stats.average is not None else 0,
                "total_points": total_points(earned)
            },
            "recent_progress": list(recent_result.scalars().all()),
            "achievements": earned
        }

    def _check_regression(self, existing: Optional[CourseProgress], percentage: int, completed: bool) -> None:
        if existing is None or not existing.completed or settings.PROGRESS_ALLOW_REGRESSION:
            return

        details = []
        if not completed:
            details.append({"field": "completed", "message": "Course is already completed"})
        if percentage < existing.percentage:
            details.append({
                "field": "percentage",
                "message": f"Cannot decrease below {existing.percentage} on a completed course"
            })
        if details:
            raise ConflictError("Completed course progress cannot be regressed", details=details)

    async def _evaluate_achievements(self, user_id: str) -> None:
        try:
            awarded = await self.achievement_engine.evaluate_and_award(user_id)
            if awarded:
                logger.info(
                    "Achievements awarded on completion",
                    user_id=user_id,
                    achievements=[a.key for a in awarded]
                )
        except Exception as e:
            logger.error("Achievement evaluation failed", user_id=user_id, error=str(e))
            await self.db.rollback()

    async def _get_row(
        self,
        user_id: str,
        course_id: str,
        for_update: bool = False,
        refresh: bool = False
    ) -> Optional[CourseProgress]:
        query = select(CourseProgress).where(
            and_(
                CourseProgress.user_id == user_id,
                CourseProgress.course_id == course_id
            )
        )
        if for_update:
            query = query.with_for_update()
        if for_update or refresh:
            query = query.execution_options(populate_existing=True)

        result = await self.db.execute(query)
        return result.scalar_one_or_none()
