"""Achievement awarding and tracking engine."""

from typing import Dict, Any, List, Iterable, Set
from datetime import datetime
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
import structlog

from app.core.catalog import CatalogClient
from app.core.database import upsert_insert
from app.gamification.achievement_rules import (
    ProgressFacts, UnknownRuleError, evaluate_rule, needs_track_totals
)
from app.models.gamification import Achievement, UserAchievement
from app.models.progress import CourseProgress

logger = structlog.get_logger()


class AchievementEngine:
    """Engine for checking and awarding achievements."""

    def __init__(self, db: AsyncSession, catalog: CatalogClient):
        self.db = db
        self.catalog = catalog

    async def evaluate_and_award(self, user_id: str) -> List[Achievement]:
        """Award every achievement whose rule now holds and that the user
        does not already have. Safe to call repeatedly and concurrently."""
        achievements = await self.list_achievements()
        earned_ids = await self._earned_achievement_ids(user_id)
        pending = [a for a in achievements if a.id not in earned_ids]

        if not pending:
            return []

        facts = await self.collect_facts(
            user_id,
            include_track_totals=any(needs_track_totals(a.rule) for a in pending)
        )

        awarded = []
        for achievement in pending:
            try:
                satisfied = evaluate_rule(achievement.rule, facts, achievement.criteria)
            except UnknownRuleError:
                logger.warning(
                    "Skipping achievement with unknown rule",
                    achievement=achievement.key,
                    rule=achievement.rule
                )
                continue

            if satisfied and await self._award(user_id, achievement):
                awarded.append(achievement)

        await self.db.commit()
        return awarded

    async def collect_facts(self, user_id: str, include_track_totals: bool = True) -> ProgressFacts:
        """Group the user's completed courses by track.

        Track mastery compares against the catalog's published courses, so
        completions of drafts or retired courses count for the course
        totals but never toward a track.
        """
        result = await self.db.execute(
            select(CourseProgress.track_id, CourseProgress.course_id).where(
                and_(
                    CourseProgress.user_id == user_id,
                    CourseProgress.completed.is_(True)
                )
            )
        )
        completed_ids: Dict[str, Set[str]] = {}
        for row in result:
            completed_ids.setdefault(str(row.track_id), set()).add(str(row.course_id))

        track_totals: Dict[str, int] = {}
        published_completed: Dict[str, int] = {}
        if include_track_totals:
            for track_id, course_ids in completed_ids.items():
                published = await self.catalog.published_course_ids(track_id)
                track_totals[track_id] = len(published)
                published_completed[track_id] = len(course_ids & published)

        return ProgressFacts(
            user_id=user_id,
            completed_by_track={track: len(ids) for track, ids in completed_ids.items()},
            track_totals=track_totals,
            published_completed_by_track=published_completed
        )

    async def list_achievements(self) -> List[Achievement]:
        """Active achievement catalog, cheapest first."""
        result = await self.db.execute(
            select(Achievement)
            .where(Achievement.is_active.is_(True))
            .order_by(Achievement.point_value, Achievement.id)
        )
        return list(result.scalars().all())

    async def list_user_achievements(self, user_id: str) -> List[Dict[str, Any]]:
        """Earned achievements joined with their definitions, newest first."""
        result = await self.db.execute(
            select(UserAchievement, Achievement)
            .join(Achievement, Achievement.id == UserAchievement.achievement_id)
            .where(UserAchievement.user_id == user_id)
            .order_by(UserAchievement.earned_at.desc(), Achievement.id)
        )
        return [
            _earned_to_dict(user_achievement, achievement)
            for user_achievement, achievement in result.all()
        ]

    async def _earned_achievement_ids(self, user_id: str) -> set:
        result = await self.db.execute(
            select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
        )
        return set(result.scalars().all())

    async def _award(self, user_id: str, achievement: Achievement) -> bool:
        """Insert the award row; a concurrent duplicate is a silent no-op."""
        insert = upsert_insert(self.db, UserAchievement.__table__)
        stmt = insert.values(
            id=uuid.uuid4(),
            user_id=user_id,
            achievement_id=achievement.id,
            earned_at=datetime.utcnow()
        ).on_conflict_do_nothing(
            index_elements=["user_id", "achievement_id"]
        )

        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            logger.debug(
                "Achievement already awarded",
                user_id=user_id,
                achievement=achievement.key
            )
            return False

        logger.info(
            "Achievement awarded",
            user_id=user_id,
            achievement=achievement.key,
            points=achievement.point_value
        )
        return True


def _earned_to_dict(user_achievement: UserAchievement, achievement: Achievement) -> Dict[str, Any]:
    return {
        "id": achievement.id,
        "key": achievement.key,
        "title": achievement.title,
        "description": achievement.description,
        "badge_icon": achievement.badge_icon,
        "point_value": achievement.point_value,
        "earned_at": user_achievement.earned_at
    }


def total_points(earned: Iterable[Dict[str, Any]]) -> int:
    return sum(item["point_value"] for item in earned)
