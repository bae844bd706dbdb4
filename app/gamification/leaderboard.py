"""Leaderboard derived from awarded achievements."""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, List

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, union
import structlog

from app.models.gamification import Achievement, UserAchievement
from app.models.progress import CourseProgress

logger = structlog.get_logger()


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    user_id: str
    total_points: int
    achievement_count: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def assign_ranks(rows: Iterable[Any]) -> List[LeaderboardEntry]:
    """Strict sequential ranks over already-sorted rows (no shared ranks)."""
    return [
        LeaderboardEntry(
            rank=index + 1,
            user_id=str(row.user_id),
            total_points=int(row.total_points or 0),
            achievement_count=int(row.achievement_count or 0)
        )
        for index, row in enumerate(rows)
    ]


class LeaderboardAggregator:
    """Read-time ranking; holds no state of its own."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_leaderboard(self, limit: int = 10) -> List[LeaderboardEntry]:
        """Users ordered by points, then achievement count, then user id.

        User accounts live in the identity service, so the population is
        every user with at least one progress row or award. Someone who has
        never touched a course is unknown here and is not ranked.
        """
        known_users = union(
            select(CourseProgress.user_id.label("user_id")),
            select(UserAchievement.user_id.label("user_id"))
        ).subquery("known_users")

        total_points = func.coalesce(func.sum(Achievement.point_value), 0).label("total_points")
        achievement_count = func.count(UserAchievement.id).label("achievement_count")

        query = (
            select(known_users.c.user_id, total_points, achievement_count)
            .select_from(known_users)
            .outerjoin(UserAchievement, UserAchievement.user_id == known_users.c.user_id)
            .outerjoin(Achievement, Achievement.id == UserAchievement.achievement_id)
            .group_by(known_users.c.user_id)
            .order_by(
                total_points.desc(),
                achievement_count.desc(),
                known_users.c.user_id.asc()
            )
            .limit(limit)
        )

        result = await self.db.execute(query)
        return assign_ranks(result.all())
