"""Gamification models."""

from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Integer, DateTime, Boolean, ForeignKey, UniqueConstraint, Index, JSON, Uuid
from sqlalchemy.orm import relationship
import uuid

from app.core.database import Base


class AchievementRule(str, Enum):
    """Closed set of award rules, each bound to a predicate."""
    FIRST_COMPLETION = "first_completion"
    TRACK_MASTERY = "track_mastery"
    COURSE_COUNT = "course_count"


class Achievement(Base):
    """Achievement definitions."""
    __tablename__ = "achievements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String, nullable=False, unique=True)
    title = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    badge_icon = Column(String)
    point_value = Column(Integer, nullable=False, default=0)
    rule = Column(String, nullable=False)
    criteria = Column(JSON, nullable=False, default=dict)  # rule parameters
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    user_achievements = relationship("UserAchievement", back_populates="achievement")


class UserAchievement(Base):
    """Achievements earned by users. Write-once."""
    __tablename__ = "user_achievements"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, nullable=False, index=True)
    achievement_id = Column(Integer, ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False)
    earned_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    achievement = relationship("Achievement", back_populates="user_achievements")

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
        Index("ix_user_achievement_earned", "earned_at"),
    )


DEFAULT_ACHIEVEMENTS = [
    {
        "key": "first-completion",
        "title": "First Completion",
        "description": "Complete your first course",
        "badge_icon": "🎯",
        "point_value": 10,
        "rule": AchievementRule.FIRST_COMPLETION.value,
        "criteria": {},
    },
    {
        "key": "track-mastery",
        "title": "Track Mastery",
        "description": "Complete every published course in a track",
        "badge_icon": "🏆",
        "point_value": 50,
        "rule": AchievementRule.TRACK_MASTERY.value,
        "criteria": {},
    },
    {
        "key": "knowledge-seeker",
        "title": "Knowledge Seeker",
        "description": "Complete 10 courses in total",
        "badge_icon": "📚",
        "point_value": 100,
        "rule": AchievementRule.COURSE_COUNT.value,
        "criteria": {"count": 10},
    },
]
