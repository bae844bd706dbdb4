"""Gamification response schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AchievementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    key: str
    title: str
    description: Optional[str] = None
    badge_icon: Optional[str] = None
    point_value: int
    rule: str
    criteria: Dict[str, Any] = Field(default_factory=dict)


class LeaderboardEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rank: int
    user_id: str
    total_points: int
    achievement_count: int


class SweepReportResponse(BaseModel):
    users_evaluated: int
    achievements_awarded: int
    failures: List[str] = Field(default_factory=list)
    finished_at: datetime
