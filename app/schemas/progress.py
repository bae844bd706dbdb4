"""Progress request and response schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProgressUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    percentage: int = Field(..., ge=0, le=100, strict=True)
    completed: bool = False


class CourseProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    course_id: str
    track_id: Optional[str] = None
    percentage: int
    completed: bool
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProgressStats(BaseModel):
    completed_courses: int = 0
    total_enrolled: int = 0
    average_progress_percent: int = 0
    total_points: int = 0


class EarnedAchievement(BaseModel):
    id: int
    key: str
    title: str
    description: Optional[str] = None
    badge_icon: Optional[str] = None
    point_value: int
    earned_at: datetime


class ProgressOverview(BaseModel):
    stats: ProgressStats
    recent_progress: List[CourseProgressResponse]
    achievements: List[EarnedAchievement]
