"""Progress tracking models."""

from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, Boolean, UniqueConstraint, Index, CheckConstraint, Uuid
import uuid

from app.core.database import Base


class CourseProgress(Base):
    """A learner's completion state for one course."""
    __tablename__ = "course_progress"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, nullable=False, index=True)
    course_id = Column(String, nullable=False, index=True)
    track_id = Column(String, nullable=False, index=True)
    percentage = Column(Integer, nullable=False, default=0)
    completed = Column(Boolean, nullable=False, default=False)
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_course_progress_user_course"),
        CheckConstraint("percentage >= 0 AND percentage <= 100", name="ck_course_progress_percentage"),
        Index("ix_course_progress_user_completed", "user_id", "completed"),
        Index("ix_course_progress_user_updated", "user_id", "updated_at"),
    )
