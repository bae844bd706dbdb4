"""Quiz and attempt models."""

from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Integer, DateTime, Boolean, ForeignKey, UniqueConstraint, Index, JSON, Uuid
from sqlalchemy.orm import relationship
import uuid

from app.core.database import Base


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"


class Quiz(Base):
    """Quiz definitions, keyed to an external course."""
    __tablename__ = "quizzes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    course_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(String)
    time_limit_minutes = Column(Integer)  # null means untimed
    passing_score_percent = Column(Integer, nullable=False, default=70)
    max_attempts = Column(Integer, nullable=False, default=3)
    is_published = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    questions = relationship(
        "QuizQuestion",
        back_populates="quiz",
        order_by=lambda: [QuizQuestion.order_index, QuizQuestion.id],
        cascade="all, delete-orphan",
        lazy="selectin"
    )


class QuizQuestion(Base):
    """A single question. ``correct_answer`` never leaves the quiz engine
    before submission."""
    __tablename__ = "quiz_questions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    quiz_id = Column(Uuid(as_uuid=True), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    text = Column(String, nullable=False)
    question_type = Column(String, nullable=False, default=QuestionType.MULTIPLE_CHOICE.value)
    options = Column(JSON, nullable=False, default=list)
    correct_answer = Column(String, nullable=False)
    point_value = Column(Integer, nullable=False, default=1)
    order_index = Column(Integer, nullable=False, default=0)

    # Relationships
    quiz = relationship("Quiz", back_populates="questions")


class QuizAttempt(Base):
    """One scored submission. Append-only."""
    __tablename__ = "quiz_attempts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, nullable=False, index=True)
    quiz_id = Column(Uuid(as_uuid=True), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)
    answers = Column(JSON, nullable=False, default=dict)  # question id -> answer
    score_percent = Column(Integer, nullable=False)
    earned_points = Column(Integer, nullable=False)
    total_points = Column(Integer, nullable=False)
    passed = Column(Boolean, nullable=False)
    attempt_number = Column(Integer, nullable=False)
    time_spent_seconds = Column(Integer, nullable=False, default=0)
    submitted_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "quiz_id", "attempt_number", name="uq_quiz_attempt_number"),
        Index("ix_quiz_attempt_user_quiz", "user_id", "quiz_id"),
    )


class QuizSession(Base):
    """Server-side start time of a quiz being taken."""
    __tablename__ = "quiz_sessions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, nullable=False)
    quiz_id = Column(Uuid(as_uuid=True), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    submitted_at = Column(DateTime)

    __table_args__ = (
        UniqueConstraint("user_id", "quiz_id", name="uq_quiz_session_user_quiz"),
    )
