"""Quiz request and response schemas."""

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class QuizSummary(BaseModel):
    """Quiz without questions."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    course_id: str
    title: str
    description: Optional[str] = None
    time_limit_minutes: Optional[int] = None
    passing_score_percent: int
    max_attempts: int
    question_count: int = 0
    total_points: int = 0


class QuestionForTaking(BaseModel):
    """A question as shown to the learner: no correct answer."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    text: str
    question_type: str
    options: List[str] = Field(default_factory=list)
    point_value: int
    order_index: int


class QuizForTaking(QuizSummary):
    questions: List[QuestionForTaking] = Field(default_factory=list)


class QuizStartResponse(BaseModel):
    started_at: datetime
    expires_at: Optional[datetime] = None
    quiz: QuizForTaking


class QuizSubmitRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    answers: Dict[str, str] = Field(default_factory=dict, description="Question id to answer")
    time_spent_seconds: int = Field(default=0, ge=0)


class QuestionResultResponse(BaseModel):
    question_id: str
    question_text: str
    user_answer: Optional[str] = None
    correct_answer: str
    is_correct: bool
    points: int
    earned_points: int


class QuizAttemptSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    quiz_id: UUID
    attempt_number: int
    score_percent: int
    earned_points: int
    total_points: int
    passed: bool
    time_spent_seconds: int
    submitted_at: datetime


class QuizAttemptResult(QuizAttemptSummary):
    quiz_title: str
    answers: Dict[str, str]
    max_attempts: int
    remaining_attempts: int
    passing_score_percent: int
    total_questions: int
    correct_answers: int
    results: List[QuestionResultResponse]


class QuizAttemptHistory(BaseModel):
    quiz_id: UUID
    max_attempts: int
    remaining_attempts: int
    best_score_percent: Optional[int] = None
    passed: bool = False
    attempts: List[QuizAttemptSummary]
