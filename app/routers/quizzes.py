"""Quiz taking endpoints."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.database import get_db
from app.core.dependencies import get_current_user
from app.quizzes.quiz_engine import QuizEngine
from app.schemas.quiz import (
    QuizAttemptHistory, QuizAttemptResult, QuizForTaking,
    QuizStartResponse, QuizSubmitRequest, QuizSummary
)

logger = structlog.get_logger()
router = APIRouter()


@router.get("/courses/{course_id}", response_model=List[QuizSummary])
async def list_course_quizzes(
    course_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List published quizzes for a course."""
    return await QuizEngine(db).list_quizzes(course_id)


@router.get("/{quiz_id}", response_model=QuizForTaking)
async def get_quiz(
    quiz_id: UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get a quiz for taking, without answers."""
    return await QuizEngine(db).get_quiz_for_taking(quiz_id)


@router.post("/{quiz_id}/start", response_model=QuizStartResponse)
async def start_quiz(
    quiz_id: UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Start a timed quiz session."""
    return await QuizEngine(db).start_quiz(current_user["user_id"], quiz_id)


@router.post("/{quiz_id}/submit", response_model=QuizAttemptResult)
async def submit_quiz(
    quiz_id: UUID,
    submission: QuizSubmitRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Submit answers and get the scored attempt."""
    return await QuizEngine(db).submit_attempt(
        current_user["user_id"],
        quiz_id,
        submission.answers,
        submission.time_spent_seconds
    )


@router.get("/{quiz_id}/attempts", response_model=QuizAttemptHistory)
async def list_quiz_attempts(
    quiz_id: UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List the current user's attempts at a quiz."""
    return await QuizEngine(db).list_attempts(current_user["user_id"], quiz_id)
