"""Quiz delivery, scoring and attempt enforcement."""

from typing import List, Mapping, Optional
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, func
import structlog

from app.core.config import settings
from app.core.database import upsert_insert
from app.core.exceptions import (
    AttemptLimitExceededError, ConflictError, NotFoundError,
    QuizTimeExpiredError, ValidationError
)
from app.models.quiz import Quiz, QuizAttempt, QuizSession
from app.quizzes.scoring import ScoreSummary, score_answers
from app.schemas.quiz import (
    QuestionForTaking, QuestionResultResponse, QuizAttemptHistory, QuizAttemptResult,
    QuizAttemptSummary, QuizForTaking, QuizStartResponse, QuizSummary
)

logger = structlog.get_logger()


def _summary_fields(quiz: Quiz) -> dict:
    return {
        "id": quiz.id,
        "course_id": quiz.course_id,
        "title": quiz.title,
        "description": quiz.description,
        "time_limit_minutes": quiz.time_limit_minutes,
        "passing_score_percent": quiz.passing_score_percent,
        "max_attempts": quiz.max_attempts,
        "question_count": len(quiz.questions),
        "total_points": sum(q.point_value or 0 for q in quiz.questions),
    }


def strip_answers(quiz: Quiz) -> QuizForTaking:
    """Quiz as delivered to a learner, without any correct answers."""
    return QuizForTaking(
        **_summary_fields(quiz),
        questions=[QuestionForTaking.model_validate(q) for q in quiz.questions]
    )


def time_limit_deadline(time_limit_minutes: Optional[int], started_at: datetime) -> Optional[datetime]:
    if not time_limit_minutes:
        return None
    return started_at + timedelta(minutes=time_limit_minutes)


def deadline_passed(time_limit_minutes: Optional[int], started_at: datetime, now: datetime) -> bool:
    """True once ``now`` is past the time limit plus the submission grace."""
    deadline = time_limit_deadline(time_limit_minutes, started_at)
    if deadline is None:
        return False
    return now > deadline + timedelta(seconds=settings.QUIZ_SUBMISSION_GRACE_SECONDS)


class QuizEngine:
    """Engine for delivering quizzes and scoring submissions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_quizzes(self, course_id: str) -> List[QuizSummary]:
        result = await self.db.execute(
            select(Quiz)
            .where(and_(Quiz.course_id == course_id, Quiz.is_published.is_(True)))
            .order_by(Quiz.created_at, Quiz.title)
        )
        return [QuizSummary(**_summary_fields(quiz)) for quiz in result.scalars().all()]

    async def get_quiz(self, quiz_id: UUID) -> Quiz:
        result = await self.db.execute(
            select(Quiz).where(and_(Quiz.id == quiz_id, Quiz.is_published.is_(True)))
        )
        quiz = result.scalar_one_or_none()
        if quiz is None:
            raise NotFoundError(f"Quiz {quiz_id} not found")
        return quiz

    async def get_quiz_for_taking(self, quiz_id: UUID) -> QuizForTaking:
        return strip_answers(await self.get_quiz(quiz_id))

    async def start_quiz(self, user_id: str, quiz_id: UUID) -> QuizStartResponse:
        """Record the server-side start time and deliver the quiz.

        Starting again while a session is still open resumes it: the clock
        only restarts once the previous session has been submitted. An open
        session whose time limit has run out is closed as a failed, empty
        attempt before a new one begins.
        """
        quiz = await self.get_quiz(quiz_id)
        taking = strip_answers(quiz)
        quiz_key = quiz.id
        max_attempts = quiz.max_attempts
        self._check_attempt_limit(await self.count_attempts(user_id, quiz_key), max_attempts)

        now = datetime.utcnow()
        session = await self._open_session(user_id, quiz_key)
        if session is not None and deadline_passed(taking.time_limit_minutes, session.started_at, now):
            summary = score_answers(quiz.questions, {}, quiz.passing_score_percent)
            attempt = await self._store_attempt(
                user_id, quiz_key, max_attempts, {}, summary,
                taking.time_limit_minutes * 60, session, now
            )
            logger.info(
                "Expired quiz session forfeited",
                user_id=user_id,
                quiz_id=str(quiz_key),
                attempt_number=attempt.attempt_number
            )
            self._check_attempt_limit(attempt.attempt_number, max_attempts)

        table = QuizSession.__table__
        insert = upsert_insert(self.db, table)
        stmt = insert.values(user_id=user_id, quiz_id=quiz_key, started_at=now, submitted_at=None)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "quiz_id"],
            set_={"started_at": stmt.excluded.started_at, "submitted_at": None},
            where=table.c.submitted_at.isnot(None)
        )
        await self.db.execute(stmt)
        await self.db.commit()

        session = await self._open_session(user_id, quiz_key)
        started_at = session.started_at

        logger.info("Quiz started", user_id=user_id, quiz_id=str(quiz_key), started_at=started_at.isoformat())
        return QuizStartResponse(
            started_at=started_at,
            expires_at=time_limit_deadline(taking.time_limit_minutes, started_at),
            quiz=taking
        )

    async def submit_attempt(
        self,
        user_id: str,
        quiz_id: UUID,
        answers: Mapping[str, str],
        time_spent_seconds: int = 0
    ) -> QuizAttemptResult:
        """Score and persist one attempt.

        The attempt number is allocated under a unique
        ``(user_id, quiz_id, attempt_number)`` constraint, so concurrent
        submissions can never exceed ``max_attempts``.
        """
        quiz = await self.get_quiz(quiz_id)
        self._check_attempt_limit(await self.count_attempts(user_id, quiz.id), quiz.max_attempts)
        answers = self._validate_answers(quiz, answers, time_spent_seconds)

        # Plain values survive the rollbacks of the retry loop
        quiz_key = quiz.id
        quiz_title = quiz.title
        max_attempts = quiz.max_attempts
        passing_score = quiz.passing_score_percent
        total_questions = len(quiz.questions)

        now = datetime.utcnow()
        session = await self._open_session(user_id, quiz_key)
        if session is not None:
            time_spent_seconds = self._check_deadline(quiz, session, now)

        summary = score_answers(quiz.questions, answers, passing_score)
        attempt = await self._store_attempt(
            user_id, quiz_key, max_attempts, answers, summary, time_spent_seconds, session, now
        )

        logger.info(
            "Quiz attempt submitted",
            user_id=user_id,
            quiz_id=str(quiz_key),
            attempt_number=attempt.attempt_number,
            score_percent=summary.score_percent,
            passed=summary.passed
        )
        return self._attempt_result(
            attempt, summary, quiz_title, max_attempts, passing_score, total_questions
        )

    async def _store_attempt(
        self,
        user_id: str,
        quiz_key: UUID,
        max_attempts: int,
        answers: Mapping[str, str],
        summary: ScoreSummary,
        time_spent_seconds: int,
        session: Optional[QuizSession],
        now: datetime
    ) -> QuizAttempt:
        """Insert the next attempt number and close ``session``, retrying on conflict."""
        for _ in range(settings.QUIZ_ATTEMPT_MAX_RETRIES):
            prior = await self.count_attempts(user_id, quiz_key)
            if prior >= max_attempts:
                await self.db.rollback()
                logger.info("Attempt limit reached", user_id=user_id, quiz_id=str(quiz_key))
                self._check_attempt_limit(prior, max_attempts)

            attempt = QuizAttempt(
                user_id=user_id,
                quiz_id=quiz_key,
                answers=dict(answers),
                score_percent=summary.score_percent,
                earned_points=summary.earned_points,
                total_points=summary.total_points,
                passed=summary.passed,
                attempt_number=prior + 1,
                time_spent_seconds=time_spent_seconds,
                submitted_at=now
            )
            self.db.add(attempt)
            if session is not None:
                session.submitted_at = now

            try:
                await self.db.commit()
                return attempt
            except IntegrityError:
                # Another submission took this attempt number
                await self.db.rollback()
                logger.warning(
                    "Attempt number conflict, retrying",
                    user_id=user_id,
                    quiz_id=str(quiz_key),
                    attempt_number=prior + 1
                )
        raise ConflictError("Could not record attempt, please retry")

    async def list_attempts(self, user_id: str, quiz_id: UUID) -> QuizAttemptHistory:
        quiz = await self.get_quiz(quiz_id)
        result = await self.db.execute(
            select(QuizAttempt)
            .where(and_(QuizAttempt.user_id == user_id, QuizAttempt.quiz_id == quiz.id))
            .order_by(QuizAttempt.attempt_number)
        )
        attempts = list(result.scalars().all())
        return QuizAttemptHistory(
            quiz_id=quiz.id,
            max_attempts=quiz.max_attempts,
            remaining_attempts=max(quiz.max_attempts - len(attempts), 0),
            best_score_percent=max((a.score_percent for a in attempts), default=None),
            passed=any(a.passed for a in attempts),
            attempts=[QuizAttemptSummary.model_validate(a) for a in attempts]
        )

    async def count_attempts(self, user_id: str, quiz_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(QuizAttempt.id)).where(
                and_(QuizAttempt.user_id == user_id, QuizAttempt.quiz_id == quiz_id)
            )
        )
        return result.scalar_one()

    @staticmethod
    def _check_attempt_limit(used: int, max_attempts: int) -> None:
        if used >= max_attempts:
            raise AttemptLimitExceededError(details=[{
                "field": "attempts",
                "message": f"All {max_attempts} attempts have been used"
            }])

    def _validate_answers(self, quiz: Quiz, answers: Mapping[str, str], time_spent_seconds: int) -> dict:
        if time_spent_seconds is None or time_spent_seconds < 0:
            raise ValidationError.for_field("time_spent_seconds", "Must be zero or greater")
        if not isinstance(answers, Mapping):
            raise ValidationError.for_field("answers", "Must map question ids to answers")

        question_ids = {str(q.id) for q in quiz.questions}
        details = []
        for key, value in answers.items():
            if str(key) not in question_ids:
                details.append({"field": f"answers.{key}", "message": "Unknown question"})
            elif not isinstance(value, str):
                details.append({"field": f"answers.{key}", "message": "Answer must be a string"})
        if details:
            raise ValidationError(details=details)

        return {str(key): value for key, value in answers.items()}

    async def _open_session(self, user_id: str, quiz_id: UUID) -> Optional[QuizSession]:
        result = await self.db.execute(
            select(QuizSession).where(
                and_(
                    QuizSession.user_id == user_id,
                    QuizSession.quiz_id == quiz_id,
                    QuizSession.submitted_at.is_(None)
                )
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def _check_deadline(self, quiz: Quiz, session: QuizSession, now: datetime) -> int:
        """Server-measured seconds since start; rejects late submissions."""
        elapsed = max(int((now - session.started_at).total_seconds()), 0)
        if deadline_passed(quiz.time_limit_minutes, session.started_at, now):
            logger.info(
                "Late quiz submission rejected",
                user_id=session.user_id,
                quiz_id=str(quiz.id),
                elapsed_seconds=elapsed
            )
            raise QuizTimeExpiredError(details=[{
                "field": "time_spent_seconds",
                "message": f"Time limit of {quiz.time_limit_minutes} minutes exceeded"
            }])
        return elapsed

    @staticmethod
    def _attempt_result(
        attempt: QuizAttempt,
        summary: ScoreSummary,
        quiz_title: str,
        max_attempts: int,
        passing_score: int,
        total_questions: int
    ) -> QuizAttemptResult:
        return QuizAttemptResult(
            id=attempt.id,
            quiz_id=attempt.quiz_id,
            attempt_number=attempt.attempt_number,
            score_percent=attempt.score_percent,
            earned_points=attempt.earned_points,
            total_points=attempt.total_points,
            passed=attempt.passed,
            time_spent_seconds=attempt.time_spent_seconds,
            submitted_at=attempt.submitted_at,
            quiz_title=quiz_title,
            answers=attempt.answers,
            max_attempts=max_attempts,
            remaining_attempts=max(max_attempts - attempt.attempt_number, 0),
            passing_score_percent=passing_score,
            total_questions=total_questions,
            correct_answers=summary.correct_answers,
            results=[QuestionResultResponse(**vars(r)) for r in summary.results]
        )
