"""Pure quiz scoring."""

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence

from app.core.rounding import percent_of
from app.models.quiz import QuestionType


@dataclass(frozen=True)
class QuestionResult:
    question_id: str
    question_text: str
    user_answer: Optional[str]
    correct_answer: str
    is_correct: bool
    points: int
    earned_points: int


@dataclass(frozen=True)
class ScoreSummary:
    earned_points: int
    total_points: int
    score_percent: int
    passed: bool
    results: List[QuestionResult] = field(default_factory=list)

    @property
    def correct_answers(self) -> int:
        return sum(1 for r in self.results if r.is_correct)


def expected_answer(question: Any) -> str:
    """Answer a submission must equal, exactly, to be correct."""
    if question.question_type == QuestionType.TRUE_FALSE.value:
        return "true" if str(question.correct_answer).strip().lower() == "true" else "false"
    return question.correct_answer


def score_answers(
    questions: Sequence[Any],
    answers: Mapping[str, str],
    passing_score_percent: int
) -> ScoreSummary:
    """Score ``answers`` (question id -> answer) against ``questions``.

    Comparison is exact and case-sensitive. Unanswered questions compare as
    the empty string and are simply wrong.
    """
    results = []
    earned = 0
    total = 0

    for question in questions:
        question_id = str(question.id)
        user_answer = answers.get(question_id)
        correct = expected_answer(question)
        is_correct = (user_answer if user_answer is not None else "") == correct
        points = question.point_value or 0

        total += points
        if is_correct:
            earned += points

        results.append(QuestionResult(
            question_id=question_id,
            question_text=question.text,
            user_answer=user_answer,
            correct_answer=correct,
            is_correct=is_correct,
            points=points,
            earned_points=points if is_correct else 0
        ))

    score = percent_of(earned, total)
    return ScoreSummary(
        earned_points=earned,
        total_points=total,
        score_percent=score,
        passed=score >= passing_score_percent,
        results=results
    )
