"""Data models for Learning Progress Service."""

from app.models.progress import CourseProgress
from app.models.gamification import AchievementRule, Achievement, UserAchievement
from app.models.quiz import QuestionType, Quiz, QuizQuestion, QuizAttempt, QuizSession

__all__ = [
    "CourseProgress",
    "AchievementRule",
    "Achievement",
    "UserAchievement",
    "QuestionType",
    "Quiz",
    "QuizQuestion",
    "QuizAttempt",
    "QuizSession"
]
