"""Achievement rule predicates.

Every ``AchievementRule`` member maps to exactly one pure predicate over a
user's progress facts. Adding a rule means adding an enum member and a
decorated predicate; existing predicates stay untouched.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping

from app.models.gamification import AchievementRule


@dataclass(frozen=True)
class ProgressFacts:
    """Snapshot of a user's completed courses."""
    user_id: str
    completed_by_track: Mapping[str, int] = field(default_factory=dict)
    track_totals: Mapping[str, int] = field(default_factory=dict)
    # Completions of courses the catalog currently lists as published
    published_completed_by_track: Mapping[str, int] = field(default_factory=dict)

    @property
    def completed_courses(self) -> int:
        return sum(self.completed_by_track.values())

    def track_mastered(self, track_id: str) -> bool:
        total = self.track_totals.get(track_id, 0)
        return total > 0 and self.published_completed_by_track.get(track_id, 0) == total


RulePredicate = Callable[[ProgressFacts, Mapping[str, Any]], bool]

_RULES: Dict[AchievementRule, RulePredicate] = {}


class UnknownRuleError(KeyError):
    pass


def rule(kind: AchievementRule):
    """Register ``fn`` as the predicate for ``kind``."""
    def decorator(fn: RulePredicate) -> RulePredicate:
        if kind in _RULES:
            raise ValueError(f"Rule {kind.value} already registered")
        _RULES[kind] = fn
        return fn
    return decorator


def get_rule(name) -> RulePredicate:
    try:
        return _RULES[AchievementRule(name)]
    except (ValueError, KeyError):
        raise UnknownRuleError(name)


def needs_track_totals(name) -> bool:
    return name == AchievementRule.TRACK_MASTERY.value


def evaluate_rule(name, facts: ProgressFacts, criteria: Mapping[str, Any] = None) -> bool:
    return get_rule(name)(facts, criteria or {})


@rule(AchievementRule.FIRST_COMPLETION)
def first_completion(facts: ProgressFacts, criteria: Mapping[str, Any]) -> bool:
    return facts.completed_courses >= 1


@rule(AchievementRule.TRACK_MASTERY)
def track_mastery(facts: ProgressFacts, criteria: Mapping[str, Any]) -> bool:
    # All-of: every published course in the track, not a percentage
    track_id = criteria.get("track_id")
    if track_id is not None:
        return facts.track_mastered(str(track_id))
    return any(facts.track_mastered(track) for track in facts.completed_by_track)


@rule(AchievementRule.COURSE_COUNT)
def course_count(facts: ProgressFacts, criteria: Mapping[str, Any]) -> bool:
    return facts.completed_courses >= int(criteria.get("count", 1))
