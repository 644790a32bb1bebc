"""
Performance score for one advisor report.

Turns an AdvisorReport plus the run's wall-clock time into a single 0-100
number that can be compared across runs and stored in a baseline:

1. Start at 100
2. Subtract per-suggestion penalties, summed per type and capped per type
3. Subtract a penalty for a high share of time spent in the database
4. Subtract a penalty for low query uniqueness (many repeated shapes)
5. Add bonuses for clean runs
6. Clamp to [0, 100]

Usage:
    from querybench.advisor.scoring import PerformanceScore

    score = PerformanceScore(report, execution_time_seconds=1.2)
    print(score.score, score.grade.letter, score.grade.label)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from querybench.advisor.models import Severity

if TYPE_CHECKING:
    from querybench.advisor.models import AdvisorReport

BASE_SCORE = 100
MAX_PENALTY_PER_TYPE = 30
DEFAULT_PENALTY = 5

PENALTIES: dict[str, dict[Severity, int]] = {
    "n_plus_one": {Severity.CRITICAL: 15, Severity.WARNING: 8, Severity.INFO: 2},
    "slow_query": {Severity.CRITICAL: 20, Severity.WARNING: 10, Severity.INFO: 3},
    "hotspot": {Severity.CRITICAL: 10, Severity.WARNING: 5, Severity.INFO: 1},
    "duplicate_query": {Severity.CRITICAL: 5, Severity.WARNING: 3, Severity.INFO: 1},
}

PENALTY_REASONS = {
    "n_plus_one": "N+1 query issues",
    "slow_query": "Slow queries",
    "hotspot": "Database hotspots",
    "duplicate_query": "Duplicate queries",
}

# (exclusive lower bound on DB time %, penalty), checked in order
DB_TIME_PENALTIES = ((85, 15), (70, 10), (50, 5))

# (exclusive upper bound on unique %, penalty), checked in order
UNIQUENESS_PENALTIES = ((5, 15), (20, 10), (50, 5))

NO_CRITICAL_BONUS = 5
NO_ISSUES_BONUS = 10
LOW_QUERY_COUNT_BONUS = 5
LOW_QUERY_COUNT = 50


@dataclass(frozen=True)
class Grade:
    """Letter grade for a score band."""

    min_score: int
    letter: str
    label: str
    color: str

    def to_dict(self) -> dict[str, Any]:
        return {"grade": self.letter, "label": self.label, "color": self.color}


GRADES: tuple[Grade, ...] = (
    Grade(90, "A", "Excellent", "green"),
    Grade(80, "B", "Good", "green"),
    Grade(70, "C", "Acceptable", "yellow"),
    Grade(60, "D", "Needs Work", "yellow"),
    Grade(50, "E", "Poor", "red"),
    Grade(0, "F", "Critical", "red"),
)


@dataclass(frozen=True)
class ScoreAdjustment:
    """One line of the score breakdown: a penalty (negative) or bonus (positive)."""

    reason: str
    points: int

    def to_dict(self) -> dict[str, Any]:
        return {"reason": self.reason, "points": self.points}


def grade_for(score: int) -> Grade:
    """First grade whose minimum the score reaches."""
    for grade in GRADES:
        if score >= grade.min_score:
            return grade
    return GRADES[-1]


def _db_time_penalty(db_percent: float) -> int:
    for bound, penalty in DB_TIME_PENALTIES:
        if db_percent > bound:
            return penalty
    return 0


def _uniqueness_penalty(unique_percent: float) -> int:
    for bound, penalty in UNIQUENESS_PENALTIES:
        if unique_percent < bound:
            return penalty
    return 0


class PerformanceScore:
    """
    0-100 score for an advisor report.

    All values are computed once at construction; the object is read-only.
    """

    def __init__(
        self,
        report: "AdvisorReport",
        execution_time_seconds: float | None,
        n_plus_one_savings_ratio: float = 0.8,
    ) -> None:
        """
        Args:
            report: Advisor report for the run
            execution_time_seconds: Wall-clock time of the measured run, or
                None when unknown (the DB time share is then not scored)
            n_plus_one_savings_ratio: Share of N+1 time assumed recoverable
                when a suggestion carries no explicit savings estimate
        """
        self.report = report
        self.execution_time_seconds = execution_time_seconds
        self.n_plus_one_savings_ratio = n_plus_one_savings_ratio

        self._breakdown: list[ScoreAdjustment] = []
        self._bonuses: list[ScoreAdjustment] = []
        self._score = self._calculate()

    def _calculate(self) -> int:
        score = BASE_SCORE

        penalties_by_type: dict[str, int] = {}
        for suggestion in self.report.suggestions:
            penalty = PENALTIES.get(suggestion.type, {}).get(suggestion.severity, DEFAULT_PENALTY)
            penalties_by_type[suggestion.type] = penalties_by_type.get(suggestion.type, 0) + penalty

        for suggestion_type, total in penalties_by_type.items():
            capped = min(MAX_PENALTY_PER_TYPE, total)
            score -= capped
            self._breakdown.append(ScoreAdjustment(_penalty_reason(suggestion_type), -capped))

        db_percent = self.db_time_percent
        if db_percent is not None:
            penalty = _db_time_penalty(db_percent)
            if penalty:
                score -= penalty
                self._breakdown.append(
                    ScoreAdjustment(f"High DB time ({db_percent:.1f}%)", -penalty)
                )

        unique_percent = self.unique_percent
        if unique_percent is not None:
            penalty = _uniqueness_penalty(unique_percent)
            if penalty:
                score -= penalty
                self._breakdown.append(
                    ScoreAdjustment(f"Low query uniqueness ({unique_percent:.1f}%)", -penalty)
                )

        if self.report.critical_count == 0:
            score += NO_CRITICAL_BONUS
            self._bonuses.append(ScoreAdjustment("No critical issues", NO_CRITICAL_BONUS))
        if not self.report.has_suggestions:
            score += NO_ISSUES_BONUS
            self._bonuses.append(ScoreAdjustment("No issues detected", NO_ISSUES_BONUS))
        if self.report.total_queries < LOW_QUERY_COUNT:
            score += LOW_QUERY_COUNT_BONUS
            self._bonuses.append(ScoreAdjustment("Low query count", LOW_QUERY_COUNT_BONUS))

        return max(0, min(BASE_SCORE, score))

    @property
    def db_time_percent(self) -> float | None:
        """DB time as a share of execution time; None when execution time is unknown."""
        if self.execution_time_seconds is None:
            return None
        return self.report.db_time_percentage(self.execution_time_seconds * 1000)

    @property
    def unique_percent(self) -> float | None:
        """Unique normalized queries as a share of all queries; None without queries."""
        if self.report.total_queries == 0:
            return None
        return self.report.unique_queries / self.report.total_queries * 100

    @property
    def score(self) -> int:
        return self._score

    @property
    def breakdown(self) -> tuple[ScoreAdjustment, ...]:
        """Penalties applied, in order."""
        return tuple(self._breakdown)

    @property
    def bonuses(self) -> tuple[ScoreAdjustment, ...]:
        return tuple(self._bonuses)

    @property
    def grade(self) -> Grade:
        return grade_for(self._score)

    @property
    def potential_score(self) -> int:
        """
        Score the run would reach with every suggestion fixed.

        Structural penalties (DB time share, uniqueness) still apply; the
        clean-run bonuses are assumed.
        """
        potential = BASE_SCORE
        if self.db_time_percent is not None:
            potential -= _db_time_penalty(self.db_time_percent)
        if self.unique_percent is not None:
            potential -= _uniqueness_penalty(self.unique_percent)
        potential += NO_CRITICAL_BONUS + NO_ISSUES_BONUS
        return max(0, min(BASE_SCORE, potential))

    @property
    def estimated_time_savings(self) -> float:
        """Estimated DB time recoverable by fixing every suggestion, in ms."""
        savings = 0.0
        for suggestion in self.report.suggestions:
            metadata = suggestion.metadata
            if "potential_savings_ms" in metadata:
                savings += float(metadata["potential_savings_ms"])
            elif suggestion.type == "n_plus_one" and "total_time_ms" in metadata:
                savings += float(metadata["total_time_ms"]) * self.n_plus_one_savings_ratio
            elif suggestion.type == "duplicate_query" and "total_time_ms" in metadata:
                count = int(metadata.get("count", 2)) or 2
                savings += float(metadata["total_time_ms"]) / count * (count - 1)
        return savings

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "score": self.score,
            "grade": self.grade.to_dict(),
            "breakdown": [item.to_dict() for item in self._breakdown],
            "bonuses": [item.to_dict() for item in self._bonuses],
            "potential_score": self.potential_score,
            "estimated_time_savings_ms": round(self.estimated_time_savings, 2),
        }


def _penalty_reason(suggestion_type: str) -> str:
    if suggestion_type in PENALTY_REASONS:
        return PENALTY_REASONS[suggestion_type]
    return suggestion_type.replace("_", " ").capitalize()
