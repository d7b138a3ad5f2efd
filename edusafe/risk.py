"""Risk scoring logic: transparent additive rules."""

import logging
from collections import Counter
from typing import Iterable, List, Optional, Sequence

from edusafe.merge import MissingDatasetError, merge_records, require_dataset
from edusafe.models import (
    AssessmentRecord,
    AttemptsRecord,
    AttendanceRecord,
    CompositeStudentRecord,
    RiskDistribution,
    RiskFactor,
    RiskProfile,
    RiskTier,
)

logger = logging.getLogger(__name__)

ATTENDANCE_THRESHOLD = 75.0
AVERAGE_SCORE_THRESHOLD = 40.0
ATTEMPTS_THRESHOLD = 2

LOW_ATTENDANCE_POINTS = 30
LOW_AVERAGE_POINTS = 30
DECLINING_SCORES_POINTS = 20
REPEATED_ATTEMPTS_POINTS = 20

MIN_SCORE = 0
MAX_SCORE = 100

# Inclusive upper bounds
SAFE_MAX_SCORE = 30
WATCHLIST_MAX_SCORE = 60


def average_score(scores: Sequence[float]) -> Optional[float]:
    """Mean of the given scores, or None if there are none."""
    if not scores:
        return None
    return sum(scores) / len(scores)


def is_declining(scores: Sequence[float]) -> bool:
    """
    True if there are at least two scores and each one is strictly
    lower than the one before it.

    Callers pass only the defined scores, so a missing middle test is
    skipped: [80, 70] (from 80, -, 70) counts as declining.
    """
    if len(scores) < 2:
        return False
    return all(earlier > later for earlier, later in zip(scores, scores[1:]))


def low_attendance_factor(record: CompositeStudentRecord) -> Optional[RiskFactor]:
    pct = record.attendance_pct
    if pct is None or pct >= ATTENDANCE_THRESHOLD:
        return None
    return RiskFactor(
        label='Low attendance',
        points=LOW_ATTENDANCE_POINTS,
        detail=f"Attendance {pct:.1f}% is below {ATTENDANCE_THRESHOLD:.0f}%",
    )


def low_average_factor(record: CompositeStudentRecord) -> Optional[RiskFactor]:
    avg = average_score(record.defined_scores)
    if avg is None or avg >= AVERAGE_SCORE_THRESHOLD:
        return None
    return RiskFactor(
        label='Low average score',
        points=LOW_AVERAGE_POINTS,
        detail=f"Average test score {avg:.1f} is below {AVERAGE_SCORE_THRESHOLD:.0f}",
    )


def declining_scores_factor(record: CompositeStudentRecord) -> Optional[RiskFactor]:
    scores = record.defined_scores
    if not is_declining(scores):
        return None
    trend = " -> ".join(f"{s:g}" for s in scores)
    return RiskFactor(
        label='Declining test scores',
        points=DECLINING_SCORES_POINTS,
        detail=f"Scores fell across tests ({trend})",
    )


def repeated_attempts_factor(record: CompositeStudentRecord) -> Optional[RiskFactor]:
    attempts = record.attempts_used
    if attempts is None or attempts < ATTEMPTS_THRESHOLD:
        return None
    return RiskFactor(
        label='Repeated exam attempts',
        points=REPEATED_ATTEMPTS_POINTS,
        detail=f"{attempts} exam attempts used",
    )


# Evaluation order is the order factors are reported in
RULES = (
    low_attendance_factor,
    low_average_factor,
    declining_scores_factor,
    repeated_attempts_factor,
)


def clamp_score(points: int) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, points))


def get_risk_tier(risk_score: int) -> RiskTier:
    """
    Categorize risk score into Safe/Watchlist/At Risk.

    Args:
        risk_score: Risk score (0-100)

    Returns:
        Safe for 0-30, Watchlist for 31-60, At Risk for 61-100
    """
    if risk_score <= SAFE_MAX_SCORE:
        return RiskTier.SAFE
    elif risk_score <= WATCHLIST_MAX_SCORE:
        return RiskTier.WATCHLIST
    else:
        return RiskTier.AT_RISK


def evaluate_student(record: CompositeStudentRecord) -> RiskProfile:
    """
    Score one composite record.

    Rules whose inputs are missing do not fire, so a record with no
    data at all is Safe with a score of 0.
    """
    if record is None:
        raise MissingDatasetError("A composite student record is required")

    factors: List[RiskFactor] = []
    for rule in RULES:
        factor = rule(record)
        if factor is not None:
            factors.append(factor)

    score = clamp_score(sum(f.points for f in factors))
    return RiskProfile(
        student_id=record.student_id,
        score=score,
        tier=get_risk_tier(score),
        triggered_factors=tuple(factors),
        source_record=record,
    )


def analyze_all_students(
    attendance: Sequence[AttendanceRecord],
    assessment: Sequence[AssessmentRecord],
    attempts: Sequence[AttemptsRecord],
) -> List[RiskProfile]:
    """Merge the three datasets and score every student, in merge order."""
    composites = merge_records(attendance, assessment, attempts)
    profiles = [evaluate_student(record) for record in composites]
    logger.info("Scored %d students", len(profiles))
    return profiles


def sort_profiles(profiles: Iterable[RiskProfile]) -> List[RiskProfile]:
    """Highest risk first; ties broken by student id."""
    return sorted(profiles, key=lambda p: (-p.score, p.student_id))


def get_risk_distribution(profiles: Sequence[RiskProfile]) -> RiskDistribution:
    """Count profiles per tier."""
    require_dataset('profiles', profiles)
    counts = Counter(p.tier for p in profiles)
    return RiskDistribution(
        safe=counts[RiskTier.SAFE],
        watchlist=counts[RiskTier.WATCHLIST],
        at_risk=counts[RiskTier.AT_RISK],
    )
