"""Data models for the EduSafe risk engine."""

import math
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator


def to_optional_float(value: Any) -> Optional[float]:
    """
    Coerce a raw cell value to a float.
    Handles numbers, numeric strings and percentages like "85%".

    Returns:
        The float value, or None when blank, non-numeric, NaN or infinite
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, str):
            value = value.strip().replace('%', '').strip()
            if not value:
                return None
        val = float(value)
    except (ValueError, TypeError):
        return None
    if math.isnan(val) or math.isinf(val):
        return None
    return val


def to_optional_percentage(value: Any) -> Optional[float]:
    """Coerce a raw cell value to a 0-100 percentage or score, or None."""
    val = to_optional_float(value)
    if val is None or val < 0.0 or val > 100.0:
        return None
    return val


def to_optional_count(value: Any) -> Optional[int]:
    """Coerce a raw cell value to a non-negative whole number, or None."""
    val = to_optional_float(value)
    if val is None or val < 0 or not val.is_integer():
        return None
    return int(val)


class AttendanceRecord(BaseModel):
    """One row of the attendance dataset."""
    student_id: str
    attendance_pct: Optional[float] = None

    @field_validator('attendance_pct', mode='before')
    @classmethod
    def _coerce_pct(cls, value):
        return to_optional_percentage(value)


class AssessmentRecord(BaseModel):
    """One row of the assessment dataset (three tests, chronological)."""
    student_id: str
    test_score_1: Optional[float] = None
    test_score_2: Optional[float] = None
    test_score_3: Optional[float] = None

    @field_validator('test_score_1', 'test_score_2', 'test_score_3', mode='before')
    @classmethod
    def _coerce_score(cls, value):
        return to_optional_percentage(value)

    @property
    def scores(self) -> Tuple[Optional[float], Optional[float], Optional[float]]:
        return (self.test_score_1, self.test_score_2, self.test_score_3)


class AttemptsRecord(BaseModel):
    """One row of the exam attempts dataset."""
    student_id: str
    attempts_used: Optional[int] = None

    @field_validator('attempts_used', mode='before')
    @classmethod
    def _coerce_attempts(cls, value):
        return to_optional_count(value)


class CompositeStudentRecord(BaseModel):
    """
    Per-student record built by outer-joining the three datasets.

    Fields from a dataset that never mentioned the student stay None,
    and the has_* flags record which datasets did.
    """
    model_config = ConfigDict(frozen=True)

    student_id: str
    attendance_pct: Optional[float] = None
    scores: Tuple[Optional[float], Optional[float], Optional[float]] = (None, None, None)
    attempts_used: Optional[int] = None
    has_attendance: bool = False
    has_assessment: bool = False
    has_attempts: bool = False

    @property
    def defined_scores(self) -> List[float]:
        """Scores that are present, in chronological order."""
        return [s for s in self.scores if s is not None]


class RiskTier(str, Enum):
    SAFE = 'Safe'
    WATCHLIST = 'Watchlist'
    AT_RISK = 'At Risk'


class RiskFactor(BaseModel):
    """A scoring rule that fired for a student."""
    model_config = ConfigDict(frozen=True)

    label: str
    points: int
    detail: Optional[str] = None


class RiskProfile(BaseModel):
    """Scored, explained result for one student."""
    model_config = ConfigDict(frozen=True)

    student_id: str
    score: int
    tier: RiskTier
    triggered_factors: Tuple[RiskFactor, ...]
    source_record: CompositeStudentRecord


class RiskDistribution(BaseModel):
    """Tier counts over a set of risk profiles."""
    safe: int = 0
    watchlist: int = 0
    at_risk: int = 0

    @property
    def total(self) -> int:
        return self.safe + self.watchlist + self.at_risk

    def percentages(self) -> Dict[str, float]:
        """Share of each tier in percent, rounded to one decimal."""
        total = self.total
        if total == 0:
            return {'safe': 0.0, 'watchlist': 0.0, 'at_risk': 0.0}
        return {
            'safe': round(self.safe * 100.0 / total, 1),
            'watchlist': round(self.watchlist * 100.0 / total, 1),
            'at_risk': round(self.at_risk * 100.0 / total, 1),
        }


class AnalysisResponse(BaseModel):
    """Response from the upload endpoint."""
    success: bool
    message: str
    results: List[RiskProfile]
    summary: RiskDistribution
    percentages: Dict[str, float]
    alert: Optional[str] = None


class EmailDraftRequest(BaseModel):
    """Request for email draft generation."""
    student_id: str


class EmailDraftResponse(BaseModel):
    """Email draft response."""
    subject: str
    body: str
