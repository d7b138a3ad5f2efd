"""EduSafe: transparent, rule-based student dropout-risk scoring."""

from edusafe.merge import MissingDatasetError, merge_records
from edusafe.risk import analyze_all_students, evaluate_student, get_risk_distribution

__all__ = [
    "MissingDatasetError",
    "analyze_all_students",
    "evaluate_student",
    "get_risk_distribution",
    "merge_records",
]
