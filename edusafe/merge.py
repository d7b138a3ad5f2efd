"""Outer join of the attendance, assessment and attempts datasets."""

import logging
from typing import Any, Dict, List, Optional, Sequence

from edusafe.models import (
    AssessmentRecord,
    AttemptsRecord,
    AttendanceRecord,
    CompositeStudentRecord,
)

logger = logging.getLogger(__name__)


class MissingDatasetError(ValueError):
    """Raised when the engine is called without one of its input datasets."""


def require_dataset(name: str, rows: Optional[Sequence[Any]]) -> Sequence[Any]:
    if rows is None:
        raise MissingDatasetError(f"The {name} dataset is required")
    return rows


def clean_student_id(student_id: Optional[str]) -> str:
    """Standardize a student id so merge keys match."""
    if student_id is None:
        return ""
    return str(student_id).strip()


def _builder(
    builders: Dict[str, Dict[str, Any]],
    student_id: str,
) -> Dict[str, Any]:
    if student_id not in builders:
        builders[student_id] = {'student_id': student_id}
    return builders[student_id]


def merge_records(
    attendance: Sequence[AttendanceRecord],
    assessment: Sequence[AssessmentRecord],
    attempts: Sequence[AttemptsRecord],
) -> List[CompositeStudentRecord]:
    """
    Merge the three datasets using an OUTER JOIN on student id.

    Every student seen in any dataset gets exactly one composite record,
    ordered by first sighting (attendance, then assessment, then attempts).
    A later row for the same student within one dataset replaces the
    earlier one. Rows with a blank student id are skipped.

    Raises:
        MissingDatasetError: if any dataset is None
    """
    require_dataset('attendance', attendance)
    require_dataset('assessment', assessment)
    require_dataset('attempts', attempts)

    builders: Dict[str, Dict[str, Any]] = {}
    skipped = 0

    for record in attendance:
        student_id = clean_student_id(record.student_id)
        if not student_id:
            skipped += 1
            continue
        builder = _builder(builders, student_id)
        builder['attendance_pct'] = record.attendance_pct
        builder['has_attendance'] = True

    for record in assessment:
        student_id = clean_student_id(record.student_id)
        if not student_id:
            skipped += 1
            continue
        builder = _builder(builders, student_id)
        builder['scores'] = record.scores
        builder['has_assessment'] = True

    for record in attempts:
        student_id = clean_student_id(record.student_id)
        if not student_id:
            skipped += 1
            continue
        builder = _builder(builders, student_id)
        builder['attempts_used'] = record.attempts_used
        builder['has_attempts'] = True

    if skipped:
        logger.warning("Skipped %d rows with an empty student id", skipped)

    merged = [CompositeStudentRecord(**fields) for fields in builders.values()]
    logger.debug(
        "Merged %d attendance, %d assessment, %d attempts rows into %d students",
        len(attendance), len(assessment), len(attempts), len(merged),
    )
    return merged
