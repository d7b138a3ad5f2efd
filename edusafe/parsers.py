"""CSV file parsing and column normalization for the three datasets."""

import logging
import re
from io import BytesIO
from typing import Dict, List

import pandas as pd

from edusafe.models import AssessmentRecord, AttemptsRecord, AttendanceRecord

logger = logging.getLogger(__name__)

STUDENT_ID = "StudentID"
ATTENDANCE_PCT = "AttendancePercentage"
TEST_SCORES = ["TestScore1", "TestScore2", "TestScore3"]
ATTEMPTS_USED = "AttemptsUsed"

# Canonical column -> accepted spellings after normalize_col_name()
COLUMN_VARIATIONS: Dict[str, Dict[str, List[str]]] = {
    "attendance": {
        STUDENT_ID: ["studentid", "student", "studentnumber", "studentnum", "id"],
        ATTENDANCE_PCT: [
            "attendancepercentage", "attendancepercent", "attendance",
            "attendancepct", "attended", "attendedtodate",
        ],
    },
    "assessment": {
        STUDENT_ID: ["studentid", "student", "studentnumber", "studentnum", "id"],
        "TestScore1": ["testscore1", "test1", "score1", "assessment1"],
        "TestScore2": ["testscore2", "test2", "score2", "assessment2"],
        "TestScore3": ["testscore3", "test3", "score3", "assessment3"],
    },
    "attempts": {
        STUDENT_ID: ["studentid", "student", "studentnumber", "studentnum", "id"],
        ATTEMPTS_USED: [
            "attemptsused", "attempts", "examattempts", "attemptcount", "numattempts",
        ],
    },
}


def normalize_col_name(col_name) -> str:
    """Lowercase a header and drop spaces, punctuation, '%' and '#'."""
    if pd.isna(col_name):
        return ""
    normalized = str(col_name).strip().lower()
    return re.sub(r'[\s.,%#_\-()]', '', normalized)


def normalize_and_rename_columns(df: pd.DataFrame, dataset: str) -> pd.DataFrame:
    """
    Rename header variations to the canonical column names.

    Args:
        df: DataFrame to normalize
        dataset: "attendance", "assessment" or "attempts"

    Returns:
        Copy of the DataFrame with canonical column names
    """
    if dataset not in COLUMN_VARIATIONS:
        raise ValueError(f"Unknown dataset type: {dataset}")
    target_mappings = COLUMN_VARIATIONS[dataset]

    rename = {}
    for orig_col in df.columns:
        normalized = normalize_col_name(orig_col)
        for target_name, variations in target_mappings.items():
            if normalized in variations and target_name not in rename.values():
                rename[orig_col] = target_name
                break

    df = df.rename(columns=rename)
    if df.columns.duplicated().any():
        logger.warning(
            "Duplicate columns in %s file: %s",
            dataset, df.columns[df.columns.duplicated()].tolist(),
        )
        df = df.loc[:, ~df.columns.duplicated(keep='first')].copy()
    return df


def load_csv(file_bytes: bytes) -> pd.DataFrame:
    """
    Read UTF-8 delimited text into a DataFrame of strings.

    Raises:
        ValueError: if the file is empty or cannot be decoded
    """
    if not file_bytes or not file_bytes.strip():
        raise ValueError("The uploaded file is empty")
    try:
        return pd.read_csv(
            BytesIO(file_bytes),
            dtype=str,
            encoding='utf-8-sig',
            skipinitialspace=True,
            keep_default_na=False,
            # Trailing delimiters must not turn the id column into the index
            index_col=False,
        )
    except UnicodeDecodeError as e:
        raise ValueError(f"File is not valid UTF-8 text: {e}") from e
    except pd.errors.ParserError as e:
        raise ValueError(f"Could not parse CSV file: {e}") from e
    except pd.errors.EmptyDataError as e:
        raise ValueError("The uploaded file has no header row") from e


def _require_columns(df: pd.DataFrame, dataset: str, required: List[str]) -> pd.DataFrame:
    missing = [col for col in [STUDENT_ID] + required if col not in df.columns]
    if missing:
        raise ValueError(
            f"Missing required column(s) in {dataset} file: {', '.join(missing)}. "
            f"Available columns: {list(df.columns)}"
        )

    df[STUDENT_ID] = df[STUDENT_ID].fillna("").astype(str).str.strip()
    blank = df[STUDENT_ID] == ""
    if blank.any():
        logger.warning("Dropping %d %s rows without a student id", int(blank.sum()), dataset)
        df = df[~blank]
    return df


def parse_attendance_csv(file_bytes: bytes) -> List[AttendanceRecord]:
    """Parse the attendance file (StudentID, AttendancePercentage)."""
    df = normalize_and_rename_columns(load_csv(file_bytes), "attendance")
    df = _require_columns(df, "attendance", [ATTENDANCE_PCT])
    records = [
        AttendanceRecord(student_id=row[STUDENT_ID], attendance_pct=row[ATTENDANCE_PCT])
        for row in df.to_dict(orient='records')
    ]
    logger.info("Parsed %d attendance rows", len(records))
    return records


def parse_assessment_csv(file_bytes: bytes) -> List[AssessmentRecord]:
    """
    Parse the assessment file (StudentID, TestScore1, TestScore2, TestScore3).

    At least one test column must be present; missing test columns are
    read as undefined scores.
    """
    df = normalize_and_rename_columns(load_csv(file_bytes), "assessment")
    if not any(col in df.columns for col in TEST_SCORES):
        raise ValueError(
            f"Missing required column(s) in assessment file: {', '.join(TEST_SCORES)}. "
            f"Available columns: {list(df.columns)}"
        )
    for col in TEST_SCORES:
        if col not in df.columns:
            df[col] = ""
    df = _require_columns(df, "assessment", TEST_SCORES)

    records = [
        AssessmentRecord(
            student_id=row[STUDENT_ID],
            test_score_1=row["TestScore1"],
            test_score_2=row["TestScore2"],
            test_score_3=row["TestScore3"],
        )
        for row in df.to_dict(orient='records')
    ]
    logger.info("Parsed %d assessment rows", len(records))
    return records


def parse_attempts_csv(file_bytes: bytes) -> List[AttemptsRecord]:
    """Parse the exam attempts file (StudentID, AttemptsUsed)."""
    df = normalize_and_rename_columns(load_csv(file_bytes), "attempts")
    df = _require_columns(df, "attempts", [ATTEMPTS_USED])
    records = [
        AttemptsRecord(student_id=row[STUDENT_ID], attempts_used=row[ATTEMPTS_USED])
        for row in df.to_dict(orient='records')
    ]
    logger.info("Parsed %d attempts rows", len(records))
    return records
