"""FastAPI main application for EduSafe."""

import csv
import logging
import os
import traceback
from datetime import datetime
from io import StringIO
from typing import Dict, List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from edusafe.email_templates import generate_email_draft
from edusafe.models import (
    AnalysisResponse,
    EmailDraftRequest,
    EmailDraftResponse,
    RiskDistribution,
    RiskProfile,
)
from edusafe.parsers import parse_assessment_csv, parse_attempts_csv, parse_attendance_csv
from edusafe.risk import analyze_all_students, get_risk_distribution, sort_profiles

# Load environment variables
load_dotenv()


def resolve_log_level(name: Optional[str]) -> int:
    """Map a LOG_LEVEL name like 'debug' to its level, falling back to INFO."""
    level = logging.getLevelName((name or 'INFO').strip().upper())
    if isinstance(level, int):
        return level
    return logging.INFO


LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
logging.basicConfig(
    level=resolve_log_level(LOG_LEVEL),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)
if not isinstance(logging.getLevelName(LOG_LEVEL.strip().upper()), int):
    logger.warning("Unknown LOG_LEVEL %r, using INFO", LOG_LEVEL)

app = FastAPI(title="EduSafe", version="1.0.0")

# CORS configuration
allow_origins = os.getenv('ALLOW_ORIGINS', '*').split(',')
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler_json(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions and return JSON."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail}
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler_json(request: Request, exc: RequestValidationError):
    """Handle validation errors and return JSON."""
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(exc.errors())}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions and return JSON."""
    logger.exception("Unhandled error on %s", request.url.path)
    error_detail = str(exc)
    if os.getenv('DEBUG', 'False').lower() == 'true':
        error_detail = f"{str(exc)}\n\n{traceback.format_exc()}"

    return JSONResponse(
        status_code=500,
        content={
            "detail": f"Internal server error: {error_detail}",
            "type": type(exc).__name__
        }
    )


# Configuration
MAX_UPLOAD_SIZE_MB = int(os.getenv('MAX_UPLOAD_SIZE_MB', '10'))
MAX_UPLOAD_SIZE = MAX_UPLOAD_SIZE_MB * 1024 * 1024
AT_RISK_ALERT_THRESHOLD = max(1, int(os.getenv('AT_RISK_ALERT_THRESHOLD', '1')))

# Latest analysis only, keyed by session id
results_cache: Dict[str, AnalysisResponse] = {}


def build_alert(summary: RiskDistribution) -> Optional[str]:
    """Alert banner text when enough students are At Risk."""
    if summary.at_risk < AT_RISK_ALERT_THRESHOLD:
        return None
    noun = "student is" if summary.at_risk == 1 else "students are"
    return f"{summary.at_risk} {noun} At Risk and may need immediate support."


def format_optional(value: Optional[float]) -> str:
    if value is None:
        return ""
    return f"{value:.2f}"


def latest_analysis() -> AnalysisResponse:
    if not results_cache:
        raise HTTPException(status_code=404, detail="No results available")
    return results_cache[max(results_cache.keys())]


async def read_csv_upload(upload: UploadFile, label: str) -> bytes:
    """Read an uploaded CSV, enforcing type and size limits."""
    if not (upload.filename or "").lower().endswith(".csv"):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type for {label}. Please upload a CSV file (.csv)"
        )
    file_bytes = await upload.read()
    if len(file_bytes) > MAX_UPLOAD_SIZE:
        raise HTTPException(
            status_code=413,
            detail=f"{label} file too large. Maximum size: {MAX_UPLOAD_SIZE_MB}MB"
        )
    return file_bytes


@app.get("/health")
async def health_check():
    """Health check endpoint to test server connectivity."""
    return JSONResponse(content={"status": "ok", "message": "Server is running"})


@app.post("/upload", response_model=AnalysisResponse)
async def upload_files(
    attendance_file: UploadFile = File(...),
    assessment_file: UploadFile = File(...),
    attempts_file: UploadFile = File(...),
):
    """Upload the three CSV datasets and score every student."""
    attendance_bytes = await read_csv_upload(attendance_file, "Attendance")
    assessment_bytes = await read_csv_upload(assessment_file, "Assessment")
    attempts_bytes = await read_csv_upload(attempts_file, "Attempts")

    try:
        attendance = parse_attendance_csv(attendance_bytes)
        assessment = parse_assessment_csv(assessment_bytes)
        attempts = parse_attempts_csv(attempts_bytes)
        profiles = sort_profiles(analyze_all_students(attendance, assessment, attempts))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not profiles:
        raise HTTPException(status_code=400, detail="No student records found in the uploaded files.")

    summary = get_risk_distribution(profiles)
    response = AnalysisResponse(
        success=True,
        message=f"Successfully processed {len(profiles)} students",
        results=profiles,
        summary=summary,
        percentages=summary.percentages(),
        alert=build_alert(summary),
    )

    results_cache.clear()
    results_cache[datetime.now().isoformat()] = response

    logger.info(
        "Results: %d students (%d At Risk, %d Watchlist, %d Safe)",
        summary.total, summary.at_risk, summary.watchlist, summary.safe,
    )
    return response


@app.get("/results")
async def get_results():
    """Get the last processed results."""
    session_id = max(results_cache.keys()) if results_cache else None
    analysis = latest_analysis()
    payload = analysis.model_dump(mode='json')
    payload['session_id'] = session_id
    return payload


@app.post("/email-draft", response_model=EmailDraftResponse)
async def generate_email_draft_endpoint(request: EmailDraftRequest):
    """Generate email draft for a student in the last analysis."""
    analysis = latest_analysis()
    profile: Optional[RiskProfile] = next(
        (p for p in analysis.results if p.student_id == request.student_id.strip()),
        None,
    )
    if profile is None:
        raise HTTPException(status_code=404, detail=f"Student {request.student_id} not found")
    return EmailDraftResponse(**generate_email_draft(profile))


def results_to_csv(profiles: List[RiskProfile]) -> str:
    """Render profiles as CSV text, one row per student."""
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow([
        'Student ID',
        'Attendance %',
        'Test 1',
        'Test 2',
        'Test 3',
        'Attempts Used',
        'Risk Score',
        'Risk Tier',
        'Risk Factors',
    ])
    for profile in profiles:
        record = profile.source_record
        writer.writerow([
            profile.student_id,
            format_optional(record.attendance_pct),
            *[format_optional(s) for s in record.scores],
            "" if record.attempts_used is None else record.attempts_used,
            profile.score,
            profile.tier.value,
            "; ".join(f.label for f in profile.triggered_factors),
        ])
    return output.getvalue()


@app.get("/download.csv")
async def download_csv():
    """Download processed results as CSV."""
    analysis = latest_analysis()
    session_id = max(results_cache.keys())

    return StreamingResponse(
        iter([results_to_csv(analysis.results)]),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename=edusafe_risk_results_{session_id[:10]}.csv"
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
