"""
FastAPI routes – upload entry points and job status for batch ingestion.

Uploads are validated and staged synchronously; the batch job itself runs in
the background and the caller receives a job handle (202 Accepted).
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ingestion.config import settings
from ingestion.etl.parsers import UnsupportedFormatError
from ingestion.models.database import get_db
from ingestion.models.job import RecordKind
from ingestion.schemas.api import HealthResponse, JobResponse, JobStatusResponse
from ingestion.services.jobs import InvalidUploadError, JobLauncher, StagingError

logger = logging.getLogger(__name__)

router = APIRouter()

ACCEPTED_MESSAGES = {
    RecordKind.PATIENT: "Patient file accepted for processing",
    RecordKind.MEDICAL_RECORD: "Medical record file accepted for processing",
}


def get_job_launcher(request: Request) -> JobLauncher:
    return request.app.state.job_launcher


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@router.get("/health", response_model=HealthResponse)
def health_check(db: Session = Depends(get_db)):
    """Basic health endpoint – verifies DB connectivity."""
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except SQLAlchemyError:
        db_status = "disconnected"
    return HealthResponse(
        service=settings.SERVICE_NAME,
        environment=settings.ENVIRONMENT,
        database=db_status,
    )


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------

async def _accept_upload(kind: RecordKind, file: UploadFile, launcher: JobLauncher) -> JobResponse:
    logger.info("Received %s upload request: %s", kind.value, file.filename)
    try:
        content = await file.read()
        job = launcher.submit(kind, file.filename, content, file.content_type)
    except (InvalidUploadError, UnsupportedFormatError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except StagingError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
    finally:
        await file.close()

    return JobResponse(
        message=ACCEPTED_MESSAGES[kind],
        file_name=job.file_name,
        job_execution_id=job.id,
        status=job.status.value,
    )


@router.post(
    "/ingestion/patients/upload",
    response_model=JobResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def upload_patients(
    file: UploadFile = File(...),
    launcher: JobLauncher = Depends(get_job_launcher),
):
    """Upload a CSV or JSON file of patients."""
    return await _accept_upload(RecordKind.PATIENT, file, launcher)


@router.post(
    "/ingestion/medical-records/upload",
    response_model=JobResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def upload_medical_records(
    file: UploadFile = File(...),
    launcher: JobLauncher = Depends(get_job_launcher),
):
    """Upload a CSV or JSON file of medical records for existing patients."""
    return await _accept_upload(RecordKind.MEDICAL_RECORD, file, launcher)


# ---------------------------------------------------------------------------
# Job status
# ---------------------------------------------------------------------------

@router.get("/ingestion/jobs/{job_id}", response_model=JobStatusResponse)
def get_job(job_id: int, launcher: JobLauncher = Depends(get_job_launcher)):
    outcome = launcher.outcome(job_id)
    if outcome is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobStatusResponse(
        job_execution_id=outcome.job_id,
        kind=outcome.kind.value,
        file_name=outcome.file_name,
        items_read=outcome.items_read,
        items_written=outcome.items_written,
        items_skipped=outcome.items_skipped,
        status=outcome.status.value,
        error=outcome.error,
        submitted_at=outcome.submitted_at,
        completed_at=outcome.completed_at,
    )
