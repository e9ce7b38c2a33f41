"""
Job orchestration for batch uploads.

Submitting a file validates and stages it synchronously, records an
UploadJob, and schedules the run on a worker thread; the caller gets the job
handle back immediately. Each job runs its chunks strictly in order, while
separate jobs may run concurrently.
"""

from __future__ import annotations

import logging
import os
import tempfile
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock

from sqlalchemy.orm import sessionmaker

from ingestion.config import settings
from ingestion.etl.parsers import RecordParseError, process_file, select_parser
from ingestion.etl.step import ChunkStep, StepExecution, StepStatus
from ingestion.etl.transform import MedicalRecordTransformer, PatientTransformer
from ingestion.etl.writer import MedicalRecordWriter, PatientWriter
from ingestion.models.job import JobStatus, RecordKind, UploadJob
from ingestion.services.encryption import EncryptionService
from ingestion.services.events import IngestionEvents
from ingestion.services.lookup import SqlPatientLookup

logger = logging.getLogger(__name__)

STAGING_PREFIXES = {
    RecordKind.PATIENT: "patients_upload_",
    RecordKind.MEDICAL_RECORD: "medical_records_upload_",
}


class InvalidUploadError(ValueError):
    """The upload was rejected before staging (empty or unnamed file)."""


class StagingError(Exception):
    """The upload could not be written to durable temp storage."""


@dataclass
class JobOutcome:
    job_id: int
    kind: RecordKind
    file_name: str
    status: JobStatus
    items_read: int
    items_written: int
    items_skipped: int
    error: str | None
    submitted_at: datetime
    completed_at: datetime | None

    @classmethod
    def from_job(cls, job: UploadJob) -> JobOutcome:
        return cls(
            job_id=job.id,
            kind=job.kind,
            file_name=job.file_name,
            status=job.status,
            items_read=job.items_read,
            items_written=job.items_written,
            items_skipped=job.items_skipped,
            error=job.error,
            submitted_at=job.submitted_at,
            completed_at=job.completed_at,
        )


class JobLauncher:
    def __init__(
        self,
        session_factory: sessionmaker,
        events: IngestionEvents,
        encryption: EncryptionService | None = None,
        executor: ThreadPoolExecutor | None = None,
        upload_dir: str | None = None,
        chunk_size: int | None = None,
        skip_limits: dict[RecordKind, int] | None = None,
    ):
        self.session_factory = session_factory
        self.events = events
        self.encryption = encryption or EncryptionService()
        self.executor = executor or ThreadPoolExecutor(
            max_workers=settings.JOB_WORKERS, thread_name_prefix="ingestion-job"
        )
        self.upload_dir = upload_dir or settings.UPLOAD_DIR
        self.chunk_size = chunk_size or settings.CHUNK_SIZE
        self.skip_limits = skip_limits or {
            RecordKind.PATIENT: settings.PATIENT_SKIP_LIMIT,
            RecordKind.MEDICAL_RECORD: settings.MEDICAL_RECORD_SKIP_LIMIT,
        }
        self._futures: dict[int, Future] = {}
        self._lock = Lock()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        kind: RecordKind,
        file_name: str | None,
        content: bytes,
        content_type: str | None = None,
    ) -> UploadJob:
        """Stage an upload and launch its job; returns without waiting for it."""
        if not file_name:
            raise InvalidUploadError("File name is required")
        if not content:
            raise InvalidUploadError("File is empty")
        # Raises UnsupportedFormatError before anything is staged.
        select_parser(kind, content_type, file_name)

        staged_path = self._stage(kind, file_name, content)
        with self.session_factory() as db:
            job = UploadJob(
                kind=kind,
                file_name=file_name,
                source_file=staged_path,
                content_type=content_type,
                status=JobStatus.RUNNING,
            )
            db.add(job)
            db.commit()
            db.refresh(job)
            db.expunge(job)

        logger.info("Launching %s job %d for %s", kind.value, job.id, file_name)
        with self._lock:
            self._futures[job.id] = self.executor.submit(self.run, job.id)
        return job

    def _stage(self, kind: RecordKind, file_name: str, content: bytes) -> str:
        suffix = os.path.splitext(file_name)[1] or ".csv"
        try:
            fd, path = tempfile.mkstemp(
                prefix=STAGING_PREFIXES[kind], suffix=suffix, dir=self.upload_dir
            )
            with os.fdopen(fd, "wb") as staged:
                staged.write(content)
        except OSError as exc:
            logger.error("Failed to stage %s: %s", file_name, exc)
            raise StagingError(f"Failed to stage {file_name}: {exc}") from exc
        return os.path.abspath(path)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def build_step(self, kind: RecordKind) -> ChunkStep:
        if kind == RecordKind.PATIENT:
            transformer = PatientTransformer(self.encryption)
            writer = PatientWriter(self.session_factory, self.events)
            name = "patientStep"
        else:
            transformer = MedicalRecordTransformer(SqlPatientLookup(self.session_factory))
            writer = MedicalRecordWriter(self.session_factory, self.events)
            name = "medicalRecordStep"
        return ChunkStep(
            name,
            transformer.transform,
            writer.write,
            chunk_size=self.chunk_size,
            skip_limit=self.skip_limits[kind],
        )

    def run(self, job_id: int) -> StepExecution:
        """Run a submitted job to completion and record its outcome once."""
        with self.session_factory() as db:
            job = db.get(UploadJob, job_id)
            if job is None:
                raise LookupError(f"Unknown job {job_id}")
            kind, file_name, source_file = job.kind, job.file_name, job.source_file
            content_type = job.content_type

        step = self.build_step(kind)
        try:
            parser = select_parser(kind, content_type, file_name)
            with open(source_file, "rb") as stream:
                records = process_file(parser.parse, stream, file_name, kind, self.events)
        except (OSError, RecordParseError) as exc:
            # process_file has already published the PROCESSING_ERROR event.
            logger.error("Job %d could not read %s: %s", job_id, file_name, exc)
            execution = StepExecution(step_name=step.name, status=StepStatus.FAILED, error=str(exc))
        else:
            execution = step.run(records)
            if execution.status == StepStatus.FAILED:
                self.events.processing_error(kind, file_name, execution.error or "step failed")
        finally:
            self._discard(source_file)

        self._finish(job_id, execution)
        return execution

    def _finish(self, job_id: int, execution: StepExecution) -> None:
        status = (
            JobStatus.COMPLETED if execution.status == StepStatus.COMPLETED else JobStatus.FAILED
        )
        with self.session_factory() as db:
            job = db.get(UploadJob, job_id)
            job.status = status
            job.items_read = execution.items_read
            job.items_written = execution.items_written
            job.items_skipped = execution.items_skipped
            job.commit_count = execution.commit_count
            job.error = execution.error
            job.completed_at = datetime.now(timezone.utc)
            db.commit()
        logger.info(
            "Job %d %s: written=%d skipped=%d",
            job_id,
            status.value,
            execution.items_written,
            execution.items_skipped,
        )

    @staticmethod
    def _discard(path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove staged file %s: %s", path, exc)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def outcome(self, job_id: int) -> JobOutcome | None:
        with self.session_factory() as db:
            job = db.get(UploadJob, job_id)
            return JobOutcome.from_job(job) if job else None

    def wait(self, job_id: int, timeout: float | None = None) -> StepExecution | None:
        """Block until a job launched by this process finishes."""
        with self._lock:
            future = self._futures.get(job_id)
        if future is None:
            return None
        return future.result(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
