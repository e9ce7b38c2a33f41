"""Upload job model – one row per ingestion run."""

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, Index, Integer, String, Text

from ingestion.models.database import Base


class RecordKind(str, enum.Enum):
    PATIENT = "PATIENT"
    MEDICAL_RECORD = "MEDICAL_RECORD"


class JobStatus(str, enum.Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class UploadJob(Base):
    __tablename__ = "upload_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True, comment="jobExecutionId")
    kind = Column(Enum(RecordKind, name="record_kind_enum"), nullable=False)
    file_name = Column(String(500), nullable=False, comment="Original upload name")
    source_file = Column(Text, nullable=False, comment="Path of the staged copy")
    content_type = Column(String(128))
    submitted_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)
    status = Column(
        Enum(JobStatus, name="job_status_enum"), default=JobStatus.RUNNING, nullable=False
    )
    items_read = Column(Integer, default=0, nullable=False)
    items_written = Column(Integer, default=0, nullable=False)
    items_skipped = Column(Integer, default=0, nullable=False)
    commit_count = Column(Integer, default=0, nullable=False)
    error = Column(Text, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (Index("ix_upload_jobs_status", "status"),)
