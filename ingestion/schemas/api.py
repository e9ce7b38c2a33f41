"""Pydantic models for API request/response serialization."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------

class JobResponse(CamelModel):
    """Returned as soon as an upload is staged and its job launched."""
    message: str
    file_name: str
    job_execution_id: int
    status: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class JobStatusResponse(CamelModel):
    job_execution_id: int
    kind: str
    file_name: str
    items_read: int
    items_written: int
    items_skipped: int
    status: str
    error: str | None = None
    submitted_at: datetime
    completed_at: datetime | None = None


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str = "UP"
    service: str
    environment: str
    database: str = "connected"
