"""Tests for the upload and job-status endpoints."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from ingestion.api.routes import router
from ingestion.models.database import get_db
from ingestion.models.job import RecordKind
from ingestion.services.jobs import JobLauncher

PATIENTS_CSV = (
    "firstName,lastName,dateOfBirth,gender,phoneNumber,email,address\n"
    "Jane,Doe,1990-01-15,FEMALE,555-0100,jane@example.com,1 Main St\n"
)


@pytest.fixture
def launcher(session_factory, events, encryption, tmp_path):
    launcher = JobLauncher(
        session_factory,
        events,
        encryption=encryption,
        upload_dir=str(tmp_path),
        chunk_size=10,
        skip_limits={RecordKind.PATIENT: 10, RecordKind.MEDICAL_RECORD: 10},
    )
    yield launcher
    launcher.shutdown()


@pytest.fixture
def client(launcher, session_factory):
    app = FastAPI()
    app.include_router(router, prefix="/api/v1")
    app.state.job_launcher = launcher

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


def test_upload_returns_job_handle(client, launcher):
    response = client.post(
        "/api/v1/ingestion/patients/upload",
        files={"file": ("patients.csv", PATIENTS_CSV, "text/csv")},
    )

    assert response.status_code == 202
    body = response.json()
    assert body["fileName"] == "patients.csv"
    assert body["message"] == "Patient file accepted for processing"
    job_id = body["jobExecutionId"]

    launcher.wait(job_id, timeout=30)
    status = client.get(f"/api/v1/ingestion/jobs/{job_id}").json()
    assert status["status"] == "COMPLETED"
    assert status["itemsWritten"] == 1
    assert status["itemsSkipped"] == 0
    assert status["kind"] == "PATIENT"


def test_medical_record_upload(client, launcher):
    response = client.post(
        "/api/v1/ingestion/medical-records/upload",
        files={"file": ("records.json", "[]", "application/json")},
    )
    assert response.status_code == 202
    launcher.wait(response.json()["jobExecutionId"], timeout=30)


@pytest.mark.parametrize(
    "file_name, content",
    [("patients.txt", PATIENTS_CSV), ("patients.csv", "")],
)
def test_rejected_uploads(client, file_name, content):
    response = client.post(
        "/api/v1/ingestion/patients/upload",
        files={"file": (file_name, content, "text/plain")},
    )
    assert response.status_code == 400


def test_unknown_job_is_404(client):
    assert client.get("/api/v1/ingestion/jobs/999").status_code == 404


def test_health(client):
    body = client.get("/api/v1/health").json()
    assert body["status"] == "UP"
    assert body["database"] == "connected"
