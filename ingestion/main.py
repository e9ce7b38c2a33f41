"""
FastAPI application entrypoint.

Run locally:  uvicorn ingestion.main:app --reload
"""

import logging

from fastapi import FastAPI

from ingestion.api.routes import router
from ingestion.config import settings
from ingestion.models.database import Base, SessionLocal, engine
from ingestion.services.events import IngestionEvents, build_publisher
from ingestion.services.jobs import JobLauncher

logging.basicConfig(
    level=settings.LOG_LEVEL, format="%(levelname)s | %(name)s | %(message)s"
)

app = FastAPI(
    title="Healthcare Data Ingestion Service",
    description=(
        "Batch CSV/JSON ingestion of patients and medical records: tolerant "
        "parsing, chunked transactional writes with a skip limit, and "
        "best-effort event notifications."
    ),
    version="1.0.0",
)

app.include_router(router, prefix="/api/v1")


@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
    publisher = build_publisher()
    app.state.event_publisher = publisher
    app.state.job_launcher = JobLauncher(SessionLocal, IngestionEvents(publisher))


@app.on_event("shutdown")
def on_shutdown():
    app.state.job_launcher.shutdown()
    app.state.event_publisher.flush()
