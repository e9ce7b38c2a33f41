"""Patient lookups used while validating and writing ingested rows."""

from __future__ import annotations

from typing import Protocol

from sqlalchemy import func, select
from sqlalchemy.orm import Session, noload, sessionmaker

from ingestion.models.patient import Patient


def email_exists(db: Session, email: str) -> bool:
    """Case-insensitive, so rows stored by other writers still count."""
    query = select(Patient.id).where(func.lower(Patient.email) == email.lower()).limit(1)
    return db.scalar(query) is not None


class PatientLookup(Protocol):
    def find_by_id(self, patient_id: int) -> Patient | None: ...


class SqlPatientLookup:
    """Resolves patient references against the shared patient store."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def find_by_id(self, patient_id: int) -> Patient | None:
        with self.session_factory() as db:
            # Only the id is needed; never pull in the patient's records.
            patient = db.get(Patient, patient_id, options=[noload(Patient.records)])
            if patient is not None:
                db.expunge(patient)
            return patient
