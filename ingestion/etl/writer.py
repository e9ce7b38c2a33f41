"""
Chunk writers: persist one chunk per transaction, then notify.

The chunk is the atomicity unit – either every accepted entity of a chunk is
committed or none is. Events are published only after the commit, one per
saved entity, and a publish failure never undoes or fails the chunk.
"""

from __future__ import annotations

import logging
from typing import Any, Generic, TypeVar

from sqlalchemy.orm import Session, sessionmaker

from ingestion.config import settings
from ingestion.models.patient import MedicalRecord, Patient
from ingestion.services.audit import log_action
from ingestion.services.events import IngestionEvents
from ingestion.services.lookup import email_exists

logger = logging.getLogger(__name__)

E = TypeVar("E", Patient, MedicalRecord)


class ChunkWriter(Generic[E]):
    resource_type = ""

    def __init__(
        self,
        session_factory: sessionmaker,
        events: IngestionEvents,
        actor: str = settings.SERVICE_NAME,
    ):
        self.session_factory = session_factory
        self.events = events
        self.actor = actor

    def write(self, entities: list[E]) -> list[E]:
        with self.session_factory(expire_on_commit=False) as db:
            with db.begin():
                accepted = self.accept(db, entities)
                db.add_all(accepted)
                db.flush()
                for entity in accepted:
                    log_action(
                        db,
                        actor=self.actor,
                        action="create",
                        resource_type=self.resource_type,
                        resource_id=entity.id,
                        detail=self.audit_detail(entity),
                    )
                # Capture identifiers before the session goes away.
                notices = [self.notice(entity) for entity in accepted]

        logger.info("Committed %d %s entities", len(accepted), self.resource_type)
        for notice in notices:
            self.notify(notice)
        return accepted

    def accept(self, db: Session, entities: list[E]) -> list[E]:
        return list(entities)

    def audit_detail(self, entity: E) -> dict[str, Any]:
        return {"pipeline": "batch-ingestion"}

    def notice(self, entity: E) -> dict[str, Any]:
        raise NotImplementedError

    def notify(self, notice: dict[str, Any]) -> None:
        raise NotImplementedError


class PatientWriter(ChunkWriter[Patient]):
    resource_type = "Patient"

    def accept(self, db: Session, entities: list[Patient]) -> list[Patient]:
        """Drop patients whose email is already stored or earlier in the chunk."""
        accepted: list[Patient] = []
        seen: set[str] = set()
        for patient in entities:
            if patient.email:
                if patient.email in seen or email_exists(db, patient.email):
                    logger.warning(
                        "Patient with email %s already exists, dropping %s",
                        patient.email,
                        patient.full_name,
                    )
                    continue
                seen.add(patient.email)
            accepted.append(patient)
        return accepted

    def notice(self, entity: Patient) -> dict[str, Any]:
        return {"patient_id": entity.id, "full_name": entity.full_name}

    def notify(self, notice: dict[str, Any]) -> None:
        self.events.patient_created(notice["patient_id"], notice["full_name"])


class MedicalRecordWriter(ChunkWriter[MedicalRecord]):
    resource_type = "MedicalRecord"

    def audit_detail(self, entity: MedicalRecord) -> dict[str, Any]:
        return {
            "pipeline": "batch-ingestion",
            "patient_id": entity.patient_id,
            "record_type": entity.record_type,
        }

    def notice(self, entity: MedicalRecord) -> dict[str, Any]:
        return {
            "patient_id": entity.patient_id,
            "record_id": entity.id,
            "record_type": entity.record_type,
        }

    def notify(self, notice: dict[str, Any]) -> None:
        self.events.medical_record_created(
            notice["patient_id"], notice["record_id"], notice["record_type"]
        )
