"""
Turn raw DTOs into persistable entities, or skip them.

Referential integrity is enforced here, at ingestion time: a medical record
whose patient does not exist is skipped rather than left for a storage
constraint to catch. Duplicate emails are the writer's concern.
"""

from __future__ import annotations

import logging

from ingestion.etl.step import SkipRecord
from ingestion.models.patient import MedicalRecord, Patient, RecordStatus
from ingestion.schemas.records import MedicalRecordDto, PatientDto
from ingestion.services.encryption import EncryptionService
from ingestion.services.lookup import PatientLookup

logger = logging.getLogger(__name__)

# Range of the integer primary key; anything outside it cannot reference a patient.
MAX_PATIENT_ID = 2**31 - 1


class PatientTransformer:
    def __init__(self, encryption: EncryptionService):
        self.encryption = encryption

    def transform(self, dto: PatientDto) -> Patient:
        if dto.parse_error:
            raise SkipRecord(f"line {dto.line_number}: {dto.parse_error}")
        missing = [name for name in ("first_name", "last_name") if not getattr(dto, name)]
        if missing:
            raise SkipRecord(f"line {dto.line_number}: missing {', '.join(missing)}")

        return Patient(
            first_name=dto.first_name,
            last_name=dto.last_name,
            full_name=dto.full_name,
            date_of_birth=dto.date_of_birth,
            gender=dto.gender,
            email=dto.email,
            phone_number=dto.phone_number,
            address=dto.address,
            emergency_contact=dto.emergency_contact,
            emergency_phone=dto.emergency_phone,
            encrypted_insurance_number=self.encryption.encrypt(dto.insurance_number),
            blood_type=dto.blood_type,
            allergies=dto.allergies,
            medical_history=dto.medical_history,
        )


class MedicalRecordTransformer:
    def __init__(self, lookup: PatientLookup):
        self.lookup = lookup

    def transform(self, dto: MedicalRecordDto) -> MedicalRecord:
        if dto.parse_error:
            raise SkipRecord(f"line {dto.line_number}: {dto.parse_error}")
        if dto.patient_id is None:
            raise SkipRecord(f"line {dto.line_number}: missing patientId")
        missing = [name for name in ("record_type", "description") if not getattr(dto, name)]
        if missing:
            raise SkipRecord(f"line {dto.line_number}: missing {', '.join(missing)}")

        patient = None
        if 1 <= dto.patient_id <= MAX_PATIENT_ID:
            patient = self.lookup.find_by_id(dto.patient_id)
        if patient is None:
            logger.warning("Patient with ID %s not found, skipping record", dto.patient_id)
            raise SkipRecord(f"line {dto.line_number}: patient {dto.patient_id} not found")

        return MedicalRecord(
            patient_id=patient.id,
            record_type=dto.record_type,
            description=dto.description,
            diagnosis=dto.diagnosis,
            treatment=dto.treatment,
            medications=dto.medications,
            doctor_name=dto.doctor_name,
            hospital_name=dto.hospital_name,
            visit_date=dto.visit_date,
            follow_up_date=dto.follow_up_date,
            status=dto.status or RecordStatus.ACTIVE,
            notes=dto.notes,
        )
