"""
Raw record DTOs and the JSON schemas that guard JSON uploads.

A DTO is the unvalidated shape of one parsed row. Typed fields pass through
the tolerant coercion functions, so a malformed cell turns into None rather
than a validation error. Rows the parser could not map at all are still
represented, with ``parse_error`` set, so the step engine skips them in
file order.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ingestion.etl.coercion import (
    clean_text,
    parse_date,
    parse_datetime,
    parse_enum,
    parse_int,
)
from ingestion.models.patient import Gender, RecordStatus


class RecordDto(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    line_number: int = Field(0, exclude=True)
    parse_error: str | None = Field(None, exclude=True)

    @classmethod
    def rejected(cls, line_number: int, reason: str):
        """A placeholder for a row that could not be mapped to fields."""
        return cls.model_construct(line_number=line_number, parse_error=reason)


class PatientDto(RecordDto):
    first_name: str | None = None
    last_name: str | None = None
    date_of_birth: date | None = None
    gender: Gender | None = None
    phone_number: str | None = None
    email: str | None = None
    address: str | None = None
    emergency_contact: str | None = None
    emergency_phone: str | None = None
    insurance_number: str | None = None
    blood_type: str | None = None
    allergies: str | None = None
    medical_history: str | None = None

    @field_validator(
        "first_name",
        "last_name",
        "phone_number",
        "address",
        "emergency_contact",
        "emergency_phone",
        "insurance_number",
        "blood_type",
        "allergies",
        "medical_history",
        mode="before",
    )
    @classmethod
    def _text(cls, value: Any) -> str | None:
        return clean_text(value)

    @field_validator("email", mode="before")
    @classmethod
    def _email(cls, value: Any) -> str | None:
        value = clean_text(value)
        return value.lower() if value else None

    @field_validator("date_of_birth", mode="before")
    @classmethod
    def _date_of_birth(cls, value: Any) -> date | None:
        return parse_date(value)

    @field_validator("gender", mode="before")
    @classmethod
    def _gender(cls, value: Any) -> Gender | None:
        return parse_enum(value, Gender)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class MedicalRecordDto(RecordDto):
    patient_id: int | None = None
    record_type: str | None = None
    description: str | None = None
    diagnosis: str | None = None
    treatment: str | None = None
    medications: str | None = None
    doctor_name: str | None = None
    hospital_name: str | None = None
    visit_date: datetime | None = None
    follow_up_date: datetime | None = None
    status: RecordStatus = RecordStatus.ACTIVE
    notes: str | None = None

    @field_validator(
        "record_type",
        "description",
        "diagnosis",
        "treatment",
        "medications",
        "doctor_name",
        "hospital_name",
        "notes",
        mode="before",
    )
    @classmethod
    def _text(cls, value: Any) -> str | None:
        return clean_text(value)

    @field_validator("patient_id", mode="before")
    @classmethod
    def _patient_id(cls, value: Any) -> int | None:
        return parse_int(value)

    @field_validator("visit_date", "follow_up_date", mode="before")
    @classmethod
    def _datetime(cls, value: Any) -> datetime | None:
        return parse_datetime(value)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> RecordStatus:
        return parse_enum(value, RecordStatus) or RecordStatus.ACTIVE


# ---------------------------------------------------------------------------
# JSON schemas – structural guard for JSON uploads
# ---------------------------------------------------------------------------

_TEXT = {"type": ["string", "null"]}
_TEXT_OR_NUMBER = {"type": ["string", "number", "null"]}

RECORD_DOCUMENT_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Ingestion upload document",
    "description": "A JSON upload is a top-level array with one object per record.",
    "type": "array",
}

PATIENT_RECORD_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Patient upload record",
    "type": "object",
    "properties": {
        "firstName": _TEXT,
        "lastName": _TEXT,
        "dateOfBirth": _TEXT,
        "gender": _TEXT,
        "phoneNumber": _TEXT_OR_NUMBER,
        "email": _TEXT,
        "address": _TEXT,
        "emergencyContact": _TEXT,
        "emergencyPhone": _TEXT_OR_NUMBER,
        "insuranceNumber": _TEXT_OR_NUMBER,
        "bloodType": _TEXT,
        "allergies": _TEXT,
        "medicalHistory": _TEXT,
    },
}

MEDICAL_RECORD_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Medical record upload record",
    "type": "object",
    "properties": {
        "patientId": {"type": ["integer", "string", "null"]},
        "recordType": _TEXT,
        "description": _TEXT,
        "diagnosis": _TEXT,
        "treatment": _TEXT,
        "medications": _TEXT,
        "doctorName": _TEXT,
        "hospitalName": _TEXT,
        "visitDate": _TEXT,
        "followUpDate": _TEXT,
        "status": _TEXT,
        "notes": _TEXT,
    },
}
