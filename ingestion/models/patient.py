"""
Persisted forms of ingested healthcare data.

- Patient: core identity (contains PHI); email is unique across patients
- MedicalRecord: always bound to an existing patient
- AuditLog: immutable compliance trail written alongside every ingested entity
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from ingestion.models.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Gender(str, enum.Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"


class RecordStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    ARCHIVED = "ARCHIVED"


# ---------------------------------------------------------------------------
# Patient – core identity (contains PHI)
# ---------------------------------------------------------------------------
class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(128), nullable=False)
    last_name = Column(String(128), nullable=False)
    full_name = Column(String(257), nullable=False)
    date_of_birth = Column(Date)
    gender = Column(Enum(Gender, name="gender_enum"))
    email = Column(String(255), unique=True, nullable=True)
    phone_number = Column(String(64))
    address = Column(Text)

    emergency_contact = Column(String(255))
    emergency_phone = Column(String(64))
    # PHI – Fernet-encrypted at the application layer
    encrypted_insurance_number = Column(Text, nullable=True, comment="Encrypted insurance number")
    blood_type = Column(String(8))
    allergies = Column(Text)
    medical_history = Column(Text)

    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    records = relationship("MedicalRecord", back_populates="patient", lazy="selectin")

    __table_args__ = (Index("ix_patients_email", "email"),)


# ---------------------------------------------------------------------------
# Medical Record – must reference a previously persisted patient
# ---------------------------------------------------------------------------
class MedicalRecord(Base):
    __tablename__ = "medical_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    record_type = Column(String(64), nullable=False)
    description = Column(Text, nullable=False)
    diagnosis = Column(Text)
    treatment = Column(Text)
    medications = Column(Text)
    doctor_name = Column(String(255))
    hospital_name = Column(String(255))
    visit_date = Column(DateTime)
    follow_up_date = Column(DateTime)
    status = Column(
        Enum(RecordStatus, name="record_status_enum"),
        default=RecordStatus.ACTIVE,
        nullable=False,
    )
    notes = Column(Text)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    patient = relationship("Patient", back_populates="records")

    __table_args__ = (
        Index("ix_medical_records_patient", "patient_id"),
        Index("ix_medical_records_type", "record_type"),
    )


# ---------------------------------------------------------------------------
# Audit Log – immutable compliance trail
# ---------------------------------------------------------------------------
class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    actor = Column(String(128), nullable=False, comment="User or service identity")
    action = Column(String(64), nullable=False, comment="create | read | update | delete")
    resource_type = Column(String(64), nullable=False)
    resource_id = Column(String(64), nullable=False)
    detail = Column(JSON, comment="Context for the action")
    timestamp = Column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (Index("ix_audit_timestamp", "timestamp"),)
