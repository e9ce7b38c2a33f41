"""Tests for DTO -> entity transformation and referential checks."""

import pytest
from sqlalchemy import inspect

from ingestion.etl.step import SkipRecord
from ingestion.etl.transform import MedicalRecordTransformer, PatientTransformer
from ingestion.models.patient import MedicalRecord, Patient, RecordStatus
from ingestion.schemas.records import MedicalRecordDto, PatientDto
from ingestion.services.lookup import SqlPatientLookup


class DictLookup:
    def __init__(self, *patient_ids):
        self.patients = {
            pid: Patient(id=pid, first_name="P", last_name=str(pid), full_name=f"P {pid}")
            for pid in patient_ids
        }
        self.calls = []

    def find_by_id(self, patient_id):
        self.calls.append(patient_id)
        return self.patients.get(patient_id)


def test_patient_full_name_and_fields(encryption):
    dto = PatientDto(firstName="Jane", lastName="Doe", email="jane@example.com", gender="female")
    patient = PatientTransformer(encryption).transform(dto)

    assert patient.full_name == "Jane Doe"
    assert patient.email == "jane@example.com"
    assert patient.gender.value == "FEMALE"


def test_patient_insurance_number_encrypted(encryption):
    dto = PatientDto(firstName="Jane", lastName="Doe", insuranceNumber="INS-123")
    patient = PatientTransformer(encryption).transform(dto)

    assert patient.encrypted_insurance_number != "INS-123"
    assert encryption.decrypt(patient.encrypted_insurance_number) == "INS-123"


@pytest.mark.parametrize("fields", [{"firstName": "Jane"}, {"lastName": "Doe"}, {"firstName": " ", "lastName": "Doe"}])
def test_patient_missing_name_is_skipped(encryption, fields):
    with pytest.raises(SkipRecord, match="missing"):
        PatientTransformer(encryption).transform(PatientDto(**fields))


def test_rejected_row_is_skipped_with_its_reason(encryption):
    dto = PatientDto.rejected(4, "expected at least 7 fields, got 2")
    with pytest.raises(SkipRecord, match="line 4: expected at least 7 fields"):
        PatientTransformer(encryption).transform(dto)


def test_medical_record_bound_to_existing_patient():
    dto = MedicalRecordDto(patientId="7", recordType="LAB", description="Blood panel")
    record = MedicalRecordTransformer(DictLookup(7)).transform(dto)

    assert record.patient_id == 7
    assert record.status is RecordStatus.ACTIVE


def test_medical_record_keeps_explicit_status():
    dto = MedicalRecordDto(patientId=7, recordType="LAB", description="x", status="archived")
    assert MedicalRecordTransformer(DictLookup(7)).transform(dto).status is RecordStatus.ARCHIVED


def test_missing_patient_is_skipped():
    lookup = DictLookup(1)
    dto = MedicalRecordDto(patientId=99, recordType="LAB", description="Blood panel")

    with pytest.raises(SkipRecord, match="patient 99 not found"):
        MedicalRecordTransformer(lookup).transform(dto)
    assert lookup.calls == [99]


@pytest.mark.parametrize(
    "fields",
    [
        {"recordType": "LAB", "description": "x"},
        {"patientId": "abc", "recordType": "LAB", "description": "x"},
        {"patientId": 1, "description": "x"},
        {"patientId": 1, "recordType": "LAB"},
    ],
)
def test_incomplete_medical_record_is_skipped_without_lookup(fields):
    lookup = DictLookup(1)
    with pytest.raises(SkipRecord):
        MedicalRecordTransformer(lookup).transform(MedicalRecordDto(**fields))
    assert lookup.calls == []


def test_sql_lookup(session_factory, add_patient):
    patient_id = add_patient("Ann", "Lee")
    lookup = SqlPatientLookup(session_factory)

    assert lookup.find_by_id(patient_id).full_name == "Ann Lee"
    assert lookup.find_by_id(patient_id + 100) is None


@pytest.mark.parametrize("patient_id", ["99999999999999999999", 2**31, 0, -3])
def test_out_of_range_patient_id_is_skipped_without_lookup(patient_id):
    lookup = DictLookup(1)
    dto = MedicalRecordDto(patientId=patient_id, recordType="LAB", description="x")

    with pytest.raises(SkipRecord, match="not found"):
        MedicalRecordTransformer(lookup).transform(dto)
    assert lookup.calls == []


def test_sql_lookup_does_not_load_records(session_factory, add_patient):
    patient_id = add_patient()
    with session_factory() as db:
        db.add(MedicalRecord(patient_id=patient_id, record_type="LAB", description="x"))
        db.commit()

    patient = SqlPatientLookup(session_factory).find_by_id(patient_id)
    assert "records" not in inspect(patient).dict or patient.records == []
