"""
Upload parsers: turn a staged CSV or JSON file into an ordered list of DTOs.

The set of parsers is closed – CSV and JSON – and selection is a pure
predicate over (content type, file name), evaluated against a fixed table.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any, BinaryIO, Callable

from pydantic import ValidationError

from ingestion.models.job import RecordKind
from ingestion.schemas.records import (
    MEDICAL_RECORD_SCHEMA,
    PATIENT_RECORD_SCHEMA,
    RECORD_DOCUMENT_SCHEMA,
    MedicalRecordDto,
    PatientDto,
    RecordDto,
)
from ingestion.services.events import IngestionEvents
from ingestion.services.validation import validate_against_schema

logger = logging.getLogger(__name__)


class UnsupportedFormatError(ValueError):
    """No parser accepts the upload; raised before any row is read."""

    def __init__(self, file_name: str | None, content_type: str | None = None):
        self.file_name = file_name
        self.content_type = content_type
        super().__init__(
            f"Unsupported file format: {file_name or content_type or 'unknown'} "
            "(expected .csv or .json)"
        )


class RecordParseError(Exception):
    """The file as a whole could not be read; fatal for the job."""


# Positional CSV column contracts (header line is always skipped).
CSV_COLUMNS: dict[RecordKind, tuple[str, ...]] = {
    RecordKind.PATIENT: (
        "firstName",
        "lastName",
        "dateOfBirth",
        "gender",
        "phoneNumber",
        "email",
        "address",
        "emergencyContact",
        "emergencyPhone",
        "insuranceNumber",
        "bloodType",
        "allergies",
        "medicalHistory",
    ),
    RecordKind.MEDICAL_RECORD: (
        "patientId",
        "recordType",
        "description",
        "diagnosis",
        "treatment",
        "medications",
        "doctorName",
        "hospitalName",
        "visitDate",
        "followUpDate",
        "status",
        "notes",
    ),
}

# Lines with fewer fields than this never become a mapped DTO.
CSV_MIN_FIELDS: dict[RecordKind, int] = {
    RecordKind.PATIENT: 7,
    RecordKind.MEDICAL_RECORD: 3,
}

DTO_TYPES: dict[RecordKind, type[RecordDto]] = {
    RecordKind.PATIENT: PatientDto,
    RecordKind.MEDICAL_RECORD: MedicalRecordDto,
}

RECORD_SCHEMAS: dict[RecordKind, dict] = {
    RecordKind.PATIENT: PATIENT_RECORD_SCHEMA,
    RecordKind.MEDICAL_RECORD: MEDICAL_RECORD_SCHEMA,
}

_INTERNAL_KEYS = ("lineNumber", "parseError", "line_number", "parse_error")


def _extension(file_name: str | None) -> str | None:
    if not file_name or "." not in file_name:
        return None
    return file_name.rsplit(".", 1)[1].strip().lower()


def _media_type(content_type: str | None) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def _build(dto_type: type[RecordDto], raw: dict[str, Any], line_number: int) -> RecordDto:
    try:
        dto = dto_type.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Line %d: unmappable record (%d errors)", line_number, exc.error_count())
        return dto_type.rejected(line_number, f"invalid record: {exc.errors()[0]['msg']}")
    dto.line_number = line_number
    return dto


class CsvRecordParser:
    """Comma-split CSV, mapped positionally. No quoting or escaping."""

    extension = "csv"
    media_types = ("text/csv", "application/csv")

    def __init__(self, kind: RecordKind):
        self.kind = kind
        self.columns = CSV_COLUMNS[kind]
        self.min_fields = CSV_MIN_FIELDS[kind]
        self.dto_type = DTO_TYPES[kind]

    @classmethod
    def supports(cls, content_type: str | None, file_name: str | None) -> bool:
        if file_name:
            return _extension(file_name) == cls.extension
        return _media_type(content_type) in cls.media_types

    def parse(self, stream: BinaryIO, file_name: str) -> list[RecordDto]:
        records: list[RecordDto] = []
        reader = codecs.getreader("utf-8-sig")(stream)
        try:
            lines = reader.read().splitlines()
        except UnicodeDecodeError as exc:
            raise RecordParseError(f"{file_name} is not valid UTF-8 text: {exc}") from exc

        # Line 1 is the header.
        for line_number, line in enumerate(lines[1:], start=2):
            if not line.strip():
                continue
            cells = line.split(",")
            if len(cells) < self.min_fields:
                logger.warning(
                    "%s line %d: expected at least %d fields, got %d",
                    file_name,
                    line_number,
                    self.min_fields,
                    len(cells),
                )
                records.append(
                    self.dto_type.rejected(
                        line_number,
                        f"expected at least {self.min_fields} fields, got {len(cells)}",
                    )
                )
                continue
            raw = dict(zip(self.columns, cells))
            records.append(_build(self.dto_type, raw, line_number))

        logger.info("Parsed %d %s rows from %s", len(records), self.kind.value, file_name)
        return records


class JsonRecordParser:
    """Whole-document JSON: a top-level array with one object per record."""

    extension = "json"
    media_types = ("application/json", "text/json")

    def __init__(self, kind: RecordKind):
        self.kind = kind
        self.schema = RECORD_SCHEMAS[kind]
        self.dto_type = DTO_TYPES[kind]

    @classmethod
    def supports(cls, content_type: str | None, file_name: str | None) -> bool:
        if file_name:
            return _extension(file_name) == cls.extension
        return _media_type(content_type) in cls.media_types

    def parse(self, stream: BinaryIO, file_name: str) -> list[RecordDto]:
        try:
            document = json.load(stream)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise RecordParseError(f"{file_name} is not valid JSON: {exc}") from exc

        errors = validate_against_schema(document, RECORD_DOCUMENT_SCHEMA)
        if errors:
            raise RecordParseError(f"{file_name}: {'; '.join(errors)}")

        records: list[RecordDto] = []
        for index, item in enumerate(document, start=1):
            item_errors = validate_against_schema(item, self.schema)
            if item_errors:
                logger.warning("%s record %d rejected: %s", file_name, index, item_errors[0])
                records.append(self.dto_type.rejected(index, item_errors[0]))
                continue
            raw = {key: value for key, value in item.items() if key not in _INTERNAL_KEYS}
            records.append(_build(self.dto_type, raw, index))

        logger.info("Parsed %d %s records from %s", len(records), self.kind.value, file_name)
        return records


PARSERS: tuple[type[CsvRecordParser] | type[JsonRecordParser], ...] = (
    CsvRecordParser,
    JsonRecordParser,
)


def select_parser(
    kind: RecordKind, content_type: str | None, file_name: str | None
) -> CsvRecordParser | JsonRecordParser:
    """Return the first parser whose predicate accepts the upload."""
    for parser_type in PARSERS:
        if parser_type.supports(content_type, file_name):
            return parser_type(kind)
    raise UnsupportedFormatError(file_name, content_type)


def process_file(
    parse_fn: Callable[[BinaryIO, str], list[RecordDto]],
    stream: BinaryIO,
    file_name: str,
    kind: RecordKind,
    events: IngestionEvents,
) -> list[RecordDto]:
    """
    Shared parse-then-notify skeleton for every parser and record kind.

    Publishes FILE_PROCESSED with the row count, or PROCESSING_ERROR before
    re-raising when the file cannot be parsed.
    """
    logger.info("Processing file: %s", file_name)
    try:
        records = parse_fn(stream, file_name)
    except Exception as exc:
        logger.error("Error processing file %s: %s", file_name, exc)
        events.processing_error(kind, file_name, str(exc))
        raise
    events.file_processed(kind, file_name, len(records))
    return records
