"""
Tolerant field coercion for raw CSV/JSON cells.

Every function returns None for a blank or unparseable value and logs a
warning instead of raising, so a bad cell can never abort a row, let alone
a job.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

# Tried in order; the first format that parses wins.
DATE_FORMATS: tuple[str, ...] = ("%Y-%m-%d", "%m/%d/%Y", "%d-%m-%Y")
DATETIME_FORMATS: tuple[str, ...] = (
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%m/%d/%Y %H:%M",
) + DATE_FORMATS


def clean_text(raw: Any) -> str | None:
    """Strip a cell; blank cells become None."""
    if raw is None:
        return None
    value = str(raw).strip()
    return value or None


def parse_date(raw: Any) -> date | None:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    value = clean_text(raw)
    if value is None:
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    logger.warning("Unable to parse date: %r", value)
    return None


def parse_datetime(raw: Any) -> datetime | None:
    if isinstance(raw, datetime):
        return raw
    if isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day)
    value = clean_text(raw)
    if value is None:
        return None
    # ISO local date-times, fractional seconds included; offsets are rejected.
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        parsed = None
    if parsed is not None and parsed.tzinfo is None:
        return parsed
    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    logger.warning("Unable to parse datetime: %r", value)
    return None


def parse_enum(raw: Any, enum_cls: type[E]) -> E | None:
    """Match a member by name, ignoring surrounding whitespace and case."""
    if isinstance(raw, enum_cls):
        return raw
    value = clean_text(raw)
    if value is None:
        return None
    try:
        return enum_cls[value.upper()]
    except KeyError:
        logger.warning("Invalid %s value: %r", enum_cls.__name__, value)
        return None


def parse_int(raw: Any) -> int | None:
    if isinstance(raw, bool):
        logger.warning("Invalid integer value: %r", raw)
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        if raw.is_integer():
            return int(raw)
        logger.warning("Invalid integer value: %r", raw)
        return None
    value = clean_text(raw)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning("Invalid integer value: %r", value)
        return None
