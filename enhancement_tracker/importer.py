"""CSV bulk import with row-level validation and partial-failure reporting."""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterator, List, Mapping

import structlog

from enhancement_tracker.enums import (
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
    DesireLevel,
    DifficultyLevel,
    FieldEnum,
    ProductArea,
    RequestType,
)
from enhancement_tracker.models import StoreError
from enhancement_tracker.validation import (
    RATIONALE_SENTINEL,
    ValidationFailure,
    blank_to_none,
    enum_message,
    format_who_benefits,
    invalid_beneficiaries,
    is_blank,
    missing_fields,
    parse_date,
    parse_effort,
    reorder_day_first,
    split_who_benefits,
    who_benefits_message,
)

MAX_UPLOAD_BYTES = 5 * 1024 * 1024
ALLOWED_MIME_TYPES = frozenset({"text/csv"})
MAX_REPORTED_ERRORS = 50

REQUEST_NAME = "Request Name"
REQUEST_DESCRIPTION = "Request Description"
RATIONALE = "Rationale"
REQUESTOR_NAME = "Requestor Name"
REQUEST_DATE = "Date of Request (DD-MM-YYYY)"
BENEFACTOR = "Benefactor"
TYPE_OF_REQUEST = "Type of Request"
AREA_OF_PRODUCT = "Area of Product"
LINK_TO_DOCUMENT = "Link to Document"
DESIRE_LEVEL = "Desire Level"
EFFORT_LEVEL = "Effort Level"
DIFFICULTY_LEVEL = "Difficulty Level"
WHO_BENEFITS = "Who Benefits"
TIMELINE = "Timeline"

CSV_REQUIRED_HEADERS = (
    REQUEST_NAME,
    REQUEST_DESCRIPTION,
    REQUESTOR_NAME,
    REQUEST_DATE,
    TYPE_OF_REQUEST,
    AREA_OF_PRODUCT,
    DESIRE_LEVEL,
    WHO_BENEFITS,
)

CSV_ENUM_HEADERS: Dict[str, type[FieldEnum]] = {
    TYPE_OF_REQUEST: RequestType,
    AREA_OF_PRODUCT: ProductArea,
    DESIRE_LEVEL: DesireLevel,
    DIFFICULTY_LEVEL: DifficultyLevel,
}


class UploadRejected(ValueError):
    """Raised when an upload fails the type or size checks."""


@dataclass
class ImportSummary:
    successful: int = 0
    failed: int = 0
    total: int = 0
    errors: List[str] = field(default_factory=list)

    def record_failure(self, row_number: int, message: str) -> None:
        self.failed += 1
        if len(self.errors) < MAX_REPORTED_ERRORS:
            self.errors.append(f"Row {row_number}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "successful": self.successful,
            "failed": self.failed,
            "total": self.total,
            "errors": self.errors[:MAX_REPORTED_ERRORS],
        }


def check_upload(*, mimetype: str | None, size: int) -> None:
    """Reject uploads with the wrong declared type or too many bytes."""

    if (mimetype or "").lower() not in ALLOWED_MIME_TYPES:
        raise UploadRejected("Only CSV files are allowed")
    if size > MAX_UPLOAD_BYTES:
        raise UploadRejected("File too large. Maximum size is 5MB")


def decode_upload(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise UploadRejected("CSV file must be UTF-8 encoded") from exc


def iter_rows(text: str) -> Iterator[Dict[str, str]]:
    """Yield each data row as a header -> raw text mapping, in one pass."""

    reader = csv.DictReader(io.StringIO(text, newline=""))
    for row in reader:
        yield {key.strip(): (value or "") for key, value in row.items() if key is not None}


def row_problems(row: Mapping[str, str]) -> List[str]:
    """Return the validation messages for *row*; an empty list means valid.

    A missing required header short-circuits the enum and effort checks.
    """

    missing = missing_fields(row, CSV_REQUIRED_HEADERS)
    if missing:
        return [f"Missing required fields: {', '.join(missing)}"]

    problems: List[str] = []
    for header, enum_cls in CSV_ENUM_HEADERS.items():
        value = row.get(header)
        if is_blank(value):
            continue
        if not enum_cls.is_valid(value):
            problems.append(enum_message(header, enum_cls))

    pieces = split_who_benefits(row[WHO_BENEFITS])
    invalid = invalid_beneficiaries(pieces)
    if not pieces:
        problems.append(f"{WHO_BENEFITS} must include at least one value")
    elif invalid:
        problems.append(who_benefits_message(invalid, label=WHO_BENEFITS))

    if EFFORT_LEVEL in row:
        try:
            parse_effort(row[EFFORT_LEVEL], label=EFFORT_LEVEL)
        except ValidationFailure as exc:
            problems.append(str(exc.details))
    return problems


def translate_timeline(raw: str | None) -> date | str | None:
    """Reorder a day-first timeline; any other text goes to the store as-is.

    The store decides whether pass-through text is a date it accepts.
    """

    value = blank_to_none(raw)
    if value is None:
        return None
    reordered = reorder_day_first(value)
    try:
        return date.fromisoformat(reordered)
    except ValueError:
        return reordered


def translate_row(row: Mapping[str, str]) -> Dict[str, Any]:
    """Map a validated row onto stored column values."""

    request_date = parse_date(row[REQUEST_DATE], label=REQUEST_DATE)
    timeline = translate_timeline(row.get(TIMELINE))

    rationale = blank_to_none(row.get(RATIONALE))
    difficulty = blank_to_none(row.get(DIFFICULTY_LEVEL))
    return {
        "request_name": row[REQUEST_NAME].strip(),
        "request_description": row[REQUEST_DESCRIPTION].strip(),
        "rationale": rationale if rationale is not None else RATIONALE_SENTINEL,
        "requestor_name": row[REQUESTOR_NAME].strip(),
        "date_of_request": request_date,
        "stakeholder": blank_to_none(row.get(BENEFACTOR)),
        "type_of_request": row[TYPE_OF_REQUEST].strip(),
        "area_of_product": row[AREA_OF_PRODUCT].strip(),
        "link_to_document": blank_to_none(row.get(LINK_TO_DOCUMENT)),
        "desire_level": row[DESIRE_LEVEL].strip(),
        "effort_level": parse_effort(row.get(EFFORT_LEVEL), label=EFFORT_LEVEL),
        "difficulty_level": difficulty,
        "who_benefits": format_who_benefits(split_who_benefits(row[WHO_BENEFITS])),
        "timeline": timeline,
        "status": DEFAULT_STATUS.value,
        "priority_level": DEFAULT_PRIORITY.value,
        "documentation_updated": False,
        "storylanes_updated": False,
        "release_notes": False,
    }


def import_csv(store, data: bytes) -> ImportSummary:
    """Validate and insert every row of *data*, one at a time.

    Row failures are collected into the summary; they never stop the batch.
    Undecodable uploads raise :class:`UploadRejected` before any row is read.
    """

    log = structlog.get_logger(__name__)
    rows = iter_rows(decode_upload(data))
    summary = ImportSummary()
    row_number = 0
    while True:
        try:
            row = next(rows)
        except StopIteration:
            break
        except csv.Error as exc:
            summary.total += 1
            summary.record_failure(row_number + 1, f"Malformed CSV - {exc}")
            log.warning("csv_import_parse_failed", row=row_number + 1, error=str(exc))
            break
        row_number += 1
        summary.total += 1
        problems = row_problems(row)
        if problems:
            summary.record_failure(row_number, "; ".join(problems))
            log.info("csv_import_row_invalid", row=row_number, problems=problems)
            continue
        try:
            values = translate_row(row)
        except ValidationFailure as exc:
            summary.record_failure(row_number, str(exc.details))
            log.info("csv_import_row_invalid", row=row_number, problems=[exc.details])
            continue
        try:
            enhancement = store.create_enhancement(values)
        except StoreError as exc:
            summary.record_failure(row_number, f"Database error - {exc.message}")
            log.warning("csv_import_row_failed", row=row_number, error=exc.message, code=exc.code)
            continue
        summary.successful += 1
        log.info("csv_import_row_stored", row=row_number, request_id=enhancement.request_id)
    log.info(
        "csv_import_completed",
        total=summary.total,
        successful=summary.successful,
        failed=summary.failed,
    )
    return summary
