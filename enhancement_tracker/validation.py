"""Validation and normalisation rules shared by every ingestion path."""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from enhancement_tracker.enums import (
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
    Beneficiary,
    DesireLevel,
    DifficultyLevel,
    FieldEnum,
    PriorityLevel,
    ProductArea,
    RequestType,
    WorkflowStatus,
)
from enhancement_tracker.schema import to_columns, writable_wire_fields

RATIONALE_SENTINEL = "Not specified"

_ALTERNATION = "|".join(re.escape(value) for value in Beneficiary.values())
WHO_BENEFITS_PATTERN = re.compile(rf"^({_ALTERNATION})(,\s*({_ALTERNATION}))*$")

JSON_REQUIRED_FIELDS = (
    "requestName",
    "requestDescription",
    "requestorName",
    "dateOfRequest",
    "typeOfRequest",
    "areaOfProduct",
    "desireLevel",
    "whoBenefits",
)

FIELD_LABELS: Dict[str, str] = {
    "requestName": "Request Name",
    "requestDescription": "Request Description",
    "rationale": "Rationale",
    "requestorName": "Requestor Name",
    "dateOfRequest": "Date of Request",
    "stakeholder": "Benefactor",
    "typeOfRequest": "Type of Request",
    "areaOfProduct": "Area of Product",
    "linkToDocument": "Link to Document",
    "desireLevel": "Desire Level",
    "effortLevel": "Effort Level",
    "difficultyLevel": "Difficulty Level",
    "whoBenefits": "Who Benefits",
    "status": "Status",
    "priorityLevel": "Priority Level",
    "acceptedDeniedReason": "Accepted/Denied Reason",
    "timeline": "Timeline",
    "documentationUpdated": "Documentation Updated",
    "storylanesUpdated": "Storylanes Updated",
    "releaseNotes": "Release Notes",
}

ENUM_FIELDS: Dict[str, type[FieldEnum]] = {
    "typeOfRequest": RequestType,
    "areaOfProduct": ProductArea,
    "desireLevel": DesireLevel,
    "difficultyLevel": DifficultyLevel,
    "status": WorkflowStatus,
    "priorityLevel": PriorityLevel,
}

WIRE_FIELDS_FOR_UPDATE = frozenset(FIELD_LABELS)

FLAG_FIELDS = ("documentationUpdated", "storylanesUpdated", "releaseNotes")
TEXT_FIELDS = (
    "requestName",
    "requestDescription",
    "rationale",
    "requestorName",
    "stakeholder",
    "linkToDocument",
    "acceptedDeniedReason",
)


class ValidationFailure(ValueError):
    """Raised when client input breaks a field rule.

    ``error`` is a short summary, ``details`` names the offending field(s)
    or values and ``extra`` carries additional machine-readable keys.
    """

    def __init__(self, error: str, details: Any = None, **extra: Any) -> None:
        super().__init__(error if details is None else f"{error}: {details}")
        self.error = error
        self.details = details
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        if self.details is not None:
            body["details"] = self.details
        body.update(self.extra)
        return body


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


def blank_to_none(value: Any) -> Any:
    if is_blank(value):
        return None
    if isinstance(value, str):
        return value.strip()
    return value


def missing_fields(values: Mapping[str, Any], required: Sequence[str]) -> List[str]:
    """Return the names in *required* whose values are absent or blank."""

    return [name for name in required if is_blank(values.get(name))]


def reorder_day_first(text: str) -> str:
    """Rewrite ``D-M-YYYY`` or ``DD-MM-YYYY`` as ``YYYY-MM-DD``.

    Day and month are zero-padded. Other shapes pass through unchanged.
    """

    trimmed = text.strip()
    parts = trimmed.split("-")
    if len(parts) == 3 and 1 <= len(parts[0]) <= 2 and parts[0].isdigit():
        day, month, year = parts
        if 1 <= len(month) <= 2 and month.isdigit():
            return f"{year}-{month.zfill(2)}-{day.zfill(2)}"
        return f"{year}-{month}-{day}"
    return trimmed


def parse_date(value: Any, *, label: str) -> date:
    """Parse a day-first or ISO date into a :class:`date`."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValidationFailure(f"Invalid {label}", f"{label} must be a date string")
    try:
        return date.fromisoformat(reorder_day_first(value))
    except ValueError as exc:
        raise ValidationFailure(
            f"Invalid {label}",
            f"{label} must be a valid date in DD-MM-YYYY or YYYY-MM-DD format",
        ) from exc


def split_who_benefits(raw: str) -> List[str]:
    """Split a who-benefits cell into trimmed, non-empty pieces.

    One layer of surrounding literal double quotes is removed first.
    """

    cleaned = raw.strip()
    if cleaned.startswith('"'):
        cleaned = cleaned[1:]
    if cleaned.endswith('"'):
        cleaned = cleaned[:-1]
    return [piece.strip() for piece in cleaned.split(",") if piece.strip()]


def invalid_beneficiaries(pieces: Iterable[str]) -> List[str]:
    return [piece for piece in pieces if not Beneficiary.is_valid(piece)]


def format_who_benefits(pieces: Sequence[str]) -> str:
    return ", ".join(pieces)


def who_benefits_message(invalid: Sequence[str], *, label: str = "Who Benefits") -> str:
    return (
        f"{label} must be one or more of: {', '.join(Beneficiary.values())}. "
        f"Invalid values: {', '.join(invalid)}"
    )


def enum_message(label: str, enum_cls: type[FieldEnum]) -> str:
    return f"{label} must be one of: {', '.join(enum_cls.values())}"


def parse_who_benefits(value: Any) -> str:
    """Validate a who-benefits value and return its stored text form."""

    if isinstance(value, (list, tuple)):
        if not all(isinstance(item, str) for item in value):
            raise ValidationFailure("Invalid Who Benefits format", "Who Benefits values must be strings")
        value = ",".join(value)
    if not isinstance(value, str):
        raise ValidationFailure("Invalid Who Benefits format", "Who Benefits must be a string")
    pieces = split_who_benefits(value)
    if not pieces:
        raise ValidationFailure("Missing required fields", ["whoBenefits"])
    invalid = invalid_beneficiaries(pieces)
    if invalid:
        raise ValidationFailure(
            "Invalid Who Benefits values",
            who_benefits_message(invalid),
            invalidValues=invalid,
        )
    formatted = format_who_benefits(pieces)
    if not WHO_BENEFITS_PATTERN.match(formatted):
        raise ValidationFailure("Invalid Who Benefits format", f"Unexpected value: {formatted}")
    return formatted


def parse_effort(value: Any, *, label: str = "Effort Level") -> float | None:
    """Return the effort score as a float, ``None`` when absent."""

    if is_blank(value):
        return None
    if isinstance(value, bool):
        raise ValidationFailure(f"Invalid {label}", f"{label} must be a number")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError as exc:
            raise ValidationFailure(f"Invalid {label}", f"{label} must be a number") from exc
    else:
        raise ValidationFailure(f"Invalid {label}", f"{label} must be a number")
    if math.isnan(number) or math.isinf(number):
        raise ValidationFailure(f"Invalid {label}", f"{label} must be a number")
    if number < 0:
        raise ValidationFailure(
            f"Invalid {label}", f"{label} must be greater than or equal to 0"
        )
    return number


def parse_enum(value: Any, enum_cls: type[FieldEnum], *, label: str) -> str:
    if not isinstance(value, str) or not enum_cls.is_valid(value):
        raise ValidationFailure(f"Invalid {label} value", enum_message(label, enum_cls))
    return enum_cls.from_value(value).value


def parse_flag(value: Any, *, label: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValidationFailure(f"Invalid {label} value", f"{label} must be true or false")


def _clean_wire_values(values: Mapping[str, Any]) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}
    for key, value in values.items():
        label = FIELD_LABELS.get(key, key)
        if key in TEXT_FIELDS:
            if value is not None and not isinstance(value, str):
                raise ValidationFailure(f"Invalid {label} value", f"{label} must be text")
            cleaned[key] = blank_to_none(value)
        elif key in ENUM_FIELDS:
            cleaned[key] = None if is_blank(value) else parse_enum(value, ENUM_FIELDS[key], label=label)
        elif key == "whoBenefits":
            cleaned[key] = parse_who_benefits(value)
        elif key == "effortLevel":
            cleaned[key] = parse_effort(value, label=label)
        elif key in ("dateOfRequest", "timeline"):
            cleaned[key] = None if is_blank(value) else parse_date(value, label=label)
        elif key in FLAG_FIELDS:
            cleaned[key] = parse_flag(value, label=label)
    if "rationale" in cleaned and cleaned["rationale"] is None:
        cleaned["rationale"] = RATIONALE_SENTINEL
    return cleaned


def validate_create_payload(payload: Any) -> Dict[str, Any]:
    """Validate a JSON creation body and return stored column values."""

    if not isinstance(payload, Mapping):
        raise ValidationFailure("Invalid request body", "Expected a JSON object")
    missing = missing_fields(payload, JSON_REQUIRED_FIELDS)
    if missing:
        raise ValidationFailure("Missing required fields", missing)
    wire = writable_wire_fields(payload)
    wire.setdefault("rationale", None)
    cleaned = _clean_wire_values(wire)
    if cleaned.get("status") is None:
        cleaned["status"] = DEFAULT_STATUS.value
    if cleaned.get("priorityLevel") is None:
        cleaned["priorityLevel"] = DEFAULT_PRIORITY.value
    for flag in FLAG_FIELDS:
        cleaned.setdefault(flag, False)
    return to_columns(cleaned)


def validate_update_payload(payload: Any) -> Dict[str, Any]:
    """Validate an update body; only the keys present are checked and returned."""

    if not isinstance(payload, Mapping):
        raise ValidationFailure("Invalid request body", "Expected a JSON object")
    wire = writable_wire_fields(payload)
    blanked = [name for name in JSON_REQUIRED_FIELDS if name in wire and is_blank(wire[name])]
    if blanked:
        raise ValidationFailure("Missing required fields", blanked)
    cleaned = _clean_wire_values(wire)
    for key in ("status", "priorityLevel"):
        if key in cleaned and cleaned[key] is None:
            raise ValidationFailure("Missing required fields", [key])
    if not cleaned:
        raise ValidationFailure("No updatable fields supplied", sorted(WIRE_FIELDS_FOR_UPDATE))
    return to_columns(cleaned)
