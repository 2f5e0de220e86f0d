"""Translation between stored (snake_case) and API (camelCase) field names."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Mapping

from enhancement_tracker.models import Enhancement

# Stored column -> API key, in API output order.
FIELD_MAP: Dict[str, str] = {
    "id": "id",
    "request_id": "requestId",
    "request_name": "requestName",
    "request_description": "requestDescription",
    "rationale": "rationale",
    "requestor_name": "requestorName",
    "date_of_request": "dateOfRequest",
    "stakeholder": "stakeholder",
    "type_of_request": "typeOfRequest",
    "area_of_product": "areaOfProduct",
    "link_to_document": "linkToDocument",
    "desire_level": "desireLevel",
    "effort_level": "effortLevel",
    "difficulty_level": "difficultyLevel",
    "who_benefits": "whoBenefits",
    "status": "status",
    "priority_level": "priorityLevel",
    "accepted_denied_reason": "acceptedDeniedReason",
    "timeline": "timeline",
    "documentation_updated": "documentationUpdated",
    "storylanes_updated": "storylanesUpdated",
    "release_notes": "releaseNotes",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}

WIRE_TO_COLUMN: Dict[str, str] = {wire: column for column, wire in FIELD_MAP.items()}

# Keys the API owns; clients may not write them.
READ_ONLY_WIRE_KEYS = frozenset({"id", "requestId", "createdAt", "updatedAt"})


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


def to_wire(enhancement: Enhancement) -> Dict[str, Any]:
    """Serialise a stored enhancement into its camelCase API form."""

    return {wire: _encode(getattr(enhancement, column)) for column, wire in FIELD_MAP.items()}


def writable_wire_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Return the subset of *payload* that maps onto writable columns."""

    return {
        key: value
        for key, value in payload.items()
        if key in WIRE_TO_COLUMN and key not in READ_ONLY_WIRE_KEYS
    }


def to_columns(wire_values: Mapping[str, Any]) -> Dict[str, Any]:
    """Rename camelCase keys to their stored column names."""

    return {WIRE_TO_COLUMN[key]: value for key, value in wire_values.items()}
