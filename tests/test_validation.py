"""Tests for the shared field rules."""

from datetime import date
from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:  # pragma: no cover
    sys.path.insert(0, str(ROOT))

from enhancement_tracker import validation  # noqa: E402
from enhancement_tracker.validation import ValidationFailure  # noqa: E402


def _payload(**overrides):
    payload = {
        "requestName": "Bulk export",
        "requestDescription": "Export all purchase orders to CSV",
        "requestorName": "Dana",
        "dateOfRequest": "25-12-2024",
        "typeOfRequest": "New Feature",
        "areaOfProduct": "Buyer Portal",
        "desireLevel": "Must-have",
        "whoBenefits": "Clients - procurement, Internal",
    }
    payload.update(overrides)
    return payload


def test_day_first_dates_are_reordered_and_iso_dates_pass_through():
    assert validation.reorder_day_first("25-12-2024") == "2024-12-25"
    assert validation.reorder_day_first("2024-12-25") == "2024-12-25"
    assert validation.reorder_day_first("5-12-2024") == "2024-12-05"
    assert validation.reorder_day_first("5-1-2024") == "2024-01-05"
    assert validation.parse_date("5-12-2024", label="Date of Request") == date(2024, 12, 5)
    assert validation.parse_date("25-12-2024", label="Date of Request") == date(2024, 12, 25)
    assert validation.parse_date("2024-12-25", label="Date of Request") == date(2024, 12, 25)


def test_impossible_date_is_rejected():
    with pytest.raises(ValidationFailure) as err:
        validation.parse_date("31-02-2024", label="Date of Request")

    assert err.value.error == "Invalid Date of Request"


@pytest.mark.parametrize("value", [-1, "-0.5", "abc", True, float("nan")])
def test_invalid_effort_is_rejected(value):
    with pytest.raises(ValidationFailure):
        validation.parse_effort(value)


@pytest.mark.parametrize(
    ("value", "expected"),
    [(0, 0.0), ("3.5", 3.5), (None, None), ("  ", None), (12, 12.0)],
)
def test_valid_effort_is_accepted(value, expected):
    assert validation.parse_effort(value) == expected


def test_who_benefits_is_normalised():
    assert (
        validation.parse_who_benefits('"Suppliers,Internal "')
        == "Suppliers, Internal"
    )
    assert validation.parse_who_benefits(["Suppliers", "Clients - end users"]) == "Suppliers, Clients - end users"


def test_who_benefits_reports_invalid_values():
    with pytest.raises(ValidationFailure) as err:
        validation.parse_who_benefits("Suppliers, Partners")

    body = err.value.to_dict()
    assert body["error"] == "Invalid Who Benefits values"
    assert body["invalidValues"] == ["Partners"]
    assert "Invalid values: Partners" in body["details"]


def test_create_payload_applies_defaults():
    values = validation.validate_create_payload(_payload())

    assert values["date_of_request"] == date(2024, 12, 25)
    assert values["status"] == "submitted"
    assert values["priority_level"] == "Medium"
    assert values["rationale"] == "Not specified"
    assert values["documentation_updated"] is False
    assert values["storylanes_updated"] is False
    assert values["release_notes"] is False
    assert values["who_benefits"] == "Clients - procurement, Internal"
    assert "effort_level" not in values


def test_create_payload_lists_every_missing_field():
    payload = _payload(requestName="  ")
    del payload["whoBenefits"]

    with pytest.raises(ValidationFailure) as err:
        validation.validate_create_payload(payload)

    assert err.value.to_dict() == {
        "error": "Missing required fields",
        "details": ["requestName", "whoBenefits"],
    }


def test_create_payload_rejects_unknown_enum_value():
    with pytest.raises(ValidationFailure) as err:
        validation.validate_create_payload(_payload(areaOfProduct="Warehouse"))

    assert err.value.error == "Invalid Area of Product value"
    assert "Buyer Portal" in err.value.details


def test_create_payload_ignores_server_owned_keys():
    values = validation.validate_create_payload(_payload(id=99, requestId="REQ-999999", createdAt="x"))

    assert "id" not in values
    assert "request_id" not in values
    assert "created_at" not in values


def test_update_payload_is_partial():
    values = validation.validate_update_payload({"status": "review", "effortLevel": 2})

    assert values == {"status": "review", "effort_level": 2.0}


def test_update_payload_rejects_blanked_required_field():
    with pytest.raises(ValidationFailure) as err:
        validation.validate_update_payload({"requestorName": ""})

    assert err.value.details == ["requestorName"]


def test_update_payload_without_writable_fields_is_rejected():
    with pytest.raises(ValidationFailure) as err:
        validation.validate_update_payload({"requestId": "REQ-000001"})

    assert err.value.error == "No updatable fields supplied"


def test_flags_must_be_booleans():
    with pytest.raises(ValidationFailure):
        validation.validate_update_payload({"releaseNotes": "yes"})
