"""Tests for the enhancement store."""

from datetime import date
import re

import pytest

from enhancement_tracker import store as store_module
from enhancement_tracker.models import EnhancementNotFoundError, StoreError
from enhancement_tracker.store import EnhancementStore, format_request_id, temporary_request_id


def _values(**overrides):
    values = {
        "request_name": "Bulk export",
        "request_description": "Export all purchase orders to CSV",
        "rationale": "Not specified",
        "requestor_name": "Dana",
        "date_of_request": date(2024, 12, 25),
        "type_of_request": "New Feature",
        "area_of_product": "Buyer Portal",
        "desire_level": "Must-have",
        "who_benefits": "Internal",
        "status": "submitted",
        "priority_level": "Medium",
        "documentation_updated": False,
        "storylanes_updated": False,
        "release_notes": False,
    }
    values.update(overrides)
    return values


def test_format_request_id_zero_pads_to_six_digits():
    assert format_request_id(1) == "REQ-000001"
    assert format_request_id(123456) == "REQ-123456"
    assert format_request_id(42, "ENH") == "ENH-000042"


def test_temporary_request_id_uses_clock_milliseconds():
    assert temporary_request_id(lambda: 1700000000.5) == "TEMP-1700000000500"


def test_create_assigns_identifier_derived_from_key(store: EnhancementStore):
    first = store.create_enhancement(_values())
    second = store.create_enhancement(_values(request_name="Dark mode"))

    assert first.request_id == format_request_id(first.id)
    assert second.request_id == format_request_id(second.id)
    assert re.fullmatch(r"REQ-\d{6}", second.request_id)
    assert second.id > first.id


def test_read_after_write_returns_finalised_identifier(store: EnhancementStore):
    created = store.create_enhancement(_values())

    fetched = store.get_enhancement(created.id)

    assert fetched.request_id == created.request_id
    assert fetched.request_name == "Bulk export"
    assert fetched.date_of_request == date(2024, 12, 25)


def test_failed_identifier_finalisation_leaves_no_row(store: EnhancementStore, monkeypatch):
    def broken(_key, _prefix="REQ"):
        raise RuntimeError("identifier service down")

    monkeypatch.setattr(store_module, "format_request_id", broken)

    with pytest.raises(RuntimeError):
        store.create_enhancement(_values())

    assert store.list_enhancements() == []


def test_constraint_violation_is_reported_as_store_error(store: EnhancementStore):
    with pytest.raises(StoreError) as err:
        store.create_enhancement(_values(status="archived"))

    assert "CHECK constraint failed" in err.value.message
    assert store.list_enhancements() == []


def test_list_filters_by_status_and_search(store: EnhancementStore):
    store.create_enhancement(_values(request_name="Bulk export"))
    store.create_enhancement(_values(request_name="Dark mode", status="review"))
    store.create_enhancement(_values(request_name="Audit log", requestor_name="Sam 100%"))

    assert [e.request_name for e in store.list_enhancements(status="review")] == ["Dark mode"]
    assert [e.request_name for e in store.list_enhancements(search="EXPORT")] == ["Bulk export"]
    assert [e.request_name for e in store.list_enhancements(search="100%")] == ["Audit log"]
    assert store.list_enhancements(search="50%") == []


def test_list_returns_newest_first(store: EnhancementStore):
    store.create_enhancement(_values(request_name="Older"))
    store.create_enhancement(_values(request_name="Newer"))

    assert [e.request_name for e in store.list_enhancements()] == ["Newer", "Older"]


def test_update_changes_only_supplied_columns(store: EnhancementStore):
    created = store.create_enhancement(_values())

    updated = store.update_enhancement(created.id, {"status": "approved", "effort_level": 3.5})

    assert updated.status == "approved"
    assert updated.effort_level == 3.5
    assert updated.request_name == "Bulk export"
    assert updated.request_id == created.request_id


def test_missing_record_operations_raise_not_found(store: EnhancementStore):
    with pytest.raises(EnhancementNotFoundError):
        store.get_enhancement(999)
    with pytest.raises(EnhancementNotFoundError):
        store.update_enhancement(999, {"status": "review"})
    with pytest.raises(EnhancementNotFoundError):
        store.delete_enhancement(999)


def test_delete_removes_record(store: EnhancementStore):
    created = store.create_enhancement(_values())

    store.delete_enhancement(created.id)

    with pytest.raises(EnhancementNotFoundError):
        store.get_enhancement(created.id)


def test_status_counts_group_by_status(store: EnhancementStore):
    store.create_enhancement(_values())
    store.create_enhancement(_values())
    store.create_enhancement(_values(status="complete"))

    assert store.status_counts() == [
        {"status": "complete", "count": 1},
        {"status": "submitted", "count": 2},
    ]
