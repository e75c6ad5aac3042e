"""Tests for row normalization."""

from datetime import datetime, timezone

import pytest

from app.models.records import (
    HealthCheck,
    RepairItem,
    first_or_none,
    parse_timestamp,
    person_name,
    to_float,
)


def test_first_or_none_accepts_object_or_list():
    assert first_or_none({"id": 1}) == {"id": 1}
    assert first_or_none([{"id": 1}, {"id": 2}]) == {"id": 1}
    assert first_or_none([]) is None
    assert first_or_none(None) is None
    assert first_or_none("x") is None


def test_to_float_falls_back():
    assert to_float("12.5") == 12.5
    assert to_float(None) == 0.0
    assert to_float("abc", default=1.0) == 1.0


@pytest.mark.parametrize("value,expected", [
    ("NaN", 0.0),
    ("nan", 0.0),
    ("Infinity", 0.0),
    ("-inf", 0.0),
    (float("nan"), 0.0),
    (float("inf"), 0.0),
    ("1e999", 0.0),
    ("12.50abc", 12.5),
    (" 42", 42.0),
    ("-3.5e2", -350.0),
    (".5", 0.5),
    ("", 0.0),
    (True, 0.0),
    (7, 7.0),
])
def test_to_float_matches_leading_number_parsing(value, expected):
    assert to_float(value) == expected


def test_parse_timestamp():
    assert parse_timestamp("2024-01-01T09:00:00Z") == datetime(2024, 1, 1, 9, tzinfo=timezone.utc)
    assert parse_timestamp("2024-01-01T10:00:00+01:00") == datetime(2024, 1, 1, 9, tzinfo=timezone.utc)
    assert parse_timestamp("2024-01-01T09:00:00").tzinfo is not None
    assert parse_timestamp("") is None
    assert parse_timestamp("not a date") is None


def test_person_name():
    assert person_name({"first_name": "Jo", "last_name": "Bloggs"}) == "Jo Bloggs"
    assert person_name({"first_name": "Jo"}) == "Jo"
    assert person_name({}) is None


def test_health_check_from_row_normalizes_joins():
    hc = HealthCheck.from_row({
        "id": "hc1",
        "status": "sent",
        "sent_at": "2024-01-01T09:00:00Z",
        "due_date": None,
        "created_at": "2024-01-01T08:00:00Z",
        "vehicle": [{"registration": "AB12 CDE"}],
        "technician": {"id": "t1", "first_name": "Sam"},
        "advisor": [],
    })
    assert hc.technician_id == "t1"
    assert hc.advisor is None
    assert hc.vehicle == {"registration": "AB12 CDE"}
    assert hc.cohort_date == hc.created_at
    assert hc.to_dict()["sent_at"] == "2024-01-01T09:00:00+00:00"


def test_repair_item_from_row():
    item = RepairItem.from_row({
        "id": "i1",
        "health_check_id": "hc1",
        "parent_repair_item_id": "g1",
        "labour_total": "100.00",
        "parts_total": None,
        "total_inc_vat": "bad",
        "customer_approved": None,
        "check_results": [
            {"check_result": {"rag_status": "amber"}},
            {"check_result": [{"rag_status": "red"}]},
            {"check_result": None},
        ],
    })
    assert item.parent_id == "g1"
    assert item.labour_total == 100.0
    assert item.parts_total is None
    assert item.total_inc_vat == 0.0
    assert item.customer_approved is None
    assert item.labour_status == "pending"
    assert item.rag_statuses == ["amber", "red"]
    assert not item.is_deleted
