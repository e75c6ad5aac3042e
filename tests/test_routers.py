"""API tests with an in-memory store."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from app.models.records import RepairItem, StatusHistoryEntry, Technician
from app.routers import dashboard, kpi
from app.services.errors import StorageError
from main import app

from tests.conftest import NOW, FakeStore, make_hc, make_item


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(dashboard, "_now", lambda: NOW)
    monkeypatch.setattr(kpi, "_now", lambda: NOW)
    return TestClient(app)


@pytest.fixture
def workshop(use_store):
    """One inspection with the customer, one on the ramp, one finished."""
    return use_store(FakeStore(
        health_checks=[
            make_hc(
                "hc1", "sent",
                sent_at=NOW - timedelta(hours=2),
                first_opened_at=NOW - timedelta(hours=1),
                promised_at=NOW - timedelta(hours=1),
                token_expires_at=NOW + timedelta(hours=2),
            ),
            make_hc("hc2", "in_progress", technician_id="t1", tech_started_at=NOW - timedelta(minutes=20)),
            make_hc("hc3", "completed"),
        ],
        repair_items=[
            make_item("i1", "hc1", total_inc_vat=100, rag_statuses=["red"], outcome_status="authorised"),
            make_item("i2", "hc1", total_inc_vat=50, rag_statuses=["amber"], outcome_status="declined"),
        ],
        technicians=[Technician(id="t1", first_name="Sam", last_name="Tech")],
    ))


# ============== App ==============

def test_root_and_health(client):
    assert client.get("/").json()["status"] == "healthy"
    assert "vat_rate" in client.get("/health").json()


# ============== Dashboard ==============

def test_summary(client, workshop):
    data = client.get("/api/dashboard/summary").json()

    assert data["metrics"] == {
        "total": 3,
        "completed": 1,
        "conversion_rate": 100.0,
        "avg_response_time_minutes": 60,
        "total_value_sent": 150.0,
        "total_value_authorised": 100.0,
        "total_value_declined": 50.0,
    }
    assert data["status_counts"] == {"sent": 1, "in_progress": 1, "completed": 1}
    assert data["column_counts"]["customer"] == 1
    assert data["column_counts"]["technician"] == 1
    assert sum(data["column_counts"].values()) == 2
    assert data["alerts"] == {"overdue_count": 1, "expiring_links_count": 1}


def test_summary_rejects_bad_date(client, workshop):
    response = client.get("/api/dashboard/summary", params={"date_from": "yesterday"})
    assert response.status_code == 400


def test_board(client, workshop):
    data = client.get("/api/dashboard/board").json()

    assert list(data["columns"]) == ["technician", "tech_done", "advisor", "customer", "actioned"]
    assert data["total_count"] == 2
    assert data["columns"]["customer"]["title"] == "With Customer"

    card = data["columns"]["customer"]["cards"][0]
    assert card["id"] == "hc1"
    assert card["total_amount"] == 150.0
    assert card["authorised_amount"] == 100.0
    assert card["is_overdue"] is True
    assert card["alert_type"] == "overdue"
    assert card["workflow_status"]["sent"] == "complete"
    assert card["workflow_status"]["authorised"] == "in_progress"

    tech_card = data["columns"]["technician"]["cards"][0]
    assert tech_card["valid_transitions"] == ["tech_completed", "paused"]
    assert tech_card["workflow_status"]["labour"] == "na"


def test_board_survives_non_numeric_totals(client, use_store):
    use_store(FakeStore(
        health_checks=[make_hc("hc1", "assigned")],
        repair_items=[
            RepairItem.from_row({"id": "i1", "health_check_id": "hc1", "total_inc_vat": "NaN"}),
            RepairItem.from_row({"id": "i2", "health_check_id": "hc1", "total_inc_vat": "100"}),
        ],
    ))
    response = client.get("/api/dashboard/board")

    assert response.status_code == 200
    assert response.json()["columns"]["technician"]["cards"][0]["total_amount"] == 100.0


def test_queues(client, workshop):
    data = client.get("/api/dashboard/queues").json()
    assert data["needs_attention"]["total"] == 1
    assert data["needs_attention"]["items"][0]["alert_type"] == "overdue"
    assert data["technician_queue"]["total"] == 1
    assert data["advisor_queue"]["total"] == 0
    assert data["customer_queue"]["total"] == 1


def test_queues_are_capped(client, use_store):
    use_store(FakeStore(health_checks=[make_hc(f"hc{i}", "assigned") for i in range(15)]))
    queue = client.get("/api/dashboard/queues").json()["technician_queue"]
    assert queue["total"] == 15
    assert len(queue["items"]) == 10


def test_timeline(client, use_store):
    created = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
    use_store(FakeStore(
        health_checks=[make_hc("hc1", "in_progress", created_at=created)],
        status_history={"hc1": [
            StatusHistoryEntry(id="h1", health_check_id="hc1", from_status="created", to_status="assigned",
                               changed_at=created + timedelta(minutes=10)),
            StatusHistoryEntry(id="h2", health_check_id="hc1", from_status="assigned", to_status="in_progress",
                               changed_at=created + timedelta(minutes=40)),
        ]},
    ))
    data = client.get("/api/dashboard/timeline/hc1").json()

    assert [e["duration_formatted"] for e in data["timeline"]] == ["0m", "10m", "30m"]
    assert data["total_duration_minutes"] == 40


def test_timeline_not_found(client, use_store):
    use_store(FakeStore())
    assert client.get("/api/dashboard/timeline/nope").status_code == 404


def test_technicians(client, workshop):
    data = client.get("/api/dashboard/technicians").json()
    assert data["technicians"][0]["status"] == "working"
    assert data["technicians"][0]["current_job"]["id"] == "hc2"
    assert data["summary"]["working"] == 1


def test_today(client, workshop):
    data = client.get("/api/dashboard/today").json()
    assert data["date"] == "2024-03-15"
    assert data["financial"]["total_identified"] == 150.0
    assert data["financial"]["conversion_rate"] == 66.7
    assert data["rag_breakdown"]["red"]["authorised_count"] == 1


def test_storage_failure_maps_to_503(client, use_store):
    use_store(FakeStore(error=StorageError("list_active_health_checks")))
    assert client.get("/api/dashboard/board").status_code == 503
    assert client.get("/api/dashboard/summary").status_code == 503


# ============== Health Checks ==============

def test_workflow_status(client, workshop):
    data = client.get("/api/health-checks/hc1/workflow-status").json()
    assert data["workflow_status"] == {
        "technician": "pending",
        "labour": "pending",
        "parts": "pending",
        "authorised": "in_progress",
        "sent": "complete",
    }
    assert data["repair_item_count"] == 2


def test_workflow_status_not_found(client, workshop):
    assert client.get("/api/health-checks/nope/workflow-status").status_code == 404


def test_transitions(client, workshop):
    data = client.get("/api/health-checks/hc2/transitions").json()
    assert data["column"] == "technician"
    assert data["drag_transitions"] == ["tech_completed", "paused"]
    assert "cancelled" in data["lifecycle_transitions"]
    assert data["is_terminal"] is False
    assert data["is_allowed"] is None


@pytest.mark.parametrize("to_status,allowed", [
    ("tech_completed", True),
    ("paused", True),
    ("sent", False),
])
def test_transitions_checks_requested_move(client, workshop, to_status, allowed):
    data = client.get("/api/health-checks/hc2/transitions", params={"to_status": to_status}).json()
    assert data["to_status"] == to_status
    assert data["is_allowed"] is allowed


# ============== KPI ==============

def test_monthly_kpis(client, use_store):
    store = use_store(FakeStore(
        health_checks=[make_hc(f"hc{i}", "sent", advisor_id="a1", sent_at=NOW) for i in range(5)],
        repair_items=[make_item("i1", "hc0", total_inc_vat=200, rag_statuses=["red"], customer_approved=True)],
        user_names={"a1": "Jo Bloggs"},
    ))
    data = client.get("/api/kpi/monthly").json()

    assert data["current"]["hc_count"] == 5
    assert data["current"]["period"]["days"] == 15
    assert data["current"]["red_sold_pct"] == 100.0
    assert data["current"]["conversion_rate"] == 20.0
    assert data["deltas"]["hc_count"] == 5
    assert data["top_advisor"]["advisor_name"] == "Jo Bloggs"
    assert data["top_advisor"]["qualified"] is True
    assert store.calls.count("list_cohort") == 1


def test_monthly_kpis_split_cohort_by_due_date(client, use_store):
    feb = datetime(2024, 2, 10, tzinfo=timezone.utc)
    use_store(FakeStore(health_checks=[
        make_hc("cur", "sent", sent_at=NOW),
        # Created last month but due this month
        make_hc("due", "created", created_at=feb, due_date=NOW - timedelta(days=1)),
        make_hc("prev1", "sent", created_at=feb, sent_at=feb),
        make_hc("prev2", "created", created_at=feb),
        make_hc("old", "created", created_at=datetime(2024, 1, 5, tzinfo=timezone.utc)),
    ]))
    data = client.get("/api/kpi/monthly").json()

    assert data["current"]["hc_count"] == 2
    assert data["previous"]["hc_count"] == 2
    assert data["previous"]["period"]["days"] == 29
    assert data["deltas"]["hc_count"] == 0


def test_monthly_kpis_without_qualified_advisor(client, use_store):
    use_store(FakeStore(health_checks=[make_hc("hc1", "sent", advisor_id="a1")]))
    data = client.get("/api/kpi/monthly", params={"include_advisors": True}).json()
    assert data["top_advisor"] is None
    assert data["advisors"][0]["qualified"] is False
