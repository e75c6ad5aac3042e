"""Tests for the Supabase store using a chainable fake client."""

import asyncio
from datetime import datetime, timezone

import pytest

from app.services.errors import HealthCheckNotFound, StorageError
from app.services.health_check_store import HealthCheckStore

START = datetime(2024, 3, 1, tzinfo=timezone.utc)
END = datetime(2024, 4, 1, tzinfo=timezone.utc)


class FakeResult:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Records builder calls; execute() answers from the table's responder."""

    def __init__(self, table, responder):
        self.table = table
        self.responder = responder
        self.calls = []

    @property
    def not_(self):
        self.calls.append(("not_",))
        return self

    def __getattr__(self, name):
        def _method(*args, **kwargs):
            self.calls.append((name,) + args)
            return self
        return _method

    def execute(self):
        return FakeResult(self.responder(self))


class FakeClient:
    def __init__(self, responders):
        self.responders = responders
        self.queries = []

    def table(self, name):
        query = FakeQuery(name, self.responders.get(name, lambda q: []))
        self.queries.append(query)
        return query


def _run(coro):
    return asyncio.run(coro)


def test_get_health_check_scopes_to_organization():
    client = FakeClient({"health_checks": lambda q: [{"id": "hc1", "status": "sent"}]})
    hc = _run(HealthCheckStore(client).get_health_check("hc1", "org1"))

    assert hc.id == "hc1"
    calls = client.queries[0].calls
    assert ("eq", "organization_id", "org1") in calls
    assert ("is_", "deleted_at", "null") in calls
    assert ("eq", "id", "hc1") in calls


def test_get_health_check_not_found():
    client = FakeClient({"health_checks": lambda q: []})
    with pytest.raises(HealthCheckNotFound):
        _run(HealthCheckStore(client).get_health_check("missing", "org1"))


def test_storage_failure_is_wrapped():
    def _boom(query):
        raise ConnectionError("connection reset")

    client = FakeClient({"health_checks": _boom})
    with pytest.raises(StorageError) as exc_info:
        _run(HealthCheckStore(client).list_active_health_checks("org1"))

    assert exc_info.value.retryable
    assert exc_info.value.operation == "list_active_health_checks"
    assert isinstance(exc_info.value.cause, ConnectionError)


def test_active_health_checks_exclude_terminal_and_pre_arrival():
    client = FakeClient({"health_checks": lambda q: []})
    _run(HealthCheckStore(client).list_active_health_checks("org1", site_id="s1"))

    calls = client.queries[0].calls
    assert ("not_",) in calls
    in_call = next(c for c in calls if c[0] == "in_")
    assert in_call[1] == "status"
    assert {"completed", "cancelled", "expired", "no_show", "awaiting_arrival"} <= set(in_call[2])
    assert ("eq", "site_id", "s1") in calls


def test_cohort_merges_due_and_created_queries():
    def _rows(query):
        if ("is_", "due_date", "null") in query.calls:
            return [{"id": "hc2", "status": "created"}, {"id": "hc1", "status": "created"}]
        return [{"id": "hc1", "status": "created", "due_date": "2024-03-05T00:00:00Z"}]

    client = FakeClient({"health_checks": _rows})
    cohort = _run(HealthCheckStore(client).list_cohort("org1", START, END, inclusive_end=True))

    assert sorted(hc.id for hc in cohort) == ["hc1", "hc2"]
    assert all(any(c[0] == "lte" for c in q.calls) for q in client.queries)


def test_empty_id_lists_skip_queries():
    client = FakeClient({})
    store = HealthCheckStore(client)
    assert _run(store.list_repair_items([])) == []
    assert _run(store.list_repair_options([])) == []
    assert _run(store.list_time_entries([], START)) == []
    assert client.queries == []


def test_time_entries_deduplicated():
    row = {"technician_id": "t1", "health_check_id": "hc1", "clock_in_at": "2024-03-01T09:00:00Z"}
    client = FakeClient({"technician_time_entries": lambda q: [row]})
    entries = _run(HealthCheckStore(client).list_time_entries(["t1"], START))
    assert len(entries) == 1
    assert entries[0].is_open


def test_get_user_name():
    client = FakeClient({"users": lambda q: [{"first_name": "Jo", "last_name": "Bloggs"}]})
    assert _run(HealthCheckStore(client).get_user_name("u1")) == "Jo Bloggs"


def test_missing_configuration(monkeypatch):
    from app import settings

    monkeypatch.setattr(settings, "SUPABASE_URL", None)
    with pytest.raises(ValueError):
        HealthCheckStore()
