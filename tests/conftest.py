"""Shared fixtures: record builders and an in-memory store."""

from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from app.models.records import HealthCheck, RepairItem, RepairOption
from app.services import health_check_store
from app.services.errors import HealthCheckNotFound
from app.services.status_classifier import is_active

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def make_hc(id: str = "hc1", status: str = "created", **kwargs) -> HealthCheck:
    kwargs.setdefault("created_at", NOW)
    return HealthCheck(id=id, status=status, **kwargs)


def make_item(id: str, health_check_id: str = "hc1", **kwargs) -> RepairItem:
    return RepairItem(id=id, health_check_id=health_check_id, **kwargs)


class FakeStore:
    """In-memory stand-in for HealthCheckStore; ignores date filters."""

    def __init__(
        self,
        health_checks: Optional[List[HealthCheck]] = None,
        repair_items: Optional[List[RepairItem]] = None,
        repair_options: Optional[List[RepairOption]] = None,
        status_history: Optional[Dict[str, list]] = None,
        technicians: Optional[list] = None,
        time_entries: Optional[list] = None,
        user_names: Optional[Dict[str, str]] = None,
        error: Optional[Exception] = None
    ):
        self.health_checks = health_checks or []
        self.repair_items = repair_items or []
        self.repair_options = repair_options or []
        self.status_history = status_history or {}
        self.technicians = technicians or []
        self.time_entries = time_entries or []
        self.user_names = user_names or {}
        self.error = error
        self.calls: List[str] = []

    def _record(self, name: str):
        self.calls.append(name)
        if self.error is not None:
            raise self.error

    async def get_health_check(self, health_check_id, organization_id):
        self._record("get_health_check")
        for hc in self.health_checks:
            if hc.id == health_check_id:
                return hc
        raise HealthCheckNotFound(health_check_id)

    async def list_health_checks_created(self, organization_id, start, end, site_id=None,
                                         technician_id=None, advisor_id=None):
        self._record("list_health_checks_created")
        return list(self.health_checks)

    async def list_cohort(self, organization_id, start, end, site_id=None, inclusive_end=False):
        self._record("list_cohort")
        return list(self.health_checks)

    async def list_active_health_checks(self, organization_id, site_id=None, technician_id=None,
                                        advisor_id=None, created_from=None, created_to=None):
        self._record("list_active_health_checks")
        return [hc for hc in self.health_checks if is_active(hc.status)]

    async def list_technician_health_checks(self, organization_id, technician_ids, completed_since):
        self._record("list_technician_health_checks")
        return [hc for hc in self.health_checks if hc.technician_id in technician_ids]

    async def list_repair_items(self, health_check_ids):
        self._record("list_repair_items")
        return [i for i in self.repair_items if i.health_check_id in health_check_ids]

    async def list_repair_options(self, option_ids):
        self._record("list_repair_options")
        return [o for o in self.repair_options if o.id in option_ids]

    async def list_status_history(self, health_check_id):
        self._record("list_status_history")
        return list(self.status_history.get(health_check_id, []))

    async def list_time_entries(self, technician_ids, since):
        self._record("list_time_entries")
        return [e for e in self.time_entries if e.technician_id in technician_ids]

    async def list_technicians(self, organization_id, site_id=None):
        self._record("list_technicians")
        return list(self.technicians)

    async def get_user_name(self, user_id):
        self._record("get_user_name")
        return self.user_names.get(user_id)


@pytest.fixture
def use_store(monkeypatch):
    """Install a FakeStore as the store singleton."""
    def _install(store: FakeStore) -> FakeStore:
        monkeypatch.setattr(health_check_store, "_store", store)
        return store
    return _install
