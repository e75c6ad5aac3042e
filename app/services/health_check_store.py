"""
Health Check Store

Read-only Supabase access for the dashboard. This is the only module that
talks to storage; rows are normalized into records here so the calculation
code never sees join shapes or raw strings.

Every query runs in a worker thread (the Supabase client is blocking) so that
independent fetches for one request can be gathered concurrently. Any error
from Supabase is logged and re-raised as StorageError.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from supabase import create_client, Client

from app import settings
from app.models.records import (
    HealthCheck,
    RepairItem,
    RepairOption,
    StatusHistoryEntry,
    Technician,
    TimeEntry,
)
from app.services.errors import HealthCheckNotFound, StorageError
from app.services.status_classifier import PRE_ARRIVAL_STATUSES, TERMINAL_STATUSES

logger = logging.getLogger(__name__)

HEALTH_CHECK_SELECT = """
    id, status, organization_id, site_id, technician_id, advisor_id,
    created_at, updated_at, due_date, promised_at, token_expires_at,
    sent_at, first_opened_at, tech_started_at, tech_completed_at,
    arrived_at, deleted_at, customer_waiting,
    vehicle:vehicles(id, registration, make, model),
    technician:users!health_checks_technician_id_fkey(id, first_name, last_name),
    advisor:users!health_checks_advisor_id_fkey(id, first_name, last_name)
"""

REPAIR_ITEM_SELECT = """
    id, health_check_id, parent_repair_item_id, is_group, selected_option_id,
    labour_total, parts_total, total_inc_vat, labour_status, parts_status,
    outcome_status, customer_approved, deleted_at,
    check_results:repair_item_check_results(check_result:check_results(rag_status))
"""


def _iso(value: datetime) -> str:
    return value.isoformat()


class HealthCheckStore:
    """Supabase reads for health checks and their related rows"""

    def __init__(self, client: Optional[Client] = None):
        if client is None:
            if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
                raise ValueError("SUPABASE_URL and SUPABASE_KEY/SUPABASE_SERVICE_KEY must be set")
            client = create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
        self.supabase: Client = client

    async def _execute(self, operation: str, query) -> List[Dict[str, Any]]:
        """Run a query off the event loop and return its rows."""
        try:
            result = await asyncio.to_thread(query.execute)
        except Exception as e:
            logger.error(f"[Store] {operation} failed: {e}")
            raise StorageError(operation, e) from e
        return result.data or []

    def _health_checks(self, organization_id: str, site_id: Optional[str] = None):
        query = self.supabase.table("health_checks") \
            .select(HEALTH_CHECK_SELECT) \
            .eq("organization_id", organization_id) \
            .is_("deleted_at", "null")
        if site_id:
            query = query.eq("site_id", site_id)
        return query

    # =========================================================================
    # Health Checks
    # =========================================================================

    async def get_health_check(self, health_check_id: str, organization_id: str) -> HealthCheck:
        """Fetch one health check scoped to the organization."""
        rows = await self._execute(
            "get_health_check",
            self._health_checks(organization_id).eq("id", health_check_id).limit(1)
        )
        if not rows:
            raise HealthCheckNotFound(health_check_id)
        return HealthCheck.from_row(rows[0])

    async def list_health_checks_created(
        self,
        organization_id: str,
        start: datetime,
        end: datetime,
        site_id: Optional[str] = None,
        technician_id: Optional[str] = None,
        advisor_id: Optional[str] = None
    ) -> List[HealthCheck]:
        """Health checks created in [start, end)."""
        query = self._health_checks(organization_id, site_id) \
            .gte("created_at", _iso(start)) \
            .lt("created_at", _iso(end))
        if technician_id:
            query = query.eq("technician_id", technician_id)
        if advisor_id:
            query = query.eq("advisor_id", advisor_id)
        rows = await self._execute("list_health_checks_created", query)
        return [HealthCheck.from_row(r) for r in rows]

    async def list_cohort(
        self,
        organization_id: str,
        start: datetime,
        end: datetime,
        site_id: Optional[str] = None,
        inclusive_end: bool = False
    ) -> List[HealthCheck]:
        """
        Health checks due in [start, end), or created in it when they have no due date.

        Two queries, merged and deduplicated by id.
        """
        def _upper(query, column):
            return query.lte(column, _iso(end)) if inclusive_end else query.lt(column, _iso(end))

        due_query = _upper(self._health_checks(organization_id, site_id).gte("due_date", _iso(start)), "due_date")
        created_query = _upper(
            self._health_checks(organization_id, site_id).is_("due_date", "null").gte("created_at", _iso(start)),
            "created_at"
        )
        due_rows, created_rows = await asyncio.gather(
            self._execute("list_cohort.due_date", due_query),
            self._execute("list_cohort.created_at", created_query),
        )

        merged: Dict[str, HealthCheck] = {}
        for row in due_rows + created_rows:
            hc = HealthCheck.from_row(row)
            merged.setdefault(hc.id, hc)
        return list(merged.values())

    async def list_active_health_checks(
        self,
        organization_id: str,
        site_id: Optional[str] = None,
        technician_id: Optional[str] = None,
        advisor_id: Optional[str] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None
    ) -> List[HealthCheck]:
        """Health checks still on the board (not terminal, not awaiting arrival)."""
        excluded = set(TERMINAL_STATUSES) | set(PRE_ARRIVAL_STATUSES)
        query = self._health_checks(organization_id, site_id) \
            .not_.in_("status", sorted(excluded)) \
            .order("created_at", desc=True)
        if technician_id:
            query = query.eq("technician_id", technician_id)
        if advisor_id:
            query = query.eq("advisor_id", advisor_id)
        if created_from:
            query = query.gte("created_at", _iso(created_from))
        if created_to:
            query = query.lte("created_at", _iso(created_to))
        rows = await self._execute("list_active_health_checks", query)
        return [HealthCheck.from_row(r) for r in rows]

    async def list_technician_health_checks(
        self,
        organization_id: str,
        technician_ids: List[str],
        completed_since: datetime
    ) -> List[HealthCheck]:
        """Open work (assigned / in progress) plus work completed since a moment."""
        if not technician_ids:
            return []
        open_query = self._health_checks(organization_id) \
            .in_("technician_id", technician_ids) \
            .in_("status", ["assigned", "in_progress"])
        done_query = self._health_checks(organization_id) \
            .in_("technician_id", technician_ids) \
            .gte("tech_completed_at", _iso(completed_since))
        open_rows, done_rows = await asyncio.gather(
            self._execute("list_technician_health_checks.open", open_query),
            self._execute("list_technician_health_checks.done", done_query),
        )
        merged: Dict[str, HealthCheck] = {}
        for row in open_rows + done_rows:
            hc = HealthCheck.from_row(row)
            merged.setdefault(hc.id, hc)
        return list(merged.values())

    # =========================================================================
    # Repair Items
    # =========================================================================

    async def list_repair_items(self, health_check_ids: List[str]) -> List[RepairItem]:
        """Repair items (with linked RAG results) for the given health checks."""
        if not health_check_ids:
            return []
        query = self.supabase.table("repair_items") \
            .select(REPAIR_ITEM_SELECT) \
            .in_("health_check_id", health_check_ids)
        rows = await self._execute("list_repair_items", query)
        return [RepairItem.from_row(r) for r in rows]

    async def list_repair_options(self, option_ids: List[str]) -> List[RepairOption]:
        if not option_ids:
            return []
        query = self.supabase.table("repair_options") \
            .select("id, labour_total, parts_total, total_inc_vat") \
            .in_("id", sorted(set(option_ids)))
        rows = await self._execute("list_repair_options", query)
        return [RepairOption.from_row(r) for r in rows]

    # =========================================================================
    # History / Time / Users
    # =========================================================================

    async def list_status_history(self, health_check_id: str) -> List[StatusHistoryEntry]:
        query = self.supabase.table("health_check_status_history") \
            .select("""
                id, health_check_id, from_status, to_status, changed_at, changed_by,
                user:users!health_check_status_history_changed_by_fkey(first_name, last_name, role)
            """) \
            .eq("health_check_id", health_check_id) \
            .order("changed_at", desc=False)
        rows = await self._execute("list_status_history", query)
        entries = [StatusHistoryEntry.from_row(r) for r in rows]
        return [e for e in entries if e.changed_at is not None]

    async def list_time_entries(self, technician_ids: List[str], since: datetime) -> List[TimeEntry]:
        """Entries clocked in since a moment, plus any still open."""
        if not technician_ids:
            return []
        select = "health_check_id, technician_id, clock_in_at, clock_out_at, duration_minutes"
        recent_query = self.supabase.table("technician_time_entries") \
            .select(select) \
            .in_("technician_id", technician_ids) \
            .gte("clock_in_at", _iso(since))
        open_query = self.supabase.table("technician_time_entries") \
            .select(select) \
            .in_("technician_id", technician_ids) \
            .is_("clock_out_at", "null")
        recent_rows, open_rows = await asyncio.gather(
            self._execute("list_time_entries.recent", recent_query),
            self._execute("list_time_entries.open", open_query),
        )
        seen = set()
        entries = []
        for row in recent_rows + open_rows:
            key = (row.get("technician_id"), row.get("clock_in_at"))
            if key in seen:
                continue
            seen.add(key)
            entry = TimeEntry.from_row(row)
            if entry.clock_in_at is not None:
                entries.append(entry)
        return entries

    async def list_technicians(self, organization_id: str, site_id: Optional[str] = None) -> List[Technician]:
        query = self.supabase.table("users") \
            .select("id, first_name, last_name, site_id") \
            .eq("organization_id", organization_id) \
            .eq("role", "technician") \
            .eq("is_active", True)
        if site_id:
            query = query.eq("site_id", site_id)
        rows = await self._execute("list_technicians", query)
        return [Technician.from_row(r) for r in rows]

    async def get_user_name(self, user_id: str) -> Optional[str]:
        query = self.supabase.table("users") \
            .select("first_name, last_name") \
            .eq("id", user_id) \
            .limit(1)
        rows = await self._execute("get_user_name", query)
        if not rows:
            return None
        return f"{rows[0].get('first_name') or ''} {rows[0].get('last_name') or ''}".strip() or None


# Singleton instance
_store: Optional[HealthCheckStore] = None


def get_store() -> HealthCheckStore:
    """Get or create the health check store"""
    global _store
    if _store is None:
        _store = HealthCheckStore()
    return _store
