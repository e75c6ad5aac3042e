"""
Dashboard Endpoints

Workflow board, summary metrics, queues, timeline and technician workload.

Each request fetches a snapshot from the store, rolls repair items up once,
and derives columns, workflow statuses and SLA alerts from that snapshot.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from fastapi import APIRouter, HTTPException, Query

from app import settings
from app.models.enums import BoardColumn
from app.models.records import HealthCheck, parse_timestamp
from app.models.schemas import TimelineResponse
from app.services.daily_overview import build_daily_overview
from app.services.errors import HealthCheckNotFound, StorageError
from app.services.health_check_store import get_store
from app.services.repair_aggregator import HealthCheckRollup, load_rollups, rollup_for
from app.services.sla_alerts import evaluate_sla
from app.services.status_classifier import (
    COLUMN_ORDER,
    STATUS_GROUPS,
    classify_column,
    column_counts,
    drag_transitions,
)
from app.services.technician_workload import build_technician_workload
from app.services.timeline_builder import build_timeline, timeline_to_dict
from app.services.workflow_status import workflow_status_for

logger = logging.getLogger(__name__)

router = APIRouter()

QUEUE_PREVIEW_SIZE = 10
SUMMARY_COMPLETED_STATUSES = ("completed", "authorized", "declined")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _today_bounds(now: datetime) -> Tuple[datetime, datetime]:
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def _parse_date_param(value: Optional[str], name: str) -> Optional[datetime]:
    if not value:
        return None
    parsed = parse_timestamp(value)
    if parsed is None:
        raise HTTPException(status_code=400, detail=f"Invalid {name}: {value}")
    return parsed


def _card(hc: HealthCheck, rollup: HealthCheckRollup, now: datetime) -> Dict:
    """Board card: health check plus derived money, workflow and SLA fields."""
    sla = evaluate_sla(hc.promised_at, hc.token_expires_at, now)
    card = hc.to_dict()
    card.update({
        "column": classify_column(hc.status),
        "total_amount": round(rollup.identified_total, 2),
        "authorised_amount": round(rollup.authorised_total, 2),
        "workflow_status": workflow_status_for(hc, rollup).to_dict(),
        "is_overdue": sla.is_overdue,
        "is_expiring_soon": sla.is_expiring_soon,
        "alert_type": sla.alert_type,
        "valid_transitions": drag_transitions(hc.status),
    })
    return card


@router.get("/summary")
async def get_dashboard_summary(
    organization_id: str = Query(default=settings.DEFAULT_ORGANIZATION_ID, description="Organization ID"),
    date_from: Optional[str] = Query(None, description="Start (ISO 8601), default today"),
    date_to: Optional[str] = Query(None, description="End (ISO 8601), default tomorrow"),
    site_id: Optional[str] = Query(None),
    technician_id: Optional[str] = Query(None),
    advisor_id: Optional[str] = Query(None)
):
    """
    Summary metrics for the period plus current board state.

    Column counts and alerts cover every active health check, not just the
    period; they show where work is right now.
    """
    now = _now()
    today_start, tomorrow_start = _today_bounds(now)
    start = _parse_date_param(date_from, "date_from") or today_start
    end = _parse_date_param(date_to, "date_to") or tomorrow_start

    store = get_store()
    try:
        period_checks, active_checks = await asyncio.gather(
            store.list_health_checks_created(organization_id, start, end, site_id, technician_id, advisor_id),
            store.list_active_health_checks(organization_id, site_id, technician_id, advisor_id),
        )
        rollups = await load_rollups(store, [hc.id for hc in period_checks])
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))

    status_counts: Dict[str, int] = {}
    for hc in period_checks:
        status_counts[hc.status] = status_counts.get(hc.status, 0) + 1

    sent = [hc for hc in period_checks if hc.sent_at]
    converted = sum(1 for hc in sent if rollup_for(rollups, hc.id).has_authorised_items)
    conversion_rate = round(converted / len(sent) * 100, 1) if sent else 0

    response_minutes = [
        (hc.first_opened_at - hc.sent_at).total_seconds() / 60
        for hc in sent if hc.first_opened_at
    ]
    avg_response = round(sum(response_minutes) / len(response_minutes)) if response_minutes else 0

    customer_statuses = STATUS_GROUPS[BoardColumn.CUSTOMER.value]
    overdue_count = 0
    expiring_count = 0
    for hc in active_checks:
        sla = evaluate_sla(hc.promised_at, hc.token_expires_at, now)
        if sla.is_overdue:
            overdue_count += 1
        if sla.is_expiring_soon and hc.status in customer_statuses:
            expiring_count += 1

    return {
        "metrics": {
            "total": len(period_checks),
            "completed": sum(1 for hc in period_checks if hc.status in SUMMARY_COMPLETED_STATUSES),
            "conversion_rate": conversion_rate,
            "avg_response_time_minutes": avg_response,
            "total_value_sent": round(sum(rollup_for(rollups, hc.id).identified_total for hc in sent), 2),
            "total_value_authorised": round(sum(r.authorised_total for r in rollups.values()), 2),
            "total_value_declined": round(sum(r.declined_total for r in rollups.values()), 2),
        },
        "status_counts": status_counts,
        "column_counts": column_counts(hc.status for hc in active_checks),
        "alerts": {
            "overdue_count": overdue_count,
            "expiring_links_count": expiring_count,
        },
        "period": {
            "from": start.isoformat(),
            "to": end.isoformat(),
        },
    }


@router.get("/board")
async def get_board(
    organization_id: str = Query(default=settings.DEFAULT_ORGANIZATION_ID, description="Organization ID"),
    date_from: Optional[str] = Query(None, description="Created from (ISO 8601), default last N days"),
    date_to: Optional[str] = Query(None, description="Created to (ISO 8601)"),
    site_id: Optional[str] = Query(None),
    technician_id: Optional[str] = Query(None),
    advisor_id: Optional[str] = Query(None)
):
    """Kanban board: active health checks grouped by column, with derived card fields."""
    now = _now()
    start = _parse_date_param(date_from, "date_from") or now - timedelta(days=settings.BOARD_LOOKBACK_DAYS)
    end = _parse_date_param(date_to, "date_to")

    store = get_store()
    try:
        health_checks = await store.list_active_health_checks(
            organization_id, site_id, technician_id, advisor_id, created_from=start, created_to=end
        )
        rollups = await load_rollups(store, [hc.id for hc in health_checks])
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))

    logger.debug(f"[Board] {len(health_checks)} active health checks since {start.isoformat()}")

    columns: Dict[str, List[Dict]] = {column: [] for column in COLUMN_ORDER}
    for hc in health_checks:
        card = _card(hc, rollup_for(rollups, hc.id), now)
        columns[card["column"]].append(card)

    return {
        "columns": {
            column: {
                "id": column,
                "title": BoardColumn.to_label(column),
                "statuses": STATUS_GROUPS[column],
                "cards": columns[column],
            }
            for column in COLUMN_ORDER
        },
        "total_count": len(health_checks),
    }


@router.get("/queues")
async def get_queues(
    organization_id: str = Query(default=settings.DEFAULT_ORGANIZATION_ID, description="Organization ID"),
    site_id: Optional[str] = Query(None)
):
    """Queue summaries for dashboard cards (first 10 of each plus totals)."""
    now = _now()
    try:
        health_checks = await get_store().list_active_health_checks(organization_id, site_id)
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))

    needs_attention = []
    technician_queue = []
    advisor_queue = []
    customer_queue = []
    for hc in health_checks:
        sla = evaluate_sla(hc.promised_at, hc.token_expires_at, now)
        item = hc.to_dict()
        if sla.needs_attention:
            needs_attention.append({**item, "alert_type": sla.alert_type})

        column = classify_column(hc.status)
        if column == BoardColumn.TECHNICIAN.value:
            technician_queue.append(item)
        elif column in (BoardColumn.TECH_DONE.value, BoardColumn.ADVISOR.value):
            advisor_queue.append(item)
        elif column == BoardColumn.CUSTOMER.value:
            customer_queue.append(item)

    def _queue(items: List[Dict]) -> Dict:
        return {"items": items[:QUEUE_PREVIEW_SIZE], "total": len(items)}

    return {
        "needs_attention": _queue(needs_attention),
        "technician_queue": _queue(technician_queue),
        "advisor_queue": _queue(advisor_queue),
        "customer_queue": _queue(customer_queue),
    }


@router.get("/timeline/{health_check_id}", response_model=TimelineResponse)
async def get_timeline(
    health_check_id: str,
    organization_id: str = Query(default=settings.DEFAULT_ORGANIZATION_ID, description="Organization ID")
):
    """Status timeline with time spent between each change."""
    store = get_store()
    try:
        health_check = await store.get_health_check(health_check_id, organization_id)
        history = await store.list_status_history(health_check_id)
    except HealthCheckNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))

    created_at = health_check.created_at or (history[0].changed_at if history else _now())
    return timeline_to_dict(build_timeline(health_check.id, history, created_at))


@router.get("/technicians")
async def get_technician_workload(
    organization_id: str = Query(default=settings.DEFAULT_ORGANIZATION_ID, description="Organization ID"),
    site_id: Optional[str] = Query(None)
):
    """Technician workload: current job, queue, completed today, clock-in state."""
    now = _now()
    today_start, _ = _today_bounds(now)
    store = get_store()
    try:
        technicians = await store.list_technicians(organization_id, site_id)
        tech_ids = [t.id for t in technicians]
        health_checks, time_entries = await asyncio.gather(
            store.list_technician_health_checks(organization_id, tech_ids, today_start),
            store.list_time_entries(tech_ids, today_start),
        )
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return build_technician_workload(technicians, health_checks, time_entries, now, completed_since=today_start)


@router.get("/today")
async def get_today_overview(
    organization_id: str = Query(default=settings.DEFAULT_ORGANIZATION_ID, description="Organization ID"),
    site_id: Optional[str] = Query(None)
):
    """Today's arrivals, speed, financial and RAG figures (by due date, else created date)."""
    now = _now()
    today_start, tomorrow_start = _today_bounds(now)
    store = get_store()
    try:
        health_checks = await store.list_cohort(organization_id, today_start, tomorrow_start, site_id)
        rollups = await load_rollups(store, [hc.id for hc in health_checks])
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))

    overview = build_daily_overview(health_checks, rollups)
    overview["date"] = today_start.date().isoformat()
    return overview
