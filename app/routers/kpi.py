"""
KPI Endpoints

Month-to-date vs previous month KPIs with the advisor leaderboard.

Cohorts are selected by due date, falling back to created date.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from app import settings
from app.services.errors import StorageError
from app.services.health_check_store import get_store
from app.services.monthly_kpi import (
    advisor_to_dict,
    compute_monthly_kpis,
    in_period,
    month_periods,
)
from app.services.repair_aggregator import load_rollups

logger = logging.getLogger(__name__)

router = APIRouter()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _period_dict(period) -> dict:
    return {
        "start": period.start.isoformat(),
        "end": period.end.isoformat(),
        "days": period.days,
    }


@router.get("/monthly")
async def get_monthly_kpis(
    organization_id: str = Query(default=settings.DEFAULT_ORGANIZATION_ID, description="Organization ID"),
    site_id: Optional[str] = Query(None),
    include_advisors: bool = Query(default=False, description="Include the full advisor ranking")
):
    """
    Monthly KPIs.

    Returns:
    - current: month-to-date cohort KPIs
    - previous: full previous month
    - deltas: current minus previous per metric
    - top_advisor: best qualified advisor (None when nobody qualifies)
    """
    now = _now()
    current_period, previous_period = month_periods(now)
    store = get_store()
    try:
        # One cohort query across both months, split locally by due/created date
        health_checks = await store.list_cohort(
            organization_id, previous_period.start, current_period.end, site_id, inclusive_end=True
        )
        current_cohort = [hc for hc in health_checks if in_period(hc, current_period, inclusive_end=True)]
        previous_cohort = [hc for hc in health_checks if in_period(hc, previous_period)]
        rollups = await load_rollups(store, [hc.id for hc in current_cohort + previous_cohort])

        kpis = compute_monthly_kpis(current_cohort, previous_cohort, rollups, now)
        top = kpis.top_advisor
        top_name = await store.get_user_name(top.advisor_id) if top else None
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))

    logger.info(
        f"[KPI] {organization_id}: {kpis.current.hc_count} current, "
        f"{kpis.previous.hc_count} previous health checks"
    )

    response = {
        "current": {**kpis.current.__dict__, "period": _period_dict(current_period)},
        "previous": {**kpis.previous.__dict__, "period": _period_dict(previous_period)},
        "deltas": kpis.deltas,
        "top_advisor": advisor_to_dict(top, top_name) if top else None,
    }
    if include_advisors:
        response["advisors"] = [advisor_to_dict(a) for a in kpis.advisors]
    return response
