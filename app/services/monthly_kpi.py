"""
Monthly KPI Computation

Month-to-date vs previous month KPIs over health check cohorts, plus the
advisor ranking.

Key rules:
- Cohorts are built from repair item rollups, never from raw item rows
- red_sold_pct is red items authorised / red items identified (counts)
- Advisors need at least ADVISOR_MIN_HC_COUNT health checks to be ranked
- Score = 0.6 * red sold % + 0.4 * authorised value relative to the best
  qualified advisor (as a %)
- Percentages are rounded to 1 dp, currency to 2 dp
"""

import calendar
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from app import settings
from app.models.records import HealthCheck
from app.services.repair_aggregator import HealthCheckRollup, rollup_for
from app.services.status_classifier import POST_TECH_COMPLETED_STATUSES

RED_SOLD_WEIGHT = 0.6
VALUE_WEIGHT = 0.4

# Rounding per metric: digits
PCT_METRICS = ("conversion_rate", "red_sold_pct", "amber_sold_pct")
CURRENCY_METRICS = ("total_identified", "total_authorised", "avg_identified", "avg_sold")
RATE_METRICS = ("avg_per_day",)
COUNT_METRICS = ("hc_count", "completed_count", "sent_count", "red_identified", "red_authorised")


# ============== Dataclasses ==============

@dataclass
class Period:
    start: datetime
    end: datetime
    days: int


@dataclass
class CohortKpis:
    """KPIs for one cohort of health checks"""
    hc_count: int = 0
    completed_count: int = 0
    sent_count: int = 0
    conversion_rate: float = 0.0
    red_identified: int = 0
    red_authorised: int = 0
    red_sold_pct: Optional[float] = None
    amber_identified: int = 0
    amber_authorised: int = 0
    amber_sold_pct: Optional[float] = None
    total_identified: float = 0.0
    total_authorised: float = 0.0
    avg_identified: Optional[float] = None
    avg_sold: Optional[float] = None
    avg_per_day: float = 0.0
    days_in_period: int = 0


@dataclass
class AdvisorScore:
    advisor_id: str
    hc_count: int
    red_sold_pct: Optional[float]
    authorised_total: float
    score: float = 0.0
    qualified: bool = False


@dataclass
class MonthlyKpis:
    current: CohortKpis
    previous: CohortKpis
    deltas: Dict[str, Optional[float]] = field(default_factory=dict)
    advisors: List[AdvisorScore] = field(default_factory=list)

    @property
    def top_advisor(self) -> Optional[AdvisorScore]:
        qualified = [a for a in self.advisors if a.qualified]
        return qualified[0] if qualified else None


# ============== Periods ==============

def month_periods(now: datetime) -> Tuple[Period, Period]:
    """
    Current month [month start, now] and the full previous month.

    Previous period end is exclusive (start of the current month).
    """
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    prev_start = (month_start - timedelta(days=1)).replace(day=1)
    prev_days = calendar.monthrange(prev_start.year, prev_start.month)[1]
    current = Period(start=month_start, end=now, days=now.day)
    previous = Period(start=prev_start, end=month_start, days=prev_days)
    return current, previous


def in_period(health_check: HealthCheck, period: Period, inclusive_end: bool = False) -> bool:
    when = health_check.cohort_date
    if when is None:
        return False
    if inclusive_end:
        return period.start <= when <= period.end
    return period.start <= when < period.end


# ============== Calculation Functions ==============

def _pct(numerator: float, denominator: float) -> Optional[float]:
    return numerator / denominator * 100 if denominator else None


def _round(value: Optional[float], digits: int) -> Optional[float]:
    return None if value is None else round(value, digits)


def compute_cohort_kpis(
    cohort: List[HealthCheck],
    rollups: Dict[str, HealthCheckRollup],
    days_in_period: int
) -> CohortKpis:
    """Aggregate a cohort of health checks into rounded KPIs."""
    kpis = CohortKpis(hc_count=len(cohort), days_in_period=days_in_period)
    converted = 0
    total_identified = 0.0
    total_authorised = 0.0

    for hc in cohort:
        rollup = rollup_for(rollups, hc.id)
        if hc.status in POST_TECH_COMPLETED_STATUSES:
            kpis.completed_count += 1
        if hc.sent_at:
            kpis.sent_count += 1
            if rollup.has_authorised_items:
                converted += 1
        total_identified += rollup.identified_total
        total_authorised += rollup.authorised_total
        kpis.red_identified += rollup.rag["red"].identified_count
        kpis.red_authorised += rollup.rag["red"].authorised_count
        kpis.amber_identified += rollup.rag["amber"].identified_count
        kpis.amber_authorised += rollup.rag["amber"].authorised_count

    kpis.conversion_rate = round(_pct(converted, kpis.sent_count) or 0.0, 1)
    kpis.red_sold_pct = _round(_pct(kpis.red_authorised, kpis.red_identified), 1)
    kpis.amber_sold_pct = _round(_pct(kpis.amber_authorised, kpis.amber_identified), 1)
    kpis.total_identified = round(total_identified, 2)
    kpis.total_authorised = round(total_authorised, 2)
    if kpis.hc_count:
        kpis.avg_identified = round(total_identified / kpis.hc_count, 2)
        kpis.avg_sold = round(total_authorised / kpis.hc_count, 2)
    kpis.avg_per_day = round(kpis.completed_count / days_in_period, 1) if days_in_period else 0.0
    return kpis


def rank_advisors(
    cohort: List[HealthCheck],
    rollups: Dict[str, HealthCheckRollup],
    min_hc_count: int = settings.ADVISOR_MIN_HC_COUNT
) -> List[AdvisorScore]:
    """
    Score advisors; qualified advisors first, highest score first.

    Unqualified advisors are listed with a score of 0 and never ranked above
    a qualified one.
    """
    groups: Dict[str, Dict] = defaultdict(lambda: {"hc_count": 0, "red_identified": 0, "red_authorised": 0, "authorised": 0.0})
    for hc in cohort:
        if not hc.advisor_id:
            continue
        rollup = rollup_for(rollups, hc.id)
        data = groups[hc.advisor_id]
        data["hc_count"] += 1
        data["red_identified"] += rollup.rag["red"].identified_count
        data["red_authorised"] += rollup.rag["red"].authorised_count
        data["authorised"] += rollup.authorised_total

    advisors = [
        AdvisorScore(
            advisor_id=advisor_id,
            hc_count=data["hc_count"],
            red_sold_pct=_pct(data["red_authorised"], data["red_identified"]),
            authorised_total=data["authorised"],
            qualified=data["hc_count"] >= min_hc_count,
        )
        for advisor_id, data in groups.items()
    ]

    max_authorised = max((a.authorised_total for a in advisors if a.qualified), default=0.0)
    for a in advisors:
        if not a.qualified:
            continue
        value_pct = (a.authorised_total / max_authorised * 100) if max_authorised > 0 else 0.0
        a.score = round(RED_SOLD_WEIGHT * (a.red_sold_pct or 0.0) + VALUE_WEIGHT * value_pct, 1)

    return sorted(advisors, key=lambda a: (a.qualified, a.score, a.authorised_total), reverse=True)


def compute_deltas(current: CohortKpis, previous: CohortKpis) -> Dict[str, Optional[float]]:
    """Current minus previous per metric; None when either side is None."""
    deltas: Dict[str, Optional[float]] = {}
    for names, digits in ((PCT_METRICS, 1), (CURRENCY_METRICS, 2), (RATE_METRICS, 1), (COUNT_METRICS, 0)):
        for name in names:
            cur = getattr(current, name)
            prev = getattr(previous, name)
            if cur is None or prev is None:
                deltas[name] = None
            elif digits == 0:
                deltas[name] = int(cur - prev)
            else:
                deltas[name] = round(cur - prev, digits)
    return deltas


def compute_monthly_kpis(
    current_cohort: List[HealthCheck],
    previous_cohort: List[HealthCheck],
    rollups: Dict[str, HealthCheckRollup],
    now: datetime
) -> MonthlyKpis:
    current_period, previous_period = month_periods(now)
    current = compute_cohort_kpis(current_cohort, rollups, current_period.days)
    previous = compute_cohort_kpis(previous_cohort, rollups, previous_period.days)
    return MonthlyKpis(
        current=current,
        previous=previous,
        deltas=compute_deltas(current, previous),
        advisors=rank_advisors(current_cohort, rollups),
    )


def advisor_to_dict(advisor: AdvisorScore, name: Optional[str] = None) -> Dict:
    return {
        "advisor_id": advisor.advisor_id,
        "advisor_name": name,
        "hc_count": advisor.hc_count,
        "red_sold_pct": _round(advisor.red_sold_pct, 1),
        "authorised_total": round(advisor.authorised_total, 2),
        "score": advisor.score,
        "qualified": advisor.qualified,
    }
