"""
Daily Overview

Today's arrivals, speed and financial figures for the dashboard "Today" page.
Financial and RAG numbers come from the repair item rollups.
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple

from app.models.records import HealthCheck
from app.services.repair_aggregator import HealthCheckRollup, rag_breakdown_dict, rollup_for, sum_rollups

# Sample bounds (minutes) for speed metrics; outside these the timestamps are
# considered unreliable
MAX_TECH_INSPECTION_MINUTES = 480
MAX_ADVISOR_PROCESSING_MINUTES = 1440
MAX_AUTHORIZATION_MINUTES = 1440


def _average_minutes(
    pairs: List[Tuple[Optional[datetime], Optional[datetime]]],
    upper_bound: int
) -> Tuple[Optional[int], int]:
    samples = []
    for start, end in pairs:
        if not start or not end:
            continue
        minutes = (end - start).total_seconds() / 60
        if 0 < minutes < upper_bound:
            samples.append(minutes)
    if not samples:
        return None, 0
    return round(sum(samples) / len(samples)), len(samples)


def arrivals_summary(health_checks: List[HealthCheck]) -> Dict:
    total = len(health_checks)
    no_show = sum(1 for hc in health_checks if hc.status == "no_show")
    return {
        "total_bookings": total,
        "arrived_count": sum(
            1 for hc in health_checks
            if hc.arrived_at or hc.status not in ("awaiting_arrival", "no_show")
        ),
        "awaiting_count": sum(1 for hc in health_checks if hc.status == "awaiting_arrival"),
        "no_show_count": no_show,
        "no_show_rate": round(no_show / total * 100, 1) if total else 0,
        "customer_waiting_count": sum(1 for hc in health_checks if hc.customer_waiting),
    }


def speed_summary(health_checks: List[HealthCheck]) -> Dict:
    tech_avg, tech_n = _average_minutes(
        [(hc.tech_started_at, hc.tech_completed_at) for hc in health_checks],
        MAX_TECH_INSPECTION_MINUTES,
    )
    advisor_avg, advisor_n = _average_minutes(
        [(hc.tech_completed_at, hc.sent_at) for hc in health_checks],
        MAX_ADVISOR_PROCESSING_MINUTES,
    )
    auth_avg, auth_n = _average_minutes(
        [(hc.sent_at, hc.first_opened_at) for hc in health_checks],
        MAX_AUTHORIZATION_MINUTES,
    )
    return {
        "avg_tech_inspection_minutes": tech_avg,
        "tech_sample_size": tech_n,
        "avg_advisor_processing_minutes": advisor_avg,
        "advisor_sample_size": advisor_n,
        "avg_authorization_minutes": auth_avg,
        "auth_sample_size": auth_n,
    }


def build_daily_overview(
    health_checks: List[HealthCheck],
    rollups: Dict[str, HealthCheckRollup]
) -> Dict:
    totals = sum_rollups(rollup_for(rollups, hc.id) for hc in health_checks)
    conversion_rate = (
        round(totals.authorised_total / totals.identified_total * 100, 1)
        if totals.identified_total > 0 else 0
    )
    return {
        "arrivals": arrivals_summary(health_checks),
        "speed": speed_summary(health_checks),
        "financial": {
            "total_identified": round(totals.identified_total, 2),
            "total_authorised": round(totals.authorised_total, 2),
            "total_declined": round(totals.declined_total, 2),
            "total_deferred": round(totals.deferred_total, 2),
            "total_pending": round(totals.pending_total, 2),
            "conversion_rate": conversion_rate,
        },
        "rag_breakdown": rag_breakdown_dict(totals),
    }
