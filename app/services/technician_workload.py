"""
Technician Workload

Who is working, clocked in but free, or idle, built from health checks and
time entries.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from app.models.enums import TechnicianState
from app.models.records import HealthCheck, Technician, TimeEntry
from app.services.status_classifier import POST_TECH_COMPLETED_STATUSES

logger = logging.getLogger(__name__)


def _elapsed_minutes(start: Optional[datetime], now: datetime) -> int:
    if not start:
        return 0
    return max(0, round((now - start).total_seconds() / 60))


def _logged_minutes(entries: List[TimeEntry], now: datetime) -> int:
    """Closed entries use their recorded duration; open entries run to now."""
    total = 0.0
    for entry in entries:
        if entry.is_open:
            total += _elapsed_minutes(entry.clock_in_at, now)
        elif entry.duration_minutes is not None:
            total += entry.duration_minutes
        elif entry.clock_in_at and entry.clock_out_at:
            total += max(0.0, (entry.clock_out_at - entry.clock_in_at).total_seconds() / 60)
    return round(total)


def build_technician_workload(
    technicians: List[Technician],
    health_checks: List[HealthCheck],
    time_entries: List[TimeEntry],
    now: datetime,
    completed_since: Optional[datetime] = None
) -> Dict:
    """
    Per technician workload.

    time_entries should cover today; completed_since limits the completed count
    to health checks finished after that moment.
    """
    checks_by_tech: Dict[str, List[HealthCheck]] = {}
    for hc in health_checks:
        if hc.technician_id:
            checks_by_tech.setdefault(hc.technician_id, []).append(hc)

    entries_by_tech: Dict[str, List[TimeEntry]] = {}
    for entry in time_entries:
        entries_by_tech.setdefault(entry.technician_id, []).append(entry)

    workload = []
    for tech in technicians:
        checks = checks_by_tech.get(tech.id, [])
        entries = entries_by_tech.get(tech.id, [])

        open_entries = sorted(
            (e for e in entries if e.is_open),
            key=lambda e: e.clock_in_at.timestamp() if e.clock_in_at else 0
        )
        if len(open_entries) > 1:
            logger.warning(f"[Workload] Technician {tech.id} has {len(open_entries)} open time entries")
        open_entry = open_entries[-1] if open_entries else None

        current = next((hc for hc in checks if hc.status == "in_progress"), None)

        if current:
            state = TechnicianState.WORKING
        elif open_entry:
            state = TechnicianState.AVAILABLE
        else:
            state = TechnicianState.IDLE

        completed = [
            hc for hc in checks
            if hc.status in POST_TECH_COMPLETED_STATUSES
            and (completed_since is None or (hc.tech_completed_at and hc.tech_completed_at >= completed_since))
        ]

        workload.append({
            "id": tech.id,
            "first_name": tech.first_name,
            "last_name": tech.last_name,
            "site_id": tech.site_id,
            "status": state.value,
            "current_job": {
                "id": current.id,
                "vehicle": current.vehicle,
                "time_elapsed_minutes": _elapsed_minutes(open_entry.clock_in_at if open_entry else None, now),
            } if current else None,
            "queue_count": sum(1 for hc in checks if hc.status == "assigned"),
            "completed_today": len(completed),
            "is_clocked_in": open_entry is not None,
            "logged_minutes_today": _logged_minutes(entries, now),
        })

    return {
        "technicians": workload,
        "summary": {
            "total": len(workload),
            "working": sum(1 for t in workload if t["status"] == TechnicianState.WORKING.value),
            "available": sum(1 for t in workload if t["status"] == TechnicianState.AVAILABLE.value),
            "idle": sum(1 for t in workload if t["status"] == TechnicianState.IDLE.value),
        },
    }
