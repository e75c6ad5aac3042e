"""
Timeline Builder

Turns a health check's status history into a list of state changes with the
time spent between them.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from app.models.records import StatusHistoryEntry, person_name


@dataclass
class TimelineEntry:
    id: str
    from_status: Optional[str]
    to_status: str
    changed_at: datetime
    changed_by: Optional[str]
    duration_minutes: int
    duration_formatted: str


@dataclass
class Timeline:
    health_check_id: str
    entries: List[TimelineEntry] = field(default_factory=list)
    total_duration_minutes: int = 0


def format_duration(minutes: int) -> str:
    """45 -> '45m', 90 -> '1h 30m', 120 -> '2h', 1500 -> '1d 1h', 2880 -> '2d'."""
    if minutes < 60:
        return f"{minutes}m"
    hours = minutes // 60
    mins = minutes % 60
    if hours < 24:
        return f"{hours}h {mins}m" if mins > 0 else f"{hours}h"
    days = hours // 24
    remaining_hours = hours % 24
    return f"{days}d {remaining_hours}h" if remaining_hours > 0 else f"{days}d"


def _minutes_between(start: datetime, end: datetime) -> int:
    # Half-up to whole minutes, never negative
    return max(0, math.floor((end - start).total_seconds() / 60 + 0.5))


def build_timeline(
    health_check_id: str,
    history: List[StatusHistoryEntry],
    created_at: datetime
) -> Timeline:
    """
    Build the timeline for one health check.

    history must be ordered by changed_at. When there is any history a
    synthetic 'created' entry at created_at is put first.
    """
    entries: List[TimelineEntry] = []
    previous = created_at
    for h in history:
        duration = _minutes_between(previous, h.changed_at)
        entries.append(TimelineEntry(
            id=h.id,
            from_status=h.from_status,
            to_status=h.to_status,
            changed_at=h.changed_at,
            changed_by=person_name(h.user),
            duration_minutes=duration,
            duration_formatted=format_duration(duration),
        ))
        previous = h.changed_at

    if entries:
        entries.insert(0, TimelineEntry(
            id="created",
            from_status=None,
            to_status="created",
            changed_at=created_at,
            changed_by=None,
            duration_minutes=0,
            duration_formatted=format_duration(0),
        ))

    total = _minutes_between(created_at, entries[-1].changed_at) if len(entries) > 1 else 0
    return Timeline(health_check_id=health_check_id, entries=entries, total_duration_minutes=total)


def timeline_to_dict(timeline: Timeline) -> Dict:
    return {
        "health_check_id": timeline.health_check_id,
        "timeline": [
            {
                "id": e.id,
                "from_status": e.from_status,
                "to_status": e.to_status,
                "changed_at": e.changed_at.isoformat(),
                "changed_by": e.changed_by,
                "duration_minutes": e.duration_minutes,
                "duration_formatted": e.duration_formatted,
            }
            for e in timeline.entries
        ],
        "total_duration_minutes": timeline.total_duration_minutes,
        "total_duration_formatted": format_duration(timeline.total_duration_minutes),
    }
