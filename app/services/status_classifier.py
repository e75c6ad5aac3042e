"""
Status Classifier

Maps a health check status to its Kanban board column and to the statuses it
may move to next. Pure lookups, no I/O.
"""

from typing import Dict, Iterable, List

from app import settings
from app.models.enums import BoardColumn

# Status groups for board columns
STATUS_GROUPS: Dict[str, List[str]] = {
    BoardColumn.TECHNICIAN.value: ["created", "assigned", "in_progress", "paused"],
    BoardColumn.TECH_DONE.value: ["tech_completed", "awaiting_review", "awaiting_pricing", "awaiting_parts"],
    BoardColumn.ADVISOR.value: ["ready_to_send"],
    BoardColumn.CUSTOMER.value: ["sent", "delivered", "opened", "partial_response"],
    BoardColumn.ACTIONED.value: ["authorized", "declined", "completed", "expired", "cancelled", "no_show"],
}

COLUMN_ORDER = [c.value for c in BoardColumn]

_COLUMN_BY_STATUS: Dict[str, str] = {
    status: column
    for column, statuses in STATUS_GROUPS.items()
    for status in statuses
}

# Valid transitions for drag-drop on the board
DRAG_TRANSITIONS: Dict[str, List[str]] = {
    "created": ["assigned"],
    "assigned": ["in_progress"],
    "in_progress": ["tech_completed", "paused"],
    "paused": ["in_progress"],
    "tech_completed": ["awaiting_review", "awaiting_pricing"],
    "awaiting_review": ["awaiting_pricing", "ready_to_send"],
    "awaiting_pricing": ["awaiting_parts", "ready_to_send"],
    "awaiting_parts": ["ready_to_send"],
    "ready_to_send": ["sent"],
    "authorized": ["completed"],
    "declined": ["completed"],
}

# Full lifecycle, including the DMS arrival workflow
LIFECYCLE_TRANSITIONS: Dict[str, List[str]] = {
    "awaiting_arrival": ["awaiting_checkin", "created", "no_show", "cancelled"],
    "awaiting_checkin": ["created", "cancelled"],
    "no_show": ["awaiting_arrival", "cancelled"],
    "created": ["assigned", "cancelled"],
    "assigned": ["in_progress", "cancelled"],
    "in_progress": ["paused", "tech_completed", "cancelled"],
    "paused": ["in_progress", "cancelled"],
    "tech_completed": ["awaiting_review", "awaiting_pricing"],
    "awaiting_review": ["awaiting_pricing", "ready_to_send"],
    "awaiting_pricing": ["awaiting_parts", "ready_to_send"],
    "awaiting_parts": ["ready_to_send"],
    "ready_to_send": ["sent"],
    "sent": ["delivered", "expired"],
    "delivered": ["opened", "expired"],
    "opened": ["partial_response", "authorized", "declined", "expired"],
    "partial_response": ["authorized", "declined", "expired"],
    "authorized": ["completed"],
    "declined": ["completed"],
    "expired": ["completed"],
    "completed": [],
    "cancelled": [],
}

# Statuses that count as "tech work done" for completion metrics
POST_TECH_COMPLETED_STATUSES = frozenset([
    "tech_completed", "awaiting_review", "awaiting_pricing", "awaiting_parts",
    "ready_to_send", "sent", "delivered", "opened", "partial_response",
    "authorized", "declined", "completed",
])

PRE_ARRIVAL_STATUSES = frozenset(["awaiting_arrival"])

TERMINAL_STATUSES = frozenset(settings.TERMINAL_STATUSES)


def classify_column(status: str) -> str:
    """Board column for a status; unmapped statuses land in the technician column."""
    return _COLUMN_BY_STATUS.get(status, BoardColumn.TECHNICIAN.value)


def drag_transitions(status: str) -> List[str]:
    return list(DRAG_TRANSITIONS.get(status, []))


def lifecycle_transitions(status: str) -> List[str]:
    return list(LIFECYCLE_TRANSITIONS.get(status, []))


def is_valid_transition(from_status: str, to_status: str) -> bool:
    return to_status in LIFECYCLE_TRANSITIONS.get(from_status, [])


def is_terminal(status: str, terminal_statuses: Iterable[str] = TERMINAL_STATUSES) -> bool:
    return status in terminal_statuses


def is_active(status: str, terminal_statuses: Iterable[str] = TERMINAL_STATUSES) -> bool:
    """Active = on the board: neither terminal nor still awaiting arrival."""
    return status not in terminal_statuses and status not in PRE_ARRIVAL_STATUSES


def column_counts(
    statuses: Iterable[str],
    terminal_statuses: Iterable[str] = TERMINAL_STATUSES
) -> Dict[str, int]:
    """Count active statuses per column. Counts always sum to the active total."""
    terminal = frozenset(terminal_statuses)
    counts = {column: 0 for column in COLUMN_ORDER}
    for status in statuses:
        if is_active(status, terminal):
            counts[classify_column(status)] += 1
    return counts
