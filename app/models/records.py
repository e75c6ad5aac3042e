"""
Record Types

Plain dataclasses for the rows read from storage. Every record has a
``from_row`` constructor that normalizes a Supabase row: timestamps become
aware datetimes, numeric fields fall back to 0, and nested joins that may
arrive either as an object or as a one-element list go through first_or_none.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def first_or_none(value: Any) -> Optional[Dict]:
    """Supabase joins return either an object or a list; take the first record."""
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        return value
    return None


_LEADING_NUMBER = re.compile(r"\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def to_float(value: Any, default: float = 0.0) -> float:
    """
    Safely convert value to float.

    Strings use their leading number ("12.50abc" -> 12.5). NaN, infinities and
    anything unparseable give the default.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, str):
        match = _LEADING_NUMBER.match(value)
        if not match:
            return default
        value = match.group(0)
    try:
        result = float(value)
    except (ValueError, TypeError, OverflowError):
        return default
    return result if math.isfinite(result) else default


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def person_name(person: Optional[Dict]) -> Optional[str]:
    """Join first/last name of a user summary."""
    if not person:
        return None
    name = f"{person.get('first_name') or ''} {person.get('last_name') or ''}".strip()
    return name or None


@dataclass
class HealthCheck:
    """A vehicle health check (inspection)"""
    id: str
    status: str
    organization_id: Optional[str] = None
    site_id: Optional[str] = None
    technician_id: Optional[str] = None
    advisor_id: Optional[str] = None
    created_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    promised_at: Optional[datetime] = None
    token_expires_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    first_opened_at: Optional[datetime] = None
    tech_started_at: Optional[datetime] = None
    tech_completed_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    customer_waiting: bool = False
    vehicle: Optional[Dict] = None
    technician: Optional[Dict] = None
    advisor: Optional[Dict] = None

    @property
    def cohort_date(self) -> Optional[datetime]:
        """Date used to place the health check in a reporting period."""
        return self.due_date or self.created_at

    def to_dict(self) -> Dict[str, Any]:
        def _iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "status": self.status,
            "site_id": self.site_id,
            "created_at": _iso(self.created_at),
            "due_date": _iso(self.due_date),
            "promised_at": _iso(self.promised_at),
            "token_expires_at": _iso(self.token_expires_at),
            "sent_at": _iso(self.sent_at),
            "tech_started_at": _iso(self.tech_started_at),
            "tech_completed_at": _iso(self.tech_completed_at),
            "customer_waiting": self.customer_waiting,
            "vehicle": self.vehicle,
            "technician": self.technician,
            "advisor": self.advisor,
        }

    @classmethod
    def from_row(cls, row: Dict) -> "HealthCheck":
        technician = first_or_none(row.get("technician"))
        advisor = first_or_none(row.get("advisor"))
        return cls(
            id=str(row["id"]),
            status=row.get("status") or "",
            organization_id=row.get("organization_id"),
            site_id=row.get("site_id"),
            technician_id=row.get("technician_id") or (technician or {}).get("id"),
            advisor_id=row.get("advisor_id") or (advisor or {}).get("id"),
            created_at=parse_timestamp(row.get("created_at")),
            due_date=parse_timestamp(row.get("due_date")),
            promised_at=parse_timestamp(row.get("promised_at")),
            token_expires_at=parse_timestamp(row.get("token_expires_at")),
            sent_at=parse_timestamp(row.get("sent_at")),
            first_opened_at=parse_timestamp(row.get("first_opened_at")),
            tech_started_at=parse_timestamp(row.get("tech_started_at")),
            tech_completed_at=parse_timestamp(row.get("tech_completed_at")),
            arrived_at=parse_timestamp(row.get("arrived_at")),
            deleted_at=parse_timestamp(row.get("deleted_at")),
            customer_waiting=bool(row.get("customer_waiting")),
            vehicle=first_or_none(row.get("vehicle")),
            technician=technician,
            advisor=advisor,
        )


@dataclass
class RepairOption:
    """Price variant of a repair item; overrides the item's own totals when selected"""
    id: str
    labour_total: Optional[float] = None
    parts_total: Optional[float] = None
    total_inc_vat: Optional[float] = None

    @classmethod
    def from_row(cls, row: Dict) -> "RepairOption":
        def _maybe(key: str) -> Optional[float]:
            return None if row.get(key) is None else to_float(row.get(key))

        return cls(
            id=str(row["id"]),
            labour_total=_maybe("labour_total"),
            parts_total=_maybe("parts_total"),
            total_inc_vat=_maybe("total_inc_vat"),
        )


@dataclass
class RepairItem:
    """Priced repair item. Groups aggregate their children's pricing."""
    id: str
    health_check_id: Optional[str]
    parent_id: Optional[str] = None
    is_group: bool = False
    selected_option_id: Optional[str] = None
    labour_total: Optional[float] = None
    parts_total: Optional[float] = None
    total_inc_vat: Optional[float] = None
    labour_status: str = "pending"
    parts_status: str = "pending"
    outcome_status: Optional[str] = None
    customer_approved: Optional[bool] = None
    deleted_at: Optional[datetime] = None
    rag_statuses: List[str] = field(default_factory=list)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None or self.outcome_status == "deleted"

    @classmethod
    def from_row(cls, row: Dict) -> "RepairItem":
        rag_statuses = []
        for link in row.get("check_results") or []:
            check_result = first_or_none((link or {}).get("check_result"))
            if check_result and check_result.get("rag_status"):
                rag_statuses.append(check_result["rag_status"])

        def _maybe(key: str) -> Optional[float]:
            return None if row.get(key) is None else to_float(row.get(key))

        customer_approved = row.get("customer_approved")
        return cls(
            id=str(row["id"]),
            health_check_id=row.get("health_check_id"),
            parent_id=row.get("parent_repair_item_id"),
            is_group=bool(row.get("is_group")),
            selected_option_id=row.get("selected_option_id"),
            labour_total=_maybe("labour_total"),
            parts_total=_maybe("parts_total"),
            total_inc_vat=_maybe("total_inc_vat"),
            labour_status=row.get("labour_status") or "pending",
            parts_status=row.get("parts_status") or "pending",
            outcome_status=row.get("outcome_status"),
            customer_approved=None if customer_approved is None else bool(customer_approved),
            deleted_at=parse_timestamp(row.get("deleted_at")),
            rag_statuses=rag_statuses,
        )


@dataclass
class TimeEntry:
    """Technician clock-in / clock-out against a health check"""
    health_check_id: Optional[str]
    technician_id: str
    clock_in_at: datetime
    clock_out_at: Optional[datetime] = None
    duration_minutes: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.clock_out_at is None

    @classmethod
    def from_row(cls, row: Dict) -> "TimeEntry":
        duration = row.get("duration_minutes")
        return cls(
            health_check_id=row.get("health_check_id"),
            technician_id=str(row["technician_id"]),
            clock_in_at=parse_timestamp(row.get("clock_in_at")),
            clock_out_at=parse_timestamp(row.get("clock_out_at")),
            duration_minutes=None if duration is None else to_float(duration),
        )


@dataclass
class StatusHistoryEntry:
    """Append-only status change record"""
    id: str
    health_check_id: str
    from_status: Optional[str]
    to_status: str
    changed_at: datetime
    changed_by: Optional[str] = None
    user: Optional[Dict] = None

    @classmethod
    def from_row(cls, row: Dict) -> "StatusHistoryEntry":
        return cls(
            id=str(row["id"]),
            health_check_id=str(row.get("health_check_id") or ""),
            from_status=row.get("from_status"),
            to_status=row.get("to_status") or "",
            changed_at=parse_timestamp(row.get("changed_at")),
            changed_by=row.get("changed_by"),
            user=first_or_none(row.get("user")),
        )


@dataclass
class Technician:
    """Active technician user"""
    id: str
    first_name: str = ""
    last_name: str = ""
    site_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict) -> "Technician":
        return cls(
            id=str(row["id"]),
            first_name=row.get("first_name") or "",
            last_name=row.get("last_name") or "",
            site_id=row.get("site_id"),
        )
