"""
Health Check Status Codes and Enums

Standardized constants for health check, repair item and workflow values.
Values match the strings stored in the health_checks / repair_items tables.
"""

from enum import Enum


class HealthCheckStatus(str, Enum):
    """Health check lifecycle status"""
    # DMS pre-arrival workflow
    AWAITING_ARRIVAL = "awaiting_arrival"
    AWAITING_CHECKIN = "awaiting_checkin"
    NO_SHOW = "no_show"
    # Technician
    CREATED = "created"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    TECH_COMPLETED = "tech_completed"
    # Pricing / review
    AWAITING_REVIEW = "awaiting_review"
    AWAITING_PRICING = "awaiting_pricing"
    AWAITING_PARTS = "awaiting_parts"
    READY_TO_SEND = "ready_to_send"
    # Customer
    SENT = "sent"
    DELIVERED = "delivered"
    OPENED = "opened"
    PARTIAL_RESPONSE = "partial_response"
    # Actioned
    AUTHORIZED = "authorized"
    DECLINED = "declined"
    EXPIRED = "expired"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def to_label(cls, status: str) -> str:
        return status.replace("_", " ").title() if status else "Unknown"


class BoardColumn(str, Enum):
    """Kanban board columns"""
    TECHNICIAN = "technician"
    TECH_DONE = "tech_done"
    ADVISOR = "advisor"
    CUSTOMER = "customer"
    ACTIONED = "actioned"

    @classmethod
    def to_label(cls, column: str) -> str:
        labels = {
            "technician": "Technician Queue",
            "tech_done": "Tech Done / Review",
            "advisor": "Ready to Send",
            "customer": "With Customer",
            "actioned": "Actioned",
        }
        return labels.get(column, f"Unknown ({column})")


class RagStatus(str, Enum):
    """Check result severity"""
    RED = "red"
    AMBER = "amber"
    GREEN = "green"


# Worst first
RAG_PRECEDENCE = {
    RagStatus.RED.value: 3,
    RagStatus.AMBER.value: 2,
    RagStatus.GREEN.value: 1,
}


class OutcomeStatus(str, Enum):
    """Repair item customer outcome"""
    AUTHORISED = "authorised"
    DECLINED = "declined"
    DEFERRED = "deferred"
    DELETED = "deleted"


class ItemWorkStatus(str, Enum):
    """Labour / parts status on a single repair item"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class StageStatus(str, Enum):
    """Aggregated workflow stage status for a health check"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    NA = "na"


class AlertType(str, Enum):
    """SLA alert classification"""
    OVERDUE = "overdue"
    EXPIRING = "expiring"


class TechnicianState(str, Enum):
    """Technician workload state"""
    WORKING = "working"
    AVAILABLE = "available"
    IDLE = "idle"
