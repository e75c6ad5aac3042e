"""
SLA Alerts

Overdue (past promised time) and expiring customer link checks.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from app import settings
from app.models.enums import AlertType


@dataclass
class SlaAlert:
    is_overdue: bool
    is_expiring_soon: bool

    @property
    def alert_type(self) -> Optional[str]:
        # Overdue wins when both apply
        if self.is_overdue:
            return AlertType.OVERDUE.value
        if self.is_expiring_soon:
            return AlertType.EXPIRING.value
        return None

    @property
    def needs_attention(self) -> bool:
        return self.is_overdue or self.is_expiring_soon


def evaluate_sla(
    promised_at: Optional[datetime],
    token_expires_at: Optional[datetime],
    now: datetime,
    warning_hours: int = settings.LINK_EXPIRY_WARNING_HOURS
) -> SlaAlert:
    """Only meaningful for non-terminal health checks; callers filter."""
    window_end = now + timedelta(hours=warning_hours)
    is_overdue = promised_at is not None and promised_at < now
    is_expiring_soon = token_expires_at is not None and now < token_expires_at < window_end
    return SlaAlert(is_overdue=is_overdue, is_expiring_soon=is_expiring_soon)
