"""
Pydantic Models for Response Validation
"""

from pydantic import BaseModel, Field
from typing import Optional, List


# Workflow Models
class WorkflowStages(BaseModel):
    """Derived stage statuses (pending / in_progress / complete / na)"""
    technician: str
    labour: str
    parts: str
    authorised: str
    sent: str


class WorkflowStatusResponse(BaseModel):
    """Workflow status for one health check"""
    health_check_id: str
    status: str
    workflow_status: WorkflowStages
    repair_item_count: int = Field(..., description="Live non-group repair items")


class TransitionsResponse(BaseModel):
    """Board column and allowed status moves"""
    health_check_id: str
    status: str
    status_label: str
    column: str
    column_label: str
    is_terminal: bool
    drag_transitions: List[str] = Field(default_factory=list, description="Moves allowed on the board")
    lifecycle_transitions: List[str] = Field(default_factory=list, description="All allowed moves")
    to_status: Optional[str] = None
    is_allowed: Optional[bool] = Field(None, description="Whether to_status is an allowed move")


# Timeline Models
class TimelineEntryModel(BaseModel):
    """One status change with the time spent before it"""
    id: str
    from_status: Optional[str] = None
    to_status: str
    changed_at: str
    changed_by: Optional[str] = None
    duration_minutes: int
    duration_formatted: str


class TimelineResponse(BaseModel):
    """Status timeline for one health check"""
    health_check_id: str
    timeline: List[TimelineEntryModel]
    total_duration_minutes: int
    total_duration_formatted: str
