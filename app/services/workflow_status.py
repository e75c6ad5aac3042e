"""
Workflow Status Deriver

Per health check stage statuses (technician, labour, parts, authorised, sent),
recomputed from repair items and timestamps on every read.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Dict, Iterable, Optional, Set

from app.models.enums import ItemWorkStatus, OutcomeStatus, StageStatus
from app.models.records import HealthCheck
from app.services.repair_aggregator import HealthCheckRollup, is_item_authorised


@dataclass
class WorkflowStatus:
    technician: StageStatus
    labour: StageStatus
    parts: StageStatus
    authorised: StageStatus
    sent: StageStatus

    def to_dict(self) -> Dict[str, str]:
        return {key: value.value for key, value in asdict(self).items()}


def technician_stage(
    tech_started_at: Optional[datetime],
    tech_completed_at: Optional[datetime]
) -> StageStatus:
    if tech_completed_at:
        return StageStatus.COMPLETE
    if tech_started_at:
        return StageStatus.IN_PROGRESS
    return StageStatus.PENDING


def work_stage(statuses: Iterable[str]) -> StageStatus:
    """Aggregate labour or parts statuses of non-group items."""
    statuses = list(statuses)
    if not statuses:
        return StageStatus.NA
    complete = ItemWorkStatus.COMPLETE.value
    if all(s == complete for s in statuses):
        return StageStatus.COMPLETE
    if any(s in (ItemWorkStatus.IN_PROGRESS.value, complete) for s in statuses):
        return StageStatus.IN_PROGRESS
    return StageStatus.PENDING


def authorisation_stage(top_level_items, authorised_ids: Optional[Set[str]] = None) -> StageStatus:
    """
    All / some / none of the live top-level items authorised.

    authorised_ids comes from the aggregator so that groups authorised through
    their children count; without it the direct predicate is used.
    """
    live = [i for i in top_level_items if i.outcome_status != OutcomeStatus.DELETED.value]
    if not live:
        return StageStatus.NA

    def _authorised(item) -> bool:
        if authorised_ids is not None:
            return item.id in authorised_ids
        return is_item_authorised(item)

    flags = [_authorised(i) for i in live]
    if all(flags):
        return StageStatus.COMPLETE
    if any(flags):
        return StageStatus.IN_PROGRESS
    return StageStatus.PENDING


def derive_workflow_status(
    non_group_items,
    top_level_items,
    sent_at: Optional[datetime] = None,
    tech_started_at: Optional[datetime] = None,
    tech_completed_at: Optional[datetime] = None,
    authorised_ids: Optional[Set[str]] = None
) -> WorkflowStatus:
    return WorkflowStatus(
        technician=technician_stage(tech_started_at, tech_completed_at),
        labour=work_stage(i.labour_status for i in non_group_items),
        parts=work_stage(i.parts_status for i in non_group_items),
        authorised=authorisation_stage(top_level_items, authorised_ids),
        sent=StageStatus.COMPLETE if sent_at else StageStatus.NA,
    )


def workflow_status_for(health_check: HealthCheck, rollup: HealthCheckRollup) -> WorkflowStatus:
    """Convenience wrapper over a health check and its rollup."""
    return derive_workflow_status(
        rollup.non_group_items,
        rollup.top_level_items,
        sent_at=health_check.sent_at,
        tech_started_at=health_check.tech_started_at,
        tech_completed_at=health_check.tech_completed_at,
        authorised_ids=rollup.authorised_item_ids,
    )
