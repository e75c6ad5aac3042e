"""
Health Check Endpoints

Per health check derived state: workflow stage statuses and allowed status
moves.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from app import settings
from app.models.enums import BoardColumn, HealthCheckStatus
from app.models.schemas import TransitionsResponse, WorkflowStatusResponse
from app.services.errors import HealthCheckNotFound, StorageError
from app.services.health_check_store import get_store
from app.services.repair_aggregator import load_rollups, rollup_for
from app.services.status_classifier import (
    classify_column,
    drag_transitions,
    is_terminal,
    is_valid_transition,
    lifecycle_transitions,
)
from app.services.workflow_status import workflow_status_for

router = APIRouter()


@router.get("/{health_check_id}/workflow-status", response_model=WorkflowStatusResponse)
async def get_workflow_status(
    health_check_id: str,
    organization_id: str = Query(default=settings.DEFAULT_ORGANIZATION_ID, description="Organization ID")
):
    """
    Workflow stage statuses for one health check.

    Returns:
    - technician, labour, parts, authorised, sent stages
      (pending / in_progress / complete / na)
    - repair_item_count: live non-group items the labour/parts stages cover
    """
    store = get_store()
    try:
        health_check = await store.get_health_check(health_check_id, organization_id)
        rollups = await load_rollups(store, [health_check.id])
    except HealthCheckNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))

    rollup = rollup_for(rollups, health_check.id)
    return {
        "health_check_id": health_check.id,
        "status": health_check.status,
        "workflow_status": workflow_status_for(health_check, rollup).to_dict(),
        "repair_item_count": len(rollup.non_group_items),
    }


@router.get("/{health_check_id}/transitions", response_model=TransitionsResponse)
async def get_transitions(
    health_check_id: str,
    organization_id: str = Query(default=settings.DEFAULT_ORGANIZATION_ID, description="Organization ID"),
    to_status: Optional[str] = Query(None, description="Check whether a move to this status is allowed")
):
    """Board column plus the statuses this health check may move to."""
    try:
        health_check = await get_store().get_health_check(health_check_id, organization_id)
    except HealthCheckNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=503, detail=str(e))

    column = classify_column(health_check.status)
    return {
        "health_check_id": health_check.id,
        "status": health_check.status,
        "status_label": HealthCheckStatus.to_label(health_check.status),
        "column": column,
        "column_label": BoardColumn.to_label(column),
        "is_terminal": is_terminal(health_check.status),
        "drag_transitions": drag_transitions(health_check.status),
        "lifecycle_transitions": lifecycle_transitions(health_check.status),
        "to_status": to_status,
        "is_allowed": is_valid_transition(health_check.status, to_status) if to_status else None,
    }
