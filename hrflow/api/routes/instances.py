"""Instance API Routes - Workflow execution endpoints"""
from typing import Any, Dict, List, Optional, Union
from fastapi import APIRouter, Depends, Header, Query, status
from pydantic import BaseModel, Field, field_validator

from ..deps import (
    get_current_actor_dep, get_correlation_id_dep, get_request_timeout_dep,
    get_workflow_service_dep,
)
from ...domain.enums import DecisionAction
from ...domain.models import ActorContext
from ...services.workflow_service import WorkflowService

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================

class CreateInstanceRequest(BaseModel):
    """Request to start a workflow for a business record"""
    entity_type: str = Field(..., min_length=1, max_length=50)
    entity_id: Union[str, int]
    facts: Dict[str, Any] = Field(default_factory=dict)
    definition_name: Optional[str] = Field(None, max_length=200)

    @field_validator("entity_id")
    @classmethod
    def entity_id_as_string(cls, value: Union[str, int]) -> str:
        value = str(value).strip()
        if not value:
            raise ValueError("entity_id must not be empty")
        return value


class DecisionRequest(BaseModel):
    """Request to approve, reject or skip the current step"""
    action: DecisionAction
    comment: Optional[str] = Field(None, max_length=2000)
    idempotency_token: Optional[str] = Field(None, max_length=200)


class CancelRequest(BaseModel):
    """Request to cancel an open instance"""
    comment: Optional[str] = Field(None, max_length=2000)


class InstanceListResponse(BaseModel):
    """Response for instance lists"""
    items: List[Dict[str, Any]]
    total: int


# ============================================================================
# Routes
# ============================================================================

@router.post("", status_code=status.HTTP_201_CREATED)
def create_instance(
    request: CreateInstanceRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    timeout: Optional[float] = Depends(get_request_timeout_dep),
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Start a workflow instance

    Uses the active definition for the entity type unless definition_name
    names another active one. Steps whose condition is not met by the
    facts are skipped for the lifetime of the instance.
    """
    instance = service.create_instance(
        entity_type=request.entity_type,
        entity_id=request.entity_id,
        initiated_by=actor.actor_id,
        facts=request.facts,
        definition_name=request.definition_name,
        timeout=timeout,
    )
    return service.instance_summary(instance)


@router.get("/pending", response_model=InstanceListResponse)
def list_pending(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    actor: ActorContext = Depends(get_current_actor_dep),
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Open instances the calling actor may decide"""
    instances = service.list_pending_for_actor(
        actor.actor_id, roles=actor.roles or None, skip=skip, limit=limit
    )
    return InstanceListResponse(
        items=[service.instance_summary(i) for i in instances],
        total=len(instances)
    )


@router.get("/entity/{entity_type}/{entity_id}", response_model=InstanceListResponse)
def list_for_entity(
    entity_type: str,
    entity_id: str,
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """All instances started for one business record, newest first"""
    instances = service.list_instances_for_entity(entity_type, entity_id)
    return InstanceListResponse(
        items=[service.instance_summary(i) for i in instances],
        total=len(instances)
    )


@router.get("/{instance_id}")
def get_instance(
    instance_id: str,
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Get a workflow instance"""
    return service.instance_summary(service.get_instance(instance_id))


@router.get("/{instance_id}/history")
def get_history(
    instance_id: str,
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Decision trail of an instance, oldest first"""
    decisions = service.history(instance_id)
    return {
        "instance_id": instance_id,
        "items": [d.model_dump(mode="json") for d in decisions],
        "total": len(decisions),
    }


@router.post("/{instance_id}/decisions")
def decide(
    instance_id: str,
    request: DecisionRequest,
    x_idempotency_key: Optional[str] = Header(None, alias="X-Idempotency-Key"),
    actor: ActorContext = Depends(get_current_actor_dep),
    timeout: Optional[float] = Depends(get_request_timeout_dep),
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Record a decision on the current step

    A retried request carrying the same idempotency token (body field or
    X-Idempotency-Key header) returns the instance without a second entry.
    """
    instance = service.decide(
        instance_id,
        actor.actor_id,
        request.action,
        comment=request.comment,
        idempotency_token=request.idempotency_token or x_idempotency_key,
        timeout=timeout,
    )
    return service.instance_summary(instance)


@router.post("/{instance_id}/cancel")
def cancel_instance(
    instance_id: str,
    request: Optional[CancelRequest] = None,
    actor: ActorContext = Depends(get_current_actor_dep),
    timeout: Optional[float] = Depends(get_request_timeout_dep),
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Cancel an open instance (initiator or current approver)"""
    instance = service.cancel_instance(
        instance_id,
        actor.actor_id,
        comment=request.comment if request else None,
        timeout=timeout,
    )
    return service.instance_summary(instance)
