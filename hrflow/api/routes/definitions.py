"""Definition API Routes - Workflow configuration endpoints"""
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..deps import get_current_actor_dep, get_correlation_id_dep, get_workflow_service_dep
from ...domain.models import ActorContext, WorkflowDefinition, WorkflowStep
from ...services.workflow_service import WorkflowService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================

class StepRequest(BaseModel):
    """One approval step; step_order defaults to list position"""
    step_order: Optional[int] = Field(None, ge=1)
    step_name: str = Field(..., min_length=1, max_length=200)
    approver_role: str = Field(..., min_length=1, max_length=100)
    requires_approval: bool = True
    is_optional: bool = False
    condition_field: Optional[str] = Field(None, max_length=100)
    condition_value: Optional[str] = Field(None, max_length=50)


class RegisterDefinitionRequest(BaseModel):
    """Request to register or update a workflow definition"""
    description: Optional[str] = Field(None, max_length=2000)
    entity_type: str = Field(..., min_length=1, max_length=50)
    is_active: bool = False
    steps: List[StepRequest] = Field(..., min_length=1)

    def to_definition(self, name: str) -> WorkflowDefinition:
        steps = [
            WorkflowStep(
                step_order=step.step_order if step.step_order is not None else index + 1,
                **step.model_dump(exclude={"step_order"}),
            )
            for index, step in enumerate(self.steps)
        ]
        return WorkflowDefinition(
            name=name,
            description=self.description,
            entity_type=self.entity_type,
            is_active=self.is_active,
            steps=steps,
        )


class DefinitionListResponse(BaseModel):
    """Response for definition list"""
    items: List[Dict[str, Any]]
    total: int


# ============================================================================
# Routes
# ============================================================================

@router.get("", response_model=DefinitionListResponse)
def list_definitions(
    entity_type: Optional[str] = Query(None),
    active_only: bool = Query(False),
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """List workflow definitions, optionally for one entity type"""
    definitions = service.list_definitions(entity_type=entity_type, active_only=active_only)
    return DefinitionListResponse(
        items=[d.model_dump(mode="json") for d in definitions],
        total=len(definitions)
    )


@router.get("/active/{entity_type}")
def get_active_definition(
    entity_type: str,
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Get the definition currently used for new instances of an entity type"""
    return service.active_definition_for(entity_type).model_dump(mode="json")


@router.get("/{name}")
def get_definition(
    name: str,
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Get a workflow definition by name"""
    return service.get_definition(name).model_dump(mode="json")


@router.put("/{name}")
def register_definition(
    name: str,
    request: RegisterDefinitionRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Register a workflow definition

    Re-registering the same name with identical steps is a no-op; changed
    steps create a new revision. Running instances are unaffected.
    """
    definition = service.register_definition(request.to_definition(name))
    logger.info(
        f"Definition {name} registered by {actor.actor_id}",
        extra={"definition_name": name, "actor_id": actor.actor_id}
    )
    return definition.model_dump(mode="json")


@router.post("/{name}/activate")
def activate_definition(
    name: str,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Activate a definition, deactivating the previous one for its entity type"""
    definition = service.activate_definition(name)
    logger.info(
        f"Definition {name} activated by {actor.actor_id}",
        extra={"definition_name": name, "actor_id": actor.actor_id}
    )
    return definition.model_dump(mode="json")


@router.post("/{name}/deactivate")
def deactivate_definition(
    name: str,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Deactivate a definition"""
    definition = service.deactivate_definition(name)
    logger.info(
        f"Definition {name} deactivated by {actor.actor_id}",
        extra={"definition_name": name, "actor_id": actor.actor_id}
    )
    return definition.model_dump(mode="json")
