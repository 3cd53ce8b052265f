"""Workflow Service - Operations exposed to the HR modules and the REST API"""
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..config.settings import settings
from ..domain.models import StepDecision, WorkflowDefinition, WorkflowInstance
from ..domain.enums import DecisionAction
from ..engine import DefinitionRegistry, WorkflowEngine, ApproverResolver, build_resolver
from ..repositories import DefinitionStore, InstanceStore, build_stores
from ..utils.logger import get_logger

logger = get_logger(__name__)


class WorkflowService:
    """Facade over the definition registry and the instance engine"""

    def __init__(
        self,
        definition_store: DefinitionStore,
        instance_store: InstanceStore,
        resolver: ApproverResolver,
    ):
        self.registry = DefinitionRegistry(definition_store)
        self.engine = WorkflowEngine(self.registry, instance_store, resolver)

    @classmethod
    def from_settings(cls) -> "WorkflowService":
        definition_store, instance_store = build_stores(settings.storage_backend)
        logger.info(f"Workflow service using {settings.storage_backend} storage")
        return cls(definition_store, instance_store, build_resolver())

    # =========================================================================
    # Definitions
    # =========================================================================

    def register_definition(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        return self.registry.register(definition)

    def get_definition(self, name: str) -> WorkflowDefinition:
        return self.registry.get_definition(name)

    def list_definitions(
        self, entity_type: Optional[str] = None, active_only: bool = False
    ) -> List[WorkflowDefinition]:
        return self.registry.list_definitions(entity_type=entity_type, active_only=active_only)

    def activate_definition(self, name: str) -> WorkflowDefinition:
        return self.registry.activate(name)

    def deactivate_definition(self, name: str) -> WorkflowDefinition:
        return self.registry.deactivate(name)

    def active_definition_for(self, entity_type: str) -> WorkflowDefinition:
        return self.registry.active_definition_for(entity_type)

    # =========================================================================
    # Instances
    # =========================================================================

    def create_instance(
        self,
        entity_type: str,
        entity_id: str,
        initiated_by: str,
        facts: Optional[Mapping[str, Any]] = None,
        definition_name: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> WorkflowInstance:
        return self.engine.create_instance(
            entity_type=entity_type,
            entity_id=entity_id,
            initiated_by=initiated_by,
            facts=facts,
            definition_name=definition_name,
            timeout=timeout,
        )

    def decide(
        self,
        instance_id: str,
        actor_id: str,
        action: DecisionAction,
        comment: Optional[str] = None,
        idempotency_token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> WorkflowInstance:
        return self.engine.decide(
            instance_id, actor_id, action, comment,
            idempotency_token=idempotency_token, timeout=timeout,
        )

    def cancel_instance(
        self,
        instance_id: str,
        actor_id: str,
        comment: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> WorkflowInstance:
        return self.engine.cancel_instance(instance_id, actor_id, comment, timeout=timeout)

    def get_instance(self, instance_id: str) -> WorkflowInstance:
        return self.engine.get_instance(instance_id)

    def history(self, instance_id: str) -> List[StepDecision]:
        return self.engine.history(instance_id)

    def list_pending_for_actor(
        self,
        actor_id: str,
        roles: Optional[Sequence[str]] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[WorkflowInstance]:
        return self.engine.list_pending_for_actor(actor_id, roles=roles, skip=skip, limit=limit)

    def list_instances_for_entity(self, entity_type: str, entity_id: str) -> List[WorkflowInstance]:
        return self.engine.list_instances_for_entity(entity_type, entity_id)

    def instance_summary(self, instance: WorkflowInstance) -> Dict[str, Any]:
        """Instance plus the name of the step it waits on, for API responses"""
        current = instance.current_step_snapshot()
        data = instance.model_dump(mode="json")
        data["current_step_name"] = current.step_name if current else None
        return data


@lru_cache()
def get_workflow_service() -> WorkflowService:
    """Get the process-wide service instance"""
    return WorkflowService.from_settings()
