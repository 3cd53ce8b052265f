"""In-memory implementation of the definition and instance stores."""
import threading
from typing import Dict, List, Optional, Sequence

from ..domain.models import StepDecision, WorkflowDefinition, WorkflowInstance
from ..domain.errors import (
    ConcurrencyConflictError, DefinitionNotFoundError, InstanceNotFoundError
)
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class InMemoryDefinitionRepository:
    """Store workflow definitions in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._definitions: Dict[str, WorkflowDefinition] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> Optional[WorkflowDefinition]:
        with self._lock:
            definition = self._definitions.get(name)
            return definition.model_copy(deep=True) if definition else None

    def list(
        self,
        entity_type: Optional[str] = None,
        active_only: bool = False,
    ) -> List[WorkflowDefinition]:
        with self._lock:
            found = [
                d.model_copy(deep=True)
                for d in self._definitions.values()
                if (entity_type is None or d.entity_type == entity_type)
                and (not active_only or d.is_active)
            ]
        return sorted(found, key=lambda d: d.name)

    def save(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        now = utc_now()
        with self._lock:
            existing = self._definitions.get(definition.name)
            if existing is None:
                stored = definition.model_copy(
                    deep=True,
                    update={
                        "is_active": False,
                        "created_at": definition.created_at or now,
                        "updated_at": now,
                    },
                )
            else:
                stored = existing.model_copy(
                    deep=True,
                    update={
                        "description": definition.description,
                        "steps": [s.model_copy() for s in definition.ordered_steps()],
                        "revision": definition.revision,
                        "updated_at": now,
                    },
                )
            self._definitions[definition.name] = stored
            return stored.model_copy(deep=True)

    def get_active(self, entity_type: str) -> Optional[WorkflowDefinition]:
        with self._lock:
            for definition in self._definitions.values():
                if definition.entity_type == entity_type and definition.is_active:
                    return definition.model_copy(deep=True)
        return None

    def activate(self, name: str, entity_type: str) -> WorkflowDefinition:
        now = utc_now()
        with self._lock:
            target = self._definitions.get(name)
            if target is None:
                raise DefinitionNotFoundError(f"Workflow definition {name} not found")
            for other in list(self._definitions.values()):
                if other.entity_type == entity_type and other.is_active and other.name != name:
                    self._definitions[other.name] = other.model_copy(
                        update={"is_active": False, "updated_at": now}
                    )
            activated = target.model_copy(update={"is_active": True, "updated_at": now})
            self._definitions[name] = activated
            return activated.model_copy(deep=True)

    def deactivate(self, name: str) -> WorkflowDefinition:
        with self._lock:
            target = self._definitions.get(name)
            if target is None:
                raise DefinitionNotFoundError(f"Workflow definition {name} not found")
            deactivated = target.model_copy(update={"is_active": False, "updated_at": utc_now()})
            self._definitions[name] = deactivated
            return deactivated.model_copy(deep=True)


class InMemoryInstanceRepository:
    """Store instances and their decision trail in local memory.

    A single store lock makes every create/commit atomic.
    """

    def __init__(self) -> None:
        self._instances: Dict[str, WorkflowInstance] = {}
        self._decisions: Dict[str, List[StepDecision]] = {}
        self._lock = threading.Lock()

    def create(
        self, instance: WorkflowInstance, decisions: Sequence[StepDecision]
    ) -> WorkflowInstance:
        with self._lock:
            self._instances[instance.instance_id] = instance.model_copy(deep=True)
            self._decisions[instance.instance_id] = list(decisions)
        logger.info(
            f"Created instance: {instance.instance_id}",
            extra={"instance_id": instance.instance_id, "status": instance.status.value}
        )
        return instance

    def commit(
        self,
        instance: WorkflowInstance,
        decisions: Sequence[StepDecision],
        expected_version: int,
    ) -> WorkflowInstance:
        with self._lock:
            stored = self._instances.get(instance.instance_id)
            if stored is None:
                raise InstanceNotFoundError(f"Workflow instance {instance.instance_id} not found")
            if stored.version != expected_version:
                raise ConcurrencyConflictError(
                    f"Instance {instance.instance_id} was modified. Please refresh and try again.",
                    details={"expected_version": expected_version}
                )
            self._instances[instance.instance_id] = stored.model_copy(
                update={
                    "status": instance.status,
                    "current_step": instance.current_step,
                    "current_approver_role": instance.current_approver_role,
                    "decision_count": instance.decision_count,
                    "version": instance.version,
                    "updated_at": instance.updated_at,
                    "completed_at": instance.completed_at,
                }
            )
            self._decisions[instance.instance_id].extend(decisions)
        logger.info(
            f"Committed instance: {instance.instance_id}",
            extra={"instance_id": instance.instance_id, "status": instance.status.value}
        )
        return instance

    def get(self, instance_id: str) -> Optional[WorkflowInstance]:
        with self._lock:
            instance = self._instances.get(instance_id)
            return instance.model_copy(deep=True) if instance else None

    def list_open(
        self,
        roles: Optional[Sequence[str]] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[WorkflowInstance]:
        with self._lock:
            found = [
                i.model_copy(deep=True)
                for i in self._instances.values()
                if i.is_open and (roles is None or i.current_approver_role in roles)
            ]
        found.sort(key=lambda i: i.created_at)
        return found[skip:skip + limit]

    def list_for_entity(self, entity_type: str, entity_id: str) -> List[WorkflowInstance]:
        with self._lock:
            found = [
                i.model_copy(deep=True)
                for i in self._instances.values()
                if i.entity_type == entity_type and i.entity_id == entity_id
            ]
        found.sort(key=lambda i: i.created_at, reverse=True)
        return found

    def decisions(self, instance_id: str) -> List[StepDecision]:
        with self._lock:
            return list(self._decisions.get(instance_id, []))

    def find_decision_by_token(
        self, instance_id: str, idempotency_token: str
    ) -> Optional[StepDecision]:
        with self._lock:
            for decision in self._decisions.get(instance_id, []):
                if decision.idempotency_token == idempotency_token:
                    return decision
        return None
