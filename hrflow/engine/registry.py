"""Definition Registry - Named workflow templates and the active one per entity type"""
from typing import Any, Dict, List, Optional

from ..config.settings import settings
from ..domain.models import WorkflowDefinition
from ..domain.errors import (
    DefinitionNotFoundError, DefinitionValidationError, NotFoundError
)
from ..repositories.base import DefinitionStore
from ..utils.locks import KeyedLock
from ..utils.logger import get_logger

logger = get_logger(__name__)


class DefinitionRegistry:
    """
    Register, look up and (de)activate workflow definitions

    Activation is serialized per entity type: in this process by a keyed
    lock, across processes by the store (transaction plus the partial
    unique index on active definitions).
    """

    def __init__(self, store: DefinitionStore, lock_timeout: Optional[float] = None):
        self.store = store
        self._type_locks = KeyedLock("entity-type lock")
        self._lock_timeout = settings.lock_timeout_seconds if lock_timeout is None else lock_timeout

    # =========================================================================
    # Registration
    # =========================================================================

    def register(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        """
        Register a definition, or update the steps of an existing name

        Identical content is a no-op. Changed content replaces the step
        list and bumps the revision; running instances keep the snapshot
        they were created with.

        Raises:
            DefinitionValidationError: Malformed definition, or the name
                is already registered for another entity type
        """
        self.validate(definition)

        existing = self.store.get(definition.name)
        if existing is not None:
            if existing.entity_type != definition.entity_type:
                raise DefinitionValidationError(
                    f"Definition {definition.name} already exists for entity type {existing.entity_type}",
                    details={
                        "name": definition.name,
                        "existing_entity_type": existing.entity_type,
                        "entity_type": definition.entity_type,
                    }
                )
            if existing.same_content(definition):
                logger.info(
                    f"Definition {definition.name} unchanged",
                    extra={"definition_name": definition.name}
                )
                saved = existing
            else:
                saved = self.store.save(
                    definition.model_copy(update={"revision": existing.revision + 1})
                )
                logger.info(
                    f"Updated definition {definition.name} to revision {saved.revision}",
                    extra={"definition_name": definition.name, "entity_type": definition.entity_type}
                )
        else:
            saved = self.store.save(definition.model_copy(update={"revision": 1}))
            logger.info(
                f"Registered definition {definition.name}",
                extra={"definition_name": definition.name, "entity_type": definition.entity_type}
            )
            if definition.is_active:
                saved = self.activate(definition.name)
        return saved

    def validate(self, definition: WorkflowDefinition) -> None:
        """Check a definition before any state change"""
        errors: List[Dict[str, Any]] = []

        if not definition.name.strip():
            errors.append({"field": "name", "message": "Name is required"})
        if not definition.entity_type.strip():
            errors.append({"field": "entity_type", "message": "Entity type is required"})
        if not definition.steps:
            errors.append({"field": "steps", "message": "At least one step is required"})

        orders = sorted(s.step_order for s in definition.steps)
        if orders != list(range(1, len(orders) + 1)):
            errors.append({
                "field": "steps",
                "message": "Step orders must be unique and contiguous starting at 1",
                "step_orders": orders,
            })

        for step in definition.steps:
            if not step.approver_role or not step.approver_role.strip():
                errors.append({
                    "field": "approver_role",
                    "step_order": step.step_order,
                    "message": "Approver role is required",
                })
            if not step.step_name or not step.step_name.strip():
                errors.append({
                    "field": "step_name",
                    "step_order": step.step_order,
                    "message": "Step name is required",
                })
            if step.condition_value and not step.condition_field:
                errors.append({
                    "field": "condition_field",
                    "step_order": step.step_order,
                    "message": "Condition value given without a condition field",
                })

        if errors:
            raise DefinitionValidationError(
                f"Definition {definition.name or '<unnamed>'} is invalid",
                details={"errors": errors}
            )

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_definition(self, name: str) -> WorkflowDefinition:
        definition = self.store.get(name)
        if definition is None:
            raise DefinitionNotFoundError(f"Workflow definition {name} not found")
        return definition

    def list_definitions(
        self,
        entity_type: Optional[str] = None,
        active_only: bool = False,
    ) -> List[WorkflowDefinition]:
        return self.store.list(entity_type=entity_type, active_only=active_only)

    def active_definition_for(self, entity_type: str) -> WorkflowDefinition:
        """
        Resolve the single active definition for an entity type

        Raises:
            NotFoundError: If no definition is active for the type
        """
        definition = self.store.get_active(entity_type)
        if definition is None:
            raise NotFoundError(
                f"No active workflow definition for entity type {entity_type}",
                details={"entity_type": entity_type}
            )
        return definition

    # =========================================================================
    # Activation
    # =========================================================================

    def activate(self, name: str) -> WorkflowDefinition:
        """Make name the only active definition of its entity type"""
        definition = self.get_definition(name)
        with self._type_locks.hold(definition.entity_type, timeout=self._lock_timeout):
            previous = self.store.get_active(definition.entity_type)
            activated = self.store.activate(name, definition.entity_type)

        logger.info(
            f"Activated definition {name}",
            extra={
                "definition_name": name,
                "entity_type": definition.entity_type,
                "status": f"replaced {previous.name}" if previous and previous.name != name else "active",
            }
        )
        return activated

    def deactivate(self, name: str) -> WorkflowDefinition:
        definition = self.get_definition(name)
        with self._type_locks.hold(definition.entity_type, timeout=self._lock_timeout):
            deactivated = self.store.deactivate(name)

        logger.info(
            f"Deactivated definition {name}",
            extra={"definition_name": name, "entity_type": definition.entity_type}
        )
        return deactivated
