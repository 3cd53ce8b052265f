"""Store protocols shared by the MongoDB and in-memory backends."""
from typing import List, Optional, Protocol, Sequence

from ..domain.models import StepDecision, WorkflowDefinition, WorkflowInstance


class DefinitionStore(Protocol):
    """Persistence for workflow definitions, keyed by unique name."""

    def get(self, name: str) -> Optional[WorkflowDefinition]:
        """Return the definition or None."""

    def list(
        self,
        entity_type: Optional[str] = None,
        active_only: bool = False,
    ) -> List[WorkflowDefinition]:
        """Return definitions ordered by name."""

    def save(self, definition: WorkflowDefinition) -> WorkflowDefinition:
        """Insert, or replace content (description, steps, revision) of an existing name.

        Never changes the active flag of an existing definition.
        """

    def get_active(self, entity_type: str) -> Optional[WorkflowDefinition]:
        """Return the active definition for the entity type, if any."""

    def activate(self, name: str, entity_type: str) -> WorkflowDefinition:
        """Deactivate every other definition of entity_type, then activate name."""

    def deactivate(self, name: str) -> WorkflowDefinition:
        """Clear the active flag of name."""


class InstanceStore(Protocol):
    """Persistence for instances and their append-only decision trail."""

    def create(
        self, instance: WorkflowInstance, decisions: Sequence[StepDecision]
    ) -> WorkflowInstance:
        """Insert a new instance together with its initial decisions."""

    def commit(
        self,
        instance: WorkflowInstance,
        decisions: Sequence[StepDecision],
        expected_version: int,
    ) -> WorkflowInstance:
        """Write the mutable instance fields and append decisions as one unit.

        Raises ConcurrencyConflictError when the stored version is not
        expected_version.
        """

    def get(self, instance_id: str) -> Optional[WorkflowInstance]:
        """Return the instance or None."""

    def list_open(
        self,
        roles: Optional[Sequence[str]] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[WorkflowInstance]:
        """Open instances, optionally only those waiting on one of roles."""

    def list_for_entity(self, entity_type: str, entity_id: str) -> List[WorkflowInstance]:
        """Instances for one business record, newest first."""

    def decisions(self, instance_id: str) -> List[StepDecision]:
        """Decision trail ordered by sequence."""

    def find_decision_by_token(
        self, instance_id: str, idempotency_token: str
    ) -> Optional[StepDecision]:
        """Decision previously recorded with this token, if any."""
