"""
Workflow Engine - Instance state machine

Drives one business record (leave, advance, air ticket, payroll, ...)
through the ordered approval steps of a workflow definition.

=============================================================================
LIFECYCLE
=============================================================================

    PENDING --approve--> IN_PROGRESS --approve (last step)--> APPROVED
       |                     |
       +-------reject--------+-----------------------------> REJECTED
       +-------cancel--------+-----------------------------> CANCELLED

- Step inclusion is computed once, at creation, from the immutable facts
  and kept on the instance as a snapshot of the definition steps.
- Excluded steps are logged as SKIPPED and not-required steps as
  AUTO_PASSED by the system actor while advancing; neither ever becomes
  the current step.
- Every call computes the new instance state and its audit entries in
  memory and hands them to the store as a single version-checked write.

=============================================================================
DEPENDENCIES
=============================================================================

    - DefinitionRegistry: resolve the definition to instantiate
    - InstanceStore: instances and the decision trail
    - PermissionGuard / ApproverResolver: who may act
    - ConditionEvaluator: step inclusion
    - AuditWriter: decision records
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..config.settings import settings
from ..domain.models import StepDecision, WorkflowDefinition, WorkflowInstance
from ..domain.enums import DecisionAction, DecisionKind, InstanceStatus
from ..domain.errors import (
    InstanceNotFoundError, InvalidStateError, OperationTimeoutError, ValidationError
)
from ..repositories.base import InstanceStore
from ..utils.idgen import generate_instance_id
from ..utils.locks import KeyedLock
from ..utils.time import Deadline, utc_now
from ..utils.logger import get_logger
from .approver_resolver import ApproverResolver
from .audit_writer import AuditWriter
from .condition_evaluator import ConditionEvaluator
from .permission_guard import PermissionGuard
from .registry import DefinitionRegistry

logger = get_logger(__name__)

_ACTION_DECISIONS = {
    DecisionAction.APPROVE: DecisionKind.APPROVED,
    DecisionAction.REJECT: DecisionKind.REJECTED,
    DecisionAction.SKIP: DecisionKind.SKIPPED,
}


class WorkflowEngine:
    """
    Approval workflow engine

    Handles:
    - Instance creation from the active (or a named) definition
    - Approve / reject / skip decisions on the current step
    - Cancellation
    - Instance, history and pending-approval queries
    """

    def __init__(
        self,
        registry: DefinitionRegistry,
        store: InstanceStore,
        resolver: ApproverResolver,
        evaluator: Optional[ConditionEvaluator] = None,
        audit: Optional[AuditWriter] = None,
        lock_timeout: Optional[float] = None,
    ):
        self.registry = registry
        self.store = store
        self.permission_guard = PermissionGuard(resolver)
        self.evaluator = evaluator or ConditionEvaluator()
        self.audit = audit or AuditWriter(store)
        self._instance_locks = KeyedLock("instance lock")
        self._lock_timeout = settings.lock_timeout_seconds if lock_timeout is None else lock_timeout

    # =========================================================================
    # Creation
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
        """
        Start a workflow for one business record

        Args:
            entity_type: Entity type tag, e.g. LEAVE
            entity_id: Identifier of the business record
            initiated_by: Actor starting the workflow
            facts: Values the step conditions read, e.g. {"days": 9}
            definition_name: Use this definition instead of the active one
            timeout: Seconds before the call is abandoned

        Returns:
            The persisted instance. It is already APPROVED when no step
            needs a human decision.

        Raises:
            NotFoundError: No active definition for the entity type
            ValidationError: Bad arguments or definition/entity type mismatch
            MissingFactError / InvalidConditionError: A condition cannot be evaluated
        """
        deadline = Deadline(timeout)
        for field, value in (
            ("entity_type", entity_type),
            ("entity_id", entity_id),
            ("initiated_by", initiated_by),
        ):
            if value is None or not str(value).strip():
                raise ValidationError(f"{field} is required", details={"field": field})

        definition = self._resolve_definition(entity_type, definition_name)
        fact_set: Dict[str, Any] = dict(facts or {})
        snapshot = self.evaluator.build_inclusion(definition.steps, fact_set)

        now = utc_now()
        instance = WorkflowInstance(
            instance_id=generate_instance_id(),
            definition_name=definition.name,
            definition_revision=definition.revision,
            entity_type=entity_type,
            entity_id=str(entity_id),
            status=InstanceStatus.PENDING,
            initiated_by=initiated_by,
            facts=fact_set,
            steps=snapshot,
            created_at=now,
            updated_at=now,
        )

        pending: List[StepDecision] = []
        self._advance(instance, pending, after_step=0)
        instance.decision_count = len(pending)

        self._check_deadline(deadline, instance.instance_id)
        self.store.create(instance, pending)

        logger.info(
            f"Created workflow instance {instance.instance_id} from {definition.name}",
            extra={
                "instance_id": instance.instance_id,
                "definition_name": definition.name,
                "entity_type": entity_type,
                "entity_id": instance.entity_id,
                "status": instance.status.value,
                "step_order": instance.current_step,
            }
        )
        return instance

    def _resolve_definition(
        self, entity_type: str, definition_name: Optional[str]
    ) -> WorkflowDefinition:
        if definition_name is None:
            definition = self.registry.active_definition_for(entity_type)
        else:
            definition = self.registry.get_definition(definition_name)
            if not definition.is_active:
                raise ValidationError(
                    f"Workflow definition {definition_name} is not active",
                    details={"definition_name": definition_name}
                )

        if definition.entity_type != entity_type:
            raise ValidationError(
                f"Definition {definition.name} governs {definition.entity_type}, not {entity_type}",
                details={
                    "definition_name": definition.name,
                    "definition_entity_type": definition.entity_type,
                    "entity_type": entity_type,
                }
            )
        return definition

    # =========================================================================
    # Decisions
    # =========================================================================

    def decide(
        self,
        instance_id: str,
        actor_id: str,
        action: DecisionAction,
        comment: Optional[str] = None,
        idempotency_token: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> WorkflowInstance:
        """
        Apply an approver's decision to the current step

        APPROVE moves to the next step that needs a human, REJECT ends the
        workflow, SKIP passes over an optional step.

        A repeated call with an idempotency token already recorded on this
        instance returns the current instance without a new entry. Only the
        actor who recorded the token may replay it, and only with the same
        action.

        Raises:
            ValidationError: Unknown action
            NotFoundError: Unknown instance
            InvalidStateError: Instance is terminal, the action does not
                fit the current step, or the token was used for another action
            UnauthorizedError: Actor does not hold the current step's role,
                or replays another actor's token
            ConcurrencyConflictError: Another decision won the race
            OperationTimeoutError: Deadline passed before commit
        """
        try:
            action = DecisionAction(action)
        except ValueError:
            raise ValidationError(
                f"Unknown action {action!r}",
                details={"action": str(action), "allowed": [a.value for a in DecisionAction]}
            )
        deadline = Deadline(timeout)

        with self._instance_locks.hold(instance_id, timeout=self._lock_wait(deadline)):
            instance = self.get_instance(instance_id)

            if idempotency_token:
                prior = self.audit.find_by_token(instance_id, idempotency_token)
                if prior is not None:
                    self.permission_guard.require_token_owner(actor_id, instance, prior)
                    if prior.decision != _ACTION_DECISIONS[action]:
                        raise InvalidStateError(
                            "Idempotency token was already used for a different decision",
                            details={
                                "instance_id": instance_id,
                                "recorded": prior.decision.value,
                                "action": action.value,
                            }
                        )
                    logger.info(
                        f"Replayed decision {prior.decision_id} for token",
                        extra={"instance_id": instance_id, "actor_id": actor_id}
                    )
                    return instance

            self._require_open(instance, action.value)
            step = instance.current_step_snapshot()
            if step is None:
                raise InvalidStateError(
                    f"Instance {instance_id} has no current step",
                    details={"instance_id": instance_id, "current_step": instance.current_step}
                )

            self.permission_guard.require_step_approver(actor_id, instance, step)

            if not step.requires_approval:
                raise InvalidStateError(
                    f"Step '{step.step_name}' passes automatically and cannot be decided",
                    details={"instance_id": instance_id, "step_order": step.step_order}
                )
            if action == DecisionAction.SKIP and not step.is_optional:
                raise InvalidStateError(
                    f"Step '{step.step_name}' is not optional and cannot be skipped",
                    details={"instance_id": instance_id, "step_order": step.step_order}
                )

            draft = instance.model_copy(deep=True)
            pending: List[StepDecision] = []
            now = utc_now()

            if action == DecisionAction.REJECT:
                self.audit.record(
                    draft, pending, step, DecisionKind.REJECTED, actor_id,
                    comment, idempotency_token
                )
                self._finish(draft, InstanceStatus.REJECTED, now)
            else:
                self.audit.record(
                    draft, pending, step, _ACTION_DECISIONS[action], actor_id,
                    comment, idempotency_token
                )
                if self._advance(draft, pending, after_step=step.step_order):
                    draft.status = InstanceStatus.IN_PROGRESS

            committed = self._commit(instance, draft, pending, deadline)

        logger.info(
            f"Instance {instance_id}: {action.value} on step {step.step_order}",
            extra={
                "instance_id": instance_id,
                "actor_id": actor_id,
                "decision": action.value,
                "status": committed.status.value,
                "step_order": committed.current_step,
            }
        )
        return committed

    def approve(self, instance_id: str, actor_id: str, comment: Optional[str] = None, **kwargs) -> WorkflowInstance:
        return self.decide(instance_id, actor_id, DecisionAction.APPROVE, comment, **kwargs)

    def reject(self, instance_id: str, actor_id: str, comment: Optional[str] = None, **kwargs) -> WorkflowInstance:
        return self.decide(instance_id, actor_id, DecisionAction.REJECT, comment, **kwargs)

    def cancel_instance(
        self,
        instance_id: str,
        actor_id: str,
        comment: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> WorkflowInstance:
        """
        Cancel an open instance regardless of its current step

        Raises:
            NotFoundError: Unknown instance
            InvalidStateError: Instance is already terminal
            UnauthorizedError: Actor is neither initiator nor current approver
        """
        deadline = Deadline(timeout)

        with self._instance_locks.hold(instance_id, timeout=self._lock_wait(deadline)):
            instance = self.get_instance(instance_id)
            self._require_open(instance, "cancel")
            self.permission_guard.require_can_cancel(actor_id, instance)

            draft = instance.model_copy(deep=True)
            pending: List[StepDecision] = []
            self.audit.record(
                draft, pending, instance.current_step_snapshot(),
                DecisionKind.CANCELLED, actor_id, comment
            )
            self._finish(draft, InstanceStatus.CANCELLED, utc_now())
            committed = self._commit(instance, draft, pending, deadline)

        logger.info(
            f"Cancelled instance {instance_id}",
            extra={"instance_id": instance_id, "actor_id": actor_id, "status": committed.status.value}
        )
        return committed

    # =========================================================================
    # Queries
    # =========================================================================

    def get_instance(self, instance_id: str) -> WorkflowInstance:
        instance = self.store.get(instance_id)
        if instance is None:
            raise InstanceNotFoundError(f"Workflow instance {instance_id} not found")
        return instance

    def history(self, instance_id: str) -> List[StepDecision]:
        """Decision trail of an instance, oldest first"""
        self.get_instance(instance_id)
        return self.audit.history(instance_id)

    def list_pending_for_actor(
        self,
        actor_id: str,
        roles: Optional[Sequence[str]] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[WorkflowInstance]:
        """
        Open instances whose current step the actor may decide

        roles narrows the scan to instances waiting on those roles; the
        resolver still has the final say per entity.
        """
        candidates = self.store.list_open(roles=roles, skip=skip, limit=limit)
        return [
            instance for instance in candidates
            if self.permission_guard.holds_role(actor_id, instance, instance.current_approver_role)
        ]

    def list_instances_for_entity(self, entity_type: str, entity_id: str) -> List[WorkflowInstance]:
        return self.store.list_for_entity(entity_type, str(entity_id))

    # =========================================================================
    # Transition helpers
    # =========================================================================

    def _advance(
        self,
        instance: WorkflowInstance,
        pending: List[StepDecision],
        after_step: int,
    ) -> bool:
        """
        Move the pointer to the next step after after_step that needs a human

        Excluded steps are logged SKIPPED and not-required steps
        AUTO_PASSED on the way. When no such step is left the instance is
        APPROVED.

        Returns:
            True if a step now awaits a decision
        """
        for step in sorted(instance.steps, key=lambda s: s.step_order):
            if step.step_order <= after_step:
                continue
            if not step.included:
                self.audit.record_system(instance, pending, step, DecisionKind.SKIPPED)
                continue
            if not step.requires_approval:
                self.audit.record_system(instance, pending, step, DecisionKind.AUTO_PASSED)
                continue

            instance.current_step = step.step_order
            instance.current_approver_role = step.approver_role
            return True

        self._finish(instance, InstanceStatus.APPROVED, utc_now())
        return False

    def _finish(self, instance: WorkflowInstance, status: InstanceStatus, now) -> None:
        instance.status = status
        instance.current_step = None
        instance.current_approver_role = None
        instance.completed_at = now

    def _require_open(self, instance: WorkflowInstance, action: str) -> None:
        if not instance.is_open:
            raise InvalidStateError(
                f"Cannot {action.lower()}: workflow is already {instance.status.value}",
                details={"instance_id": instance.instance_id, "status": instance.status.value}
            )

    def _commit(
        self,
        instance: WorkflowInstance,
        draft: WorkflowInstance,
        pending: List[StepDecision],
        deadline: Deadline,
    ) -> WorkflowInstance:
        draft.decision_count = instance.decision_count + len(pending)
        draft.version = instance.version + 1
        draft.updated_at = utc_now()
        self._check_deadline(deadline, instance.instance_id)
        return self.store.commit(draft, pending, expected_version=instance.version)

    def _lock_wait(self, deadline: Deadline) -> float:
        remaining = deadline.remaining()
        if remaining is None:
            return self._lock_timeout
        return min(remaining, self._lock_timeout)

    def _check_deadline(self, deadline: Deadline, instance_id: str) -> None:
        if deadline.expired:
            raise OperationTimeoutError(
                "Operation deadline expired; nothing was saved",
                details={"instance_id": instance_id}
            )
