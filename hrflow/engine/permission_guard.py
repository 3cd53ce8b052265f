"""Permission Guard - Authorization enforcement for instance actions"""
from typing import Optional

from ..domain.models import InstanceStep, StepDecision, WorkflowInstance
from ..domain.errors import UnauthorizedError
from ..utils.logger import get_logger
from .approver_resolver import ApproverResolver

logger = get_logger(__name__)


class PermissionGuard:
    """
    Permission enforcement for workflow instance operations

    Rules:
    - Only holders of the current step's approver role may decide it
    - The initiator may always cancel an open instance
    - Anyone else cancelling needs the current step's approver role
    - An idempotency token may only be replayed by the actor who recorded it
    """

    def __init__(self, resolver: ApproverResolver):
        self.resolver = resolver

    def _is_same_actor(self, actor_id: str, other: Optional[str]) -> bool:
        """Actor ids are emails or employee ids; compare case-insensitively"""
        if not other:
            return False
        return actor_id.strip().lower() == other.strip().lower()

    def holds_role(self, actor_id: str, instance: WorkflowInstance, role: Optional[str]) -> bool:
        """Check if actor holds role for the instance's entity"""
        if not role:
            return False
        return self.resolver.authorized_for(
            role, instance.entity_type, instance.entity_id, actor_id
        )

    def require_step_approver(
        self,
        actor_id: str,
        instance: WorkflowInstance,
        step: InstanceStep,
    ) -> None:
        """
        Raise unless actor may decide step

        Raises:
            UnauthorizedError: Actor does not hold the step's approver role
        """
        if self.holds_role(actor_id, instance, step.approver_role):
            return

        logger.warning(
            f"Actor lacks role {step.approver_role} for step {step.step_order}",
            extra={
                "instance_id": instance.instance_id,
                "actor_id": actor_id,
                "step_order": step.step_order,
            }
        )
        raise UnauthorizedError(
            f"You are not authorized to act on step '{step.step_name}'",
            details={
                "instance_id": instance.instance_id,
                "step_order": step.step_order,
                "required_role": step.approver_role,
            }
        )

    def require_can_cancel(self, actor_id: str, instance: WorkflowInstance) -> None:
        """
        Raise unless actor may cancel the instance

        Raises:
            UnauthorizedError: Actor is neither initiator nor current approver
        """
        if self._is_same_actor(actor_id, instance.initiated_by):
            return
        if self.holds_role(actor_id, instance, instance.current_approver_role):
            return

        raise UnauthorizedError(
            "Only the initiator or the current approver may cancel this workflow",
            details={
                "instance_id": instance.instance_id,
                "required_role": instance.current_approver_role,
            }
        )

    def require_token_owner(
        self,
        actor_id: str,
        instance: WorkflowInstance,
        prior: StepDecision,
    ) -> None:
        """
        Raise unless actor recorded the decision an idempotency token points to

        Raises:
            UnauthorizedError: The token belongs to another actor
        """
        if self._is_same_actor(actor_id, prior.actor_id):
            return

        logger.warning(
            "Idempotency token replayed by another actor",
            extra={
                "instance_id": instance.instance_id,
                "actor_id": actor_id,
                "step_order": prior.step_order,
            }
        )
        raise UnauthorizedError(
            "Idempotency token was recorded by another actor",
            details={"instance_id": instance.instance_id, "step_order": prior.step_order}
        )
