"""Audit Writer - Append-only decision trail"""
from typing import List, Optional

from ..config.settings import settings
from ..domain.models import InstanceStep, StepDecision, WorkflowInstance
from ..domain.enums import DecisionKind
from ..repositories.base import InstanceStore
from ..utils.idgen import generate_decision_id
from ..utils.time import utc_now
from ..utils.logger import get_logger, get_correlation_id

logger = get_logger(__name__)


class AuditWriter:
    """
    Build and read StepDecision records

    Records are only ever appended, through the instance store, in the
    same write that moves the instance. There is no update or delete path.
    """

    def __init__(self, store: InstanceStore, system_actor_id: Optional[str] = None):
        self.store = store
        self.system_actor_id = system_actor_id or settings.system_actor_id

    def record(
        self,
        instance: WorkflowInstance,
        pending: List[StepDecision],
        step: Optional[InstanceStep],
        decision: DecisionKind,
        actor_id: str,
        comment: Optional[str] = None,
        idempotency_token: Optional[str] = None,
    ) -> StepDecision:
        """
        Build the next decision for an instance and queue it on pending

        Sequence numbers continue from the instance's committed decision
        count plus whatever is already queued for this write.
        """
        entry = StepDecision(
            decision_id=generate_decision_id(),
            instance_id=instance.instance_id,
            sequence=instance.decision_count + len(pending),
            step_order=step.step_order if step else None,
            step_name=step.step_name if step else None,
            decision=decision,
            actor_id=actor_id,
            comment=comment,
            idempotency_token=idempotency_token,
            correlation_id=get_correlation_id(),
            created_at=utc_now(),
        )
        pending.append(entry)
        return entry

    def record_system(
        self,
        instance: WorkflowInstance,
        pending: List[StepDecision],
        step: InstanceStep,
        decision: DecisionKind,
    ) -> StepDecision:
        """Queue a synthetic SKIPPED / AUTO_PASSED entry by the system actor"""
        comment = (
            "Condition not met" if decision == DecisionKind.SKIPPED
            else "Step does not require approval"
        )
        return self.record(instance, pending, step, decision, self.system_actor_id, comment)

    def history(self, instance_id: str) -> List[StepDecision]:
        """Full decision trail in append order"""
        return self.store.decisions(instance_id)

    def find_by_token(self, instance_id: str, idempotency_token: str) -> Optional[StepDecision]:
        """Decision previously recorded with an idempotency token"""
        return self.store.find_decision_by_token(instance_id, idempotency_token)
