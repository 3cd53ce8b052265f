"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict

from .enums import InstanceStatus, DecisionKind


# ============================================================================
# Actor
# ============================================================================

class ActorContext(BaseModel):
    """Current actor as supplied by the upstream gateway"""
    model_config = ConfigDict(extra="forbid")

    actor_id: str = Field(..., min_length=1, description="Actor identity (employee email or id)")
    roles: List[str] = Field(default_factory=list, description="Roles the gateway claims for the actor")


# ============================================================================
# Workflow Definition
# ============================================================================

class WorkflowStep(BaseModel):
    """One position in a definition's ordered sequence"""
    model_config = ConfigDict(extra="forbid")

    step_order: int = Field(..., description="1-based order index, unique and dense")
    step_name: str = Field(..., description="Display name")
    approver_role: str = Field(..., description="Role tag allowed to act on this step")
    requires_approval: bool = Field(default=True, description="False = step auto-passes")
    is_optional: bool = Field(default=False, description="True = approver may skip instead of approve")
    condition_field: Optional[str] = Field(None, description="Fact name the condition reads")
    condition_value: Optional[str] = Field(None, description="Operator + numeric literal, e.g. '>7'")

    @property
    def has_condition(self) -> bool:
        return bool(self.condition_field)


class WorkflowDefinition(BaseModel):
    """Named, revisioned template of ordered approval steps for one entity type"""
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., description="Unique definition name")
    description: Optional[str] = None
    entity_type: str = Field(..., description="Business entity type governed, e.g. LEAVE")
    is_active: bool = Field(default=False)
    steps: List[WorkflowStep] = Field(default_factory=list)
    revision: int = Field(default=1, description="Incremented on every step content change")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def ordered_steps(self) -> List[WorkflowStep]:
        return sorted(self.steps, key=lambda s: s.step_order)

    def same_content(self, other: "WorkflowDefinition") -> bool:
        """True when description and step list are identical"""
        return (
            self.description == other.description
            and [s.model_dump() for s in self.ordered_steps()]
            == [s.model_dump() for s in other.ordered_steps()]
        )


# ============================================================================
# Workflow Instance
# ============================================================================

class InstanceStep(WorkflowStep):
    """Snapshot of a definition step taken at instance creation"""
    included: bool = Field(..., description="Condition result against the instance facts")


class WorkflowInstance(BaseModel):
    """One execution of a definition against one business record"""
    model_config = ConfigDict(extra="ignore")

    instance_id: str
    definition_name: str
    definition_revision: int = 1
    entity_type: str
    entity_id: str
    status: InstanceStatus = InstanceStatus.PENDING
    current_step: Optional[int] = Field(None, description="Order index awaiting action, None when terminal")
    current_approver_role: Optional[str] = None
    initiated_by: str
    facts: Dict[str, Any] = Field(default_factory=dict)
    steps: List[InstanceStep] = Field(default_factory=list)
    decision_count: int = 0
    version: int = 1
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.status.is_open

    def get_step(self, step_order: Optional[int]) -> Optional[InstanceStep]:
        for step in self.steps:
            if step.step_order == step_order:
                return step
        return None

    def current_step_snapshot(self) -> Optional[InstanceStep]:
        return self.get_step(self.current_step)


# ============================================================================
# Audit Trail
# ============================================================================

class StepDecision(BaseModel):
    """Immutable record of one action taken on one step of one instance"""
    model_config = ConfigDict(extra="ignore", frozen=True)

    decision_id: str
    instance_id: str
    sequence: int = Field(..., description="0-based position in the instance trail")
    step_order: Optional[int] = None
    step_name: Optional[str] = None
    decision: DecisionKind
    actor_id: str
    comment: Optional[str] = None
    idempotency_token: Optional[str] = None
    correlation_id: Optional[str] = None
    created_at: datetime
