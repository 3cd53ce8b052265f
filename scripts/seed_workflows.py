"""
Seed Workflows Script - Registers the standard HR approval workflows
Run: python -m scripts.seed_workflows

Safe to re-run: definitions whose steps are unchanged are left as they are.
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from typing import List

from hrflow.config.settings import settings
from hrflow.domain.enums import ApproverRole, EntityType, StorageBackend
from hrflow.domain.models import WorkflowDefinition, WorkflowStep
from hrflow.repositories.mongo_client import create_indexes
from hrflow.services.workflow_service import WorkflowService


def _step(order: int, name: str, role: ApproverRole, **kwargs) -> WorkflowStep:
    return WorkflowStep(step_order=order, step_name=name, approver_role=role.value, **kwargs)


SEED_DEFINITIONS: List[WorkflowDefinition] = [
    WorkflowDefinition(
        name="Leave Approval - Standard",
        description="Standard leave approval workflow: Manager -> HR",
        entity_type=EntityType.LEAVE.value,
        is_active=True,
        steps=[
            _step(1, "Manager Approval", ApproverRole.MANAGER),
            _step(2, "HR Approval", ApproverRole.HR),
        ],
    ),
    # Kept inactive; activate it to route long leaves through a department head
    WorkflowDefinition(
        name="Leave Approval - Extended",
        description="Extended leave approval for >7 days: Manager -> Dept Head -> HR",
        entity_type=EntityType.LEAVE.value,
        is_active=False,
        steps=[
            _step(1, "Manager Approval", ApproverRole.MANAGER,
                  condition_field="days", condition_value=">7"),
            _step(2, "Department Head Approval", ApproverRole.MANAGER),
            _step(3, "HR Final Approval", ApproverRole.HR),
        ],
    ),
    WorkflowDefinition(
        name="Advance Request - Standard",
        description="Salary advance approval: Manager -> HR -> Finance",
        entity_type=EntityType.ADVANCE.value,
        is_active=True,
        steps=[
            _step(1, "Manager Approval", ApproverRole.MANAGER),
            _step(2, "HR Review", ApproverRole.HR),
            _step(3, "Finance Approval", ApproverRole.ADMIN),
        ],
    ),
    WorkflowDefinition(
        name="Air Ticket Request - Standard",
        description="Air ticket approval: Manager -> HR",
        entity_type=EntityType.TICKET.value,
        is_active=True,
        steps=[
            _step(1, "Manager Approval", ApproverRole.MANAGER),
            _step(2, "HR Final Approval", ApproverRole.HR),
        ],
    ),
    WorkflowDefinition(
        name="Payroll Processing - Monthly",
        description="Monthly payroll approval: HR -> Finance -> Admin",
        entity_type=EntityType.PAYROLL.value,
        is_active=True,
        steps=[
            _step(1, "HR Review", ApproverRole.HR),
            _step(2, "Finance Verification", ApproverRole.ADMIN),
            _step(3, "Final Authorization", ApproverRole.ADMIN),
        ],
    ),
]


def seed_definitions(service: WorkflowService) -> List[WorkflowDefinition]:
    """Register every seed definition and return what the registry holds"""
    registered = []
    for definition in SEED_DEFINITIONS:
        saved = service.register_definition(definition.model_copy(deep=True))
        print(f"Registered {saved.name} (revision {saved.revision}, active={saved.is_active})")
        registered.append(saved)
    return registered


def main():
    print("=== Seeding workflow definitions ===")
    print("-" * 40)

    if StorageBackend(settings.storage_backend) == StorageBackend.MEMORY:
        print("STORAGE_BACKEND is 'memory'; seeded definitions will not persist.")
    else:
        create_indexes()

    seed_definitions(WorkflowService.from_settings())

    print("-" * 40)
    print("Done!")


if __name__ == "__main__":
    main()
