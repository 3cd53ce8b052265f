"""
Pytest Configuration and Fixtures

Every test runs against the in-memory stores and a static role map, so
no MongoDB or role directory is needed.
"""

import os

# Must be set before hrflow.config.settings is first imported
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("ROLE_DIRECTORY_URL", "")

import pytest
from typing import Iterator, List

from hrflow.domain.models import WorkflowDefinition, WorkflowStep
from hrflow.engine import StaticRoleResolver
from hrflow.repositories import InMemoryDefinitionRepository, InMemoryInstanceRepository
from hrflow.services.workflow_service import WorkflowService

MANAGER = "manager@corp.com"
DEPT_HEAD = "depthead@corp.com"
HR = "hr@corp.com"
ADMIN = "admin@corp.com"
EMPLOYEE = "employee@corp.com"

EXTENDED_LEAVE = "Leave Approval - Extended"


def make_definition(
    name: str,
    entity_type: str = "LEAVE",
    steps: List[WorkflowStep] = None,
    is_active: bool = False,
    description: str = None,
) -> WorkflowDefinition:
    """Build a definition; default steps are Manager then HR"""
    if steps is None:
        steps = [
            WorkflowStep(step_order=1, step_name="Manager Approval", approver_role="MANAGER"),
            WorkflowStep(step_order=2, step_name="HR Approval", approver_role="HR"),
        ]
    return WorkflowDefinition(
        name=name,
        description=description,
        entity_type=entity_type,
        is_active=is_active,
        steps=steps,
    )


def extended_leave_definition() -> WorkflowDefinition:
    return make_definition(
        EXTENDED_LEAVE,
        is_active=True,
        description="Extended leave approval for >7 days",
        steps=[
            WorkflowStep(
                step_order=1, step_name="Manager Approval", approver_role="MANAGER",
                condition_field="days", condition_value=">7",
            ),
            WorkflowStep(step_order=2, step_name="Department Head Approval", approver_role="DEPT_HEAD"),
            WorkflowStep(step_order=3, step_name="HR Final Approval", approver_role="HR"),
        ],
    )


@pytest.fixture
def resolver() -> StaticRoleResolver:
    return StaticRoleResolver({
        "MANAGER": [MANAGER],
        "DEPT_HEAD": [DEPT_HEAD],
        "HR": [HR],
        "ADMIN": [ADMIN],
    })


@pytest.fixture
def definition_store() -> InMemoryDefinitionRepository:
    return InMemoryDefinitionRepository()


@pytest.fixture
def instance_store() -> InMemoryInstanceRepository:
    return InMemoryInstanceRepository()


@pytest.fixture
def service(definition_store, instance_store, resolver) -> WorkflowService:
    return WorkflowService(definition_store, instance_store, resolver)


@pytest.fixture
def registry(service):
    return service.registry


@pytest.fixture
def engine(service):
    return service.engine


@pytest.fixture
def extended_leave(registry) -> WorkflowDefinition:
    """Active three-step LEAVE definition whose first step needs days > 7"""
    return registry.register(extended_leave_definition())


@pytest.fixture
def client(service) -> Iterator:
    """TestClient wired to the per-test service"""
    from fastapi.testclient import TestClient
    from hrflow.main import app
    from hrflow.api.deps import get_workflow_service_dep

    app.dependency_overrides[get_workflow_service_dep] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
