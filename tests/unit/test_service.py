"""Tests for the service facade and its wiring from settings"""
import pytest

from hrflow.domain.enums import DecisionAction, InstanceStatus
from hrflow.engine import HttpRoleDirectoryResolver, StaticRoleResolver, build_resolver
from hrflow.repositories import (
    InMemoryDefinitionRepository, InMemoryInstanceRepository, build_stores
)
from hrflow.services.workflow_service import WorkflowService
from tests.conftest import EMPLOYEE, MANAGER


def test_memory_backend_builds_in_memory_stores():
    definitions, instances = build_stores("memory")
    assert isinstance(definitions, InMemoryDefinitionRepository)
    assert isinstance(instances, InMemoryInstanceRepository)


def test_unknown_backend_is_rejected():
    with pytest.raises(ValueError):
        build_stores("cassandra")


def test_resolver_follows_settings(monkeypatch):
    from hrflow.engine import approver_resolver

    assert isinstance(build_resolver(), StaticRoleResolver)
    monkeypatch.setattr(approver_resolver.settings, "role_directory_url", "http://directory.test")
    assert isinstance(build_resolver(), HttpRoleDirectoryResolver)


def test_from_settings_uses_configured_backend():
    service = WorkflowService.from_settings()
    assert isinstance(service.engine.store, InMemoryInstanceRepository)


def test_instance_summary_names_the_current_step(service, extended_leave):
    instance = service.create_instance("LEAVE", "42", EMPLOYEE, {"days": 9})

    summary = service.instance_summary(instance)
    assert summary["current_step_name"] == "Manager Approval"
    assert summary["status"] == "PENDING"

    rejected = service.decide(instance.instance_id, MANAGER, DecisionAction.REJECT)
    assert rejected.status == InstanceStatus.REJECTED
    assert service.instance_summary(rejected)["current_step_name"] is None
