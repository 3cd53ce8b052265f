"""Workflow Engine - Approval state machine and its collaborators"""
from .engine import WorkflowEngine
from .registry import DefinitionRegistry
from .permission_guard import PermissionGuard
from .condition_evaluator import ConditionEvaluator
from .audit_writer import AuditWriter
from .approver_resolver import (
    ApproverResolver,
    StaticRoleResolver,
    HttpRoleDirectoryResolver,
    build_resolver,
)

__all__ = [
    "WorkflowEngine",
    "DefinitionRegistry",
    "PermissionGuard",
    "ConditionEvaluator",
    "AuditWriter",
    "ApproverResolver",
    "StaticRoleResolver",
    "HttpRoleDirectoryResolver",
    "build_resolver",
]
