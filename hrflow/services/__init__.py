"""Service modules - Business logic layer"""
from .workflow_service import WorkflowService, get_workflow_service

__all__ = [
    "WorkflowService",
    "get_workflow_service",
]
