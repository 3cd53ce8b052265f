"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class InstanceStatus(str, Enum):
    """Overall workflow instance status"""
    PENDING = "PENDING"  # Created, no human decision yet
    IN_PROGRESS = "IN_PROGRESS"  # At least one step decided, more remain
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"

    @property
    def is_open(self) -> bool:
        return self in (InstanceStatus.PENDING, InstanceStatus.IN_PROGRESS)


OPEN_STATUSES = (InstanceStatus.PENDING, InstanceStatus.IN_PROGRESS)


class DecisionKind(str, Enum):
    """Audit trail entry kinds"""
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SKIPPED = "SKIPPED"
    AUTO_PASSED = "AUTO_PASSED"
    CANCELLED = "CANCELLED"


class DecisionAction(str, Enum):
    """Actions an approver may submit on the current step"""
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    SKIP = "SKIP"  # Optional steps only


class ConditionOperator(str, Enum):
    """Comparison operators allowed in step conditions"""
    GREATER_THAN_OR_EQUALS = ">="
    LESS_THAN_OR_EQUALS = "<="
    EQUALS = "=="
    GREATER_THAN = ">"
    LESS_THAN = "<"


class EntityType(str, Enum):
    """Entity types used by the HR modules (the engine accepts any tag)"""
    LEAVE = "LEAVE"
    ADVANCE = "ADVANCE"
    TICKET = "TICKET"
    PAYROLL = "PAYROLL"


class ApproverRole(str, Enum):
    """Roles used by the seeded HR workflows"""
    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"
    HR = "HR"
    ADMIN = "ADMIN"


class StorageBackend(str, Enum):
    """Persistence backend selection"""
    MONGO = "mongo"
    MEMORY = "memory"
