"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error - all errors extend this"""

    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response dict"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# Authentication & Authorization Errors
class AuthenticationError(DomainError):
    """Actor identity missing"""
    error_code = "AUTHENTICATION_ERROR"
    http_status = 401


class AuthorizationError(DomainError):
    """Actor lacks permission for action"""
    error_code = "AUTHORIZATION_ERROR"
    http_status = 403


class UnauthorizedError(AuthorizationError):
    """Actor does not hold the approver role required by the current step"""
    error_code = "UNAUTHORIZED"


# Validation Errors
class ValidationError(DomainError):
    """Input validation failed"""
    error_code = "VALIDATION_ERROR"
    http_status = 400


class DefinitionValidationError(ValidationError):
    """Workflow definition validation failed"""
    error_code = "DEFINITION_VALIDATION_ERROR"


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class DefinitionNotFoundError(NotFoundError):
    """Workflow definition not found"""
    error_code = "DEFINITION_NOT_FOUND"


class InstanceNotFoundError(NotFoundError):
    """Workflow instance not found"""
    error_code = "INSTANCE_NOT_FOUND"


# Conflict Errors
class ConflictError(DomainError):
    """Resource conflict (e.g., concurrent modification)"""
    error_code = "CONFLICT"
    http_status = 409


class ConcurrencyConflictError(ConflictError):
    """Lost the per-instance exclusion race - safe to retry"""
    error_code = "CONCURRENCY_CONFLICT"


class InvalidStateError(ConflictError):
    """Action not valid for current state"""
    error_code = "INVALID_STATE"


class OperationTimeoutError(ConflictError):
    """Deadline expired before the operation could commit"""
    error_code = "OPERATION_TIMEOUT"


# Engine Errors
class EngineError(DomainError):
    """Workflow engine error"""
    error_code = "ENGINE_ERROR"
    http_status = 500


class ConditionError(EngineError):
    """Step condition could not be evaluated (configuration defect)"""
    error_code = "CONDITION_ERROR"
    http_status = 422


class MissingFactError(ConditionError):
    """Condition references a fact the instance does not carry"""
    error_code = "MISSING_FACT"


class InvalidConditionError(ConditionError):
    """Condition expression or fact value cannot be evaluated"""
    error_code = "INVALID_CONDITION"


# External Service Errors
class ExternalServiceError(DomainError):
    """External service failure"""
    error_code = "EXTERNAL_SERVICE_ERROR"
    http_status = 502


class ApproverResolutionError(ExternalServiceError):
    """Role directory could not be consulted"""
    error_code = "APPROVER_RESOLUTION_ERROR"
