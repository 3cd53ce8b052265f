"""API Dependencies - Common dependencies for routes"""
from typing import Optional
from fastapi import Header

from ..domain.errors import AuthenticationError
from ..domain.models import ActorContext
from ..services.workflow_service import WorkflowService, get_workflow_service
from ..utils.logger import set_correlation_id
from ..utils.idgen import generate_correlation_id


async def get_correlation_id_dep(
    x_correlation_id: Optional[str] = Header(None, alias="X-Correlation-Id")
) -> str:
    """
    Get or generate correlation ID for request tracing

    If client provides X-Correlation-Id, use it.
    Otherwise generate a new one.
    """
    correlation_id = x_correlation_id or generate_correlation_id()
    set_correlation_id(correlation_id)
    return correlation_id


async def get_current_actor_dep(
    x_actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
    x_actor_roles: Optional[str] = Header(None, alias="X-Actor-Roles"),
) -> ActorContext:
    """
    Dependency to get the acting user from gateway headers

    Authentication happens upstream; the gateway forwards the verified
    identity in X-Actor-Id and, optionally, known roles in X-Actor-Roles.

    Raises:
        AuthenticationError: 401 if the identity header is missing
    """
    if not x_actor_id or not x_actor_id.strip():
        raise AuthenticationError(
            "X-Actor-Id header is missing",
            details={"header": "X-Actor-Id"}
        )

    roles = [r.strip() for r in (x_actor_roles or "").split(",") if r.strip()]
    return ActorContext(actor_id=x_actor_id.strip(), roles=roles)


async def get_request_timeout_dep(
    x_request_timeout: Optional[float] = Header(None, alias="X-Request-Timeout", gt=0)
) -> Optional[float]:
    """Caller deadline in seconds for state-changing calls"""
    return x_request_timeout


def get_workflow_service_dep() -> WorkflowService:
    """Shared workflow service (overridden in tests)"""
    return get_workflow_service()
