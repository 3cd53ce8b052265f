"""Approver Resolver - Who may act for a role on a given entity"""
from typing import Dict, Iterable, Optional, Protocol, Set

import httpx

from ..config.settings import settings
from ..domain.errors import ApproverResolutionError
from ..utils.logger import get_logger, get_correlation_id

logger = get_logger(__name__)


class ApproverResolver(Protocol):
    """Collaborator answering "does actor A hold role R for entity E"."""

    def authorized_for(
        self, role: str, entity_type: str, entity_id: str, actor_id: str
    ) -> bool:
        """Return True when actor_id may act for role on the entity."""


class StaticRoleResolver:
    """
    Resolve roles from a fixed role -> actors map

    Roles hold globally: an HR user may act on every entity. Actor ids
    are compared case-insensitively since they are usually emails.
    """

    def __init__(self, assignments: Optional[Dict[str, Iterable[str]]] = None):
        source = settings.role_assignments if assignments is None else assignments
        self._assignments: Dict[str, Set[str]] = {
            role: {actor.lower() for actor in actors}
            for role, actors in source.items()
        }

    def authorized_for(
        self, role: str, entity_type: str, entity_id: str, actor_id: str
    ) -> bool:
        return actor_id.lower() in self._assignments.get(role, set())

    def grant(self, role: str, actor_id: str) -> None:
        self._assignments.setdefault(role, set()).add(actor_id.lower())


class HttpRoleDirectoryResolver:
    """
    Ask the HR role directory whether an actor holds a role for an entity

    GET {base_url}/roles/{role}/authorize?entity_type=&entity_id=&actor_id=
    answers {"authorized": bool}. The directory owns the org hierarchy
    (e.g. "manager of the employee who filed leave 42").
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or settings.role_directory_url).rstrip("/")
        self.timeout = settings.role_directory_timeout_seconds if timeout is None else timeout
        self._transport = transport

    def authorized_for(
        self, role: str, entity_type: str, entity_id: str, actor_id: str
    ) -> bool:
        headers = {"Accept": "application/json"}
        correlation_id = get_correlation_id()
        if correlation_id:
            headers["X-Correlation-Id"] = correlation_id

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.get(
                    f"{self.base_url}/roles/{role}/authorize",
                    params={
                        "entity_type": entity_type,
                        "entity_id": entity_id,
                        "actor_id": actor_id,
                    },
                    headers=headers,
                )
        except httpx.HTTPError as e:
            logger.error(
                f"Role directory unreachable: {e}",
                extra={"actor_id": actor_id, "entity_type": entity_type}
            )
            raise ApproverResolutionError(
                "Role directory is unavailable",
                details={"role": role, "reason": str(e)}
            )

        if response.status_code in (403, 404):
            return False
        if response.status_code != 200:
            logger.error(
                f"Role directory returned {response.status_code}",
                extra={"actor_id": actor_id, "entity_type": entity_type}
            )
            raise ApproverResolutionError(
                f"Role directory returned HTTP {response.status_code}",
                details={"role": role, "status_code": response.status_code}
            )

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            raise ApproverResolutionError(
                "Role directory returned an invalid response",
                details={"role": role}
            )
        return bool(payload.get("authorized", False))


def build_resolver() -> ApproverResolver:
    """Pick the resolver from settings"""
    if settings.role_directory_url:
        logger.info(f"Using role directory at {settings.role_directory_url}")
        return HttpRoleDirectoryResolver()
    return StaticRoleResolver()
