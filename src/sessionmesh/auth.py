# src/sessionmesh/auth.py
"""
Authorization hooks for server-to-server access.

Authentication itself is owned by an external collaborator; the core only
calls these hooks. ``authorize_outbound`` runs before every remote fetch and
returns the headers (credentials) to attach. ``authorize_inbound`` runs
before serving a session descriptor or a forwarded resource.
"""

import hmac
import logging
from typing import Dict, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

INBOUND_SESSION = "session"
INBOUND_RESOURCE = "resource"


@runtime_checkable
class OutboundAuthorizer(Protocol):
    async def authorize_outbound(self, url: str) -> Dict[str, str]:
        """Return headers to attach to a fetch of ``url``; raise UnauthorizedError to refuse."""
        ...


@runtime_checkable
class InboundAuthorizer(Protocol):
    async def authorize_inbound(self, request_kind: str, target_id: str,
                                principal: Optional[str]) -> bool:
        """Return True when ``principal`` may read ``target_id``."""
        ...


@runtime_checkable
class Authorizer(OutboundAuthorizer, InboundAuthorizer, Protocol):
    """Both authorization hooks, as consumed by SessionMesh."""


class AllowAllAuthorizer:
    """Attaches no credentials and admits every inbound read."""

    async def authorize_outbound(self, url: str) -> Dict[str, str]:
        return {}

    async def authorize_inbound(self, request_kind: str, target_id: str,
                                principal: Optional[str]) -> bool:
        return True


class StaticTokenAuthorizer:
    """
    Shared bearer token between cooperating servers.

    Outbound fetches carry ``Authorization: Bearer <token>``; inbound reads
    must present the same token. An empty token disables both checks.
    """

    def __init__(self, token: str):
        self._token = token or ""

    async def authorize_outbound(self, url: str) -> Dict[str, str]:
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    async def authorize_inbound(self, request_kind: str, target_id: str,
                                principal: Optional[str]) -> bool:
        if not self._token:
            return True
        if not principal:
            logger.info(f"Rejected unauthenticated {request_kind} read of '{target_id}'.")
            return False
        presented = principal[len("Bearer "):] if principal.startswith("Bearer ") else principal
        allowed = hmac.compare_digest(presented.encode(), self._token.encode())
        if not allowed:
            logger.warning(f"Rejected {request_kind} read of '{target_id}': invalid token.")
        return allowed
