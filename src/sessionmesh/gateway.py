# src/sessionmesh/gateway.py
"""
Forwarding Gateway.

Exposes the resources this server owns locally under a stable endpoint,
``{base_url}/resources/{resource_id}``, so that peers which cannot reach the
underlying store (private network, non-HTTP backend) can still read them
through this server. The gateway is not authoritative: it only serves ids
present in the local resource store, and it is a pass-through read path, not
a replication mechanism.
"""

import logging
from typing import Optional
from urllib.parse import unquote

from .auth import INBOUND_RESOURCE, AllowAllAuthorizer, InboundAuthorizer
from .exceptions import ResourceNotFoundError, UnauthorizedError
from .models import RemoteReference, StoredResource
from .storage.base_resource import BaseResourceStore, is_valid_resource_id

logger = logging.getLogger(__name__)

RESOURCES_PATH = "/resources/"


class ForwardingGateway:
    """
    Publishes and serves locally owned resources.

    Args:
        resource_store: The local store the gateway reads from and writes to.
        base_url: Public base URL of this server (no trailing slash).
        authorizer: Hook consulted before serving an inbound read.
    """

    def __init__(self, resource_store: BaseResourceStore, base_url: str,
                 authorizer: Optional[InboundAuthorizer] = None):
        self._store = resource_store
        self._base_url = base_url.rstrip("/")
        self._authorizer = authorizer or AllowAllAuthorizer()

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def resource_store(self) -> BaseResourceStore:
        return self._store

    def url_for(self, resource_id: str) -> str:
        """Public URL under which ``resource_id`` is forwarded."""
        return f"{self._base_url}{RESOURCES_PATH}{resource_id}"

    def resource_id_from_url(self, url: str) -> Optional[str]:
        """Return the resource id if ``url`` is one of this gateway's own URLs."""
        prefix = f"{self._base_url}{RESOURCES_PATH}"
        if not url.startswith(prefix):
            return None
        resource_id = unquote(url[len(prefix):].split("?", 1)[0].split("#", 1)[0])
        return resource_id if is_valid_resource_id(resource_id) else None

    async def publish(self, content: bytes, content_type: str = "application/json") -> RemoteReference:
        """Store ``content`` locally and return a reference to its gateway URL."""
        resource = await self._store.put(content, content_type)
        logger.debug(f"Published resource '{resource.resource_id}' at {self.url_for(resource.resource_id)}")
        return RemoteReference(url=self.url_for(resource.resource_id))

    async def read_local(self, resource_id: str) -> Optional[StoredResource]:
        """Read straight from the local store, bypassing inbound authorization."""
        return await self._store.get(resource_id)

    async def read(self, resource_id: str, principal: Optional[str] = None) -> StoredResource:
        """
        Serve an inbound read of a locally owned resource.

        Args:
            resource_id: Opaque id from the request path.
            principal: Credentials presented by the caller, if any.

        Raises:
            UnauthorizedError: If the inbound authorization hook refuses.
            ResourceNotFoundError: If the id is unknown to this server.
        """
        if not await self._authorizer.authorize_inbound(INBOUND_RESOURCE, resource_id, principal):
            raise UnauthorizedError(resource_id, "Resource read denied.")
        resource = await self._store.get(resource_id) if is_valid_resource_id(resource_id) else None
        if resource is None:
            logger.info(f"Gateway read for unknown resource '{resource_id}'.")
            raise ResourceNotFoundError(None, f"Unknown resource id '{resource_id}'.")
        logger.debug(f"Gateway serving resource '{resource_id}' ({len(resource.content)} bytes).")
        return resource
