# src/sessionmesh/storage/base_resource.py
"""
Abstract Base Class for local resource store backends.

A resource store holds the content this server owns (messages and state
produced by local runs). Stored content is addressed by an opaque resource id
that is independent of the backend, which is what the forwarding gateway
exposes under ``/resources/{resource_id}``.
"""

import abc
import re
from typing import Any, Dict, List, Optional

from ..models import StoredResource

RESOURCE_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]{0,127}$")


def is_valid_resource_id(resource_id: str) -> bool:
    """True for ids that are safe to use as file names and URL path segments."""
    return bool(resource_id) and bool(RESOURCE_ID_PATTERN.match(resource_id)) and ".." not in resource_id


class BaseResourceStore(abc.ABC):
    """
    Abstract Base Class for local resource storage.

    Concrete implementations decide where bytes live (memory, files, object
    storage); callers only ever see StoredResource values.
    """

    @abc.abstractmethod
    async def initialize(self, config: Dict[str, Any]) -> None:
        """
        Initialize the storage backend with given configuration.

        Args:
            config: Backend-specific configuration dictionary (e.g. path).
        """
        pass

    @abc.abstractmethod
    async def put(self, content: bytes, content_type: str = "application/json",
                  resource_id: Optional[str] = None) -> StoredResource:
        """
        Store content and return the stored record.

        Args:
            content: Raw bytes to store.
            content_type: MIME type served with the content.
            resource_id: Optional explicit id; a new uuid4 is used when omitted.

        Returns:
            The StoredResource, carrying the id under which it can be read back.

        Raises:
            ValueError: If an explicit resource_id is not a valid identifier.
            ResourceStorageError: If the backend cannot persist the content.
        """
        pass

    @abc.abstractmethod
    async def get(self, resource_id: str) -> Optional[StoredResource]:
        """
        Retrieve a stored resource by id.

        Returns:
            The StoredResource if known, otherwise None.
        """
        pass

    async def exists(self, resource_id: str) -> bool:
        """Check whether a resource id is known to this store."""
        return await self.get(resource_id) is not None

    @abc.abstractmethod
    async def delete(self, resource_id: str) -> bool:
        """
        Delete a stored resource.

        Returns:
            True if the resource existed and was deleted, False otherwise.
        """
        pass

    @abc.abstractmethod
    async def list_ids(self) -> List[str]:
        """List the ids of all stored resources."""
        pass

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources held by the backend."""
        pass
