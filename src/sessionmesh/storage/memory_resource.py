# src/sessionmesh/storage/memory_resource.py
"""
In-memory resource store. Contents are lost when the process exits.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional

from ..models import StoredResource
from .base_resource import BaseResourceStore, is_valid_resource_id

logger = logging.getLogger(__name__)


class MemoryResourceStore(BaseResourceStore):
    """Keeps resources in a dictionary guarded by an asyncio lock."""

    def __init__(self) -> None:
        self._resources: Dict[str, StoredResource] = {}
        self._lock = asyncio.Lock()

    async def initialize(self, config: Dict[str, Any]) -> None:
        logger.info("In-memory resource store initialized.")

    async def put(self, content: bytes, content_type: str = "application/json",
                  resource_id: Optional[str] = None) -> StoredResource:
        resource_id = resource_id or str(uuid.uuid4())
        if not is_valid_resource_id(resource_id):
            raise ValueError(f"Invalid resource id: '{resource_id}'")
        resource = StoredResource(resource_id=resource_id, content=bytes(content), content_type=content_type)
        async with self._lock:
            self._resources[resource_id] = resource
        logger.debug(f"Stored resource '{resource_id}' ({len(content)} bytes, {content_type}) in memory.")
        return resource

    async def get(self, resource_id: str) -> Optional[StoredResource]:
        return self._resources.get(resource_id)

    async def delete(self, resource_id: str) -> bool:
        async with self._lock:
            return self._resources.pop(resource_id, None) is not None

    async def list_ids(self) -> List[str]:
        return list(self._resources)

    async def close(self) -> None:
        pass
