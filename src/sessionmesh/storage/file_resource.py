# src/sessionmesh/storage/file_resource.py
"""
File-based resource store.

Each resource is stored as two files in the configured directory: the raw
payload (``<id>.bin``) and a small JSON sidecar (``<id>.meta.json``) holding
the content type and creation time. It uses aiofiles for asynchronous file
operations.
"""

import json
import logging
import os
import pathlib
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiofiles
import aiofiles.os as aios

from ..exceptions import ConfigError, ResourceStorageError
from ..models import StoredResource
from .base_resource import BaseResourceStore, is_valid_resource_id

logger = logging.getLogger(__name__)


class FileResourceStore(BaseResourceStore):
    """
    Manages persistence of resources as files in a directory.
    """
    _storage_dir: pathlib.Path
    _payload_suffix: str = ".bin"
    _meta_suffix: str = ".meta.json"

    async def initialize(self, config: Dict[str, Any]) -> None:
        """
        Initialize the file resource store.

        Args:
            config: Configuration dictionary. Expected keys:
                    'path': The directory path for storing resource files.

        Raises:
            ConfigError: If the 'path' is not provided in the config.
            ResourceStorageError: If the storage directory cannot be created.
        """
        storage_path_str = config.get("path")
        if not storage_path_str:
            raise ConfigError("File resource storage 'path' not specified in configuration.")

        self._storage_dir = pathlib.Path(os.path.expanduser(storage_path_str))
        try:
            await aios.makedirs(self._storage_dir, exist_ok=True)
            logger.info(f"File resource storage initialized at: {self._storage_dir.resolve()}")
        except OSError as e:
            logger.error(f"Failed to create resource storage directory {self._storage_dir}: {e}")
            raise ResourceStorageError(f"Could not create resource storage directory: {e}")

    def _payload_path(self, resource_id: str) -> pathlib.Path:
        return self._storage_dir / f"{resource_id}{self._payload_suffix}"

    def _meta_path(self, resource_id: str) -> pathlib.Path:
        return self._storage_dir / f"{resource_id}{self._meta_suffix}"

    async def put(self, content: bytes, content_type: str = "application/json",
                  resource_id: Optional[str] = None) -> StoredResource:
        resource_id = resource_id or str(uuid.uuid4())
        if not is_valid_resource_id(resource_id):
            raise ValueError(f"Invalid resource id: '{resource_id}'")

        resource = StoredResource(resource_id=resource_id, content=bytes(content), content_type=content_type)
        meta = {"content_type": content_type, "created_at": resource.created_at.isoformat()}
        try:
            async with aiofiles.open(self._payload_path(resource_id), mode="wb") as f:
                await f.write(resource.content)
            # Sidecar written last: a resource is only visible once its metadata exists.
            async with aiofiles.open(self._meta_path(resource_id), mode="w", encoding="utf-8") as f:
                await f.write(json.dumps(meta))
            logger.debug(f"Resource '{resource_id}' ({len(content)} bytes) written to {self._storage_dir}")
        except OSError as e:
            logger.error(f"Error writing resource '{resource_id}' to {self._storage_dir}: {e}")
            raise ResourceStorageError(f"Failed to write resource '{resource_id}': {e}")
        return resource

    async def get(self, resource_id: str) -> Optional[StoredResource]:
        if not is_valid_resource_id(resource_id):
            logger.debug(f"Rejected lookup for invalid resource id '{resource_id}'")
            return None
        meta_path = self._meta_path(resource_id)
        try:
            if not await aios.path.exists(meta_path):
                return None
            async with aiofiles.open(meta_path, mode="r", encoding="utf-8") as f:
                meta = json.loads(await f.read())
            async with aiofiles.open(self._payload_path(resource_id), mode="rb") as f:
                content = await f.read()
        except FileNotFoundError:
            return None
        except json.JSONDecodeError as e:
            logger.error(f"Corrupted metadata for resource '{resource_id}': {e}")
            raise ResourceStorageError(f"Corrupted metadata for resource '{resource_id}': {e}")
        except OSError as e:
            logger.error(f"Error reading resource '{resource_id}': {e}")
            raise ResourceStorageError(f"Failed to read resource '{resource_id}': {e}")

        return StoredResource(
            resource_id=resource_id,
            content=content,
            content_type=meta.get("content_type", "application/octet-stream"),
            created_at=meta.get("created_at") or datetime.now(timezone.utc),
        )

    async def delete(self, resource_id: str) -> bool:
        if not is_valid_resource_id(resource_id):
            return False
        meta_path = self._meta_path(resource_id)
        if not await aios.path.exists(meta_path):
            return False
        try:
            await aios.remove(meta_path)
            if await aios.path.exists(self._payload_path(resource_id)):
                await aios.remove(self._payload_path(resource_id))
            logger.info(f"Resource '{resource_id}' deleted from {self._storage_dir}")
            return True
        except OSError as e:
            logger.error(f"Error deleting resource '{resource_id}': {e}")
            raise ResourceStorageError(f"Failed to delete resource '{resource_id}': {e}")

    async def list_ids(self) -> List[str]:
        try:
            names = await aios.listdir(self._storage_dir)
        except OSError as e:
            raise ResourceStorageError(f"Could not list resources: {e}")
        return sorted(n[:-len(self._meta_suffix)] for n in names if n.endswith(self._meta_suffix))

    async def close(self) -> None:
        logger.debug("File resource storage closed (no-op).")
