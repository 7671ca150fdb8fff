# src/sessionmesh/storage/json_descriptor.py
"""
JSON file-based storage for SessionDescriptor objects.

This module implements the BaseDescriptorStorage interface, storing each
session descriptor as a separate JSON file (in its wire form) in a specified
directory. It uses aiofiles for asynchronous file operations.
"""

import json
import logging
import os
import pathlib
import re
from typing import Any, Dict, List, Optional

import aiofiles
import aiofiles.os as aios

from ..exceptions import (ConfigError, DescriptorInvalidError,
                          DescriptorStorageError)
from ..models import SessionDescriptor
from .base_descriptor import BaseDescriptorStorage

logger = logging.getLogger(__name__)


class JsonDescriptorStorage(BaseDescriptorStorage):
    """
    Manages persistence of SessionDescriptor objects in JSON files.

    Each descriptor is stored as a separate file in the configured storage
    directory, named after the (sanitized) session id.
    """
    _storage_dir: pathlib.Path
    _file_extension: str

    async def initialize(self, config: Dict[str, Any]) -> None:
        """
        Initialize the JSON descriptor storage.

        Args:
            config: Configuration dictionary. Expected keys:
                    'path': The directory path for storing descriptor files.
                    'file_extension' (optional): Extension for files (default: '.json').

        Raises:
            ConfigError: If the 'path' is not provided in the config.
            DescriptorStorageError: If the storage directory cannot be created.
        """
        storage_path_str = config.get("path")
        if not storage_path_str:
            raise ConfigError("JSON descriptor storage 'path' not specified in configuration.")

        self._storage_dir = pathlib.Path(os.path.expanduser(storage_path_str))
        self._file_extension = config.get("file_extension") or ".json"
        if not self._file_extension.startswith('.'):
            self._file_extension = f".{self._file_extension}"

        try:
            await aios.makedirs(self._storage_dir, exist_ok=True)
            logger.info(f"JSON descriptor storage initialized at: {self._storage_dir.resolve()}")
        except OSError as e:
            logger.error(f"Failed to create JSON descriptor storage directory {self._storage_dir}: {e}")
            raise DescriptorStorageError(f"Could not create storage directory: {e}")

    def _get_descriptor_path(self, session_id: str) -> pathlib.Path:
        """Constructs the file path for a given session ID."""
        sane_filename = re.sub(r'[^\w\-.]', '_', session_id).lstrip('.') or "_"
        return self._storage_dir / f"{sane_filename}{self._file_extension}"

    async def save_descriptor(self, descriptor: SessionDescriptor) -> None:
        """
        Save or replace a descriptor file asynchronously.

        Raises:
            DescriptorStorageError: If serialization or file I/O fails.
        """
        path = self._get_descriptor_path(descriptor.id)
        try:
            payload = json.dumps(descriptor.to_wire(), indent=2)
            async with aiofiles.open(path, mode="w", encoding="utf-8") as f:
                await f.write(payload)
            logger.debug(f"Descriptor '{descriptor.id}' with {len(descriptor.history)} history entries saved to {path}")
        except TypeError as e:
            logger.error(f"Error serializing descriptor '{descriptor.id}' to JSON: {e}")
            raise DescriptorStorageError(f"Failed to serialize descriptor '{descriptor.id}': {e}")
        except OSError as e:
            logger.error(f"Error writing descriptor '{descriptor.id}' to file {path}: {e}")
            raise DescriptorStorageError(f"Failed to write descriptor file for '{descriptor.id}': {e}")

    async def get_descriptor(self, session_id: str) -> Optional[SessionDescriptor]:
        """
        Retrieve a descriptor by session id from its JSON file.

        Raises:
            DescriptorStorageError: If the file is corrupted or cannot be read.
        """
        path = self._get_descriptor_path(session_id)
        try:
            if not await aios.path.exists(path):
                logger.debug(f"Descriptor file not found for ID '{session_id}' at {path}")
                return None
            async with aiofiles.open(path, mode="r", encoding="utf-8") as f:
                content = await f.read()
            descriptor = SessionDescriptor.from_wire(content)
        except DescriptorInvalidError as e:
            logger.error(f"Corrupted descriptor file for session '{session_id}' at {path}: {e}")
            raise DescriptorStorageError(f"Corrupted descriptor file for '{session_id}': {e}")
        except OSError as e:
            logger.error(f"Error reading descriptor file '{path}' for session '{session_id}': {e}")
            raise DescriptorStorageError(f"Failed to read descriptor file for '{session_id}': {e}")
        if descriptor.id != session_id:
            logger.warning(f"Descriptor file {path} holds session '{descriptor.id}', not '{session_id}'.")
            return None
        return descriptor

    async def list_descriptors(self) -> List[Dict[str, Any]]:
        """
        List stored sessions, reading metadata from each JSON file.

        Raises:
            DescriptorStorageError: If the storage directory cannot be listed.
        """
        results: List[Dict[str, Any]] = []
        try:
            filenames = await aios.listdir(self._storage_dir)
        except OSError as e:
            logger.error(f"Error listing descriptor files in {self._storage_dir}: {e}")
            raise DescriptorStorageError(f"Could not list descriptors: {e}")

        for filename in sorted(filenames):
            if not filename.endswith(self._file_extension):
                continue
            try:
                async with aiofiles.open(self._storage_dir / filename, mode="r", encoding="utf-8") as f:
                    data = json.loads(await f.read())
                results.append({
                    "id": data["id"],
                    "history_length": len(data.get("history") or []),
                    "has_state": data.get("state") is not None,
                })
            except (json.JSONDecodeError, KeyError, TypeError):
                logger.warning(f"Could not read descriptor file {filename}. Skipping.")
        return results

    async def delete_descriptor(self, session_id: str) -> bool:
        path = self._get_descriptor_path(session_id)
        try:
            if await aios.path.exists(path):
                await aios.remove(path)
                logger.info(f"Descriptor '{session_id}' deleted from {path}")
                return True
            return False
        except OSError as e:
            logger.error(f"Error deleting descriptor file {path}: {e}")
            raise DescriptorStorageError(f"Failed to delete descriptor '{session_id}': {e}")

    async def close(self) -> None:
        logger.debug("JSON descriptor storage closed (no-op).")
