# src/sessionmesh/storage/manager.py
"""
Storage Manager for SessionMesh.

Handles the dynamic selection and initialization of the local resource store
and the session descriptor storage based on the application's configuration.
"""

import logging
from typing import Dict, Optional, Type

from ..config.models import StorageBackendConfig, StorageConfig
from ..exceptions import ConfigError, StorageError
from .base_descriptor import BaseDescriptorStorage
from .base_resource import BaseResourceStore
from .file_resource import FileResourceStore
from .json_descriptor import JsonDescriptorStorage
from .memory_descriptor import MemoryDescriptorStorage
from .memory_resource import MemoryResourceStore

logger = logging.getLogger(__name__)

# --- Mappings from config type string to class ---
RESOURCE_STORAGE_MAP: Dict[str, Type[BaseResourceStore]] = {
    "memory": MemoryResourceStore,
    "file": FileResourceStore,
}

DESCRIPTOR_STORAGE_MAP: Dict[str, Type[BaseDescriptorStorage]] = {
    "memory": MemoryDescriptorStorage,
    "file": JsonDescriptorStorage,
}
# --- End Mappings ---


class StorageManager:
    """
    Creates, initializes and owns the configured storage backends.
    """

    def __init__(self, config: StorageConfig):
        self._config = config
        self._resource_store: Optional[BaseResourceStore] = None
        self._descriptor_storage: Optional[BaseDescriptorStorage] = None

    async def initialize_storages(self) -> None:
        """
        Instantiates and initializes both backends.

        Raises:
            ConfigError: If a backend type is unknown or misconfigured.
            StorageError: If a backend fails to initialize.
        """
        self._resource_store = await self._create(
            "resources", self._config.resources, RESOURCE_STORAGE_MAP)
        self._descriptor_storage = await self._create(
            "descriptors", self._config.descriptors, DESCRIPTOR_STORAGE_MAP)
        logger.info("Storage initialization complete.")

    async def _create(self, name: str, backend: StorageBackendConfig, mapping: Dict[str, type]):
        storage_type = backend.type.lower()
        storage_cls = mapping.get(storage_type)
        if storage_cls is None:
            raise ConfigError(f"Unsupported {name} storage type configured: '{backend.type}'. "
                              f"Available types: {list(mapping.keys())}")
        instance = storage_cls()
        try:
            await instance.initialize(backend.model_dump())
        except (ConfigError, StorageError):
            raise
        except Exception as e:
            logger.error(f"Failed to initialize {name} storage '{storage_type}': {e}", exc_info=True)
            raise StorageError(f"Initialization failed for {name} storage '{storage_type}': {e}")
        logger.info(f"{name.capitalize()} storage '{storage_type}' initialized.")
        return instance

    def get_resource_store(self) -> BaseResourceStore:
        if self._resource_store is None:
            raise StorageError("Resource store is not initialized. Call initialize_storages() first.")
        return self._resource_store

    def get_descriptor_storage(self) -> BaseDescriptorStorage:
        if self._descriptor_storage is None:
            raise StorageError("Descriptor storage is not initialized. Call initialize_storages() first.")
        return self._descriptor_storage

    async def close_storages(self) -> None:
        """Closes both backends, logging (not raising) individual failures."""
        for name, storage in (("resources", self._resource_store), ("descriptors", self._descriptor_storage)):
            if storage is None:
                continue
            try:
                await storage.close()
            except Exception as e:
                logger.error(f"Error closing {name} storage: {e}", exc_info=True)
        self._resource_store = None
        self._descriptor_storage = None
