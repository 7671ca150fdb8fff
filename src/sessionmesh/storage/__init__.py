# src/sessionmesh/storage/__init__.py
"""
Storage package for SessionMesh.

Local resource stores hold the content this server owns; descriptor storage
holds this server's own view of each session it has handled.
"""

from .base_descriptor import BaseDescriptorStorage
from .base_resource import BaseResourceStore, is_valid_resource_id
from .file_resource import FileResourceStore
from .json_descriptor import JsonDescriptorStorage
from .manager import StorageManager
from .memory_descriptor import MemoryDescriptorStorage
from .memory_resource import MemoryResourceStore

__all__ = [
    "BaseDescriptorStorage",
    "BaseResourceStore",
    "FileResourceStore",
    "JsonDescriptorStorage",
    "MemoryDescriptorStorage",
    "MemoryResourceStore",
    "StorageManager",
    "is_valid_resource_id",
]
