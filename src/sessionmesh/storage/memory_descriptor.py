# src/sessionmesh/storage/memory_descriptor.py
"""
In-memory session descriptor storage.
"""

import logging
from typing import Any, Dict, List, Optional

from ..models import SessionDescriptor
from .base_descriptor import BaseDescriptorStorage

logger = logging.getLogger(__name__)


class MemoryDescriptorStorage(BaseDescriptorStorage):
    """Descriptors are immutable, so they are stored and returned as-is."""

    def __init__(self) -> None:
        self._descriptors: Dict[str, SessionDescriptor] = {}

    async def initialize(self, config: Dict[str, Any]) -> None:
        logger.info("In-memory descriptor storage initialized.")

    async def save_descriptor(self, descriptor: SessionDescriptor) -> None:
        self._descriptors[descriptor.id] = descriptor
        logger.debug(f"Descriptor '{descriptor.id}' saved in memory ({len(descriptor.history)} history entries).")

    async def get_descriptor(self, session_id: str) -> Optional[SessionDescriptor]:
        return self._descriptors.get(session_id)

    async def list_descriptors(self) -> List[Dict[str, Any]]:
        return [
            {"id": d.id, "history_length": len(d.history), "has_state": d.state is not None}
            for d in self._descriptors.values()
        ]

    async def delete_descriptor(self, session_id: str) -> bool:
        return self._descriptors.pop(session_id, None) is not None

    async def close(self) -> None:
        pass
