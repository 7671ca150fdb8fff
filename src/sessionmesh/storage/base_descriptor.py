# src/sessionmesh/storage/base_descriptor.py
"""
Abstract Base Class for session descriptor storage backends.

This is where a server keeps its own view of each session it has handled,
which it serves under ``GET /sessions/{session_id}``. It is a local cache of
values, not a shared source of truth: other servers hold their own copies.
"""

import abc
from typing import Any, Dict, List, Optional

from ..models import SessionDescriptor


class BaseDescriptorStorage(abc.ABC):
    """
    Abstract Base Class for session descriptor storage.
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
    async def save_descriptor(self, descriptor: SessionDescriptor) -> None:
        """
        Save or replace the descriptor stored under ``descriptor.id``.
        """
        pass

    @abc.abstractmethod
    async def get_descriptor(self, session_id: str) -> Optional[SessionDescriptor]:
        """
        Retrieve a descriptor by session id.

        Returns:
            The SessionDescriptor if found, otherwise None.
        """
        pass

    @abc.abstractmethod
    async def list_descriptors(self) -> List[Dict[str, Any]]:
        """
        List known sessions, returning metadata only.

        Returns:
            A list of dictionaries such as
            ``{'id': 'abc', 'history_length': 5, 'has_state': True}``.
        """
        pass

    @abc.abstractmethod
    async def delete_descriptor(self, session_id: str) -> bool:
        """
        Delete the stored descriptor for a session.

        Returns:
            True if it was found and deleted, False otherwise.
        """
        pass

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources held by the backend."""
        pass
