# src/sessionmesh/sessions/merge.py
"""
Session Merge Coordinator.

After a run, stores each newly produced message locally, obtains a reference
for it (inline for small payloads, otherwise a gateway URL) and appends the
references to a copy of the prior descriptor. The caller's descriptor is never
modified. There is no cross-server locking: two servers merging into
descriptors derived from the same ancestor produce two divergent descriptors.
"""

import json
import logging
from typing import Any, Iterable, Optional, Union

from ..config.models import MergeConfig
from ..gateway import ForwardingGateway
from ..models import (InlineReference, Message, RemoteReference,
                      SessionDescriptor)

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"


class SessionMergeCoordinator:
    """
    Appends newly produced content to session descriptors.

    Args:
        gateway: Forwarding gateway used to store content and mint URLs.
        inline_max_bytes: Serialized payloads up to this size are embedded
                          inline; 0 stores everything behind the gateway.
    """

    def __init__(self, gateway: ForwardingGateway, inline_max_bytes: int = 0):
        self._gateway = gateway
        self._inline_max_bytes = inline_max_bytes

    @classmethod
    def from_config(cls, gateway: ForwardingGateway, config: MergeConfig) -> "SessionMergeCoordinator":
        return cls(gateway, inline_max_bytes=config.inline_max_bytes)

    async def store(self, value: Any) -> Union[InlineReference, RemoteReference]:
        """
        Store one JSON-compatible value (or Message) and return a reference to it.
        """
        data = value.model_dump(mode="json") if isinstance(value, Message) else value
        payload = json.dumps(data).encode("utf-8")
        if self._inline_max_bytes and len(payload) <= self._inline_max_bytes:
            return InlineReference(content=data)
        return await self._gateway.publish(payload, JSON_CONTENT_TYPE)

    async def merge(
        self,
        prior: SessionDescriptor,
        new_messages: Iterable[Message],
        new_state: Optional[Any] = None,
    ) -> SessionDescriptor:
        """
        Return a new descriptor with references to ``new_messages`` appended.

        Args:
            prior: Descriptor the run started from. Not modified.
            new_messages: Messages produced by the run, in order.
            new_state: New state value; when None the prior state is kept.

        Returns:
            The updated SessionDescriptor.
        """
        refs = [await self.store(message) for message in new_messages]
        merged = prior.append(*refs)
        if new_state is not None:
            merged = merged.with_state(await self.store(new_state))
        logger.info(f"Merged {len(refs)} new message(s) into session '{prior.id}' "
                    f"(history {len(prior.history)} -> {len(merged.history)}"
                    f"{', state updated' if new_state is not None else ''}).")
        return merged
