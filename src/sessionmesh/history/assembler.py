# src/sessionmesh/history/assembler.py
"""
History Assembler.

Produces the ordered message history of a session from its descriptor. The
result is a lazy, restartable sequence: nothing is resolved until a consumer
pulls the first entry, and each pull schedules at most ``fan_out`` entries
ahead of the consumer. Entries resolve concurrently inside that window but
are always yielded in descriptor order.

A reference that cannot be resolved yields a failure marker for that entry
and the sequence continues, so a consumer receives partial history with
explicit gaps rather than a silently shortened one. State, by contrast, is
required for correct behaviour and its resolution errors escalate.
"""

import asyncio
import logging
from typing import (Any, AsyncIterator, Awaitable, Callable, Dict, List,
                    Optional, Sequence)

from ..config.models import AssemblerConfig
from ..exceptions import (ResolutionError, StateResolutionError,
                          UnauthorizedError)
from ..models import Message, ResolvedMessage, SessionDescriptor
from ..resolution.resolver import ResourceResolver

logger = logging.getLogger(__name__)

EntryResolver = Callable[[int, Any], Awaitable[ResolvedMessage]]


class HistoryStream:
    """
    Pull-based async iterator over one pass of a descriptor's history.

    Read-ahead is bounded: when entry ``i`` is demanded, entries
    ``[i, i + fan_out)`` are scheduled as tasks and only entry ``i`` is
    awaited. Closing the stream (``aclose`` or leaving ``async with``)
    cancels every scheduled entry that has not been consumed.
    """

    def __init__(self, references: Sequence[Any], resolve_entry: EntryResolver, fan_out: int = 4):
        if fan_out < 1:
            raise ValueError("fan_out must be at least 1")
        self._references = tuple(references)
        self._resolve_entry = resolve_entry
        self._fan_out = fan_out
        self._position = 0
        self._pending: Dict[int, asyncio.Task] = {}
        self._closed = False

    @property
    def position(self) -> int:
        """Index of the next entry to be yielded."""
        return self._position

    @property
    def in_flight(self) -> int:
        """Number of scheduled entries not yet consumed."""
        return len(self._pending)

    @property
    def closed(self) -> bool:
        return self._closed

    def _schedule_window(self) -> None:
        end = min(self._position + self._fan_out, len(self._references))
        for index in range(self._position, end):
            if index not in self._pending:
                self._pending[index] = asyncio.ensure_future(
                    self._resolve_entry(index, self._references[index]))

    def __aiter__(self) -> "HistoryStream":
        return self

    async def __anext__(self) -> ResolvedMessage:
        if self._closed or self._position >= len(self._references):
            await self.aclose()
            raise StopAsyncIteration

        self._schedule_window()
        index = self._position
        task = self._pending[index]
        try:
            result = await task
        except BaseException:
            await self.aclose()
            raise
        del self._pending[index]
        self._position += 1
        return result

    async def aclose(self) -> None:
        """Abandon the stream, cancelling read-ahead that was not consumed."""
        self._closed = True
        if not self._pending:
            return
        pending = list(self._pending.values())
        self._pending.clear()
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        logger.debug(f"History stream closed at position {self._position}; cancelled {len(pending)} pending entries.")

    async def __aenter__(self) -> "HistoryStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


class LazyHistory:
    """
    Restartable view of a descriptor's history.

    Every iteration (``async for`` or ``stream()``) starts a fresh
    HistoryStream, so two passes may differ if remote content became
    unreachable in between.
    """

    def __init__(self, descriptor: SessionDescriptor, resolve_entry: EntryResolver, fan_out: int):
        self._descriptor = descriptor
        self._resolve_entry = resolve_entry
        self._fan_out = fan_out

    @property
    def descriptor(self) -> SessionDescriptor:
        return self._descriptor

    def __len__(self) -> int:
        return len(self._descriptor.history)

    def stream(self) -> HistoryStream:
        return HistoryStream(self._descriptor.history, self._resolve_entry, self._fan_out)

    async def __aiter__(self) -> AsyncIterator[ResolvedMessage]:
        # Read-ahead is cancelled when the loop breaks early and the generator is closed.
        async with self.stream() as stream:
            async for entry in stream:
                yield entry

    async def collect(self) -> List[ResolvedMessage]:
        """Resolve the whole history, failures included, in order."""
        async with self.stream() as stream:
            return [entry async for entry in stream]

    async def messages(self) -> List[Message]:
        """Resolve the whole history and keep only the successfully resolved messages."""
        return [entry.message for entry in await self.collect() if entry.ok]


class HistoryAssembler:
    """
    Builds lazy history sequences and resolves session state.

    Args:
        resolver: Resolver used for every entry.
        fan_out: Bounded read-ahead per stream.
        resolve_parts: Also materialize message parts carrying ``content_url``.
    """

    def __init__(self, resolver: ResourceResolver, fan_out: int = 4, resolve_parts: bool = False):
        if fan_out < 1:
            raise ValueError("fan_out must be at least 1")
        self._resolver = resolver
        self._fan_out = fan_out
        self._resolve_parts = resolve_parts

    @classmethod
    def from_config(cls, resolver: ResourceResolver, config: AssemblerConfig) -> "HistoryAssembler":
        return cls(resolver, fan_out=config.fan_out, resolve_parts=config.resolve_parts)

    @property
    def resolver(self) -> ResourceResolver:
        return self._resolver

    def assemble(self, descriptor: SessionDescriptor) -> LazyHistory:
        """Return the lazy history of ``descriptor``. No reference is resolved yet."""
        if not isinstance(descriptor, SessionDescriptor):
            descriptor = SessionDescriptor.from_wire(descriptor)
        logger.debug(f"Assembling history for session '{descriptor.id}' ({len(descriptor.history)} entries).")
        return LazyHistory(descriptor, self.resolve_entry, self._fan_out)

    async def resolve_entry(self, index: int, reference: Any) -> ResolvedMessage:
        """Resolve one history entry, converting resolution errors into a failure marker."""
        try:
            message = await self._resolver.resolve_message(reference)
            if self._resolve_parts and any(p.content_url for p in message.parts):
                parts = await asyncio.gather(*(self._resolver.resolve_part(p) for p in message.parts))
                message = message.model_copy(update={"parts": list(parts)})
        except (ResolutionError, UnauthorizedError) as e:
            logger.warning(f"History entry {index} could not be resolved ({e.kind}): {e}")
            return ResolvedMessage.failed(index, reference, e)
        return ResolvedMessage.resolved(index, reference, message)

    async def resolve_state(self, descriptor: SessionDescriptor) -> Optional[Any]:
        """
        Resolve the descriptor's state, or None when it has none.

        Raises:
            StateResolutionError: If the state reference cannot be resolved.
            UnauthorizedError: If access to the state's owner is refused.
        """
        if descriptor.state is None:
            return None
        try:
            return await self._resolver.resolve_state(descriptor.state)
        except ResolutionError as e:
            logger.error(f"State of session '{descriptor.id}' could not be resolved: {e}")
            raise StateResolutionError(descriptor.state, e) from e
