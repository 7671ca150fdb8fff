# src/sessionmesh/sessions/manager.py
"""
Session Management for SessionMesh.

This module defines the SessionManager class, which drives one run against a
session: it hands the run-execution engine a RunContext exposing the lazily
assembled history and a write sink, merges what the run produced into a new
descriptor and records that descriptor as this server's view of the session.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol, Sequence

from ..exceptions import (DescriptorStorageError, DivergenceError,
                          SessionMeshError, SessionNotFoundError)
from ..history.assembler import HistoryAssembler, LazyHistory
from ..models import Message, SessionDescriptor
from ..storage.base_descriptor import BaseDescriptorStorage
from .divergence import detect_divergence
from .merge import SessionMergeCoordinator

logger = logging.getLogger(__name__)


class RunContext:
    """
    What the run-execution engine sees of a session during one run.

    The engine reads prior history through ``load_history()`` (lazy, ordered,
    with explicit failure markers) and emits new messages through
    ``yield_message()``. It never touches the descriptor directly.
    """

    def __init__(self, descriptor: SessionDescriptor, assembler: HistoryAssembler):
        self._descriptor = descriptor
        self._assembler = assembler
        self._produced: List[Message] = []
        self._new_state: Optional[Any] = None

    @property
    def descriptor(self) -> SessionDescriptor:
        return self._descriptor

    @property
    def session_id(self) -> str:
        return self._descriptor.id

    def load_history(self) -> LazyHistory:
        return self._assembler.assemble(self._descriptor)

    async def load_state(self) -> Optional[Any]:
        """Resolve the session state. Errors escalate (StateResolutionError)."""
        return await self._assembler.resolve_state(self._descriptor)

    async def yield_message(self, message: Message) -> None:
        self._produced.append(message)

    def set_state(self, value: Any) -> None:
        self._new_state = value

    @property
    def produced_messages(self) -> List[Message]:
        return list(self._produced)

    @property
    def new_state(self) -> Optional[Any]:
        return self._new_state


class RunExecutor(Protocol):
    """The external run-execution engine."""

    async def __call__(self, context: RunContext, run_input: Sequence[Message]) -> None:
        ...


@dataclass
class RunResult:
    """Outcome of SessionManager.run: the updated descriptor and what the run produced."""
    descriptor: SessionDescriptor
    messages: List[Message] = field(default_factory=list)
    state_updated: bool = False


class SessionManager:
    """
    Coordinates descriptor storage, history assembly and merging for runs.
    """

    def __init__(self, storage: BaseDescriptorStorage, assembler: HistoryAssembler,
                 coordinator: SessionMergeCoordinator):
        """
        Initializes the SessionManager.

        Args:
            storage: Descriptor storage holding this server's view of sessions.
            assembler: History assembler used to build run contexts.
            coordinator: Merge coordinator used to append run output.
        """
        if storage is None:
            logger.error("SessionManager initialized without a valid descriptor storage backend.")
            raise SessionMeshError("SessionManager requires a valid descriptor storage instance.")
        self._storage = storage
        self._assembler = assembler
        self._coordinator = coordinator
        logger.debug("SessionManager initialized with storage backend: %s", type(storage).__name__)

    async def get_descriptor_if_exists(self, session_id: str) -> Optional[SessionDescriptor]:
        """
        Returns this server's descriptor for ``session_id``, or None.

        Raises:
            ValueError: If session_id is empty.
            DescriptorStorageError: If storage fails.
        """
        if not session_id:
            raise ValueError("session_id cannot be None or empty.")
        try:
            return await self._storage.get_descriptor(session_id)
        except DescriptorStorageError as e:
            logger.error(f"Storage error while trying to get descriptor '{session_id}': {e}")
            raise

    async def get_descriptor(self, session_id: str) -> SessionDescriptor:
        """
        Returns this server's descriptor for ``session_id``.

        Raises:
            SessionNotFoundError: If this server has no descriptor for the session.
        """
        descriptor = await self.get_descriptor_if_exists(session_id)
        if descriptor is None:
            raise SessionNotFoundError(session_id)
        return descriptor

    async def save_descriptor(self, descriptor: SessionDescriptor, allow_divergent: bool = False) -> None:
        """
        Records ``descriptor`` as this server's view of its session.

        A stored descriptor that is neither a prefix nor an extension of the
        incoming one means the histories diverged; that is reported, not merged.

        Raises:
            DivergenceError: On divergence, unless ``allow_divergent`` is set.
            DescriptorStorageError: If storage fails.
        """
        existing = await self._storage.get_descriptor(descriptor.id)
        if existing is not None:
            report = detect_divergence(existing, descriptor)
            if report.diverged:
                logger.warning(f"Session '{descriptor.id}' diverged: common prefix {report.common_prefix_length}, "
                               f"stored {report.left_length} vs incoming {report.right_length} entries.")
                if not allow_divergent:
                    raise DivergenceError(report)
            elif report.right_is_ancestor and report.right_length < report.left_length:
                logger.info(f"Incoming descriptor for '{descriptor.id}' is older than the stored one; keeping stored.")
                return
        await self._storage.save_descriptor(descriptor)
        logger.info(f"Descriptor for session '{descriptor.id}' saved ({len(descriptor.history)} history entries).")

    async def run(
        self,
        executor: RunExecutor,
        descriptor: Optional[SessionDescriptor] = None,
        run_input: Sequence[Message] = (),
    ) -> RunResult:
        """
        Executes one run against a session and returns the updated descriptor.

        The run input is recorded in the history ahead of the messages the run
        produced. With no descriptor a fresh session is started.

        Args:
            executor: The run-execution engine.
            descriptor: Descriptor submitted with the run request, if any.
            run_input: Input messages for the run.

        Returns:
            RunResult with the merged descriptor and the produced messages.
        """
        if descriptor is None:
            descriptor = SessionDescriptor()
            logger.info(f"Starting new session '{descriptor.id}'.")
        context = RunContext(descriptor, self._assembler)
        try:
            await executor(context, run_input)
        except Exception as e:
            logger.error(f"Run for session '{descriptor.id}' failed: {e}", exc_info=True)
            raise

        produced = context.produced_messages
        updated = await self._coordinator.merge(descriptor, [*run_input, *produced], context.new_state)
        await self.save_descriptor(updated, allow_divergent=True)
        return RunResult(descriptor=updated, messages=produced, state_updated=context.new_state is not None)
