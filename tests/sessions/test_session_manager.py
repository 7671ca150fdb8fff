# tests/sessions/test_session_manager.py
"""
Tests for SessionManager: run orchestration, descriptor storage and
divergence handling, including the end-to-end partial failure scenario.
"""

import pytest

from sessionmesh.exceptions import (DivergenceError, SessionMeshError,
                                    SessionNotFoundError, UnreachableError)
from sessionmesh.models import (Message, RemoteReference,
                                ResolutionFailureKind, SessionDescriptor)
from sessionmesh.sessions.manager import RunContext, SessionManager
from sessionmesh.storage.memory_descriptor import MemoryDescriptorStorage

URL_A = "http://a.test/resources/msg-a"
URL_B = "http://b.test/resources/msg-b"


@pytest.fixture
def descriptor_storage():
    return MemoryDescriptorStorage()


@pytest.fixture
def manager(descriptor_storage, assembler, coordinator):
    return SessionManager(descriptor_storage, assembler, coordinator)


class EchoExecutor:
    """Echoes the last run input and counts turns in the session state."""

    def __init__(self):
        self.seen = []
        self.state = None

    async def __call__(self, context: RunContext, run_input):
        self.seen = [entry async for entry in context.load_history()]
        self.state = await context.load_state()
        last = run_input[-1].text if run_input else "nothing"
        await context.yield_message(Message.from_text("agent", f"echo: {last}"))
        context.set_state({"turns": (self.state or {}).get("turns", 0) + 1})


@pytest.mark.asyncio
async def test_s1_partial_history_then_merge(assembler, coordinator, fake_fetcher):
    fake_fetcher.add(URL_A, {"role": "user", "parts": [{"content": "hi"}]})
    fake_fetcher.fail(URL_B, UnreachableError(RemoteReference(url=URL_B)))
    descriptor = SessionDescriptor.from_wire({"id": "s1", "history": [URL_A, URL_B], "state": None})

    entries = await assembler.assemble(descriptor).collect()

    assert entries[0].ok and entries[0].message.text == "hi"
    assert not entries[1].ok
    assert entries[1].failure.reference == RemoteReference(url=URL_B)
    assert entries[1].failure.kind == ResolutionFailureKind.UNREACHABLE

    merged = await coordinator.merge(descriptor, [Message.from_text("agent", "hello")])
    assert len(merged.history) == 3
    assert len(descriptor.history) == 2


@pytest.mark.asyncio
async def test_run_records_input_and_output(manager, fake_fetcher, resolver):
    fake_fetcher.add(URL_A, {"role": "user", "parts": [{"content": "earlier"}]})
    descriptor = SessionDescriptor(id="s2", history=[URL_A])
    executor = EchoExecutor()

    result = await manager.run(executor, descriptor, [Message.from_text("user", "ping")])

    assert [e.message.text for e in executor.seen] == ["earlier"]
    assert [m.text for m in result.messages] == ["echo: ping"]
    assert len(result.descriptor.history) == 3
    assert result.state_updated
    texts = [(await resolver.resolve_message(r)).text for r in result.descriptor.history]
    assert texts == ["earlier", "ping", "echo: ping"]
    assert await resolver.resolve_state(result.descriptor.state) == {"turns": 1}


@pytest.mark.asyncio
async def test_run_without_descriptor_starts_session(manager, descriptor_storage):
    result = await manager.run(EchoExecutor())

    assert len(result.descriptor.history) == 1
    assert await descriptor_storage.get_descriptor(result.descriptor.id) == result.descriptor


@pytest.mark.asyncio
async def test_consecutive_runs_carry_state(manager):
    executor = EchoExecutor()
    first = await manager.run(executor, run_input=[Message.from_text("user", "1")])
    second = await manager.run(executor, first.descriptor, [Message.from_text("user", "2")])

    assert executor.state == {"turns": 1}
    assert len(second.descriptor.history) == 4
    assert (await manager.get_descriptor(first.descriptor.id)) == second.descriptor


@pytest.mark.asyncio
async def test_executor_failure_propagates_and_saves_nothing(manager, descriptor_storage):
    async def failing(context, run_input):
        raise RuntimeError("engine crashed")

    with pytest.raises(RuntimeError):
        await manager.run(failing, SessionDescriptor(id="s3"))
    assert await descriptor_storage.get_descriptor("s3") is None


@pytest.mark.asyncio
async def test_get_descriptor_unknown(manager):
    with pytest.raises(SessionNotFoundError):
        await manager.get_descriptor("nope")
    assert await manager.get_descriptor_if_exists("nope") is None


@pytest.mark.asyncio
async def test_get_descriptor_empty_id(manager):
    with pytest.raises(ValueError):
        await manager.get_descriptor_if_exists("")


@pytest.mark.asyncio
async def test_save_rejects_divergent_descriptor(manager):
    base = SessionDescriptor(id="s", history=[URL_A])
    await manager.save_descriptor(base.append(RemoteReference(url="http://a.test/resources/left")))

    with pytest.raises(DivergenceError) as exc_info:
        await manager.save_descriptor(base.append(RemoteReference(url="http://b.test/resources/right")))
    assert exc_info.value.report.common_prefix_length == 1


@pytest.mark.asyncio
async def test_save_divergent_when_allowed(manager):
    base = SessionDescriptor(id="s", history=[URL_A])
    await manager.save_descriptor(base.append(RemoteReference(url="http://a.test/resources/left")))
    right = base.append(RemoteReference(url="http://b.test/resources/right"))

    await manager.save_descriptor(right, allow_divergent=True)

    assert await manager.get_descriptor("s") == right


@pytest.mark.asyncio
async def test_save_keeps_newer_stored_descriptor(manager):
    newer = SessionDescriptor(id="s", history=[URL_A, URL_B])
    await manager.save_descriptor(newer)

    await manager.save_descriptor(SessionDescriptor(id="s", history=[URL_A]))

    assert await manager.get_descriptor("s") == newer


def test_requires_storage(assembler, coordinator):
    with pytest.raises(SessionMeshError):
        SessionManager(None, assembler, coordinator)
