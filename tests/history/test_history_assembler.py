# tests/history/test_history_assembler.py
"""
Tests for lazy, ordered history assembly.
"""

import asyncio
import random

import pytest

from sessionmesh.exceptions import (StateResolutionError, UnauthorizedError,
                                    UnreachableError)
from sessionmesh.gateway import ForwardingGateway
from sessionmesh.history.assembler import HistoryAssembler, HistoryStream
from sessionmesh.models import (InlineReference, Message, MessagePart,
                                RemoteReference, ResolutionFailureKind,
                                SessionDescriptor)
from sessionmesh.resolution.resolver import ResourceResolver
from sessionmesh.storage.file_resource import FileResourceStore

PEER = "http://peer.test/resources"


def build_descriptor(fake_fetcher, count: int, latency=None) -> SessionDescriptor:
    refs = []
    for i in range(count):
        ref = fake_fetcher.add_message(f"{PEER}/{i}", Message.from_text("user", f"m{i}"))
        if latency is not None:
            fake_fetcher.latencies[ref.url] = latency(i)
        refs.append(ref)
    return SessionDescriptor(id="s", history=refs)


@pytest.mark.asyncio
async def test_order_preserved_under_random_latency(assembler, fake_fetcher):
    rng = random.Random(1234)
    descriptor = build_descriptor(fake_fetcher, 12, latency=lambda i: rng.uniform(0, 0.03))

    entries = await assembler.assemble(descriptor).collect()

    assert [e.index for e in entries] == list(range(12))
    assert [e.message.text for e in entries] == [f"m{i}" for i in range(12)]


@pytest.mark.asyncio
async def test_reverse_latency_still_in_order(assembler, fake_fetcher):
    descriptor = build_descriptor(fake_fetcher, 4, latency=lambda i: 0.04 - i * 0.01)

    texts = [m.text for m in await assembler.assemble(descriptor).messages()]

    assert texts == ["m0", "m1", "m2", "m3"]
    assert fake_fetcher.max_active > 1


@pytest.mark.asyncio
async def test_mixed_inline_and_remote(assembler, fake_fetcher):
    remote = fake_fetcher.add_message(f"{PEER}/r", Message.from_text("agent", "remote"))
    inline = InlineReference(content=Message.from_text("user", "inline").model_dump(mode="json"))
    descriptor = SessionDescriptor(id="s", history=[inline, remote])

    texts = [m.text for m in await assembler.assemble(descriptor).messages()]

    assert texts == ["inline", "remote"]
    assert fake_fetcher.fetch_count == 1


@pytest.mark.asyncio
async def test_partial_failure_yields_marker_and_continues(assembler, fake_fetcher):
    ok_a = fake_fetcher.add_message(f"{PEER}/a", Message.from_text("user", "a"))
    down = fake_fetcher.fail(f"{PEER}/down", UnreachableError(RemoteReference(url=f"{PEER}/down")))
    ok_b = fake_fetcher.add_message(f"{PEER}/b", Message.from_text("agent", "b"))
    descriptor = SessionDescriptor(id="s", history=[ok_a, down, ok_b])

    entries = await assembler.assemble(descriptor).collect()

    assert len(entries) == 3
    assert [e.ok for e in entries] == [True, False, True]
    assert entries[1].failure.reference == down
    assert entries[1].failure.kind == ResolutionFailureKind.UNREACHABLE
    assert entries[2].message.text == "b"


@pytest.mark.asyncio
async def test_corrupted_local_resource_becomes_marker(fake_fetcher, tmp_path):
    store = FileResourceStore()
    await store.initialize({"path": str(tmp_path / "resources")})
    gateway = ForwardingGateway(store, "http://local.test")
    assembler = HistoryAssembler(ResourceResolver(fake_fetcher, gateway=gateway), fan_out=2)

    local = await gateway.publish(Message.from_text("user", "stored").model_dump_json().encode("utf-8"))
    resource_id = gateway.resource_id_from_url(local.url)
    (tmp_path / "resources" / f"{resource_id}.meta.json").write_text("{not json")
    inline = InlineReference(content=Message.from_text("agent", "after").model_dump(mode="json"))

    entries = await assembler.assemble(SessionDescriptor(id="s", history=[local, inline])).collect()

    assert len(entries) == 2
    assert entries[0].failure.kind == ResolutionFailureKind.UNREACHABLE
    assert entries[0].failure.reference == local
    assert entries[1].message.text == "after"
    assert fake_fetcher.fetch_count == 0


@pytest.mark.asyncio
async def test_unauthorized_entry_becomes_marker(assembler, fake_fetcher):
    ref = fake_fetcher.fail(f"{PEER}/secret", UnauthorizedError(f"{PEER}/secret"))
    entries = await assembler.assemble(SessionDescriptor(id="s", history=[ref])).collect()
    assert entries[0].failure.kind == ResolutionFailureKind.UNAUTHORIZED


@pytest.mark.asyncio
async def test_malformed_entry_becomes_marker(assembler, fake_fetcher):
    ref = fake_fetcher.add(f"{PEER}/junk", b"<html>")
    entries = await assembler.assemble(SessionDescriptor(id="s", history=[ref])).collect()
    assert entries[0].failure.kind == ResolutionFailureKind.MALFORMED_CONTENT


@pytest.mark.asyncio
async def test_assemble_is_lazy(assembler, fake_fetcher):
    descriptor = build_descriptor(fake_fetcher, 10)

    history = assembler.assemble(descriptor)
    await asyncio.sleep(0)

    assert len(history) == 10
    assert fake_fetcher.fetch_count == 0


@pytest.mark.asyncio
async def test_read_ahead_is_bounded(resolver, fake_fetcher):
    assembler = HistoryAssembler(resolver, fan_out=3)
    descriptor = build_descriptor(fake_fetcher, 10)

    async with assembler.assemble(descriptor).stream() as stream:
        first = await stream.__anext__()
        assert first.index == 0
        assert stream.in_flight <= 2
        await asyncio.sleep(0.01)
        assert fake_fetcher.fetch_count <= 3


@pytest.mark.asyncio
async def test_early_close_cancels_in_flight(resolver, fake_fetcher):
    assembler = HistoryAssembler(resolver, fan_out=4)
    descriptor = build_descriptor(fake_fetcher, 6, latency=lambda i: 0 if i == 0 else 5.0)

    stream = assembler.assemble(descriptor).stream()
    first = await stream.__anext__()
    await asyncio.sleep(0.01)
    await stream.aclose()

    assert first.message.text == "m0"
    assert stream.closed
    assert stream.in_flight == 0
    assert sorted(fake_fetcher.cancelled) == [f"{PEER}/1", f"{PEER}/2", f"{PEER}/3"]
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()


@pytest.mark.asyncio
async def test_consumer_break_cancels(resolver, fake_fetcher):
    assembler = HistoryAssembler(resolver, fan_out=4)
    descriptor = build_descriptor(fake_fetcher, 6, latency=lambda i: 0 if i == 0 else 5.0)

    async with assembler.assemble(descriptor).stream() as stream:
        async for entry in stream:
            assert entry.index == 0
            break

    assert stream.in_flight == 0
    assert len(fake_fetcher.cancelled) == 3


@pytest.mark.asyncio
async def test_closing_plain_iteration_cancels_read_ahead(resolver, fake_fetcher):
    history = HistoryAssembler(resolver, fan_out=4).assemble(
        build_descriptor(fake_fetcher, 6, latency=lambda i: 0 if i == 0 else 5.0))

    entries = history.__aiter__()
    first = await entries.__anext__()
    await entries.aclose()

    assert first.index == 0
    assert sorted(fake_fetcher.cancelled) == [f"{PEER}/1", f"{PEER}/2", f"{PEER}/3"]


@pytest.mark.asyncio
async def test_break_from_plain_iteration_cancels_read_ahead(resolver, fake_fetcher):
    history = HistoryAssembler(resolver, fan_out=4).assemble(
        build_descriptor(fake_fetcher, 6, latency=lambda i: 0 if i == 0 else 5.0))

    async for entry in history:
        assert entry.index == 0
        break
    await asyncio.sleep(0.05)

    assert len(fake_fetcher.cancelled) == 3


@pytest.mark.asyncio
async def test_history_is_restartable(assembler, fake_fetcher, resolution_cache):
    descriptor = build_descriptor(fake_fetcher, 3)
    history = assembler.assemble(descriptor)

    first_pass = [e.message.text async for e in history]
    resolution_cache.clear()
    fake_fetcher.failures[f"{PEER}/1"] = UnreachableError(RemoteReference(url=f"{PEER}/1"))
    second_pass = await history.collect()

    assert first_pass == ["m0", "m1", "m2"]
    assert [e.ok for e in second_pass] == [True, False, True]


@pytest.mark.asyncio
async def test_repeated_passes_hit_cache(assembler, fake_fetcher):
    descriptor = build_descriptor(fake_fetcher, 3)
    history = assembler.assemble(descriptor)

    await history.collect()
    await history.collect()

    assert fake_fetcher.fetch_count == 3


@pytest.mark.asyncio
async def test_empty_history(assembler):
    assert await assembler.assemble(SessionDescriptor(id="s")).collect() == []


@pytest.mark.asyncio
async def test_assemble_accepts_wire_form(assembler, fake_fetcher):
    fake_fetcher.add_message(f"{PEER}/0", Message.from_text("user", "wire"))
    history = assembler.assemble({"id": "s", "history": [f"{PEER}/0"], "state": None})
    assert [m.text for m in await history.messages()] == ["wire"]


@pytest.mark.asyncio
async def test_resolve_parts_materializes_content_urls(resolver, fake_fetcher):
    fake_fetcher.add(f"{PEER}/doc", b"attached text", content_type="text/plain")
    message = Message(role="agent", parts=[MessagePart(content="see"),
                                           MessagePart(content_type="text/plain", content_url=f"{PEER}/doc")])
    ref = fake_fetcher.add_message(f"{PEER}/msg", message)
    assembler = HistoryAssembler(resolver, resolve_parts=True)

    [entry] = await assembler.assemble(SessionDescriptor(id="s", history=[ref])).collect()

    assert entry.message.text == "seeattached text"
    assert all(p.content_url is None for p in entry.message.parts)


@pytest.mark.asyncio
async def test_state_resolves(assembler, fake_fetcher):
    state_ref = fake_fetcher.add(f"{PEER}/state", {"counter": 3})
    descriptor = SessionDescriptor(id="s", state=state_ref)
    assert await assembler.resolve_state(descriptor) == {"counter": 3}


@pytest.mark.asyncio
async def test_no_state_is_none(assembler):
    assert await assembler.resolve_state(SessionDescriptor(id="s")) is None


@pytest.mark.asyncio
async def test_state_failure_escalates(assembler, fake_fetcher):
    state_ref = fake_fetcher.fail(f"{PEER}/state", UnreachableError(RemoteReference(url=f"{PEER}/state")))

    with pytest.raises(StateResolutionError) as exc_info:
        await assembler.resolve_state(SessionDescriptor(id="s", state=state_ref))

    assert isinstance(exc_info.value.cause, UnreachableError)
    assert exc_info.value.reference == state_ref


@pytest.mark.asyncio
async def test_stream_propagates_unexpected_errors():
    async def explode(index, ref):
        raise RuntimeError("boom")

    stream = HistoryStream([InlineReference(content=1)], explode, fan_out=2)
    with pytest.raises(RuntimeError):
        await stream.__anext__()
    assert stream.closed


def test_invalid_fan_out(resolver):
    with pytest.raises(ValueError):
        HistoryAssembler(resolver, fan_out=0)
