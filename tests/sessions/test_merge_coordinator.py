# tests/sessions/test_merge_coordinator.py
"""
Tests for SessionMergeCoordinator: append-only merging, immutability of the
prior descriptor and the merge/resolve round trip.
"""

import json

import pytest

from sessionmesh.config.models import MergeConfig
from sessionmesh.models import (InlineReference, Message, RemoteReference,
                                SessionDescriptor)
from sessionmesh.sessions.merge import SessionMergeCoordinator


@pytest.mark.asyncio
async def test_merge_appends_in_order(coordinator):
    prior = SessionDescriptor(id="s", history=["http://peer.test/resources/0"])
    new = [Message.from_text("user", "q"), Message.from_text("agent", "a")]

    merged = await coordinator.merge(prior, new)

    assert merged.id == "s"
    assert len(merged.history) == 3
    assert merged.history[0] == prior.history[0]
    assert all(isinstance(r, RemoteReference) for r in merged.history[1:])
    assert merged.history[1].url.startswith("http://local.test/resources/")


@pytest.mark.asyncio
async def test_merge_does_not_modify_prior(coordinator):
    prior = SessionDescriptor(id="s", history=["http://peer.test/resources/0"])
    snapshot = prior.to_wire()

    await coordinator.merge(prior, [Message.from_text("agent", "a")], new_state={"n": 1})

    assert prior.to_wire() == snapshot


@pytest.mark.asyncio
async def test_merge_stores_content_locally(coordinator, resource_store):
    message = Message.from_text("agent", "stored")
    merged = await coordinator.merge(SessionDescriptor(id="s"), [message])

    resource_id = merged.history[0].url.rsplit("/", 1)[1]
    stored = await resource_store.get(resource_id)
    assert stored.content_type == "application/json"
    assert Message.model_validate(json.loads(stored.content)) == message


@pytest.mark.asyncio
async def test_round_trip_through_resolver(coordinator, resolver, fake_fetcher):
    message = Message.from_text("agent", "round trip", metadata={"tool": "x"})
    merged = await coordinator.merge(SessionDescriptor(id="s"), [message])

    resolved = await resolver.resolve_message(merged.history[0])

    assert resolved == message
    assert fake_fetcher.fetch_count == 0


@pytest.mark.asyncio
async def test_state_replaced_when_given(coordinator, resolver):
    prior = SessionDescriptor(id="s", state=InlineReference(content={"n": 1}))

    merged = await coordinator.merge(prior, [], new_state={"n": 2})

    assert merged.state != prior.state
    assert await resolver.resolve_state(merged.state) == {"n": 2}


@pytest.mark.asyncio
async def test_state_carried_over_when_omitted(coordinator):
    prior = SessionDescriptor(id="s", state="http://peer.test/resources/state")
    merged = await coordinator.merge(prior, [Message.from_text("user", "x")])
    assert merged.state == prior.state


@pytest.mark.asyncio
async def test_small_payloads_inline_when_threshold_set(gateway, resource_store):
    coordinator = SessionMergeCoordinator.from_config(gateway, MergeConfig(inline_max_bytes=4096))

    merged = await coordinator.merge(SessionDescriptor(id="s"), [Message.from_text("user", "tiny")])

    assert isinstance(merged.history[0], InlineReference)
    assert await resource_store.list_ids() == []


@pytest.mark.asyncio
async def test_large_payloads_go_to_gateway_despite_threshold(gateway):
    coordinator = SessionMergeCoordinator(gateway, inline_max_bytes=64)

    merged = await coordinator.merge(SessionDescriptor(id="s"), [Message.from_text("user", "x" * 500)])

    assert isinstance(merged.history[0], RemoteReference)


@pytest.mark.asyncio
async def test_concurrent_merges_from_same_ancestor_diverge(coordinator):
    ancestor = SessionDescriptor(id="s", history=["http://peer.test/resources/0"])

    left = await coordinator.merge(ancestor, [Message.from_text("agent", "left")])
    right = await coordinator.merge(ancestor, [Message.from_text("agent", "right")])

    assert len(left.history) == len(right.history) == 2
    assert left.history[1] != right.history[1]
