# tests/conftest.py
"""
Shared fixtures for the SessionMesh test suite.

``FakeFetcher`` stands in for the network: it serves canned payloads per URL,
counts every fetch, and can inject latency or failures per URL so tests can
exercise ordering, caching and partial-failure behaviour deterministically.
"""

import asyncio
import json
from collections import Counter
from typing import Any, Dict, Optional

import pytest

from sessionmesh.exceptions import ResourceNotFoundError
from sessionmesh.gateway import ForwardingGateway
from sessionmesh.history.assembler import HistoryAssembler
from sessionmesh.models import Message, RemoteReference
from sessionmesh.resolution.cache import ResolutionCache
from sessionmesh.resolution.fetcher import BaseFetcher, FetchResult
from sessionmesh.resolution.resolver import ResourceResolver
from sessionmesh.sessions.merge import SessionMergeCoordinator
from sessionmesh.storage.memory_resource import MemoryResourceStore

LOCAL_BASE_URL = "http://local.test"


class FakeFetcher(BaseFetcher):
    """In-memory fetcher with per-URL payloads, latencies and failures."""

    def __init__(self):
        self.payloads: Dict[str, FetchResult] = {}
        self.latencies: Dict[str, float] = {}
        self.failures: Dict[str, Exception] = {}
        self.calls: Counter = Counter()
        self.active = 0
        self.max_active = 0
        self.cancelled: list = []
        self.closed = False

    def add(self, url: str, value: Any, content_type: str = "application/json") -> RemoteReference:
        content = value if isinstance(value, bytes) else json.dumps(value).encode("utf-8")
        self.payloads[url] = FetchResult(content=content, content_type=content_type)
        return RemoteReference(url=url)

    def add_message(self, url: str, message: Message) -> RemoteReference:
        return self.add(url, message.model_dump(mode="json"))

    def fail(self, url: str, error: Exception) -> RemoteReference:
        self.failures[url] = error
        return RemoteReference(url=url)

    @property
    def fetch_count(self) -> int:
        return sum(self.calls.values())

    async def fetch(self, ref: RemoteReference, timeout: Optional[float] = None) -> FetchResult:
        self.calls[ref.url] += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            delay = self.latencies.get(ref.url, 0)
            if delay:
                await asyncio.sleep(delay)
            if ref.url in self.failures:
                raise self.failures[ref.url]
            if ref.url not in self.payloads:
                raise ResourceNotFoundError(ref, "No such fake resource.")
            return self.payloads[ref.url]
        except asyncio.CancelledError:
            self.cancelled.append(ref.url)
            raise
        finally:
            self.active -= 1

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def resolution_cache() -> ResolutionCache:
    return ResolutionCache(max_entries=128, max_bytes=1024 * 1024)


@pytest.fixture
def resource_store() -> MemoryResourceStore:
    return MemoryResourceStore()


@pytest.fixture
def gateway(resource_store) -> ForwardingGateway:
    return ForwardingGateway(resource_store, LOCAL_BASE_URL)


@pytest.fixture
def resolver(fake_fetcher, resolution_cache, gateway) -> ResourceResolver:
    return ResourceResolver(fake_fetcher, cache=resolution_cache, gateway=gateway, timeout_seconds=1.0)


@pytest.fixture
def assembler(resolver) -> HistoryAssembler:
    return HistoryAssembler(resolver, fan_out=4)


@pytest.fixture
def coordinator(gateway) -> SessionMergeCoordinator:
    return SessionMergeCoordinator(gateway)
