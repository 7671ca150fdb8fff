# tests/api_server/conftest.py
"""
Pytest configuration and fixtures for API server tests.

The SessionMesh instance is built on its own event loop and then handed to
the app; the in-memory backends do not bind to a loop, so the TestClient can
serve it from its own.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from sessionmesh import SessionMesh
from sessionmesh.api_server.main import create_app
from sessionmesh.models import Message, SessionDescriptor

BASE_URL = "http://testserver"


def build_mesh(token: str = "") -> SessionMesh:
    overrides = {"gateway.base_url": BASE_URL, "auth.token": token}
    return asyncio.run(SessionMesh.create(config_overrides=overrides, env_prefix=None))


@pytest.fixture
def mesh():
    instance = build_mesh()
    yield instance
    asyncio.run(instance.close())


@pytest.fixture
def secured_mesh():
    instance = build_mesh(token="s3cret")
    yield instance
    asyncio.run(instance.close())


@pytest.fixture
def stored_session(mesh) -> SessionDescriptor:
    """A session with two locally stored messages, saved in the mesh."""
    async def setup():
        merged = await mesh.merge(SessionDescriptor(id="sess-1"),
                                  [Message.from_text("user", "hi"), Message.from_text("agent", "hello")],
                                  new_state={"turns": 1})
        await mesh.sessions.save_descriptor(merged)
        return merged

    return asyncio.run(setup())


@pytest.fixture
def api_client(mesh):
    with TestClient(create_app(mesh)) as client:
        yield client
