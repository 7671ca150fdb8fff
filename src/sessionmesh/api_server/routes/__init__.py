# src/sessionmesh/api_server/routes/__init__.py
"""
API routes package initialization.
"""

from .core import router as core_router
from .resources import router as resources_router
from .sessions import router as sessions_router

__all__ = [
    "core_router",
    "resources_router",
    "sessions_router",
]
