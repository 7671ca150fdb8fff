# src/sessionmesh/api_server/__init__.py
"""
FastAPI server exposing session descriptors and forwarded resources.
"""

from .main import app, create_app

__all__ = ["app", "create_app"]
