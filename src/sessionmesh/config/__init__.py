# src/sessionmesh/config/__init__.py
"""
Configuration module for the SessionMesh library.

This package handles the loading and validation of configuration settings,
layering a packaged default TOML file, an optional user file, environment
variables and explicit overrides into validated Pydantic models.

Configuration files:
    - default_config.toml: Packaged defaults
    - Custom config: Specified via SessionMesh.create(config_file_path=...)

Environment variables:
    - Prefix: SESSIONMESH_
    - Nested keys use double underscores: SESSIONMESH_CACHE__MAX_ENTRIES
"""

from .loader import load_config
from .models import (AssemblerConfig, AuthConfig, CacheConfig, GatewayConfig,
                     MergeConfig, ResolverConfig, SessionMeshConfig,
                     StorageBackendConfig, StorageConfig)

__all__ = [
    "load_config",
    "AssemblerConfig",
    "AuthConfig",
    "CacheConfig",
    "GatewayConfig",
    "MergeConfig",
    "ResolverConfig",
    "SessionMeshConfig",
    "StorageBackendConfig",
    "StorageConfig",
]
