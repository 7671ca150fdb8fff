# src/sessionmesh/config/models.py
"""
Pydantic models for SessionMesh configuration validation.

Each section of the TOML configuration maps onto one model. The loader
merges all configuration sources into a plain dictionary first and then
validates it with ``SessionMeshConfig.model_validate``.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class CacheConfig(BaseModel):
    """Resolution cache bounds. Eviction is least-recently-used."""

    enabled: bool = Field(True, description="Enable the resolution cache")
    max_entries: int = Field(1024, ge=0, description="Max cached references (0 disables)")
    max_bytes: int = Field(64 * 1024 * 1024, ge=0, description="Max total cached payload bytes")
    ttl_seconds: float = Field(0, ge=0, description="Entry lifetime in seconds (0 = no expiry)")


class ResolverConfig(BaseModel):
    """Remote fetch behaviour."""

    timeout_seconds: float = Field(10.0, gt=0, description="Per-fetch timeout")
    max_concurrent_fetches: int = Field(16, gt=0, description="Process-wide cap on in-flight fetches")
    negative_cache_seconds: float = Field(
        0.0, ge=0, description="Window during which a failed reference is not refetched"
    )
    user_agent: str = Field("sessionmesh", description="User-Agent header for outbound fetches")


class AssemblerConfig(BaseModel):
    """History assembly behaviour."""

    fan_out: int = Field(4, ge=1, le=256, description="Bounded read-ahead per history stream")
    resolve_parts: bool = Field(
        False, description="Also materialize message parts that carry a content_url"
    )


class GatewayConfig(BaseModel):
    """Forwarding gateway: how this server exposes its local resources."""

    enabled: bool = Field(True, description="Serve GET /resources/{resource_id}")
    base_url: str = Field("http://localhost:8000", description="Public base URL of this server")

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"gateway.base_url must be an http(s) URL, got '{v}'")
        return v.rstrip("/")


class MergeConfig(BaseModel):
    """How newly produced content is turned into references."""

    inline_max_bytes: int = Field(
        0, ge=0, description="Content up to this size is embedded inline (0 = never inline)"
    )


class StorageBackendConfig(BaseModel):
    """A single storage backend selection."""

    type: Literal["memory", "file"] = Field("memory", description="Backend type")
    path: str | None = Field(None, description="Directory for file-based backends")


class StorageConfig(BaseModel):
    """Local storage backends for resources and session descriptors."""

    resources: StorageBackendConfig = Field(default_factory=StorageBackendConfig)
    descriptors: StorageBackendConfig = Field(default_factory=StorageBackendConfig)


class AuthConfig(BaseModel):
    """Shared bearer token used by the static token authorizer (empty = allow all)."""

    token: str = Field("", description="Bearer token attached to and expected on requests")


class SessionMeshConfig(BaseModel):
    """Top-level configuration."""

    cache: CacheConfig = Field(default_factory=CacheConfig)
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    assembler: AssemblerConfig = Field(default_factory=AssemblerConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    merge: MergeConfig = Field(default_factory=MergeConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    logging: dict[str, Any] = Field(default_factory=dict, description="Passed to configure_logging")
