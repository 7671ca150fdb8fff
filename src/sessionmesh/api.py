# src/sessionmesh/api.py
"""
Core API Facade for the SessionMesh library.

``SessionMesh`` wires configuration, storage, the resolution cache, the
resolver, the history assembler, the forwarding gateway, the merge
coordinator and the session manager into one object, created asynchronously
with ``await SessionMesh.create(...)`` and released with ``await close()``.
"""

import logging
from typing import Any, Dict, Optional, Sequence

from .auth import Authorizer, StaticTokenAuthorizer
from .config import SessionMeshConfig, load_config
from .exceptions import ConfigError, SessionMeshError
from .gateway import ForwardingGateway
from .history.assembler import HistoryAssembler, LazyHistory
from .models import Message, SessionDescriptor
from .resolution.cache import ResolutionCache
from .resolution.fetcher import BaseFetcher, HttpFetcher
from .resolution.resolver import ResourceResolver
from .sessions.manager import RunExecutor, RunResult, SessionManager
from .sessions.merge import SessionMergeCoordinator
from .storage.manager import StorageManager

logger = logging.getLogger(__name__)


class SessionMesh:
    """
    Main class for resolving, extending and serving distributed sessions.

    Use ``await SessionMesh.create()`` rather than the constructor.
    """

    config: SessionMeshConfig

    def __init__(self):
        """Private constructor. Use the `create` classmethod."""
        self._storage_manager: Optional[StorageManager] = None
        self._fetcher: Optional[BaseFetcher] = None
        self._cache: Optional[ResolutionCache] = None
        self._resolver: Optional[ResourceResolver] = None
        self._assembler: Optional[HistoryAssembler] = None
        self._gateway: Optional[ForwardingGateway] = None
        self._coordinator: Optional[SessionMergeCoordinator] = None
        self._session_manager: Optional[SessionManager] = None
        self._authorizer: Optional[Authorizer] = None

    @classmethod
    async def create(
        cls,
        config_overrides: Optional[Dict[str, Any]] = None,
        config_file_path: Optional[str] = None,
        env_prefix: Optional[str] = "SESSIONMESH",
        authorizer: Optional[Authorizer] = None,
        fetcher: Optional[BaseFetcher] = None,
    ) -> "SessionMesh":
        """
        Asynchronously creates and initializes a SessionMesh instance.

        Args:
            config_overrides: Values applied over every other configuration source.
            config_file_path: Optional TOML configuration file.
            env_prefix: Prefix for environment overrides (None disables).
            authorizer: Authorization hooks; defaults to a StaticTokenAuthorizer
                        built from ``auth.token`` (empty token = allow all).
            fetcher: Outbound fetcher; defaults to an aiohttp HttpFetcher.

        Raises:
            ConfigError: If configuration is invalid.
            StorageError: If a storage backend cannot be initialized.
        """
        instance = cls()
        instance.config = load_config(config_file_path, config_overrides, env_prefix)
        await instance._initialize(authorizer, fetcher)
        return instance

    async def _initialize(self, authorizer: Optional[Authorizer], fetcher: Optional[BaseFetcher]) -> None:
        logger.info("Initializing SessionMesh components from configuration...")
        level_str = str(self.config.logging.get("level", "INFO")).upper()
        level = logging.getLevelName(level_str)
        if not isinstance(level, int):
            raise ConfigError(f"Invalid logging.level '{level_str}'.")
        logging.getLogger("sessionmesh").setLevel(level)

        self._authorizer = authorizer or StaticTokenAuthorizer(self.config.auth.token)
        self._storage_manager = StorageManager(self.config.storage)
        await self._storage_manager.initialize_storages()

        self._gateway = ForwardingGateway(
            self._storage_manager.get_resource_store(), self.config.gateway.base_url, self._authorizer)
        self._cache = ResolutionCache.from_config(self.config.cache)
        self._fetcher = fetcher or HttpFetcher.from_config(self.config.resolver, self._authorizer)
        self._resolver = ResourceResolver(
            self._fetcher,
            cache=self._cache,
            gateway=self._gateway,
            timeout_seconds=self.config.resolver.timeout_seconds,
            negative_cache_seconds=self.config.resolver.negative_cache_seconds,
        )
        self._assembler = HistoryAssembler.from_config(self._resolver, self.config.assembler)
        self._coordinator = SessionMergeCoordinator.from_config(self._gateway, self.config.merge)
        self._session_manager = SessionManager(
            self._storage_manager.get_descriptor_storage(), self._assembler, self._coordinator)
        logger.info(f"SessionMesh initialized (gateway base URL: {self._gateway.base_url}).")

    def _require(self, component: Any, name: str) -> Any:
        if component is None:
            raise SessionMeshError(f"SessionMesh {name} is not initialized. Use SessionMesh.create().")
        return component

    @property
    def authorizer(self) -> Authorizer:
        return self._require(self._authorizer, "authorizer")

    @property
    def cache(self) -> ResolutionCache:
        return self._require(self._cache, "cache")

    @property
    def resolver(self) -> ResourceResolver:
        return self._require(self._resolver, "resolver")

    @property
    def assembler(self) -> HistoryAssembler:
        return self._require(self._assembler, "assembler")

    @property
    def gateway(self) -> ForwardingGateway:
        return self._require(self._gateway, "gateway")

    @property
    def coordinator(self) -> SessionMergeCoordinator:
        return self._require(self._coordinator, "merge coordinator")

    @property
    def sessions(self) -> SessionManager:
        return self._require(self._session_manager, "session manager")

    # --- convenience pass-throughs ---

    def assemble(self, descriptor: SessionDescriptor) -> LazyHistory:
        return self.assembler.assemble(descriptor)

    async def merge(self, prior: SessionDescriptor, new_messages: Sequence[Message],
                    new_state: Optional[Any] = None) -> SessionDescriptor:
        return await self.coordinator.merge(prior, new_messages, new_state)

    async def run(self, executor: RunExecutor, descriptor: Optional[SessionDescriptor] = None,
                  run_input: Sequence[Message] = ()) -> RunResult:
        return await self.sessions.run(executor, descriptor, run_input)

    async def close(self) -> None:
        """Releases the HTTP session and storage backends."""
        logger.info("Closing SessionMesh...")
        if self._fetcher is not None:
            try:
                await self._fetcher.close()
            except Exception as e:
                logger.error(f"Error closing fetcher: {e}", exc_info=True)
        if self._storage_manager is not None:
            await self._storage_manager.close_storages()
        logger.info("SessionMesh closed.")
