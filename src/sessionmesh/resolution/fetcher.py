# src/sessionmesh/resolution/fetcher.py
"""
Outbound HTTP retrieval of remote content references.

``HttpFetcher`` issues GET requests through a shared aiohttp session with a
per-fetch timeout and a process-wide cap on concurrent fetches, and maps
transport failures onto the resolution error taxonomy.
"""

import abc
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from ..auth import AllowAllAuthorizer, OutboundAuthorizer
from ..config.models import ResolverConfig
from ..exceptions import (ResolutionTimeoutError, ResourceNotFoundError,
                          UnauthorizedError, UnreachableError)
from ..models import RemoteReference

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Raw bytes and content type returned by a successful fetch."""
    content: bytes
    content_type: str = "application/octet-stream"


class BaseFetcher(abc.ABC):
    """Retrieves the bytes behind a remote reference."""

    @abc.abstractmethod
    async def fetch(self, ref: RemoteReference, timeout: Optional[float] = None) -> FetchResult:
        """
        Fetch the content behind ``ref``.

        Raises:
            UnreachableError: Network or connection failure, or a server error.
            ResourceNotFoundError: The owning server reports the resource absent.
            ResolutionTimeoutError: The fetch exceeded its timeout.
            UnauthorizedError: The owning server or the outbound hook refused access.
        """
        pass

    async def close(self) -> None:
        """Release network resources."""
        pass


class HttpFetcher(BaseFetcher):
    """aiohttp-backed fetcher.

    Attributes:
        fetch_count: Number of network requests issued (instrumentation).
        failure_count: Number of requests that ended in an error.
    """

    def __init__(
        self,
        timeout_seconds: float = 10.0,
        max_concurrent_fetches: int = 16,
        user_agent: str = "sessionmesh",
        authorizer: Optional[OutboundAuthorizer] = None,
    ):
        self._timeout = float(timeout_seconds)
        self._semaphore = asyncio.Semaphore(max_concurrent_fetches)
        self._user_agent = user_agent
        self._authorizer = authorizer or AllowAllAuthorizer()
        self._session: Optional[aiohttp.ClientSession] = None
        self.fetch_count = 0
        self.failure_count = 0

    @classmethod
    def from_config(cls, config: ResolverConfig, authorizer: Optional[OutboundAuthorizer] = None) -> "HttpFetcher":
        return cls(
            timeout_seconds=config.timeout_seconds,
            max_concurrent_fetches=config.max_concurrent_fetches,
            user_agent=config.user_agent,
            authorizer=authorizer,
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        """Gets or creates the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers={"User-Agent": self._user_agent})
            logger.debug("Created new aiohttp.ClientSession for HttpFetcher.")
        return self._session

    async def fetch(self, ref: RemoteReference, timeout: Optional[float] = None) -> FetchResult:
        timeout = self._timeout if timeout is None else timeout
        headers = await self._authorizer.authorize_outbound(ref.url)
        session = await self._get_session()

        async with self._semaphore:
            self.fetch_count += 1
            logger.debug(f"Fetching {ref.url} (timeout {timeout}s)")
            try:
                async with session.get(ref.url, headers=headers,
                                       timeout=aiohttp.ClientTimeout(total=timeout)) as response:
                    if response.status in (404, 410):
                        raise ResourceNotFoundError(ref, f"Resource server returned {response.status}.")
                    if response.status in (401, 403):
                        raise UnauthorizedError(ref.url, f"Resource server returned {response.status}.")
                    if response.status >= 400:
                        raise UnreachableError(ref, f"Resource server returned {response.status}.")
                    content = await response.read()
                    content_type = response.headers.get("Content-Type", "application/octet-stream")
                    return FetchResult(content=content, content_type=content_type.split(";")[0].strip())
            except (ResourceNotFoundError, UnauthorizedError, UnreachableError):
                self.failure_count += 1
                raise
            except asyncio.TimeoutError:
                self.failure_count += 1
                logger.warning(f"Fetch of {ref.url} timed out after {timeout}s.")
                raise ResolutionTimeoutError(ref, timeout)
            except aiohttp.ClientError as e:
                self.failure_count += 1
                logger.warning(f"Could not fetch {ref.url}: {e}")
                raise UnreachableError(ref, f"Connection failed: {e}")

    @property
    def stats(self) -> Dict[str, Any]:
        return {"fetches": self.fetch_count, "failures": self.failure_count}

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
            logger.debug("HttpFetcher aiohttp session closed.")
        self._session = None
