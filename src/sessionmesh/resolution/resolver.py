# src/sessionmesh/resolution/resolver.py
"""
Resource Resolver.

Turns a content reference into content. Inline references are returned
immediately without I/O. Remote references are looked up in the resolution
cache first; on a miss they are read from the local resource store when the
URL is one of this server's own gateway URLs, and fetched over HTTP
otherwise. Content is validated against the expected schema before it is
cached, so malformed payloads are never cached. Failures are not cached
either, apart from an optional short negative-cache window that bounds
retry storms.
"""

import asyncio
import base64
import json
import logging
from collections import Counter
from typing import Any, Dict, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from ..exceptions import (MalformedContentError, ResolutionError,
                          ResolutionTimeoutError, ResourceNotFoundError,
                          StorageError, UnauthorizedError, UnreachableError)
from ..models import (InlineReference, Message, MessagePart, RemoteReference,
                      reference_from_wire)
from .cache import ResolutionCache
from .fetcher import BaseFetcher

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)
Reference = Union[InlineReference, RemoteReference]


class ResourceResolver:
    """
    Resolves content references through cache, local storage or the network.

    Args:
        fetcher: Performs outbound HTTP retrieval.
        cache: Optional resolution cache consulted before any remote fetch.
        gateway: Optional forwarding gateway; URLs it owns are read locally.
        timeout_seconds: Per-fetch timeout applied to every remote fetch.
        negative_cache_seconds: Window during which a failed reference is not
                                refetched (0 disables).
    """

    def __init__(
        self,
        fetcher: BaseFetcher,
        cache: Optional[ResolutionCache] = None,
        gateway: Optional[Any] = None,
        timeout_seconds: float = 10.0,
        negative_cache_seconds: float = 0.0,
    ):
        self._fetcher = fetcher
        self._cache = cache
        self._gateway = gateway
        self._timeout = timeout_seconds
        self._negative_window = negative_cache_seconds
        self._counters: Counter = Counter()

    @property
    def cache(self) -> Optional[ResolutionCache]:
        return self._cache

    # --- public API ---

    async def resolve(self, ref: Any, schema: Optional[Type[ModelT]] = None) -> Union[bytes, ModelT]:
        """
        Resolve ``ref`` to raw bytes, or to an instance of ``schema`` when given.

        Raises:
            DescriptorInvalidError: If ``ref`` is not a well-formed reference.
            ResolutionError: Unreachable, NotFound, MalformedContent or Timeout.
            UnauthorizedError: If access to the owning server is refused.
        """
        ref = reference_from_wire(ref)
        if isinstance(ref, InlineReference):
            self._counters["inline"] += 1
            if schema is None:
                return self._inline_bytes(ref)
            return self._validate(ref, ref.content, schema)

        content, content_type, fresh = await self._load_remote(ref)
        value: Any = content
        if schema is not None:
            value = self._validate(ref, self._decode_json(ref, content), schema)
        if fresh and self._cache is not None:
            self._cache.put(ref, content, content_type)
        return value

    async def resolve_json(self, ref: Any) -> Any:
        """Resolve ``ref`` to a decoded JSON value."""
        ref = reference_from_wire(ref)
        if isinstance(ref, InlineReference):
            self._counters["inline"] += 1
            return ref.content

        content, content_type, fresh = await self._load_remote(ref)
        value = self._decode_json(ref, content)
        if fresh and self._cache is not None:
            self._cache.put(ref, content, content_type)
        return value

    async def resolve_message(self, ref: Any) -> Message:
        """Resolve a history entry into a Message."""
        return await self.resolve(ref, Message)

    async def resolve_state(self, ref: Any) -> Any:
        """Resolve a state reference into its JSON value."""
        return await self.resolve_json(ref)

    async def resolve_part(self, part: MessagePart) -> MessagePart:
        """
        Materialize a part that carries ``content_url`` into inline content.

        Text parts are decoded as UTF-8; anything else is base64 encoded.
        Parts that already carry inline content are returned unchanged.
        """
        if part.content_url is None:
            return part
        ref = part.reference
        content, content_type, fresh = await self._load_remote(ref)
        if fresh and self._cache is not None:
            self._cache.put(ref, content, content_type)

        if part.content_type.startswith("text/") or part.content_type == "application/json":
            try:
                text, encoding = content.decode("utf-8"), "plain"
            except UnicodeDecodeError:
                raise MalformedContentError(ref, f"Part declared as {part.content_type} is not valid UTF-8.")
        else:
            text, encoding = base64.b64encode(content).decode("ascii"), "base64"
        return part.model_copy(update={"content": text, "content_url": None, "content_encoding": encoding})

    @property
    def stats(self) -> Dict[str, Any]:
        """Resolution counters: inline, cache_hits, local_reads, fetches and failures by kind."""
        result: Dict[str, Any] = {k: self._counters[k] for k in ("inline", "cache_hits", "local_reads", "fetches")}
        result["failures"] = {k.split(":", 1)[1]: v for k, v in self._counters.items() if k.startswith("failure:")}
        return result

    # --- internals ---

    async def _load_remote(self, ref: RemoteReference) -> Tuple[bytes, str, bool]:
        """
        Load the bytes behind a remote reference.

        Returns:
            (content, content_type, fresh) where ``fresh`` is True when the
            bytes came from the network and may be cached after validation.
        """
        if self._cache is not None:
            failure = self._cache.get_failure(ref)
            if failure is not None:
                logger.debug(f"Skipping {ref.url}: failed recently ({failure.kind}).")
                self._counters[f"failure:{failure.kind}"] += 1
                raise failure
            entry = self._cache.get(ref)
            if entry is not None:
                self._counters["cache_hits"] += 1
                return entry.content, entry.content_type, False

        try:
            resource_id = self._gateway.resource_id_from_url(ref.url) if self._gateway is not None else None
            if resource_id is not None:
                self._counters["local_reads"] += 1
                try:
                    resource = await self._gateway.read_local(resource_id)
                except StorageError as e:
                    logger.error(f"Local store failed reading '{resource_id}' for {ref.url}: {e}")
                    raise UnreachableError(ref, f"Local store failure: {e}") from e
                if resource is None:
                    raise ResourceNotFoundError(ref, f"Local resource '{resource_id}' not found.")
                return resource.content, resource.content_type, False

            self._counters["fetches"] += 1
            try:
                result = await asyncio.wait_for(self._fetcher.fetch(ref, self._timeout), self._timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Resolution of {ref.url} timed out after {self._timeout}s.")
                raise ResolutionTimeoutError(ref, self._timeout)
            return result.content, result.content_type, True
        except ResolutionError as e:
            self._counters[f"failure:{e.kind}"] += 1
            if self._cache is not None:
                self._cache.mark_failed(ref, e, self._negative_window)
            raise
        except UnauthorizedError:
            self._counters["failure:unauthorized"] += 1
            raise

    def _decode_json(self, ref: Reference, content: bytes) -> Any:
        try:
            return json.loads(content)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self._counters["failure:malformed_content"] += 1
            raise MalformedContentError(ref, f"Content is not valid JSON: {e}")

    def _validate(self, ref: Reference, data: Any, schema: Type[ModelT]) -> ModelT:
        try:
            return schema.model_validate(data)
        except ValidationError as e:
            self._counters["failure:malformed_content"] += 1
            raise MalformedContentError(
                ref, f"Content does not match {schema.__name__}: {e.error_count()} validation error(s).")

    @staticmethod
    def _inline_bytes(ref: InlineReference) -> bytes:
        if isinstance(ref.content, bytes):
            return ref.content
        if isinstance(ref.content, str):
            return ref.content.encode("utf-8")
        return json.dumps(ref.content).encode("utf-8")
