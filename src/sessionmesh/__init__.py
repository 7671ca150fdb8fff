# src/sessionmesh/__init__.py
"""
SessionMesh - distributed session resolution for cooperating servers.

A session is carried between servers as a compact descriptor holding an
ordered list of content references. This library resolves those references
(inline, cached, local, or fetched from the owning server), assembles the
history lazily and in order, merges new run output into updated descriptors,
and forwards locally owned content to peers that cannot reach it directly.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("sessionmesh")
except PackageNotFoundError:
    __version__ = "0.0.0"

from .api import SessionMesh
from .auth import (AllowAllAuthorizer, Authorizer, InboundAuthorizer,
                   OutboundAuthorizer, StaticTokenAuthorizer)
from .config import SessionMeshConfig, load_config
from .exceptions import (ConfigError, DescriptorInvalidError,
                         DescriptorStorageError, DivergenceError,
                         MalformedContentError, ResolutionError,
                         ResolutionTimeoutError, ResourceNotFoundError,
                         ResourceStorageError, SessionMeshError,
                         SessionNotFoundError, StateResolutionError,
                         StorageError, UnauthorizedError, UnreachableError)
from .gateway import ForwardingGateway
from .history import HistoryAssembler, HistoryStream, LazyHistory
from .models import (ContentReference, DivergenceReport, InlineReference,
                     Message, MessagePart, RemoteReference,
                     ResolutionFailure, ResolutionFailureKind,
                     ResolvedMessage, Role, SessionDescriptor)
from .resolution import HttpFetcher, ResolutionCache, ResourceResolver
from .sessions import (RunContext, RunResult, SessionManager,
                       SessionMergeCoordinator, detect_divergence)
from .storage import StorageManager

__all__ = [
    "__version__",
    # Core API
    "SessionMesh",
    "load_config",
    "SessionMeshConfig",
    # Models
    "SessionDescriptor",
    "ContentReference",
    "InlineReference",
    "RemoteReference",
    "Message",
    "MessagePart",
    "Role",
    "ResolvedMessage",
    "ResolutionFailure",
    "ResolutionFailureKind",
    "DivergenceReport",
    # Components
    "ResourceResolver",
    "ResolutionCache",
    "HttpFetcher",
    "HistoryAssembler",
    "HistoryStream",
    "LazyHistory",
    "ForwardingGateway",
    "SessionMergeCoordinator",
    "SessionManager",
    "RunContext",
    "RunResult",
    "StorageManager",
    "detect_divergence",
    # Authorization
    "Authorizer",
    "InboundAuthorizer",
    "OutboundAuthorizer",
    "AllowAllAuthorizer",
    "StaticTokenAuthorizer",
    # Exceptions
    "SessionMeshError",
    "ConfigError",
    "StorageError",
    "ResourceStorageError",
    "DescriptorStorageError",
    "SessionNotFoundError",
    "ResolutionError",
    "UnreachableError",
    "ResourceNotFoundError",
    "MalformedContentError",
    "ResolutionTimeoutError",
    "UnauthorizedError",
    "DescriptorInvalidError",
    "StateResolutionError",
    "DivergenceError",
]
