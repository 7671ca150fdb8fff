# src/sessionmesh/exceptions.py
"""
Custom exceptions for the SessionMesh library.

This module defines a hierarchy of custom exception classes so callers can
tell apart failures scoped to a single content reference (recoverable,
captured as per-entry failure markers during history assembly) from failures
that are fatal to a request (invalid descriptors, denied access, state that
cannot be resolved).
"""

from typing import Any, Optional


class SessionMeshError(Exception):
    """Base class for all SessionMesh specific errors."""
    def __init__(self, message: str = "An unspecified error occurred in SessionMesh."):
        super().__init__(message)

class ConfigError(SessionMeshError):
    """Raised for errors related to configuration loading or validation."""
    def __init__(self, message: str = "Configuration error."):
        super().__init__(message)

class StorageError(SessionMeshError):
    """Base class for errors related to storage operations."""
    def __init__(self, message: str = "Storage error."):
        super().__init__(message)

class ResourceStorageError(StorageError):
    """Raised for errors specific to local resource store operations."""
    def __init__(self, message: str = "Resource storage error."):
        super().__init__(message)

class DescriptorStorageError(StorageError):
    """Raised for errors specific to session descriptor storage operations."""
    def __init__(self, message: str = "Descriptor storage error."):
        super().__init__(message)

class SessionNotFoundError(StorageError):
    """
    Raised when a specified session ID is not known to this server.
    Inherits from StorageError as it's a storage-related lookup failure.
    """
    def __init__(self, session_id: str, message: str = "Session not found."):
        self.session_id = session_id
        super().__init__(f"{message} Session ID: '{session_id}'")


class ResolutionError(SessionMeshError):
    """
    Base class for failures turning a single content reference into content.

    Resolution errors are scoped to one reference and are recoverable at the
    caller's discretion; the history assembler converts them into failure
    markers instead of aborting.

    Attributes:
        reference: The content reference that failed to resolve (may be None
                   when the failure happened before a reference was known).
        kind: Machine-readable failure kind (see ResolutionFailureKind).
    """
    kind: str = "unreachable"

    def __init__(self, reference: Any = None, message: str = "Content reference could not be resolved."):
        self.reference = reference
        self.reason = message
        super().__init__(f"{message} Reference: {_describe_reference(reference)}")

class UnreachableError(ResolutionError):
    """Raised on network or connection failures while fetching a reference."""
    kind = "unreachable"

    def __init__(self, reference: Any = None, message: str = "Resource server unreachable."):
        super().__init__(reference, message)

class ResourceNotFoundError(ResolutionError):
    """Raised when the owning server reports the resource as absent."""
    kind = "not_found"

    def __init__(self, reference: Any = None, message: str = "Resource not found."):
        super().__init__(reference, message)

class MalformedContentError(ResolutionError):
    """Raised when retrieved bytes do not parse as the expected schema."""
    kind = "malformed_content"

    def __init__(self, reference: Any = None, message: str = "Malformed content."):
        super().__init__(reference, message)

class ResolutionTimeoutError(ResolutionError):
    """Raised when a single fetch exceeds its configured timeout."""
    kind = "timeout"

    def __init__(self, reference: Any = None, timeout: float = 0.0, message: str = "Fetch timed out."):
        self.timeout = timeout
        super().__init__(reference, f"{message} Timeout: {timeout}s.")


class UnauthorizedError(SessionMeshError):
    """
    Raised when the authorization hook denies a fetch or an inbound read.
    Surfaced to the caller and never retried by the core.
    """
    kind = "unauthorized"

    def __init__(self, target: str = "", message: str = "Unauthorized."):
        self.target = target
        super().__init__(f"{message} Target: '{target}'" if target else message)

class DescriptorInvalidError(SessionMeshError):
    """Raised for malformed session descriptors or content references."""
    def __init__(self, message: str = "Invalid session descriptor."):
        super().__init__(message)

class StateResolutionError(SessionMeshError):
    """
    Raised when a session's state reference cannot be resolved.

    Unlike history entries, state is required for correct agent behaviour, so
    failures escalate to the caller instead of becoming markers.
    """
    def __init__(self, reference: Any = None, cause: Optional[BaseException] = None,
                 message: str = "Session state could not be resolved."):
        self.reference = reference
        self.cause = cause
        detail = f" Cause: {cause}" if cause else ""
        super().__init__(f"{message} Reference: {_describe_reference(reference)}.{detail}")

class DivergenceError(SessionMeshError):
    """Raised when two descriptors for the same session have diverged histories."""
    def __init__(self, report: Any = None, message: str = "Session histories have diverged."):
        self.report = report
        detail = ""
        if report is not None:
            detail = (f" Common prefix: {report.common_prefix_length}, "
                      f"lengths: {report.left_length}/{report.right_length}.")
        super().__init__(f"{message}{detail}")


def _describe_reference(reference: Any) -> str:
    """Short human-readable rendering of a reference for error messages."""
    if reference is None:
        return "<none>"
    url = getattr(reference, "url", None)
    if url:
        return url
    if getattr(reference, "kind", None) == "inline":
        return "<inline>"
    return repr(reference)
