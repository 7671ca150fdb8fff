# src/sessionmesh/models.py
"""
Core data models for the SessionMesh library.

This module defines the Pydantic models used to represent the portable
session descriptor, the tagged content reference variants (inline or remote),
messages and their parts, resolution results and the records held by local
resource stores. Descriptors and references are immutable values: every
update returns a copy, so they can be passed freely across component and
server boundaries.
"""

import json
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union
from urllib.parse import urlparse

from pydantic import (BaseModel, ConfigDict, Field, TypeAdapter,
                      ValidationError, field_validator, model_validator)

from .exceptions import DescriptorInvalidError


def _ensure_utc(v: Any) -> Any:
    """Normalize datetimes (or ISO strings) to timezone-aware UTC."""
    if isinstance(v, str):
        try:
            v = datetime.fromisoformat(v[:-1] + '+00:00' if v.endswith('Z') else v)
        except ValueError:
            raise ValueError(f"Invalid datetime format: {v}")
    if isinstance(v, datetime):
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)
    if v is None:
        return datetime.now(timezone.utc)
    return v


# --- Content references ---

class InlineReference(BaseModel):
    """
    A content reference carrying its payload directly (small payloads).

    Attributes:
        kind: Discriminator, always "inline".
        content: The embedded JSON-compatible payload. Must not be None.
    """
    model_config = ConfigDict(frozen=True)

    kind: Literal["inline"] = "inline"
    content: Any = Field(description="Embedded JSON-compatible payload.")

    @field_validator('content')
    @classmethod
    def content_must_be_present(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("Inline reference requires a payload.")
        return v

    @property
    def key(self) -> Tuple[str, str]:
        """Reference identity: canonical JSON of the payload."""
        return ("inline", json.dumps(self.content, sort_keys=True, default=str))

    def __hash__(self) -> int:
        return hash(self.key)


class RemoteReference(BaseModel):
    """
    A content reference pointing at an HTTP(S) URL owned by some resource server.

    Attributes:
        kind: Discriminator, always "remote".
        url: Absolute http/https URL retrievable via GET.
    """
    model_config = ConfigDict(frozen=True)

    kind: Literal["remote"] = "remote"
    url: str = Field(description="Absolute http(s) URL of the content.")

    @field_validator('url')
    @classmethod
    def url_must_be_http(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Remote reference requires an absolute http(s) URL, got '{v}'.")
        return v

    @property
    def key(self) -> Tuple[str, str]:
        return ("remote", self.url)

    def __hash__(self) -> int:
        return hash(self.key)


ContentReference = Annotated[Union[InlineReference, RemoteReference], Field(discriminator="kind")]

_reference_adapter: TypeAdapter = TypeAdapter(ContentReference)


def reference_from_wire(value: Any) -> Union[InlineReference, RemoteReference]:
    """
    Parses the wire form of a content reference.

    Accepted forms: a URL string, ``{"content": ...}`` (inline),
    ``{"url": ...}`` (remote), or an explicitly tagged object with ``kind``.

    Raises:
        DescriptorInvalidError: If the value is not a well-formed reference.
    """
    if isinstance(value, (InlineReference, RemoteReference)):
        return value
    try:
        if isinstance(value, str):
            return RemoteReference(url=value)
        if isinstance(value, dict):
            if "kind" in value:
                return _reference_adapter.validate_python(value)
            if "url" in value and "content" not in value:
                return RemoteReference(url=value["url"])
            if "content" in value:
                return InlineReference(content=value["content"])
    except ValidationError as e:
        raise DescriptorInvalidError(f"Malformed content reference {value!r}: {e.errors()[0]['msg']}")
    raise DescriptorInvalidError(f"Malformed content reference {value!r}: expected URL string or inline object.")


def reference_to_wire(ref: Union[InlineReference, RemoteReference]) -> Any:
    """Renders a reference in its compact wire form (URL string or inline object)."""
    if isinstance(ref, RemoteReference):
        return ref.url
    return {"content": ref.content}


# --- Session descriptor ---

class SessionDescriptor(BaseModel):
    """
    Portable record of a session: its identity, ordered history references
    and a single state reference. Holds no content itself.

    The history is append-only; ``append`` and ``with_state`` return new
    descriptors and never touch the receiver.

    Attributes:
        id: Opaque identifier, stable for the lifetime of the session.
        history: Ordered references, insertion order = chronological order.
        state: Reference to the persisted state, or None.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique identifier for the session.")
    history: Tuple[ContentReference, ...] = Field(default=(), description="Ordered history references.")
    state: Optional[ContentReference] = Field(default=None, description="Reference to the session state.")

    @field_validator('id')
    @classmethod
    def id_must_be_non_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Session descriptor id must be a non-empty string.")
        return v

    @field_validator('history', mode='before')
    @classmethod
    def coerce_history(cls, v: Any) -> Any:
        if v is None:
            return ()
        if isinstance(v, (str, bytes, dict)) or not hasattr(v, '__iter__'):
            raise ValueError("history must be a list of content references.")
        return tuple(reference_from_wire(item) for item in v)

    @field_validator('state', mode='before')
    @classmethod
    def coerce_state(cls, v: Any) -> Any:
        if v is None:
            return None
        return reference_from_wire(v)

    def append(self, *refs: Union[InlineReference, RemoteReference]) -> "SessionDescriptor":
        """Returns a copy with ``refs`` appended to the history."""
        return self.model_copy(update={"history": self.history + tuple(refs)})

    def with_state(self, ref: Optional[Union[InlineReference, RemoteReference]]) -> "SessionDescriptor":
        """Returns a copy whose state reference is replaced by ``ref``."""
        return self.model_copy(update={"state": ref})

    def to_wire(self) -> Dict[str, Any]:
        """Renders the descriptor as the JSON body exchanged between servers."""
        return {
            "id": self.id,
            "history": [reference_to_wire(ref) for ref in self.history],
            "state": reference_to_wire(self.state) if self.state is not None else None,
        }

    @classmethod
    def from_wire(cls, data: Any) -> "SessionDescriptor":
        """
        Parses a descriptor received from a client or another server.

        Raises:
            DescriptorInvalidError: If the payload is not a valid descriptor.
        """
        if isinstance(data, (str, bytes)):
            try:
                data = json.loads(data)
            except json.JSONDecodeError as e:
                raise DescriptorInvalidError(f"Session descriptor is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise DescriptorInvalidError("Session descriptor must be a JSON object.")
        if "id" not in data:
            raise DescriptorInvalidError("Session descriptor is missing 'id'.")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            first = e.errors()[0]
            loc = ".".join(str(p) for p in first.get("loc", ()))
            raise DescriptorInvalidError(f"Invalid session descriptor at '{loc}': {first['msg']}")


# --- Messages ---

class Role(str, Enum):
    """
    Enumeration of possible roles in a conversation.
    """
    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"

    @classmethod
    def _missing_(cls, value: object): # type: ignore[misc]
        """
        Handles case-insensitive matching and common aliases for roles.
        "assistant" in any case maps to Role.AGENT.
        """
        if isinstance(value, str):
            lower_value = value.lower()
            if lower_value == "assistant":
                return cls.AGENT
            for member in cls:
                if member.value == lower_value:
                    return member
        return None


class MessagePart(BaseModel):
    """
    One part of a message. Carries either inline ``content`` or a
    ``content_url`` pointing at content stored elsewhere, never both.
    """
    content_type: str = Field(default="text/plain", description="MIME type of the content.")
    content: Optional[str] = Field(default=None, description="Inline content.")
    content_url: Optional[str] = Field(default=None, description="URL of externally stored content.")
    content_encoding: Literal["plain", "base64"] = Field(default="plain")
    name: Optional[str] = Field(default=None, description="Optional artifact name.")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode='after')
    def exactly_one_source(self) -> "MessagePart":
        if (self.content is None) == (self.content_url is None):
            raise ValueError("A message part requires exactly one of 'content' or 'content_url'.")
        return self

    @property
    def reference(self) -> Union[InlineReference, RemoteReference]:
        """The part's content as a content reference."""
        if self.content_url is not None:
            return RemoteReference(url=self.content_url)
        return InlineReference(content=self.content)


class Message(BaseModel):
    """
    Represents a single message produced during a run.

    Attributes:
        role: The role of the entity that produced the message.
        parts: Ordered message parts.
        created_at: When the message was created (UTC).
        metadata: Additional, unstructured information.
    """
    model_config = ConfigDict(use_enum_values=True)

    role: Role = Field(description="The role of the message sender.")
    parts: List[MessagePart] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('created_at', mode='before')
    @classmethod
    def ensure_utc_timestamp(cls, v: Any) -> datetime:
        return _ensure_utc(v)

    @classmethod
    def from_text(cls, role: Union[Role, str], text: str, **kwargs: Any) -> "Message":
        """Builds a single-part plain text message."""
        return cls(role=role, parts=[MessagePart(content=text)], **kwargs)

    @property
    def text(self) -> str:
        """Concatenated inline text of all text/* parts."""
        return "".join(p.content for p in self.parts
                       if p.content is not None and p.content_type.startswith("text/"))


# --- Resolution results ---

class ResolutionFailureKind(str, Enum):
    """Why a single reference could not be resolved."""
    UNREACHABLE = "unreachable"
    NOT_FOUND = "not_found"
    MALFORMED_CONTENT = "malformed_content"
    TIMEOUT = "timeout"
    UNAUTHORIZED = "unauthorized"


class ResolutionFailure(BaseModel):
    """Failure marker: the original reference plus the reason it failed."""
    model_config = ConfigDict(frozen=True)

    reference: ContentReference
    kind: ResolutionFailureKind
    reason: str = ""

    @classmethod
    def from_error(cls, reference: Any, error: Exception) -> "ResolutionFailure":
        kind = getattr(error, "kind", ResolutionFailureKind.UNREACHABLE.value)
        reason = getattr(error, "reason", None) or str(error)
        return cls(reference=reference, kind=ResolutionFailureKind(kind), reason=reason)


class ResolvedMessage(BaseModel):
    """
    Materialized result of resolving one history entry: either a message or
    a failure marker, never both.
    """
    index: int = Field(ge=0, description="Position of the entry in the descriptor history.")
    reference: ContentReference
    message: Optional[Message] = None
    failure: Optional[ResolutionFailure] = None

    @model_validator(mode='after')
    def exactly_one_outcome(self) -> "ResolvedMessage":
        if (self.message is None) == (self.failure is None):
            raise ValueError("ResolvedMessage requires exactly one of 'message' or 'failure'.")
        return self

    @property
    def ok(self) -> bool:
        return self.message is not None

    @classmethod
    def resolved(cls, index: int, reference: Any, message: Message) -> "ResolvedMessage":
        return cls(index=index, reference=reference, message=message)

    @classmethod
    def failed(cls, index: int, reference: Any, error: Exception) -> "ResolvedMessage":
        return cls(index=index, reference=reference,
                   failure=ResolutionFailure.from_error(reference, error))


@dataclass
class CacheEntry:
    """A previously fetched payload held by the resolution cache."""
    reference: Any
    content: bytes
    content_type: str = "application/json"
    fetched_at: float = field(default_factory=time.time)

    @property
    def size(self) -> int:
        return len(self.content)


# --- Local resources ---

class StoredResource(BaseModel):
    """
    A resource owned by the current server's local resource store.

    Attributes:
        resource_id: Opaque identifier, independent of the storage backend.
        content: Raw bytes of the resource.
        content_type: MIME type served with the content.
        created_at: When the resource was stored (UTC).
    """
    resource_id: str
    content: bytes
    content_type: str = "application/json"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator('created_at', mode='before')
    @classmethod
    def ensure_utc_timestamp(cls, v: Any) -> datetime:
        return _ensure_utc(v)


class DivergenceReport(BaseModel):
    """Comparison of two descriptors derived from a common ancestor."""
    session_id: str
    common_prefix_length: int
    left_length: int
    right_length: int

    @property
    def left_is_ancestor(self) -> bool:
        return self.common_prefix_length == self.left_length

    @property
    def right_is_ancestor(self) -> bool:
        return self.common_prefix_length == self.right_length

    @property
    def diverged(self) -> bool:
        """True when neither history is a prefix of the other."""
        return not (self.left_is_ancestor or self.right_is_ancestor)
