from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Generic, List, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.core.errors import BackendUnavailable

T = TypeVar("T")


class OperationKind(str, Enum):
    METADATA = "metadata"
    VIDEO_DOWNLOAD = "video"
    AUDIO_DOWNLOAD = "audio"


class MediaRequest(BaseModel):
    """One inbound call, immutable for its lifetime (separated from HTTP concerns)"""
    model_config = ConfigDict(frozen=True)

    url: Optional[str] = None
    kind: OperationKind = OperationKind.METADATA
    quality: Optional[Union[int, str]] = None
    filename_hint: Optional[str] = None
    request_id: str = "unknown"

    @property
    def audio_only(self) -> bool:
        return self.kind == OperationKind.AUDIO_DOWNLOAD

    def as_kind(self, kind: OperationKind) -> "MediaRequest":
        return self.model_copy(update={"kind": kind})


class FormatDescriptor(BaseModel):
    """One quality/container variant, normalized across backends"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    quality_label: Optional[str] = None
    container: Optional[str] = None
    has_audio: bool = False
    has_video: bool = False
    format_id: Optional[Union[str, int]] = None


class MediaMetadata(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: Optional[str] = None
    author: Optional[str] = None
    duration_seconds: Optional[int] = None
    view_count: Optional[int] = None
    thumbnail_url: Optional[str] = None
    description: Optional[str] = None
    upload_date: Optional[str] = None
    formats: List[FormatDescriptor] = Field(default_factory=list)

    def merge(self, other: "MediaMetadata") -> "MediaMetadata":
        """Fill fields still missing here from ``other``.

        Scalar fields are only filled when empty. Format lists are never
        concatenated: a non-empty list from ``other`` replaces an empty one.
        """
        update = {}
        for name in type(self).model_fields:
            if name == "formats":
                continue
            if getattr(self, name) is None and getattr(other, name) is not None:
                update[name] = getattr(other, name)
        if not self.formats and other.formats:
            update["formats"] = list(other.formats)
        return self.model_copy(update=update)


@dataclass
class StreamHandle:
    """An open byte channel plus what is needed to describe it in headers.

    Exactly one owner; ``aclose`` is idempotent so the response generator and
    the orchestrator may both call it.
    """
    chunks: AsyncIterator[bytes]
    media_type: str
    extension: str
    source: str
    title: Optional[str] = None
    content_length: Optional[int] = None
    closer: Optional[Callable[[], Awaitable[None]]] = None
    closed: bool = False

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self.closer is not None:
            await self.closer()


@dataclass
class EphemeralFile:
    """A file on local disk with a managed lifetime"""
    path: str
    transient: bool
    media_type: str = "application/octet-stream"
    title: Optional[str] = None
    source: str = ""


@dataclass
class BackendResult(Generic[T]):
    """Outcome of one backend attempt: either a value or the reason it failed"""
    value: Optional[T] = None
    error: Optional[BackendUnavailable] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None

    @classmethod
    def success(cls, value: T) -> "BackendResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, backend: str, message: str, cause: Optional[BaseException] = None) -> "BackendResult[Any]":
        return cls(error=BackendUnavailable(backend, message, cause=cause))


StreamOrFile = Union[StreamHandle, EphemeralFile]


@dataclass
class CommittedStream:
    """A stream whose response headers are fixed; no other backend may follow"""
    handle: StreamHandle
    headers: dict
    filename: str
    attempted: List[str] = field(default_factory=list)
