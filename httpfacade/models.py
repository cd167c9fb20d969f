"""Value types shared by the request builder and the response interpreter."""

from collections.abc import Awaitable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Protocol, TypeVar, Union

S = TypeVar("S")
E = TypeVar("E")

DEFAULT_UPLOAD_CONTENT_TYPE = "application/octet-stream"
JSON_CONTENT_TYPE = "application/json; charset=utf-8"


@dataclass(frozen=True, slots=True)
class Success(Generic[S]):
    """2xx response decoded into the caller's success type."""

    payload: S
    status_code: int

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Failure(Generic[E]):
    """Non-2xx response whose body decoded into the caller's error type."""

    payload: E
    status_code: int

    @property
    def ok(self) -> bool:
        return False


Outcome = Union[Success[S], Failure[E]]


class UploadSource(Protocol):
    """
    Minimal file-like upload capability.

    ``read`` may be synchronous or a coroutine, so Starlette/FastAPI ``UploadFile``
    objects satisfy it as-is.
    """

    filename: str | None
    content_type: str | None

    def read(self) -> bytes | Awaitable[bytes]: ...


@dataclass(slots=True)
class UploadedFile:
    """In-memory upload source."""

    filename: str | None
    content: bytes
    content_type: str | None = None

    def read(self) -> bytes:
        return self.content


@dataclass(frozen=True, slots=True)
class FilePart:
    """A file already read into memory, ready to be placed in a multipart body."""

    filename: str
    content: bytes
    content_type: str = DEFAULT_UPLOAD_CONTENT_TYPE


@dataclass(frozen=True, slots=True)
class MultipartForm:
    """Caller-assembled multipart body, handed to httpx unmodified."""

    fields: Mapping[str, Any] = field(default_factory=dict)
    files: Sequence[tuple[str, Any]] = ()


class BodyKind(str, Enum):
    NONE = "none"
    JSON = "json"
    FILES = "files"
    MULTIPART = "multipart"
    FORM_URLENCODED = "form-urlencoded"


@dataclass(frozen=True, slots=True)
class RequestDescriptor:
    """Fully assembled representation of one outbound call prior to dispatch."""

    method: str
    url: str
    client_name: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body_kind: BodyKind = BodyKind.NONE
    body: Any = None
