"""Shopify admin data models."""

from __future__ import annotations

import enum
import mimetypes
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

DEFAULT_MIME_TYPE = "image/jpeg"


@dataclass(slots=True)
class GraphQLResponse:
    data: dict[str, Any] | None
    errors: list[dict[str, Any]] | None = None

    @property
    def error_messages(self) -> list[str]:
        return [str(err.get("message", err)) for err in self.errors or []]

    def get(self, *path: str) -> Any:
        node: Any = self.data
        for key in path:
            if not isinstance(node, Mapping):
                return None
            node = node.get(key)
        return node


@dataclass(slots=True, frozen=True)
class UploadParameter:
    name: str
    value: str


@dataclass(slots=True)
class UploadTarget:
    upload_url: str
    resource_url: str
    parameters: list[UploadParameter] = field(default_factory=list)


@dataclass(slots=True)
class FilePart:
    name: str
    filename: str
    mime_type: str
    data: bytes


@dataclass(slots=True)
class UploadResponse:
    status_code: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass(slots=True)
class AssetRef:
    id: str
    url: str | None
    alt: str = ""


@dataclass(slots=True)
class MediaFile:
    id: str
    url: str
    alt: str
    created_at: str | None = None


@runtime_checkable
class ByteSource(Protocol):
    def read(self) -> bytes: ...


class GraphQLExecutor(Protocol):
    async def execute(self, query: str, variables: Mapping[str, Any] | None = None) -> GraphQLResponse: ...


class ObjectUploader(Protocol):
    async def post_multipart(
        self, url: str, fields: Sequence[UploadParameter], file: FilePart
    ) -> UploadResponse: ...


class BytesSource:
    """Adapts an in-memory payload to :class:`ByteSource`."""

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)

    def read(self) -> bytes:
        return self._data


@dataclass(slots=True)
class ImageUpload:
    filename: str
    mime_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_source(
        cls, source: ByteSource | bytes, filename: str | None = None, mime_type: str | None = None
    ) -> "ImageUpload":
        if isinstance(source, (bytes, bytearray, memoryview)):
            source = BytesSource(bytes(source))
        if not isinstance(source, ByteSource):
            raise TypeError(f"Unsupported upload source: {type(source).__name__}")
        data = source.read()
        if isinstance(data, str):
            raise TypeError("Upload source returned text, expected bytes")
        name = (filename or "").strip() or f"upload-{int(time.time() * 1000)}.jpg"
        mime = (mime_type or "").strip() or mimetypes.guess_type(name)[0] or DEFAULT_MIME_TYPE
        return cls(filename=name, mime_type=mime, data=bytes(data))


class UploadPhase(str, enum.Enum):
    IDLE = "Idle"
    REQUESTING_TARGET = "RequestingTarget"
    UPLOADING_BYTES = "UploadingBytes"
    REGISTERING_ASSET = "RegisteringAsset"
    AWAITING_PROCESSING = "AwaitingProcessing"
    DONE = "Done"
    FAILED = "Failed"


@dataclass(slots=True)
class UploadFailure:
    phase: UploadPhase
    kind: str
    message: str
    status_code: int | None = None
    body_excerpt: str | None = None


@dataclass(slots=True)
class UploadResult:
    phase: UploadPhase
    asset: AssetRef | None = None
    display_url: str | None = None
    failure: UploadFailure | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.phase is UploadPhase.DONE and self.failure is None

    def to_payload(self, created_at: str | None = None) -> dict[str, Any]:
        if not self.ok or self.asset is None:
            failure = self.failure
            payload: dict[str, Any] = {
                "success": False,
                "error": failure.message if failure else "File upload failed",
            }
            if failure:
                payload["phase"] = failure.phase.value
                payload["kind"] = failure.kind
                if failure.body_excerpt:
                    payload["details"] = failure.body_excerpt
            return payload
        return {
            "success": True,
            "file": {
                "id": self.asset.id,
                "url": self.asset.url or self.display_url,
                "alt": self.asset.alt,
                "createdAt": created_at,
            },
            "warnings": list(self.warnings),
        }
