"""Models used by the multipart upload client.

Wire payloads returned by the service are pydantic models keyed by the
service's PascalCase field names. Containers that carry live objects
(sessions, byte sources, locks) are plain dataclasses.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, BinaryIO, Union

import requests
from pydantic import BaseModel, ConfigDict, Field

from multipart_upload.const import HEADER_REQUEST_ID
from multipart_upload.exceptions import ClientInputError, ServerError

if TYPE_CHECKING:
    from multipart_upload.upload_management.bandwidth_limiter import (
        BandwidthLimiter,
    )
    from multipart_upload.upload_management.progress_listener import (
        DataTransferStatus,
    )

ByteSource = Union[bytes, bytearray, memoryview, BinaryIO]


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RequestInfo(BaseModel):
    """Diagnostics of the response that produced an output."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    request_id: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_response(cls, response: requests.Response) -> RequestInfo:
        """Build a RequestInfo from a ``requests`` response."""
        return cls(
            status_code=response.status_code,
            request_id=response.headers.get(HEADER_REQUEST_ID),
            headers=dict(response.headers),
        )


class SessionState(str, Enum):
    """Lifecycle states for an upload session.

    State transitions:
    - ACTIVE -> COMPLETED
    - ACTIVE -> ABORTED
    """

    ACTIVE = "active"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class UploadSession:
    """A logical multipart upload identified by an opaque upload id."""

    bucket: str
    key: str
    upload_id: str
    state: SessionState = SessionState.ACTIVE
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def ensure_active(self) -> None:
        """Raise if the session has already been completed or aborted."""
        if not self.upload_id:
            raise ClientInputError("upload_id is required")
        with self._lock:
            if self.state is not SessionState.ACTIVE:
                raise ClientInputError(
                    f"Upload {self.upload_id} is already {self.state.value}"
                )

    def mark_completed(self) -> None:
        with self._lock:
            if self.state is not SessionState.ACTIVE:
                raise ClientInputError(
                    f"Upload {self.upload_id} is already {self.state.value}"
                )
            self.state = SessionState.COMPLETED

    def mark_aborted(self) -> None:
        with self._lock:
            if self.state is SessionState.COMPLETED:
                raise ClientInputError(f"Upload {self.upload_id} is already completed")
            self.state = SessionState.ABORTED


@dataclass
class PartRequest:
    """One unit of work for the part uploader."""

    session: UploadSession
    part_number: int
    content: ByteSource | None
    content_length: int | None = None
    progress_listener: Callable[[DataTransferStatus], None] | None = None
    rate_limiter: BandwidthLimiter | None = None
    cancel_event: threading.Event | None = None


class CompletedPart(_WireModel):
    """A (part number, entity tag) pair of the completion manifest."""

    part_number: int = Field(alias="PartNumber")
    etag: str = Field(alias="ETag")


class PartResult(BaseModel):
    """Result of a successful part upload."""

    model_config = ConfigDict(frozen=True)

    part_number: int
    etag: str
    checksum: int | None = None
    request_info: RequestInfo | None = None

    def to_completed_part(self) -> CompletedPart:
        """Return the descriptor used by the completion manifest."""
        return CompletedPart(part_number=self.part_number, etag=self.etag)


class CompleteMultipartUploadOutput(_WireModel):
    """Result of assembling the parts into one object."""

    request_info: RequestInfo
    bucket: str | None = Field(default=None, alias="Bucket")
    key: str | None = Field(default=None, alias="Key")
    etag: str | None = Field(default=None, alias="ETag")
    location: str | None = Field(default=None, alias="Location")
    version_id: str | None = None
    hash_crc64ecma: int | None = None


class AbortMultipartUploadOutput(BaseModel):
    """Result of cancelling an upload session."""

    request_info: RequestInfo | None = None
    already_terminated: bool = False


class UploadedPartInfo(_WireModel):
    """A part already stored by the service."""

    part_number: int = Field(alias="PartNumber")
    etag: str = Field(alias="ETag")
    size: int | None = Field(default=None, alias="Size")
    last_modified: datetime | None = Field(default=None, alias="LastModified")

    def to_completed_part(self) -> CompletedPart:
        return CompletedPart(part_number=self.part_number, etag=self.etag)


class ListPartsOutput(_WireModel):
    """One page of stored parts for an upload session."""

    request_info: RequestInfo | None = None
    bucket: str | None = Field(default=None, alias="Bucket")
    key: str | None = Field(default=None, alias="Key")
    upload_id: str | None = Field(default=None, alias="UploadId")
    part_number_marker: int = Field(default=0, alias="PartNumberMarker")
    next_part_number_marker: int = Field(default=0, alias="NextPartNumberMarker")
    max_parts: int | None = Field(default=None, alias="MaxParts")
    is_truncated: bool = Field(default=False, alias="IsTruncated")
    storage_class: str | None = Field(default=None, alias="StorageClass")
    parts: list[UploadedPartInfo] = Field(default_factory=list, alias="Parts")


class UploadInfo(_WireModel):
    """An in-flight upload session found by listing a bucket."""

    key: str = Field(alias="Key")
    upload_id: str = Field(alias="UploadId")
    storage_class: str | None = Field(default=None, alias="StorageClass")
    initiated: datetime | None = Field(default=None, alias="Initiated")

    def to_session(self, bucket: str) -> UploadSession:
        """Return a session handle usable for resumption or abort."""
        return UploadSession(bucket=bucket, key=self.key, upload_id=self.upload_id)


class CommonPrefix(_WireModel):
    prefix: str = Field(alias="Prefix")


class ListMultipartUploadsOutput(_WireModel):
    """One page of in-flight upload sessions for a bucket."""

    request_info: RequestInfo | None = None
    bucket: str | None = Field(default=None, alias="Bucket")
    prefix: str | None = Field(default=None, alias="Prefix")
    delimiter: str | None = Field(default=None, alias="Delimiter")
    key_marker: str | None = Field(default=None, alias="KeyMarker")
    upload_id_marker: str | None = Field(default=None, alias="UploadIdMarker")
    next_key_marker: str | None = Field(default=None, alias="NextKeyMarker")
    next_upload_id_marker: str | None = Field(
        default=None, alias="NextUploadIdMarker"
    )
    max_uploads: int | None = Field(default=None, alias="MaxUploads")
    is_truncated: bool = Field(default=False, alias="IsTruncated")
    uploads: list[UploadInfo] = Field(default_factory=list, alias="Uploads")
    common_prefixes: list[CommonPrefix] = Field(
        default_factory=list, alias="CommonPrefixes"
    )


def parse_body(response: requests.Response) -> dict[str, Any]:
    """Decode a JSON object body, treating an empty body as ``{}``."""
    if not response.content:
        return {}
    request_id = response.headers.get(HEADER_REQUEST_ID)
    try:
        payload = response.json()
    except ValueError as exc:
        raise ServerError(
            response.status_code, "malformed response body", request_id=request_id
        ) from exc
    if not isinstance(payload, dict):
        raise ServerError(
            response.status_code,
            f"unexpected response payload: {payload!r}",
            request_id=request_id,
        )
    return payload
