"""Multipart upload client.

``MultipartClient`` wires a transport and a configuration into the part
uploader, completion assembler, listing and session lifecycle helpers.
A client may be shared by many threads uploading parts concurrently.

Example:
    >>> client = MultipartClient(UploadConfig(endpoint="https://storage.example"))
    >>> session = client.create_multipart_upload("bucket", "big.bin")
    >>> part = client.upload_part(session, 1, b"..." * 1024)
    >>> client.complete_multipart_upload(session, [part])
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping
from pathlib import Path

import requests

from multipart_upload.config_manager.upload_config import UploadConfig
from multipart_upload.exceptions import ClientInputError
from multipart_upload.models import (
    AbortMultipartUploadOutput,
    ByteSource,
    CompleteMultipartUploadOutput,
    ListMultipartUploadsOutput,
    ListPartsOutput,
    PartRequest,
    PartResult,
    UploadedPartInfo,
    UploadInfo,
    UploadSession,
)
from multipart_upload.transport.transport import RequestsTransport, Transport
from multipart_upload.upload_management.bandwidth_limiter import BandwidthLimiter
from multipart_upload.upload_management.completion_assembler import (
    CompletionAssembler,
    PartDescriptor,
)
from multipart_upload.upload_management.content_wrapper import resolve_length
from multipart_upload.upload_management.listing import MultipartLister
from multipart_upload.upload_management.part_uploader import PartUploader
from multipart_upload.upload_management.progress_listener import ProgressListener
from multipart_upload.upload_management.session_lifecycle import SessionLifecycle

logger = logging.getLogger(__name__)


class MultipartClient:
    """Client for the multipart upload protocol."""

    def __init__(
        self,
        config: UploadConfig | None = None,
        transport: Transport | None = None,
        headers_provider: Callable[[], Mapping[str, str]] | None = None,
        http_session: requests.Session | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Client configuration; defaults are used when omitted.
            transport: Custom transport; a ``RequestsTransport`` for
                ``config.endpoint`` is created when omitted.
            headers_provider: Returns authentication headers per request.
                Ignored when ``transport`` is given.
            http_session: ``requests.Session`` for the default transport.
        """
        self.config = config or UploadConfig()
        self._owns_transport = transport is None
        self.transport: Transport = transport or RequestsTransport(
            self.config.endpoint,
            session=http_session,
            timeout=self.config.request_timeout,
            default_headers=self.config.default_headers,
            headers_provider=headers_provider,
        )
        self.rate_limiter = (
            BandwidthLimiter(self.config.bandwidth_limit)
            if self.config.bandwidth_limit
            else None
        )
        self._part_uploader = PartUploader(
            self.transport, self.config, rate_limiter=self.rate_limiter
        )
        self._assembler = CompletionAssembler(self.transport, self.config)
        self._lister = MultipartLister(self.transport, self.config)
        self._lifecycle = SessionLifecycle(self.transport, self.config)

    def create_multipart_upload(
        self,
        bucket: str,
        key: str,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> UploadSession:
        """Start a multipart upload session for ``bucket/key``."""
        return self._lifecycle.create(bucket, key, content_type, metadata)

    def upload_part(
        self,
        session: UploadSession,
        part_number: int,
        content: ByteSource,
        content_length: int | None = None,
        progress_listener: ProgressListener | None = None,
        rate_limiter: BandwidthLimiter | None = None,
        cancel_event: threading.Event | None = None,
    ) -> PartResult:
        """Upload one part of ``session``.

        Args:
            session: Active upload session.
            part_number: Positive part number assigned by the caller.
            content: Bytes or a binary stream. Seekable streams are rewound
                before a retry; the stream is never closed.
            content_length: Bytes to send; resolved from ``content`` if omitted.
            progress_listener: Receives progress events for this part.
            rate_limiter: Overrides the client's shared limiter.
            cancel_event: Set it to abort the upload promptly.

        Returns:
            The part's entity tag and server CRC-64.
        """
        return self._part_uploader.upload(
            PartRequest(
                session=session,
                part_number=part_number,
                content=content,
                content_length=content_length,
                progress_listener=progress_listener,
                rate_limiter=rate_limiter,
                cancel_event=cancel_event,
            )
        )

    def upload_part_from_file(
        self,
        session: UploadSession,
        part_number: int,
        file_path: str | Path,
        offset: int = 0,
        part_size: int | None = None,
        progress_listener: ProgressListener | None = None,
        rate_limiter: BandwidthLimiter | None = None,
        cancel_event: threading.Event | None = None,
    ) -> PartResult:
        """Upload ``part_size`` bytes of a local file starting at ``offset``.

        The rest of the file is sent when ``part_size`` is omitted.

        Raises:
            FileNotFoundError: If the local file does not exist.
        """
        if offset < 0:
            raise ClientInputError(f"offset must not be negative, got {offset}")
        with open(file_path, "rb") as part_file:
            part_file.seek(offset)
            remaining = resolve_length(part_file)
            if part_size is None:
                part_size = remaining
            elif remaining is not None and part_size > remaining:
                raise ClientInputError(
                    f"part_size {part_size} exceeds the {remaining} bytes "
                    f"left in {file_path} after offset {offset}"
                )
            return self.upload_part(
                session,
                part_number,
                part_file,
                content_length=part_size,
                progress_listener=progress_listener,
                rate_limiter=rate_limiter,
                cancel_event=cancel_event,
            )

    def complete_multipart_upload(
        self,
        session: UploadSession,
        parts: Iterable[PartDescriptor],
        cancel_event: threading.Event | None = None,
    ) -> CompleteMultipartUploadOutput:
        """Assemble the uploaded ``parts`` into the final object."""
        return self._assembler.complete(session, parts, cancel_event=cancel_event)

    def abort_multipart_upload(
        self, session: UploadSession
    ) -> AbortMultipartUploadOutput:
        """Cancel ``session``; a session the server no longer knows is a no-op."""
        return self._lifecycle.abort(session)

    def list_parts(
        self,
        session: UploadSession,
        max_parts: int | None = None,
        part_number_marker: int | None = None,
    ) -> ListPartsOutput:
        return self._lister.list_parts(session, max_parts, part_number_marker)

    def iter_parts(
        self, session: UploadSession, max_parts: int | None = None
    ) -> Iterator[UploadedPartInfo]:
        return self._lister.iter_parts(session, max_parts)

    def list_multipart_uploads(
        self,
        bucket: str,
        prefix: str | None = None,
        delimiter: str | None = None,
        key_marker: str | None = None,
        upload_id_marker: str | None = None,
        max_uploads: int | None = None,
    ) -> ListMultipartUploadsOutput:
        return self._lister.list_multipart_uploads(
            bucket, prefix, delimiter, key_marker, upload_id_marker, max_uploads
        )

    def iter_multipart_uploads(
        self,
        bucket: str,
        prefix: str | None = None,
        delimiter: str | None = None,
        max_uploads: int | None = None,
    ) -> Iterator[UploadInfo]:
        return self._lister.iter_multipart_uploads(
            bucket, prefix=prefix, delimiter=delimiter, max_uploads=max_uploads
        )

    def close(self) -> None:
        """Close the default transport's HTTP session."""
        if self._owns_transport and isinstance(self.transport, RequestsTransport):
            self.transport.close()

    def __enter__(self) -> MultipartClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
