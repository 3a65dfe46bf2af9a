"""Upload a single part of a multipart upload.

Each call owns its body wrapper, CRC-64 accumulator and retry loop, so
several parts of the same session can be uploaded from different threads.
"""

from __future__ import annotations

import logging

import requests

from multipart_upload.config_manager.upload_config import UploadConfig
from multipart_upload.const import (
    HEADER_CONTENT_LENGTH,
    HEADER_ETAG,
    HEADER_HASH_CRC64ECMA,
    QUERY_PART_NUMBER,
    QUERY_UPLOAD_ID,
    STATUS_OK,
)
from multipart_upload.exceptions import ChecksumMismatchError, ClientInputError
from multipart_upload.models import PartRequest, PartResult, RequestInfo
from multipart_upload.transport.http_errors import raise_for_unexpected_status
from multipart_upload.transport.transport import Transport
from multipart_upload.upload_management.bandwidth_limiter import BandwidthLimiter
from multipart_upload.upload_management.checksum_verifier import (
    parse_crc64_header,
    verify_crc64,
)
from multipart_upload.upload_management.content_wrapper import (
    ContentReader,
    resolve_length,
    wrap_content,
)
from multipart_upload.upload_management.crc64 import CRC64
from multipart_upload.upload_management.progress_listener import DataTransferType
from multipart_upload.upload_management.retry_coordinator import (
    RetryCoordinator,
    select_retry_policy,
)

logger = logging.getLogger(__name__)


def validate_part_request(request: PartRequest) -> None:
    """Reject malformed part requests before any network call.

    Raises:
        ClientInputError: If the session token, part number or body is
            missing or invalid.
    """
    if request.session is None or not request.session.upload_id:
        raise ClientInputError("upload_id is required")
    part_number = request.part_number
    if (
        not isinstance(part_number, int)
        or isinstance(part_number, bool)
        or part_number <= 0
    ):
        raise ClientInputError(
            f"part_number must be a positive integer, got {part_number!r}"
        )
    if request.content is None:
        raise ClientInputError("content is required")
    if request.content_length is not None and request.content_length <= 0:
        raise ClientInputError(
            f"content_length must be positive, got {request.content_length}"
        )


class PartUploader:
    """Send one part with retries and verify its CRC-64."""

    def __init__(
        self,
        transport: Transport,
        config: UploadConfig,
        rate_limiter: BandwidthLimiter | None = None,
    ) -> None:
        """Initialize the uploader.

        Args:
            transport: Sends the HTTP requests.
            config: Retry budget and CRC settings.
            rate_limiter: Limiter used when a request does not bring its own.
        """
        self._transport = transport
        self._config = config
        self._rate_limiter = rate_limiter

    def upload(self, request: PartRequest) -> PartResult:
        """Upload the part described by ``request``.

        Returns:
            The stored part's entity tag, number and server CRC-64.

        Raises:
            ClientInputError: If the request is invalid or the session ended.
            ChecksumMismatchError: If the server CRC-64 differs from ours.
            UploadCancelledError: If ``request.cancel_event`` was set.
            RetryExhaustedError: If every allowed attempt failed.
            ServerError: If the service rejected the part.
            TransportError: If a non-retryable transport failure occurred.
        """
        validate_part_request(request)
        session = request.session
        session.ensure_active()

        content_length = request.content_length
        if content_length is None:
            content_length = resolve_length(request.content)
            if content_length is not None and content_length <= 0:
                raise ClientInputError(
                    f"Part {request.part_number} has no content to upload"
                )

        checksum = CRC64() if self._config.enable_crc else None
        content = wrap_content(
            request.content,
            content_length=content_length,
            progress_listener=request.progress_listener,
            rate_limiter=request.rate_limiter or self._rate_limiter,
            checksum=checksum,
            cancel_event=request.cancel_event,
            part_number=request.part_number,
        )
        policy = select_retry_policy(content)
        coordinator = RetryCoordinator.from_config(
            self._config,
            policy,
            cancel_event=request.cancel_event,
            operation_name=f"UploadPart {request.part_number} of {session.upload_id}",
        )

        headers: dict[str, str] = {}
        if content_length is not None:
            headers[HEADER_CONTENT_LENGTH] = str(content_length)

        logger.debug(
            "Uploading part %d of %s/%s: length=%s classifier=%s",
            request.part_number,
            session.bucket,
            session.key,
            content_length,
            policy.classifier.name,
        )
        content.emit(DataTransferType.STARTED)
        try:
            response = coordinator.run(
                lambda: self._send_part(request, content, headers)
            )
        except Exception:
            content.emit(DataTransferType.FAILED)
            raise

        try:
            verify_crc64(response, checksum)
        except ChecksumMismatchError:
            content.emit(DataTransferType.FAILED)
            raise
        finally:
            response.close()

        content.emit(DataTransferType.SUCCEED)
        result = PartResult(
            part_number=request.part_number,
            etag=response.headers.get(HEADER_ETAG, ""),
            checksum=parse_crc64_header(response.headers.get(HEADER_HASH_CRC64ECMA)),
            request_info=RequestInfo.from_response(response),
        )
        logger.debug(
            "Uploaded part %d of %s: etag=%s",
            result.part_number,
            session.upload_id,
            result.etag,
        )
        return result

    def _send_part(
        self,
        request: PartRequest,
        content: ContentReader,
        headers: dict[str, str],
    ) -> requests.Response:
        session = request.session
        response = self._transport.send(
            "PUT",
            session.bucket,
            session.key,
            params={
                QUERY_UPLOAD_ID: session.upload_id,
                QUERY_PART_NUMBER: str(request.part_number),
            },
            headers=headers,
            data=content,
        )
        try:
            raise_for_unexpected_status(response, {STATUS_OK})
        except Exception:
            response.close()
            raise
        return response
