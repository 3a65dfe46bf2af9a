"""Enumerate stored parts and in-flight upload sessions.

Listing is read-only and only retried on server faults. The ``iter_*``
helpers follow the service's pagination markers.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

from multipart_upload.config_manager.upload_config import UploadConfig
from multipart_upload.const import (
    QUERY_DELIMITER,
    QUERY_KEY_MARKER,
    QUERY_MAX_PARTS,
    QUERY_MAX_UPLOADS,
    QUERY_PART_NUMBER_MARKER,
    QUERY_PREFIX,
    QUERY_UPLOAD_ID,
    QUERY_UPLOAD_ID_MARKER,
    QUERY_UPLOADS,
    STATUS_OK,
)
from multipart_upload.exceptions import ClientInputError
from multipart_upload.models import (
    ListMultipartUploadsOutput,
    ListPartsOutput,
    RequestInfo,
    UploadedPartInfo,
    UploadInfo,
    UploadSession,
    parse_body,
)
from multipart_upload.transport.http_errors import raise_for_unexpected_status
from multipart_upload.transport.transport import Transport
from multipart_upload.upload_management.retry_coordinator import (
    SERVER_FAULT_POLICY,
    RetryCoordinator,
)

logger = logging.getLogger(__name__)


class MultipartLister:
    """List parts of a session or sessions of a bucket."""

    def __init__(self, transport: Transport, config: UploadConfig) -> None:
        self._transport = transport
        self._config = config

    def _get_json(
        self, bucket: str, key: str, params: dict[str, Any], operation_name: str
    ) -> tuple[dict[str, Any], RequestInfo]:
        coordinator = RetryCoordinator.from_config(
            self._config, SERVER_FAULT_POLICY, operation_name=operation_name
        )

        def attempt() -> tuple[dict[str, Any], RequestInfo]:
            response = self._transport.send("GET", bucket, key, params=params)
            try:
                raise_for_unexpected_status(response, {STATUS_OK})
                return parse_body(response), RequestInfo.from_response(response)
            finally:
                response.close()

        return coordinator.run(attempt)

    def list_parts(
        self,
        session: UploadSession,
        max_parts: int | None = None,
        part_number_marker: int | None = None,
    ) -> ListPartsOutput:
        """Return one page of the parts stored for ``session``.

        Args:
            session: The upload session to inspect.
            max_parts: Page size; the service default applies when omitted.
            part_number_marker: List parts after this part number.
        """
        if not session.upload_id:
            raise ClientInputError("upload_id is required")
        params: dict[str, Any] = {QUERY_UPLOAD_ID: session.upload_id}
        if max_parts is not None:
            params[QUERY_MAX_PARTS] = str(max_parts)
        if part_number_marker:
            params[QUERY_PART_NUMBER_MARKER] = str(part_number_marker)

        body, request_info = self._get_json(
            session.bucket,
            session.key,
            params,
            f"ListParts {session.upload_id}",
        )
        return ListPartsOutput.model_validate({**body, "request_info": request_info})

    def iter_parts(
        self,
        session: UploadSession,
        max_parts: int | None = None,
        part_number_marker: int | None = None,
    ) -> Iterator[UploadedPartInfo]:
        """Yield every stored part of ``session``, page by page."""
        marker = part_number_marker or 0
        while True:
            page = self.list_parts(session, max_parts, marker)
            yield from page.parts
            if not page.is_truncated:
                return
            if page.next_part_number_marker <= marker:
                logger.warning(
                    "ListParts for %s returned a truncated page without "
                    "advancing the marker (%d); stopping",
                    session.upload_id,
                    marker,
                )
                return
            marker = page.next_part_number_marker

    def list_multipart_uploads(
        self,
        bucket: str,
        prefix: str | None = None,
        delimiter: str | None = None,
        key_marker: str | None = None,
        upload_id_marker: str | None = None,
        max_uploads: int | None = None,
    ) -> ListMultipartUploadsOutput:
        """Return one page of the in-flight upload sessions in ``bucket``."""
        if not bucket:
            raise ClientInputError("bucket is required")
        params: dict[str, Any] = {QUERY_UPLOADS: ""}
        optional = {
            QUERY_PREFIX: prefix,
            QUERY_DELIMITER: delimiter,
            QUERY_KEY_MARKER: key_marker,
            QUERY_UPLOAD_ID_MARKER: upload_id_marker,
            QUERY_MAX_UPLOADS: str(max_uploads) if max_uploads is not None else None,
        }
        params.update({name: value for name, value in optional.items() if value})

        body, request_info = self._get_json(
            bucket, "", params, f"ListMultipartUploads {bucket}"
        )
        return ListMultipartUploadsOutput.model_validate(
            {**body, "request_info": request_info}
        )

    def iter_multipart_uploads(
        self,
        bucket: str,
        prefix: str | None = None,
        delimiter: str | None = None,
        max_uploads: int | None = None,
    ) -> Iterator[UploadInfo]:
        """Yield every in-flight upload session under ``prefix``."""
        key_marker: str | None = None
        upload_id_marker: str | None = None
        while True:
            page = self.list_multipart_uploads(
                bucket,
                prefix=prefix,
                delimiter=delimiter,
                key_marker=key_marker,
                upload_id_marker=upload_id_marker,
                max_uploads=max_uploads,
            )
            yield from page.uploads
            if not page.is_truncated:
                return
            next_markers = (page.next_key_marker, page.next_upload_id_marker)
            if not page.next_key_marker or next_markers == (
                key_marker,
                upload_id_marker,
            ):
                logger.warning(
                    "ListMultipartUploads for %s returned a truncated page "
                    "without new markers; stopping",
                    bucket,
                )
                return
            key_marker, upload_id_marker = next_markers
