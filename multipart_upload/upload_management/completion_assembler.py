"""Assemble uploaded parts into the final object.

Parts may have been uploaded concurrently and in any order; the manifest
sent to the service is always sorted ascending by part number.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Any, Union

import requests

from multipart_upload.config_manager.upload_config import UploadConfig
from multipart_upload.const import (
    HEADER_HASH_CRC64ECMA,
    HEADER_VERSION_ID,
    QUERY_UPLOAD_ID,
    SERVER_FAULT_STATUS_CODES,
    STATUS_OK,
)
from multipart_upload.exceptions import (
    ClientInputError,
    ManifestRejectedError,
    ServerError,
)
from multipart_upload.models import (
    CompletedPart,
    CompleteMultipartUploadOutput,
    PartResult,
    RequestInfo,
    UploadedPartInfo,
    UploadSession,
    parse_body,
)
from multipart_upload.transport.http_errors import server_error_from_response
from multipart_upload.transport.transport import Transport
from multipart_upload.upload_management.checksum_verifier import parse_crc64_header
from multipart_upload.upload_management.retry_coordinator import (
    SERVER_FAULT_POLICY,
    RetryCoordinator,
)

logger = logging.getLogger(__name__)

PartDescriptor = Union[CompletedPart, PartResult, UploadedPartInfo, tuple[int, str]]


def to_completed_part(part: PartDescriptor) -> CompletedPart:
    """Normalise any supported part descriptor to a CompletedPart."""
    if isinstance(part, CompletedPart):
        return part
    if isinstance(part, (PartResult, UploadedPartInfo)):
        return part.to_completed_part()
    if isinstance(part, tuple) and len(part) == 2:
        part_number, etag = part
        return CompletedPart(part_number=part_number, etag=etag)
    raise ClientInputError(f"Unsupported part descriptor: {part!r}")


def build_completion_manifest(parts: Iterable[PartDescriptor]) -> list[CompletedPart]:
    """Return the parts sorted ascending by part number.

    Duplicates are kept; they are the caller's bookkeeping error and the
    service reports them.

    Raises:
        ClientInputError: If no parts are given or a part number is invalid.
    """
    manifest = sorted(
        (to_completed_part(part) for part in parts),
        key=lambda part: part.part_number,
    )
    if not manifest:
        raise ClientInputError("At least one part is required to complete an upload")
    for part in manifest:
        if part.part_number <= 0:
            raise ClientInputError(
                f"part_number must be a positive integer, got {part.part_number}"
            )
    return manifest


def manifest_payload(manifest: list[CompletedPart]) -> dict[str, Any]:
    """Serialise a manifest into the JSON body of the completion request."""
    return {"Parts": [part.model_dump(by_alias=True) for part in manifest]}


class CompletionAssembler:
    """Submit the completion manifest for an upload session."""

    def __init__(self, transport: Transport, config: UploadConfig) -> None:
        self._transport = transport
        self._config = config

    def complete(
        self,
        session: UploadSession,
        parts: Iterable[PartDescriptor],
        cancel_event: threading.Event | None = None,
    ) -> CompleteMultipartUploadOutput:
        """Complete ``session`` from the given part descriptors.

        Returns:
            The assembled object's details, including the service-computed
            aggregate CRC-64 and the version id when versioning is enabled.

        Raises:
            ClientInputError: If the manifest or session is invalid.
            ManifestRejectedError: If the service refuses the manifest.
            RetryExhaustedError: If every allowed attempt hit a server fault.
        """
        session.ensure_active()
        manifest = build_completion_manifest(parts)
        payload = manifest_payload(manifest)

        coordinator = RetryCoordinator.from_config(
            self._config,
            SERVER_FAULT_POLICY,
            cancel_event=cancel_event,
            operation_name=f"CompleteMultipartUpload {session.upload_id}",
        )
        logger.info(
            "Completing upload %s for %s/%s with %d parts",
            session.upload_id,
            session.bucket,
            session.key,
            len(manifest),
        )
        response = coordinator.run(lambda: self._send_manifest(session, payload))
        session.mark_completed()
        try:
            body = parse_body(response)
        finally:
            response.close()

        output = CompleteMultipartUploadOutput.model_validate(
            {
                **body,
                "request_info": RequestInfo.from_response(response),
                "version_id": response.headers.get(HEADER_VERSION_ID),
                "hash_crc64ecma": parse_crc64_header(
                    response.headers.get(HEADER_HASH_CRC64ECMA)
                ),
            }
        )
        logger.info(
            "Completed upload %s: etag=%s crc64=%s",
            session.upload_id,
            output.etag,
            output.hash_crc64ecma,
        )
        return output

    def _send_manifest(
        self, session: UploadSession, payload: dict[str, Any]
    ) -> requests.Response:
        response = self._transport.send(
            "POST",
            session.bucket,
            session.key,
            params={QUERY_UPLOAD_ID: session.upload_id},
            json=payload,
        )
        if response.status_code == STATUS_OK:
            return response
        try:
            if (
                400 <= response.status_code < 500
                and response.status_code not in SERVER_FAULT_STATUS_CODES
            ):
                error: ServerError = server_error_from_response(
                    response, ManifestRejectedError
                )
                logger.error("Completion manifest rejected: %s", error)
                raise error
            raise server_error_from_response(response)
        finally:
            response.close()
