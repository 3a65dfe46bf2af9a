"""Create and abort multipart upload sessions."""

from __future__ import annotations

import logging
from collections.abc import Mapping

import requests

from multipart_upload.config_manager.upload_config import UploadConfig
from multipart_upload.const import (
    HEADER_CONTENT_TYPE,
    HEADER_META_PREFIX,
    QUERY_UPLOAD_ID,
    QUERY_UPLOADS,
    STATUS_NO_CONTENT,
    STATUS_NOT_FOUND,
    STATUS_OK,
)
from multipart_upload.exceptions import ClientInputError, ServerError
from multipart_upload.models import (
    AbortMultipartUploadOutput,
    RequestInfo,
    SessionState,
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


class SessionLifecycle:
    """Start and cancel upload sessions."""

    def __init__(self, transport: Transport, config: UploadConfig) -> None:
        self._transport = transport
        self._config = config

    def create(
        self,
        bucket: str,
        key: str,
        content_type: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> UploadSession:
        """Initiate a multipart upload and return its session.

        Args:
            bucket: Target bucket.
            key: Target object key.
            content_type: Content type of the assembled object.
            metadata: User metadata stored with the object.
        """
        if not bucket or not key:
            raise ClientInputError("bucket and key are required")
        headers: dict[str, str] = {}
        if content_type:
            headers[HEADER_CONTENT_TYPE] = content_type
        for name, value in (metadata or {}).items():
            headers[f"{HEADER_META_PREFIX}{name}"] = value

        coordinator = RetryCoordinator.from_config(
            self._config,
            SERVER_FAULT_POLICY,
            operation_name=f"CreateMultipartUpload {bucket}/{key}",
        )

        def attempt() -> requests.Response:
            response = self._transport.send(
                "POST", bucket, key, params={QUERY_UPLOADS: ""}, headers=headers
            )
            try:
                raise_for_unexpected_status(response, {STATUS_OK})
            except ServerError:
                response.close()
                raise
            return response

        response = coordinator.run(attempt)
        try:
            body = parse_body(response)
        finally:
            response.close()

        upload_id = body.get("UploadId")
        if not upload_id:
            raise ServerError(
                response.status_code,
                "response did not contain an UploadId",
                request_id=RequestInfo.from_response(response).request_id,
            )
        session = UploadSession(
            bucket=body.get("Bucket") or bucket,
            key=body.get("Key") or key,
            upload_id=upload_id,
        )
        logger.info("Created upload %s for %s/%s", upload_id, bucket, key)
        return session

    def abort(self, session: UploadSession) -> AbortMultipartUploadOutput:
        """Cancel ``session``.

        Aborting a session that the service no longer knows, or one that was
        already aborted locally, is a no-op.

        Raises:
            ClientInputError: If the session was already completed.
        """
        if not session.upload_id:
            raise ClientInputError("upload_id is required")
        if session.state is SessionState.ABORTED:
            return AbortMultipartUploadOutput(already_terminated=True)
        if session.state is SessionState.COMPLETED:
            raise ClientInputError(f"Upload {session.upload_id} is already completed")

        coordinator = RetryCoordinator.from_config(
            self._config,
            SERVER_FAULT_POLICY,
            operation_name=f"AbortMultipartUpload {session.upload_id}",
        )

        def attempt() -> RequestInfo:
            response = self._transport.send(
                "DELETE",
                session.bucket,
                session.key,
                params={QUERY_UPLOAD_ID: session.upload_id},
            )
            try:
                raise_for_unexpected_status(
                    response, {STATUS_NO_CONTENT, STATUS_NOT_FOUND}
                )
                return RequestInfo.from_response(response)
            finally:
                response.close()

        request_info = coordinator.run(attempt)
        session.mark_aborted()
        already_terminated = request_info.status_code == STATUS_NOT_FOUND
        if already_terminated:
            logger.info(
                "Upload %s no longer exists on the server; nothing to abort",
                session.upload_id,
            )
        else:
            logger.info("Aborted upload %s", session.upload_id)
        return AbortMultipartUploadOutput(
            request_info=request_info, already_terminated=already_terminated
        )
