"""Exception classes for the multipart upload workflow."""

from __future__ import annotations


class MultipartUploadError(Exception):
    """Base error for multipart upload workflow."""


class ClientInputError(MultipartUploadError, ValueError):
    """Raised when a request is malformed before any network call is made."""


class UploadCancelledError(MultipartUploadError):
    """Raised when a cancellation signal is observed during an operation."""


class ServerError(MultipartUploadError):
    """Raised when the service answers with an unexpected status code."""

    def __init__(
        self,
        status_code: int,
        message: str,
        code: str | None = None,
        request_id: str | None = None,
        host_id: str | None = None,
    ):
        """Initialize ServerError with the diagnostics returned by the service.

        Args:
            status_code: HTTP status code of the response.
            message: Human readable error message.
            code: Service error code, e.g. ``NoSuchUpload``.
            request_id: Request identifier assigned by the service.
            host_id: Host identifier assigned by the service.
        """
        super().__init__(
            f"HTTP {status_code} {code or ''}: {message} (request_id={request_id})"
        )
        self.status_code = status_code
        self.message = message
        self.code = code
        self.request_id = request_id
        self.host_id = host_id


class ManifestRejectedError(ServerError):
    """Raised when the service rejects a completion manifest."""


class TransportError(MultipartUploadError):
    """Raised when a request fails below HTTP, e.g. a dropped connection."""


class ChecksumMismatchError(MultipartUploadError):
    """Raised when the local CRC-64 does not match the one the server reports."""

    def __init__(
        self,
        client_checksum: int,
        server_checksum: int | None,
        request_id: str | None = None,
        status_code: int | None = None,
    ):
        """Initialize ChecksumMismatchError.

        Args:
            client_checksum: CRC-64 computed while the body was streamed.
            server_checksum: CRC-64 reported by the service, ``None`` if the
                header could not be parsed.
            request_id: Request identifier of the response.
            status_code: HTTP status code of the response.
        """
        super().__init__(
            f"expect crc64 {client_checksum}, actual crc64 {server_checksum} "
            f"(request_id={request_id})"
        )
        self.client_checksum = client_checksum
        self.server_checksum = server_checksum
        self.request_id = request_id
        self.status_code = status_code


class RetryExhaustedError(MultipartUploadError):
    """Raised when the retry budget runs out; wraps the last failure."""

    def __init__(self, attempts: int, last_error: Exception):
        """Initialize RetryExhaustedError.

        Args:
            attempts: Number of attempts that were made.
            last_error: The error raised by the final attempt.
        """
        super().__init__(f"gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error

    @property
    def status_code(self) -> int | None:
        """Status code of the last failure, if it came from the service."""
        return getattr(self.last_error, "status_code", None)

    @property
    def request_id(self) -> str | None:
        """Request id of the last failure, if it came from the service."""
        return getattr(self.last_error, "request_id", None)
