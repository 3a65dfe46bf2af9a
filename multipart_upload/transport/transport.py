"""Default request builder and transport backed by ``requests``.

Request signing is left to the caller: a ``headers_provider`` callable is
invoked for every request and its headers are merged in, the same way the
rest of the client merges ``get_auth().get_headers()``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol
from urllib.parse import quote

import requests

from multipart_upload.const import DEFAULT_REQUEST_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Sends one request against a bucket or object and returns the response."""

    def send(
        self,
        method: str,
        bucket: str,
        key: str = "",
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        data: Any = None,
        json: Any = None,
    ) -> requests.Response: ...


class RequestsTransport:
    """Path-style transport using a shared ``requests.Session``.

    A ``requests.Session`` is safe to share between the threads uploading
    different parts of the same object.
    """

    def __init__(
        self,
        endpoint: str,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        default_headers: Mapping[str, str] | None = None,
        headers_provider: Callable[[], Mapping[str, str]] | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            endpoint: Base URL of the service, e.g. ``https://storage.example``.
            session: Session to reuse; a new one is created when omitted.
            timeout: Timeout in seconds for every request.
            default_headers: Headers sent with every request.
            headers_provider: Called per request for authentication headers.
        """
        self.endpoint = endpoint.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.default_headers = dict(default_headers or {})
        self.headers_provider = headers_provider

    def build_url(self, bucket: str, key: str = "") -> str:
        """Return the path-style URL of a bucket or an object."""
        if not key:
            return f"{self.endpoint}/{bucket}"
        return f"{self.endpoint}/{bucket}/{quote(key, safe='/')}"

    def send(
        self,
        method: str,
        bucket: str,
        key: str = "",
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        data: Any = None,
        json: Any = None,
    ) -> requests.Response:
        """Send a request and return the raw response without status checks."""
        request_headers = dict(self.default_headers)
        if self.headers_provider is not None:
            request_headers.update(self.headers_provider())
        if headers:
            request_headers.update(headers)

        url = self.build_url(bucket, key)
        logger.debug("%s %s params=%s", method, url, dict(params or {}))
        return self.session.request(
            method,
            url,
            params=params,
            headers=request_headers,
            data=data,
            json=json,
            timeout=self.timeout,
        )

    def close(self) -> None:
        self.session.close()
