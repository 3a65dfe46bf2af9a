"""HTTP error helpers for extracting service error details."""

from __future__ import annotations

from collections.abc import Collection
from typing import Any

import requests

from multipart_upload.const import HEADER_HOST_ID, HEADER_REQUEST_ID
from multipart_upload.exceptions import ServerError


def extract_error_detail(response: requests.Response) -> dict[str, str | None]:
    """Extract error code, message and ids from an HTTP error response."""
    detail: dict[str, str | None] = {
        "code": None,
        "message": None,
        "request_id": response.headers.get(HEADER_REQUEST_ID),
        "host_id": response.headers.get(HEADER_HOST_ID),
    }
    try:
        payload: Any = response.json()
    except ValueError:
        detail["message"] = response.text or response.reason
        return detail

    if not isinstance(payload, dict):
        detail["message"] = str(payload)
        return detail

    detail["code"] = payload.get("Code")
    detail["message"] = payload.get("Message") or response.reason
    detail["request_id"] = payload.get("RequestId") or detail["request_id"]
    detail["host_id"] = payload.get("HostId") or detail["host_id"]
    return detail


def server_error_from_response(
    response: requests.Response, error_class: type[ServerError] = ServerError
) -> ServerError:
    """Build a ServerError carrying the diagnostics of ``response``."""
    detail = extract_error_detail(response)
    return error_class(
        response.status_code,
        detail["message"] or "",
        code=detail["code"],
        request_id=detail["request_id"],
        host_id=detail["host_id"],
    )


def raise_for_unexpected_status(
    response: requests.Response, expected_statuses: Collection[int]
) -> None:
    """Raise a ServerError unless the response status is one of ``expected``."""
    if response.status_code not in expected_statuses:
        raise server_error_from_response(response)
