"""Scripted in-memory transport and response builders for unit tests."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Union
from urllib.parse import parse_qs, urlparse

import requests
from requests.structures import CaseInsensitiveDict

from multipart_upload.const import HEADER_ETAG, HEADER_HASH_CRC64ECMA
from multipart_upload.upload_management.crc64 import crc64_update

TEST_ENDPOINT = "http://storage.test"


def make_response(
    status_code: int = 200,
    headers: dict[str, str] | None = None,
    json_body: Any = None,
    content: bytes = b"",
) -> requests.Response:
    """Build a fully-read ``requests.Response``."""
    response = requests.Response()
    response.status_code = status_code
    response.headers = CaseInsensitiveDict(headers or {})
    if json_body is not None:
        content = json.dumps(json_body).encode("utf-8")
    response._content = content
    response._content_consumed = True
    response.encoding = "utf-8"
    return response


def error_response(
    status_code: int, code: str, message: str = "", request_id: str = "req-err"
) -> requests.Response:
    return make_response(
        status_code,
        headers={"x-tos-request-id": request_id},
        json_body={"Code": code, "Message": message, "RequestId": request_id},
    )


@dataclass
class SentRequest:
    method: str
    bucket: str
    key: str
    params: dict[str, Any]
    headers: dict[str, str]
    body: bytes | None
    json: Any


Action = Union[requests.Response, Exception, Callable[[SentRequest], requests.Response]]


@dataclass
class BeforeBody:
    """Run ``action`` without reading the request body first."""

    action: Action


@dataclass
class FakeTransport:
    """Replays scripted actions, one per request.

    The request body is read in full through the wrapper before the action
    runs, the way a real transport streams it onto the wire, unless the
    action is wrapped in ``BeforeBody``. An action is a response, an
    exception to raise, or a callable building a response. The last action
    repeats once the script runs out.
    """

    actions: list[Action | BeforeBody] = field(default_factory=list)
    sent: list[SentRequest] = field(default_factory=list)
    calls: int = 0

    def send(
        self,
        method: str,
        bucket: str,
        key: str = "",
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        data: Any = None,
        json: Any = None,
    ) -> requests.Response:
        self.calls += 1
        action = self.actions[min(self.calls - 1, len(self.actions) - 1)]
        body = None
        if isinstance(action, BeforeBody):
            action = action.action
        elif data is not None:
            body = b"".join(iter(data))
        sent = SentRequest(
            method, bucket, key, dict(params or {}), dict(headers or {}), body, json
        )
        self.sent.append(sent)

        if isinstance(action, Exception):
            raise action
        if isinstance(action, requests.Response):
            return action
        return action(sent)


def crc64_of(data: bytes) -> int:
    return crc64_update(0, data)


def part_ok(etag: str = '"etag-1"') -> Callable[[SentRequest], requests.Response]:
    """Respond like the service: echo an ETag and the CRC-64 of the body."""

    def respond(request: SentRequest) -> requests.Response:
        return make_response(
            200,
            headers={
                HEADER_ETAG: etag,
                HEADER_HASH_CRC64ECMA: str(crc64_of(request.body or b"")),
                "x-tos-request-id": f"req-{request.params.get('partNumber')}",
            },
        )

    return respond


def query_of(url: str) -> dict[str, str]:
    """Return the query string of ``url`` as a flat dict, keeping blanks."""
    query = parse_qs(urlparse(url).query, keep_blank_values=True)
    return {name: values[-1] for name, values in query.items()}
