"""Tests for PartUploader against a scripted transport."""

from __future__ import annotations

import io
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any
from unittest.mock import MagicMock

import pytest
import requests

from multipart_upload.config_manager.upload_config import UploadConfig
from multipart_upload.exceptions import (
    ChecksumMismatchError,
    ClientInputError,
    RetryExhaustedError,
    ServerError,
    TransportError,
    UploadCancelledError,
)
from multipart_upload.models import PartRequest, PartResult, UploadSession
from multipart_upload.upload_management.part_uploader import PartUploader
from multipart_upload.upload_management.progress_listener import (
    DataTransferStatus,
    DataTransferType,
    TqdmProgressListener,
)
from tests.unit.helpers import (
    BeforeBody,
    FakeTransport,
    SentRequest,
    crc64_of,
    error_response,
    make_response,
    part_ok,
)


class ForwardOnlyStream:
    def __init__(self, data: bytes) -> None:
        self._buffer = io.BytesIO(data)

    def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)


def upload(
    transport: FakeTransport,
    config: UploadConfig,
    session: UploadSession,
    part_number: int,
    content: Any,
    **kwargs: Any,
) -> PartResult:
    return PartUploader(transport, config).upload(
        PartRequest(session=session, part_number=part_number, content=content, **kwargs)
    )


def test_upload_part_sends_put_and_returns_etag_and_checksum(
    config: UploadConfig, session: UploadSession
) -> None:
    transport = FakeTransport([part_ok('"etag-1"')])

    result = upload(transport, config, session, 1, b"hello world")

    assert result == PartResult(
        part_number=1,
        etag='"etag-1"',
        checksum=crc64_of(b"hello world"),
        request_info=result.request_info,
    )
    assert result.request_info is not None
    assert result.request_info.request_id == "req-1"
    assert result.request_info.status_code == 200

    sent = transport.sent[0]
    assert sent.method == "PUT"
    assert (sent.bucket, sent.key) == ("bucket", "big/object.bin")
    assert sent.params == {"uploadId": "upload-1", "partNumber": "1"}
    assert sent.headers["Content-Length"] == "11"
    assert sent.body == b"hello world"


def test_server_checksum_is_reported_without_local_crc(
    config: UploadConfig, session: UploadSession
) -> None:
    transport = FakeTransport(
        [
            make_response(
                200,
                headers={"ETag": "abc123", "x-tos-hash-crc64ecma": "9876543210"},
            )
        ]
    )
    no_crc = config.model_copy(update={"enable_crc": False})

    result = upload(transport, no_crc, session, 3, b"\x07" * 1024, content_length=1024)

    assert (result.part_number, result.etag, result.checksum) == (
        3,
        "abc123",
        9876543210,
    )
    assert transport.sent[0].headers["Content-Length"] == "1024"


def test_missing_server_checksum_skips_verification(
    config: UploadConfig, session: UploadSession
) -> None:
    transport = FakeTransport([make_response(200, headers={"ETag": '"e"'})])

    result = upload(transport, config, session, 1, b"data")

    assert result.etag == '"e"'
    assert result.checksum is None


def test_checksum_mismatch_fails_without_retry(
    config: UploadConfig, session: UploadSession
) -> None:
    events: list[DataTransferStatus] = []
    transport = FakeTransport(
        [make_response(200, headers={"ETag": '"e"', "x-tos-hash-crc64ecma": "1"})]
    )

    with pytest.raises(ChecksumMismatchError) as exc_info:
        upload(transport, config, session, 1, b"data", progress_listener=events.append)

    assert exc_info.value.client_checksum == crc64_of(b"data")
    assert exc_info.value.server_checksum == 1
    assert transport.calls == 1
    assert events[-1].type is DataTransferType.FAILED


def test_resettable_body_is_replayed_identically(
    config: UploadConfig, session: UploadSession
) -> None:
    data = bytes(range(256)) * 600
    stream = io.BytesIO(b"skip-me" + data + b"trailer")
    stream.seek(len(b"skip-me"))
    transport = FakeTransport(
        [requests.exceptions.ConnectionError("connection reset"), part_ok()]
    )

    result = upload(transport, config, session, 2, stream, content_length=len(data))

    assert transport.calls == 2
    assert transport.sent[0].body == data
    assert transport.sent[1].body == data
    assert result.checksum == crc64_of(data)
    assert not stream.closed


def test_retry_rolls_back_reported_progress(
    config: UploadConfig, session: UploadSession
) -> None:
    events: list[DataTransferStatus] = []
    transport = FakeTransport(
        [error_response(500, "InternalError"), part_ok()]
    )

    upload(transport, config, session, 1, b"abcdef", progress_listener=events.append)

    assert [event.type for event in events] == [
        DataTransferType.STARTED,
        DataTransferType.RW,
        DataTransferType.RETRY,
        DataTransferType.RW,
        DataTransferType.SUCCEED,
    ]
    assert events[2].rw_once_bytes == -6
    assert sum(event.rw_once_bytes for event in events) == 6
    assert events[-1].consumed_bytes == 6


def test_forward_only_body_is_not_retried_after_connection_reset(
    config: UploadConfig, session: UploadSession
) -> None:
    transport = FakeTransport(
        [requests.exceptions.ConnectionError("connection reset"), part_ok()]
    )

    with pytest.raises(TransportError):
        upload(transport, config, session, 1, ForwardOnlyStream(b"payload"))

    assert transport.calls == 1


def test_forward_only_body_is_retried_on_server_fault_before_upload(
    config: UploadConfig, session: UploadSession
) -> None:
    transport = FakeTransport(
        [BeforeBody(error_response(503, "ServiceUnavailable")), part_ok()]
    )

    result = upload(
        transport, config, session, 1, ForwardOnlyStream(b"payload"), content_length=7
    )

    assert transport.calls == 2
    assert transport.sent[1].body == b"payload"
    assert result.checksum == crc64_of(b"payload")


def test_forward_only_body_is_not_replayed_once_consumed(
    config: UploadConfig, session: UploadSession
) -> None:
    transport = FakeTransport([error_response(503, "ServiceUnavailable"), part_ok()])

    with pytest.raises(ServerError) as exc_info:
        upload(transport, config, session, 1, ForwardOnlyStream(b"payload"))

    assert exc_info.value.status_code == 503
    assert transport.calls == 1


def test_forward_only_body_without_length_is_streamed(
    config: UploadConfig, session: UploadSession
) -> None:
    transport = FakeTransport([part_ok()])

    result = upload(transport, config, session, 1, ForwardOnlyStream(b"streamed"))

    assert "Content-Length" not in transport.sent[0].headers
    assert transport.sent[0].body == b"streamed"
    assert result.checksum == crc64_of(b"streamed")


@pytest.mark.parametrize(
    "part_number, content, content_length",
    [
        (0, b"data", None),
        (-1, b"data", None),
        (True, b"data", None),
        ("1", b"data", None),
        (1, None, None),
        (1, b"data", 0),
        (1, b"data", -5),
        (1, b"", None),
        (1, io.BytesIO(b""), None),
    ],
)
def test_invalid_request_fails_before_any_network_call(
    config: UploadConfig,
    session: UploadSession,
    part_number: Any,
    content: Any,
    content_length: int | None,
) -> None:
    transport = FakeTransport([part_ok()])

    with pytest.raises(ClientInputError):
        upload(
            transport,
            config,
            session,
            part_number,
            content,
            content_length=content_length,
        )

    assert transport.calls == 0


def test_missing_upload_id_fails_before_any_network_call(
    config: UploadConfig,
) -> None:
    transport = FakeTransport([part_ok()])
    session = UploadSession(bucket="bucket", key="key", upload_id="")

    with pytest.raises(ClientInputError):
        upload(transport, config, session, 1, b"data")

    assert transport.calls == 0


def test_terminated_session_rejects_new_parts(
    config: UploadConfig, session: UploadSession
) -> None:
    transport = FakeTransport([part_ok()])
    session.mark_aborted()

    with pytest.raises(ClientInputError):
        upload(transport, config, session, 1, b"data")

    assert transport.calls == 0


def test_cancellation_mid_transfer_stops_without_retry(
    config: UploadConfig, session: UploadSession
) -> None:
    cancel_event = threading.Event()
    events: list[DataTransferStatus] = []

    def listener(status: DataTransferStatus) -> None:
        events.append(status)
        if status.type is DataTransferType.RW:
            cancel_event.set()

    transport = FakeTransport([part_ok()])

    with pytest.raises(UploadCancelledError):
        upload(
            transport,
            config,
            session,
            1,
            b"x" * (256 * 1024),
            progress_listener=listener,
            cancel_event=cancel_event,
        )

    assert transport.calls == 1
    assert events[-1].type is DataTransferType.FAILED


def test_cancelled_before_start_sends_nothing(
    config: UploadConfig, session: UploadSession
) -> None:
    cancel_event = threading.Event()
    cancel_event.set()
    transport = FakeTransport([part_ok()])

    with pytest.raises(UploadCancelledError):
        upload(transport, config, session, 1, b"data", cancel_event=cancel_event)

    assert transport.calls == 0


def test_persistent_server_fault_exhausts_retries(
    config: UploadConfig, session: UploadSession
) -> None:
    transport = FakeTransport(
        [error_response(503, "ServiceUnavailable", request_id="req-busy")]
    )

    with pytest.raises(RetryExhaustedError) as exc_info:
        upload(transport, config, session, 1, b"data")

    assert transport.calls == config.max_retry_count + 1
    assert exc_info.value.attempts == 4
    assert exc_info.value.status_code == 503
    assert exc_info.value.request_id == "req-busy"


def test_client_error_from_service_is_not_retried(
    config: UploadConfig, session: UploadSession
) -> None:
    transport = FakeTransport([error_response(403, "AccessDenied", "denied")])

    with pytest.raises(ServerError) as exc_info:
        upload(transport, config, session, 1, b"data")

    assert exc_info.value.code == "AccessDenied"
    assert exc_info.value.message == "denied"
    assert transport.calls == 1


def test_rate_limiter_from_request_overrides_uploader_default(
    config: UploadConfig, session: UploadSession
) -> None:
    default_limiter = MagicMock()
    request_limiter = MagicMock()
    uploader = PartUploader(
        FakeTransport([part_ok()]), config, rate_limiter=default_limiter
    )

    uploader.upload(PartRequest(session=session, part_number=1, content=b"abcd"))
    uploader.upload(
        PartRequest(
            session=session,
            part_number=2,
            content=b"xyz",
            rate_limiter=request_limiter,
        )
    )

    default_limiter.acquire.assert_called_once_with(4, None)
    request_limiter.acquire.assert_called_once_with(3, None)


def test_parts_upload_concurrently_without_interference(
    config: UploadConfig, session: UploadSession
) -> None:
    def respond(request: SentRequest) -> requests.Response:
        return part_ok(f'"etag-{request.params["partNumber"]}"')(request)

    transport = FakeTransport([respond])
    uploader = PartUploader(transport, config)
    payloads = {number: bytes([number]) * (10_000 * number) for number in range(1, 9)}

    with TqdmProgressListener(disable=True) as listener:
        with ThreadPoolExecutor(max_workers=4) as executor:
            futures = {
                number: executor.submit(
                    uploader.upload,
                    PartRequest(
                        session=session,
                        part_number=number,
                        content=data,
                        progress_listener=listener,
                    ),
                )
                for number, data in payloads.items()
            }
            results = {number: future.result() for number, future in futures.items()}

    for number, result in results.items():
        assert result.etag == f'"etag-{number}"'
        assert result.checksum == crc64_of(payloads[number])
    assert listener.consumed_bytes == sum(len(data) for data in payloads.values())
    assert listener.failed_parts == []
