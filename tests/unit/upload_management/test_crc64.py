import pytest

from multipart_upload.exceptions import ChecksumMismatchError
from multipart_upload.upload_management.checksum_verifier import (
    parse_crc64_header,
    verify_crc64,
)
from multipart_upload.upload_management.crc64 import CRC64, crc64_update
from tests.unit.helpers import make_response


def test_check_value_matches_crc64_ecma_182() -> None:
    assert crc64_update(0, b"123456789") == 0x995DC9BBDF1939FA


def test_empty_input_leaves_seed_unchanged() -> None:
    assert crc64_update(0, b"") == 0
    assert CRC64().value == 0
    assert CRC64(seed=42).value == 42


def test_chained_updates_match_known_check_value() -> None:
    assert crc64_update(crc64_update(0, b"1234"), b"56789") == 0x995DC9BBDF1939FA


def test_large_part_matches_chunked_accumulation() -> None:
    data = bytes(range(256)) * 4096
    checksum = CRC64()
    checksum.update(data)

    expected = 0
    for start in range(0, len(data), 65536):
        expected = crc64_update(expected, memoryview(data)[start : start + 65536])

    assert checksum.value == expected


def test_incremental_updates_match_one_shot() -> None:
    data = bytes(range(256)) * 40
    checksum = CRC64()
    for start in range(0, len(data), 1000):
        checksum.update(data[start : start + 1000])

    assert checksum.value == crc64_update(0, data)


def test_update_accepts_memoryview_and_bytearray() -> None:
    data = b"multipart upload body"
    checksum = CRC64()
    checksum.update(bytearray(data[:5]))
    checksum.update(memoryview(data)[5:])

    assert checksum.value == crc64_update(0, data)


def test_reset_restarts_from_seed() -> None:
    checksum = CRC64()
    checksum.update(b"discarded attempt")
    checksum.reset()
    checksum.update(b"123456789")

    assert checksum.value == 0x995DC9BBDF1939FA


@pytest.mark.parametrize(
    "value, expected",
    [
        ("9876543210", 9876543210),
        (" 42 ", 42),
        (str(2**64 - 1), 2**64 - 1),
        (str(2**64), None),
        ("-1", None),
        ("0x10", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_crc64_header(value: str | None, expected: int | None) -> None:
    assert parse_crc64_header(value) == expected


def test_verify_passes_when_checksums_match() -> None:
    checksum = CRC64()
    checksum.update(b"123456789")
    response = make_response(
        headers={"x-tos-hash-crc64ecma": str(0x995DC9BBDF1939FA)}
    )

    verify_crc64(response, checksum)


def test_verify_is_skipped_without_header_or_local_checksum() -> None:
    checksum = CRC64()
    checksum.update(b"abc")

    verify_crc64(make_response(), checksum)
    verify_crc64(make_response(headers={"x-tos-hash-crc64ecma": "1"}), None)


def test_verify_raises_on_mismatch() -> None:
    checksum = CRC64()
    checksum.update(b"abc")
    response = make_response(
        headers={"x-tos-hash-crc64ecma": "1", "x-tos-request-id": "req-9"}
    )

    with pytest.raises(ChecksumMismatchError) as exc_info:
        verify_crc64(response, checksum)

    assert exc_info.value.client_checksum == checksum.value
    assert exc_info.value.server_checksum == 1
    assert exc_info.value.request_id == "req-9"
    assert exc_info.value.status_code == 200


def test_verify_treats_unparseable_header_as_mismatch() -> None:
    checksum = CRC64()
    checksum.update(b"abc")
    response = make_response(headers={"x-tos-hash-crc64ecma": "not-a-number"})

    with pytest.raises(ChecksumMismatchError) as exc_info:
        verify_crc64(response, checksum)

    assert exc_info.value.server_checksum is None
