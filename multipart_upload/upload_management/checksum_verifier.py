"""Verify a streamed CRC-64 against the value reported by the service."""

from __future__ import annotations

import logging

import requests

from multipart_upload.const import HEADER_HASH_CRC64ECMA, HEADER_REQUEST_ID
from multipart_upload.exceptions import ChecksumMismatchError
from multipart_upload.upload_management.crc64 import CRC64

logger = logging.getLogger(__name__)


def parse_crc64_header(value: str | None) -> int | None:
    """Parse a decimal unsigned 64-bit checksum header.

    Returns:
        The checksum, or ``None`` if the header is absent or not a valid
        unsigned 64-bit decimal.
    """
    if not value:
        return None
    value = value.strip()
    if not value.isdigit():
        return None
    checksum = int(value)
    if checksum >= 1 << 64:
        return None
    return checksum


def verify_crc64(response: requests.Response, checksum: CRC64 | None) -> None:
    """Compare the local checksum with the one in the response headers.

    Skipped when no local checksum was accumulated or the service did not
    report one.

    Raises:
        ChecksumMismatchError: If the values differ or the reported value
            cannot be parsed.
    """
    if checksum is None:
        return
    raw_value = response.headers.get(HEADER_HASH_CRC64ECMA)
    if not raw_value:
        logger.debug("No %s header in response; skipping", HEADER_HASH_CRC64ECMA)
        return

    server_checksum = parse_crc64_header(raw_value)
    if server_checksum != checksum.value:
        request_id = response.headers.get(HEADER_REQUEST_ID)
        logger.error(
            "CRC-64 mismatch: client=%d server=%s request_id=%s",
            checksum.value,
            raw_value,
            request_id,
        )
        raise ChecksumMismatchError(
            checksum.value,
            server_checksum,
            request_id=request_id,
            status_code=response.status_code,
        )
