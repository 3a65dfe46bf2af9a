"""Pydantic model for multipart upload client configuration."""

from pydantic import BaseModel, Field, field_validator

from multipart_upload.config_manager.helpers import parse_bytes
from multipart_upload.const import (
    API_ENDPOINT,
    DEFAULT_MAX_BACKOFF_SECONDS,
    DEFAULT_MAX_RETRY_COUNT,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_RETRY_BASE_DELAY_SECONDS,
)


class UploadConfig(BaseModel):
    """Configuration options for a multipart upload client.

    Attributes:
        endpoint: base URL of the object storage service.
        request_timeout: timeout applied to every HTTP request, in seconds.
        max_retry_count: retries allowed after the first attempt.
        retry_base_delay: delay before the first retry, doubled on each retry.
        max_backoff_seconds: upper bound on a single retry delay.
        retry_timeout: total time budget for all attempts of one operation,
            in seconds. ``None`` means only ``max_retry_count`` applies.
        enable_crc: verify part uploads against the server CRC-64.
        bandwidth_limit: aggregate upload rate cap in bytes/second, shared by
            every part uploaded through the same client.
        default_headers: headers sent with every request.
    """

    endpoint: str = API_ENDPOINT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    max_retry_count: int = Field(default=DEFAULT_MAX_RETRY_COUNT, ge=0)
    retry_base_delay: float = Field(default=DEFAULT_RETRY_BASE_DELAY_SECONDS, ge=0)
    max_backoff_seconds: float = Field(default=DEFAULT_MAX_BACKOFF_SECONDS, ge=0)
    retry_timeout: float | None = None
    enable_crc: bool = True
    bandwidth_limit: int | None = None
    default_headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("bandwidth_limit", mode="before")
    @classmethod
    def _parse_bandwidth_limit(cls, value: int | str | None) -> int | None:
        if value is None:
            return None
        limit = parse_bytes(value)
        if limit <= 0:
            raise ValueError(f"bandwidth_limit must be positive, got {value!r}")
        return limit
