"""Instrumented byte sources for part request bodies.

A wrapped source reports progress, honours a shared bandwidth limiter and
feeds every byte it hands out into a CRC-64 accumulator, in read order.
Sources that can seek are wrapped in a reader that also implements
``SupportsReset`` so a failed attempt can be replayed from the same offset.

The wrapper never closes the underlying source; that stays with the caller.
"""

from __future__ import annotations

import io
import logging
import os
import stat
import threading
from collections.abc import Iterator
from typing import Any, BinaryIO, Protocol, runtime_checkable

from multipart_upload.const import READ_BLOCK_SIZE
from multipart_upload.exceptions import UploadCancelledError
from multipart_upload.upload_management.bandwidth_limiter import BandwidthLimiter
from multipart_upload.upload_management.crc64 import CRC64
from multipart_upload.upload_management.progress_listener import (
    DataTransferStatus,
    DataTransferType,
    ProgressListener,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class SupportsReset(Protocol):
    """A body that can rewind to where the first attempt started."""

    def reset(self) -> None: ...


def is_seekable(source: Any) -> bool:
    """Return True if ``source`` can report and restore its position."""
    seekable = getattr(source, "seekable", None)
    if callable(seekable):
        try:
            return bool(seekable())
        except (OSError, ValueError):
            return False
    return callable(getattr(source, "seek", None)) and callable(
        getattr(source, "tell", None)
    )


def resolve_length(source: Any) -> int | None:
    """Work out how many bytes remain in ``source`` without consuming it.

    Tries in-memory buffers, regular files, then seekable streams, then
    ``__len__``.

    Returns:
        The remaining length, or ``None`` if it cannot be determined.
    """
    if isinstance(source, (bytes, bytearray)):
        return len(source)
    if isinstance(source, memoryview):
        return source.nbytes

    fileno = getattr(source, "fileno", None)
    if callable(fileno):
        try:
            file_stat = os.fstat(fileno())
        except (OSError, ValueError, io.UnsupportedOperation):
            pass
        else:
            if stat.S_ISREG(file_stat.st_mode) and is_seekable(source):
                return max(file_stat.st_size - source.tell(), 0)

    if is_seekable(source):
        try:
            position = source.tell()
            end = source.seek(0, os.SEEK_END)
            source.seek(position, os.SEEK_SET)
        except (OSError, ValueError):
            logger.debug("Could not resolve length of %r by seeking", source)
        else:
            return max(end - position, 0)

    if hasattr(source, "__len__"):
        return len(source)
    return None


class ContentReader:
    """Read-only, forward-only wrapper over a caller-owned byte source.

    Reads stop after ``content_length`` bytes when a length is known.
    """

    def __init__(
        self,
        source: BinaryIO,
        content_length: int | None = None,
        progress_listener: ProgressListener | None = None,
        rate_limiter: BandwidthLimiter | None = None,
        checksum: CRC64 | None = None,
        cancel_event: threading.Event | None = None,
        part_number: int | None = None,
    ) -> None:
        """Initialize the reader.

        Args:
            source: Object with a ``read(size)`` method.
            content_length: Number of bytes to send, ``None`` if unknown.
            progress_listener: Receives a status after every read.
            rate_limiter: Shared limiter throttling every read.
            checksum: Accumulator fed with every byte read.
            cancel_event: When set, the next read raises UploadCancelledError.
            part_number: Part number reported in progress events.
        """
        self._source = source
        self.content_length = content_length
        self._progress_listener = progress_listener
        self._rate_limiter = rate_limiter
        self.checksum = checksum
        self._cancel_event = cancel_event
        self._part_number = part_number
        self._consumed = 0

    @property
    def consumed_bytes(self) -> int:
        """Bytes handed out during the current attempt."""
        return self._consumed

    def emit(self, event_type: DataTransferType, rw_once_bytes: int = 0) -> None:
        """Send a progress event to the listener, if any."""
        if self._progress_listener is None:
            return
        self._progress_listener(
            DataTransferStatus(
                type=event_type,
                consumed_bytes=self._consumed,
                total_bytes=self.content_length,
                rw_once_bytes=rw_once_bytes,
                part_number=self._part_number,
            )
        )

    def read(self, size: int | None = -1) -> bytes:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise UploadCancelledError(
                f"Upload of part {self._part_number} cancelled"
            )

        if size is None or size < 0:
            size = -1
        if self.content_length is not None:
            remaining = self.content_length - self._consumed
            if remaining <= 0:
                return b""
            if size < 0 or size > remaining:
                size = remaining

        data = self._source.read(size)
        if not data:
            return b""
        data = bytes(data)

        if self._rate_limiter is not None:
            self._rate_limiter.acquire(len(data), self._cancel_event)
        if self.checksum is not None:
            self.checksum.update(data)
        self._consumed += len(data)
        self.emit(DataTransferType.RW, len(data))
        return data

    def __iter__(self) -> Iterator[bytes]:
        while True:
            chunk = self.read(READ_BLOCK_SIZE)
            if not chunk:
                return
            yield chunk

    def __len__(self) -> int:
        # requests sizes stream bodies with len(); 0 makes it send chunked.
        return self.content_length or 0

    def __bool__(self) -> bool:
        return True


class ResettableContentReader(ContentReader):
    """ContentReader over a seekable source; implements ``SupportsReset``."""

    def __init__(self, source: BinaryIO, *args: Any, **kwargs: Any) -> None:
        super().__init__(source, *args, **kwargs)
        self._start = source.tell()

    def reset(self) -> None:
        """Rewind to the starting offset and restart the checksum.

        Emits a RETRY event that rolls back the bytes reported for the
        abandoned attempt.
        """
        self._source.seek(self._start, os.SEEK_SET)
        if self.checksum is not None:
            self.checksum.reset()
        rolled_back = self._consumed
        self._consumed = 0
        self.emit(DataTransferType.RETRY, -rolled_back)
        logger.debug(
            "Rewound part %s body to offset %d (%d bytes discarded)",
            self._part_number,
            self._start,
            rolled_back,
        )


def wrap_content(
    source: Any,
    content_length: int | None = None,
    progress_listener: ProgressListener | None = None,
    rate_limiter: BandwidthLimiter | None = None,
    checksum: CRC64 | None = None,
    cancel_event: threading.Event | None = None,
    part_number: int | None = None,
) -> ContentReader:
    """Wrap ``source`` in the reader matching its capabilities.

    In-memory buffers are exposed through ``io.BytesIO`` and are therefore
    always resettable.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        source = io.BytesIO(bytes(source))
    reader_class = ResettableContentReader if is_seekable(source) else ContentReader
    return reader_class(
        source,
        content_length=content_length,
        progress_listener=progress_listener,
        rate_limiter=rate_limiter,
        checksum=checksum,
        cancel_event=cancel_event,
        part_number=part_number,
    )
