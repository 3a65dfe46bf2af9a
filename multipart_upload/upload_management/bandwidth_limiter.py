"""Shared token bucket bandwidth limiter for part uploads."""

import threading
import time

from multipart_upload.exceptions import UploadCancelledError


class BandwidthLimiter:
    """Implements a token bucket algorithm to limit upload bandwidth.

    One instance may be shared by every thread uploading a part; the cap
    applies to their aggregate throughput.
    """

    def __init__(self, bytes_per_second: int) -> None:
        """Initialise the limiter.

        Args:
            bytes_per_second: Maximum aggregate upload rate in bytes/second.
        """
        if bytes_per_second <= 0:
            raise ValueError(
                f"bytes_per_second must be a positive integer, got {bytes_per_second}"
            )
        self._rate = bytes_per_second
        self._capacity = float(bytes_per_second)
        self._tokens = float(bytes_per_second)
        self._last_refill = time.monotonic()
        self._lock = threading.Lock()

    @property
    def rate(self) -> int:
        return self._rate

    def acquire(
        self, n_bytes: int, cancel_event: threading.Event | None = None
    ) -> None:
        """Block until ``n_bytes`` may be sent.

        Requests larger than one second of bandwidth are admitted once the
        bucket is full and leave it in debt.

        Args:
            n_bytes: Number of bytes about to be uploaded.
            cancel_event: When set, waiting stops and the request is dropped.

        Raises:
            UploadCancelledError: If ``cancel_event`` was set while waiting.
        """
        if n_bytes <= 0:
            return
        needed = min(float(n_bytes), self._capacity)
        while True:
            with self._lock:
                now = time.monotonic()
                self._tokens = min(
                    self._capacity,
                    self._tokens + (now - self._last_refill) * self._rate,
                )
                self._last_refill = now
                if self._tokens >= needed:
                    self._tokens -= n_bytes
                    return
                wait = (needed - self._tokens) / self._rate
            if cancel_event is None:
                time.sleep(wait)
            elif cancel_event.wait(wait):
                raise UploadCancelledError("bandwidth wait cancelled")
