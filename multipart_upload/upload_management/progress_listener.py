"""Progress events emitted while part bodies are streamed."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from tqdm import tqdm


class DataTransferType(str, Enum):
    """Kinds of progress events.

    A RETRY event carries a negative ``rw_once_bytes`` that undoes the bytes
    counted for the failed attempt.
    """

    STARTED = "started"
    RW = "rw"
    RETRY = "retry"
    SUCCEED = "succeed"
    FAILED = "failed"


@dataclass(frozen=True)
class DataTransferStatus:
    """Snapshot of one part's transfer progress."""

    type: DataTransferType
    consumed_bytes: int
    total_bytes: int | None
    rw_once_bytes: int = 0
    part_number: int | None = None


ProgressListener = Callable[[DataTransferStatus], None]


class TqdmProgressListener:
    """Aggregate progress of concurrently uploaded parts into one tqdm bar."""

    def __init__(
        self,
        total: int | None = None,
        desc: str = "Uploading parts",
        disable: bool = False,
    ) -> None:
        """Initialize the listener.

        Args:
            total: Total bytes of all parts, if known.
            desc: Progress bar description.
            disable: Disable the bar, e.g. when not verbose.
        """
        self._lock = threading.Lock()
        self._pbar = tqdm(
            total=total, desc=desc, unit="B", unit_scale=True, disable=disable
        )
        self.consumed_bytes = 0
        self.failed_parts: list[int | None] = []

    def __call__(self, status: DataTransferStatus) -> None:
        with self._lock:
            if status.type is DataTransferType.FAILED:
                self.failed_parts.append(status.part_number)
            if status.rw_once_bytes:
                self.consumed_bytes += status.rw_once_bytes
                self._pbar.update(status.rw_once_bytes)

    def close(self) -> None:
        self._pbar.close()

    def __enter__(self) -> TqdmProgressListener:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
