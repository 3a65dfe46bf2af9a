from __future__ import annotations

import threading

from multipart_upload.upload_management.progress_listener import (
    DataTransferStatus,
    DataTransferType,
    TqdmProgressListener,
)


def status(
    event_type: DataTransferType, rw_once_bytes: int = 0, part_number: int = 1
) -> DataTransferStatus:
    return DataTransferStatus(
        type=event_type,
        consumed_bytes=max(rw_once_bytes, 0),
        total_bytes=100,
        rw_once_bytes=rw_once_bytes,
        part_number=part_number,
    )


def test_aggregates_bytes_and_rolls_back_retries() -> None:
    with TqdmProgressListener(total=100, disable=True) as listener:
        listener(status(DataTransferType.STARTED))
        listener(status(DataTransferType.RW, 60))
        listener(status(DataTransferType.RETRY, -60))
        listener(status(DataTransferType.RW, 100))
        listener(status(DataTransferType.SUCCEED))

    assert listener.consumed_bytes == 100
    assert listener.failed_parts == []


def test_records_failed_parts() -> None:
    with TqdmProgressListener(disable=True) as listener:
        listener(status(DataTransferType.RW, 10, part_number=4))
        listener(status(DataTransferType.FAILED, part_number=4))

    assert listener.failed_parts == [4]


def test_accepts_events_from_many_threads() -> None:
    listener = TqdmProgressListener(disable=True)

    def report(part_number: int) -> None:
        for _ in range(100):
            listener(status(DataTransferType.RW, 3, part_number=part_number))

    threads = [threading.Thread(target=report, args=(n,)) for n in range(1, 9)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    listener.close()

    assert listener.consumed_bytes == 8 * 100 * 3
