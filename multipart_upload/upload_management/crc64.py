"""CRC-64/ECMA-182 accumulator used for end-to-end part verification.

The reflected ECMA-182 polynomial is the one object storage services report
in their ``hash-crc64ecma`` headers. The checksum function is generated once
when the module is imported; crcmod runs it in its C extension.
"""

from __future__ import annotations

import crcmod

# Normal form with the implicit x^64 term, as crcmod expects.
CRC64_ECMA_POLY = 0x142F0E1EBA9EA3693
_MASK = 0xFFFFFFFFFFFFFFFF

_crc64_ecma = crcmod.mkCrcFun(CRC64_ECMA_POLY, initCrc=0, rev=True, xorOut=_MASK)


def crc64_update(crc: int, data: bytes | bytearray | memoryview) -> int:
    """Extend ``crc`` with ``data`` and return the new checksum."""
    if not isinstance(data, bytes):
        data = bytes(data)
    return _crc64_ecma(data, crc & _MASK)


class CRC64:
    """Incremental CRC-64 over the bytes of one transfer attempt."""

    def __init__(self, seed: int = 0) -> None:
        """Initialize the accumulator.

        Args:
            seed: Initial checksum value; the checksum of empty input.
        """
        self._seed = seed & _MASK
        self._crc = self._seed

    def update(self, data: bytes | bytearray | memoryview) -> None:
        if data:
            self._crc = crc64_update(self._crc, data)

    @property
    def value(self) -> int:
        return self._crc

    def reset(self) -> None:
        """Drop everything accumulated so far and start from the seed again."""
        self._crc = self._seed
