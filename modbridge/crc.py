"""Modbus RTU CRC16 helpers and inter-frame interval calculation."""

from __future__ import annotations

from collections.abc import Iterable

__all__ = ["calc_crc", "valid_crc", "add_crc", "calculate_interval"]

_POLYNOMIAL = 0xA001
_MIN_INTERVAL_US = 1750
_CHAR_TIME_FACTOR = 35_000_000  # 3.5 chars * 10 bits * 1_000_000 us


def _build_table() -> tuple[int, ...]:
    table = []
    for value in range(256):
        crc = value
        for _ in range(8):
            crc = (crc >> 1) ^ _POLYNOMIAL if crc & 1 else crc >> 1
        table.append(crc)
    return tuple(table)


_TABLE = _build_table()


def calc_crc(data: Iterable[int]) -> int:
    """Return the Modbus CRC16 of ``data``; its low byte goes on the wire first."""
    crc = 0xFFFF
    for byte in bytes(data):
        crc = (crc >> 8) ^ _TABLE[(crc ^ byte) & 0xFF]
    return crc


def valid_crc(data: Iterable[int], crc: int | None = None) -> bool:
    """Check a CRC.

    With ``crc`` given, compare it with the CRC of all of ``data``.
    Without it, the last two bytes of ``data`` are taken as the CRC
    (low byte first) and checked against the bytes before them.
    """
    raw = bytes(data)
    if crc is None:
        if len(raw) < 2:
            raise ValueError("data too short to hold a CRC")
        crc = raw[-2] | (raw[-1] << 8)
        raw = raw[:-2]
    return calc_crc(raw) == crc


def add_crc(message: Iterable[int]) -> bytes:
    """Return ``message`` with its CRC16 appended, low byte first."""
    raw = bytes(message)
    crc = calc_crc(raw)
    return raw + bytes((crc & 0xFF, (crc >> 8) & 0xFF))


def calculate_interval(baud_rate: int, overwrite: int = 0) -> int:
    """Return the minimal silent gap between frames in microseconds.

    The gap is 3.5 character times, at least 1750 us; a larger
    ``overwrite`` value takes precedence.
    """
    if baud_rate <= 0:
        raise ValueError("baud rate must be positive")
    interval = max(_CHAR_TIME_FACTOR // baud_rate, _MIN_INTERVAL_US)
    return max(interval, overwrite)