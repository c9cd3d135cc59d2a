"""Sending and receiving Modbus RTU and Modbus ASCII frames over a serial line.

The serial object is duck-typed after a non-blocking serial port: it
needs ``read(size)`` returning ``bytes`` (empty when nothing is waiting),
``write(data)``, ``flush()`` and an ``in_waiting`` count.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from enum import Enum, auto
from typing import Protocol

from modbridge.crc import add_crc, calc_crc, valid_crc

__all__ = [
    "RtuError",
    "RtuTimeoutError",
    "CrcError",
    "PacketLengthError",
    "AsciiInvalidCharError",
    "AsciiCrcError",
    "AsciiFrameError",
    "RtuLink",
    "rts_auto",
    "encode_rtu_frame",
    "encode_ascii_frame",
]

BUFFER_SIZE = 512

_ASCII_DIGITS = b"0123456789ABCDEF"
_LEAD_IN = 0xF0
_CR = 0xF1
_LF = 0xF2
_INVALID = 0xFF


def _build_ascii_table() -> tuple[int, ...]:
    table = [_INVALID] * 128
    for value, char in enumerate("0123456789"):
        table[ord(char)] = value
    for value, char in enumerate("ABCDEF", start=10):
        table[ord(char)] = value
        table[ord(char.lower())] = value
    table[ord(":")] = _LEAD_IN
    table[ord(">")] = _LEAD_IN
    table[ord("\r")] = _CR
    table[ord("\n")] = _LF
    return tuple(table)


_ASCII_READ = _build_ascii_table()


class RtuError(Exception):
    """Base class of all serial framing errors."""


class RtuTimeoutError(RtuError):
    """No complete frame arrived within the timeout."""


class CrcError(RtuError):
    """An RTU frame arrived with a wrong CRC."""


class PacketLengthError(RtuError):
    """A frame was too short, too long or ended in the middle of a byte."""


class AsciiInvalidCharError(RtuError):
    """A character not allowed in Modbus ASCII was received."""


class AsciiCrcError(RtuError):
    """An ASCII frame arrived with a wrong LRC."""


class AsciiFrameError(RtuError):
    """An ASCII frame was not terminated by CR LF."""


class SerialPort(Protocol):
    in_waiting: int

    def read(self, size: int = 1) -> bytes: ...

    def write(self, data: bytes) -> int | None: ...

    def flush(self) -> None: ...


def rts_auto(level: bool) -> bool:
    """RTS callback for boards that switch the RS485 direction themselves.

    No line is driven; the requested level is returned as given.
    """
    return bool(level)


def encode_rtu_frame(data: Iterable[int]) -> bytes:
    """Return the RTU wire form of ``data``: the bytes followed by their CRC."""
    return add_crc(data)


def _lrc(data: bytes) -> int:
    return (-sum(data)) & 0xFF


def _hex_byte(value: int) -> bytes:
    return bytes((_ASCII_DIGITS[(value >> 4) & 0x0F], _ASCII_DIGITS[value & 0x0F]))


def encode_ascii_frame(data: Iterable[int]) -> bytes:
    """Return the Modbus ASCII wire form of ``data``: ':' hex digits, LRC, CR LF."""
    raw = bytes(data)
    body = b"".join(_hex_byte(byte) for byte in raw)
    return b":" + body + _hex_byte(_lrc(raw)) + b"\r\n"


def _now_us() -> int:
    return time.monotonic_ns() // 1000


def _now_ms() -> int:
    return time.monotonic_ns() // 1_000_000


class _AsciiState(Enum):
    WAIT_DATA = auto()
    DATA = auto()
    WAIT_LEAD_OUT = auto()


class RtuLink:
    """A serial line carrying Modbus frames, keeping the silent interval between them."""

    def __init__(
        self,
        serial: SerialPort,
        interval: int,
        rts: Callable[[bool], object] = rts_auto,
    ) -> None:
        self._serial = serial
        self.interval = interval
        self._rts = rts
        self._last_us = 0

    def _clear_input(self) -> None:
        while self._serial.in_waiting:
            if not self._serial.read(self._serial.in_waiting):
                break

    def _read_byte(self) -> int | None:
        chunk = self._serial.read(1)
        return chunk[0] if chunk else None

    def send(self, data: Iterable[int], ascii_mode: bool = False) -> None:
        """Send one frame, adding the CRC (RTU) or LRC and framing (ASCII)."""
        raw = bytes(data)
        self._clear_input()
        if ascii_mode:
            frame = encode_ascii_frame(raw)
        else:
            frame = raw + bytes(((crc := calc_crc(raw)) & 0xFF, (crc >> 8) & 0xFF))
            waited = _now_us() - self._last_us
            if waited < self.interval:
                time.sleep((self.interval - waited) / 1_000_000)
        self._rts(True)
        self._serial.write(frame)
        self._serial.flush()
        self._rts(False)
        self._last_us = _now_us()

    def receive(
        self,
        timeout: int,
        ascii_mode: bool = False,
        skip_leading_zero_bytes: bool = False,
    ) -> bytes:
        """Receive one frame and return its payload without CRC or LRC.

        ``timeout`` is in milliseconds. Raises an :class:`RtuError`
        subclass when no valid frame arrives.
        """
        if ascii_mode:
            return self._receive_ascii(timeout)
        return self._receive_rtu(timeout, skip_leading_zero_bytes)

    def _receive_rtu(self, timeout: int, skip_zero: bool) -> bytes:
        started = _now_ms()
        self._last_us = _now_us()
        while True:
            byte = self._read_byte()
            if byte is not None:
                self._last_us = _now_us()
                if byte or not skip_zero:
                    break
                continue
            if _now_ms() - started >= timeout:
                raise RtuTimeoutError(f"no data within {timeout} ms")
            time.sleep(0.001)

        buffer = bytearray()
        while _now_us() - self._last_us < self.interval:
            if byte is not None:
                buffer.append(byte)
                self._last_us = _now_us()
                if len(buffer) >= BUFFER_SIZE:
                    raise PacketLengthError("frame exceeds receive buffer")
            byte = self._read_byte()

        if len(buffer) < 4:
            raise PacketLengthError(f"frame of {len(buffer)} bytes is too short")
        if not valid_crc(buffer):
            raise CrcError("CRC mismatch")
        return bytes(buffer[:-2])

    def _receive_ascii(self, timeout: int) -> bytes:
        state = _AsciiState.WAIT_DATA
        buffer = bytearray()
        current = 0
        byte_complete = True
        last_seen = _now_ms()

        while True:
            if _now_ms() - last_seen >= timeout:
                raise RtuTimeoutError(f"no data within {timeout} ms")
            raw = self._read_byte()
            if raw is None:
                time.sleep(0.001)
                continue
            last_seen = _now_ms()
            if raw & 0x80 or _ASCII_READ[raw] == _INVALID:
                raise AsciiInvalidCharError(f"invalid character 0x{raw:02X}")
            value = _ASCII_READ[raw]

            if state is _AsciiState.WAIT_DATA:
                if value == _LEAD_IN:
                    state = _AsciiState.DATA
            elif state is _AsciiState.DATA:
                if value == _CR:
                    if not byte_complete:
                        raise PacketLengthError("frame ended in the middle of a byte")
                    state = _AsciiState.WAIT_LEAD_OUT
                elif value < _LEAD_IN:
                    current = ((current << 4) | value) & 0xFF
                    byte_complete = not byte_complete
                    if byte_complete:
                        buffer.append(current)
                        current = 0
                        if len(buffer) >= BUFFER_SIZE:
                            raise PacketLengthError("frame exceeds receive buffer")
                else:
                    raise AsciiInvalidCharError(f"unexpected character 0x{raw:02X}")
            else:
                if value != _LF:
                    raise AsciiFrameError("missing LF after CR")
                if len(buffer) < 3:
                    raise PacketLengthError(f"frame of {len(buffer)} bytes is too short")
                if sum(buffer) & 0xFF:
                    raise AsciiCrcError("LRC mismatch")
                return bytes(buffer[:-1])