"""Modbus RTU/ASCII framing, CRC16 helpers and a request-forwarding bridge."""

__version__ = "0.1.0"
__all__ = ["bridge", "crc", "rtu"]