# modbridge

Building blocks for Modbus serial communication and a Modbus bridge that
forwards requests to other servers under alias server IDs. The package has no
dependencies outside the standard library.

## Installation

```
pip install modbridge
```

## CRC and timing helpers

`modbridge.crc` holds the Modbus CRC16 and the RTU inter-frame gap calculation.
All functions accept any iterable of byte values.

```python
from modbridge.crc import add_crc, calc_crc, calculate_interval, valid_crc

payload = b"\x01\x03\x00\x00\x00\x01"
frame = add_crc(payload)          # new bytes: payload + CRC, low byte first
crc = calc_crc(payload)

valid_crc(payload, crc)           # True: compare with a given CRC
valid_crc(frame)                  # True: last two bytes are taken as the CRC

calculate_interval(9600)          # 3645 microseconds (3.5 character times)
calculate_interval(115200)        # 1750, the lower limit
calculate_interval(9600, 5000)    # 5000, a larger overwrite wins
```

`valid_crc` without a CRC raises `ValueError` for data shorter than two bytes;
`calculate_interval` raises `ValueError` for a baud rate that is not positive.

## RTU and ASCII framing

`modbridge.rtu` builds frames and runs the send and receive logic over a
serial-like object. That object must offer `read(size)` returning `bytes`
(empty when nothing is waiting), `write(data)`, `flush()` and an `in_waiting`
count; an open non-blocking serial port object of the usual shape fits.

```python
from modbridge.rtu import RtuLink, encode_ascii_frame, encode_rtu_frame, rts_auto

encode_rtu_frame(b"\x01\x03\x00\x00\x00\x01")    # payload followed by its CRC
encode_ascii_frame(b"\x01\x03\x00\x00\x00\x01")  # b":010300000001FB\r\n"

link = RtuLink(serial_port, interval=1750, rts=rts_auto)
link.send(b"\x01\x03\x00\x00\x00\x01")                  # RTU, CRC added
link.send(b"\x01\x03\x00\x00\x00\x01", ascii_mode=True)  # ASCII, LRC added
reply = link.receive(timeout=2000)                        # payload without CRC
```

- `send` clears pending input, waits until `interval` microseconds have passed
  since the last frame (RTU only), calls `rts(True)`, writes and flushes the
  frame, then calls `rts(False)`. `rts_auto` is the callback for boards that
  switch the RS485 direction themselves.
- `receive(timeout, ascii_mode=False, skip_leading_zero_bytes=False)` waits
  up to `timeout` milliseconds. An RTU frame ends after a silent `interval`;
  an ASCII frame runs from `:` (or `>`) to CR LF. The payload is returned
  without CRC or LRC.

On failure `receive` raises a subclass of `RtuError`: `RtuTimeoutError`,
`CrcError`, `PacketLengthError` (too short, over 512 bytes, or ending in the
middle of a byte), `AsciiInvalidCharError`, `AsciiCrcError` or
`AsciiFrameError`.

## Bridge

`modbridge.bridge.ModbusBridge` is a local request dispatcher whose workers
forward requests to attached remote servers: the alias ID is replaced by the
real server ID on the way out and restored in the response.

```python
from modbridge.bridge import ANY_FUNCTION_CODE, ModbusBridge

bridge = ModbusBridge()
bridge.attach_server(3, 1, ANY_FUNCTION_CODE, tcp_client, "192.0.2.10", 502)  # TCP target
bridge.attach_server(2, 1, 0x03, rtu_client)                                  # serial target
bridge.add_function_code(2, 0x04)
bridge.deny_function_code(3, 0x04)    # answered with ILLEGAL_FUNCTION

response = bridge.local_request(bytes([3, 0x03, 0x00, 0x03, 0x00, 0x02]))
```

- A non-zero `port` makes the target a TCP server (`ServerType.TCP_SERVER`);
  otherwise it is an RTU server. Attaching an alias that is already attached
  keeps its `ServerData` and only links the function code.
- A TCP client must provide `sync_request(message, token, host, port)` and a
  serial client `sync_request(message, token)`; both return the response bytes.
- `local_request` answers a request for an unknown alias with an
  `INVALID_SERVER` (0xE1) error response and one for an unregistered function
  code with `ILLEGAL_FUNCTION` (0x01). Requests shorter than two bytes raise
  `ValueError`.
- `add_function_code` and `deny_function_code` raise `BridgeError` for an
  alias that has not been attached.
- `register_worker` and `get_worker` let you add your own workers; a worker
  registered for `ANY_FUNCTION_CODE` serves every function code without a
  worker of its own.
- `error_response(server_id, function_code, error)` builds a Modbus error
  response.

## What the package does not do

It opens no serial ports and listens on no network sockets: there is no TCP
server, no Modbus client, and no command-line program. `RtuLink` works on a
serial object you supply, and the bridge forwards through client objects you
supply; requests reach the bridge only through `local_request`.