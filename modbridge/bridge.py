"""A Modbus bridge: a server that forwards requests to remote servers through clients.

Each remote server is attached under an alias server ID. Requests arriving
for the alias are passed on to the remote server's real ID through a Modbus
client, and the response comes back carrying the alias ID again.

Clients are duck-typed. An RTU client needs ``sync_request(request, token)``;
a TCP client needs ``sync_request(request, token, host, port)``. Both return
the response message as bytes.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

__all__ = [
    "ANY_FUNCTION_CODE",
    "ILLEGAL_FUNCTION",
    "TIMEOUT",
    "INVALID_SERVER",
    "ServerType",
    "ServerData",
    "BridgeError",
    "ModbusBridge",
    "error_response",
]

log = logging.getLogger(__name__)

ANY_FUNCTION_CODE = 0x00
ILLEGAL_FUNCTION = 0x01
TIMEOUT = 0xE0
INVALID_SERVER = 0xE1

Worker = Callable[[bytes], bytes]


def error_response(server_id: int, function_code: int, error: int) -> bytes:
    """Return a Modbus error response: server ID, function code with bit 7 set, error code."""
    return bytes((server_id & 0xFF, (function_code | 0x80) & 0xFF, error & 0xFF))


class ServerType(Enum):
    """How an attached remote server is reached."""

    TCP_SERVER = "tcp"
    RTU_SERVER = "rtu"


@dataclass
class ServerData:
    """Everything needed to address one remote server."""

    server_id: int
    client: Any
    server_type: ServerType = ServerType.RTU_SERVER
    host: str = "0.0.0.0"
    port: int = 0


class BridgeError(Exception):
    """An operation referred to an alias ID that is not attached to the bridge."""


def _token() -> int:
    return (time.monotonic_ns() // 1_000_000) & 0xFFFFFFFF


class ModbusBridge:
    """A local Modbus server whose workers forward requests to attached remote servers."""

    def __init__(self) -> None:
        self._workers: dict[int, dict[int, Worker]] = {}
        self.servers: dict[int, ServerData] = {}

    def register_worker(self, server_id: int, function_code: int, worker: Worker) -> None:
        """Register ``worker`` for requests to ``server_id`` with ``function_code``."""
        self._workers.setdefault(server_id & 0xFF, {})[function_code & 0xFF] = worker

    def get_worker(self, server_id: int, function_code: int) -> Worker | None:
        """Return the worker serving the combination, falling back to the any-FC worker."""
        workers = self._workers.get(server_id)
        if workers is None:
            return None
        return workers.get(function_code, workers.get(ANY_FUNCTION_CODE))

    def local_request(self, request: Iterable[int]) -> bytes:
        """Process a request locally and return the response."""
        raw = bytes(request)
        if len(raw) < 2:
            raise ValueError("a request needs at least a server ID and a function code")
        server_id, function_code = raw[0], raw[1]
        if server_id not in self._workers:
            return error_response(server_id, function_code, INVALID_SERVER)
        worker = self.get_worker(server_id, function_code)
        if worker is None:
            return error_response(server_id, function_code, ILLEGAL_FUNCTION)
        return bytes(worker(raw))

    def attach_server(
        self,
        alias_id: int,
        server_id: int,
        function_code: int,
        client: Any,
        host: str = "0.0.0.0",
        port: int = 0,
    ) -> None:
        """Attach a remote server under ``alias_id`` and link ``function_code`` to it.

        A non-zero ``port`` makes it a TCP server reached at ``host``; otherwise
        it is an RTU server. An alias already attached keeps its server data.
        """
        if alias_id not in self.servers:
            if port:
                self.servers[alias_id] = ServerData(
                    server_id, client, ServerType.TCP_SERVER, host, port
                )
                log.debug("(TCP): %02X->%02X %s:%d", alias_id, server_id, host, port)
            else:
                self.servers[alias_id] = ServerData(server_id, client)
                log.debug("(RTU): %02X->%02X", alias_id, server_id)
        self.add_function_code(alias_id, function_code)

    def _require_attached(self, alias_id: int) -> None:
        if alias_id not in self.servers:
            log.error("Server %d not attached to bridge", alias_id)
            raise BridgeError(f"server {alias_id} not attached to bridge")

    def add_function_code(self, alias_id: int, function_code: int) -> None:
        """Forward ``function_code`` requests for ``alias_id`` to its remote server."""
        self._require_attached(alias_id)
        self.register_worker(alias_id, function_code, self._bridge_worker)
        log.debug("FC %02X added for server %02X", function_code, alias_id)

    def deny_function_code(self, alias_id: int, function_code: int) -> None:
        """Answer ``function_code`` requests for ``alias_id`` with ILLEGAL_FUNCTION."""
        self._require_attached(alias_id)
        self.register_worker(alias_id, function_code, self._deny_worker)
        log.debug("FC %02X blocked for server %02X", function_code, alias_id)

    def _bridge_worker(self, request: bytes) -> bytes:
        alias_id, function_code = request[0], request[1]
        server = self.servers.get(alias_id)
        if server is None:
            return error_response(alias_id, function_code, INVALID_SERVER)

        forwarded = bytes((server.server_id,)) + request[1:]
        log.debug("Request (%02X/%02X) sent", server.server_id, function_code)
        if server.server_type is ServerType.TCP_SERVER:
            response = server.client.sync_request(
                forwarded, _token(), server.host, server.port
            )
        else:
            response = server.client.sync_request(forwarded, _token())

        response = bytes(response)
        if not response:
            return response
        return bytes((alias_id,)) + response[1:]

    def _deny_worker(self, request: bytes) -> bytes:
        return error_response(request[0], request[1], ILLEGAL_FUNCTION)