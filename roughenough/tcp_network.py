"""TCP transport: one framed request and one response per connection."""

from __future__ import annotations

import dataclasses
import logging
import selectors
import socket
from dataclasses import dataclass, field
from typing import Any

from roughenough.metrics.types import NetworkMetrics

log = logging.getLogger(__name__)

REQUEST_SIZE = 1024

# The TCP listener uses token 1; client connections are numbered from here.
CLIENT_TOKEN_OFFSET = 1000


@dataclass
class _TcpClient:
    sock: socket.socket
    addr: Any
    buf: bytearray = field(default_factory=lambda: bytearray(REQUEST_SIZE))
    bytes_read: int = 0


class TcpNetworkHandler:
    """Tracks TCP client connections registered with a selector.

    Each connection carries exactly one exchange: the client sends a
    1024-byte framed request, the server answers, then the connection closes.
    Each client is registered for reading with its token id as the key's data.
    """

    def __init__(self) -> None:
        self._next_token_id = CLIENT_TOKEN_OFFSET
        self._clients: dict[int, _TcpClient] = {}
        self._metrics = NetworkMetrics()

    def accept_connections(
        self, listener: socket.socket, selector: selectors.BaseSelector
    ) -> None:
        """Accept every pending connection and register it for readable events."""
        while True:
            try:
                stream, addr = listener.accept()
            except BlockingIOError:
                break
            except OSError as exc:
                log.warning("TCP accept error: %s", exc)
                break

            token_id = self._next_token_id
            self._next_token_id += 1

            try:
                stream.setblocking(False)
                selector.register(stream, selectors.EVENT_READ, data=token_id)
            except (OSError, ValueError, KeyError) as exc:
                log.warning("failed to register TCP client %s: %s", addr, exc)
                stream.close()
                continue

            log.debug("accepted TCP connection from %s, token=%d", addr, token_id)
            self._clients[token_id] = _TcpClient(sock=stream, addr=addr)

    def try_read_request(
        self, token_id: int, selector: selectors.BaseSelector
    ) -> tuple[bytes, Any] | None:
        """Return ``(request_bytes, addr)`` once a full request has arrived.

        Returns None while more data is needed, or if the connection closed
        or failed (the client is then dropped).
        """
        client = self._clients.get(token_id)
        if client is None:
            return None

        view = memoryview(client.buf)
        while client.bytes_read < REQUEST_SIZE:
            try:
                n = client.sock.recv_into(view[client.bytes_read:])
            except BlockingIOError:
                return None
            except OSError as exc:
                log.warning("TCP read error from %s: %s", client.addr, exc)
                self._remove_client(token_id, selector)
                return None

            if n == 0:
                log.debug(
                    "TCP client %s closed early (%d bytes)", client.addr, client.bytes_read
                )
                self._remove_client(token_id, selector)
                return None

            client.bytes_read += n
            log.debug(
                "TCP read %d bytes from %s (total: %d)", n, client.addr, client.bytes_read
            )

        return bytes(client.buf), client.addr

    def send_response(
        self, token_id: int, data: bytes, selector: selectors.BaseSelector
    ) -> None:
        """Send the response on the connection, then close it."""
        client = self._clients.get(token_id)
        if client is not None:
            try:
                client.sock.sendall(data)
            except OSError as exc:
                log.warning("TCP write error to %s: %s", client.addr, exc)
                self._metrics.num_failed_sends += 1
            else:
                log.debug("sent %d byte TCP response to %s", len(data), client.addr)
                self._metrics.num_successful_sends += 1
        self._remove_client(token_id, selector)

    def is_tcp_client(self, token_id: int) -> bool:
        return token_id in self._clients

    def _remove_client(self, token_id: int, selector: selectors.BaseSelector) -> None:
        client = self._clients.pop(token_id, None)
        if client is None:
            return
        try:
            selector.unregister(client.sock)
        except (KeyError, ValueError, OSError):
            pass
        client.sock.close()

    def metrics(self) -> NetworkMetrics:
        """A copy of the current counters."""
        return dataclasses.replace(self._metrics)

    def reset_metrics(self) -> None:
        self._metrics = NetworkMetrics()