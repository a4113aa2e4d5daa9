"""Batched receive and send of UDP datagrams for a server worker."""

from __future__ import annotations

import dataclasses
import socket
from enum import Enum
from typing import Any, Callable

from roughenough.metrics.types import NetworkMetrics


class CollectResult(Enum):
    """Outcome of one round of request collection."""

    EMPTY = "empty"
    """The socket was drained; there is no more data."""
    MORE_DATA = "more_data"
    """There may be more data left on the socket."""


class NetworkHandler:
    """Reads up to ``batch_size`` datagrams per round and sends responses."""

    RECV_BUFFER_SIZE = 1024

    def __init__(self, batch_size: int) -> None:
        self.batch_size = batch_size
        self._metrics = NetworkMetrics()

    def collect_requests(
        self,
        sock: socket.socket,
        callback: Callable[[bytes, Any], None],
    ) -> CollectResult:
        """Receive datagrams from a non-blocking socket, handing each to ``callback``."""
        for _ in range(self.batch_size):
            try:
                data, src_addr = sock.recvfrom(self.RECV_BUFFER_SIZE)
            except BlockingIOError:
                self._metrics.num_recv_wouldblock += 1
                return CollectResult.EMPTY
            except OSError:
                self._metrics.num_failed_recvs += 1
                return CollectResult.MORE_DATA
            callback(data, src_addr)
        return CollectResult.MORE_DATA

    def send_response(self, sock: socket.socket, data: bytes, addr: Any) -> None:
        """Send ``data`` to ``addr``, counting success or failure."""
        try:
            sock.sendto(data, addr)
        except OSError:
            self._metrics.num_failed_sends += 1
        else:
            self._metrics.num_successful_sends += 1

    def metrics(self) -> NetworkMetrics:
        """A copy of the current counters."""
        return dataclasses.replace(self._metrics)

    def reset_metrics(self) -> None:
        self._metrics = NetworkMetrics()

    def record_failed_poll(self) -> None:
        self._metrics.num_failed_polls += 1