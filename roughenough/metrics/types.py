"""Counters kept by server workers, with their JSON-friendly forms."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from typing import Any, Mapping

MAX_BATCH_SIZE = 64


def _counters_to_dict(counters: Any) -> dict[str, int]:
    return {f.name: getattr(counters, f.name) for f in fields(counters)}


def _counters_from_dict(cls: type, data: Mapping[str, Any]) -> dict[str, int]:
    return {f.name: int(data[f.name]) for f in fields(cls)}


class _CounterSet:
    """Mixin for dataclasses whose fields are all plain integer counters."""

    def __iadd__(self, other):
        for f in fields(self):
            setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))
        return self

    def __add__(self, other):
        result = copy.copy(self)
        result += other
        return result


@dataclass
class NetworkMetrics(_CounterSet):
    """Socket level counters."""

    num_recv_wouldblock: int = 0
    num_successful_sends: int = 0
    num_failed_sends: int = 0
    num_failed_polls: int = 0
    num_failed_recvs: int = 0

    def to_dict(self) -> dict[str, int]:
        return _counters_to_dict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NetworkMetrics:
        return cls(**_counters_from_dict(cls, data))


@dataclass
class RequestMetrics(_CounterSet):
    """Counts of received requests by outcome."""

    num_ok_requests: int = 0
    num_bad_requests: int = 0
    num_runt_requests: int = 0
    num_jumbo_requests: int = 0

    def to_dict(self) -> dict[str, int]:
        return _counters_to_dict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RequestMetrics:
        return cls(**_counters_from_dict(cls, data))


@dataclass
class ResponseMetrics:
    """Counts of responses, bytes sent and a histogram of batch sizes."""

    MAX_BATCH_SIZE = MAX_BATCH_SIZE

    num_responses: int = 0
    num_bytes_sent: int = 0
    batch_sizes: list[int] = field(default_factory=lambda: [0] * MAX_BATCH_SIZE)

    def add_batch_size(self, batch_size: int) -> None:
        """Record one batch of ``batch_size`` responses."""
        if not 0 < batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"Invalid batch size: {batch_size}")
        self.num_responses += batch_size
        self.batch_sizes[batch_size - 1] += 1

    def add_bytes_sent(self, num_bytes: int) -> None:
        self.num_bytes_sent += num_bytes

    def counts_as_string(self) -> str:
        """Non-zero histogram buckets as ``"size: count"`` pairs."""
        return ", ".join(
            f"{size}: {count}"
            for size, count in enumerate(self.batch_sizes, start=1)
            if count > 0
        )

    def reset_metrics(self) -> None:
        self.num_responses = 0
        self.num_bytes_sent = 0
        self.batch_sizes = [0] * MAX_BATCH_SIZE

    def __iadd__(self, other: ResponseMetrics) -> ResponseMetrics:
        if len(other.batch_sizes) > len(self.batch_sizes):
            raise ValueError("batch size histogram is longer than the target's")
        self.num_responses += other.num_responses
        self.num_bytes_sent += other.num_bytes_sent
        summed = [a + b for a, b in zip(self.batch_sizes, other.batch_sizes)]
        self.batch_sizes[: len(summed)] = summed
        return self

    def __add__(self, other: ResponseMetrics) -> ResponseMetrics:
        result = copy.deepcopy(self)
        result += other
        return result

    def to_dict(self) -> dict[str, Any]:
        return {
            "num_responses": self.num_responses,
            "num_bytes_sent": self.num_bytes_sent,
            "batch_sizes": list(self.batch_sizes),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ResponseMetrics:
        return cls(
            num_responses=int(data["num_responses"]),
            num_bytes_sent=int(data["num_bytes_sent"]),
            batch_sizes=[int(count) for count in data["batch_sizes"]],
        )


@dataclass
class WorkerMetrics:
    """Metrics published by one worker."""

    worker_id: int
    network: NetworkMetrics = field(default_factory=NetworkMetrics)
    request: RequestMetrics = field(default_factory=RequestMetrics)
    response: ResponseMetrics = field(default_factory=ResponseMetrics)

    def to_dict(self) -> dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "network": self.network.to_dict(),
            "request": self.request.to_dict(),
            "response": self.response.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WorkerMetrics:
        return cls(
            worker_id=int(data["worker_id"]),
            network=NetworkMetrics.from_dict(data["network"]),
            request=RequestMetrics.from_dict(data["request"]),
            response=ResponseMetrics.from_dict(data["response"]),
        )