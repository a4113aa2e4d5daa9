"""Aggregated metrics and their JSON snapshot files."""

from __future__ import annotations

import json
import logging
import math
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping

from roughenough.metrics.types import (
    NetworkMetrics,
    RequestMetrics,
    ResponseMetrics,
    WorkerMetrics,
)

log = logging.getLogger(__name__)

_FILENAME_PATTERN = "roughenough-metrics-%Y%m%d-%H%M%S.json"
_BYTES_PER_MB = 1024.0 * 1024.0


class MetricsDirectoryError(Exception):
    """The metrics output directory is missing, not a directory or not writable."""


@dataclass
class AggregatedMetrics:
    """Totals across all workers."""

    network: NetworkMetrics = field(default_factory=NetworkMetrics)
    requests: RequestMetrics = field(default_factory=RequestMetrics)
    responses: ResponseMetrics = field(default_factory=ResponseMetrics)
    total_requests: int = 0
    responses_per_second: float = 0.0
    mbytes_per_second: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "network": self.network.to_dict(),
            "requests": self.requests.to_dict(),
            "responses": self.responses.to_dict(),
            "total_requests": self.total_requests,
            "responses_per_second": self.responses_per_second,
            "mbytes_per_second": self.mbytes_per_second,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AggregatedMetrics:
        return cls(
            network=NetworkMetrics.from_dict(data["network"]),
            requests=RequestMetrics.from_dict(data["requests"]),
            responses=ResponseMetrics.from_dict(data["responses"]),
            total_requests=int(data["total_requests"]),
            responses_per_second=float(data["responses_per_second"]),
            mbytes_per_second=float(data["mbytes_per_second"]),
        )


@dataclass
class MetricsSnapshot:
    """One metrics report: per-worker metrics plus their totals."""

    timestamp: int
    duration_secs: float
    workers: list[WorkerMetrics]
    totals: AggregatedMetrics

    @classmethod
    def from_time(
        cls,
        now: datetime | float,
        duration_secs: float,
        workers: Iterable[WorkerMetrics],
        totals: AggregatedMetrics,
    ) -> MetricsSnapshot:
        """Build a snapshot stamped with ``now`` (a datetime or epoch seconds)."""
        seconds = now.timestamp() if isinstance(now, datetime) else float(now)
        return cls(
            timestamp=math.floor(seconds),
            duration_secs=duration_secs,
            workers=list(workers),
            totals=totals,
        )

    def _as_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "duration_secs": self.duration_secs,
            "workers": [worker.to_dict() for worker in self.workers],
            "totals": self.totals.to_dict(),
        }

    def to_json(self) -> str:
        return json.dumps(self._as_dict(), separators=(",", ":"))

    @classmethod
    def from_json(cls, text: str) -> MetricsSnapshot:
        data = json.loads(text)
        return cls(
            timestamp=int(data["timestamp"]),
            duration_secs=float(data["duration_secs"]),
            workers=[WorkerMetrics.from_dict(worker) for worker in data["workers"]],
            totals=AggregatedMetrics.from_dict(data["totals"]),
        )

    def write_to_file(self, metrics_path: str | os.PathLike[str]) -> str:
        """Atomically write the snapshot into ``metrics_path``; return the file name."""
        directory = Path(metrics_path)
        stamp = datetime.fromtimestamp(self.timestamp, tz=timezone.utc)
        filename = stamp.strftime(_FILENAME_PATTERN)

        file_path = directory / filename
        temp_path = directory / f".{filename}.tmp"

        json_data = self.to_json()
        with open(temp_path, "w", encoding="utf-8") as temp_file:
            temp_file.write(json_data)
            temp_file.flush()
            os.fsync(temp_file.fileno())

        os.replace(temp_path, file_path)

        log.debug("Wrote %d bytes of metrics to %s", len(json_data), file_path)
        return filename


def calc_aggregated_metrics(
    duration_secs: float, workers: Iterable[WorkerMetrics]
) -> AggregatedMetrics:
    """Sum worker metrics and derive rates over ``duration_secs``."""
    total_network = NetworkMetrics()
    total_requests = RequestMetrics()
    total_responses = ResponseMetrics()

    for worker in workers:
        total_network += worker.network
        total_requests += worker.request
        total_responses += worker.response

    request_count = (
        total_requests.num_ok_requests
        + total_requests.num_bad_requests
        + total_requests.num_runt_requests
        + total_requests.num_jumbo_requests
    )

    divisor = max(duration_secs, sys.float_info.epsilon)
    responses_per_second = total_responses.num_responses / divisor
    mbytes_per_second = (total_responses.num_bytes_sent / _BYTES_PER_MB) / divisor

    return AggregatedMetrics(
        network=total_network,
        requests=total_requests,
        responses=total_responses,
        total_requests=request_count,
        responses_per_second=responses_per_second,
        mbytes_per_second=mbytes_per_second,
    )


def validate_metrics_directory(path: str | os.PathLike[str]) -> None:
    """Raise MetricsDirectoryError unless ``path`` is an existing, writable directory."""
    directory = Path(path)
    if not directory.exists():
        raise MetricsDirectoryError(f"Metrics output path does not exist: {directory}")
    if not directory.is_dir():
        raise MetricsDirectoryError(
            f"Metrics output path is not a directory: {directory}"
        )

    test_file = directory / ".write_test"
    try:
        with open(test_file, "w", encoding="utf-8"):
            pass
    except OSError as exc:
        raise MetricsDirectoryError(
            f"Metrics directory is not writable: {directory} ({exc})"
        ) from exc
    try:
        test_file.unlink()
    except OSError:
        pass