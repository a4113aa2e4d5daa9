"""Periodic collection and reporting of metrics published by worker threads."""

from __future__ import annotations

import logging
import queue
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from roughenough.metrics.snapshot import (
    AggregatedMetrics,
    MetricsSnapshot,
    calc_aggregated_metrics,
)
from roughenough.metrics.types import WorkerMetrics

log = logging.getLogger(__name__)

_POLL_SECONDS = 0.5
_BYTES_PER_MB = 1024.0 * 1024.0


class MetricsAggregator:
    """Accumulates worker metrics from a queue and reports them at a fixed interval.

    ``keep_running`` is an event that stays set for as long as collection should
    continue; ``clock`` returns the current time in whole epoch seconds.
    """

    def __init__(
        self,
        metrics_channel: queue.Queue,
        num_workers: int,
        reporting_interval: float,
        keep_running: threading.Event,
        clock: Callable[[], int],
        metrics_path: str | Path | None,
    ) -> None:
        self.metrics_channel = metrics_channel
        self.aggregated_metrics = [
            WorkerMetrics(worker_id=worker_id) for worker_id in range(num_workers)
        ]
        self.reporting_interval = reporting_interval
        self.keep_running = keep_running
        self.clock = clock
        self.metrics_path = Path(metrics_path) if metrics_path is not None else None

    def collect_pending(self) -> int:
        """Fold every queued worker snapshot into its accumulator; return how many."""
        count = 0
        while True:
            try:
                metrics: WorkerMetrics = self.metrics_channel.get_nowait()
            except queue.Empty:
                return count
            accumulator = self.aggregated_metrics[metrics.worker_id]
            accumulator.network += metrics.network
            accumulator.request += metrics.request
            accumulator.response += metrics.response
            count += 1

    def run(self) -> None:
        """Collect and report until ``keep_running`` is cleared."""
        log.info("Reporting metrics every %ss", self.reporting_interval)

        last_report_time = self.clock()
        next_report = last_report_time + self.reporting_interval

        while self.keep_running.is_set():
            time.sleep(_POLL_SECONDS)
            self.collect_pending()

            now = self.clock()
            if now >= next_report:
                self.report_metrics(float(now - last_report_time))
                last_report_time = now
                next_report = now + self.reporting_interval

        log.info("Metrics collection shutting down")

    def report_metrics(self, elapsed_secs: float) -> AggregatedMetrics:
        """Log the cumulative totals and, if configured, write a snapshot file."""
        now = datetime.now(timezone.utc)
        aggregated = calc_aggregated_metrics(elapsed_secs, self.aggregated_metrics)

        log.debug("[METRICS] Cumulative metrics after %.1fs", elapsed_secs)
        network = aggregated.network
        log.info(
            "Network: send_ok=%d send_fail=%d poll_fail=%d recv_fail=%d recv_wouldblock=%d",
            network.num_successful_sends,
            network.num_failed_sends,
            network.num_failed_polls,
            network.num_failed_recvs,
            network.num_recv_wouldblock,
        )
        requests = aggregated.requests
        log.info(
            "Requests: total=%d ok=%d bad=%d runt=%d jumbo=%d",
            aggregated.total_requests,
            requests.num_ok_requests,
            requests.num_bad_requests,
            requests.num_runt_requests,
            requests.num_jumbo_requests,
        )
        log.info(
            "Responses: total=%d bytes=%.1fMB, batch sizes=%s",
            aggregated.responses.num_responses,
            aggregated.responses.num_bytes_sent / _BYTES_PER_MB,
            aggregated.responses.counts_as_string(),
        )

        if self.metrics_path is not None:
            snapshot = MetricsSnapshot.from_time(
                now,
                elapsed_secs,
                [
                    WorkerMetrics.from_dict(worker.to_dict())
                    for worker in self.aggregated_metrics
                ],
                aggregated,
            )
            try:
                snapshot.write_to_file(self.metrics_path)
            except OSError as exc:
                log.error("Failed to write metrics: %s", exc)

        return aggregated