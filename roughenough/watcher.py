"""Watch a metrics directory and print each new metrics file as it appears."""

from __future__ import annotations

import json
import os
import sys
import time
from pathlib import Path
from typing import Sequence

from roughenough.metrics.snapshot import MetricsSnapshot

_POLL_SECONDS = 0.5


def get_json_files(directory: str | os.PathLike[str]) -> list[Path]:
    """Regular files in ``directory`` with a ``.json`` extension, sorted by name."""
    return sorted(
        path
        for path in Path(directory).iterdir()
        if path.is_file() and path.suffix == ".json"
    )


def format_metrics(filename: str, snapshot: MetricsSnapshot) -> str:
    """Human-readable summary of one metrics snapshot."""
    totals = snapshot.totals
    requests = totals.requests
    network = totals.network
    lines = [
        f"=== New Metrics File: {filename} ===",
        f"Timestamp: {snapshot.timestamp}",
        f"Duration: {snapshot.duration_secs:.1f}s",
        "",
        "Aggregate Totals:",
        f"  Total Requests: {totals.total_requests}",
        f"  - OK: {requests.num_ok_requests}",
        f"  - Bad: {requests.num_bad_requests}",
        f"  - Runt: {requests.num_runt_requests}",
        f"  - Jumbo: {requests.num_jumbo_requests}",
        "",
        f"  Responses: {totals.responses.num_responses}",
        f"  - Rate: {totals.responses_per_second:.2f} req/s",
        f"  - Bandwidth: {totals.mbytes_per_second:.2f} MB/s",
        "",
        "  Network:",
        f"  - Successful sends: {network.num_successful_sends}",
        f"  - Failed sends: {network.num_failed_sends}",
        f"  - Failed polls: {network.num_failed_polls}",
        f"  - Failed recvs: {network.num_failed_recvs}",
        f"  - Recv would block: {network.num_recv_wouldblock}",
        "",
    ]

    if len(snapshot.workers) > 1:
        lines.append("  Per-Worker Summary:")
        for worker in snapshot.workers:
            req = worker.request
            worker_total = (
                req.num_ok_requests
                + req.num_bad_requests
                + req.num_runt_requests
                + req.num_jumbo_requests
            )
            responses = worker.response.num_responses
            if worker_total > 0 or responses > 0:
                lines.append(
                    f"    Worker {worker.worker_id}: {worker_total} requests, "
                    f"{responses} responses"
                )

    lines.append("\n")
    return "\n".join(lines) + "\n"


def _process_metrics_file(path: Path, filename: str) -> None:
    try:
        contents = path.read_text(encoding="utf-8")
    except OSError as exc:
        print(f"Error reading {filename}: {exc}", file=sys.stderr)
        return

    try:
        snapshot = MetricsSnapshot.from_json(contents)
    except (ValueError, KeyError, TypeError) as exc:
        print(f"Error parsing {filename}: {exc}", file=sys.stderr)
        return

    print(format_metrics(filename, snapshot), end="")


def process_new_metrics_files(
    metrics_dir: str | os.PathLike[str], seen_files: set[str]
) -> list[str]:
    """Print every JSON file not yet in ``seen_files``; return their names."""
    try:
        json_files = get_json_files(metrics_dir)
    except OSError as exc:
        print(f"Error reading directory: {exc}", file=sys.stderr)
        return []

    new_files = []
    for path in json_files:
        filename = path.name
        if filename in seen_files:
            continue
        seen_files.add(filename)
        new_files.append(filename)
        _process_metrics_file(path, filename)
    return new_files


def main(argv: Sequence[str] | None = None) -> int:
    """Watch the directory named on the command line until interrupted."""
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) != 1:
        print("Usage: metrics_watcher <metrics-directory>", file=sys.stderr)
        return 1

    metrics_dir = Path(args[0])
    if not metrics_dir.is_dir():
        print(f"Error: {metrics_dir} is not a valid directory", file=sys.stderr)
        return 1

    print(f"Watching metrics directory: {metrics_dir}")
    print("Press Ctrl+C to stop\n")

    seen_files: set[str] = set()
    try:
        while True:
            process_new_metrics_files(metrics_dir, seen_files)
            time.sleep(_POLL_SECONDS)
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())