# roughenough

Building blocks for a Roughtime time server: command-line configuration,
UDP and TCP transport handling, and per-worker metrics that are aggregated,
logged and written out as JSON snapshot files.

## Installation

```
pip install roughenough
```

To run the test suite:

```
pip install "roughenough[test]"
pytest
```

## Modules

### `roughenough.args`

`parse_args(argv=None)` turns a command line into an `Args` dataclass. Every
option falls back to a `ROUGHENOUGH_*` environment variable, then to a default:

| Option | Environment variable | Default |
| --- | --- | --- |
| `-b`, `--batch-size` (1 to 64) | `ROUGHENOUGH_BATCH_SIZE` | 64 |
| `-i`, `--interface` | `ROUGHENOUGH_INTERFACE` | `0.0.0.0` |
| `-p`, `--port` | `ROUGHENOUGH_PORT` | 2003 |
| `--tcp-port` | `ROUGHENOUGH_TCP_PORT` | none (TCP off) |
| `-j`, `--num-threads` | `ROUGHENOUGH_NUM_THREADS` | number of CPUs |
| `-P`, `--protocol` (`14`) | `ROUGHENOUGH_PROTOCOL` | `14` |
| `--fixed-offset` (seconds) | `ROUGHENOUGH_FIXED_OFFSET` | 0 |
| `--rotation-interval` (hours) | `ROUGHENOUGH_ROTATION_INTERVAL` | 24 |
| `--metrics-interval` (seconds) | `ROUGHENOUGH_METRICS_INTERVAL` | 60 |
| `--seed` | `ROUGHENOUGH_SEED` | empty |
| `--seed-backend` (`memory`, `krs`, `ssh-agent`) | `ROUGHENOUGH_SEED_BACKEND` | `memory` |
| `--metrics-output` | `ROUGHENOUGH_METRICS_OUTPUT` | none |

`-q`/`--quiet` and `-v`/`--verbose` (repeatable) cannot be combined;
`-V`/`--version` prints the version.

On `Args`, `udp_socket_addr()` and `tcp_socket_addr()` return `(host, port)`
tuples (the latter is `None` when no TCP port is set) and raise `ValueError`
if the interface is not an IP address. `rotation_period()` returns the key
rotation interval as a `timedelta`. `ProtocolVersionArg` and `SeedBackendArg`
are the enums behind `--protocol` and `--seed-backend`.

### `roughenough.network`

`NetworkHandler(batch_size)` reads up to `batch_size` datagrams per call of
`collect_requests(sock, callback)` from a non-blocking UDP socket, passing each
`(data, addr)` to the callback. It returns `CollectResult.EMPTY` once the
socket would block, or `CollectResult.MORE_DATA` otherwise.
`send_response(sock, data, addr)` sends a reply. Successes, failures, would-block
reads and `record_failed_poll()` calls are counted in a `NetworkMetrics`
returned by `metrics()` and cleared by `reset_metrics()`.

### `roughenough.tcp_network`

`TcpNetworkHandler` works with a `selectors` selector. Each connection carries
one exchange:

- `accept_connections(listener, selector)` accepts every pending client and
  registers it for reading, with a token id (from 1000 upward) as the key's data.
- `try_read_request(token_id, selector)` returns `(request_bytes, addr)` once
  1024 bytes have arrived, or `None` while more is needed or after the client
  closed or failed.
- `send_response(token_id, data, selector)` writes the reply and closes the
  connection.

`is_tcp_client(token_id)`, `metrics()` and `reset_metrics()` complete the set.

### `roughenough.metrics`

- `metrics.types`: the `NetworkMetrics`, `RequestMetrics`, `ResponseMetrics`
  and `WorkerMetrics` dataclasses. They support `+=`, and `to_dict()` /
  `from_dict()`. `ResponseMetrics` keeps a histogram of batch sizes from 1 to 64:
  `add_batch_size()` raises `ValueError` outside that range, and
  `counts_as_string()` lists the non-zero buckets.
- `metrics.snapshot`: `calc_aggregated_metrics(duration_secs, workers)` sums
  worker metrics into an `AggregatedMetrics` with total requests, responses per
  second and MB per second. `MetricsSnapshot` converts to and from JSON, and its
  `write_to_file(directory)` writes the file atomically as
  `roughenough-metrics-YYYYMMDD-HHMMSS.json` (UTC) and returns the file name.
  `validate_metrics_directory(path)` raises `MetricsDirectoryError` unless the
  path exists, is a directory and is writable.
- `metrics.aggregator`: `MetricsAggregator` takes `WorkerMetrics` from a
  `queue.Queue`, keeps a running total per worker, and reports every
  `reporting_interval` seconds until a `threading.Event` is cleared. Reports are
  logged, and a snapshot file is also written when a metrics path is given.

## Watching metrics output

To follow the JSON files written to a metrics directory:

```
roughenough-metrics-watcher /var/log/roughenough
```

The watcher checks the directory twice a second. For each new `.json` file it
prints the aggregate request, response and network totals. When more than one
worker reported, it also prints a per-worker summary. Stop it with Ctrl+C. The
same functions are available as `roughenough.watcher.get_json_files`,
`format_metrics` and `process_new_metrics_files`.

## Example

```python
from roughenough.metrics.types import WorkerMetrics
from roughenough.metrics.snapshot import calc_aggregated_metrics

workers = [WorkerMetrics(worker_id=0), WorkerMetrics(worker_id=1)]
workers[0].request.num_ok_requests = 10
totals = calc_aggregated_metrics(60.0, workers)
print(totals.total_requests)  # 10
```

## What this package does not do

This package has no server command. It does not:

- parse Roughtime requests
- build Merkle trees
- sign responses
- manage long-term or online keys
- run worker threads

`NetworkHandler` and `TcpNetworkHandler` move bytes, so the code that decodes
requests and produces responses must come from elsewhere. The `--seed` and
`--seed-backend` options are parsed but not acted on.