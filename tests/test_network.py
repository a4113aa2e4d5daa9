import socket
import threading
import time

import pytest

from roughenough.network import CollectResult, NetworkHandler


@pytest.fixture
def socket_set():
    server = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    server.bind(("127.0.0.1", 0))
    server.setblocking(False)
    client = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    client.bind(("127.0.0.1", 0))
    yield server, client
    server.close()
    client.close()


def wait_for_packets(handler, server, expected_count, timeout_ms):
    """Collect packets until ``expected_count`` arrive or time runs out."""
    deadline = time.monotonic() + timeout_ms / 1000.0
    packets = []
    while len(packets) < expected_count and time.monotonic() < deadline:
        batch = []
        handler.collect_requests(server, lambda data, addr: batch.append((data, addr)))
        packets.extend(batch)
        if not batch:
            time.sleep(0.005)
    return packets


def test_wouldblock_handling(socket_set):
    server, _ = socket_set
    handler = NetworkHandler(10)
    received = []

    result = handler.collect_requests(server, lambda data, addr: received.append(data))

    assert result == CollectResult.EMPTY
    assert received == []
    assert handler.metrics().num_recv_wouldblock == 1


def test_partial_batch_collection(socket_set):
    server, client = socket_set
    handler = NetworkHandler(10)
    server_addr = server.getsockname()

    for i in range(3):
        client.sendto(bytes([i]) * 100, server_addr)

    received = wait_for_packets(handler, server, 3, 500)

    assert len(received) == 3
    assert [data[0] for data, _ in received] == [0, 1, 2]
    assert [len(data) for data, _ in received] == [100, 100, 100]
    assert [addr for _, addr in received] == [client.getsockname()] * 3


def test_send_response_success(socket_set):
    server, client = socket_set
    handler = NetworkHandler(10)

    handler.send_response(server, b"test response", client.getsockname())

    assert handler.metrics().num_successful_sends == 1
    assert handler.metrics().num_failed_sends == 0
    client.settimeout(2.0)
    data, _ = client.recvfrom(1024)
    assert data == b"test response"


def test_send_response_failure_is_counted(socket_set):
    server, client = socket_set
    handler = NetworkHandler(10)
    server.close()

    handler.send_response(server, b"response", client.getsockname())

    assert handler.metrics().num_failed_sends == 1
    assert handler.metrics().num_successful_sends == 0


def test_failed_recv_reports_more_data(socket_set):
    server, _ = socket_set
    handler = NetworkHandler(10)
    server.close()

    result = handler.collect_requests(server, lambda data, addr: None)

    assert result == CollectResult.MORE_DATA
    assert handler.metrics().num_failed_recvs == 1


def test_full_batch_reports_more_data(socket_set):
    server, client = socket_set
    handler = NetworkHandler(2)
    server_addr = server.getsockname()
    for i in range(4):
        client.sendto(bytes([i]), server_addr)
    time.sleep(0.05)

    received = []
    result = handler.collect_requests(server, lambda data, addr: received.append(data))

    assert result == CollectResult.MORE_DATA
    assert received == [b"\x00", b"\x01"]


def test_concurrent_request_handling(socket_set):
    server, _ = socket_set
    handler = NetworkHandler(10)
    server_addr = server.getsockname()
    num_clients = 5
    packets_per_client = 20

    def send(client_id):
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sender:
            sender.bind(("127.0.0.1", 0))
            for packet_id in range(packets_per_client):
                try:
                    sender.sendto(bytes([client_id, packet_id]), server_addr)
                except OSError:
                    pass
                time.sleep(0.0005)

    threads = [threading.Thread(target=send, args=(i,)) for i in range(num_clients)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    total = num_clients * packets_per_client
    received = len(wait_for_packets(handler, server, total, 2000))

    assert received >= total * 9 // 10


def test_rapid_fire_packets(socket_set):
    server, _ = socket_set
    handler = NetworkHandler(100)
    server_addr = server.getsockname()
    stop = threading.Event()
    sent_counts = [0, 0, 0]

    def send(sender_id):
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sender:
            sender.bind(("127.0.0.1", 0))
            while not stop.is_set():
                try:
                    sender.sendto(bytes([sender_id]) * 64, server_addr)
                    sent_counts[sender_id] += 1
                except OSError:
                    pass
                time.sleep(0.0001)

    senders = [threading.Thread(target=send, args=(i,)) for i in range(3)]
    for sender in senders:
        sender.start()
    time.sleep(0.2)

    received = 0
    deadline = time.monotonic() + 0.1
    while time.monotonic() < deadline:
        batch = []
        handler.collect_requests(server, lambda data, addr: batch.append(data))
        received += len(batch)
        if not batch:
            time.sleep(0.001)

    stop.set()
    for sender in senders:
        sender.join()

    assert sum(sent_counts) > 0
    assert received > 0


def test_metrics_accumulation(socket_set):
    server, client = socket_set
    handler = NetworkHandler(2)
    server_addr = server.getsockname()

    for i in range(5):
        client.sendto(bytes([i]), server_addr)

    received = len(wait_for_packets(handler, server, 5, 500))
    assert received > 0

    for _ in range(3):
        handler.send_response(server, b"response", client.getsockname())

    handler.record_failed_poll()
    handler.record_failed_poll()

    metrics = handler.metrics()
    assert metrics.num_recv_wouldblock >= 1
    assert metrics.num_successful_sends == 3
    assert metrics.num_failed_polls == 2

    handler.reset_metrics()
    metrics = handler.metrics()
    assert metrics.num_recv_wouldblock == 0
    assert metrics.num_successful_sends == 0
    assert metrics.num_failed_polls == 0


def test_metrics_returns_a_copy(socket_set):
    handler = NetworkHandler(1)
    snapshot = handler.metrics()

    handler.record_failed_poll()

    assert snapshot.num_failed_polls == 0
    assert handler.metrics().num_failed_polls == 1


def test_callback_exception_propagates(socket_set):
    server, client = socket_set
    handler = NetworkHandler(10)
    server_addr = server.getsockname()

    client.sendto(b"panic", server_addr)
    time.sleep(0.05)
    client.sendto(b"ok", server_addr)
    time.sleep(0.05)

    def explode(data, addr):
        if data == b"panic":
            raise RuntimeError("Test panic")

    with pytest.raises(RuntimeError, match="Test panic"):
        handler.collect_requests(server, explode)

    count = 0
    deadline = time.monotonic() + 0.2
    while count == 0 and time.monotonic() < deadline:
        batch = []
        handler.collect_requests(server, lambda data, addr: batch.append(data))
        count += len(batch)
        if count == 0:
            time.sleep(0.01)

    assert count <= 1