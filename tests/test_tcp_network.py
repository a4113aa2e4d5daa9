import selectors
import socket
import time

import pytest

from roughenough.tcp_network import REQUEST_SIZE, TcpNetworkHandler

FIRST_TOKEN = 1000


@pytest.fixture
def listener():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(16)
    sock.setblocking(False)
    yield sock
    sock.close()


@pytest.fixture
def selector():
    sel = selectors.DefaultSelector()
    yield sel
    sel.close()


@pytest.fixture
def clients():
    opened = []
    yield opened
    for sock in opened:
        sock.close()


def connect(listener, clients):
    client = socket.create_connection(listener.getsockname(), timeout=2.0)
    clients.append(client)
    return client


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        result = predicate()
        if result:
            return result
        time.sleep(0.005)
    return predicate()


def accept_one(handler, listener, selector, token_id=FIRST_TOKEN):
    def attempt():
        handler.accept_connections(listener, selector)
        return handler.is_tcp_client(token_id)

    return wait_until(attempt)


def test_accept_registers_client_with_token(listener, selector, clients):
    handler = TcpNetworkHandler()
    connect(listener, clients)

    assert accept_one(handler, listener, selector)
    assert not handler.is_tcp_client(FIRST_TOKEN - 1)
    assert [key.data for key in selector.get_map().values()] == [FIRST_TOKEN]


def test_accept_assigns_increasing_tokens(listener, selector, clients):
    handler = TcpNetworkHandler()
    connect(listener, clients)
    connect(listener, clients)

    assert accept_one(handler, listener, selector, FIRST_TOKEN + 1)
    assert handler.is_tcp_client(FIRST_TOKEN)
    tokens = sorted(key.data for key in selector.get_map().values())
    assert tokens == [FIRST_TOKEN, FIRST_TOKEN + 1]


def test_accept_with_nothing_pending(listener, selector):
    handler = TcpNetworkHandler()

    handler.accept_connections(listener, selector)

    assert not handler.is_tcp_client(FIRST_TOKEN)
    assert len(selector.get_map()) == 0


def test_full_request_is_returned(listener, selector, clients):
    handler = TcpNetworkHandler()
    client = connect(listener, clients)
    assert accept_one(handler, listener, selector)

    payload = bytes(range(256)) * (REQUEST_SIZE // 256)
    client.sendall(payload)

    result = wait_until(lambda: handler.try_read_request(FIRST_TOKEN, selector))

    assert result is not None
    data, addr = result
    assert data == payload
    assert addr == client.getsockname()
    assert handler.is_tcp_client(FIRST_TOKEN)


def test_request_arriving_in_pieces(listener, selector, clients):
    handler = TcpNetworkHandler()
    client = connect(listener, clients)
    assert accept_one(handler, listener, selector)

    first = b"\x01" * 100
    rest = b"\x02" * (REQUEST_SIZE - len(first))
    client.sendall(first)
    time.sleep(0.05)

    assert handler.try_read_request(FIRST_TOKEN, selector) is None
    assert handler.is_tcp_client(FIRST_TOKEN)

    client.sendall(rest)
    result = wait_until(lambda: handler.try_read_request(FIRST_TOKEN, selector))

    assert result is not None
    assert result[0] == first + rest


def test_unknown_token_reads_nothing(selector):
    handler = TcpNetworkHandler()

    assert handler.try_read_request(FIRST_TOKEN, selector) is None


def test_early_close_drops_client(listener, selector, clients):
    handler = TcpNetworkHandler()
    client = connect(listener, clients)
    assert accept_one(handler, listener, selector)

    client.sendall(b"\x00" * 10)
    client.close()

    deadline = time.monotonic() + 2.0
    result = handler.try_read_request(FIRST_TOKEN, selector)
    while handler.is_tcp_client(FIRST_TOKEN) and time.monotonic() < deadline:
        assert result is None
        time.sleep(0.005)
        result = handler.try_read_request(FIRST_TOKEN, selector)

    assert result is None
    assert handler.is_tcp_client(FIRST_TOKEN) is False
    assert len(selector.get_map()) == 0


def test_send_response_delivers_and_closes(listener, selector, clients):
    handler = TcpNetworkHandler()
    client = connect(listener, clients)
    assert accept_one(handler, listener, selector)

    client.sendall(b"\x00" * REQUEST_SIZE)
    assert wait_until(lambda: handler.try_read_request(FIRST_TOKEN, selector))

    handler.send_response(FIRST_TOKEN, b"ROUGHTIM response", selector)

    chunks = []
    while True:
        chunk = client.recv(4096)
        if not chunk:
            break
        chunks.append(chunk)

    assert b"".join(chunks) == b"ROUGHTIM response"
    assert handler.metrics().num_successful_sends == 1
    assert handler.metrics().num_failed_sends == 0
    assert not handler.is_tcp_client(FIRST_TOKEN)
    assert len(selector.get_map()) == 0


def test_send_response_to_unknown_token_counts_nothing(selector):
    handler = TcpNetworkHandler()

    handler.send_response(FIRST_TOKEN, b"response", selector)

    metrics = handler.metrics()
    assert metrics.num_successful_sends == 0
    assert metrics.num_failed_sends == 0


def test_reset_metrics(listener, selector, clients):
    handler = TcpNetworkHandler()
    connect(listener, clients)
    assert accept_one(handler, listener, selector)
    handler.send_response(FIRST_TOKEN, b"response", selector)
    assert handler.metrics().num_successful_sends == 1

    handler.reset_metrics()

    assert handler.metrics().num_successful_sends == 0