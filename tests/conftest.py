from __future__ import annotations
import socket
import threading
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from eth_metrics_exporter.metrics import MetricsSink
from eth_metrics_exporter.types import SubscriptionError


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeStream:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


class FakeProvider:
    """Stand-in for the node's event-stream capability."""

    def __init__(self, topics: Optional[Dict[str, bool]] = None, fail: bool = False):
        self.topics = topics if topics is not None else {"head": True, "block": True}
        self.fail = fail
        self.calls: List[Tuple[frozenset, Callable]] = []
        self.streams: List[FakeStream] = []
        self.subscribed = threading.Event()

    def supported_topics(self) -> Dict[str, bool]:
        return dict(self.topics)

    def subscribe(self, topics, on_event, stop_event):
        self.calls.append((frozenset(topics), on_event))
        if self.fail:
            raise SubscriptionError("node refused the subscription")
        stream = FakeStream()
        self.streams.append(stream)
        self.subscribed.set()
        return stream


class FakeClient:
    def __init__(self, provider: Optional[FakeProvider]):
        self.provider = provider
        self.url = "http://beacon.test"

    def events_provider(self):
        return self.provider


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def fake_client(provider):
    return FakeClient(provider)


@pytest.fixture
def sink():
    return MetricsSink("test", {"ethereum_role": "consensus", "node_name": "node-1"})


@pytest.fixture
def const_labels():
    return {"ethereum_role": "consensus", "node_name": "node-1"}


class SilentEventServer:
    """Answers every request with event-stream headers, then sends nothing."""

    HEADERS = (
        b"HTTP/1.1 200 OK\r\n"
        b"Content-Type: text/event-stream\r\n"
        b"Cache-Control: no-cache\r\n"
        b"\r\n"
    )

    def __init__(self):
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen()
        self.sock.settimeout(0.2)
        self.connections: List[socket.socket] = []
        self._stop = threading.Event()
        self.thread = threading.Thread(target=self._serve, daemon=True)
        self.thread.start()

    @property
    def url(self) -> str:
        return f"http://127.0.0.1:{self.sock.getsockname()[1]}"

    def _serve(self):
        while not self._stop.is_set():
            try:
                conn, _ = self.sock.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            conn.recv(65536)
            self.connections.append(conn)
            conn.sendall(self.HEADERS)

    def close(self):
        self._stop.set()
        self.thread.join(timeout=5)
        for conn in self.connections:
            conn.close()
        self.sock.close()


@pytest.fixture
def silent_server():
    server = SilentEventServer()
    yield server
    server.close()
