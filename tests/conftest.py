import json
import queue
import threading

import pytest
import requests
import websocket

from circuitry_mcp import channel as channel_mod
from circuitry_mcp.channel import PeerChannel
from circuitry_mcp.models import Endpoint

BASE_URL = "http://eserver.test:3030"
ACCESS_KEY = "key-123"

_MISSING = object()
_CLOSE = object()


class FakeResponse:
    def __init__(self, status_code=200, json_data=_MISSING, text=""):
        self.status_code = status_code
        self._json = json_data
        self.text = text if text or json_data is _MISSING else json.dumps(json_data)

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._json is _MISSING:
            raise ValueError("no JSON body")
        return self._json


class FakeSession:
    """Stands in for requests.Session; routes are keyed by (METHOD, path)."""

    def __init__(self):
        self.headers = {}
        self.routes = {}
        self.calls = []

    def route(self, method, path, response):
        self.routes[(method, path)] = response

    def request(self, method, url, timeout=None, json=None):
        path = url[len(BASE_URL):]
        self.calls.append({"method": method, "path": path, "json": json, "timeout": timeout})
        response = self.routes.get((method, path))
        if response is None:
            raise requests.ConnectionError(f"no route for {method} {path}")
        if isinstance(response, Exception):
            raise response
        return response

    def paths(self):
        return [c["path"] for c in self.calls]


class FakeWebSocket:
    """In-memory websocket-client stand-in: frames pushed by the test come out of recv()."""

    def __init__(self, fail_connect=False):
        self.fail_connect = fail_connect
        self.url = None
        self.header = None
        self.sent = []
        self.closed = False
        self._inbox = queue.Queue()
        self._sent_cond = threading.Condition()

    def connect(self, url, timeout=None, header=None):
        if self.fail_connect:
            raise websocket.WebSocketException("connection refused")
        self.url = url
        self.header = header

    def settimeout(self, timeout):
        pass

    def send(self, data):
        with self._sent_cond:
            self.sent.append(json.loads(data))
            self._sent_cond.notify_all()

    def recv(self):
        item = self._inbox.get()
        if item is _CLOSE:
            raise websocket.WebSocketConnectionClosedException("closed")
        return item

    def close(self):
        self.closed = True
        self._inbox.put(_CLOSE)

    # test helpers

    def push(self, frame):
        self._inbox.put(frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self):
        """Simulate the Peer closing the connection."""
        self._inbox.put(_CLOSE)

    def wait_for_sent(self, count, timeout=2.0):
        with self._sent_cond:
            ok = self._sent_cond.wait_for(lambda: len(self.sent) >= count, timeout)
        assert ok, f"expected {count} sent frame(s), got {len(self.sent)}"
        return self.sent[count - 1]


@pytest.fixture
def endpoint():
    return Endpoint(base_url=BASE_URL + "/", access_key=ACCESS_KEY)


@pytest.fixture
def session():
    return FakeSession()


class SocketFactory(list):
    """Replaces websocket.WebSocket and keeps every socket it hands out, in order."""

    def __init__(self):
        super().__init__()
        self.fail_connect = False

    def __call__(self, *args, **kwargs):
        ws = FakeWebSocket(fail_connect=self.fail_connect)
        self.append(ws)
        return ws


@pytest.fixture
def sockets(monkeypatch):
    factory = SocketFactory()
    monkeypatch.setattr(channel_mod.websocket, "WebSocket", factory)
    return factory


@pytest.fixture
def make_channel(endpoint, session):
    """Build a channel whose reconnect timer is recorded instead of started."""

    def _make(**kwargs):
        ch = PeerChannel(endpoint, session=session, **kwargs)
        ch.scheduled = []
        ch._schedule = lambda delay, fn: ch.scheduled.append((delay, fn))
        return ch

    return _make
