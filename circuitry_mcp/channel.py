"""
Remote call channel between the MCP server and Circuitry's EServer.

Two transports reach the same Peer:

  HTTP       one-shot request/response against the EServer REST surface
  WebSocket  a persistent connection to /circuitry/realtime, used for
             low-latency API calls and unsolicited pushes from the Peer

call() picks the transport once per call: the socket when it is connected,
HTTP otherwise. Both produce the same result/error contract.

Frame format (JSON, both directions):

  {"type": "<kind>", "payload": <any>, "timestamp": <epoch ms>}

Kinds:
  api_request      outbound call       payload {method, args, requestId}
  api_response     reply to a call     payload {requestId, success, result?, error?}
  prompt           push from the Peer  payload {id, question, timestamp, metadata?}
  ping / pong      keepalive, no payload
  prompt_response, status   accepted by the Peer, never handled here

The access key travels in the Authorization header on every HTTP request and
on the WebSocket upgrade. It is never put into a frame or request body.
"""
import enum
import json
import logging
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable
from urllib.parse import quote

import requests
import websocket  # websocket-client

from circuitry_mcp.errors import (
    CallTimeoutError,
    CircuitryError,
    ConnectivityError,
    ProtocolError,
    RemoteError,
)
from circuitry_mcp.models import (
    AgentChatResult,
    AgentPollResult,
    ApiResponse,
    ConnectionResult,
    ConnectionState,
    Endpoint,
    FileReadResult,
    PeerStatus,
    Prompt,
)

log = logging.getLogger("circuitry_mcp.channel")

_CALL_TIMEOUT = 30.0            # seconds before a socket call is abandoned
_CONNECT_TIMEOUT = 5            # seconds for the WS handshake
_PROBE_TIMEOUT = 5
_HTTP_TIMEOUT = 30
_RECONNECT_BASE_DELAY = 1.0     # seconds, doubled per attempt
_MAX_RECONNECT_ATTEMPTS = 5

CONNECT_SOURCE = "claude-code-cli"
AGENT_MODE = "agent+mcp"

PromptObserver = Callable[[Prompt], None]


class Transport(enum.Enum):
    SOCKET = "socket"
    HTTP = "http"


@dataclass
class PendingCall:
    """One in-flight socket call, owned by the channel until resolved or abandoned."""
    request_id: str
    event: threading.Event = field(default_factory=threading.Event)
    response: ApiResponse | None = None
    error: str | None = None


def _now_ms() -> int:
    return int(time.time() * 1000)


def new_request_id() -> str:
    return f"req_{_now_ms()}_{secrets.token_hex(8)}"


def reconnect_delay(attempt: int) -> float:
    """Backoff in seconds before reconnect attempt n (1-indexed)."""
    return _RECONNECT_BASE_DELAY * 2 ** (attempt - 1)


def parse_frame(raw: str) -> dict:
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"bad JSON: {exc}") from exc
    if not isinstance(frame, dict) or not isinstance(frame.get("type"), str):
        raise ProtocolError("frame is not an object with a string 'type'")
    return frame


def _compact(d: dict) -> dict:
    """Drop None values so optional fields are absent on the wire."""
    return {k: v for k, v in d.items() if v is not None}


class PeerChannel:
    """
    Client for one EServer, shared by the whole process.

    The channel is the only owner of the socket handle and the pending-call
    map; both are guarded by _lock. A daemon thread reads inbound frames for
    as long as the socket stays open.
    """

    def __init__(self, endpoint: Endpoint, session: requests.Session | None = None,
                 call_timeout: float = _CALL_TIMEOUT):
        self.endpoint = endpoint
        self.call_timeout = call_timeout
        self._http = session if session is not None else requests.Session()
        self._http.headers.update(endpoint.headers())
        self._ws: websocket.WebSocket | None = None
        self._lock = threading.Lock()
        self._pending: dict[str, PendingCall] = {}
        self._prompt_observers: list[PromptObserver] = []
        self._reconnect_attempts = 0
        self._max_reconnect_attempts = _MAX_RECONNECT_ATTEMPTS
        self._reconnect_timer: threading.Timer | None = None
        self.state = ConnectionState.DISCONNECTED

    # ── HTTP plumbing ─────────────────────────────────────────

    def _request(self, method: str, path: str, what: str,
                 timeout: float = _HTTP_TIMEOUT, **kwargs) -> requests.Response:
        url = f"{self.endpoint.base_url}{path}"
        try:
            return self._http.request(method, url, timeout=timeout, **kwargs)
        except requests.RequestException as exc:
            raise RemoteError(f"{what}: {exc}") from exc

    @staticmethod
    def _check(resp: requests.Response, what: str) -> None:
        if not resp.ok:
            raise RemoteError(f"{what}: {resp.status_code} - {resp.text}",
                              status_code=resp.status_code)

    @staticmethod
    def _json(resp: requests.Response, what: str) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            raise RemoteError(f"{what}: invalid JSON in response") from exc

    @classmethod
    def _json_object(cls, resp: requests.Response, what: str) -> dict:
        data = cls._json(resp, what)
        if not isinstance(data, dict):
            raise RemoteError(f"{what}: expected a JSON object, got {type(data).__name__}")
        return data

    # ── Liveness and status ───────────────────────────────────

    def probe(self) -> bool:
        """Return True if the EServer answers /ping. Never raises."""
        try:
            resp = self._http.request("GET", f"{self.endpoint.base_url}/ping",
                                      timeout=_PROBE_TIMEOUT)
            return resp.ok
        except requests.RequestException as exc:
            log.debug("Ping failed: %s", exc)
            return False

    def get_status(self) -> PeerStatus:
        try:
            resp = self._request("GET", "/status", "Status check failed")
            if resp.ok:
                data = self._json_object(resp, "Status check failed")
                return PeerStatus(
                    running=True,
                    version=data.get("version"),
                    uptime=data.get("uptime"),
                    circuitry_connected=data.get("circuitryConnected"),
                )
        except RemoteError as exc:
            log.warning("Status check failed: %s", exc)
        return PeerStatus(running=False)

    # ── Connection permission ─────────────────────────────────

    def request_connection(self) -> ConnectionResult:
        """
        Ask the Circuitry user to approve this session. The EServer shows a
        dialog and answers once the user decides. Never raises.
        """
        try:
            resp = self._request("POST", "/mcp/connect", "Connection request failed",
                                 json={"source": CONNECT_SOURCE, "timestamp": _now_ms()})
            if not resp.ok:
                return ConnectionResult(approved=False,
                                        message=f"Connection request failed: {resp.text}")
            data = self._json_object(resp, "Connection request failed")
            return ConnectionResult(approved=bool(data.get("approved")),
                                    message=data.get("message"))
        except RemoteError as exc:
            log.warning("Connection request failed: %s", exc)
            return ConnectionResult(approved=False, message=str(exc))

    def get_connection_status(self) -> bool:
        """Whether the EServer already holds an approval for us."""
        try:
            resp = self._request("GET", "/mcp/status", "Connection status check failed")
            if resp.ok:
                data = self._json_object(resp, "Connection status check failed")
                return bool(data.get("approved"))
        except RemoteError as exc:
            log.warning("Connection status check failed: %s", exc)
        return False

    # ── Agent delegation ──────────────────────────────────────

    def send_agent_chat(self, message: str, context: dict | None = None) -> AgentChatResult:
        resp = self._request("POST", "/agent/chat", "Agent chat failed",
                             json={"message": message, "context": context, "mode": AGENT_MODE})
        self._check(resp, "Agent chat failed")
        data = self._json_object(resp, "Agent chat failed")
        return AgentChatResult(chat_id=data.get("chatId", ""),
                               status=data.get("status") or "pending")

    def poll_agent_response(self, chat_id: str) -> AgentPollResult:
        """Poll a chat started by send_agent_chat. Failures come back as status=error."""
        path = f"/agent/poll/{quote(chat_id, safe='')}"
        try:
            resp = self._request("GET", path, "Poll failed")
            if not resp.ok:
                return AgentPollResult(status="error", error=f"Poll failed: {resp.status_code}")
            data = self._json_object(resp, "Poll failed")
        except RemoteError as exc:
            log.warning("Agent poll failed: %s", exc)
            return AgentPollResult(status="error", error=str(exc))
        return AgentPollResult(
            status=data.get("status", "error"),
            response=data.get("response"),
            created_nodes=data.get("createdNodes"),
            error=data.get("error"),
        )

    # ── File operations ───────────────────────────────────────

    def create_code_node_from_file(self, file_path: str, name: str | None = None,
                                   position: dict | None = None) -> str:
        """The EServer reads the file itself and keeps the node synced with it."""
        what = "Failed to create code node"
        resp = self._request("POST", "/files/create-code-node", what,
                             json=_compact({"filePath": file_path, "name": name,
                                            "position": position}))
        self._check(resp, what)
        return self._json_object(resp, what).get("nodeId")

    def create_code_nodes_from_files(self, file_paths: list[str],
                                     layout: str | None = None) -> dict:
        what = "Failed to create code nodes"
        resp = self._request("POST", "/files/create-code-nodes-batch", what,
                             json={"filePaths": file_paths, "layout": layout or "grid"})
        self._check(resp, what)
        return self._json_object(resp, what)

    def read_file(self, file_path: str) -> FileReadResult:
        what = "Failed to read file"
        resp = self._request("POST", "/files/read", what, json={"filePath": file_path})
        self._check(resp, what)
        return FileReadResult.from_dict(self._json_object(resp, what))

    def write_file(self, file_path: str, content: str) -> bool:
        try:
            resp = self._request("POST", "/files/write-back", "Write file failed",
                                 json={"filePath": file_path, "content": content})
            return resp.ok
        except RemoteError as exc:
            log.warning("Write file failed: %s", exc)
            return False

    # ── Prompts ───────────────────────────────────────────────

    def get_prompts(self) -> list[Prompt]:
        try:
            resp = self._request("GET", "/circuitry/prompts", "Failed to get prompts")
            if resp.ok:
                data = self._json(resp, "Failed to get prompts")
                return [Prompt.from_dict(p) for p in data if isinstance(p, dict)] \
                    if isinstance(data, list) else []
        except RemoteError as exc:
            log.warning("Failed to get prompts: %s", exc)
        return []

    def respond_to_prompt(self, prompt_id: str, response: str) -> None:
        what = "Failed to respond to prompt"
        path = f"/circuitry/prompts/{quote(prompt_id, safe='')}/respond"
        resp = self._request("POST", path, what, json={"response": response})
        self._check(resp, what)

    def on_prompt(self, observer: PromptObserver) -> None:
        """Register an observer for every prompt pushed over the socket."""
        self._prompt_observers.append(observer)

    # ── Generic API relay ─────────────────────────────────────

    def select_transport(self) -> Transport:
        with self._lock:
            if self.state is ConnectionState.CONNECTED and self._ws is not None:
                return Transport.SOCKET
        return Transport.HTTP

    def call(self, method: str, args: dict | None = None) -> Any:
        """
        Call a Circuitry API method and return its result.
        Raises RemoteError when the Peer reports failure, CallTimeoutError when
        a socket call gets no reply in time.
        """
        args = args if args is not None else {}
        if self.select_transport() is Transport.SOCKET:
            return self._call_via_ws(method, args)
        return self._call_via_http(method, args)

    def _call_via_http(self, method: str, args: dict) -> Any:
        what = "API call failed"
        resp = self._request("POST", "/circuitry/api", what,
                             json={"method": method, "args": args})
        self._check(resp, what)
        result = ApiResponse.from_dict(self._json_object(resp, what))
        if not result.success:
            raise RemoteError(result.error or "Unknown error")
        return result.result

    def _call_via_ws(self, method: str, args: dict) -> Any:
        request_id = new_request_id()
        pending = PendingCall(request_id)
        with self._lock:
            self._pending[request_id] = pending
        try:
            self._send_frame("api_request",
                             {"method": method, "args": args, "requestId": request_id})
        except CircuitryError:
            with self._lock:
                self._pending.pop(request_id, None)
            raise

        fired = pending.event.wait(self.call_timeout)
        with self._lock:
            self._pending.pop(request_id, None)
        if not fired:
            raise CallTimeoutError(f"API call timeout: {method}")
        if pending.error is not None:
            raise ConnectivityError(pending.error)
        response = pending.response
        if not response.success:
            raise RemoteError(response.error or "Unknown error")
        return response.result

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    # ── Persistent channel ────────────────────────────────────

    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def connect_persistent(self) -> None:
        """
        Open the WebSocket if it is not already open. An explicit call re-arms
        automatic reconnection after the attempt cap was hit or disconnect()
        switched it off. Raises ConnectivityError if the handshake fails.
        """
        with self._lock:
            if self.state is ConnectionState.CONNECTED:
                return
            self._max_reconnect_attempts = _MAX_RECONNECT_ATTEMPTS
            self._reconnect_attempts = 0
        self._open()

    def _open(self) -> None:
        with self._lock:
            if self.state is not ConnectionState.DISCONNECTED:
                return
            self.state = ConnectionState.CONNECTING

        url = self.endpoint.ws_url
        log.info("Connecting to WebSocket: %s", url)
        ws = websocket.WebSocket()
        try:
            ws.connect(url, timeout=_CONNECT_TIMEOUT, header={
                "Authorization": f"Bearer {self.endpoint.access_key}",
            })
        except (websocket.WebSocketException, OSError) as exc:
            log.warning("WebSocket error: %s", exc)
            with self._lock:
                self.state = ConnectionState.DISCONNECTED
            self._schedule_reconnect()
            raise ConnectivityError(f"WebSocket connect to {url} failed: {exc}") from exc

        # Clear the handshake timeout so an idle socket is not treated as dead.
        ws.settimeout(None)
        with self._lock:
            abandoned = (self.state is not ConnectionState.CONNECTING
                         or self._max_reconnect_attempts == 0)
            if not abandoned:
                self._ws = ws
                self.state = ConnectionState.CONNECTED
                self._reconnect_attempts = 0
        if abandoned:
            # disconnect() ran while the handshake was in flight.
            log.info("WebSocket handshake finished after disconnect, closing it")
            try:
                ws.close()
            except (websocket.WebSocketException, OSError) as exc:
                log.debug("Error closing WebSocket: %s", exc)
            return
        log.info("WebSocket connected")
        threading.Thread(target=self._recv_loop, args=(ws,), daemon=True,
                         name="circuitry-ws-recv").start()

    def disconnect(self) -> None:
        """Close the socket and switch off automatic reconnection."""
        with self._lock:
            self._max_reconnect_attempts = 0
            ws, self._ws = self._ws, None
            timer, self._reconnect_timer = self._reconnect_timer, None
            self.state = ConnectionState.DISCONNECTED
        if timer is not None:
            timer.cancel()
        if ws is not None:
            try:
                ws.close()
            except (websocket.WebSocketException, OSError) as exc:
                log.debug("Error closing WebSocket: %s", exc)
        self._fail_pending("WebSocket disconnected before a response arrived")

    # ── Reconnection ──────────────────────────────────────────

    def _schedule(self, delay: float, fn: Callable[[], None]) -> None:
        timer = threading.Timer(delay, fn)
        timer.daemon = True
        with self._lock:
            self._reconnect_timer = timer
        timer.start()

    def _schedule_reconnect(self) -> None:
        with self._lock:
            if self._max_reconnect_attempts == 0:
                return
            if self._reconnect_attempts >= self._max_reconnect_attempts:
                log.warning("Max reconnect attempts reached")
                return
            self._reconnect_attempts += 1
            attempt = self._reconnect_attempts
        delay = reconnect_delay(attempt)
        log.info("Reconnecting in %dms (attempt %d)", int(delay * 1000), attempt)
        self._schedule(delay, self._reconnect)

    def _reconnect(self) -> None:
        try:
            self._open()
        except ConnectivityError as exc:
            log.info("Reconnect failed: %s", exc)

    # ── Inbound frames ────────────────────────────────────────

    def _recv_loop(self, ws: websocket.WebSocket) -> None:
        while True:
            try:
                raw = ws.recv()
            except (websocket.WebSocketException, OSError) as exc:
                log.info("WebSocket closed: %s", exc)
                break
            if raw is None:
                continue
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8", errors="replace")
            if raw == "":
                # websocket-client returns "" on a clean close
                break
            try:
                frame = parse_frame(raw)
            except ProtocolError as exc:
                log.warning("Failed to parse WebSocket message: %s", exc)
                continue
            self._handle_frame(frame)
        self._handle_close(ws)

    def _handle_close(self, ws: websocket.WebSocket) -> None:
        with self._lock:
            if self._ws is not ws:
                # Already replaced by a newer socket or torn down by disconnect().
                return
            self._ws = None
            self.state = ConnectionState.DISCONNECTED
        log.info("WebSocket disconnected")
        self._schedule_reconnect()
        self._fail_pending("WebSocket closed before a response arrived")

    def _handle_frame(self, frame: dict) -> None:
        kind = frame["type"]
        payload = frame.get("payload")

        if kind == "api_response":
            self._resolve(payload)
        elif kind == "prompt":
            if not isinstance(payload, dict):
                log.warning("Dropping prompt frame without an object payload")
                return
            prompt = Prompt.from_dict(payload)
            for observer in list(self._prompt_observers):
                try:
                    observer(prompt)
                except Exception as exc:
                    log.warning("Prompt observer raised: %s", exc)
        elif kind == "ping":
            try:
                self._send_frame("pong", None)
            except CircuitryError as exc:
                log.debug("Could not answer ping: %s", exc)
        else:
            log.debug("Ignoring %s frame", kind)

    def _resolve(self, payload: Any) -> None:
        if not isinstance(payload, dict) or not payload.get("requestId"):
            log.warning("Dropping api_response frame without a requestId")
            return
        with self._lock:
            pending = self._pending.pop(payload["requestId"], None)
        if pending is None:
            log.debug("No pending call for %s (late or unknown)", payload["requestId"])
            return
        pending.response = ApiResponse.from_dict(payload)
        pending.event.set()

    def _fail_pending(self, reason: str) -> None:
        with self._lock:
            abandoned = list(self._pending.values())
            self._pending.clear()
        for pending in abandoned:
            pending.error = reason
            pending.event.set()
        if abandoned:
            log.info("Failed %d pending call(s): %s", len(abandoned), reason)

    def _send_frame(self, kind: str, payload: Any) -> None:
        with self._lock:
            ws = self._ws
        if ws is None:
            raise ConnectivityError("WebSocket is not connected")
        try:
            ws.send(json.dumps({"type": kind, "payload": payload, "timestamp": _now_ms()}))
        except (websocket.WebSocketException, OSError) as exc:
            raise RemoteError(f"WebSocket send failed: {exc}") from exc
