"""
Dispatch core: one entry point from (tool name, arguments) to a CallResult.

Every call runs the same checks in order and stops at the first failure:

  1. configured      an access key is available, otherwise no network I/O at all
  2. reachable       the EServer answers /ping
  3. circuitry.status   always allowed, reports liveness and approval
  4. circuitry.connect  asks the user for approval
  5. approved        every other tool needs the permission gate open
  6. route           agent delegation, file-backed code creation, or relay

Nothing is retried here and nothing raises out of dispatch(): every error
becomes a failure envelope.
"""
import json
import logging
from typing import Any, Callable

from circuitry_mcp import config
from circuitry_mcp.channel import PeerChannel
from circuitry_mcp.errors import ConfigurationError, ConnectivityError
from circuitry_mcp.models import (
    AgentChatArgs,
    AgentPollArgs,
    CallResult,
    CodeCreateArgs,
    CodeCreateBatchArgs,
    CreateFlowchartArgs,
)
from circuitry_mcp.session import Session

log = logging.getLogger("circuitry_mcp.dispatch")

STATUS = "circuitry.status"
CONNECT = "circuitry.connect"

NO_RETURN_VALUE = "Success (no return value)"
NOT_CONFIGURED_MESSAGE = (
    "Circuitry MCP Server is not configured.\n\n"
    "Run this command to set up:\n"
    "  circuitry-mcp setup"
)

Handler = Callable[[PeerChannel, dict], Any]


def unreachable_message(base_url: str) -> str:
    return (
        f"Cannot connect to EServer at {base_url}\n\n"
        "Make sure:\n"
        "1. Circuitry Electron app is running\n"
        "2. EServer is enabled (check system tray)"
    )


def render(result: CallResult) -> str:
    """Text shown to the MCP client for a CallResult."""
    if result.is_error:
        return f"Error: {result.message}"
    payload = result.payload
    if payload is None or payload == "":
        return NO_RETURN_VALUE
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, indent=2, ensure_ascii=False)


class Dispatcher:
    def __init__(self, session: Session, is_configured: Callable[[], bool] = config.is_configured):
        self.session = session
        self._is_configured = is_configured
        self._routes: dict[str, Handler] = {}
        self._register_routes()

    def _register_routes(self):
        self._routes["agent.chat"] = self._agent_chat
        self._routes["agent.createFlowchart"] = self._agent_create_flowchart
        self._routes["agent.poll"] = self._agent_poll
        self._routes["code.create"] = self._code_create
        self._routes["code.createBatch"] = self._code_create_batch

    def dispatch(self, name: str, args: dict | None = None) -> CallResult:
        log.info("Received call_tool request: %s", name)
        try:
            return CallResult.success(self._run(name, args or {}))
        except Exception as exc:
            log.warning("Tool error (%s): %s", name, exc)
            return CallResult.failure(str(exc))

    def _run(self, name: str, args: dict) -> Any:
        if not self._is_configured():
            raise ConfigurationError(NOT_CONFIGURED_MESSAGE)
        channel = self.session.channel
        if not channel.probe():
            raise ConnectivityError(unreachable_message(channel.endpoint.base_url))

        gate = self.session.gate
        if name == STATUS:
            return self._status(channel)
        if name == CONNECT:
            return gate.request(channel).to_dict()

        gate.ensure(channel)
        handler = self._routes.get(name)
        if handler is not None:
            return handler(channel, args)
        # The Peer owns argument shape and semantics for everything else.
        return channel.call(name, args)

    def _status(self, channel: PeerChannel) -> dict:
        status = channel.get_status().to_dict()
        status["approved"] = self.session.gate.approved
        status["websocket"] = channel.is_connected()
        if len(self.session.inbox):
            status["recentPrompts"] = self.session.inbox.recent(5)
        return status

    # ── Agent delegation ──────────────────────────────────────

    def _agent_chat(self, channel: PeerChannel, args: dict) -> dict:
        parsed = AgentChatArgs.from_dict(args)
        return channel.send_agent_chat(parsed.message, parsed.context).to_dict()

    def _agent_create_flowchart(self, channel: PeerChannel, args: dict) -> dict:
        parsed = CreateFlowchartArgs.from_dict(args)
        context = {"intent": "flowchart", "style": parsed.style}
        return channel.send_agent_chat(parsed.to_message(), context).to_dict()

    def _agent_poll(self, channel: PeerChannel, args: dict) -> dict:
        parsed = AgentPollArgs.from_dict(args)
        return channel.poll_agent_response(parsed.chat_id).to_dict()

    # ── Code nodes ────────────────────────────────────────────

    def _code_create(self, channel: PeerChannel, args: dict) -> Any:
        parsed = CodeCreateArgs.from_dict(args)
        if parsed.file_path:
            # File-backed nodes read their content from disk; inline content is ignored.
            return channel.create_code_node_from_file(parsed.file_path, parsed.name,
                                                      parsed.position)
        relay = {"name": parsed.name, "content": parsed.content, "position": parsed.position}
        return channel.call("code.create", {k: v for k, v in relay.items() if v is not None})

    def _code_create_batch(self, channel: PeerChannel, args: dict) -> dict:
        parsed = CodeCreateBatchArgs.from_dict(args)
        return channel.create_code_nodes_from_files(parsed.file_paths, parsed.layout)
