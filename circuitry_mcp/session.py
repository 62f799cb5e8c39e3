"""
Process-wide session context.

Holds the pieces of state that live for as long as the server runs: the
permission gate, the prompt inbox and the single PeerChannel. The channel is
built lazily on first use so an unconfigured server never touches the network.
Tests build independent sessions instead of sharing module globals.
"""
import logging
import threading
from typing import Callable

from circuitry_mcp import config
from circuitry_mcp.channel import PeerChannel
from circuitry_mcp.models import Endpoint
from circuitry_mcp.permissions import PermissionGate
from circuitry_mcp.prompts import PromptInbox

log = logging.getLogger("circuitry_mcp.session")


class Session:
    def __init__(self, endpoint_factory: Callable[[], Endpoint] = config.get_endpoint,
                 channel: PeerChannel | None = None):
        self._endpoint_factory = endpoint_factory
        self._channel = channel
        self._lock = threading.Lock()
        self.gate = PermissionGate()
        self.inbox = PromptInbox()
        if channel is not None:
            channel.on_prompt(self.inbox)

    @property
    def channel(self) -> PeerChannel:
        with self._lock:
            if self._channel is None:
                endpoint = self._endpoint_factory()
                log.debug("Creating channel to %s", endpoint.base_url)
                self._channel = PeerChannel(endpoint)
                self._channel.on_prompt(self.inbox)
            return self._channel

    def close(self) -> None:
        with self._lock:
            channel = self._channel
        if channel is not None:
            channel.disconnect()
