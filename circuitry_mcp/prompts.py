"""
In-memory inbox for prompts the Circuitry user pushes over the WebSocket.

A PromptInbox is registered as a prompt observer on the channel. Newest
prompts come first and the inbox is capped so it cannot grow without bound.
"""
import logging
import threading

from circuitry_mcp.models import Prompt

log = logging.getLogger("circuitry_mcp.prompts")

_MAX = 50


class PromptInbox:
    def __init__(self, capacity: int = _MAX):
        self._capacity = capacity
        self._items: list[Prompt] = []
        self._lock = threading.Lock()

    def __call__(self, prompt: Prompt) -> None:
        log.info("Prompt from Circuitry (%s): %s", prompt.id, prompt.question)
        with self._lock:
            self._items.insert(0, prompt)
            if len(self._items) > self._capacity:
                self._items[:] = self._items[:self._capacity]

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def recent(self, limit: int = 10) -> list[dict]:
        with self._lock:
            return [p.to_dict() for p in self._items[:limit]]
