"""
MCP stdio front end.

A thin adapter: tool listings come from the static catalogue and every tool
call is handed to the dispatch core, which runs in a worker thread because
the channel does blocking I/O. stdout carries the MCP JSON-RPC stream, so
all logging goes to stderr.
"""
import asyncio
import logging
import signal
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from circuitry_mcp import config, tools
from circuitry_mcp.dispatch import Dispatcher, render
from circuitry_mcp.errors import ConnectivityError
from circuitry_mcp.session import Session

log = logging.getLogger("circuitry_mcp.server")

SERVER_NAME = "circuitry-mcp-server"
VERSION = "2.0.0"


class ToolCallError(Exception):
    """Raised from call_tool so the SDK marks the result with isError."""


def build_server(dispatcher: Dispatcher) -> Server:
    server = Server(SERVER_NAME, version=VERSION)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        log.debug("Received list_tools request")
        return [Tool(**spec) for spec in tools.list_tool_specs()]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
        result = await asyncio.to_thread(dispatcher.dispatch, name, arguments or {})
        text = render(result)
        if result.is_error:
            raise ToolCallError(text)
        return [TextContent(type="text", text=text)]

    return server


def _open_realtime(session: Session) -> None:
    if not config.is_configured():
        log.warning('Server not configured. Run "circuitry-mcp setup" first.')
        return
    try:
        session.channel.connect_persistent()
    except ConnectivityError as exc:
        # HTTP keeps working; the channel retries in the background.
        log.info("Realtime channel unavailable, using HTTP: %s", exc)


async def _serve(session: Session) -> None:
    server = build_server(Dispatcher(session))
    try:
        await asyncio.to_thread(_open_realtime, session)
        async with stdio_server() as (read_stream, write_stream):
            log.info("Server started successfully")
            await server.run(read_stream, write_stream,
                             server.create_initialization_options())
    finally:
        # Runs on Ctrl-C cancellation too, before asyncio.run joins worker threads.
        session.close()


def run() -> None:
    """Run the MCP server on stdio until the client goes away or a signal arrives."""
    log.info("Starting Circuitry MCP Server v%s...", VERSION)
    session = Session()

    def _shutdown(signum, _frame):
        log.info("Shutting down (signal %d)...", signum)
        # Fail in-flight socket calls now; asyncio.run waits for its worker
        # threads before returning.
        session.close()
        raise SystemExit(0)

    signal.signal(signal.SIGTERM, _shutdown)
    try:
        asyncio.run(_serve(session))
    except KeyboardInterrupt:
        log.info("Shutting down...")
    finally:
        session.close()
