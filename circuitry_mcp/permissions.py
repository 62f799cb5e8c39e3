"""
Session-scoped consent to act on the user's Circuitry workspace.

One approval covers the whole server process. It is never persisted: after a
restart the gate starts closed, and the first gated call asks the EServer
whether it still remembers an earlier approval before failing.
"""
import logging

from circuitry_mcp.errors import PermissionDeniedError
from circuitry_mcp.models import ConnectionResult

log = logging.getLogger("circuitry_mcp.permissions")

APPROVED_MESSAGE = "Connection approved. Chat panel opened in agent+mcp mode."
ALREADY_APPROVED_MESSAGE = "Already connected and approved"
DENIED_MESSAGE = "Connection denied by user."
NOT_APPROVED_MESSAGE = (
    "Connection not approved.\n\n"
    "Call circuitry.connect first to request permission from the user."
)


class PermissionGate:
    def __init__(self):
        self.approved = False

    def request(self, channel) -> ConnectionResult:
        """Ask the user for approval unless this session already has it."""
        if self.approved:
            return ConnectionResult(approved=True, message=ALREADY_APPROVED_MESSAGE)
        result = channel.request_connection()
        self.approved = result.approved
        if result.approved:
            log.info("Connection approved by user")
            return ConnectionResult(approved=True, message=APPROVED_MESSAGE)
        log.info("Connection not approved: %s", result.message)
        return ConnectionResult(approved=False, message=result.message or DENIED_MESSAGE)

    def ensure(self, channel) -> None:
        """
        Raise PermissionDeniedError unless the session is approved. A closed
        gate is re-checked against the EServer once before giving up.
        """
        if self.approved:
            return
        if channel.get_connection_status():
            log.info("Recovered approval from an earlier session")
            self.approved = True
            return
        raise PermissionDeniedError(NOT_APPROVED_MESSAGE)
