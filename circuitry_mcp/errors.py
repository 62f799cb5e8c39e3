"""
Error taxonomy for talking to the Peer.

ConfigurationError and ConnectivityError are raised before any operation is
attempted. PermissionDeniedError means the session has not been approved.
RemoteError and CallTimeoutError surface failures of an actual call.
ProtocolError never leaves the channel: bad inbound frames are logged and dropped.
"""


class CircuitryError(Exception):
    pass


class ConfigurationError(CircuitryError):
    pass


class ConnectivityError(CircuitryError):
    pass


class PermissionDeniedError(CircuitryError):
    pass


class RemoteError(CircuitryError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class CallTimeoutError(CircuitryError, TimeoutError):
    pass


class ProtocolError(CircuitryError):
    pass
