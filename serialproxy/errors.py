"""Errors surfaced by the serial proxy components."""


class BridgeError(Exception):
    """Base class for failures contained inside the bridge."""


class SerialLinkError(BridgeError):
    """TCP connect, read or write failure on the simulator serial endpoint."""

    def __init__(self, port: int, message: str):
        super().__init__(f"Serial Port {port} error: {message}")
        self.port = port


class HubError(BridgeError):
    """WebSocket server failure, e.g. the port is already in use."""

    def __init__(self, port: int, message: str):
        super().__init__(f"WebSocket Serial Port {port} error: {message}")
        self.port = port
