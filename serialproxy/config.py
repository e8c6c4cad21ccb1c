"""Configuration and command-line argument parsing for the serial proxy."""

import argparse
import tomllib

DEFAULT_TCP_PORT = 4000
DEFAULT_WS_PORT = 8765
DEFAULT_HOST = "localhost"
DEFAULT_WAIT_TIMEOUT_MS = 10000
DEFAULT_RECONNECT_INTERVAL = 2.0

TOML_TCP_PORT_KEY = "rfc2217ServerPort"
TOML_WS_PORT_KEY = "webSocketServerPort"


def load_toml_ports(path):
    """Read (tcp_port, ws_port) from the [wokwi] table of a simulator config.

    Missing keys come back as None; an unreadable file raises ValueError.
    """
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ValueError(f"Cannot read simulator config {path}: {e}") from e
    section = data.get("wokwi", {})
    return section.get(TOML_TCP_PORT_KEY), section.get(TOML_WS_PORT_KEY)


def parse_args(argv=None):
    """Parse command-line arguments and return a validated namespace."""
    parser = argparse.ArgumentParser(
        description="Expose a simulator's TCP serial port to WebSocket clients."
    )
    parser.add_argument(
        "--tcp-port",
        type=int,
        default=None,
        help=f"Simulator serial TCP port (default: {DEFAULT_TCP_PORT})",
    )
    parser.add_argument(
        "--ws-port",
        type=int,
        default=None,
        help=f"WebSocket listen port (default: {DEFAULT_WS_PORT})",
    )
    parser.add_argument(
        "--host",
        default=DEFAULT_HOST,
        help=f"Host for both the simulator and the WebSocket server (default: {DEFAULT_HOST})",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="wokwi.toml to read ports from when not given on the command line",
    )
    parser.add_argument(
        "--wait-for",
        default=None,
        help="Only start once this path exists (e.g. a simulator ready file)",
    )
    parser.add_argument(
        "--wait-timeout",
        type=int,
        default=DEFAULT_WAIT_TIMEOUT_MS,
        help=f"Milliseconds to wait for --wait-for (default: {DEFAULT_WAIT_TIMEOUT_MS})",
    )
    parser.add_argument(
        "--reconnect-interval",
        type=float,
        default=DEFAULT_RECONNECT_INTERVAL,
        help=f"Seconds between reconnect attempts (default: {DEFAULT_RECONNECT_INTERVAL})",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (connection events, errors)",
    )
    args = parser.parse_args(argv)
    _apply_config_file(args)
    _validate(args)
    return args


def _apply_config_file(args):
    """Fill ports left unset from --config, then from the defaults."""
    if args.config:
        tcp_port, ws_port = load_toml_ports(args.config)
        if args.tcp_port is None:
            args.tcp_port = tcp_port
        if args.ws_port is None:
            args.ws_port = ws_port
    if args.tcp_port is None:
        args.tcp_port = DEFAULT_TCP_PORT
    if args.ws_port is None:
        args.ws_port = DEFAULT_WS_PORT


def _validate(args):
    """Validate parsed arguments; raise ValueError on invalid values."""
    for name, value in (("--tcp-port", args.tcp_port), ("--ws-port", args.ws_port)):
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValueError(f"Port ({name}) must be an integer")
        if not (1 <= value <= 65535):
            raise ValueError(f"Port ({name}) must be between 1 and 65535")
    if args.tcp_port == args.ws_port:
        raise ValueError("--tcp-port and --ws-port must differ")
    if args.wait_timeout < 0:
        raise ValueError("Wait timeout (--wait-timeout) must not be negative")
    if args.reconnect_interval <= 0:
        raise ValueError("Reconnect interval (--reconnect-interval) must be positive")
