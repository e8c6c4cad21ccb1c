"""Entry point: parse config and run the serial proxy with graceful shutdown."""

import sys

from serialproxy.bridge import run_bridge
from serialproxy.config import parse_args


def main():
    try:
        args = parse_args()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    try:
        run_bridge(
            tcp_port=args.tcp_port,
            ws_port=args.ws_port,
            host=args.host,
            wait_for=args.wait_for,
            wait_timeout_ms=args.wait_timeout,
            reconnect_interval=args.reconnect_interval,
            verbose=args.verbose,
        )
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
