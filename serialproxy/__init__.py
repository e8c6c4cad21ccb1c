"""Serial proxy: expose a simulator's TCP serial port to WebSocket clients."""

from serialproxy.bridge import BridgeLifecycle, run_bridge
from serialproxy.retry import retry

__all__ = ["BridgeLifecycle", "retry", "run_bridge"]
