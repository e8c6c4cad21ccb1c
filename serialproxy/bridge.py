"""Asyncio bridge between a simulator serial endpoint and WebSocket clients."""

import asyncio
import codecs
import logging
import os
from typing import Awaitable, Callable, Optional, Set

from serialproxy.config import DEFAULT_HOST
from serialproxy.hub import WebSocketHub
from serialproxy.link import SerialConnection
from serialproxy.notify import Notifier, log_notifier
from serialproxy.retry import Probe, retry

logger = logging.getLogger("serialproxy")

LAUNCH_DELAY = 0.1
READY_INTERVAL_MS = 10
READY_TIMEOUT_MS = 10000


class BridgeLifecycle:
    """Owns the one serial connection and the one WebSocket hub.

    Only this object constructs or destroys them. Failed or closed
    components are dropped here so the next ``start_serial_proxy`` builds
    fresh ones.
    """

    def __init__(self, host: str = DEFAULT_HOST, notify: Notifier = log_notifier):
        self.host = host
        self.hub: Optional[WebSocketHub] = None
        self.connection: Optional[SerialConnection] = None
        self._notify = notify
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._deferred: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self.hub is not None or self.connection is not None

    def start_serial_proxy(self, tcp_port: int, ws_port: int):
        """Build whatever is missing and (re)connect to the simulator."""
        if self.hub is None:
            hub = WebSocketHub(
                ws_port,
                self._to_serial,
                on_error=lambda err: self._drop_hub(hub),
                host=self.host,
                notify=self._notify,
            )
            self.hub = hub
            hub.start()

        if self.connection is None:
            conn = SerialConnection(
                tcp_port,
                self._to_clients,
                on_close=lambda: self._drop_connection(conn),
                on_error=lambda err: self._drop_connection(conn),
                host=self.host,
                notify=self._notify,
            )
            self.connection = conn

        if self.connection.connect(tcp_port) is not None:
            self._decoder.reset()

    async def wait_started(self):
        """Wait until the pending bind and connect attempts have settled."""
        if self.hub is not None:
            await self.hub.wait_listening()
        if self.connection is not None:
            await self.connection.wait_connected()

    def _to_serial(self, data):
        if self.connection is not None:
            self.connection.write(data)

    def _to_clients(self, data: bytes):
        text = self._decoder.decode(data)
        if text and self.hub is not None:
            self.hub.broadcast(text)

    def _drop_hub(self, hub: WebSocketHub):
        if self.hub is hub:
            self.hub = None

    def _drop_connection(self, conn: SerialConnection):
        if self.connection is conn:
            self.connection = None

    def schedule(
        self, delay: float, callback: Callable[[], Awaitable[None]]
    ) -> asyncio.Task:
        """Run ``callback`` after ``delay`` seconds unless torn down first."""

        async def deferred():
            await asyncio.sleep(delay)
            await callback()

        task = asyncio.create_task(deferred())
        self._deferred.add(task)
        task.add_done_callback(self._deferred.discard)
        return task

    def launch(
        self,
        tcp_port: int,
        ws_port: int,
        ready_probe: Optional[Probe] = None,
        delay: float = LAUNCH_DELAY,
        interval_ms: float = READY_INTERVAL_MS,
        timeout_ms: float = READY_TIMEOUT_MS,
    ) -> asyncio.Task:
        """Start the proxy once the simulator reports ready.

        The proxy is started even when the probe times out; the simulator
        may still come up and the connection can be retried later.
        """

        async def start_when_ready():
            if ready_probe is not None:
                if not await retry(ready_probe, interval_ms, timeout_ms):
                    logger.warning(
                        "Simulator not ready after %s ms, starting proxy anyway",
                        timeout_ms,
                    )
            self.start_serial_proxy(tcp_port, ws_port)

        return self.schedule(delay, start_when_ready)

    def close(self):
        """Cancel deferred work, close the hub and drop the connection."""
        for task in list(self._deferred):
            task.cancel()
        self._deferred.clear()
        hub, self.hub = self.hub, None
        if hub is not None:
            hub.close()
        conn, self.connection = self.connection, None
        if conn is not None:
            conn.destroy()

    async def aclose(self):
        hub = self.hub
        self.close()
        if hub is not None:
            await hub.wait_closed()


async def run_bridge_async(
    tcp_port: int,
    ws_port: int,
    host: str = DEFAULT_HOST,
    wait_for: Optional[str] = None,
    wait_timeout_ms: float = READY_TIMEOUT_MS,
    reconnect_interval: float = 2.0,
):
    """Start the proxy and keep reconnecting to the simulator until cancelled."""
    lifecycle = BridgeLifecycle(host=host)
    probe = None
    if wait_for:
        logger.info("Waiting for %s", wait_for)

        def probe():
            return os.path.exists(wait_for)

    try:
        await lifecycle.launch(
            tcp_port, ws_port, ready_probe=probe, delay=0, timeout_ms=wait_timeout_ms
        )
        while True:
            await asyncio.sleep(reconnect_interval)
            lifecycle.start_serial_proxy(tcp_port, ws_port)
    finally:
        await lifecycle.aclose()


def run_bridge(
    tcp_port: int,
    ws_port: int,
    host: str = DEFAULT_HOST,
    wait_for: Optional[str] = None,
    wait_timeout_ms: float = READY_TIMEOUT_MS,
    reconnect_interval: float = 2.0,
    verbose: bool = False,
):
    """Synchronous entry: run the asyncio bridge until interrupted."""
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    try:
        asyncio.run(
            run_bridge_async(
                tcp_port,
                ws_port,
                host=host,
                wait_for=wait_for,
                wait_timeout_ms=wait_timeout_ms,
                reconnect_interval=reconnect_interval,
            )
        )
    except KeyboardInterrupt:
        pass
