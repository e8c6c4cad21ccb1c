"""WebSocket server fanning the serial stream out to any number of clients."""

import asyncio
import logging
from typing import Callable, Optional, Set, Union

from websockets.asyncio.server import Server, ServerConnection, broadcast, serve
from websockets.exceptions import ConnectionClosed

from serialproxy.config import DEFAULT_HOST
from serialproxy.errors import HubError
from serialproxy.notify import Notifier, log_notifier

logger = logging.getLogger("serialproxy")

SERVER_ERRORS = (OSError, OverflowError, ValueError)


class WebSocketHub:
    """WebSocket server plus the set of its connected clients.

    Every frame received from a client is passed verbatim to ``on_message``.
    A server error is terminal: the hub closes itself and reports through
    ``on_error``; a new hub has to be built to resume service.
    """

    def __init__(
        self,
        port: int,
        on_message: Callable[[Union[str, bytes]], None],
        on_error: Optional[Callable[[HubError], None]] = None,
        host: str = DEFAULT_HOST,
        notify: Notifier = log_notifier,
    ):
        self.port = port
        self.host = host
        self.clients: Set[ServerConnection] = set()
        self._on_message = on_message
        self._on_error = on_error
        self._notify = notify
        self._server: Optional[Server] = None
        self._closing: Optional[Server] = None
        self._start_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}"

    @property
    def listening(self) -> bool:
        return self._server is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> asyncio.Task:
        """Schedule the bind; repeated calls return the same task."""
        if self._start_task is None:
            self._start_task = asyncio.create_task(self._serve())
        return self._start_task

    async def wait_listening(self) -> bool:
        task = self._start_task
        if task is not None and not task.done():
            await asyncio.wait([task])
        return self.listening

    async def _serve(self):
        try:
            server = await serve(self._handle_client, self.host, self.port)
        except SERVER_ERRORS as e:
            if not self._closed:
                self._fail(e)
            return
        if self._closed:
            server.close()
            self._closing = server
            return
        self._server = server
        logger.info("Serial Port is available on WebSocket: %s", self.url)
        self._notify(logging.INFO, f"Serial Port is available on WebSocket: {self.url}")

    async def _handle_client(self, ws: ServerConnection):
        if self._closed:
            return
        self.clients.add(ws)
        logger.info("Client connected to websocket: %s", ws.remote_address)
        self._notify(logging.INFO, "Client connected to WebSocket Serial Port")
        try:
            async for message in ws:
                # Frames still buffered when the hub closes are discarded.
                if self._closed:
                    break
                self._on_message(message)
        except ConnectionClosed:
            pass
        finally:
            self.clients.discard(ws)
            logger.info("Client disconnected from websocket: %s", ws.remote_address)
            self._notify(logging.WARNING, "Client disconnected from WebSocket Serial Port")

    def broadcast(self, data: Union[str, bytes]):
        """Send data to every connected client without waiting on any of them."""
        if self.clients:
            broadcast(self.clients, data)

    def _fail(self, exc: Exception):
        err = HubError(self.port, str(exc) or exc.__class__.__name__)
        err.__cause__ = exc
        logger.error("%s", err)
        self._notify(logging.ERROR, f"WebSocket Serial Port error: {exc}")
        self.close()
        if self._on_error is not None:
            self._on_error(err)

    def close(self):
        """Stop the server and drop all clients. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        task = self._start_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
        server, self._server = self._server, None
        self.clients = set()
        if server is not None:
            server.close()
            self._closing = server
        logger.info("Websocket server closed")
        self._notify(logging.WARNING, "WebSocket Serial Port closed")

    async def wait_closed(self):
        task = self._start_task
        if task is not None and not task.done():
            await asyncio.wait([task])
        if self._closing is not None:
            await self._closing.wait_closed()
