"""TCP client for the simulator's virtual serial port."""

import asyncio
import enum
import logging
from typing import Callable, Optional, Union

from serialproxy.config import DEFAULT_HOST
from serialproxy.errors import SerialLinkError
from serialproxy.notify import Notifier, log_notifier

logger = logging.getLogger("serialproxy")

LINK_ERRORS = (OSError, OverflowError, ValueError)
READ_SIZE = 4096


class LinkState(enum.Enum):
    NOT_CONNECTED = "not_connected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class SerialConnection:
    """Single outbound TCP connection treated as an opaque byte pipe.

    Inbound bytes are handed to ``on_data`` verbatim. When the peer closes
    the stream ``on_close`` fires; when the socket faults the transport is
    aborted and ``on_error`` receives a :class:`SerialLinkError`. In both
    cases the state returns to NOT_CONNECTED and ``connect`` may be called
    again.
    """

    def __init__(
        self,
        port: int,
        on_data: Callable[[bytes], None],
        on_close: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[SerialLinkError], None]] = None,
        host: str = DEFAULT_HOST,
        notify: Notifier = log_notifier,
    ):
        self.port = port
        self.host = host
        self.state = LinkState.NOT_CONNECTED
        self._on_data = on_data
        self._on_close = on_close
        self._on_error = on_error
        self._notify = notify
        self._writer: Optional[asyncio.StreamWriter] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._read_task: Optional[asyncio.Task] = None
        # Bumped whenever the socket is released; stale tasks compare against it.
        self._generation = 0

    @property
    def connecting(self) -> bool:
        return self.state is LinkState.CONNECTING

    @property
    def connected(self) -> bool:
        return self.state is LinkState.CONNECTED

    def connect(self, port: Optional[int] = None) -> Optional[asyncio.Task]:
        """Start connecting unless a connection is already up or in progress."""
        if self.state in (LinkState.CONNECTING, LinkState.CONNECTED):
            return None
        if port is not None:
            self.port = port
        self.state = LinkState.CONNECTING
        self._generation += 1
        self._connect_task = asyncio.create_task(self._open(self._generation))
        return self._connect_task

    async def wait_connected(self) -> bool:
        """Wait for the pending connect attempt, if any, to settle."""
        task = self._connect_task
        if task is not None and not task.done():
            await asyncio.wait([task])
        return self.connected

    async def _open(self, generation: int):
        try:
            reader, writer = await asyncio.open_connection(self.host, self.port)
        except LINK_ERRORS as e:
            if generation == self._generation:
                self._fail(e)
            return
        if generation != self._generation:
            writer.transport.abort()
            return
        self._writer = writer
        self.state = LinkState.CONNECTED
        logger.info("Connected to Serial Port: %s", self.port)
        self._read_task = asyncio.create_task(self._pump(reader, generation))

    async def _pump(self, reader: asyncio.StreamReader, generation: int):
        """Forward inbound bytes until EOF or a socket fault."""
        try:
            while True:
                data = await reader.read(READ_SIZE)
                if not data:
                    break
                if generation != self._generation:
                    return
                self._on_data(data)
        except LINK_ERRORS as e:
            if generation == self._generation:
                self._fail(e)
            return
        if generation == self._generation:
            self._peer_closed()

    def write(self, data: Union[bytes, str]):
        """Send data to the simulator; dropped unless connected."""
        if self.state is not LinkState.CONNECTED or self._writer is None:
            logger.debug(
                "Dropping %d bytes: Serial Port %s not connected", len(data), self.port
            )
            return
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._writer.write(data)

    def destroy(self):
        """Tear the socket down; later callbacks from it are ignored."""
        self._release(abort=True)
        self.state = LinkState.NOT_CONNECTED

    def _peer_closed(self):
        logger.info("Serial Port %s disconnected", self.port)
        self._release(abort=False)
        self.state = LinkState.NOT_CONNECTED
        if self._on_close is not None:
            self._on_close()

    def _fail(self, exc: Exception):
        self.state = LinkState.FAILED
        err = SerialLinkError(self.port, str(exc) or exc.__class__.__name__)
        err.__cause__ = exc
        logger.error("%s", err)
        self._notify(logging.ERROR, f"Serial Port error: {exc}")
        self._release(abort=True)
        self.state = LinkState.NOT_CONNECTED
        if self._on_error is not None:
            self._on_error(err)

    def _release(self, abort: bool):
        self._generation += 1
        current = asyncio.current_task()
        for task in (self._connect_task, self._read_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._connect_task = None
        self._read_task = None
        writer, self._writer = self._writer, None
        if writer is not None:
            if abort:
                writer.transport.abort()
            else:
                writer.close()
