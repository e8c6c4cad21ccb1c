"""Fakes and helpers for serial proxy tests."""

import asyncio
import socket

from serialproxy.retry import retry

HOST = "127.0.0.1"


def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((HOST, 0))
        return s.getsockname()[1]


async def eventually(predicate, timeout_ms=2000):
    """Poll a condition on the running loop; fail the test on timeout."""
    assert await retry(predicate, 10, timeout_ms), "condition not met in time"


class FakeSimulator:
    """TCP server standing in for the simulator's serial endpoint."""

    def __init__(self, port):
        self.port = port
        self.server = None
        self.accepted = 0
        self.writers = []
        self.received = bytearray()
        self.eof = 0

    async def start(self):
        self.server = await asyncio.start_server(self._on_connect, HOST, self.port)
        return self

    async def _on_connect(self, reader, writer):
        self.accepted += 1
        self.writers.append(writer)
        try:
            while True:
                data = await reader.read(4096)
                if not data:
                    break
                self.received += data
        except ConnectionResetError:
            pass
        self.eof += 1

    async def send(self, data):
        for writer in self.writers:
            writer.write(data)
            await writer.drain()

    def drop_clients(self):
        for writer in self.writers:
            writer.close()
        self.writers = []

    async def close(self):
        self.drop_clients()
        if self.server is not None:
            self.server.close()
            await self.server.wait_closed()


class Notifications:
    def __init__(self):
        self.seen = []

    def __call__(self, level, message):
        self.seen.append((level, message))

    def messages(self, level):
        return [m for lvl, m in self.seen if lvl == level]
