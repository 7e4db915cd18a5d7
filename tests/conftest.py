"""Shared fixtures: a fake docker client and a fake WebSocket."""

from unittest.mock import Mock

import pytest
from aiohttp import WSMessage, WSMsgType

from sandterm.demux import StreamType, encode_frame


def stdout(text: str) -> bytes:
    return encode_frame(StreamType.STDOUT, text.encode())


def stderr(text: str) -> bytes:
    return encode_frame(StreamType.STDERR, text.encode())


class FakeSocket:
    """Stands in for the hijacked exec socket."""

    def __init__(self, chunks=()):
        self.chunks = list(chunks)
        self.closed = False

    def next_chunk(self) -> bytes:
        return self.chunks.pop(0) if self.chunks else b""

    def close(self):
        self.closed = True


class FakeWebSocket:
    """Minimal WebSocketResponse double for driving a TerminalSession."""

    def __init__(self, lines=(), fail_after=None):
        self.messages = [WSMessage(WSMsgType.TEXT, line, None) for line in lines]
        self.frames = []
        self.fail_after = fail_after
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self.messages:
            raise StopAsyncIteration
        return self.messages.pop(0)

    async def send_str(self, data):
        if self.fail_after is not None and len(self.frames) >= self.fail_after:
            self.closed = True
            raise ConnectionResetError("Cannot write to closing transport")
        self.frames.append(data)

    def exception(self):
        return None


@pytest.fixture
def container():
    container = Mock()
    container.id = "3f2a9c0d1b7e4a5f6c8d9e0f1a2b3c4d"
    container.short_id = "3f2a9c0d1b7e"
    return container


@pytest.fixture
def docker_client(container):
    """Docker client whose image is present and whose exec prints nothing."""
    client = Mock()
    client.containers.create.return_value = container
    client.api.exec_create.return_value = {"Id": "exec-1"}
    client.api.exec_inspect.return_value = {"ExitCode": 0}
    client.exec_socket = FakeSocket()
    client.api.exec_start.side_effect = lambda exec_id, socket: client.exec_socket
    return client


@pytest.fixture(autouse=True)
def fake_socket_reads(monkeypatch):
    """Route raw socket reads to FakeSocket.next_chunk."""
    monkeypatch.setattr(
        "sandterm.engine.read_socket", lambda sock, n=4096: sock.next_chunk()
    )
