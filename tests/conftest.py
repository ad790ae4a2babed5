from __future__ import annotations

import asyncio
import contextlib
import socket
from types import SimpleNamespace

import pytest
import websockets

from lyria_voice.config_models import SessionConfig
from lyria_voice.errors import PlaybackError
from lyria_voice.interfaces import CaptureHandle
from lyria_voice.session_client import SessionClient


class FakeCapture:
    """Capture source returning a fixed payload."""

    def __init__(self, payload: bytes = b"", granted: bool | Exception = True, start_error: Exception | None = None,
                 stop_error: Exception | None = None):
        self.payload = payload
        self.granted = granted
        self.start_error = start_error
        self.stop_error = stop_error
        self.started = 0
        self.stopped = 0

    async def request_access(self) -> bool:
        await asyncio.sleep(0)
        if isinstance(self.granted, Exception):
            raise self.granted
        return self.granted

    async def start_capture(self) -> CaptureHandle:
        if self.start_error is not None:
            raise self.start_error
        self.started += 1
        return CaptureHandle()

    async def stop(self, handle: CaptureHandle) -> bytes:
        self.stopped += 1
        if self.stop_error is not None:
            raise self.stop_error
        return self.payload


class FakePlayback:
    """Playback sink recording what it was asked to render."""

    def __init__(self, fail: bool = False, error: Exception | None = None):
        self.fail = fail
        self.error = error
        self.audio: list[tuple[bytes, str]] = []
        self.spoken: list[str] = []

    async def play_audio(self, data: bytes, content_type: str) -> None:
        if self.error is not None:
            raise self.error
        if self.fail:
            raise PlaybackError("decoder unavailable")
        self.audio.append((data, content_type))

    async def speak(self, text: str) -> None:
        if self.error is not None:
            raise self.error
        if self.fail:
            raise PlaybackError("no speech engine")
        self.spoken.append(text)


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@contextlib.asynccontextmanager
async def reply_server(*replies, hold_open: bool = False):
    """
    Local WebSocket server that records the first frame of every connection and
    answers with ``replies``. With no replies it closes right after receiving,
    unless ``hold_open`` keeps the connection silent until the client leaves.
    """
    state = SimpleNamespace(received=[], connections=0, closed_by_client=0, url="")

    async def handler(connection):
        state.connections += 1
        state.received.append(await connection.recv())
        if not replies and not hold_open:
            return
        for reply in replies:
            await connection.send(reply)
        try:
            await connection.recv()
        except websockets.exceptions.ConnectionClosedOK:
            state.closed_by_client += 1

    async with websockets.serve(handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        state.url = f"ws://127.0.0.1:{port}"
        yield state


@contextlib.asynccontextmanager
async def stalled_server():
    """
    TCP server that accepts connections but never answers the WebSocket handshake.
    """
    state = SimpleNamespace(connections=0, url="")

    async def handler(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        state.connections += 1
        while await reader.read(1024):
            pass
        writer.close()

    server = await asyncio.start_server(handler, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    state.url = f"ws://127.0.0.1:{port}/ws"
    try:
        yield state
    finally:
        server.close()
        await server.wait_closed()


async def wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def make_client(url: str, capture: FakeCapture, playback: FakePlayback | None = None, **config) -> SimpleNamespace:
    statuses: list = []
    transitions: list = []
    client = SessionClient(
        capture=capture,
        playback=playback or FakePlayback(),
        config=SessionConfig(url=url, **config),
        on_status=statuses.append,
        on_state_change=lambda old, new: transitions.append((old, new)),
    )
    return SimpleNamespace(client=client, statuses=statuses, transitions=transitions,
                           capture=capture, playback=client.playback)


@pytest.fixture
def unused_url() -> str:
    return f"ws://127.0.0.1:{free_port()}/ws"
