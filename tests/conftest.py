"""Shared fixtures: snapshot factory and a scriptable WebSocket frame server."""

import socket
import threading
import time
from collections.abc import Callable

import pytest
from websockets.exceptions import ConnectionClosed
from websockets.sync.server import ServerConnection, serve

from pulsetop.models import (
    CpuInfo,
    CpuLoad,
    Drive,
    MemoryInfo,
    ProcessSnapshot,
    ProcessSummary,
    Snapshot,
    StorageInfo,
    TemperatureInfo,
)
from pulsetop.protocol import encode_frame


def make_snapshot(
    cpu: float = 42.0,
    memory: float = 50.0,
    temperature: float | None = None,
    timestamp: int = 1_700_000_000_000,
    processes: tuple[ProcessSnapshot, ...] = (),
    drives: tuple[Drive, ...] = (),
) -> Snapshot:
    """Build a small, valid snapshot for tests."""
    return Snapshot(
        timestamp=timestamp,
        cpu=CpuInfo(load=CpuLoad(current=cpu, user=cpu, system=0.0, idle=round(100 - cpu, 2))),
        memory=MemoryInfo(
            total=16 * 1024**3,
            used=int(16 * 1024**3 * memory / 100),
            free=0,
            available=0,
            used_percent=memory,
        ),
        storage=StorageInfo(drives=drives),
        processes=ProcessSummary(all=len(processes), running=len(processes), list=processes),
        temperature=TemperatureInfo(main=temperature, max=temperature),
    )


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def unused_port() -> int:
    """A localhost port that nothing listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class FrameServer:
    """
    Minimal WebSocket server that plays scripted frames to each client.

    Every accepted connection first receives ``frames``; then it is either
    closed (``close_after_send``) or kept open until the client leaves.
    ``send_all`` pushes an extra frame to every open connection.
    """

    def __init__(self) -> None:
        self.frames: list[str] = []
        self.close_after_send = False
        self.connections = 0
        self._open: list[ServerConnection] = []
        self._lock = threading.Lock()
        self._server = serve(self._handle, "127.0.0.1", 0)
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    @property
    def url(self) -> str:
        port = self._server.socket.getsockname()[1]
        return f"ws://127.0.0.1:{port}/"

    def send_all(self, frame: str) -> None:
        with self._lock:
            connections = list(self._open)
        for connection in connections:
            connection.send(frame)

    def shutdown(self) -> None:
        self._server.shutdown()
        self._thread.join(timeout=5)

    def _handle(self, connection: ServerConnection) -> None:
        with self._lock:
            self.connections += 1
            self._open.append(connection)
        try:
            for frame in list(self.frames):
                connection.send(frame)
            if self.close_after_send:
                return
            for _ in connection:
                pass
        except ConnectionClosed:
            pass
        finally:
            with self._lock:
                self._open.remove(connection)


@pytest.fixture
def snapshot_factory():
    return make_snapshot


@pytest.fixture
def frame_server():
    server = FrameServer()
    yield server
    server.shutdown()


@pytest.fixture
def unused_url() -> str:
    return f"ws://127.0.0.1:{unused_port()}/"


@pytest.fixture
def valid_frame() -> str:
    return encode_frame(make_snapshot())
