"""WebSocket server that streams snapshots to pulsetop viewers."""

import argparse
import json
import logging
import signal
import threading
from collections.abc import Callable
from http import HTTPStatus
from queue import Empty, Full, Queue

from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response
from websockets.protocol import State
from websockets.sync.server import Server, ServerConnection, serve

from pulsetop.collector import SnapshotBuilder
from pulsetop.config import ServerConfig, log_level
from pulsetop.hub import BroadcastHub
from pulsetop.models import Snapshot
from pulsetop.monitor import SamplingScheduler

logger = logging.getLogger(__name__)

STREAM_PATH = "/"
HEALTH_PATH = "/health"
OUTBOX_SIZE = 8  # frames queued per viewer
SEND_POLL = 0.2  # seconds


class WebSocketSubscriber:
    """
    Adapts an accepted WebSocket connection to the hub's Subscriber protocol.

    ``send`` never blocks the broadcaster: frames go into a small outbox that
    a per-connection sender thread writes to the socket. When a viewer reads
    slower than frames arrive the oldest queued frame is dropped, so a stalled
    viewer only loses its own frames.
    """

    def __init__(self, connection: ServerConnection, outbox_size: int = OUTBOX_SIZE) -> None:
        self.connection = connection
        self._outbox: Queue[str] = Queue(maxsize=outbox_size)
        self._closed = threading.Event()
        self._sender = threading.Thread(target=self._send_loop, daemon=True, name="SubscriberSender")
        self.dropped = 0

    @property
    def is_open(self) -> bool:
        return not self._closed.is_set() and self.connection.state is State.OPEN

    def start(self) -> None:
        self._sender.start()

    def close(self) -> None:
        self._closed.set()

    def send(self, frame: str) -> None:
        # Only the broadcaster puts, so making room always succeeds
        while True:
            try:
                self._outbox.put_nowait(frame)
                return
            except Full:
                try:
                    self._outbox.get_nowait()
                    self.dropped += 1
                except Empty:
                    pass

    def _send_loop(self) -> None:
        while not self._closed.is_set():
            try:
                frame = self._outbox.get(timeout=SEND_POLL)
            except Empty:
                continue
            try:
                self.connection.send(frame)
            except (ConnectionClosed, OSError):
                break
        self._closed.set()

    def __repr__(self) -> str:
        return f"<WebSocketSubscriber {self.connection.remote_address}>"


class TelemetryServer:
    """
    Accepts viewer connections and registers them with a BroadcastHub.

    The WebSocket stream lives at ``/``; ``/health`` answers plain HTTP
    requests with a static readiness payload. Runs in a daemon thread.
    """

    def __init__(self, hub: BroadcastHub, host: str = "0.0.0.0", port: int = 8080) -> None:
        self._hub = hub
        self._host = host
        self._port = port
        self._server: Server | None = None
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def port(self) -> int:
        """The bound port; differs from the requested one when that was 0."""
        if self._server is None:
            return self._port
        return self._server.socket.getsockname()[1]

    @property
    def url(self) -> str:
        host = "localhost" if self._host in ("0.0.0.0", "") else self._host
        return f"ws://{host}:{self.port}{STREAM_PATH}"

    def start(self) -> None:
        if self.is_running:
            return
        self._server = serve(
            self._handle,
            self._host,
            self._port,
            process_request=self._process_request,
        )
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            daemon=True,
            name="TelemetryServer",
        )
        self._thread.start()
        logger.info("Monitoring service listening on %s", self.url)

    def stop(self, timeout: float | None = 5.0) -> None:
        if self._server is not None:
            self._server.shutdown()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        self._server = None

    def _process_request(self, connection: ServerConnection, request: Request) -> Response | None:
        path = request.path.split("?", 1)[0]
        if path == HEALTH_PATH:
            response = connection.respond(HTTPStatus.OK, json.dumps({"status": "ok"}))
            del response.headers["Content-Type"]
            response.headers["Content-Type"] = "application/json"
            return response
        if path != STREAM_PATH:
            return connection.respond(HTTPStatus.NOT_FOUND, "Not Found\n")
        return None

    def _handle(self, connection: ServerConnection) -> None:
        subscriber = WebSocketSubscriber(connection)
        subscriber.start()
        self._hub.register(subscriber)
        logger.info("New client connected from %s", connection.remote_address)
        try:
            # Viewers only listen; anything they send is ignored
            for _ in connection:
                pass
        except ConnectionClosed as exc:
            logger.debug("Client %s closed abnormally: %s", connection.remote_address, exc)
        finally:
            subscriber.close()
            self._hub.unregister(subscriber)
            logger.info("Client disconnected: %s", connection.remote_address)


class MonitoringService:
    """
    Composition root of the daemon: sampler, hub and WebSocket server.

    ``sample`` defaults to a psutil SnapshotBuilder; tests inject a stub.
    """

    def __init__(
        self,
        config: ServerConfig | None = None,
        sample: Callable[[], Snapshot | None] | None = None,
    ) -> None:
        self.config = config or ServerConfig()
        self.hub = BroadcastHub()
        if sample is None:
            sample = SnapshotBuilder(top_processes=self.config.top_processes)
        self.scheduler = SamplingScheduler(sample, self.hub.broadcast, period=self.config.interval)
        self.server = TelemetryServer(self.hub, host=self.config.host, port=self.config.port)

    def start(self) -> None:
        self.server.start()
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()
        self.server.stop()


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    defaults = ServerConfig.from_env()
    parser = argparse.ArgumentParser(description="Stream host metrics to pulsetop viewers")
    parser.add_argument("--host", default=defaults.host)
    parser.add_argument("--port", type=int, default=defaults.port)
    parser.add_argument("--interval", type=float, default=defaults.interval, help="seconds between samples")
    parser.add_argument("--top", type=int, default=defaults.top_processes, help="processes listed per frame")
    parser.add_argument("--log-level", default=log_level())
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Entry point for the pulsetop monitoring service."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    service = MonitoringService(
        ServerConfig(host=args.host, port=args.port, interval=args.interval, top_processes=args.top)
    )

    stopped = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stopped.set())

    service.start()
    try:
        stopped.wait()
    except KeyboardInterrupt:
        pass
    finally:
        logger.info("Shutting down monitoring service")
        service.stop()


if __name__ == "__main__":
    main()
