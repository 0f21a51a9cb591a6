"""Viewer-side connection to the pulsetop monitoring service."""

import logging
import threading
import time
from collections.abc import Callable
from enum import Enum

from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import ClientConnection
from websockets.sync.client import connect as ws_connect

from pulsetop.config import ClientConfig
from pulsetop.errors import FrameDecodeError
from pulsetop.models import Snapshot
from pulsetop.protocol import decode_frame

logger = logging.getLogger(__name__)

FrameListener = Callable[[Snapshot], object]
StateListener = Callable[["ConnectionState"], object]


class ConnectionState(Enum):
    """Lifecycle states of a ConnectionClient."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECT_WAIT = "reconnect_wait"


class ConnectionClient:
    """
    Keeps one WebSocket connection to the monitoring service alive.

    A background worker thread opens the connection, decodes every frame and
    hands the snapshot to the registered listeners, in registration order,
    on that same thread. When the connection drops or cannot be opened the
    client waits ``reconnect_delay`` seconds and tries again, up to
    ``max_attempts`` times in a row; after that it gives up and stays
    DISCONNECTED until ``connect()`` is called again, which starts a fresh
    retry budget. A successful handshake also resets the budget.

    Frames that fail to decode are logged and dropped without touching the
    connection, and a listener that raises does not keep the others from
    running.
    """

    def __init__(self, config: ClientConfig | None = None) -> None:
        self._config = config or ClientConfig()
        self._url = self._config.url
        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)
        self._state = ConnectionState.DISCONNECTED
        self._attempt = 0
        self._next_retry_at: float | None = None
        self._gave_up = False
        self._listeners: dict[object, FrameListener] = {}
        self._state_listeners: dict[object, StateListener] = {}
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._ws: ClientConnection | None = None

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempt(self) -> int:
        """Reconnect attempts made since the last successful handshake."""
        return self._attempt

    @property
    def next_retry_at(self) -> float | None:
        """``time.monotonic()`` deadline of the pending reconnect, if any."""
        return self._next_retry_at

    @property
    def gave_up(self) -> bool:
        """True once the retry budget is exhausted, until the next connect()."""
        return self._gave_up

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def connect(self, url: str | None = None) -> None:
        """
        Open the connection in the background.

        A no-op while connected or connecting. While waiting to reconnect it
        cuts the wait short. Otherwise the attempt counter is reset and a new
        worker is started.
        """
        with self._lock:
            if self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
                return
            if self._state is ConnectionState.RECONNECT_WAIT:
                self._wake_event.set()
                return
            if url is not None:
                self._url = url
            self._attempt = 0
            self._gave_up = False
            self._next_retry_at = None
            self._stop_event = threading.Event()
            self._wake_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event, self._wake_event),
                daemon=True,
                name="ConnectionClient",
            )
            self._change_state(ConnectionState.CONNECTING)
            self._thread.start()
        self._notify_state(ConnectionState.CONNECTING)

    def disconnect(self, timeout: float | None = 5.0) -> None:
        """
        Close the connection on purpose; no reconnect is scheduled.

        Cancels a pending reconnect wait and waits for the worker to finish
        unless called from a listener running on the worker itself.
        """
        with self._lock:
            self._stop_event.set()
            self._wake_event.set()
            ws = self._ws
            thread = self._thread
            self._ws = None
            self._thread = None
            self._next_retry_at = None
            changed = self._change_state(ConnectionState.DISCONNECTED)

        if ws is not None:
            ws.close()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        if changed:
            logger.info("Disconnected from monitoring service")
            self._notify_state(ConnectionState.DISCONNECTED)

    def add_listener(self, callback: FrameListener) -> Callable[[], None]:
        """
        Register a callback for every decoded snapshot.

        Each call is its own registration: adding the same callable twice
        delivers every snapshot to it twice.

        Returns:
            A function that removes exactly this registration.
        """
        return self._register(self._listeners, callback)

    def add_state_listener(self, callback: StateListener) -> Callable[[], None]:
        """Register a callback for every state change; returns its unsubscribe."""
        return self._register(self._state_listeners, callback)

    def wait_for(self, state: ConnectionState, timeout: float | None = None) -> bool:
        """Block until the client reaches ``state``; False on timeout."""
        with self._changed:
            return self._changed.wait_for(lambda: self._state is state, timeout=timeout)

    def _register(self, registry: dict[object, Callable], callback: Callable) -> Callable[[], None]:
        token = object()
        with self._lock:
            registry[token] = callback

        def unsubscribe() -> None:
            with self._lock:
                registry.pop(token, None)

        return unsubscribe

    def _change_state(self, state: ConnectionState) -> bool:
        """Set the state; caller holds the lock. Returns whether it changed."""
        if self._state is state:
            return False
        self._state = state
        self._changed.notify_all()
        return True

    def _notify_state(self, state: ConnectionState) -> None:
        with self._lock:
            listeners = list(self._state_listeners.values())
        for listener in listeners:
            try:
                listener(state)
            except Exception:
                logger.exception("State listener %r failed", listener)

    def _transition(self, stop: threading.Event, state: ConnectionState, **fields: object) -> bool:
        """
        Move to ``state`` from the worker, unless this run was stopped.

        Returns False when the run was stopped and nothing changed.
        """
        with self._lock:
            if stop.is_set() or stop is not self._stop_event:
                return False
            for name, value in fields.items():
                setattr(self, name, value)
            changed = self._change_state(state)
        if changed:
            self._notify_state(state)
        return True

    def _run(self, stop: threading.Event, wake: threading.Event) -> None:
        """Worker loop: connect, receive until closed, then back off and retry."""
        while not stop.is_set():
            self._transition(stop, ConnectionState.CONNECTING)
            connected = False
            try:
                with ws_connect(self._url, open_timeout=self._config.open_timeout) as ws:
                    if not self._attach(stop, ws):
                        return
                    connected = True
                    logger.info("Connected to monitoring service at %s", self._url)
                    try:
                        self._receive(ws)
                    finally:
                        self._detach(ws)
            except (OSError, WebSocketException) as exc:
                if connected:
                    logger.warning("Connection to %s failed: %s", self._url, exc)
                else:
                    logger.warning("Could not connect to %s: %s", self._url, exc)

            if stop.is_set():
                return
            if connected:
                logger.info("Connection to %s closed", self._url)
            if not self._backoff(stop, wake):
                return

    def _attach(self, stop: threading.Event, ws: ClientConnection) -> bool:
        """Publish a freshly opened connection; False if this run was stopped meanwhile."""
        with self._lock:
            if stop.is_set():
                return False
            self._ws = ws
        return self._transition(stop, ConnectionState.CONNECTED, _attempt=0, _next_retry_at=None, _gave_up=False)

    def _detach(self, ws: ClientConnection) -> None:
        with self._lock:
            if self._ws is ws:
                self._ws = None

    def _backoff(self, stop: threading.Event, wake: threading.Event) -> bool:
        """Wait before the next attempt; False if stopped or out of attempts."""
        max_attempts = self._config.max_attempts
        if self._attempt >= max_attempts:
            if self._transition(stop, ConnectionState.DISCONNECTED, _gave_up=True, _next_retry_at=None):
                logger.error("Max reconnection attempts reached (%d), giving up", max_attempts)
            return False

        delay = self._config.reconnect_delay
        attempt = self._attempt + 1
        if not self._transition(
            stop,
            ConnectionState.RECONNECT_WAIT,
            _attempt=attempt,
            _next_retry_at=time.monotonic() + delay,
        ):
            return False
        logger.info("Attempting to reconnect (%d/%d) in %.1fs", attempt, max_attempts, delay)
        wake.wait(timeout=delay)
        wake.clear()
        return not stop.is_set()

    def _receive(self, ws: ClientConnection) -> None:
        try:
            for message in ws:
                self._dispatch(message)
        except (ConnectionClosed, OSError) as exc:
            logger.warning("Connection lost: %s", exc)

    def _dispatch(self, message: str | bytes) -> None:
        try:
            snapshot = decode_frame(message)
        except FrameDecodeError as exc:
            logger.warning("Error parsing message: %s", exc)
            return
        except Exception:
            logger.exception("Unexpected error decoding message")
            return

        with self._lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Listener %r failed", listener)
