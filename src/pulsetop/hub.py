"""Fan-out of snapshots to every connected viewer."""

import logging
import threading
from typing import Protocol, runtime_checkable

from pulsetop.models import Snapshot
from pulsetop.protocol import encode_frame

logger = logging.getLogger(__name__)


@runtime_checkable
class Subscriber(Protocol):
    """A live outbound channel to one viewer."""

    @property
    def is_open(self) -> bool: ...

    def send(self, frame: str) -> None: ...


class BroadcastHub:
    """
    Owns the set of live subscribers and pushes every snapshot to all of them.

    Delivery is best effort and independent per subscriber: a subscriber that
    is no longer open, or whose send fails, is dropped from the set and the
    others still receive the frame. Nothing is retried; the next snapshot
    supersedes a missed one.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: set[Subscriber] = set()

    def register(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers.add(subscriber)
        logger.debug("Subscriber registered: %r", subscriber)

    def unregister(self, subscriber: Subscriber) -> None:
        """Remove a subscriber; removing one that is not registered is a no-op."""
        with self._lock:
            removed = subscriber in self._subscribers
            self._subscribers.discard(subscriber)
        if removed:
            logger.debug("Subscriber unregistered: %r", subscriber)

    def broadcast(self, snapshot: Snapshot) -> int:
        """
        Serialize the snapshot once and send it to every registered subscriber.

        Returns:
            The number of subscribers the frame was delivered to.
        """
        frame = encode_frame(snapshot)
        with self._lock:
            targets = list(self._subscribers)

        delivered = 0
        for subscriber in targets:
            if not subscriber.is_open:
                self.unregister(subscriber)
                continue
            try:
                subscriber.send(frame)
            except Exception as exc:
                logger.info("Dropping subscriber %r after failed send: %s", subscriber, exc)
                self.unregister(subscriber)
                continue
            delivered += 1
        return delivered

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def __contains__(self, subscriber: object) -> bool:
        with self._lock:
            return subscriber in self._subscribers
