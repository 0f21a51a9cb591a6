"""Sampling scheduler for the pulsetop daemon."""

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from pulsetop.errors import CollectionError
from pulsetop.models import Snapshot

logger = logging.getLogger(__name__)

MIN_PERIOD = 0.01


class SamplingScheduler:
    """
    Periodically samples the host and publishes each snapshot.

    A daemon timer thread fires every ``period`` seconds on a fixed schedule
    and hands the collection to a single worker thread, so slow collections
    never shift the timer. At most one collection is in flight: a tick that
    fires while the previous one is still running is dropped, not queued.
    A failed collection skips its tick and leaves the schedule untouched.
    """

    def __init__(
        self,
        sample: Callable[[], Snapshot | None],
        publish: Callable[[Snapshot], object],
        period: float = 1.0,
    ) -> None:
        """
        Initialize the SamplingScheduler.

        Args:
            sample: Takes one snapshot. May raise, or return None for an
                incomplete reading; either way the tick is skipped.
            publish: Receives every successful snapshot.
            period: Seconds between ticks. Default 1.0s.
        """
        self._sample = sample
        self._publish = publish
        self._period = max(MIN_PERIOD, period)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._in_flight = threading.Lock()
        self._stats_lock = threading.Lock()
        self._published = 0
        self._skipped = 0
        self._dropped = 0

    @property
    def period(self) -> float:
        """Get the current period."""
        return self._period

    @period.setter
    def period(self, value: float) -> None:
        """Set the period, takes effect from the next tick."""
        self._period = max(MIN_PERIOD, value)

    @property
    def is_running(self) -> bool:
        """Check if the timer thread is running."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def ticks_published(self) -> int:
        return self._published

    @property
    def ticks_skipped(self) -> int:
        """Ticks whose collection failed or came back incomplete."""
        return self._skipped

    @property
    def ticks_dropped(self) -> int:
        """Ticks that fired while a collection was still in flight."""
        return self._dropped

    def start(self) -> None:
        """Start the timer thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="SamplingWorker")
        self._thread = threading.Thread(
            target=self._timer_loop,
            daemon=True,
            name="SamplingScheduler",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the timer thread and release the collection worker.

        Safe to call at any time, including while a collection is running;
        that collection is not interrupted but nothing is scheduled after it.

        Args:
            timeout: How long to wait for the timer thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def tick(self) -> bool:
        """
        Run one collection synchronously.

        Follows the same overlap rule as the timer: returns False straight
        away if a collection is already in flight. Otherwise returns whether
        a snapshot was published.
        """
        if not self._in_flight.acquire(blocking=False):
            self._count_dropped()
            return False
        try:
            return self._collect_and_publish()
        finally:
            self._in_flight.release()

    def _timer_loop(self) -> None:
        """Fire ticks on a fixed schedule until stop is requested."""
        next_tick = time.monotonic()
        while not self._stop_event.is_set():
            self._fire()
            next_tick += self._period
            delay = next_tick - time.monotonic()
            if delay < 0:
                # Fell behind (suspended process, clock hiccup): realign, no burst
                next_tick = time.monotonic()
                delay = 0
            self._stop_event.wait(timeout=delay)

    def _fire(self) -> None:
        if not self._in_flight.acquire(blocking=False):
            self._count_dropped()
            logger.debug("Previous collection still running, dropping tick")
            return
        executor = self._executor
        try:
            if executor is None:
                raise RuntimeError("scheduler is stopped")
            executor.submit(self._run_locked)
        except RuntimeError:
            # Executor shut down between the stop request and this tick
            self._in_flight.release()

    def _run_locked(self) -> None:
        try:
            self._collect_and_publish()
        finally:
            self._in_flight.release()

    def _collect_and_publish(self) -> bool:
        try:
            snapshot = self._sample()
        except CollectionError as exc:
            self._count_skipped()
            logger.warning("Collection failed, skipping tick: %s", exc)
            return False
        except Exception:
            self._count_skipped()
            logger.exception("Unexpected error while collecting, skipping tick")
            return False

        if snapshot is None:
            self._count_skipped()
            logger.warning("Collection returned no snapshot, skipping tick")
            return False

        try:
            self._publish(snapshot)
        except Exception:
            logger.exception("Publishing snapshot failed")
            return False

        with self._stats_lock:
            self._published += 1
        return True

    def _count_skipped(self) -> None:
        with self._stats_lock:
            self._skipped += 1

    def _count_dropped(self) -> None:
        with self._stats_lock:
            self._dropped += 1
