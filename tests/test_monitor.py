"""Tests for the SamplingScheduler class."""

import threading
import time

from conftest import make_snapshot, wait_until

from pulsetop.errors import CollectionError
from pulsetop.monitor import SamplingScheduler


class Recorder:
    """Publish target that remembers what it received."""

    def __init__(self) -> None:
        self.snapshots = []
        self.times = []

    def __call__(self, snapshot) -> None:
        self.snapshots.append(snapshot)
        self.times.append(time.monotonic())


class TestSamplingScheduler:
    """Tests for SamplingScheduler class."""

    def test_scheduler_creation(self):
        scheduler = SamplingScheduler(make_snapshot, Recorder())

        assert scheduler.period == 1.0
        assert not scheduler.is_running
        assert scheduler.ticks_published == 0

    def test_period_minimum(self):
        scheduler = SamplingScheduler(make_snapshot, Recorder(), period=0.0)
        assert scheduler.period >= 0.01

        scheduler.period = 0.0001
        assert scheduler.period >= 0.01

    def test_start_stop(self):
        scheduler = SamplingScheduler(make_snapshot, Recorder(), period=0.05)

        scheduler.start()
        assert scheduler.is_running

        scheduler.stop()
        assert not scheduler.is_running

    def test_start_idempotent(self):
        scheduler = SamplingScheduler(make_snapshot, Recorder(), period=0.05)

        scheduler.start()
        thread1 = scheduler._thread
        scheduler.start()
        thread2 = scheduler._thread

        assert thread1 is thread2
        scheduler.stop()

    def test_stop_without_start(self):
        scheduler = SamplingScheduler(make_snapshot, Recorder())

        scheduler.stop()

        assert not scheduler.is_running

    def test_daemon_thread(self):
        scheduler = SamplingScheduler(make_snapshot, Recorder(), period=0.05)
        scheduler.start()

        try:
            assert scheduler._thread is not None
            assert scheduler._thread.daemon is True
            assert scheduler._thread.name == "SamplingScheduler"
        finally:
            scheduler.stop()

    def test_publishes_every_tick(self):
        recorder = Recorder()
        scheduler = SamplingScheduler(make_snapshot, recorder, period=0.05)

        scheduler.start()
        try:
            assert wait_until(lambda: len(recorder.snapshots) >= 3, timeout=3.0)
        finally:
            scheduler.stop()

        assert all(s.cpu.load.current == 42.0 for s in recorder.snapshots)
        assert scheduler.ticks_published >= 3

    def test_no_ticks_after_stop(self):
        recorder = Recorder()
        scheduler = SamplingScheduler(make_snapshot, recorder, period=0.02)

        scheduler.start()
        wait_until(lambda: len(recorder.snapshots) >= 1)
        scheduler.stop()
        count = len(recorder.snapshots)
        time.sleep(0.2)

        assert len(recorder.snapshots) == count


class TestTick:
    """Tests for the synchronous tick."""

    def test_tick_publishes(self):
        recorder = Recorder()
        scheduler = SamplingScheduler(make_snapshot, recorder)

        assert scheduler.tick() is True
        assert len(recorder.snapshots) == 1

    def test_collection_error_skips_tick(self):
        recorder = Recorder()

        def failing():
            raise CollectionError("sensor offline")

        scheduler = SamplingScheduler(failing, recorder)

        assert scheduler.tick() is False
        assert recorder.snapshots == []
        assert scheduler.ticks_skipped == 1

    def test_unexpected_error_skips_tick(self):
        recorder = Recorder()

        def failing():
            raise RuntimeError("boom")

        scheduler = SamplingScheduler(failing, recorder)

        assert scheduler.tick() is False
        assert scheduler.ticks_skipped == 1

    def test_incomplete_reading_skips_tick(self):
        recorder = Recorder()
        scheduler = SamplingScheduler(lambda: None, recorder)

        assert scheduler.tick() is False
        assert recorder.snapshots == []
        assert scheduler.ticks_skipped == 1

    def test_publish_error_does_not_escape(self):
        def broken_publish(snapshot):
            raise RuntimeError("hub exploded")

        scheduler = SamplingScheduler(make_snapshot, broken_publish)

        assert scheduler.tick() is False


class TestFailureIsolation:
    """A failed tick does not disturb the schedule."""

    def test_failure_does_not_stop_following_ticks(self):
        recorder = Recorder()
        calls = []

        def flaky():
            calls.append(time.monotonic())
            if len(calls) % 2 == 1:
                raise CollectionError("odd tick fails")
            return make_snapshot()

        scheduler = SamplingScheduler(flaky, recorder, period=0.05)
        scheduler.start()
        try:
            assert wait_until(lambda: len(recorder.snapshots) >= 3, timeout=3.0)
        finally:
            scheduler.stop()

        assert scheduler.ticks_skipped >= 3
        assert scheduler.is_running is False

    def test_failed_tick_keeps_the_interval(self):
        calls = []

        def failing():
            calls.append(time.monotonic())
            raise CollectionError("always")

        scheduler = SamplingScheduler(failing, Recorder(), period=0.1)
        scheduler.start()
        try:
            assert wait_until(lambda: len(calls) >= 4, timeout=3.0)
        finally:
            scheduler.stop()

        gaps = [b - a for a, b in zip(calls, calls[1:])]
        # Neither stalled nor accelerated by the failures
        assert all(0.03 < gap < 0.5 for gap in gaps)


class TestOverlap:
    """At most one collection in flight."""

    def test_slow_collection_drops_ticks(self):
        release = threading.Event()
        started = []

        def slow():
            started.append(time.monotonic())
            release.wait(timeout=5)
            return make_snapshot()

        recorder = Recorder()
        scheduler = SamplingScheduler(slow, recorder, period=0.02)
        scheduler.start()
        try:
            assert wait_until(lambda: scheduler.ticks_dropped >= 3, timeout=3.0)
            assert len(started) == 1
        finally:
            release.set()
            scheduler.stop()

        assert len(recorder.snapshots) <= 2

    def test_tick_is_dropped_while_collection_in_flight(self):
        entered = threading.Event()
        release = threading.Event()

        def slow():
            entered.set()
            release.wait(timeout=5)
            return make_snapshot()

        scheduler = SamplingScheduler(slow, Recorder())
        worker = threading.Thread(target=scheduler.tick)
        worker.start()
        try:
            assert entered.wait(timeout=2)
            assert scheduler.tick() is False
            assert scheduler.ticks_dropped == 1
        finally:
            release.set()
            worker.join(timeout=2)

    def test_stop_during_collection_returns(self):
        entered = threading.Event()
        release = threading.Event()

        def slow():
            entered.set()
            release.wait(timeout=5)
            return make_snapshot()

        scheduler = SamplingScheduler(slow, Recorder(), period=0.05)
        scheduler.start()
        try:
            assert entered.wait(timeout=2)
            started = time.monotonic()
            scheduler.stop(timeout=2)
            assert time.monotonic() - started < 1.0
            assert not scheduler.is_running
        finally:
            release.set()
