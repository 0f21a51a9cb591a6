"""Bounded rolling history used to feed the viewer's charts."""

from collections import deque
from collections.abc import Callable, Iterator, Mapping

from pulsetop.models import Snapshot

MetricExtractor = Callable[[Snapshot], float | None]

DEFAULT_METRICS: dict[str, MetricExtractor] = {
    "cpu": lambda snapshot: snapshot.cpu.load.current,
    "memory": lambda snapshot: snapshot.memory.used_percent,
    "temperature": lambda snapshot: snapshot.temperature.main,
}


class HistoryWindow:
    """
    Fixed-capacity FIFO of the most recent values of one metric.

    Pushing onto a full window evicts the oldest value, so the length is
    always ``min(capacity, pushes)`` and iteration is oldest first.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._values: deque[float] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._values.maxlen  # type: ignore[return-value]

    @property
    def latest(self) -> float | None:
        """The most recent value, or None when empty."""
        return self._values[-1] if self._values else None

    def push(self, value: float) -> None:
        self._values.append(float(value))

    def series(self) -> tuple[float, ...]:
        """Current values, oldest first, as an immutable copy."""
        return tuple(self._values)

    def clear(self) -> None:
        self._values.clear()

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[float]:
        return iter(self.series())


class MetricHistory:
    """
    One HistoryWindow per charted metric, fed a snapshot at a time.

    A metric whose extractor returns None for a snapshot (e.g. a missing
    temperature sensor) is left untouched for that snapshot rather than
    recorded as zero.
    """

    def __init__(
        self,
        capacity: int = 30,
        extractors: Mapping[str, MetricExtractor] | None = None,
    ) -> None:
        self._extractors = dict(DEFAULT_METRICS if extractors is None else extractors)
        self._windows = {name: HistoryWindow(capacity) for name in self._extractors}

    @property
    def metrics(self) -> tuple[str, ...]:
        return tuple(self._windows)

    def record(self, snapshot: Snapshot) -> None:
        """Append this snapshot's value of every metric."""
        for name, extract in self._extractors.items():
            value = extract(snapshot)
            if value is None:
                continue
            self._windows[name].push(value)

    def window(self, name: str) -> HistoryWindow:
        return self._windows[name]

    def series(self, name: str) -> tuple[float, ...]:
        return self._windows[name].series()

    def __getitem__(self, name: str) -> HistoryWindow:
        return self._windows[name]
