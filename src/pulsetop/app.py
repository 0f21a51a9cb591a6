"""pulsetop - Textual viewer for the monitoring service."""

import argparse
import logging
from enum import Enum
from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.widgets import DataTable, Footer, Header, Sparkline, Static

from pulsetop.client import ConnectionClient, ConnectionState
from pulsetop.config import ClientConfig, HistoryConfig, log_level
from pulsetop.history import MetricHistory
from pulsetop.models import Drive, ProcessSnapshot, Snapshot

logger = logging.getLogger(__name__)

STATUS_TEXT = {
    ConnectionState.DISCONNECTED: "Disconnected",
    ConnectionState.CONNECTING: "Connecting to monitoring service...",
    ConnectionState.CONNECTED: "Connected",
    ConnectionState.RECONNECT_WAIT: "Connection lost, retrying",
}


class SortKey(Enum):
    """Sort keys for the process table."""

    CPU = "cpu"
    MEM = "mem"
    PID = "pid"
    NAME = "name"


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{size:5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def usage_bar(percent: float, color: str, width: int = 20) -> str:
    """Render a percentage as a fixed-width markup bar."""
    filled = min(max(int(percent / 100 * width), 0), width)
    return f"[{color}]█[/{color}]" * filled + "[dim]░[/dim]" * (width - filled)


class HeaderStats(Static):
    """Header widget showing CPU, memory and host statistics."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._snapshot: Snapshot | None = None

    def compose(self) -> ComposeResult:
        yield Horizontal(
            Static(self._get_cpu_info(), id="cpu-info"),
            Static(self._get_mem_info(), id="mem-info"),
        )

    @property
    def snapshot(self) -> Snapshot | None:
        return self._snapshot

    def update_stats(self, snapshot: Snapshot) -> None:
        """Update the statistics from a snapshot."""
        self._snapshot = snapshot
        try:
            self.query_one("#cpu-info", Static).update(self._get_cpu_info())
            self.query_one("#mem-info", Static).update(self._get_mem_info())
        except Exception:
            pass  # Widget not mounted yet

    def _get_cpu_info(self) -> str:
        if self._snapshot is None:
            return "Waiting for data..."
        cpu = self._snapshot.cpu
        lines = [f"CPU   \\[{usage_bar(cpu.load.current, 'green')}] {cpu.load.current:5.1f}%"]
        for i, core in enumerate(cpu.cores):
            lines.append(f"CPU{i:<2} \\[{usage_bar(core.load, 'green')}] {core.load:5.1f}%")
        return "\n".join(lines)

    def _get_mem_info(self) -> str:
        if self._snapshot is None:
            return ""
        snapshot = self._snapshot
        memory = snapshot.memory
        swap_percent = memory.swap.used / memory.swap.total * 100 if memory.swap.total else 0.0
        temperature = snapshot.temperature
        temp_str = f"{temperature.main:.1f}°C" if temperature.main is not None else "N/A"
        os_label = f"{snapshot.os.distro} {snapshot.os.release}".strip() or "unknown host"

        return (
            f"Mem\\[{usage_bar(memory.used_percent, 'cyan')}] "
            f"{memory.used / 1024**3:.1f}G/{memory.total / 1024**3:.1f}G\n"
            f"Swp\\[{usage_bar(swap_percent, 'yellow')}] "
            f"{memory.swap.used / 1024**3:.1f}G/{memory.swap.total / 1024**3:.1f}G\n"
            f"Temperature: {temp_str}\n"
            f"Processes: {snapshot.processes.all} ({snapshot.processes.running} running)\n"
            f"Host: {os_label}"
        )


class HistoryCharts(Container):
    """CPU and memory history sparklines."""

    DEFAULT_CSS = """
    HistoryCharts {
        height: auto;
        layout: horizontal;
    }

    HistoryCharts Vertical {
        width: 1fr;
        height: auto;
        padding: 0 1;
    }

    HistoryCharts Sparkline {
        height: 4;
    }
    """

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Static("CPU Usage History", classes="chart-title")
            yield Sparkline([], summary_function=max, id="cpu-history")
        with Vertical():
            yield Static("Memory Usage History", classes="chart-title")
            yield Sparkline([], summary_function=max, id="memory-history")

    def update_history(self, history: MetricHistory) -> None:
        self.query_one("#cpu-history", Sparkline).data = list(history.series("cpu"))
        self.query_one("#memory-history", Sparkline).data = list(history.series("memory"))


class StoragePanel(Static):
    """Per-volume usage bars."""

    DEFAULT_CSS = """
    StoragePanel {
        height: auto;
        padding: 0 1;
    }
    """

    def update_drives(self, drives: tuple[Drive, ...]) -> None:
        if not drives:
            self.update("Storage: no volumes reported")
            return
        lines = [
            f"{drive.mount:<16.16} \\[{usage_bar(drive.used_percent, 'magenta')}] "
            f"{drive.used_percent:5.1f}% of {format_bytes(drive.size).strip()} ({drive.filesystem})"
            for drive in drives
        ]
        self.update("\n".join(lines))


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._sort_key: SortKey = SortKey.CPU
        self._sort_reverse: bool = True  # Default: descending for CPU

    @property
    def sort_key(self) -> SortKey:
        return self._sort_key

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key and return it."""
        keys = list(SortKey)
        self._sort_key = keys[(keys.index(self._sort_key) + 1) % len(keys)]
        self._sort_reverse = self._sort_key in (SortKey.CPU, SortKey.MEM)
        return self._sort_key

    def compose(self) -> ComposeResult:
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"
        table.add_column("PID", key="pid", width=8)
        table.add_column("PRI", key="priority", width=4)
        table.add_column("S", key="state", width=10)
        table.add_column("CPU%", key="cpu", width=8)
        table.add_column("MEM%", key="mem", width=8)
        table.add_column("Name", key="name")

    def update_processes(self, processes: tuple[ProcessSnapshot, ...]) -> None:
        """
        Replace the table contents with the given processes.

        The server already sends only the busiest processes, so the table is
        rebuilt in sorted order on every frame.
        """
        table = self.query_one("#process-table", DataTable)
        table.clear()
        for proc in self._sort_processes(processes):
            table.add_row(
                str(proc.pid),
                str(proc.priority),
                proc.state,
                f"{proc.cpu:5.1f}",
                f"{proc.mem:5.1f}",
                proc.name[:50],
                key=str(proc.pid),
            )

    def _sort_processes(self, processes: tuple[ProcessSnapshot, ...]) -> list[ProcessSnapshot]:
        key_func = {
            SortKey.CPU: lambda p: p.cpu,
            SortKey.MEM: lambda p: p.mem,
            SortKey.PID: lambda p: p.pid,
            SortKey.NAME: lambda p: p.name.lower(),
        }
        # Duplicate pids would collide as row keys
        unique = {proc.pid: proc for proc in processes}.values()
        return sorted(unique, key=key_func[self._sort_key], reverse=self._sort_reverse)


class PulsetopApp(App):
    """Live dashboard fed by the monitoring service."""

    TITLE = "pulsetop"
    SUB_TITLE = STATUS_TEXT[ConnectionState.CONNECTING]

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        height: auto;
        min-height: 6;
    }

    Horizontal {
        height: auto;
    }

    #cpu-info {
        width: 1fr;
        padding-right: 2;
    }

    #mem-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
        ("r", "reconnect", "Reconnect"),
    ]

    def __init__(
        self,
        client_config: ClientConfig | None = None,
        history_config: HistoryConfig | None = None,
    ) -> None:
        super().__init__()
        history_config = history_config or HistoryConfig()
        self._update_queue: Queue[Snapshot] = Queue()
        self._client = ConnectionClient(client_config)
        self._history = MetricHistory(capacity=history_config.capacity)
        self._unsubscribe = None
        self._last_state: ConnectionState | None = None

    @property
    def client(self) -> ConnectionClient:
        return self._client

    @property
    def history(self) -> MetricHistory:
        return self._history

    def compose(self) -> ComposeResult:
        yield Header()
        yield HeaderStats(id="header-stats")
        yield HistoryCharts(id="history-charts")
        yield StoragePanel("Storage: waiting for data...", id="storage")
        yield ProcessTable()
        yield Footer()

    def on_mount(self) -> None:
        """Connect to the service and start draining its snapshots."""
        # The listener runs on the client's thread; it only hands off to the queue
        self._unsubscribe = self._client.add_listener(self._update_queue.put)
        self._client.connect()
        self.set_interval(0.5, self._check_for_updates)

    def on_unmount(self) -> None:
        self._shutdown_client()

    def _check_for_updates(self) -> None:
        """Record every queued snapshot and render the latest one."""
        self._refresh_status()
        snapshot = None
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break
            self._history.record(snapshot)

        if snapshot is not None:
            self._update_ui(snapshot)

    def _refresh_status(self) -> None:
        state = self._client.state
        if state is self._last_state:
            return
        self._last_state = state
        if state is ConnectionState.DISCONNECTED and self._client.gave_up:
            self.sub_title = "Could not reach monitoring service (r to retry)"
        elif state is ConnectionState.RECONNECT_WAIT:
            self.sub_title = f"{STATUS_TEXT[state]} ({self._client.attempt}/{self._client.config.max_attempts})"
        else:
            self.sub_title = STATUS_TEXT[state]

    def _update_ui(self, snapshot: Snapshot) -> None:
        """Update the widgets with the newest snapshot."""
        try:
            self.query_one("#header-stats", HeaderStats).update_stats(snapshot)
            self.query_one(HistoryCharts).update_history(self._history)
            self.query_one(StoragePanel).update_drives(snapshot.storage.drives)
            self.query_one(ProcessTable).update_processes(snapshot.processes.list)
        except Exception:
            logger.exception("Failed to render snapshot")

    def _shutdown_client(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._client.disconnect(timeout=1.0)

    def action_sort(self) -> None:
        """Cycle the process table sort key."""
        process_table = self.query_one(ProcessTable)
        new_sort_key = process_table.cycle_sort()
        self.notify(f"Sort: {new_sort_key.value.upper()}")

    def action_reconnect(self) -> None:
        self._client.connect()

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._shutdown_client()
        self.exit()


def main(argv: list[str] | None = None) -> None:
    """Entry point for the pulsetop viewer."""
    client_defaults = ClientConfig.from_env()
    history_defaults = HistoryConfig.from_env()
    parser = argparse.ArgumentParser(description="Live dashboard for a pulsetop monitoring service")
    parser.add_argument("--url", default=client_defaults.url)
    parser.add_argument("--history", type=int, default=history_defaults.capacity, help="points kept per chart")
    parser.add_argument("--log-file", help="write logs here instead of discarding them")
    parser.add_argument("--log-level", default=log_level("WARNING"))
    args = parser.parse_args(argv)

    # The terminal belongs to the UI, so logs only go to a file when asked
    if args.log_file:
        logging.basicConfig(filename=args.log_file, level=args.log_level.upper())
    else:
        logging.getLogger().addHandler(logging.NullHandler())

    app = PulsetopApp(
        client_config=ClientConfig(url=args.url),
        history_config=HistoryConfig(capacity=args.history),
    )
    app.run()


if __name__ == "__main__":
    main()
