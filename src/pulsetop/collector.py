"""Snapshot builder: maps psutil readings onto the pulsetop data model."""

import logging
import platform
import time
from collections.abc import Iterable, Mapping
from typing import Any

import psutil

from pulsetop.errors import CollectionError
from pulsetop.models import (
    CoreLoad,
    CpuInfo,
    CpuLoad,
    DiskIO,
    Drive,
    MemoryInfo,
    NetworkInterface,
    OsInfo,
    ProcessSnapshot,
    ProcessSummary,
    Snapshot,
    StorageInfo,
    SwapInfo,
    TemperatureInfo,
    TrafficStats,
)

logger = logging.getLogger(__name__)

MEGABYTE = 1024 * 1024

PROCESS_ATTRS = ["pid", "name", "cpu_percent", "memory_percent", "nice", "status"]

# Sensor groups that report the CPU package temperature, most specific first.
CPU_SENSOR_GROUPS = ("coretemp", "k10temp", "zenpower", "cpu_thermal", "cpu-thermal", "acpitz")


def _pct(value: float) -> float:
    return round(float(value), 2)


def _ratio(part: float, whole: float) -> float:
    if not whole:
        return 0.0
    return _pct(part / whole * 100)


def _rate(current: int, previous: int | None, elapsed: float) -> float:
    """Per-second rate between two counter readings; 0.0 without a baseline."""
    if previous is None or elapsed <= 0 or current < previous:
        return 0.0
    return (current - previous) / elapsed


def cpu_info(total: Any, per_core: Iterable[Any]) -> CpuInfo:
    """Build CPU load from ``psutil.cpu_times_percent`` results."""
    load = CpuLoad(
        current=_pct(100.0 - total.idle),
        user=_pct(total.user),
        system=_pct(total.system),
        idle=_pct(total.idle),
    )
    cores = tuple(
        CoreLoad(
            load=_pct(100.0 - core.idle),
            load_user=_pct(core.user),
            load_system=_pct(core.system),
        )
        for core in per_core
    )
    return CpuInfo(load=load, cores=cores)


def memory_info(mem: Any, swap: Any) -> MemoryInfo:
    """Build memory totals; the used percentage comes from this same reading."""
    return MemoryInfo(
        total=mem.total,
        used=mem.used,
        free=mem.free,
        active=getattr(mem, "active", 0),
        available=mem.available,
        used_percent=_ratio(mem.used, mem.total),
        swap=SwapInfo(total=swap.total, used=swap.used, free=swap.free),
    )


def network_interfaces(
    counters: Mapping[str, Any],
    stats: Mapping[str, Any],
    previous: Mapping[str, Any],
    elapsed: float,
) -> tuple[NetworkInterface, ...]:
    """Build per-interface traffic with MB/s rates relative to ``previous``."""
    interfaces = []
    for name, io in sorted(counters.items()):
        last = previous.get(name)
        if_stats = stats.get(name)
        if if_stats is None:
            state = "unknown"
        else:
            state = "up" if if_stats.isup else "down"
        rx_rate = _rate(io.bytes_recv, last.bytes_recv if last else None, elapsed)
        tx_rate = _rate(io.bytes_sent, last.bytes_sent if last else None, elapsed)
        interfaces.append(
            NetworkInterface(
                interface=name,
                state=state,
                rx=TrafficStats(
                    bytes=io.bytes_recv,
                    dropped=io.dropin,
                    errors=io.errin,
                    sec=_pct(rx_rate / MEGABYTE),
                ),
                tx=TrafficStats(
                    bytes=io.bytes_sent,
                    dropped=io.dropout,
                    errors=io.errout,
                    sec=_pct(tx_rate / MEGABYTE),
                ),
            )
        )
    return tuple(interfaces)


def disk_io(counters: Any, previous: Any, elapsed: float) -> DiskIO:
    if counters is None:
        return DiskIO()
    return DiskIO(
        read_io=counters.read_count,
        write_io=counters.write_count,
        read_io_sec=_pct(_rate(counters.read_count, previous.read_count if previous else None, elapsed)),
        write_io_sec=_pct(_rate(counters.write_count, previous.write_count if previous else None, elapsed)),
    )


def temperature_info(sensors: Mapping[str, Iterable[Any]] | None) -> TemperatureInfo:
    """
    Pick the CPU package, per-core and maximum temperatures.

    Returns an all-unavailable TemperatureInfo when there are no readings.
    """
    if not sensors:
        return TemperatureInfo()

    groups = {name: [entry for entry in entries if entry.current is not None] for name, entries in sensors.items()}
    readings = [entry for entries in groups.values() for entry in entries]
    if not readings:
        return TemperatureInfo()

    main_entry = readings[0]
    for group in CPU_SENSOR_GROUPS:
        if groups.get(group):
            main_entry = groups[group][0]
            break

    cores = tuple(_pct(entry.current) for entry in readings if (entry.label or "").startswith("Core"))
    return TemperatureInfo(
        main=_pct(main_entry.current),
        cores=cores,
        max=_pct(max(entry.current for entry in readings)),
    )


def process_summary(infos: Iterable[Mapping[str, Any]], top: int = 10) -> ProcessSummary:
    """Count processes by state and keep the ``top`` busiest by CPU."""
    processes: list[ProcessSnapshot] = []
    running = blocked = sleeping = 0
    for info in infos:
        status = info.get("status") or "?"
        if status == psutil.STATUS_RUNNING:
            running += 1
        elif status == psutil.STATUS_DISK_SLEEP:
            blocked += 1
        elif status in (psutil.STATUS_SLEEPING, psutil.STATUS_IDLE):
            sleeping += 1
        processes.append(
            ProcessSnapshot(
                pid=info.get("pid", 0),
                name=info.get("name") or "",
                cpu=_pct(info.get("cpu_percent") or 0.0),
                mem=_pct(info.get("memory_percent") or 0.0),
                priority=info.get("nice") or 0,
                state=status,
            )
        )
    busiest = sorted(processes, key=lambda proc: proc.cpu, reverse=True)[:top]
    return ProcessSummary(
        all=len(processes),
        running=running,
        blocked=blocked,
        sleeping=sleeping,
        list=tuple(busiest),
    )


def os_info() -> OsInfo:
    distro = ""
    try:
        release = platform.freedesktop_os_release()
        distro = release.get("PRETTY_NAME") or release.get("NAME", "")
    except (AttributeError, OSError):
        distro = platform.system()
    return OsInfo(
        platform=platform.system().lower(),
        distro=distro,
        release=platform.release(),
        kernel=platform.version(),
        arch=platform.machine(),
    )


class SnapshotBuilder:
    """
    Reads the host through psutil and returns one Snapshot per call.

    CPU and memory are required: if either read fails, CollectionError is
    raised. Network, storage, process and sensor sections degrade to empty
    values instead. The only state kept between calls is the previous
    network and disk counters, used to turn them into per-second rates.
    """

    def __init__(self, top_processes: int = 10) -> None:
        self._top_processes = top_processes
        self._os = os_info()
        self._last_read: float | None = None
        self._last_net: dict[str, Any] = {}
        self._last_disk: Any = None
        # Initialize CPU times percent (first call returns 0.0)
        psutil.cpu_times_percent(interval=None)
        psutil.cpu_times_percent(interval=None, percpu=True)

    def build(self) -> Snapshot:
        """Take one snapshot of the host."""
        timestamp = int(time.time() * 1000)
        now = time.monotonic()
        elapsed = now - self._last_read if self._last_read is not None else 0.0
        self._last_read = now

        try:
            cpu = cpu_info(
                psutil.cpu_times_percent(interval=None),
                psutil.cpu_times_percent(interval=None, percpu=True),
            )
            memory = memory_info(psutil.virtual_memory(), psutil.swap_memory())
        except (psutil.Error, OSError) as exc:
            raise CollectionError(f"reading cpu/memory failed: {exc}") from exc

        if memory.total <= 0:
            raise CollectionError("memory reading reported zero total")

        return Snapshot(
            timestamp=timestamp,
            os=self._os,
            cpu=cpu,
            memory=memory,
            network=self._collect_network(elapsed),
            storage=StorageInfo(drives=self._collect_drives(), io=self._collect_disk_io(elapsed)),
            processes=self._collect_processes(),
            temperature=self._collect_temperature(),
        )

    __call__ = build

    def _collect_network(self, elapsed: float) -> tuple[NetworkInterface, ...]:
        try:
            counters = psutil.net_io_counters(pernic=True)
            stats = psutil.net_if_stats()
        except (psutil.Error, OSError) as exc:
            logger.debug("Network counters unavailable: %s", exc)
            return ()
        interfaces = network_interfaces(counters, stats, self._last_net, elapsed)
        self._last_net = dict(counters)
        return interfaces

    def _collect_drives(self) -> tuple[Drive, ...]:
        drives = []
        try:
            partitions = psutil.disk_partitions(all=False)
        except (psutil.Error, OSError) as exc:
            logger.debug("Disk partitions unavailable: %s", exc)
            return ()
        for part in partitions:
            try:
                usage = psutil.disk_usage(part.mountpoint)
            except (PermissionError, OSError):
                # Unreadable or vanished mount points are skipped
                continue
            if usage.total <= 0:
                continue
            drives.append(
                Drive(
                    filesystem=part.device,
                    type=part.fstype,
                    mount=part.mountpoint,
                    size=usage.total,
                    used=usage.used,
                    available=usage.free,
                    used_percent=_ratio(usage.used, usage.total),
                )
            )
        return tuple(drives)

    def _collect_disk_io(self, elapsed: float) -> DiskIO:
        try:
            counters = psutil.disk_io_counters()
        except (psutil.Error, OSError, RuntimeError) as exc:
            logger.debug("Disk I/O counters unavailable: %s", exc)
            return DiskIO()
        io = disk_io(counters, self._last_disk, elapsed)
        self._last_disk = counters
        return io

    def _collect_processes(self) -> ProcessSummary:
        """
        Collect process counts and the busiest processes.

        Handles AccessDenied and ZombieProcess errors gracefully.
        """
        infos = []
        for proc in psutil.process_iter(attrs=PROCESS_ATTRS):
            try:
                infos.append(proc.info)
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                # Processes that died mid-poll or deny access are skipped
                continue
        return process_summary(infos, top=self._top_processes)

    def _collect_temperature(self) -> TemperatureInfo:
        read_sensors = getattr(psutil, "sensors_temperatures", None)
        if read_sensors is None:
            return TemperatureInfo()
        try:
            sensors = read_sensors()
        except (psutil.Error, OSError, RuntimeError) as exc:
            logger.debug("Temperature sensors unavailable: %s", exc)
            return TemperatureInfo()
        return temperature_info(sensors)
