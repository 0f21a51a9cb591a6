"""Data models for pulsetop.

Every model is an immutable, slotted dataclass. ``to_dict`` produces the
camelCase mapping used on the wire and ``from_dict`` rebuilds the model from
it; missing sections fall back to empty defaults so that reduced frames still
decode.
"""

import math
from dataclasses import dataclass, field
from typing import Any

UNAVAILABLE = "N/A"


def _num(value: Any, default: float = 0.0) -> float:
    """Read a number that may arrive as a JSON number or a numeric string."""
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValueError(f"expected a number, got {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"expected a finite number, got {value!r}")
    return number


def _int(value: Any, default: int = 0) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValueError(f"expected an integer, got {value!r}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"expected a finite integer, got {value!r}")
    return int(value)


def _reading(value: Any) -> float | None:
    """Read an optional sensor value; ``None`` and "N/A" mean unavailable."""
    if value is None or value == UNAVAILABLE:
        return None
    return _num(value)


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"'{key}' must be an object")
    return value


def _items(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"'{key}' must be an array")
    return value


@dataclass(slots=True, frozen=True)
class OsInfo:
    """Static description of the host operating system."""

    platform: str = ""
    distro: str = ""
    release: str = ""
    kernel: str = ""
    arch: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform": self.platform,
            "distro": self.distro,
            "release": self.release,
            "kernel": self.kernel,
            "arch": self.arch,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OsInfo":
        return cls(
            platform=str(data.get("platform") or ""),
            distro=str(data.get("distro") or ""),
            release=str(data.get("release") or ""),
            kernel=str(data.get("kernel") or ""),
            arch=str(data.get("arch") or ""),
        )


@dataclass(slots=True, frozen=True)
class CpuLoad:
    """Aggregate CPU load split, in percent."""

    current: float = 0.0
    user: float = 0.0
    system: float = 0.0
    idle: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "current": self.current,
            "user": self.user,
            "system": self.system,
            "idle": self.idle,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CpuLoad":
        return cls(
            current=_num(data.get("current")),
            user=_num(data.get("user")),
            system=_num(data.get("system")),
            idle=_num(data.get("idle")),
        )


@dataclass(slots=True, frozen=True)
class CoreLoad:
    """Load of a single logical core, in percent."""

    load: float = 0.0
    load_user: float = 0.0
    load_system: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "load": self.load,
            "loadUser": self.load_user,
            "loadSystem": self.load_system,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CoreLoad":
        return cls(
            load=_num(data.get("load")),
            load_user=_num(data.get("loadUser")),
            load_system=_num(data.get("loadSystem")),
        )


@dataclass(slots=True, frozen=True)
class CpuInfo:
    load: CpuLoad = field(default_factory=CpuLoad)
    cores: tuple[CoreLoad, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "load": self.load.to_dict(),
            "cores": [core.to_dict() for core in self.cores],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CpuInfo":
        return cls(
            load=CpuLoad.from_dict(_section(data, "load")),
            cores=tuple(CoreLoad.from_dict(core) for core in _items(data, "cores")),
        )


@dataclass(slots=True, frozen=True)
class SwapInfo:
    total: int = 0
    used: int = 0
    free: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"total": self.total, "used": self.used, "free": self.free}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SwapInfo":
        return cls(
            total=_int(data.get("total")),
            used=_int(data.get("used")),
            free=_int(data.get("free")),
        )


@dataclass(slots=True, frozen=True)
class MemoryInfo:
    """Memory totals in bytes; ``used_percent`` is derived from the same read."""

    total: int = 0
    used: int = 0
    free: int = 0
    active: int = 0
    available: int = 0
    used_percent: float = 0.0
    swap: SwapInfo = field(default_factory=SwapInfo)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "used": self.used,
            "free": self.free,
            "active": self.active,
            "available": self.available,
            "usedPercent": self.used_percent,
            "swap": self.swap.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemoryInfo":
        return cls(
            total=_int(data.get("total")),
            used=_int(data.get("used")),
            free=_int(data.get("free")),
            active=_int(data.get("active")),
            available=_int(data.get("available")),
            used_percent=_num(data.get("usedPercent")),
            swap=SwapInfo.from_dict(_section(data, "swap")),
        )


@dataclass(slots=True, frozen=True)
class TrafficStats:
    """One direction of interface traffic; ``sec`` is throughput in MB/s."""

    bytes: int = 0
    dropped: int = 0
    errors: int = 0
    sec: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "bytes": self.bytes,
            "dropped": self.dropped,
            "errors": self.errors,
            "sec": self.sec,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrafficStats":
        return cls(
            bytes=_int(data.get("bytes")),
            dropped=_int(data.get("dropped")),
            errors=_int(data.get("errors")),
            sec=_num(data.get("sec")),
        )


@dataclass(slots=True, frozen=True)
class NetworkInterface:
    interface: str
    state: str = "unknown"
    rx: TrafficStats = field(default_factory=TrafficStats)
    tx: TrafficStats = field(default_factory=TrafficStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "interface": self.interface,
            "state": self.state,
            "rx": self.rx.to_dict(),
            "tx": self.tx.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NetworkInterface":
        return cls(
            interface=str(data["interface"]),
            state=str(data.get("state") or "unknown"),
            rx=TrafficStats.from_dict(_section(data, "rx")),
            tx=TrafficStats.from_dict(_section(data, "tx")),
        )


@dataclass(slots=True, frozen=True)
class Drive:
    """A mounted volume; sizes in bytes."""

    filesystem: str
    mount: str
    type: str = ""
    size: int = 0
    used: int = 0
    available: int = 0
    used_percent: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "filesystem": self.filesystem,
            "type": self.type,
            "mount": self.mount,
            "size": self.size,
            "used": self.used,
            "available": self.available,
            "usedPercent": self.used_percent,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Drive":
        return cls(
            filesystem=str(data.get("filesystem") or ""),
            mount=str(data["mount"]),
            type=str(data.get("type") or ""),
            size=_int(data.get("size")),
            used=_int(data.get("used")),
            available=_int(data.get("available")),
            used_percent=_num(data.get("usedPercent")),
        )


@dataclass(slots=True, frozen=True)
class DiskIO:
    """Aggregate disk I/O operation counters and per-second rates."""

    read_io: int | None = None
    write_io: int | None = None
    read_io_sec: float | None = None
    write_io_sec: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "readIO": self.read_io,
            "writeIO": self.write_io,
            "readIO_sec": self.read_io_sec,
            "writeIO_sec": self.write_io_sec,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DiskIO":
        return cls(
            read_io=None if data.get("readIO") is None else _int(data["readIO"]),
            write_io=None if data.get("writeIO") is None else _int(data["writeIO"]),
            read_io_sec=_reading(data.get("readIO_sec")),
            write_io_sec=_reading(data.get("writeIO_sec")),
        )


@dataclass(slots=True, frozen=True)
class StorageInfo:
    drives: tuple[Drive, ...] = ()
    io: DiskIO = field(default_factory=DiskIO)

    def to_dict(self) -> dict[str, Any]:
        return {
            "drives": [drive.to_dict() for drive in self.drives],
            "io": self.io.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StorageInfo":
        return cls(
            drives=tuple(Drive.from_dict(drive) for drive in _items(data, "drives")),
            io=DiskIO.from_dict(_section(data, "io")),
        )


@dataclass(slots=True, frozen=True)
class ProcessSnapshot:
    """Immutable snapshot of a process state."""

    pid: int
    name: str
    cpu: float  # 0.0 - 100.0 * core_count
    mem: float  # percent of physical memory
    priority: int = 0
    state: str = "?"

    def to_dict(self) -> dict[str, Any]:
        return {
            "pid": self.pid,
            "name": self.name,
            "cpu": self.cpu,
            "mem": self.mem,
            "priority": self.priority,
            "state": self.state,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProcessSnapshot":
        return cls(
            pid=_int(data["pid"]),
            name=str(data.get("name") or ""),
            cpu=_num(data.get("cpu")),
            mem=_num(data.get("mem")),
            priority=_int(data.get("priority")),
            state=str(data.get("state") or "?"),
        )


@dataclass(slots=True, frozen=True)
class ProcessSummary:
    """Process counts plus the busiest processes of the tick."""

    all: int = 0
    running: int = 0
    blocked: int = 0
    sleeping: int = 0
    list: tuple[ProcessSnapshot, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "all": self.all,
            "running": self.running,
            "blocked": self.blocked,
            "sleeping": self.sleeping,
            "list": [proc.to_dict() for proc in self.list],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProcessSummary":
        return cls(
            all=_int(data.get("all")),
            running=_int(data.get("running")),
            blocked=_int(data.get("blocked")),
            sleeping=_int(data.get("sleeping")),
            list=tuple(ProcessSnapshot.from_dict(proc) for proc in _items(data, "list")),
        )


@dataclass(slots=True, frozen=True)
class TemperatureInfo:
    """Temperatures in Celsius. ``None`` means the sensor is unavailable."""

    main: float | None = None
    cores: tuple[float, ...] = ()
    max: float | None = None

    @property
    def available(self) -> bool:
        return self.main is not None

    def to_dict(self) -> dict[str, Any]:
        return {"main": self.main, "cores": list(self.cores), "max": self.max}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TemperatureInfo":
        cores = (_reading(core) for core in _items(data, "cores"))
        return cls(
            main=_reading(data.get("main")),
            cores=tuple(core for core in cores if core is not None),
            max=_reading(data.get("max")),
        )


@dataclass(slots=True, frozen=True)
class Snapshot:
    """Everything sampled from the host in one tick."""

    timestamp: int  # epoch milliseconds
    os: OsInfo = field(default_factory=OsInfo)
    cpu: CpuInfo = field(default_factory=CpuInfo)
    memory: MemoryInfo = field(default_factory=MemoryInfo)
    network: tuple[NetworkInterface, ...] = ()
    storage: StorageInfo = field(default_factory=StorageInfo)
    processes: ProcessSummary = field(default_factory=ProcessSummary)
    temperature: TemperatureInfo = field(default_factory=TemperatureInfo)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "os": self.os.to_dict(),
            "cpu": self.cpu.to_dict(),
            "memory": self.memory.to_dict(),
            "network": [iface.to_dict() for iface in self.network],
            "storage": self.storage.to_dict(),
            "processes": self.processes.to_dict(),
            "temperature": self.temperature.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Snapshot":
        return cls(
            timestamp=_int(data["timestamp"]),
            os=OsInfo.from_dict(_section(data, "os")),
            cpu=CpuInfo.from_dict(_section(data, "cpu")),
            memory=MemoryInfo.from_dict(_section(data, "memory")),
            network=tuple(NetworkInterface.from_dict(iface) for iface in _items(data, "network")),
            storage=StorageInfo.from_dict(_section(data, "storage")),
            processes=ProcessSummary.from_dict(_section(data, "processes")),
            temperature=TemperatureInfo.from_dict(_section(data, "temperature")),
        )
