"""Tests for pulsetop data models."""

import pytest

from pulsetop.models import (
    CpuLoad,
    DiskIO,
    MemoryInfo,
    ProcessSnapshot,
    ProcessSummary,
    Snapshot,
    TemperatureInfo,
)


def test_process_snapshot_creation():
    """Test ProcessSnapshot dataclass creation."""
    snapshot = ProcessSnapshot(
        pid=123,
        name="test_process",
        cpu=50.0,
        mem=25.0,
        priority=-5,
        state="running",
    )

    assert snapshot.pid == 123
    assert snapshot.name == "test_process"
    assert snapshot.cpu == 50.0
    assert snapshot.mem == 25.0
    assert snapshot.priority == -5
    assert snapshot.state == "running"


def test_snapshot_is_frozen(snapshot_factory):
    """Test that Snapshot is immutable (frozen)."""
    snapshot = snapshot_factory()

    with pytest.raises(AttributeError):
        snapshot.timestamp = 0


def test_models_use_slots(snapshot_factory):
    """Slots-based dataclasses don't have __dict__."""
    snapshot = snapshot_factory()

    assert not hasattr(snapshot, "__dict__")
    assert not hasattr(snapshot.cpu, "__dict__")
    assert not hasattr(snapshot.memory, "__dict__")


class TestWireMapping:
    """Tests for the to_dict / from_dict wire mapping."""

    def test_memory_uses_camel_case(self):
        memory = MemoryInfo(total=100, used=40, used_percent=40.0)

        data = memory.to_dict()

        assert data["usedPercent"] == 40.0
        assert data["swap"] == {"total": 0, "used": 0, "free": 0}

    def test_process_summary_round_trip(self):
        summary = ProcessSummary(
            all=3,
            running=1,
            sleeping=2,
            list=(ProcessSnapshot(pid=1, name="init", cpu=0.5, mem=0.1),),
        )

        assert ProcessSummary.from_dict(summary.to_dict()) == summary

    def test_full_snapshot_round_trip(self, snapshot_factory):
        snapshot = snapshot_factory(cpu=12.5, memory=33.3, temperature=55.0)

        assert Snapshot.from_dict(snapshot.to_dict()) == snapshot

    def test_missing_sections_use_defaults(self):
        snapshot = Snapshot.from_dict({"timestamp": 5})

        assert snapshot.timestamp == 5
        assert snapshot.cpu.load.current == 0.0
        assert snapshot.network == ()
        assert snapshot.storage.drives == ()
        assert snapshot.temperature.main is None

    def test_numeric_strings_are_read_as_numbers(self):
        load = CpuLoad.from_dict({"current": "12.34", "user": "10.00", "system": "2.34", "idle": "87.66"})

        assert load.current == pytest.approx(12.34)
        assert isinstance(load.idle, float)

    def test_non_numeric_value_is_rejected(self):
        with pytest.raises(ValueError):
            CpuLoad.from_dict({"current": "busy"})

    def test_boolean_is_not_a_number(self):
        with pytest.raises(ValueError):
            CpuLoad.from_dict({"current": True})


class TestTemperatureInfo:
    """Unavailable sensors are None, never zero."""

    def test_default_is_unavailable(self):
        temperature = TemperatureInfo()

        assert temperature.main is None
        assert temperature.max is None
        assert not temperature.available

    def test_na_string_reads_as_unavailable(self):
        temperature = TemperatureInfo.from_dict({"main": "N/A", "cores": [], "max": "N/A"})

        assert temperature.main is None
        assert temperature.max is None

    def test_unavailable_serializes_as_null(self):
        assert TemperatureInfo().to_dict() == {"main": None, "cores": [], "max": None}

    def test_zero_is_a_real_reading(self):
        temperature = TemperatureInfo.from_dict({"main": 0, "max": 0})

        assert temperature.main == 0.0
        assert temperature.available


def test_disk_io_keeps_missing_counters_as_none():
    io = DiskIO.from_dict({"readIO": 10})

    assert io.read_io == 10
    assert io.write_io is None
    assert io.read_io_sec is None


def test_infinite_timestamp_is_rejected():
    with pytest.raises(ValueError):
        Snapshot.from_dict({"timestamp": float("inf")})
