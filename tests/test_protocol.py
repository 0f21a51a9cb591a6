"""Tests for the frame codec."""

import json

import pytest

from pulsetop.errors import FrameDecodeError
from pulsetop.protocol import decode_frame, encode_frame


def test_encode_produces_one_json_object(snapshot_factory):
    frame = encode_frame(snapshot_factory(cpu=42.0))

    data = json.loads(frame)
    assert isinstance(data, dict)
    assert data["cpu"]["load"]["current"] == 42.0
    assert data["memory"]["usedPercent"] == 50.0
    assert "\n" not in frame


def test_decode_restores_snapshot(snapshot_factory):
    snapshot = snapshot_factory(cpu=42.0, temperature=61.5)

    assert decode_frame(encode_frame(snapshot)) == snapshot


def test_decode_accepts_bytes(snapshot_factory):
    frame = encode_frame(snapshot_factory()).encode("utf-8")

    assert decode_frame(frame).cpu.load.current == 42.0


def test_decode_accepts_string_typed_numbers():
    frame = json.dumps(
        {
            "timestamp": 1,
            "cpu": {"load": {"current": "42.00", "user": "40.00", "system": "2.00", "idle": "58.00"}},
            "memory": {"total": 100, "used": 50, "usedPercent": "50.00"},
            "temperature": {"main": "N/A", "cores": [], "max": "N/A"},
        }
    )

    snapshot = decode_frame(frame)

    assert snapshot.cpu.load.current == 42.0
    assert snapshot.memory.used_percent == 50.0
    assert snapshot.temperature.main is None


@pytest.mark.parametrize(
    "frame",
    [
        "",
        "{not json",
        "[1, 2, 3]",
        '"snapshot"',
        "{}",
        '{"timestamp": "yesterday"}',
        '{"timestamp": 1, "cpu": []}',
        '{"timestamp": 1, "network": [{"state": "up"}]}',
        '{"timestamp": 1, "processes": {"list": [{"name": "no pid"}]}}',
    ],
)
def test_malformed_frames_raise_decode_error(frame):
    with pytest.raises(FrameDecodeError):
        decode_frame(frame)


def test_decode_error_is_a_value_error():
    with pytest.raises(ValueError):
        decode_frame("{oops")


@pytest.mark.parametrize(
    "frame",
    [
        '{"timestamp": 1e999}',
        '{"timestamp": 1, "cpu": {"load": {"current": Infinity}}}',
        '{"timestamp": 1, "memory": {"usedPercent": NaN}}',
    ],
)
def test_non_finite_numbers_raise_decode_error(frame):
    with pytest.raises(FrameDecodeError):
        decode_frame(frame)


def test_deeply_nested_frame_raises_decode_error():
    with pytest.raises(FrameDecodeError):
        decode_frame("[" * 100_000 + "]" * 100_000)
