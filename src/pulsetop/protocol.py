"""Wire format: one JSON object per snapshot frame."""

import json

from pulsetop.errors import FrameDecodeError
from pulsetop.models import Snapshot


def encode_frame(snapshot: Snapshot) -> str:
    """Serialize a snapshot into a single compact JSON frame."""
    return json.dumps(snapshot.to_dict(), separators=(",", ":"))


def decode_frame(frame: str | bytes) -> Snapshot:
    """
    Decode a frame received from the server.

    Raises:
        FrameDecodeError: If the frame is not valid JSON, is not an object, or
            does not have the snapshot shape.
    """
    try:
        data = json.loads(frame)
    except (TypeError, ValueError, RecursionError) as exc:
        raise FrameDecodeError(f"frame is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise FrameDecodeError(f"frame must be a JSON object, got {type(data).__name__}")

    try:
        return Snapshot.from_dict(data)
    except (KeyError, TypeError, ValueError, AttributeError, OverflowError, RecursionError) as exc:
        raise FrameDecodeError(f"frame does not match the snapshot shape: {exc!r}") from exc
