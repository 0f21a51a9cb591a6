"""Exceptions raised inside the pulsetop telemetry pipeline."""


class PulsetopError(Exception):
    """Base class for pulsetop errors."""


class CollectionError(PulsetopError):
    """The metrics source failed or returned an incomplete reading for a tick."""


class FrameDecodeError(PulsetopError, ValueError):
    """An inbound frame could not be decoded into a snapshot."""
