"""Exception types raised by the recorder. None of them are retried."""

from __future__ import annotations


class RecorderError(RuntimeError):
    """Base class for fatal recorder failures."""


class ContainerIOError(RecorderError):
    """Raised when a take's container file cannot be created, written or removed."""


class ContainerFullError(ContainerIOError):
    """Raised when a block would push a take past the 32-bit AIFF size fields. Nothing is written."""


class DeviceError(RecorderError):
    """Raised when the capture device cannot be opened or stops delivering samples."""


class EncodeError(RecorderError):
    """Raised when the external encoder fails. The finalized container is left on disk."""


__all__ = ["RecorderError", "ContainerIOError", "ContainerFullError", "DeviceError", "EncodeError"]
