"""
container.py
------------
Incremental AIFF writer for one take.

- Writes the full 54-byte header up front with zeroed size fields.
- Appends big-endian signed 32-bit mono samples as they arrive.
- On finalize, patches the three size fields from the running sample count
  (no re-scan of the file) and closes the handle.

Header layout (all big-endian):

    offset  size  field
         0     4  "FORM"
         4     4  form size = file size - 8          (patched)
         8     4  "AIFF"
        12     4  "COMM"
        16     4  18
        20     2  channels = 1
        22     4  sample frames                      (patched)
        26     2  bits per sample = 32
        28    10  sample rate, 80-bit IEEE extended
        38     4  "SSND"
        42     4  data size = 4 * frames + 8         (patched)
        46     4  offset = 0
        50     4  block size = 0
        54        samples
"""
from __future__ import annotations

import contextlib
import logging
import os
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Optional

import numpy as np

from autotake.config import SAMPLE_RATE
from autotake.errors import ContainerFullError, ContainerIOError

LOG = logging.getLogger("autotake.container")

CHANNELS = 1
BITS_PER_SAMPLE = 32
BYTES_PER_SAMPLE = BITS_PER_SAMPLE // 8
COMM_CHUNK_SIZE = 18
SAMPLE_DTYPE = np.dtype(">i4")

FORM_SIZE_OFFSET = 4
SAMPLE_COUNT_OFFSET = 22
DATA_SIZE_OFFSET = 42
HEADER_SIZE = 54

# Size fields are unsigned 32-bit; the FORM size is the largest of the three.
MAX_FIELD_VALUE = 0xFFFFFFFF
MAX_TAKE_SAMPLES = (MAX_FIELD_VALUE - (HEADER_SIZE - 8)) // BYTES_PER_SAMPLE


def ieee_extended(value: int) -> bytes:
    """Encode a positive integer as an 80-bit IEEE 754 extended float."""
    if value <= 0:
        raise ValueError("value must be positive")
    exponent = value.bit_length() - 1
    mantissa = value << (63 - exponent)
    return struct.pack(">HQ", 16383 + exponent, mantissa)


# 44100 -> 40 0E AC 44 00 00 00 00 00 00
SAMPLE_RATE_EXTENDED = ieee_extended(SAMPLE_RATE)


def header_skeleton() -> bytes:
    return b"".join(
        [
            b"FORM", struct.pack(">I", 0), b"AIFF",
            b"COMM", struct.pack(">I", COMM_CHUNK_SIZE),
            struct.pack(">HIH", CHANNELS, 0, BITS_PER_SAMPLE),
            SAMPLE_RATE_EXTENDED,
            b"SSND", struct.pack(">III", 0, 0, 0),
        ]
    )


def form_size(sample_count: int) -> int:
    return 4 + 8 + COMM_CHUNK_SIZE + 8 + 8 + BYTES_PER_SAMPLE * sample_count


def data_size(sample_count: int) -> int:
    return BYTES_PER_SAMPLE * sample_count + 8


@dataclass
class Take:
    """One recording session backed by an open container file."""

    path: Path
    handle: Optional[BinaryIO] = field(default=None, repr=False)
    sample_count: int = 0
    finalized: bool = False

    @property
    def name(self) -> str:
        """Base name without the container suffix."""
        return self.path.stem

    @property
    def is_open(self) -> bool:
        return self.handle is not None and not self.finalized


def create_take(path: str | os.PathLike[str]) -> Take:
    take_path = Path(path)
    try:
        handle = open(take_path, "wb")
    except OSError as exc:
        raise ContainerIOError(f"cannot create {take_path}: {exc}") from exc
    take = Take(path=take_path, handle=handle)
    try:
        handle.write(header_skeleton())
    except OSError as exc:
        handle.close()
        raise ContainerIOError(f"cannot write header to {take_path}: {exc}") from exc
    LOG.debug("opened take %s", take_path)
    return take


def append_block(take: Take, block) -> int:
    """Write ``block`` verbatim and return the take's new sample count."""
    if not take.is_open:
        raise RuntimeError(f"take {take.path} is not open")
    samples = np.asarray(block).astype(SAMPLE_DTYPE, copy=False).ravel()
    if take.sample_count + samples.size > MAX_TAKE_SAMPLES:
        raise ContainerFullError(
            f"{take.path} is full at {take.sample_count} samples (limit {MAX_TAKE_SAMPLES})"
        )
    payload = samples.tobytes()
    try:
        written = take.handle.write(payload)
    except OSError as exc:
        raise ContainerIOError(f"write to {take.path} failed: {exc}") from exc
    if written is not None and written != len(payload):
        raise ContainerIOError(
            f"short write to {take.path}: {written} of {len(payload)} bytes"
        )
    take.sample_count += samples.size
    return take.sample_count


def finalize_take(take: Take) -> Take:
    """Patch the size fields and close the file.

    On failure the handle is closed but the take is not marked finalized, so
    the caller can still ``abort_take`` the mis-headered file.
    """
    if take.finalized:
        raise RuntimeError(f"take {take.path} already finalized")
    if take.handle is None:
        raise RuntimeError(f"take {take.path} has no open file")
    n = take.sample_count
    f, take.handle = take.handle, None
    try:
        if n > MAX_TAKE_SAMPLES:
            raise ContainerFullError(f"cannot finalize {take.path}: {n} samples exceed the AIFF size fields")
        f.seek(FORM_SIZE_OFFSET, os.SEEK_SET)
        f.write(struct.pack(">I", form_size(n)))
        f.seek(SAMPLE_COUNT_OFFSET, os.SEEK_SET)
        f.write(struct.pack(">I", n))
        f.seek(DATA_SIZE_OFFSET, os.SEEK_SET)
        f.write(struct.pack(">I", data_size(n)))
        f.close()
    except OSError as exc:
        raise ContainerIOError(f"cannot finalize {take.path}: {exc}") from exc
    finally:
        with contextlib.suppress(OSError):
            f.close()
    take.finalized = True
    LOG.debug("finalized take %s (%d samples)", take.path, n)
    return take


def abort_take(take: Take, *, delete: bool = True) -> None:
    """Close the take without patching its header and, by default, remove it."""
    if take.finalized:
        raise RuntimeError(f"take {take.path} already finalized")
    handle, take.handle = take.handle, None
    take.finalized = True
    try:
        if handle is not None:
            handle.close()
        if delete:
            take.path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        raise ContainerIOError(f"cannot discard {take.path}: {exc}") from exc
    if delete:
        LOG.debug("discarded take %s", take.path)


__all__ = [
    "Take",
    "create_take",
    "append_block",
    "finalize_take",
    "abort_take",
    "header_skeleton",
    "ieee_extended",
    "form_size",
    "data_size",
    "HEADER_SIZE",
    "FORM_SIZE_OFFSET",
    "SAMPLE_COUNT_OFFSET",
    "DATA_SIZE_OFFSET",
    "SAMPLE_RATE_EXTENDED",
    "MAX_TAKE_SAMPLES",
]
