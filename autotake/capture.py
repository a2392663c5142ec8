"""
capture.py
----------
Microphone input via an ``arecord`` subprocess.

arecord writes raw big-endian signed 32-bit mono samples at 44.1 kHz to a pipe;
``read_block`` blocks until one full block is available. stderr is drained
without blocking so overrun/underrun notices can be logged.
"""
from __future__ import annotations

import logging
import os
import subprocess
from typing import Optional, Protocol, Sequence

import numpy as np

from autotake.config import SAMPLE_RATE
from autotake.container import BYTES_PER_SAMPLE, SAMPLE_DTYPE
from autotake.errors import DeviceError

LOG = logging.getLogger("autotake.capture")

ARECORD_FORMAT = "S32_BE"
STDERR_READ_BYTES = 4096


class SampleSource(Protocol):
    block_size: int

    def open(self) -> None: ...

    def read_block(self) -> Optional[np.ndarray]:
        """Return the next block, or ``None`` once the input has cleanly ended."""
        ...

    def close(self) -> None: ...


def build_arecord_command(device: str, sample_rate: int = SAMPLE_RATE, channels: int = 1) -> list[str]:
    return [
        "arecord",
        "-D", device,
        "-c", str(channels),
        "-f", ARECORD_FORMAT,
        "-r", str(sample_rate),
        "-t", "raw",
        "-",
    ]


def _parse_arecord_stderr(chunk: bytes, state: dict[str, str]) -> list[str]:
    """Return xrun events found in ``chunk``; partial lines wait in ``state``."""
    text = state.get("buffer", "") + chunk.decode("utf-8", errors="ignore")
    lines = text.split("\n")
    state["buffer"] = lines.pop()
    events: list[str] = []
    for line in lines:
        lowered = line.lower()
        if "overrun" in lowered:
            events.append("overrun")
        elif "underrun" in lowered:
            events.append("underrun")
    return events


class ArecordSource:
    def __init__(
        self,
        device: str = "default",
        *,
        block_size: int = 64,
        sample_rate: int = SAMPLE_RATE,
        channels: int = 1,
        command: Sequence[str] | None = None,
    ) -> None:
        if channels != 1:
            raise ValueError("only mono capture is supported")
        if block_size <= 0:
            raise ValueError("block_size must be positive")
        self.device = device
        self.block_size = block_size
        self.sample_rate = sample_rate
        self.command = list(command) if command else build_arecord_command(device, sample_rate, channels)
        self._block_bytes = block_size * BYTES_PER_SAMPLE
        self._proc: subprocess.Popen | None = None
        self._stderr_state: dict[str, str] = {"buffer": ""}

    def __enter__(self) -> "ArecordSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        if self._proc is not None:
            raise RuntimeError("capture source already open")
        try:
            self._proc = subprocess.Popen(
                self.command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                bufsize=0,
                # keep Ctrl-C away from arecord; the recorder shuts it down itself
                start_new_session=True,
            )
        except OSError as exc:
            raise DeviceError(f"failed to launch {self.command[0]}: {exc}") from exc
        if self._proc.stderr is not None:
            os.set_blocking(self._proc.stderr.fileno(), False)
        LOG.info("capturing from %s (%d Hz, block=%d)", self.device, self.sample_rate, self.block_size)

    def read_block(self) -> np.ndarray:
        proc = self._proc
        if proc is None or proc.stdout is None:
            raise DeviceError("capture source is not open")
        data = bytearray()
        while len(data) < self._block_bytes:
            try:
                chunk = proc.stdout.read(self._block_bytes - len(data))
            except OSError as exc:
                raise DeviceError(f"read from capture device failed: {exc}") from exc
            if not chunk:
                self._drain_stderr()
                raise DeviceError(
                    f"capture device stream ended (exit status {proc.poll()})"
                )
            data.extend(chunk)
        self._drain_stderr()
        return np.frombuffer(bytes(data), dtype=SAMPLE_DTYPE)

    def _drain_stderr(self) -> None:
        proc = self._proc
        if proc is None or proc.stderr is None:
            return
        while True:
            try:
                data = proc.stderr.read(STDERR_READ_BYTES)
            except BlockingIOError:
                return
            except OSError:
                return
            if not data:
                return
            for event in _parse_arecord_stderr(data, self._stderr_state):
                LOG.warning("arecord reported %s", event)

    def close(self) -> None:
        proc, self._proc = self._proc, None
        if proc is None:
            return
        if proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=1)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
        for pipe in (proc.stdout, proc.stderr):
            if pipe is not None:
                pipe.close()
        LOG.debug("capture source closed")


__all__ = ["ArecordSource", "SampleSource", "build_arecord_command"]
