"""Hand a finalized take to the external MP3 encoder and drop the source file."""
from __future__ import annotations

import logging
import os
import queue
import subprocess
import threading
from pathlib import Path
from typing import Sequence

from autotake.config import RecorderConfig
from autotake.errors import ContainerIOError, EncodeError, RecorderError

LOG = logging.getLogger("autotake.encoder")

TAG_SEPARATOR = " - "


def resolve_tags(path: str | os.PathLike[str], default_artist: str, default_title: str) -> tuple[str, str]:
    """Split ``"<artist> - <title>.aiff"`` into tags, else fall back to the defaults.

    The separator must appear after the first two characters of the name. An
    empty default title falls back to the take's own name.
    """
    stem = Path(path).stem
    if stem.find(TAG_SEPARATOR) > 1:
        parts = stem.split(TAG_SEPARATOR)
        return parts[0], parts[1]
    return default_artist, default_title or stem


class LameEncoder:
    def __init__(self, config: RecorderConfig, *, command: Sequence[str] | None = None) -> None:
        self.config = config
        self.command = list(command) if command else [config.encoder_command]

    def build_command(self, path: Path, bitrate: str, artist: str, title: str) -> list[str]:
        return [*self.command, str(path), "-b", str(bitrate), "--ta", artist, "--tt", title]

    def encode(self, path: str | os.PathLike[str], bitrate: str, artist: str, title: str) -> None:
        source = Path(path)
        cmd = self.build_command(source, bitrate, artist, title)
        print(f"[Encoding]  {artist} {title}", flush=True)
        try:
            subprocess.run(cmd, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as exc:
            if exc.stderr:
                LOG.error("%s", exc.stderr.strip())
            raise EncodeError(f"encoder exited with status {exc.returncode} for {source}") from exc
        except OSError as exc:
            raise EncodeError(f"failed to launch encoder {cmd[0]}: {exc}") from exc

        try:
            source.unlink()
        except OSError as exc:
            raise ContainerIOError(f"cannot remove encoded source {source}: {exc}") from exc
        LOG.info("encoded %s", source)

    def encode_take(self, path: str | os.PathLike[str]) -> None:
        artist, title = resolve_tags(path, self.config.default_artist, self.config.default_title)
        self.encode(path, self.config.bitrate, artist, title)


class EncodeWorker(threading.Thread):
    """
    Runs encodes off the capture thread, one at a time, in submission order.
    Protocol on self.q:
      Path  -> encode that finalized take
      None  -> exit
    The first failure is kept and re-raised by ``check()``/``close()``;
    later jobs are skipped.
    """

    def __init__(self, encoder) -> None:
        super().__init__(name="encode-worker", daemon=True)
        self.encoder = encoder
        self.q: "queue.Queue[Path | None]" = queue.Queue()
        self.encoded: list[Path] = []
        self.error: RecorderError | None = None

    def submit(self, path: Path) -> None:
        self.check()
        self.q.put(path)

    def run(self) -> None:
        while True:
            item = self.q.get()
            try:
                if item is None:
                    return
                if self.error is not None:
                    LOG.warning("skipping encode of %s after earlier failure", item)
                    continue
                try:
                    self.encoder.encode_take(item)
                except RecorderError as exc:
                    self.error = exc
                else:
                    self.encoded.append(item)
            finally:
                self.q.task_done()

    def check(self) -> None:
        if self.error is not None:
            raise self.error

    def close(self, *, check: bool = True) -> None:
        """Wait for queued encodes to finish, then surface any failure."""
        if self.is_alive():
            self.q.put(None)
            self.join()
        if check:
            self.check()
        elif self.error is not None:
            LOG.error("encode failed: %s", self.error)


__all__ = ["EncodeWorker", "LameEncoder", "resolve_tags", "TAG_SEPARATOR"]
