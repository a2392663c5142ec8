"""
recorder.py
-----------
The capture loop: one block per tick, in this order

  1. read a block from the source (blocking)
  2. append it to the open take
  3. poll the control channel; a pending stop pre-empts classification
  4. otherwise classify the block and ask the segmenter
  5. carry out the segmenter's decision

Finalized takes go to a background encode worker so capture keeps running
while the previous take is being encoded.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from autotake.capture import SampleSource
from autotake.config import RecorderConfig
from autotake.container import Take, abort_take, append_block, create_take, finalize_take
from autotake.control import ControlChannel, ControlEvent
from autotake.encoder import EncodeWorker
from autotake.errors import ContainerFullError, ContainerIOError
from autotake.segmenter import Action, Decision, TakeSegmenter
from autotake.silence import is_silent

LOG = logging.getLogger("autotake.recorder")


@dataclass
class CaptureSummary:
    encoded: list[Path] = field(default_factory=list)
    discarded: list[Path] = field(default_factory=list)
    reason: str = ""
    blocks: int = 0
    samples: int = 0


class CaptureLoop:
    def __init__(
        self,
        config: RecorderConfig,
        source: SampleSource,
        segmenter: TakeSegmenter,
        encoder,
        control: Optional[ControlChannel] = None,
        *,
        classify: Callable[[object], bool] = is_silent,
    ) -> None:
        self.config = config
        self.source = source
        self.segmenter = segmenter
        self.encoder = encoder
        self.control = control or ControlChannel()
        self.classify = classify
        self.summary = CaptureSummary()
        self._take: Optional[Take] = None
        self._worker: Optional[EncodeWorker] = None

    def run(self) -> CaptureSummary:
        self._worker = EncodeWorker(self.encoder)
        self._worker.start()
        try:
            self._capture()
        except BaseException:
            # the capture failure takes precedence over a pending encode failure
            self._worker.close(check=False)
            self.summary.encoded = list(self._worker.encoded)
            raise
        self._worker.close()
        self.summary.encoded = list(self._worker.encoded)
        LOG.info(
            "stopped (%s): %d take(s) encoded, %d discarded",
            self.summary.reason,
            len(self.summary.encoded),
            len(self.summary.discarded),
        )
        return self.summary

    def _capture(self) -> None:
        self.source.open()
        try:
            self._take = create_take(self.segmenter.start())
            print("Recording.  Press q to stop.", flush=True)
            while True:
                decision = self._tick()
                self._apply(decision)
                if decision.action.terminates:
                    self.summary.reason = decision.reason
                    return
        except BaseException as exc:
            self._release_take(exc)
            raise
        finally:
            self.source.close()

    def _tick(self) -> Decision:
        take = self._take
        block = self.source.read_block()
        if block is None:
            return self.segmenter.on_control(ControlEvent.END_OF_STREAM, take.sample_count)

        elapsed = append_block(take, block)
        self.summary.blocks += 1
        self.summary.samples += len(block)

        event = self.control.poll()
        if event is not None:
            return self.segmenter.on_control(event, elapsed)

        self._worker.check()
        return self.segmenter.on_block(self.classify(block), elapsed)

    def _apply(self, decision: Decision) -> None:
        take = self._take
        action = decision.action
        if action is Action.CONTINUE:
            return

        if action is Action.DISCARD_AND_TERMINATE:
            LOG.info("discarding %s (%s)", take.path, decision.reason)
            abort_take(take)
            self.summary.discarded.append(take.path)
            return

        finalize_take(take)
        LOG.info("take %s finished: %d samples (%s)", take.path, take.sample_count, decision.reason)
        self._worker.submit(take.path)

        if action is Action.ENCODE_AND_REOPEN:
            self._take = create_take(decision.next_path)
            self.segmenter.take_started(self._take.path)

    def _release_take(self, exc: BaseException) -> None:
        """Best-effort cleanup of the open take after a fatal error.

        Empty takes and takes whose header cannot be trusted are deleted. A
        take that filled up, or was cut short by a device or encoder failure,
        is finalized and left on disk unencoded.
        """
        take = self._take
        if take is None or take.finalized:
            return
        trusted = not isinstance(exc, ContainerIOError) or isinstance(exc, ContainerFullError)
        try:
            if take.sample_count == 0 or not take.is_open or not trusted:
                abort_take(take)
                self.summary.discarded.append(take.path)
                LOG.info("discarded take %s (%d samples)", take.path, take.sample_count)
            else:
                finalize_take(take)
                LOG.warning("kept partial take %s (%d samples, not encoded)", take.path, take.sample_count)
        except ContainerIOError as cleanup_exc:
            LOG.error("cleanup of %s failed: %s", take.path, cleanup_exc)


__all__ = ["CaptureLoop", "CaptureSummary"]
