"""
segmenter.py
------------
Take boundary decisions.

The segmenter never touches a file. It is fed one silence verdict per block
(plus the take's running sample count) and control events, and answers with a
``Decision`` that the capture loop carries out:

- grace period: the first ``grace_samples`` of every take are never evaluated
- loud block past the grace period: reset the silent-take counter
- silent block past the grace period: the take ends
    * single mode -> encode and terminate
    * continuous mode -> encode and open the next take, unless the previous
      take also ended on silence with nothing loud in between, in which case
      the current take is discarded and recording terminates
- quit / interrupt / end of stream: encode the take (discard it when empty)
  and terminate; this always wins over a silence verdict on the same tick
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from autotake.config import DEFAULT_BASE_NAME, RecorderConfig
from autotake.control import ControlEvent

LOG = logging.getLogger("autotake.segmenter")

CONTAINER_SUFFIX = ".aiff"


class SegmenterState(enum.Enum):
    CAPTURING = "capturing"
    FINALIZING = "finalizing"
    TERMINATED = "terminated"


class Action(enum.Enum):
    CONTINUE = "continue"
    ENCODE_AND_REOPEN = "encode_and_reopen"
    ENCODE_AND_TERMINATE = "encode_and_terminate"
    DISCARD_AND_TERMINATE = "discard_and_terminate"

    @property
    def terminates(self) -> bool:
        return self in (Action.ENCODE_AND_TERMINATE, Action.DISCARD_AND_TERMINATE)


@dataclass(frozen=True)
class Decision:
    action: Action
    reason: str = ""
    next_path: Optional[Path] = None


CONTINUE = Decision(Action.CONTINUE)


@dataclass
class SegmentationState:
    take_path: Optional[Path] = None
    elapsed_samples: int = 0
    silent_takes: int = 0
    index: int = 0
    state: SegmenterState = SegmenterState.CAPTURING


def _strip_suffix(name: str) -> str:
    if name.lower().endswith(CONTAINER_SUFFIX):
        return name[: -len(CONTAINER_SUFFIX)]
    return name


class TakeSegmenter:
    def __init__(self, config: RecorderConfig, base_name: str | None = None) -> None:
        self.config = config
        self.base_name = _strip_suffix(base_name or DEFAULT_BASE_NAME)
        self.state = SegmentationState()
        self._started = False

    @property
    def continuous(self) -> bool:
        return self.config.continuous

    @property
    def terminated(self) -> bool:
        return self.state.state is SegmenterState.TERMINATED

    def take_path(self, index: int) -> Path:
        if self.continuous:
            name = f"{self.base_name}{index}{CONTAINER_SUFFIX}"
        else:
            name = f"{self.base_name}{CONTAINER_SUFFIX}"
        return self.config.output_dir / name

    def start(self) -> Path:
        """Return the path of the first take."""
        if self._started:
            raise RuntimeError("segmenter already started")
        self._started = True
        self.state.take_path = self.take_path(self.state.index)
        return self.state.take_path

    def take_started(self, path: Path) -> None:
        """Acknowledge that the loop finalized the previous take and opened ``path``."""
        if self.state.state is not SegmenterState.FINALIZING:
            raise RuntimeError(f"unexpected take start in state {self.state.state.value}")
        if path != self.state.take_path:
            raise RuntimeError(f"expected {self.state.take_path}, got {path}")
        self.state.elapsed_samples = 0
        self.state.state = SegmenterState.CAPTURING

    def _require_capturing(self) -> None:
        if self.state.state is not SegmenterState.CAPTURING:
            raise RuntimeError(f"segmenter is {self.state.state.value}; no input accepted")

    def _terminate(self, action: Action, reason: str) -> Decision:
        self.state.state = SegmenterState.TERMINATED
        LOG.info("terminating: %s (%s)", reason, self.state.take_path)
        return Decision(action, reason)

    def on_block(self, silent: bool, elapsed_samples: int) -> Decision:
        self._require_capturing()
        st = self.state
        st.elapsed_samples = elapsed_samples

        if elapsed_samples <= self.config.grace_samples:
            return CONTINUE

        if not silent:
            st.silent_takes = 0
            return CONTINUE

        if not self.continuous:
            return self._terminate(Action.ENCODE_AND_TERMINATE, "silence")

        if st.silent_takes > 0:
            return self._terminate(Action.DISCARD_AND_TERMINATE, "repeated silence")

        st.silent_takes += 1
        st.index += 1
        st.take_path = self.take_path(st.index)
        st.state = SegmenterState.FINALIZING
        LOG.info("silence detected; next take %s", st.take_path)
        return Decision(Action.ENCODE_AND_REOPEN, "silence", st.take_path)

    def on_control(self, event: ControlEvent, elapsed_samples: int) -> Decision:
        self._require_capturing()
        self.state.elapsed_samples = elapsed_samples
        if elapsed_samples == 0:
            return self._terminate(Action.DISCARD_AND_TERMINATE, f"{event.value} (empty take)")
        return self._terminate(Action.ENCODE_AND_TERMINATE, event.value)


__all__ = [
    "Action",
    "Decision",
    "SegmentationState",
    "SegmenterState",
    "TakeSegmenter",
    "CONTAINER_SUFFIX",
]
