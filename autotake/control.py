"""
control.py
----------
Operator and OS stop requests, delivered to the capture loop without blocking it.

Two producers feed one queue:
  - a daemon thread reading lines from stdin ("q" + newline stops recording)
  - SIGINT/SIGTERM handlers

The capture loop calls ``poll()`` once per block; it never waits.
"""
from __future__ import annotations

import enum
import logging
import queue
import signal
import threading
from typing import Callable, Iterable, Optional, TextIO

LOG = logging.getLogger("autotake.control")

QUIT_TOKEN = "q"


class ControlEvent(enum.Enum):
    OPERATOR_QUIT = "operator quit"
    SYSTEM_INTERRUPT = "interrupt"
    END_OF_STREAM = "end of stream"


# Higher wins when several events are pending on the same tick.
_PRIORITY = {
    ControlEvent.SYSTEM_INTERRUPT: 2,
    ControlEvent.OPERATOR_QUIT: 1,
    ControlEvent.END_OF_STREAM: 0,
}


class ControlChannel:
    def __init__(self) -> None:
        # SimpleQueue.put is reentrant, so the signal handler may use it.
        self._events: "queue.SimpleQueue[ControlEvent]" = queue.SimpleQueue()
        self._reader: Optional[threading.Thread] = None
        self._previous_handlers: dict[int, object] = {}

    def post(self, event: ControlEvent) -> None:
        self._events.put(event)

    def poll(self) -> Optional[ControlEvent]:
        """Drain pending events without blocking and return the most urgent one."""
        chosen: Optional[ControlEvent] = None
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                break
            if chosen is None or _PRIORITY[event] > _PRIORITY[chosen]:
                chosen = event
        return chosen

    def start_line_reader(self, stream: TextIO) -> threading.Thread:
        if self._reader is not None:
            return self._reader
        self._reader = threading.Thread(
            target=self._read_lines, args=(stream,), name="control-stdin", daemon=True
        )
        self._reader.start()
        return self._reader

    def _read_lines(self, stream: Iterable[str]) -> None:
        try:
            for line in stream:
                if line.rstrip("\r\n") == QUIT_TOKEN:
                    LOG.debug("quit requested on stdin")
                    self.post(ControlEvent.OPERATOR_QUIT)
                elif line.strip():
                    LOG.debug("ignoring operator input %r", line.strip())
        except (OSError, ValueError) as exc:
            # stdin closed underneath us; only signals can stop the recorder now
            LOG.debug("stdin reader stopped: %r", exc)

    def _handle_signal(self, signum, frame) -> None:  # noqa
        self.post(ControlEvent.SYSTEM_INTERRUPT)

    def install_signal_handlers(
        self,
        signals: Iterable[int] = (signal.SIGINT, signal.SIGTERM),
        *,
        setter: Callable = signal.signal,
    ) -> None:
        for signum in signals:
            self._previous_handlers[signum] = setter(signum, self._handle_signal)

    def restore_signal_handlers(self, *, setter: Callable = signal.signal) -> None:
        for signum, handler in self._previous_handlers.items():
            setter(signum, signal.SIG_DFL if handler is None else handler)
        self._previous_handlers.clear()


__all__ = ["ControlChannel", "ControlEvent", "QUIT_TOKEN"]
