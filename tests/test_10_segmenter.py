# tests/test_10_segmenter.py
from pathlib import Path

import pytest

from autotake.config import RecorderConfig
from autotake.control import ControlEvent
from autotake.segmenter import Action, SegmenterState, TakeSegmenter

GRACE = 5 * 44100


def make_segmenter(tmp_path: Path, mode: str = "single", name: str | None = None, grace: float = 5.0):
    cfg = RecorderConfig(grace_seconds=grace, mode=mode, output_dir=tmp_path)
    seg = TakeSegmenter(cfg, name)
    seg.start()
    return seg


def test_first_take_path_single_mode(tmp_path):
    seg = TakeSegmenter(RecorderConfig(mode="single", output_dir=tmp_path), "Band - Song")
    assert seg.start() == tmp_path / "Band - Song.aiff"


def test_suffix_is_not_doubled(tmp_path):
    seg = TakeSegmenter(RecorderConfig(mode="single", output_dir=tmp_path), "demo.aiff")
    assert seg.start() == tmp_path / "demo.aiff"


def test_continuous_takes_are_numbered(tmp_path):
    seg = TakeSegmenter(RecorderConfig(mode="continuous", output_dir=tmp_path))
    assert seg.start() == tmp_path / "Unnamed Recording0.aiff"
    assert seg.take_path(3) == tmp_path / "Unnamed Recording3.aiff"


def test_start_twice_is_an_error(tmp_path):
    seg = make_segmenter(tmp_path)
    with pytest.raises(RuntimeError):
        seg.start()


@pytest.mark.parametrize("elapsed", [64, 44100, GRACE - 1, GRACE])
def test_grace_period_suppresses_silence(tmp_path, elapsed):
    seg = make_segmenter(tmp_path)
    decision = seg.on_block(True, elapsed)
    assert decision.action is Action.CONTINUE
    assert seg.state.state is SegmenterState.CAPTURING


def test_single_mode_silence_ends_recording(tmp_path):
    seg = make_segmenter(tmp_path)
    assert seg.on_block(False, GRACE + 64).action is Action.CONTINUE
    decision = seg.on_block(True, GRACE + 128)
    assert decision.action is Action.ENCODE_AND_TERMINATE
    assert decision.reason == "silence"
    assert seg.terminated
    with pytest.raises(RuntimeError):
        seg.on_block(False, GRACE + 192)


def test_zero_grace_evaluates_first_block(tmp_path):
    seg = make_segmenter(tmp_path, grace=0)
    assert seg.on_block(True, 64).action is Action.ENCODE_AND_TERMINATE


def test_continuous_mode_reopens_after_silence(tmp_path):
    seg = make_segmenter(tmp_path, mode="continuous")
    decision = seg.on_block(True, GRACE + 64)
    assert decision.action is Action.ENCODE_AND_REOPEN
    assert decision.next_path == tmp_path / "Unnamed Recording1.aiff"
    assert seg.state.silent_takes == 1
    assert seg.state.state is SegmenterState.FINALIZING

    # no input until the loop confirms the new take
    with pytest.raises(RuntimeError):
        seg.on_block(False, 64)

    seg.take_started(decision.next_path)
    assert seg.state.state is SegmenterState.CAPTURING
    assert seg.state.elapsed_samples == 0


def test_take_started_requires_announced_path(tmp_path):
    seg = make_segmenter(tmp_path, mode="continuous")
    seg.on_block(True, GRACE + 64)
    with pytest.raises(RuntimeError):
        seg.take_started(tmp_path / "other.aiff")
    fresh = make_segmenter(tmp_path, mode="continuous")
    with pytest.raises(RuntimeError):
        fresh.take_started(tmp_path / "Unnamed Recording0.aiff")


def test_two_silent_takes_in_a_row_terminate(tmp_path):
    seg = make_segmenter(tmp_path, mode="continuous")
    first = seg.on_block(True, GRACE + 64)
    seg.take_started(first.next_path)

    # the new take's grace period still applies
    assert seg.on_block(True, 64).action is Action.CONTINUE

    decision = seg.on_block(True, GRACE + 64)
    assert decision.action is Action.DISCARD_AND_TERMINATE
    assert seg.terminated


def test_loud_block_resets_silent_take_counter(tmp_path):
    seg = make_segmenter(tmp_path, mode="continuous")
    first = seg.on_block(True, GRACE + 64)
    seg.take_started(first.next_path)

    assert seg.on_block(False, GRACE + 64).action is Action.CONTINUE
    assert seg.state.silent_takes == 0

    second = seg.on_block(True, GRACE + 128)
    assert second.action is Action.ENCODE_AND_REOPEN
    assert second.next_path == tmp_path / "Unnamed Recording2.aiff"


def test_loud_block_inside_grace_does_not_reset_counter(tmp_path):
    seg = make_segmenter(tmp_path, mode="continuous")
    first = seg.on_block(True, GRACE + 64)
    seg.take_started(first.next_path)
    seg.on_block(False, 64)
    assert seg.state.silent_takes == 1


@pytest.mark.parametrize("event", [ControlEvent.OPERATOR_QUIT, ControlEvent.SYSTEM_INTERRUPT])
def test_control_event_encodes_even_within_grace(tmp_path, event):
    seg = make_segmenter(tmp_path)
    seg.on_block(False, 64)
    decision = seg.on_control(event, 128)
    assert decision.action is Action.ENCODE_AND_TERMINATE
    assert decision.reason == event.value
    assert seg.terminated


def test_control_event_on_empty_take_discards(tmp_path):
    seg = make_segmenter(tmp_path, mode="continuous")
    decision = seg.on_control(ControlEvent.END_OF_STREAM, 0)
    assert decision.action is Action.DISCARD_AND_TERMINATE
    assert decision.action.terminates


def test_terminated_state_is_absorbing(tmp_path):
    seg = make_segmenter(tmp_path)
    seg.on_control(ControlEvent.OPERATOR_QUIT, 64)
    with pytest.raises(RuntimeError):
        seg.on_control(ControlEvent.SYSTEM_INTERRUPT, 64)


@pytest.mark.parametrize("event", [ControlEvent.OPERATOR_QUIT, ControlEvent.SYSTEM_INTERRUPT])
def test_stop_on_empty_take_discards(tmp_path, event):
    seg = make_segmenter(tmp_path)
    decision = seg.on_control(event, 0)
    assert decision.action is Action.DISCARD_AND_TERMINATE
    assert decision.reason == f"{event.value} (empty take)"
    assert seg.terminated
