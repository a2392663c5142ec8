#!/usr/bin/env python3
"""
autotake

Records the microphone into AIFF takes and ends a take automatically once the
room goes quiet, then hands each take to lame for MP3 encoding.

Usage:
  autotake "Artist - Title"          # one take, stops on silence or 'q'
  autotake                           # continuous: Unnamed Recording0.aiff, 1, 2 ...
  autotake --continuous "Session"    # continuous with a custom base name

Type q and Enter, or press Ctrl+C, to stop.
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Sequence

from autotake import config as config_module
from autotake.capture import ArecordSource
from autotake.control import ControlChannel
from autotake.encoder import LameEncoder
from autotake.errors import RecorderError
from autotake.recorder import CaptureLoop
from autotake.segmenter import TakeSegmenter

LOG = logging.getLogger("autotake")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autotake",
        description="Record takes from the microphone, split on silence, and encode them to MP3.",
    )
    parser.add_argument("name", nargs="?", default=None, help="Take name; 'Artist - Title' sets the MP3 tags")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--continuous", dest="mode", action="store_const", const="continuous", help="Start a new take after each silence")
    mode.add_argument("--single", dest="mode", action="store_const", const="single", help="Stop after the first take")
    parser.add_argument("--config", default=None, help="Path to a config.yaml (overrides AUTOTAKE_CONFIG)")
    parser.add_argument("--device", default=None, help="ALSA capture device (e.g., hw:CARD=Device,DEV=0)")
    parser.add_argument("--grace", type=float, default=None, help="Seconds at the start of each take before silence is evaluated")
    parser.add_argument("--bitrate", default=None, help="MP3 bitrate in kbps passed to lame -b")
    parser.add_argument("--output-dir", default=None, help="Directory for recorded takes")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.config:
        os.environ["AUTOTAKE_CONFIG"] = args.config
        config_module.reload_cfg()
    raw_cfg = config_module.get_cfg()

    try:
        config = config_module.build_recorder_config(
            raw_cfg,
            take_name=args.name,
            overrides={
                "mode": args.mode,
                "device": args.device,
                "grace_seconds": args.grace,
                "bitrate": args.bitrate,
                "output_dir": args.output_dir,
            },
        )
    except (TypeError, ValueError) as exc:
        print(f"[autotake] invalid configuration: {exc}", file=sys.stderr, flush=True)
        return 2

    logging.basicConfig(
        level=logging.DEBUG if (args.verbose or config.dev_mode) else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    LOG.debug("config file: %s", config_module.active_config_path())
    try:
        os.makedirs(config.output_dir, exist_ok=True)
    except OSError as exc:
        LOG.error("cannot create output directory %s: %s", config.output_dir, exc)
        return 1

    control = ControlChannel()
    control.install_signal_handlers()
    control.start_line_reader(sys.stdin)
    loop = CaptureLoop(
        config,
        ArecordSource(config.device, block_size=config.block_size, sample_rate=config.sample_rate),
        TakeSegmenter(config, args.name),
        LameEncoder(config),
        control,
    )
    try:
        summary = loop.run()
    except RecorderError as exc:
        LOG.error("%s", exc)
        return 1
    finally:
        control.restore_signal_handlers()

    for path in summary.encoded:
        LOG.info("encoded %s", path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
