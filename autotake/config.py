#!/usr/bin/env python3
"""
Unified configuration loader for autotake.

Load order (first found wins):
  1) AUTOTAKE_CONFIG (env, absolute or relative to CWD)
  2) /etc/autotake/config.yaml
  3) <project_root>/config.yaml (derived from this file's location)
  4) <script_dir>/config.yaml (directory of the running script)
  5) ./config.yaml (current working directory)

Environment variables override file values when present.

The raw mapping is only read at startup; the recorder itself receives a frozen
``RecorderConfig`` built from it.
"""
from __future__ import annotations

import copy
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

LOG = logging.getLogger("autotake.config")

SAMPLE_RATE = 44100
MODES = ("single", "continuous")
DEFAULT_BASE_NAME = "Unnamed Recording"

_DEFAULTS: Dict[str, Any] = {
    "audio": {
        "device": "default",
        "block_size": 64,
    },
    "paths": {
        "recordings_dir": ".",
    },
    "silence_detection": {
        # Seconds of capture at the start of a take before silence is evaluated.
        "delay_at_start_of_capture": 5,
    },
    "encode": {
        "command": "lame",
        "bitrate": "192",
        "default_artist": "Unknown Artist",
        "default_title": "",
    },
    "capture": {
        "mode": None,  # None -> derived from whether a take name was given
    },
    "logging": {
        "dev_mode": False  # if True or ENV DEV=1, enable verbose debug
    },
}

_cfg_cache: Dict[str, Any] | None = None
_search_paths: list[Path] = []
_active_config_path: Path | None = None


def _load_yaml_if_exists(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open("r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        LOG.warning("ignoring unreadable config %s: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        LOG.warning("ignoring config %s: top level is not a mapping", path)
        return {}
    return data


def _candidate_search_paths(project_root: Path, script_dir: Path) -> list[Path]:
    search: list[Path] = []
    env_cfg = os.getenv("AUTOTAKE_CONFIG")
    if env_cfg:
        search.append(Path(env_cfg).expanduser())
    search.extend(
        [
            Path("/etc/autotake/config.yaml"),
            project_root / "config.yaml",
            script_dir / "config.yaml",
            Path.cwd() / "config.yaml",
        ]
    )
    seen: set[Path] = set()
    ordered: list[Path] = []
    for candidate in search:
        try:
            resolved = candidate.resolve()
        except OSError:
            resolved = candidate
        if resolved in seen:
            continue
        seen.add(resolved)
        ordered.append(resolved)
    return ordered


def _deep_merge(base: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in extra.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _apply_env_overrides(cfg: Dict[str, Any]) -> None:
    # DEV mode
    if os.getenv("DEV") == "1":
        cfg.setdefault("logging", {})["dev_mode"] = True
    if "AUDIO_DEV" in os.environ:
        env_device = os.environ["AUDIO_DEV"].strip()
        if env_device:
            cfg.setdefault("audio", {})["device"] = env_device
    if "REC_DIR" in os.environ:
        cfg.setdefault("paths", {})["recordings_dir"] = os.environ["REC_DIR"]

    env_map = {
        "AUDIO_BLOCK_SIZE": ("audio", "block_size", int),
        "SILENCE_DELAY": ("silence_detection", "delay_at_start_of_capture", float),
        "ENCODE_BITRATE": ("encode", "bitrate", str),
        "DEFAULT_ARTIST": ("encode", "default_artist", str),
        "DEFAULT_TITLE": ("encode", "default_title", str),
        "ENCODER_COMMAND": ("encode", "command", str),
        "CAPTURE_MODE": ("capture", "mode", lambda s: s.strip().lower()),
    }
    for env_key, (section, key, cast) in env_map.items():
        if env_key in os.environ:
            try:
                cfg.setdefault(section, {})[key] = cast(os.environ[env_key])
            except ValueError:
                LOG.warning("ignoring %s=%r: not a valid value", env_key, os.environ[env_key])


def get_cfg() -> Dict[str, Any]:
    global _cfg_cache, _search_paths, _active_config_path
    if _cfg_cache is not None:
        return _cfg_cache

    cfg = copy.deepcopy(_DEFAULTS)

    # Derive project root relative to this file (autotake/ -> project root)
    project_root = Path(__file__).resolve().parent.parent
    script_dir = Path(sys.argv[0]).resolve().parent if sys.argv and sys.argv[0] else Path.cwd()

    search = _candidate_search_paths(project_root, script_dir)
    _search_paths = list(search)

    active: Path | None = None
    for candidate in search:
        if candidate.exists():
            active = candidate
            break

    for candidate in reversed(search):
        cfg = _deep_merge(cfg, _load_yaml_if_exists(candidate))

    _active_config_path = active
    _apply_env_overrides(cfg)
    _cfg_cache = cfg
    return cfg


def reload_cfg() -> Dict[str, Any]:
    global _cfg_cache
    _cfg_cache = None
    return get_cfg()


def active_config_path() -> Path | None:
    if _active_config_path is None:
        get_cfg()
    return _active_config_path


def search_paths() -> list[Path]:
    if not _search_paths:
        get_cfg()
    return list(_search_paths)


@dataclass(frozen=True)
class RecorderConfig:
    """Immutable settings shared by the segmenter, the encoder and the loop."""

    grace_seconds: float = 5.0
    bitrate: str = "192"
    default_artist: str = "Unknown Artist"
    default_title: str = ""
    mode: str = "single"
    device: str = "default"
    block_size: int = 64
    output_dir: Path = Path(".")
    encoder_command: str = "lame"
    sample_rate: int = SAMPLE_RATE
    dev_mode: bool = False

    def __post_init__(self) -> None:
        if self.grace_seconds < 0:
            raise ValueError("grace_seconds must not be negative")
        if self.block_size <= 0:
            raise ValueError("block_size must be positive")
        if self.mode not in MODES:
            raise ValueError(f"mode must be one of {MODES}, got {self.mode!r}")

    @property
    def continuous(self) -> bool:
        return self.mode == "continuous"

    @property
    def grace_samples(self) -> int:
        return int(self.grace_seconds * self.sample_rate)


def build_recorder_config(
    cfg: Mapping[str, Any],
    *,
    take_name: str | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> RecorderConfig:
    """Flatten a loaded config mapping into a ``RecorderConfig``.

    ``overrides`` holds command-line values; ``None`` entries are ignored.
    Without an explicit mode, a missing take name selects continuous mode.
    """

    audio = cfg.get("audio", {})
    encode = cfg.get("encode", {})
    values: Dict[str, Any] = {
        "grace_seconds": float(cfg.get("silence_detection", {}).get("delay_at_start_of_capture", 5)),
        "bitrate": str(encode.get("bitrate", "192")),
        "default_artist": str(encode.get("default_artist") or ""),
        "default_title": str(encode.get("default_title") or ""),
        "mode": cfg.get("capture", {}).get("mode"),
        "device": str(audio.get("device", "default")),
        "block_size": int(audio.get("block_size", 64)),
        "output_dir": cfg.get("paths", {}).get("recordings_dir", "."),
        "encoder_command": str(encode.get("command", "lame")),
        "dev_mode": bool(cfg.get("logging", {}).get("dev_mode", False)),
    }
    for key, value in (overrides or {}).items():
        if value is not None:
            values[key] = value

    if not values["mode"]:
        values["mode"] = "single" if take_name else "continuous"
    values["output_dir"] = Path(values["output_dir"]).expanduser()
    return RecorderConfig(**values)
