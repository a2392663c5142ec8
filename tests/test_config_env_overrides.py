"""Tests covering config file loading, environment overrides and RecorderConfig."""

from __future__ import annotations

from pathlib import Path

import pytest

from autotake import config as config_module
from autotake.config import RecorderConfig, build_recorder_config

ENV_KEYS = (
    "AUTOTAKE_CONFIG",
    "DEV",
    "AUDIO_DEV",
    "AUDIO_BLOCK_SIZE",
    "REC_DIR",
    "SILENCE_DELAY",
    "ENCODE_BITRATE",
    "DEFAULT_ARTIST",
    "DEFAULT_TITLE",
    "ENCODER_COMMAND",
    "CAPTURE_MODE",
)


def _reset_config_state(monkeypatch) -> None:
    monkeypatch.setattr(config_module, "_cfg_cache", None, raising=False)
    monkeypatch.setattr(config_module, "_search_paths", [], raising=False)
    monkeypatch.setattr(config_module, "_active_config_path", None, raising=False)


def _use_config(monkeypatch, tmp_path: Path, text: str) -> Path:
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    config_path = tmp_path / "custom.yaml"
    config_path.write_text(text)
    monkeypatch.setenv("AUTOTAKE_CONFIG", str(config_path))
    _reset_config_state(monkeypatch)
    return config_path


def test_file_values_override_defaults(monkeypatch, tmp_path: Path) -> None:
    config_path = _use_config(
        monkeypatch,
        tmp_path,
        "silence_detection:\n  delay_at_start_of_capture: 3\nencode:\n  bitrate: '128'\n",
    )

    cfg = config_module.get_cfg()

    assert cfg["silence_detection"]["delay_at_start_of_capture"] == 3
    assert cfg["encode"]["bitrate"] == "128"
    # untouched keys keep their defaults
    assert cfg["encode"]["command"] == "lame"
    assert cfg["audio"]["block_size"] == 64
    assert config_module.active_config_path() == config_path.resolve()


def test_env_overrides_file(monkeypatch, tmp_path: Path) -> None:
    _use_config(monkeypatch, tmp_path, "audio:\n  device: hw:CARD=Device,DEV=0\n")
    monkeypatch.setenv("SILENCE_DELAY", "7")
    monkeypatch.setenv("CAPTURE_MODE", " Continuous ")
    monkeypatch.setenv("AUDIO_DEV", "hw:1")
    monkeypatch.setenv("DEFAULT_ARTIST", "The Band")
    monkeypatch.setenv("DEV", "1")

    cfg = config_module.get_cfg()

    assert cfg["silence_detection"]["delay_at_start_of_capture"] == 7.0
    assert cfg["capture"]["mode"] == "continuous"
    assert cfg["audio"]["device"] == "hw:1"
    assert cfg["encode"]["default_artist"] == "The Band"
    assert cfg["logging"]["dev_mode"] is True


def test_invalid_env_value_is_ignored(monkeypatch, tmp_path: Path) -> None:
    _use_config(monkeypatch, tmp_path, "audio:\n  block_size: 128\n")
    monkeypatch.setenv("AUDIO_BLOCK_SIZE", "lots")

    cfg = config_module.get_cfg()

    assert cfg["audio"]["block_size"] == 128


def test_malformed_yaml_falls_back_to_defaults(monkeypatch, tmp_path: Path) -> None:
    _use_config(monkeypatch, tmp_path, "audio: [unterminated\n")

    cfg = config_module.get_cfg()

    assert cfg["encode"]["bitrate"] == "192"


def test_get_cfg_is_cached_until_reload(monkeypatch, tmp_path: Path) -> None:
    config_path = _use_config(monkeypatch, tmp_path, "encode:\n  bitrate: '96'\n")
    first = config_module.get_cfg()
    config_path.write_text("encode:\n  bitrate: '320'\n")

    assert config_module.get_cfg() is first
    assert config_module.reload_cfg()["encode"]["bitrate"] == "320"


def test_build_recorder_config_mode_follows_take_name(monkeypatch, tmp_path: Path) -> None:
    _use_config(monkeypatch, tmp_path, "paths:\n  recordings_dir: takes\n")
    cfg = config_module.get_cfg()

    named = build_recorder_config(cfg, take_name="Band - Song")
    unnamed = build_recorder_config(cfg)

    assert named.mode == "single"
    assert unnamed.mode == "continuous"
    assert unnamed.continuous
    assert named.output_dir == Path("takes")
    assert named.grace_samples == 5 * 44100


def test_build_recorder_config_applies_overrides(monkeypatch, tmp_path: Path) -> None:
    _use_config(monkeypatch, tmp_path, "capture:\n  mode: single\n")
    cfg = config_module.get_cfg()

    rc = build_recorder_config(
        cfg,
        overrides={"grace_seconds": 2.5, "bitrate": None, "mode": "continuous"},
    )

    assert rc.grace_seconds == 2.5
    assert rc.grace_samples == int(2.5 * 44100)
    assert rc.bitrate == "192"
    assert rc.mode == "continuous"


def test_configured_mode_wins_over_missing_name(monkeypatch, tmp_path: Path) -> None:
    _use_config(monkeypatch, tmp_path, "capture:\n  mode: single\n")

    rc = build_recorder_config(config_module.get_cfg())

    assert rc.mode == "single"


@pytest.mark.parametrize(
    "kwargs",
    [{"mode": "loop"}, {"grace_seconds": -1}, {"block_size": 0}],
)
def test_recorder_config_validation(kwargs) -> None:
    with pytest.raises(ValueError):
        RecorderConfig(**kwargs)


def test_recorder_config_is_immutable() -> None:
    rc = RecorderConfig()
    with pytest.raises(AttributeError):
        rc.bitrate = "320"  # type: ignore[misc]
