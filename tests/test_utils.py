"""Unit tests for YAML session loading."""

import os

import pytest

from aura_harmonics.data_types import BinauralTone, DurationSource, IsochronicTone
from aura_harmonics.exceptions import (
    ConfigFileNotFoundError,
    ConfigurationError,
    YAMLParsingError,
)
from aura_harmonics.utils import load_yaml_config


def _write(tmp_path, text):
    path = tmp_path / "session.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_load_full_session(tmp_path):
    path = _write(
        tmp_path,
        """
sample_rate: 48000
volume: 0.4
tone:
  type: binaural
  base_frequency: 136.1
  beat_frequency: 6
music:
  file: track.wav
  volume: 0.6
  loop: false
frequencies_volume: 0.3
export:
  duration_minutes: 500
  duration_source: music
  fade_in_duration: 2
  fade_out_duration: 3
  output_filename: out.wav
""",
    )
    session = load_yaml_config(path)
    assert session.tone == BinauralTone(base_frequency=136.1, beat_frequency=6.0)
    assert session.sample_rate == 48000
    assert session.volume == 0.4
    assert session.music_file == os.path.join(str(tmp_path), "track.wav")
    assert session.music_volume == 0.6
    assert session.loop_music is False
    assert session.frequencies_volume == 0.3
    assert session.duration_minutes == 120
    assert session.duration_source is DurationSource.MUSIC
    assert session.fade_in_seconds == 2.0
    assert session.fade_out_seconds == 3.0
    assert session.output_filename == "out.wav"


def test_preset_with_overrides(tmp_path):
    path = _write(
        tmp_path,
        """
preset: solfeggio-528-isochronic
tone:
  modulation_depth: 20
""",
    )
    session = load_yaml_config(path)
    assert session.tone == IsochronicTone(
        carrier_frequency=528.0,
        pulse_frequency=7.83,
        modulation_depth=20.0,
        carrier_gain=0.8,
    )
    assert session.duration_seconds == 300.0


def test_out_of_range_tone_values_are_clamped(tmp_path):
    path = _write(tmp_path, "tone:\n  type: isochronic\n  carrier_frequency: 9000\n")
    assert load_yaml_config(path).tone.carrier_frequency == 1500.0


def test_export_job_without_music_uses_full_tone_level(tmp_path):
    path = _write(tmp_path, "tone:\n  type: monaural\nfrequencies_volume: 0.2\n")
    job = load_yaml_config(path).export_job()
    assert job.frequencies_volume == 1.0
    assert job.duration_seconds == 300.0


@pytest.mark.parametrize(
    "text",
    [
        "- just\n- a list\n",
        "volume: 0.5\n",
        "tone: binaural\n",
        "tone:\n  base_frequency: 100\n",
        "tone:\n  type: stereo\n",
        "preset: nonexistent\n",
        "tone:\n  type: binaural\nsample_rate: fast\n",
        "tone:\n  type: binaural\nexport:\n  fade_in_duration: -1\n",
        "tone:\n  type: binaural\nexport:\n  duration_source: music\n",
        "tone:\n  type: binaural\nexport:\n  duration_source: forever\n",
        "tone:\n  type: binaural\nmusic: loud\n",
    ],
)
def test_invalid_sessions(tmp_path, text):
    with pytest.raises(ConfigurationError):
        load_yaml_config(_write(tmp_path, text))


def test_missing_file(tmp_path):
    with pytest.raises(ConfigFileNotFoundError):
        load_yaml_config(str(tmp_path / "missing.yaml"))


def test_bad_yaml(tmp_path):
    with pytest.raises(YAMLParsingError):
        load_yaml_config(_write(tmp_path, "tone: [unclosed\n"))
