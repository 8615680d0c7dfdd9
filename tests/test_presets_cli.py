"""Unit tests for presets and the command-line interface."""

import io

import numpy as np
import pytest
import soundfile as sf

from aura_harmonics import cli
from aura_harmonics.data_types import (
    BinauralTone,
    IsochronicTone,
    MonauralTone,
    PlaybackState,
)
from aura_harmonics.exceptions import EngineUnavailableError
from aura_harmonics.mixer import Mixer
from aura_harmonics.presets import (
    PRESETS,
    brainwave_band,
    entrainment_frequency,
    get_preset,
    preset_names,
)
from aura_harmonics.utils import SessionConfig
from aura_harmonics.validation import sanitize_tone
from aura_harmonics.wav import parse_wav_header


def test_presets_are_valid_tones():
    "Every preset survives sanitization unchanged"
    assert len(preset_names()) == 6
    for preset in PRESETS.values():
        assert sanitize_tone(preset.tone) == preset.tone


def test_get_preset_normalizes_key():
    assert get_preset("Focus Alpha Binaural").tone == BinauralTone(105.0, 10.0)
    with pytest.raises(KeyError):
        get_preset("sleep")


def test_entrainment_bands():
    assert brainwave_band(entrainment_frequency(BinauralTone(105.0, 10.0))) == "Alpha"
    theta = IsochronicTone(pulse_frequency=4.5)
    assert brainwave_band(entrainment_frequency(theta)) == "Theta"
    assert brainwave_band(entrainment_frequency(MonauralTone(396.0, 398.0))) == "Delta"
    assert brainwave_band(200.0) is None


def test_cli_presets(capsys):
    cli.main(["presets"])
    out = capsys.readouterr().out
    assert "solfeggio_528_isochronic" in out
    assert "Theta" in out


def test_cli_export(tmp_path):
    "Exporting a script writes a WAV of the scripted length"
    music = io.BytesIO()
    sf.write(music, np.full(22050, 0.1), 22050, format="WAV")
    (tmp_path / "pad.wav").write_bytes(music.getvalue())
    script = tmp_path / "session.yaml"
    script.write_text(
        "tone:\n"
        "  type: binaural\n"
        "  base_frequency: 200\n"
        "  beat_frequency: 8\n"
        "music:\n"
        "  file: pad.wav\n"
        "export:\n"
        "  duration_source: music\n",
        encoding="utf-8",
    )
    output = tmp_path / "out" / "session.wav"
    cli.main(["export", str(script), "-o", str(output)])
    header = parse_wav_header(output.read_bytes())
    assert header.num_channels == 2
    assert header.data_size == 44100 * 2 * 2


def test_cli_exits_on_error(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["export", str(tmp_path / "missing.yaml")])
    assert excinfo.value.code == 1


def test_cli_play_closes_player_when_start_fails(
    monkeypatch, fake_stream_factory, fake_streams
):
    "A failure while starting playback still closes the output stream"
    mixers = []

    class FailingMixer(Mixer):
        def __init__(self, **kwargs):
            super().__init__(stream_factory=fake_stream_factory, **kwargs)
            mixers.append(self)

        def play_music(self, buffer=None, loop=True):
            raise EngineUnavailableError("output device vanished")

    monkeypatch.setattr(cli, "Mixer", FailingMixer)
    monkeypatch.setattr(cli, "load_music", lambda session: object())
    session = SessionConfig(tone=BinauralTone(), music_file="pad.wav")

    with pytest.raises(EngineUnavailableError):
        cli.run_play(session, seconds=0.0, device=None)

    assert fake_streams[0].closed
    assert mixers[0].frequencies_state is PlaybackState.IDLE
    assert mixers[0].active_node_count == 0
