"""Unit tests for the mixer."""

import numpy as np
import pytest

from aura_harmonics.data_types import (
    DecodedMusicBuffer,
    IsochronicTone,
    MonauralTone,
    PlaybackState,
)
from aura_harmonics.mixer import Mixer


@pytest.fixture
def music():
    return DecodedMusicBuffer(
        samples=np.full((2, 44100), 0.5), sample_rate=44100, name="pad"
    )


@pytest.fixture
def mixer(fake_stream_factory):
    mixer = Mixer(stream_factory=fake_stream_factory)
    yield mixer
    mixer.close()


def test_both_sources_share_one_output(mixer, music, fake_streams):
    mixer.play_frequencies(MonauralTone())
    mixer.play_music(music)
    assert len(fake_streams) == 1
    assert mixer.frequencies_state is PlaybackState.PLAYING
    assert mixer.music_state is PlaybackState.PLAYING
    assert mixer.state is PlaybackState.PLAYING


def test_stopping_music_keeps_frequencies(mixer, music):
    graph = mixer.play_frequencies(IsochronicTone())
    mixer.play_music(music)
    mixer.stop_music()
    assert mixer.music_state is PlaybackState.IDLE
    assert mixer.frequencies_state is PlaybackState.PLAYING
    assert not graph.is_torn_down


def test_stopping_frequencies_keeps_music(mixer, music, fake_streams):
    mixer.play_frequencies(MonauralTone())
    mixer.play_music(music)
    mixer.stop_frequencies()
    assert mixer.frequencies_state is PlaybackState.IDLE
    assert mixer.music_state is PlaybackState.PLAYING
    block = fake_streams[0].pump()
    # Only the constant music remains: 0.5 * music volume * master volume.
    assert np.allclose(block, 0.5 * 0.7 * 1.0, atol=1e-6)


def test_restarting_frequencies_leaves_music_running(mixer, music):
    mixer.play_music(music)
    source = mixer.music._source
    mixer.play_frequencies(MonauralTone())
    mixer.play_frequencies(IsochronicTone())
    assert mixer.music._source is source
    assert mixer.music_state is PlaybackState.PLAYING


def test_volumes_are_independent(mixer, music, fake_streams):
    mixer.play_frequencies(MonauralTone())
    mixer.play_music(music)
    mixer.set_music_volume(0.2)
    assert mixer.frequencies_gain.gain.value == pytest.approx(0.5)
    assert mixer.music_gain.gain.value == pytest.approx(0.2)

    mixer.set_frequencies_volume(0.0)
    block = fake_streams[0].pump()
    assert np.allclose(block, 0.5 * 0.2, atol=1e-6)


def test_stop_all_leaves_only_buses(mixer, music):
    mixer.play_frequencies(IsochronicTone())
    mixer.play_music(music)
    mixer.stop_all()
    mixer.stop_all()
    assert mixer.state is PlaybackState.IDLE
    # master, frequencies gain and music gain persist for the context.
    assert mixer.active_node_count == 3


def test_frequency_update_only_touches_tone(mixer, music):
    mixer.play_frequencies(IsochronicTone())
    mixer.play_music(music)
    tone = mixer.update_frequencies({"carrier_frequency": 300.0})
    assert tone.carrier_frequency == 300.0
    assert mixer.music_state is PlaybackState.PLAYING
