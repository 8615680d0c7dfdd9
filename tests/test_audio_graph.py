"""Unit tests for the signal graph primitives."""

import numpy as np
import pytest

from aura_harmonics.audio_graph import OfflineAudioContext, mix_channels
from aura_harmonics.data_types import DecodedMusicBuffer, IsochronicTone
from aura_harmonics.exceptions import InvalidStateError
from aura_harmonics.tone_graph import build_tone_graph


def test_set_value_at_time_applies_from_scheduled_frame():
    "A value scheduled at 0.1s on a 100 Hz clock takes effect at frame 10"
    context = OfflineAudioContext(channels=1, length=20, sample_rate=100)
    param = context.create_gain().gain
    param.set_value_at_time(0.25, 0.1)
    values = param.compute(0, 20)
    assert np.all(values[:10] == 1.0)
    assert np.all(values[10:] == 0.25)


def test_linear_ramp_interpolates_between_events():
    "A ramp from 0 at t=0 to 1 at t=1 passes through 0.5 halfway"
    context = OfflineAudioContext(channels=1, length=200, sample_rate=100)
    param = context.create_gain().gain
    param.set_value_at_time(0.0, 0.0)
    param.linear_ramp_to_value_at_time(1.0, 1.0)
    values = param.compute(0, 150)
    assert values[0] == pytest.approx(0.0)
    assert values[50] == pytest.approx(0.5)
    assert values[100] == pytest.approx(1.0)
    assert values[149] == pytest.approx(1.0)


def test_param_rejects_non_finite_values():
    context = OfflineAudioContext(channels=1, length=10, sample_rate=100)
    param = context.create_oscillator().frequency
    with pytest.raises(ValueError):
        param.set_value_at_time(float("nan"), 0.0)


def test_oscillator_is_single_use():
    "Starting twice or stopping before start must raise InvalidStateError"
    context = OfflineAudioContext(channels=1, length=10, sample_rate=100)
    oscillator = context.create_oscillator()
    with pytest.raises(InvalidStateError):
        oscillator.stop()
    oscillator.start(0.0)
    with pytest.raises(InvalidStateError):
        oscillator.start(0.0)


def test_oscillator_produces_sine_from_zero_phase():
    "A quarter-rate oscillator yields 0, 1, 0, -1"
    context = OfflineAudioContext(channels=1, length=8, sample_rate=1000)
    oscillator = context.create_oscillator(250.0)
    oscillator.connect(context.destination)
    oscillator.start(0.0)
    rendered = context.start_rendering()
    assert np.allclose(rendered.channel(0)[:4], [0.0, 1.0, 0.0, -1.0], atol=1e-6)


def test_oscillator_silent_outside_start_and_stop():
    context = OfflineAudioContext(channels=1, length=100, sample_rate=100)
    oscillator = context.create_oscillator(10.0)
    oscillator.connect(context.destination)
    oscillator.start(0.2)
    oscillator.stop(0.5)
    samples = context.start_rendering().channel(0)
    assert np.all(samples[:20] == 0.0)
    assert np.any(samples[20:50] != 0.0)
    assert np.all(samples[50:] == 0.0)


def test_hard_left_pan_silences_right_channel():
    context = OfflineAudioContext(channels=2, length=441, sample_rate=44100)
    oscillator = context.create_oscillator(440.0)
    oscillator.connect(context.create_stereo_panner(-1.0)).connect(context.destination)
    oscillator.start(0.0)
    rendered = context.start_rendering()
    assert np.max(np.abs(rendered.channel(0))) > 0.9
    assert np.max(np.abs(rendered.channel(1))) < 1e-6


def test_mix_channels_up_and_down():
    mono = np.array([[0.5, -0.5]])
    stereo = np.array([[1.0, 0.0], [3.0, 2.0]])
    assert np.array_equal(mix_channels(mono, 2), np.array([[0.5, -0.5], [0.5, -0.5]]))
    assert np.array_equal(mix_channels(stereo, 1), np.array([[2.0, 1.0]]))


def test_connect_across_contexts_rejected():
    first = OfflineAudioContext(channels=1, length=10, sample_rate=100)
    second = OfflineAudioContext(channels=1, length=10, sample_rate=100)
    with pytest.raises(InvalidStateError):
        first.create_gain().connect(second.destination)


def test_release_stops_tracking_node():
    context = OfflineAudioContext(channels=1, length=10, sample_rate=100)
    gain = context.create_gain()
    oscillator = context.create_oscillator()
    oscillator.connect(gain).connect(context.destination)
    assert context.active_node_count == 2
    oscillator.release()
    gain.release()
    assert context.active_node_count == 0


def test_offline_context_renders_once():
    context = OfflineAudioContext(channels=1, length=10, sample_rate=100)
    context.start_rendering()
    assert context.state == "closed"
    with pytest.raises(InvalidStateError):
        context.start_rendering()


def test_buffer_source_loops_and_single_shot():
    "Looping wraps the track; single-shot leaves silence and finishes"
    buffer = DecodedMusicBuffer(samples=np.array([[0.1, 0.2, 0.3]]), sample_rate=100)

    context = OfflineAudioContext(channels=1, length=7, sample_rate=100)
    source = context.create_buffer_source(buffer, loop=True)
    source.connect(context.destination)
    source.start(0.0)
    looped = context.start_rendering().channel(0)
    assert np.allclose(looped, [0.1, 0.2, 0.3, 0.1, 0.2, 0.3, 0.1])

    context = OfflineAudioContext(channels=1, length=7, sample_rate=100)
    source = context.create_buffer_source(buffer, loop=False)
    source.connect(context.destination)
    source.start(0.0)
    single = context.start_rendering().channel(0)
    assert np.allclose(single, [0.1, 0.2, 0.3, 0.0, 0.0, 0.0, 0.0])
    assert source.finished


def test_buffer_source_buffer_set_once():
    buffer = DecodedMusicBuffer(samples=np.zeros((1, 4)), sample_rate=100)
    context = OfflineAudioContext(channels=1, length=10, sample_rate=100)
    source = context.create_buffer_source(buffer)
    with pytest.raises(InvalidStateError):
        source.buffer = buffer


def test_render_independent_of_block_size():
    "Rendering in small or large blocks yields the same samples"
    tone = IsochronicTone(carrier_frequency=200.0, pulse_frequency=7.0)
    outputs = []
    for block_size in (64, 16384):
        context = OfflineAudioContext(
            channels=1, length=22050, sample_rate=44100, block_size=block_size
        )
        build_tone_graph(context, tone, context.destination, when=0.0).start(0.0)
        outputs.append(context.start_rendering().channel(0))
    assert np.allclose(outputs[0], outputs[1], atol=1e-5)
