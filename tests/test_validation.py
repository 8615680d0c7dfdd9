"""Unit tests for parameter validation."""

import math

import numpy as np
import pytest

from aura_harmonics.data_types import BinauralTone, IsochronicTone, MonauralTone
from aura_harmonics.exceptions import ValidationError
from aura_harmonics.validation import (
    clamp_export_minutes,
    merge_tone,
    sanitize_tone,
    sanitize_value,
    sanitize_volume,
    tone_from_dict,
    validate_value,
)


@pytest.mark.parametrize("value", [float("nan"), math.inf, "440", None, True, 5000])
def test_validate_value_rejects(value):
    with pytest.raises(ValidationError):
        validate_value("carrier_frequency", value)


def test_validate_value_accepts_numpy_scalars():
    assert validate_value("carrier_frequency", np.float32(440.0)) == 440.0


def test_sanitize_value_clamps_finite_values():
    assert sanitize_value("carrier_frequency", 5000, 136.1) == 1500.0
    assert sanitize_value("pulse_frequency", 0.1, 7.83) == 0.5


def test_sanitize_value_substitutes_fallback():
    assert sanitize_value("carrier_frequency", float("nan"), 136.1) == 136.1
    assert sanitize_value("beat_frequency", "fast", 10.0) == 10.0


def test_sanitize_volume_bounds():
    assert sanitize_volume(1.5) == 1.0
    assert sanitize_volume(-0.2) == 0.0
    assert sanitize_volume(float("inf"), fallback=0.3) == 0.3


def test_sanitize_tone_uses_previous_values_as_fallback():
    previous = IsochronicTone(carrier_frequency=300.0)
    tone = sanitize_tone(IsochronicTone(carrier_frequency=float("nan")), previous)
    assert tone.carrier_frequency == 300.0


def test_binaural_beat_limited_to_base():
    tone = sanitize_tone(BinauralTone(base_frequency=20.0, beat_frequency=50.0))
    assert tone.beat_frequency == 20.0
    assert tone.left_frequency >= 0.0


def test_merge_tone_accepts_aliases_and_ignores_unknown_keys():
    tone = merge_tone(
        IsochronicTone(),
        {"carrierFreq": 200, "modulationDepth": 75, "colour": "blue"},
    )
    assert tone.carrier_frequency == 200.0
    assert tone.modulation_depth == 75.0


def test_tone_from_dict():
    tone = tone_from_dict({"type": "monaural", "freq1": 396, "freq2": 398})
    assert tone == MonauralTone(frequency_one=396.0, frequency_two=398.0)
    assert tone.beat_frequency == 2.0


def test_tone_from_dict_requires_known_type():
    with pytest.raises(ValueError):
        tone_from_dict({"freq1": 396})
    with pytest.raises(ValueError):
        tone_from_dict({"type": "trinaural"})


@pytest.mark.parametrize(
    "minutes, expected",
    [(0, 1), (1, 1), (30, 30), (500, 120), (2.6, 3), ("ten", 5), (float("nan"), 5)],
)
def test_clamp_export_minutes(minutes, expected):
    assert clamp_export_minutes(minutes) == expected
