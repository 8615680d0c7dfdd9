"""Named tone presets and brainwave band descriptions."""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from aura_harmonics.data_types import (
    BinauralTone,
    IsochronicTone,
    MonauralTone,
    ToneVariant,
)


@dataclass(frozen=True)
class Preset:
    """A ready-made tone with a short description of its intended use."""

    key: str
    name: str
    description: str
    tone: ToneVariant


PRESETS: Dict[str, Preset] = {
    preset.key: preset
    for preset in (
        Preset(
            "focus_alpha_binaural",
            "Focus (Alpha Binaural)",
            "Mental clarity and concentration",
            BinauralTone(base_frequency=105.0, beat_frequency=10.0),
        ),
        Preset(
            "meditation_theta_binaural",
            "Meditation (Theta Binaural)",
            "Deep relaxation and meditation",
            BinauralTone(base_frequency=139.1, beat_frequency=6.0),
        ),
        Preset(
            "solfeggio_528_isochronic",
            "Solfeggio 528 Hz (Isochronic)",
            "Emotional balance and transformation",
            IsochronicTone(
                carrier_frequency=528.0,
                pulse_frequency=7.83,
                modulation_depth=50.0,
                carrier_gain=0.8,
            ),
        ),
        Preset(
            "solfeggio_396_monaural",
            "Solfeggio 396 Hz (Monaural)",
            "Releasing fear and emotional cleansing",
            MonauralTone(frequency_one=396.0, frequency_two=398.0),
        ),
        Preset(
            "astral_projection_theta_isochronic",
            "Astral Projection (Theta Isochronic)",
            "Altered states of consciousness",
            IsochronicTone(
                carrier_frequency=100.0,
                pulse_frequency=4.5,
                modulation_depth=60.0,
                carrier_gain=0.7,
            ),
        ),
        Preset(
            "healing_432_isochronic",
            "General Healing (432 Hz Isochronic)",
            "Harmonization and energetic healing",
            IsochronicTone(
                carrier_frequency=432.0,
                pulse_frequency=10.0,
                modulation_depth=40.0,
                carrier_gain=0.8,
            ),
        ),
    )
}

# Band name -> (low Hz, high Hz, typical association).
BRAINWAVE_BANDS: Dict[str, Tuple[float, float, str]] = {
    "Delta": (0.5, 4.0, "Deep sleep, healing"),
    "Theta": (4.0, 8.0, "Meditation, creativity"),
    "Alpha": (8.0, 13.0, "Relaxation, calmness"),
    "Beta": (13.0, 30.0, "Focus, alertness"),
    "Gamma": (30.0, 100.0, "Peak concentration"),
}


def preset_names() -> List[str]:
    return list(PRESETS)


def get_preset(key: str) -> Preset:
    """Look up a preset by key, accepting dashes or spaces for underscores.

    Raises:
        KeyError: If no preset has that key.
    """
    normalized = key.strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return PRESETS[normalized]
    except KeyError:
        available = ", ".join(PRESETS)
        raise KeyError(f"Unknown preset '{key}'. Available presets: {available}") from None


def entrainment_frequency(tone: ToneVariant) -> float:
    """The rhythm a tone presents to the listener, in Hz."""
    if isinstance(tone, IsochronicTone):
        return tone.pulse_frequency
    if isinstance(tone, BinauralTone):
        return tone.beat_frequency
    if isinstance(tone, MonauralTone):
        return tone.beat_frequency
    raise TypeError(f"Unsupported tone variant: {type(tone).__name__}")


def brainwave_band(frequency: float) -> Optional[str]:
    """Name of the band containing frequency, or None outside every band."""
    for name, (low, high, _) in BRAINWAVE_BANDS.items():
        if low <= frequency < high:
            return name
    return None
