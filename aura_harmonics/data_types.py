"""Types used in the aura_harmonics package."""

import math
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Dict, Optional, Union

import numpy as np
from scipy.signal import resample_poly

from aura_harmonics.constants import (
    DEFAULT_MUSIC_VOLUME,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_VOLUME,
    ISOCHRONIC_BASELINE_GAIN,
)


class ToneType(Enum):
    """The three tone variants the engine can synthesize."""

    ISOCHRONIC = "Isochronic"
    BINAURAL = "Binaural"
    MONAURAL = "Monaural"

    @classmethod
    def from_name(cls, name: str) -> "ToneType":
        """Look up a tone type by value or member name, case-insensitively."""
        wanted = str(name).strip().lower()
        for member in cls:
            if wanted in (member.value.lower(), member.name.lower()):
                return member
        supported = ", ".join(member.value for member in cls)
        raise ValueError(f"Unknown tone type '{name}'. Supported types: {supported}.")

    @property
    def slug(self) -> str:
        """Lower-case name used in file names."""
        return self.value.lower()


class PlaybackState(Enum):
    """Playback state reported for each independent channel."""

    IDLE = "Idle"
    PLAYING = "Playing"


class DurationSource(Enum):
    """What drives the length of an offline render."""

    EXPLICIT = "explicit"
    MUSIC = "music"


@dataclass(frozen=True)
class ParameterRange:
    """Declared bounds for a numeric parameter."""

    min: float
    max: float
    step: float

    def clamp(self, value: float) -> float:
        """Clamp a finite value into the range."""
        return min(self.max, max(self.min, value))


PARAMETER_RANGES: Dict[str, ParameterRange] = {
    "carrier_frequency": ParameterRange(20.0, 1500.0, 0.1),
    "pulse_frequency": ParameterRange(0.5, 40.0, 0.1),
    "modulation_depth": ParameterRange(0.0, 100.0, 1.0),
    "carrier_gain": ParameterRange(0.0, 1.0, 0.01),
    "base_frequency": ParameterRange(20.0, 1500.0, 0.1),
    "beat_frequency": ParameterRange(0.5, 50.0, 0.1),
    "frequency_one": ParameterRange(20.0, 1500.0, 0.1),
    "frequency_two": ParameterRange(20.0, 1500.0, 0.1),
    "volume": ParameterRange(0.0, 1.0, 0.01),
}


@dataclass(frozen=True)
class IsochronicTone:
    """A carrier amplitude-modulated by a slow sine LFO."""

    tone_type: ClassVar[ToneType] = ToneType.ISOCHRONIC

    carrier_frequency: float = 136.1
    pulse_frequency: float = 7.83
    modulation_depth: float = 50.0
    carrier_gain: float = 1.0

    @property
    def baseline_gain(self) -> float:
        """Steady-state gain of the carrier, before modulation."""
        return ISOCHRONIC_BASELINE_GAIN * self.carrier_gain

    @property
    def lfo_gain(self) -> float:
        """Swing of the carrier gain around the baseline."""
        return self.baseline_gain * self.modulation_depth / 100.0


@dataclass(frozen=True)
class BinauralTone:
    """Two pure tones, one per ear, split evenly around a base frequency."""

    tone_type: ClassVar[ToneType] = ToneType.BINAURAL

    base_frequency: float = 105.0
    beat_frequency: float = 10.0

    @property
    def left_frequency(self) -> float:
        return self.base_frequency - self.beat_frequency / 2.0

    @property
    def right_frequency(self) -> float:
        return self.base_frequency + self.beat_frequency / 2.0


@dataclass(frozen=True)
class MonauralTone:
    """Two pure tones summed into the same channel(s)."""

    tone_type: ClassVar[ToneType] = ToneType.MONAURAL

    frequency_one: float = 200.0
    frequency_two: float = 210.0

    @property
    def beat_frequency(self) -> float:
        return abs(self.frequency_two - self.frequency_one)


ToneVariant = Union[IsochronicTone, BinauralTone, MonauralTone]

TONE_CLASSES = {
    ToneType.ISOCHRONIC: IsochronicTone,
    ToneType.BINAURAL: BinauralTone,
    ToneType.MONAURAL: MonauralTone,
}


def default_tone(tone_type: ToneType) -> ToneVariant:
    """Return the documented default parameter set for a tone type."""
    return TONE_CLASSES[tone_type]()


@dataclass(frozen=True)
class DecodedMusicBuffer:
    """Decoded music samples, shaped (channels, frames), read-only."""

    samples: np.ndarray
    sample_rate: int
    name: str = ""
    _resampled: Dict[int, np.ndarray] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        samples = np.array(self.samples, dtype=np.float32, copy=True, ndmin=2)
        if samples.ndim != 2:
            raise ValueError("Music samples must be shaped (channels, frames).")
        if self.sample_rate <= 0:
            raise ValueError("Music sample rate must be positive.")
        samples.setflags(write=False)
        object.__setattr__(self, "samples", samples)

    @property
    def channels(self) -> int:
        return self.samples.shape[0]

    @property
    def frames(self) -> int:
        return self.samples.shape[1]

    @property
    def duration(self) -> float:
        return self.frames / self.sample_rate

    def frames_at(self, sample_rate: int) -> int:
        """Length of the buffer once resampled to sample_rate."""
        return self.resampled(sample_rate).shape[1]

    def resampled(self, sample_rate: int) -> np.ndarray:
        """Samples at sample_rate, computed once per rate and cached."""
        if sample_rate == self.sample_rate:
            return self.samples
        with self._lock:
            cached = self._resampled.get(sample_rate)
            if cached is None:
                divisor = math.gcd(int(sample_rate), int(self.sample_rate))
                up = int(sample_rate) // divisor
                down = int(self.sample_rate) // divisor
                cached = resample_poly(self.samples, up, down, axis=1).astype(
                    np.float32
                )
                cached.setflags(write=False)
                self._resampled[sample_rate] = cached
            return cached


@dataclass(frozen=True)
class RenderedBuffer:
    """Output of an offline render, shaped (channels, frames)."""

    samples: np.ndarray
    sample_rate: int

    @property
    def channels(self) -> int:
        return self.samples.shape[0]

    @property
    def frames(self) -> int:
        return self.samples.shape[1]

    def __len__(self) -> int:
        return self.frames

    @property
    def duration(self) -> float:
        return self.frames / self.sample_rate

    def channel(self, index: int) -> np.ndarray:
        return self.samples[index]


@dataclass(frozen=True)
class ExportJob:
    """Everything needed to render a tone (and optional music) offline."""

    tone: ToneVariant
    volume: float = DEFAULT_VOLUME
    duration_seconds: Optional[float] = None
    music: Optional[DecodedMusicBuffer] = None
    music_volume: float = DEFAULT_MUSIC_VOLUME
    frequencies_volume: float = 1.0
    duration_source: DurationSource = DurationSource.EXPLICIT
    loop_music: bool = True
    sample_rate: int = DEFAULT_SAMPLE_RATE
    fade_in_seconds: float = 0.0
    fade_out_seconds: float = 0.0

    @property
    def with_music(self) -> bool:
        return self.music is not None

    @property
    def channels(self) -> int:
        """Binaural renders are stereo, everything else is mono."""
        return 2 if self.tone.tone_type is ToneType.BINAURAL else 1
