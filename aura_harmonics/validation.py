"""Validation and recovery of tone and mix parameters.

Every value that can reach the synthesis layer passes through here first.
Problems are never surfaced as failures: an out-of-range value is clamped to
the nearest bound, and a non-finite or non-numeric value is replaced by a
fallback (the last known good value, or the documented default).
"""

import dataclasses
import logging
import math
import numbers
from typing import Any, Mapping, Optional

from aura_harmonics.constants import (
    DEFAULT_EXPORT_DURATION_MINUTES,
    DEFAULT_VOLUME,
    MAX_EXPORT_DURATION_MINUTES,
    MIN_EXPORT_DURATION_MINUTES,
)
from aura_harmonics.data_types import (
    PARAMETER_RANGES,
    TONE_CLASSES,
    BinauralTone,
    ToneType,
    ToneVariant,
    default_tone,
)
from aura_harmonics.exceptions import ValidationError

logger = logging.getLogger(__name__)

# Accepted spellings for tone fields in scripts and UI payloads.
FIELD_ALIASES = {
    "carrier_freq": "carrier_frequency",
    "carrierFreq": "carrier_frequency",
    "frequency": "carrier_frequency",
    "pulse_freq": "pulse_frequency",
    "pulseFreq": "pulse_frequency",
    "modulation_frequency": "pulse_frequency",
    "modulationFrequency": "pulse_frequency",
    "modulationDepth": "modulation_depth",
    "depth": "modulation_depth",
    "carrier_volume": "carrier_gain",
    "carrierVolume": "carrier_gain",
    "base_freq": "base_frequency",
    "baseFreq": "base_frequency",
    "beat_freq": "beat_frequency",
    "beatFreq": "beat_frequency",
    "freq1": "frequency_one",
    "freq2": "frequency_two",
}


def validate_value(name: str, value: Any) -> float:
    """Return value as a float if it is finite and inside the range for name.

    Raises:
        ValidationError: If the value is non-numeric, non-finite, or out of range.
    """
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ValidationError(f"'{name}' must be a number, got {value!r}.")
    number = float(value)
    if not math.isfinite(number):
        raise ValidationError(f"'{name}' must be finite, got {value!r}.")
    bounds = PARAMETER_RANGES.get(name)
    if bounds is not None and not bounds.min <= number <= bounds.max:
        raise ValidationError(
            f"'{name}' must be within [{bounds.min}, {bounds.max}], got {number}."
        )
    return number


def sanitize_value(name: str, value: Any, fallback: float) -> float:
    """Validate value, recovering locally instead of raising."""
    try:
        return validate_value(name, value)
    except ValidationError as e:
        bounds = PARAMETER_RANGES.get(name)
        if (
            bounds is not None
            and isinstance(value, numbers.Real)
            and not isinstance(value, bool)
            and math.isfinite(value)
        ):
            recovered = bounds.clamp(float(value))
        else:
            recovered = float(fallback)
        logger.warning("%s Using %s instead.", e, recovered)
        return recovered


def sanitize_volume(value: Any, fallback: float = DEFAULT_VOLUME) -> float:
    """Volumes are gains in [0, 1]."""
    return sanitize_value("volume", value, fallback)


def sanitize_tone(
    tone: ToneVariant, previous: Optional[ToneVariant] = None
) -> ToneVariant:
    """Return a copy of tone whose every field is valid.

    Fallbacks come from previous when it is the same tone type, otherwise
    from the tone type's defaults.
    """
    if previous is None or type(previous) is not type(tone):
        previous = default_tone(tone.tone_type)

    values = {}
    for tone_field in dataclasses.fields(tone):
        fallback = getattr(previous, tone_field.name)
        values[tone_field.name] = sanitize_value(
            tone_field.name, getattr(tone, tone_field.name), fallback
        )
    sanitized = type(tone)(**values)

    if isinstance(sanitized, BinauralTone):
        # Keep the left ear frequency positive.
        if sanitized.beat_frequency > sanitized.base_frequency:
            logger.warning(
                "Beat frequency %.2f Hz exceeds base frequency %.2f Hz; clamping.",
                sanitized.beat_frequency,
                sanitized.base_frequency,
            )
            sanitized = dataclasses.replace(
                sanitized, beat_frequency=sanitized.base_frequency
            )
    return sanitized


def normalize_fields(settings: Mapping[str, Any]) -> dict:
    """Map alias keys onto canonical tone field names."""
    return {FIELD_ALIASES.get(key, key): value for key, value in settings.items()}


def merge_tone(tone: ToneVariant, changes: Mapping[str, Any]) -> ToneVariant:
    """Apply a partial update to tone, ignoring unknown keys."""
    changes = normalize_fields(changes)
    known = {tone_field.name for tone_field in dataclasses.fields(tone)}
    unknown = sorted(set(changes) - known)
    if unknown:
        logger.warning(
            "Ignoring unknown %s parameters: %s",
            tone.tone_type.value,
            ", ".join(unknown),
        )
    updates = {key: value for key, value in changes.items() if key in known}
    return sanitize_tone(dataclasses.replace(tone, **updates), previous=tone)


def tone_from_dict(settings: Mapping[str, Any]) -> ToneVariant:
    """Build a sanitized tone from a mapping with a 'type' key.

    Raises:
        ValueError: If the type is missing or unknown.
    """
    if "type" not in settings:
        raise ValueError("Tone settings must contain a 'type' key.")
    tone_type = ToneType.from_name(settings["type"])
    fields_only = {key: value for key, value in settings.items() if key != "type"}
    return merge_tone(TONE_CLASSES[tone_type](), fields_only)


def clamp_export_minutes(minutes: Any) -> int:
    """Export durations are whole minutes in [1, 120]."""
    if isinstance(minutes, bool) or not isinstance(minutes, numbers.Real):
        logger.warning(
            "Export duration %r is not a number; using %d minutes.",
            minutes,
            DEFAULT_EXPORT_DURATION_MINUTES,
        )
        return DEFAULT_EXPORT_DURATION_MINUTES
    if not math.isfinite(minutes):
        return DEFAULT_EXPORT_DURATION_MINUTES
    clamped = int(
        min(MAX_EXPORT_DURATION_MINUTES, max(MIN_EXPORT_DURATION_MINUTES, round(minutes)))
    )
    if clamped != minutes:
        logger.warning("Export duration %r clamped to %d minutes.", minutes, clamped)
    return clamped
