"""Utility functions for loading and validating YAML session scripts."""

import dataclasses
import logging
import os
from dataclasses import dataclass
from typing import Any, Optional

import yaml

from aura_harmonics.constants import (
    DEFAULT_EXPORT_DURATION_MINUTES,
    DEFAULT_FREQUENCIES_VOLUME,
    DEFAULT_MUSIC_VOLUME,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_VOLUME,
)
from aura_harmonics.data_types import (
    DecodedMusicBuffer,
    DurationSource,
    ExportJob,
    ToneVariant,
)
from aura_harmonics.exceptions import (
    AuraHarmonicsError,
    ConfigFileNotFoundError,
    ConfigurationError,
    YAMLParsingError,
)
from aura_harmonics.presets import get_preset
from aura_harmonics.validation import (
    clamp_export_minutes,
    sanitize_volume,
    tone_from_dict,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionConfig:
    """A validated session script."""

    tone: ToneVariant
    sample_rate: int = DEFAULT_SAMPLE_RATE
    volume: float = DEFAULT_VOLUME
    music_file: Optional[str] = None
    music_volume: float = DEFAULT_MUSIC_VOLUME
    loop_music: bool = True
    frequencies_volume: float = DEFAULT_FREQUENCIES_VOLUME
    duration_minutes: int = DEFAULT_EXPORT_DURATION_MINUTES
    duration_source: DurationSource = DurationSource.EXPLICIT
    fade_in_seconds: float = 0.0
    fade_out_seconds: float = 0.0
    output_filename: Optional[str] = None

    @property
    def duration_seconds(self) -> float:
        return self.duration_minutes * 60.0

    def export_job(self, music: Optional[DecodedMusicBuffer] = None) -> ExportJob:
        """The offline render this session describes, with music when given."""
        return ExportJob(
            tone=self.tone,
            volume=self.volume,
            duration_seconds=self.duration_seconds,
            music=music,
            music_volume=self.music_volume,
            frequencies_volume=(
                self.frequencies_volume if music is not None else 1.0
            ),
            duration_source=self.duration_source,
            loop_music=self.loop_music,
            sample_rate=self.sample_rate,
            fade_in_seconds=self.fade_in_seconds,
            fade_out_seconds=self.fade_out_seconds,
        )


def _section(config: dict, key: str) -> dict:
    section = config.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(
            f"'{key}' section must be a dictionary (key-value pairs)."
        )
    return section


def _number(section: dict, key: str, default: float, label: str) -> float:
    value = section.get(key, default)
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid value for '{label}': {value!r}") from e


def _parse_tone(config: dict) -> ToneVariant:
    if "preset" in config:
        try:
            tone = get_preset(str(config["preset"])).tone
        except KeyError as e:
            raise ConfigurationError(str(e.args[0])) from e
        overrides = config.get("tone") or {}
        if not isinstance(overrides, dict):
            raise ConfigurationError("'tone' section must be a dictionary.")
        if overrides:
            settings = {"type": tone.tone_type.value}
            settings.update(
                {f.name: getattr(tone, f.name) for f in dataclasses.fields(tone)}
            )
            settings.update(overrides)
            return _tone_from_settings(settings)
        return tone

    if "tone" not in config:
        raise ConfigurationError("Missing required keys: ['tone'] (or 'preset').")
    settings = config["tone"]
    if not isinstance(settings, dict):
        raise ConfigurationError("'tone' section must be a dictionary.")
    return _tone_from_settings(settings)


def _tone_from_settings(settings: dict) -> ToneVariant:
    try:
        return tone_from_dict(settings)
    except ValueError as e:
        raise ConfigurationError(f"Invalid 'tone' configuration: {e}") from e


def _parse_duration_source(value: Any) -> DurationSource:
    try:
        return DurationSource(str(value).strip().lower())
    except ValueError as e:
        supported = ", ".join(source.value for source in DurationSource)
        raise ConfigurationError(
            f"Invalid 'export.duration_source' {value!r}. Supported: {supported}."
        ) from e


def load_yaml_config(path: str) -> SessionConfig:
    """Loads and validates a YAML session script.

    Relative music paths are resolved against the script's directory.

    Args:
        path: Path to the YAML session script.

    Returns:
        The validated SessionConfig.

    Raises:
        ConfigFileNotFoundError: If the file is not found.
        YAMLParsingError: If YAML parsing fails.
        ConfigurationError: If the script is structurally invalid.
    """
    try:
        with open(path, "r", encoding="utf-8") as file:
            config = yaml.safe_load(file)

        if not isinstance(config, dict):
            raise ConfigurationError("YAML configuration root must be a dictionary.")

        tone = _parse_tone(config)

        sample_rate = config.get("sample_rate", DEFAULT_SAMPLE_RATE)
        if isinstance(sample_rate, bool) or not isinstance(sample_rate, int):
            raise ConfigurationError(
                f"'sample_rate' must be a positive integer, got {sample_rate!r}."
            )
        if sample_rate <= 0:
            raise ConfigurationError(
                f"'sample_rate' must be a positive integer, got {sample_rate}."
            )

        music = _section(config, "music")
        music_file = music.get("file")
        if music_file is not None:
            music_file = str(music_file)
            if not os.path.isabs(music_file):
                music_file = os.path.join(
                    os.path.dirname(os.path.abspath(path)), music_file
                )

        export = _section(config, "export")
        fade_in = _number(export, "fade_in_duration", 0.0, "export.fade_in_duration")
        fade_out = _number(
            export, "fade_out_duration", 0.0, "export.fade_out_duration"
        )
        if fade_in < 0 or fade_out < 0:
            raise ConfigurationError("Fade durations cannot be negative.")

        duration_source = _parse_duration_source(
            export.get("duration_source", DurationSource.EXPLICIT.value)
        )
        if duration_source is DurationSource.MUSIC and music_file is None:
            raise ConfigurationError(
                "'export.duration_source: music' requires a 'music.file'."
            )

        session = SessionConfig(
            tone=tone,
            sample_rate=sample_rate,
            volume=sanitize_volume(config.get("volume", DEFAULT_VOLUME)),
            music_file=music_file,
            music_volume=sanitize_volume(
                music.get("volume", DEFAULT_MUSIC_VOLUME),
                fallback=DEFAULT_MUSIC_VOLUME,
            ),
            loop_music=bool(music.get("loop", True)),
            frequencies_volume=sanitize_volume(
                config.get("frequencies_volume", DEFAULT_FREQUENCIES_VOLUME),
                fallback=DEFAULT_FREQUENCIES_VOLUME,
            ),
            duration_minutes=clamp_export_minutes(
                export.get("duration_minutes", DEFAULT_EXPORT_DURATION_MINUTES)
            ),
            duration_source=duration_source,
            fade_in_seconds=fade_in,
            fade_out_seconds=fade_out,
            output_filename=export.get("output_filename"),
        )

        logger.debug("YAML configuration loaded and validated from %s", path)
        logger.debug("Session configuration: %s", session)
        return session

    except FileNotFoundError as e:
        raise ConfigFileNotFoundError(f"Config file '{path}' not found.") from e
    except yaml.YAMLError as e:
        raise YAMLParsingError(f"Error parsing YAML file '{path}': {e}") from e
    except ConfigurationError:
        raise
    except Exception as e:
        raise AuraHarmonicsError(
            f"An unexpected error occurred loading config '{path}': {e}"
        ) from e
