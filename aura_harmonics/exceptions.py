"""Exceptions raised by the Aura Harmonics package."""


class AuraHarmonicsError(Exception):
    """Base class for all Aura Harmonics errors."""


class ValidationError(AuraHarmonicsError):
    """A tone or mix parameter is non-finite, non-numeric or out of range."""


class ConfigurationError(AuraHarmonicsError):
    """A session script is structurally invalid."""


class ConfigFileNotFoundError(ConfigurationError):
    """The session script does not exist."""


class YAMLParsingError(ConfigurationError):
    """The session script is not valid YAML."""


class EngineUnavailableError(AuraHarmonicsError):
    """No real-time audio output is available on this platform."""


class InvalidStateError(AuraHarmonicsError):
    """A graph node was used in a way its lifecycle does not allow."""


class DecodeError(AuraHarmonicsError):
    """Uploaded bytes could not be decoded as audio."""


class EmptyRenderError(AuraHarmonicsError):
    """An offline render produced no samples."""


class AudioGenerationError(AuraHarmonicsError):
    """Rendering or writing audio failed."""


class UnsupportedFormatError(AuraHarmonicsError):
    """The requested output file format is not supported."""


class ExportInProgressError(AuraHarmonicsError):
    """Playback was requested while an export is running."""


class PlaybackActiveConflictError(AuraHarmonicsError):
    """An export was requested while playback is active."""
