"""Constants for the Aura Harmonics tone engine."""

DEFAULT_SAMPLE_RATE = 44100
DEFAULT_VOLUME = 0.5
DEFAULT_MUSIC_VOLUME = 0.7
DEFAULT_FREQUENCIES_VOLUME = 0.5

# Real-time output is always stereo; mono graphs are up-mixed.
REALTIME_CHANNELS = 2
REALTIME_BLOCK_SIZE = 512
OFFLINE_BLOCK_SIZE = 16384

# Isochronic carrier envelope: baseline and maximum swing before carrier gain.
ISOCHRONIC_BASELINE_GAIN = 0.5

# Hard stereo placement for binaural tones.
PAN_LEFT = -1.0
PAN_RIGHT = 1.0

DEFAULT_EXPORT_DURATION_MINUTES = 5
MIN_EXPORT_DURATION_MINUTES = 1
MAX_EXPORT_DURATION_MINUTES = 120

WAV_MIME_TYPE = "audio/wav"
WAV_FORMAT = "WAV"
WAV_SUBTYPE = "PCM_16"
EXPORT_FILENAME_PREFIX = "aura_harmonics"
SUPPORTED_FORMATS = (".wav",)
