"""Schedule a linear fade-in and fade-out on a gain parameter."""

from aura_harmonics.audio_graph import AudioParam
from aura_harmonics.exceptions import ConfigurationError


def schedule_fade(
    param: AudioParam,
    level: float,
    duration_sec: float,
    fade_in_sec: float = 0.0,
    fade_out_sec: float = 0.0,
) -> AudioParam:
    """Automate param to ramp 0 -> level over fade_in_sec at the start and
    level -> 0 over fade_out_sec at the end of a duration_sec long render."""
    if fade_in_sec < 0 or fade_out_sec < 0:
        raise ConfigurationError("Fade durations cannot be negative.")
    if fade_in_sec + fade_out_sec > duration_sec:
        raise ConfigurationError(
            f"Sum of fade-in ({fade_in_sec}s) and fade-out "
            f"({fade_out_sec}s) cannot exceed the render duration ({duration_sec}s)."
        )

    if fade_in_sec > 0:
        param.set_value_at_time(0.0, 0.0)
        param.linear_ramp_to_value_at_time(level, fade_in_sec)
    else:
        param.set_value_at_time(level, 0.0)

    if fade_out_sec > 0:
        param.set_value_at_time(level, duration_sec - fade_out_sec)
        param.linear_ramp_to_value_at_time(0.0, duration_sec)
    return param
