"""Offline (faster than real time) rendering of tone and music mixes."""

import concurrent.futures
import logging
import math
import threading
import time
from typing import Optional

from aura_harmonics.audio_graph import OfflineAudioContext
from aura_harmonics.constants import (
    DEFAULT_MUSIC_VOLUME,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_VOLUME,
    OFFLINE_BLOCK_SIZE,
)
from aura_harmonics.data_types import (
    DecodedMusicBuffer,
    DurationSource,
    ExportJob,
    RenderedBuffer,
    ToneVariant,
)
from aura_harmonics.exceptions import ConfigurationError, EmptyRenderError
from aura_harmonics.fade import schedule_fade
from aura_harmonics.tone_graph import build_tone_graph
from aura_harmonics.validation import sanitize_volume

logger = logging.getLogger(__name__)


def render_length(job: ExportJob) -> int:
    """Number of frames a job renders at its sample rate.

    Raises:
        ConfigurationError: If the duration cannot be determined.
    """
    if job.duration_source is DurationSource.MUSIC:
        if job.music is None:
            raise ConfigurationError(
                "Cannot take the render duration from music: no music is loaded."
            )
        return job.music.frames_at(job.sample_rate)

    duration = job.duration_seconds
    if duration is None:
        raise ConfigurationError("An explicit render duration is required.")
    try:
        duration = float(duration)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid render duration: {duration!r}") from e
    if not math.isfinite(duration) or duration < 0:
        raise ConfigurationError(f"Invalid render duration: {duration!r}")
    # Tolerate float error in products such as 0.1 * 44100.
    return int(math.floor(duration * job.sample_rate + 1e-6))


class OfflineRenderer:
    """Renders ExportJobs through the same graph builder as live playback.

    Graph per render:
        tone graph -> frequencies_gain --+
                                         +--> master (volume, fades) -> destination
        music source -> music_gain ------+
    """

    def __init__(
        self,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        block_size: int = OFFLINE_BLOCK_SIZE,
        max_workers: int = 1,
    ):
        self.sample_rate = sample_rate
        self.block_size = block_size
        self._max_workers = max_workers
        self._executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
        self._lock = threading.Lock()

    def render(
        self,
        tone: ToneVariant,
        volume: float = DEFAULT_VOLUME,
        duration_seconds: Optional[float] = None,
        music: Optional[DecodedMusicBuffer] = None,
        music_volume: float = DEFAULT_MUSIC_VOLUME,
        frequencies_volume: float = 1.0,
        duration_source: DurationSource = DurationSource.EXPLICIT,
        loop_music: bool = True,
        fade_in_seconds: float = 0.0,
        fade_out_seconds: float = 0.0,
    ) -> RenderedBuffer:
        """Render a tone, optionally mixed with music, to a sample buffer.

        Args:
            tone: The tone variant to synthesize.
            volume: Master output volume (0 to 1).
            duration_seconds: Render length when duration_source is EXPLICIT.
            music: Optional decoded music mixed under the tone.
            music_volume: Gain of the music path.
            frequencies_volume: Gain of the tone path.
            duration_source: Whether the length comes from duration_seconds
                or from the music buffer.
            loop_music: Loop music shorter than the render.
            fade_in_seconds: Linear fade-in applied to the master gain.
            fade_out_seconds: Linear fade-out applied to the master gain.

        Returns:
            The rendered buffer; stereo for binaural tones, otherwise mono.

        Raises:
            ConfigurationError: If the duration or fades are invalid.
            EmptyRenderError: If the render produced no frames.
        """
        job = ExportJob(
            tone=tone,
            volume=volume,
            duration_seconds=duration_seconds,
            music=music,
            music_volume=music_volume,
            frequencies_volume=frequencies_volume,
            duration_source=duration_source,
            loop_music=loop_music,
            sample_rate=self.sample_rate,
            fade_in_seconds=fade_in_seconds,
            fade_out_seconds=fade_out_seconds,
        )
        return self.render_job(job)

    def render_job(self, job: ExportJob) -> RenderedBuffer:
        """Render a prepared ExportJob. See render() for the errors raised."""
        length = render_length(job)
        context = OfflineAudioContext(
            channels=job.channels,
            length=length,
            sample_rate=job.sample_rate,
            block_size=self.block_size,
        )

        master = context.create_gain()
        master.connect(context.destination)
        schedule_fade(
            master.gain,
            sanitize_volume(job.volume),
            length / job.sample_rate,
            job.fade_in_seconds,
            job.fade_out_seconds,
        )

        frequencies_gain = context.create_gain(
            sanitize_volume(job.frequencies_volume, fallback=1.0)
        )
        frequencies_gain.connect(master)
        graph = build_tone_graph(context, job.tone, frequencies_gain, when=0.0)
        graph.start(0.0)

        if job.music is not None:
            music_gain = context.create_gain(
                sanitize_volume(job.music_volume, fallback=DEFAULT_MUSIC_VOLUME)
            )
            music_gain.connect(master)
            source = context.create_buffer_source(job.music, loop=job.loop_music)
            source.connect(music_gain)
            source.start(0.0)

        started = time.perf_counter()
        rendered = context.start_rendering()
        if rendered.frames == 0:
            raise EmptyRenderError(
                f"Offline render of {job.tone.tone_type.value} produced no samples."
            )

        logger.info(
            "Rendered %s%s: %.2fs, %d channel(s) at %d Hz in %.2fs.",
            job.tone.tone_type.value,
            " with music" if job.with_music else "",
            rendered.duration,
            rendered.channels,
            rendered.sample_rate,
            time.perf_counter() - started,
        )
        return rendered

    def submit(self, job: ExportJob) -> concurrent.futures.Future:
        """Render job on a worker thread; the future yields a RenderedBuffer."""
        with self._lock:
            if self._executor is None:
                self._executor = concurrent.futures.ThreadPoolExecutor(
                    max_workers=self._max_workers, thread_name_prefix="offline-render"
                )
            return self._executor.submit(self.render_job, job)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            if self._executor is not None:
                self._executor.shutdown(wait=wait)
                self._executor = None
