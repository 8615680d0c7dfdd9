"""
Session orchestration: the boundary a user interface talks to.

A Studio holds the editable parameters of each tone type, the live
audition engine, the music channel, the mixer and the offline renderer. It
enforces the rules that span them: playback and export never overlap, the
music buffer is only replaced once nothing reads it, and every structural
failure ends in a status message before it propagates.
"""

import concurrent.futures
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Union

from aura_harmonics.constants import (
    DEFAULT_EXPORT_DURATION_MINUTES,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_VOLUME,
    WAV_MIME_TYPE,
)
from aura_harmonics.data_types import (
    DecodedMusicBuffer,
    DurationSource,
    ExportJob,
    PlaybackState,
    RenderedBuffer,
    ToneType,
    ToneVariant,
    default_tone,
)
from aura_harmonics.exceptions import (
    AuraHarmonicsError,
    ConfigurationError,
    ExportInProgressError,
    PlaybackActiveConflictError,
)
from aura_harmonics.live_engine import LivePlaybackEngine, StateListener
from aura_harmonics.mixer import Mixer
from aura_harmonics.music import MusicPlaybackChannel, decode_audio
from aura_harmonics.offline import OfflineRenderer
from aura_harmonics.presets import get_preset
from aura_harmonics.realtime import StreamFactory
from aura_harmonics.validation import clamp_export_minutes, merge_tone, sanitize_tone
from aura_harmonics.wav import encode_wav, export_filename

logger = logging.getLogger(__name__)

StatusListener = Callable[[str], None]


@dataclass(frozen=True)
class ExportResult:
    """A finished export, ready to be offered as a download."""

    filename: str
    data: bytes
    rendered: RenderedBuffer
    mime_type: str = WAV_MIME_TYPE

    @property
    def duration(self) -> float:
        return self.rendered.duration


class Studio:
    """Coordinates live playback, music, mixing and export for one session."""

    def __init__(
        self,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        stream_factory: Optional[StreamFactory] = None,
        device: Optional[int] = None,
        on_state_change: Optional[StateListener] = None,
        on_status: Optional[StatusListener] = None,
    ):
        self.sample_rate = sample_rate
        self._on_status = on_status
        self._tones: Dict[ToneType, ToneVariant] = {
            tone_type: default_tone(tone_type) for tone_type in ToneType
        }
        self._tone_type = ToneType.ISOCHRONIC
        self._export_minutes = DEFAULT_EXPORT_DURATION_MINUTES
        self._lock = threading.RLock()

        self.live = LivePlaybackEngine(
            sample_rate=sample_rate,
            volume=DEFAULT_VOLUME,
            stream_factory=stream_factory,
            device=device,
            on_state_change=on_state_change,
        )
        self.music = MusicPlaybackChannel(
            name="music",
            sample_rate=sample_rate,
            stream_factory=stream_factory,
            device=device,
            on_state_change=on_state_change,
        )
        self.mixer = Mixer(
            sample_rate=sample_rate,
            stream_factory=stream_factory,
            device=device,
            on_state_change=on_state_change,
        )
        self.renderer = OfflineRenderer(sample_rate=sample_rate)
        self._export_executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="export"
        )
        self._export_future: Optional[concurrent.futures.Future] = None

    # Parameters

    @property
    def tone_type(self) -> ToneType:
        return self._tone_type

    @property
    def tone(self) -> ToneVariant:
        """Parameters of the selected tone type."""
        return self._tones[self._tone_type]

    def tone_for(self, tone_type: ToneType) -> ToneVariant:
        return self._tones[tone_type]

    @property
    def volume(self) -> float:
        return self.live.volume

    @property
    def export_minutes(self) -> int:
        return self._export_minutes

    @property
    def music_buffer(self) -> Optional[DecodedMusicBuffer]:
        return self.music.buffer

    def select_tone_type(self, tone_type: Union[ToneType, str]) -> ToneVariant:
        """Switch the selected tone type, carrying live playback over to it."""
        if not isinstance(tone_type, ToneType):
            tone_type = ToneType.from_name(tone_type)
        with self._lock:
            self._tone_type = tone_type
            self._refresh_playing_tones()
        return self.tone

    def update_settings(
        self, changes: Union[ToneVariant, Mapping[str, Any]]
    ) -> ToneVariant:
        """Change parameters of the selected tone; playing sessions follow."""
        with self._lock:
            if isinstance(changes, Mapping):
                tone = merge_tone(self.tone, changes)
            else:
                tone = sanitize_tone(changes, previous=self._tones[changes.tone_type])
                self._tone_type = tone.tone_type
            self._tones[tone.tone_type] = tone
            self._refresh_playing_tones()
        return tone

    def apply_preset(self, key: str) -> ToneVariant:
        """Select a preset's tone type and load its parameters.

        Raises:
            KeyError: If no preset has that key.
        """
        preset = get_preset(key)
        tone = self.update_settings(preset.tone)
        self._status(f"Preset loaded: {preset.name}")
        return tone

    def set_volume(self, volume: Any) -> float:
        return self.live.set_global_volume(volume)

    def set_export_minutes(self, minutes: Any) -> int:
        self._export_minutes = clamp_export_minutes(minutes)
        return self._export_minutes

    # Frequencies tab

    def play_frequencies(self) -> None:
        """Audition the selected tone, replacing any running audition.

        Raises:
            ExportInProgressError: If an export is running.
            EngineUnavailableError: If the audio output cannot be opened.
        """
        with self._lock:
            self._check_not_exporting()
            self._report(self.live.start, self.tone)

    def stop_frequencies(self) -> None:
        self.live.stop()

    # Music tab

    def load_music(
        self, file_bytes: bytes, mime_type: Optional[str] = None, name: str = ""
    ) -> DecodedMusicBuffer:
        """Decode an upload and make it the session's music.

        Playback of the old track is stopped and any running export is
        waited for before the buffer is replaced.

        Raises:
            DecodeError: If the bytes cannot be decoded; the old track is kept.
        """
        self._status(f"Decoding {name or 'upload'}...")
        buffer = self._report(decode_audio, file_bytes, mime_type, name)
        with self._lock:
            self._wait_for_export()
            self.mixer.music.load(buffer)
            self.music.load(buffer)
        self._status(f"Music loaded: {name or 'upload'} ({buffer.duration:.1f}s)")
        return buffer

    def play_music(self, loop: bool = True) -> None:
        """Play the loaded track on the music tab's own output.

        Raises:
            ExportInProgressError: If an export is running.
            InvalidStateError: If no music has been loaded.
        """
        with self._lock:
            self._check_not_exporting()
            self._report(self.music.play, None, None, loop)

    def stop_music(self) -> None:
        self.music.stop()

    def set_music_volume(self, volume: Any) -> float:
        return self.music.set_volume(volume)

    # Mixer tab

    def mixer_play_frequencies(self) -> None:
        with self._lock:
            self._check_not_exporting()
            self._report(self.mixer.play_frequencies, self.tone)

    def mixer_play_music(self, loop: bool = True) -> None:
        with self._lock:
            self._check_not_exporting()
            self._report(self.mixer.play_music, None, loop)

    def mixer_stop_frequencies(self) -> None:
        self.mixer.stop_frequencies()

    def mixer_stop_music(self) -> None:
        self.mixer.stop_music()

    def mixer_stop_all(self) -> None:
        self.mixer.stop_all()

    def set_frequencies_volume(self, volume: Any) -> float:
        return self.mixer.set_frequencies_volume(volume)

    def set_mixer_music_volume(self, volume: Any) -> float:
        return self.mixer.set_music_volume(volume)

    def set_mixer_master_volume(self, volume: Any) -> float:
        return self.mixer.set_master_volume(volume)

    # Export

    @property
    def is_playing(self) -> bool:
        return (
            self.live.is_playing
            or self.music.state is PlaybackState.PLAYING
            or self.mixer.state is PlaybackState.PLAYING
        )

    @property
    def is_exporting(self) -> bool:
        future = self._export_future
        return future is not None and not future.done()

    def export(
        self,
        with_music: bool = False,
        duration_source: DurationSource = DurationSource.EXPLICIT,
        fade_in_seconds: float = 0.0,
        fade_out_seconds: float = 0.0,
    ) -> concurrent.futures.Future:
        """Render and encode the selected tone on a worker thread.

        The future yields an ExportResult, or raises the render's error.

        Raises:
            ExportInProgressError: If another export is running.
            PlaybackActiveConflictError: If anything is playing.
            ConfigurationError: If music is requested but none is loaded.
        """
        with self._lock:
            if self.is_exporting:
                raise self._reject(
                    ExportInProgressError("An export is already in progress.")
                )
            if self.is_playing:
                raise self._reject(
                    PlaybackActiveConflictError(
                        "Stop all playback before exporting."
                    )
                )
            music = self.music.buffer if with_music else None
            if with_music and music is None:
                raise self._reject(
                    ConfigurationError("Load a music file before exporting with music.")
                )

            job = ExportJob(
                tone=self.tone,
                volume=self.volume,
                duration_seconds=self._export_minutes * 60.0,
                music=music,
                music_volume=self.mixer.music_volume,
                frequencies_volume=(
                    self.mixer.frequencies_volume if with_music else 1.0
                ),
                duration_source=duration_source,
                sample_rate=self.sample_rate,
                fade_in_seconds=fade_in_seconds,
                fade_out_seconds=fade_out_seconds,
            )
            self._status(
                f"Rendering {job.tone.tone_type.value}"
                f"{' with music' if with_music else ''}..."
            )
            self._export_future = self._export_executor.submit(self._run_export, job)
            return self._export_future

    def close(self) -> None:
        """Stop everything and release every audio resource."""
        self._export_executor.shutdown(wait=True)
        self.live.close()
        self.music.close()
        self.mixer.close()
        self.renderer.shutdown()
        logger.info("Studio closed.")

    # Internals

    def _run_export(self, job: ExportJob) -> ExportResult:
        try:
            rendered = self.renderer.render_job(job)
            data = encode_wav(rendered)
        except AuraHarmonicsError as e:
            self._status(f"Export failed: {e}")
            raise
        filename = export_filename(job.tone.tone_type, with_music=job.with_music)
        self._status(f"Export ready: {filename}")
        return ExportResult(filename=filename, data=data, rendered=rendered)

    def _refresh_playing_tones(self) -> None:
        tone = self.tone
        if self.live.is_playing:
            self.live.update_live_parameters(tone)
        if self.mixer.frequencies_state is PlaybackState.PLAYING:
            self.mixer.update_frequencies(tone)

    def _check_not_exporting(self) -> None:
        if self.is_exporting:
            raise self._reject(
                ExportInProgressError("Wait for the export to finish before playing.")
            )

    def _wait_for_export(self) -> None:
        future = self._export_future
        if future is not None and not future.done():
            logger.info("Waiting for the running export before replacing music.")
            concurrent.futures.wait([future])

    def _report(self, operation: Callable, *args):
        try:
            return operation(*args)
        except AuraHarmonicsError as e:
            self._status(f"Error: {e}")
            raise

    def _reject(self, error: AuraHarmonicsError) -> AuraHarmonicsError:
        self._status(str(error))
        return error

    def _status(self, message: str) -> None:
        logger.info("%s", message)
        if self._on_status is not None:
            self._on_status(message)
