"""Decoding and playback of a background music track."""

import concurrent.futures
import io
import logging
import threading
from typing import Any, Optional

import numpy as np
import soundfile as sf

from aura_harmonics.audio_graph import AudioBufferSourceNode, GainNode
from aura_harmonics.constants import DEFAULT_MUSIC_VOLUME, DEFAULT_SAMPLE_RATE
from aura_harmonics.data_types import DecodedMusicBuffer, PlaybackState
from aura_harmonics.exceptions import DecodeError, InvalidStateError
from aura_harmonics.live_engine import PlaybackTarget, StateListener
from aura_harmonics.realtime import StreamFactory
from aura_harmonics.validation import sanitize_volume

logger = logging.getLogger(__name__)


def decode_audio(
    file_bytes: bytes, mime_type: Optional[str] = None, name: str = ""
) -> DecodedMusicBuffer:
    """Decode container/codec bytes into samples at their native sample rate.

    Args:
        file_bytes: The raw uploaded file.
        mime_type: Declared MIME type; when given it must be an audio/* type.
        name: Display name kept on the buffer.

    Raises:
        DecodeError: If the bytes are empty, not audio, or not decodable.
    """
    if mime_type is not None and not mime_type.lower().startswith("audio/"):
        raise DecodeError(f"'{name or 'upload'}' is not an audio file ({mime_type}).")
    if not file_bytes:
        raise DecodeError(f"'{name or 'upload'}' is empty.")

    try:
        data, sample_rate = sf.read(
            io.BytesIO(file_bytes), dtype="float32", always_2d=True
        )
    except (sf.SoundFileError, RuntimeError, TypeError, ValueError) as e:
        raise DecodeError(
            f"Could not decode '{name or 'upload'}' as audio: {e}"
        ) from e

    if data.shape[0] == 0:
        raise DecodeError(f"'{name or 'upload'}' contains no audio frames.")

    buffer = DecodedMusicBuffer(
        samples=np.ascontiguousarray(data.T), sample_rate=sample_rate, name=name
    )
    logger.info(
        "Decoded '%s': %d channel(s), %d Hz, %.2fs.",
        name or "upload",
        buffer.channels,
        buffer.sample_rate,
        buffer.duration,
    )
    return buffer


class MusicPlaybackChannel:
    """Plays the decoded music track through its own gain node.

    Each play() creates a fresh source, since a source cannot be restarted.
    The gain node persists for the lifetime of the output context so volume
    changes made while idle still apply to the next play().
    """

    def __init__(
        self,
        name: str = "music",
        target: Optional[PlaybackTarget] = None,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        volume: float = DEFAULT_MUSIC_VOLUME,
        stream_factory: Optional[StreamFactory] = None,
        device: Optional[int] = None,
        on_state_change: Optional[StateListener] = None,
    ):
        self.name = name
        self._owns_target = target is None
        self.target = target or PlaybackTarget(
            name,
            sample_rate=sample_rate,
            stream_factory=stream_factory,
            device=device,
        )
        self._on_state_change = on_state_change
        self._volume = sanitize_volume(volume, fallback=DEFAULT_MUSIC_VOLUME)
        self._buffer: Optional[DecodedMusicBuffer] = None
        self._source: Optional[AudioBufferSourceNode] = None
        self._gain: Optional[GainNode] = None
        self._state = PlaybackState.IDLE
        self._lock = threading.RLock()
        self._executor: Optional[concurrent.futures.ThreadPoolExecutor] = None

    @property
    def buffer(self) -> Optional[DecodedMusicBuffer]:
        return self._buffer

    @property
    def gain(self) -> Optional[GainNode]:
        return self._gain

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def played_out(self) -> bool:
        """True once a single-shot source has reached its end."""
        source = self._source
        return (
            self._state is PlaybackState.PLAYING
            and source is not None
            and source.finished
        )

    @property
    def state(self) -> PlaybackState:
        if self.played_out:
            return PlaybackState.IDLE
        return self._state

    def refresh(self) -> PlaybackState:
        """Release a played-out source and report the transition to idle."""
        if self.played_out:
            self.stop()
        return self.state

    def decode(
        self, file_bytes: bytes, mime_type: Optional[str] = None, name: str = ""
    ) -> DecodedMusicBuffer:
        """Decode file_bytes and make the result the current track.

        Any playback of the previous track is stopped before it is replaced.

        Raises:
            DecodeError: If the bytes cannot be decoded; the current track is kept.
        """
        buffer = decode_audio(file_bytes, mime_type=mime_type, name=name)
        self.load(buffer)
        return buffer

    def decode_async(
        self, file_bytes: bytes, mime_type: Optional[str] = None, name: str = ""
    ) -> concurrent.futures.Future:
        """Decode on a worker thread; the future yields the DecodedMusicBuffer."""
        with self._lock:
            if self._executor is None:
                self._executor = concurrent.futures.ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix=f"{self.name}-decode"
                )
            return self._executor.submit(self.decode, file_bytes, mime_type, name)

    def load(self, buffer: DecodedMusicBuffer) -> None:
        """Replace the current track, stopping playback of the old one first."""
        with self._lock:
            self.stop()
            self._buffer = buffer
        logger.debug("[%s] Loaded track '%s'.", self.name, buffer.name)

    def play(
        self,
        buffer: Optional[DecodedMusicBuffer] = None,
        volume: Optional[float] = None,
        loop: bool = True,
    ) -> AudioBufferSourceNode:
        """Start the track from the beginning on a fresh source.

        Raises:
            InvalidStateError: If no track has been decoded or given.
            EngineUnavailableError: If the audio output cannot be opened.
        """
        with self._lock:
            if buffer is not None and buffer is not self._buffer:
                self.load(buffer)
            if self._buffer is None:
                raise InvalidStateError("No music has been loaded.")
            if volume is not None:
                self._volume = sanitize_volume(volume, fallback=self._volume)

            context = self.target.ensure()
            with context.lock:
                self._stop_source()
                gain = self._ensure_gain()
                gain.gain.set_value_at_time(self._volume, context.current_time)
                source = context.create_buffer_source(self._buffer, loop=loop)
                source.connect(gain)
                source.start()
                self._source = source

        logger.info(
            "[%s] Playing '%s' (loop=%s, volume=%.2f).",
            self.name,
            self._buffer.name,
            loop,
            self._volume,
        )
        self._set_state(PlaybackState.PLAYING)
        return source

    def stop(self) -> None:
        """Stop and discard the current source. A no-op when idle."""
        with self._lock:
            had_source = self._source is not None
            self._stop_source()
        if had_source:
            logger.info("[%s] Stopped.", self.name)
        self._set_state(PlaybackState.IDLE)

    def set_volume(self, volume: Any) -> float:
        with self._lock:
            self._volume = sanitize_volume(volume, fallback=self._volume)
            if self._gain is not None and self._gain.context.state != "closed":
                self._gain.gain.set_value_at_time(
                    self._volume, self._gain.context.current_time
                )
        return self._volume

    def close(self) -> None:
        self.stop()
        with self._lock:
            if self._executor is not None:
                self._executor.shutdown(wait=True)
                self._executor = None
            if self._owns_target:
                self.target.close()
            self._gain = None
            self._buffer = None

    def _ensure_gain(self) -> GainNode:
        context = self.target.context
        if self._gain is None or self._gain.context is not context:
            self._gain = context.create_gain(self._volume)
            self._gain.connect(self.target.master)
        return self._gain

    def _stop_source(self) -> None:
        source, self._source = self._source, None
        if source is None:
            return
        with source.context.lock:
            if source.started:
                source.stop()
            source.release()

    def _set_state(self, state: PlaybackState) -> None:
        if state is self._state:
            return
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(self.name, state)
