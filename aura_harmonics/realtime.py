"""Real-time audio context backed by a sounddevice output stream."""

import logging
import threading
from typing import Callable, Optional

import numpy as np

from aura_harmonics.audio_graph import BaseAudioContext
from aura_harmonics.constants import (
    DEFAULT_SAMPLE_RATE,
    REALTIME_BLOCK_SIZE,
    REALTIME_CHANNELS,
)
from aura_harmonics.exceptions import EngineUnavailableError, InvalidStateError

logger = logging.getLogger(__name__)

# stream_factory(sample_rate, channels, block_size, device, callback) -> stream
StreamFactory = Callable[..., object]


def sounddevice_stream_factory(
    sample_rate: int,
    channels: int,
    block_size: int,
    device: Optional[int],
    callback: Callable,
):
    """Open a PortAudio output stream through sounddevice.

    Raises:
        EngineUnavailableError: If sounddevice or an output device is missing.
    """
    try:
        import sounddevice as sd
    except (ImportError, OSError) as e:
        raise EngineUnavailableError(
            f"Real-time audio output is unavailable (sounddevice/PortAudio): {e}"
        ) from e

    try:
        return sd.OutputStream(
            samplerate=sample_rate,
            channels=channels,
            blocksize=block_size,
            dtype="float32",
            device=device,
            callback=callback,
        )
    except (sd.PortAudioError, ValueError) as e:
        raise EngineUnavailableError(f"Could not open an audio output stream: {e}") from e


class RealtimeAudioContext(BaseAudioContext):
    """A context whose clock is advanced by the sound card callback.

    The context starts suspended; resume() opens and starts the stream.
    Graph changes and the callback share the context lock, so a change made
    on the control thread is audible from the next callback block on.
    """

    def __init__(
        self,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        channels: int = REALTIME_CHANNELS,
        block_size: int = REALTIME_BLOCK_SIZE,
        device: Optional[int] = None,
        stream_factory: Optional[StreamFactory] = None,
    ):
        super().__init__(sample_rate, channels)
        self.block_size = block_size
        self.device = device
        self._stream_factory = stream_factory or sounddevice_stream_factory
        self._stream = None
        self.xrun_count = 0
        # Serializes resume/suspend/close; never held by the callback.
        self._control_lock = threading.Lock()

    def resume(self) -> None:
        """Start (or restart) the output stream.

        Raises:
            EngineUnavailableError: If no output stream can be opened.
            InvalidStateError: If the context has been closed.
        """
        with self._control_lock, self.lock:
            if self.state == "closed":
                raise InvalidStateError("Cannot resume a closed audio context.")
            if self.state == "running":
                return
            if self._stream is None:
                self._stream = self._stream_factory(
                    self.sample_rate,
                    self.channels,
                    self.block_size,
                    self.device,
                    self._callback,
                )
            self._stream.start()
            self.state = "running"
        logger.debug("Real-time context running at %d Hz.", self.sample_rate)

    def suspend(self) -> None:
        """Stop the output stream, keeping it open for a later resume().

        The stream is stopped outside the context lock: stopping waits for
        the running callback, which needs the lock to finish its block.
        """
        with self._control_lock:
            with self.lock:
                if self.state != "running":
                    return
                self.state = "suspended"
                stream = self._stream
            stream.stop()
        logger.debug("Real-time context suspended.")

    def close(self) -> None:
        """Release every node and close the stream. Safe to call repeatedly."""
        with self._control_lock:
            with self.lock:
                if self.state == "closed":
                    return
                self._release_all()
                self.state = "closed"
                stream, self._stream = self._stream, None
            if stream is not None:
                stream.stop()
                stream.close()
        logger.debug("Real-time context closed.")

    def render(self, frames: int) -> np.ndarray:
        """Render the next block as (frames, channels) float32, as the device expects."""
        return self._render_block(frames).T.astype(np.float32)

    def _callback(self, outdata, frames, time_info, status) -> None:
        if status:
            self.xrun_count += 1
            logger.debug("Output stream status: %s", status)
        outdata[:] = self.render(frames)
