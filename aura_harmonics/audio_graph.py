"""
A small pull-based signal graph for tone synthesis.

Nodes are wired with connect(), parameters are automated with
set_value_at_time() and linear_ramp_to_value_at_time(), and a context pulls
blocks of samples from its destination. The same graph renders identically
whether the context is driven by a sound card callback or rendered offline;
only the destination and the clock differ.

Time is counted in sample frames. A value scheduled "at time t" applies from
the first frame >= t * sample_rate.
"""

import itertools
import logging
import math
import threading
from typing import List, Optional, Set, Union

import numpy as np

from aura_harmonics.constants import OFFLINE_BLOCK_SIZE
from aura_harmonics.data_types import DecodedMusicBuffer, RenderedBuffer
from aura_harmonics.exceptions import InvalidStateError

logger = logging.getLogger(__name__)

TWO_PI = 2.0 * np.pi

_SET = 0
_RAMP = 1


def mix_channels(signal: np.ndarray, channels: int) -> np.ndarray:
    """Up- or down-mix a (channels, frames) block to the requested channel count.

    Mono to stereo copies the signal, stereo to mono averages the two sides.
    Any other mismatch keeps the leading channels and pads with silence.
    """
    current = signal.shape[0]
    if current == channels:
        return signal
    if current == 1:
        return np.repeat(signal, channels, axis=0)
    if channels == 1 and current == 2:
        return 0.5 * (signal[0:1] + signal[1:2])
    mixed = np.zeros((channels, signal.shape[1]), dtype=signal.dtype)
    keep = min(current, channels)
    mixed[:keep] = signal[:keep]
    return mixed


class AudioParam:
    """A sample-accurate automatable parameter.

    The effective value per frame is the scheduled timeline value plus the sum
    of every node connected into the parameter (down-mixed to mono).
    """

    def __init__(
        self,
        context: "BaseAudioContext",
        name: str,
        default_value: float,
        min_value: float = -math.inf,
        max_value: float = math.inf,
    ):
        self.context = context
        self.name = name
        self.default_value = float(default_value)
        self.min_value = min_value
        self.max_value = max_value
        # (frame, sequence, kind, value), kept sorted.
        self._events: List[tuple] = []
        self._sequence = itertools.count()
        self._inputs: List["AudioNode"] = []

    def __repr__(self) -> str:
        return f"AudioParam({self.name!r}, value={self.value})"

    @property
    def value(self) -> float:
        """Timeline value at the context's current frame."""
        with self.context.lock:
            return float(self._timeline(self.context.current_frame, 1)[0])

    def set_value_at_time(self, value: float, start_time: float) -> "AudioParam":
        """Jump to value at start_time (seconds)."""
        self._insert(_SET, value, start_time)
        return self

    def linear_ramp_to_value_at_time(
        self, value: float, end_time: float
    ) -> "AudioParam":
        """Ramp linearly from the previous event to reach value at end_time."""
        self._insert(_RAMP, value, end_time)
        return self

    def cancel_scheduled_values(self, cancel_time: float) -> "AudioParam":
        """Drop every event at or after cancel_time."""
        frame = self.context.frame_for_time(cancel_time)
        with self.context.lock:
            self._events = [event for event in self._events if event[0] < frame]
        return self

    def _insert(self, kind: int, value: float, when: float) -> None:
        value = float(value)
        if not math.isfinite(value):
            raise ValueError(f"{self.name}: scheduled value must be finite, got {value}")
        value = min(self.max_value, max(self.min_value, value))
        frame = self.context.frame_for_time(when)
        with self.context.lock:
            event = (frame, next(self._sequence), kind, value)
            self._events.append(event)
            self._events.sort(key=lambda e: (e[0], e[1]))

    def _prune(self, start: int) -> None:
        """Forget events fully superseded before frame start."""
        last_past = -1
        for index, event in enumerate(self._events):
            if event[0] <= start:
                last_past = index
            else:
                break
        if last_past > 0:
            del self._events[:last_past]

    def _timeline(self, start: int, frames: int) -> np.ndarray:
        if not self._events:
            return np.full(frames, self.default_value)

        self._prune(start)
        times = np.array([event[0] for event in self._events], dtype=np.int64)
        values = np.array([event[3] for event in self._events], dtype=np.float64)
        is_ramp = np.array([event[2] == _RAMP for event in self._events])

        positions = np.arange(start, start + frames, dtype=np.int64)
        last = np.searchsorted(times, positions, side="right") - 1
        safe_last = np.maximum(last, 0)
        result = np.where(last >= 0, values[safe_last], self.default_value)

        following = last + 1
        has_next = following < len(times)
        safe_next = np.minimum(following, len(times) - 1)
        ramping = has_next & is_ramp[safe_next]
        if ramping.any():
            from_time = np.where(last >= 0, times[safe_last], 0).astype(np.float64)
            to_time = times[safe_next].astype(np.float64)
            target = values[safe_next]
            span = np.maximum(to_time - from_time, 1.0)
            fraction = (positions - from_time) / span
            interpolated = result + (target - result) * fraction
            result = np.where(ramping, interpolated, result)
        return result

    def compute(self, start: int, frames: int) -> np.ndarray:
        """Effective per-frame values for the block [start, start + frames)."""
        values = self._timeline(start, frames)
        for node in self._inputs:
            values = values + mix_channels(node.pull(start, frames), 1)[0]
        return values


class AudioNode:
    """Base class for graph nodes."""

    def __init__(self, context: "BaseAudioContext"):
        self.context = context
        self._inputs: List["AudioNode"] = []
        self._outputs: List[Union["AudioNode", AudioParam]] = []
        self._cache_key: Optional[tuple] = None
        self._cache: Optional[np.ndarray] = None
        self._released = False
        context._register(self)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    @property
    def params(self) -> List[AudioParam]:
        return []

    @property
    def is_connected(self) -> bool:
        return bool(self._outputs)

    def connect(
        self, destination: Union["AudioNode", AudioParam]
    ) -> Union["AudioNode", AudioParam]:
        """Route this node's output into a node or a parameter."""
        if destination.context is not self.context:
            raise InvalidStateError("Cannot connect nodes from different contexts.")
        if self._released:
            raise InvalidStateError(f"{self!r} has been released.")
        with self.context.lock:
            destination._inputs.append(self)
            self._outputs.append(destination)
        return destination

    def disconnect(self) -> None:
        """Remove every outgoing connection. Safe to call repeatedly."""
        with self.context.lock:
            for destination in self._outputs:
                destination._inputs[:] = [
                    node for node in destination._inputs if node is not self
                ]
            self._outputs.clear()

    def release(self) -> None:
        """Disconnect the node completely and stop tracking it."""
        with self.context.lock:
            self.disconnect()
            for target in [self] + self.params:
                for node in list(target._inputs):
                    node._outputs[:] = [out for out in node._outputs if out is not target]
                target._inputs.clear()
            self._released = True
            self.context._release(self)

    def pull(self, start: int, frames: int) -> np.ndarray:
        """Output block for [start, start + frames), computed once per block."""
        key = (start, frames)
        if self._cache_key != key:
            self._cache = self._process(start, frames)
            self._cache_key = key
        return self._cache

    def _mixed_input(self, start: int, frames: int, channels: Optional[int] = None):
        if not self._inputs:
            return np.zeros((channels or 1, frames))
        blocks = [node.pull(start, frames) for node in self._inputs]
        if channels is None:
            channels = max(block.shape[0] for block in blocks)
        total = np.zeros((channels, frames))
        for block in blocks:
            total += mix_channels(block, channels)
        return total

    def _process(self, start: int, frames: int) -> np.ndarray:
        raise NotImplementedError


class GainNode(AudioNode):
    """Multiplies its input by the gain parameter."""

    def __init__(self, context: "BaseAudioContext", gain: float = 1.0):
        super().__init__(context)
        self.gain = AudioParam(context, "gain", gain)

    @property
    def params(self) -> List[AudioParam]:
        return [self.gain]

    def _process(self, start: int, frames: int) -> np.ndarray:
        signal = self._mixed_input(start, frames)
        return signal * self.gain.compute(start, frames)


class StereoPannerNode(AudioNode):
    """Equal-power stereo panner; pan -1 is full left, +1 is full right."""

    def __init__(self, context: "BaseAudioContext", pan: float = 0.0):
        super().__init__(context)
        self.pan = AudioParam(context, "pan", pan, -1.0, 1.0)

    @property
    def params(self) -> List[AudioParam]:
        return [self.pan]

    def _process(self, start: int, frames: int) -> np.ndarray:
        signal = self._mixed_input(start, frames)
        pan = np.clip(self.pan.compute(start, frames), -1.0, 1.0)

        if signal.shape[0] == 1:
            angle = (pan + 1.0) / 2.0 * (np.pi / 2.0)
            return np.vstack((signal[0] * np.cos(angle), signal[0] * np.sin(angle)))

        left, right = mix_channels(signal, 2)
        angle = np.where(pan <= 0, pan + 1.0, pan) * (np.pi / 2.0)
        gain_left, gain_right = np.cos(angle), np.sin(angle)
        out_left = np.where(pan <= 0, left + right * gain_left, left * gain_left)
        out_right = np.where(pan <= 0, right * gain_right, right + left * gain_right)
        return np.vstack((out_left, out_right))


class AudioScheduledSourceNode(AudioNode):
    """A generator that can be started once and stopped once."""

    def __init__(self, context: "BaseAudioContext"):
        super().__init__(context)
        self._start_frame: Optional[int] = None
        self._stop_frame: Optional[int] = None

    @property
    def started(self) -> bool:
        return self._start_frame is not None

    @property
    def finished(self) -> bool:
        return (
            self._stop_frame is not None
            and self._stop_frame <= self.context.current_frame
        )

    def start(self, when: float = 0.0) -> None:
        """Begin producing sound at when (seconds, clamped to now).

        Raises:
            InvalidStateError: If the node has already been started.
        """
        with self.context.lock:
            if self._start_frame is not None:
                raise InvalidStateError(f"{self!r} can only be started once.")
            self._start_frame = max(
                self.context.frame_for_time(when), self.context.current_frame
            )

    def stop(self, when: float = 0.0) -> None:
        """Stop producing sound at when (seconds, clamped to now).

        Raises:
            InvalidStateError: If the node was never started.
        """
        with self.context.lock:
            if self._start_frame is None:
                raise InvalidStateError(f"{self!r} was stopped before being started.")
            if self.finished:
                return
            self._stop_frame = max(
                self.context.frame_for_time(when), self.context.current_frame
            )

    def _active_span(self, start: int, frames: int) -> tuple:
        """Offsets [begin, end) of this block during which the node plays."""
        if self._start_frame is None:
            return 0, 0
        begin = min(max(self._start_frame - start, 0), frames)
        end = frames
        if self._stop_frame is not None:
            end = min(max(self._stop_frame - start, 0), frames)
        return begin, max(begin, end)


class OscillatorNode(AudioScheduledSourceNode):
    """Sine oscillator driven by a phase accumulator."""

    type = "sine"

    def __init__(self, context: "BaseAudioContext", frequency: float = 440.0):
        super().__init__(context)
        nyquist = context.sample_rate / 2.0
        self.frequency = AudioParam(context, "frequency", frequency, -nyquist, nyquist)
        self._phase = 0.0

    def __repr__(self) -> str:
        return f"OscillatorNode(frequency={self.frequency.default_value})"

    @property
    def params(self) -> List[AudioParam]:
        return [self.frequency]

    def _process(self, start: int, frames: int) -> np.ndarray:
        out = np.zeros((1, frames))
        begin, end = self._active_span(start, frames)
        if end <= begin:
            return out
        frequency = self.frequency.compute(start, frames)[begin:end]
        increments = TWO_PI * frequency / self.context.sample_rate
        phases = self._phase + np.concatenate(([0.0], np.cumsum(increments[:-1])))
        out[0, begin:end] = np.sin(phases)
        self._phase = float((phases[-1] + increments[-1]) % TWO_PI)
        return out


class AudioBufferSourceNode(AudioScheduledSourceNode):
    """Plays a decoded music buffer, optionally looping end to start."""

    def __init__(
        self,
        context: "BaseAudioContext",
        buffer: Optional[DecodedMusicBuffer] = None,
        loop: bool = False,
    ):
        super().__init__(context)
        self._buffer: Optional[DecodedMusicBuffer] = None
        self._data: Optional[np.ndarray] = None
        self.loop = loop
        self._position = 0
        if buffer is not None:
            self.buffer = buffer

    @property
    def buffer(self) -> Optional[DecodedMusicBuffer]:
        return self._buffer

    @buffer.setter
    def buffer(self, buffer: DecodedMusicBuffer) -> None:
        if self._buffer is not None:
            raise InvalidStateError("A buffer source's buffer can only be set once.")
        self._buffer = buffer
        self._data = buffer.resampled(self.context.sample_rate)

    def _process(self, start: int, frames: int) -> np.ndarray:
        channels = self._data.shape[0] if self._data is not None else 1
        out = np.zeros((channels, frames))
        begin, end = self._active_span(start, frames)
        if end <= begin or self._data is None or self._data.shape[1] == 0:
            return out

        length = self._data.shape[1]
        count = end - begin
        if self.loop:
            indices = (self._position + np.arange(count)) % length
            out[:, begin:end] = self._data[:, indices]
            self._position = int((self._position + count) % length)
            return out

        take = min(count, length - self._position)
        out[:, begin : begin + take] = self._data[
            :, self._position : self._position + take
        ]
        self._position += take
        if self._position >= length:
            # Played out; mark as finished at the last written frame.
            self._stop_frame = start + begin + take
        return out


class AudioDestinationNode(AudioNode):
    """Final node of a context; mixes its inputs to the context channel count."""

    def _process(self, start: int, frames: int) -> np.ndarray:
        return self._mixed_input(start, frames, self.context.channels)


class BaseAudioContext:
    """Owns a clock, a destination and every node created against it."""

    def __init__(self, sample_rate: int, channels: int):
        if sample_rate <= 0:
            raise ValueError("Sample rate must be positive.")
        if channels not in (1, 2):
            raise ValueError("Only mono and stereo contexts are supported.")
        self.sample_rate = int(sample_rate)
        self.channels = int(channels)
        self.lock = threading.RLock()
        self.state = "suspended"
        self._frames_rendered = 0
        self._nodes: Set[AudioNode] = set()
        self.destination = AudioDestinationNode(self)
        # The destination lives as long as the context and is not counted.
        self._nodes.discard(self.destination)

    @property
    def current_frame(self) -> int:
        return self._frames_rendered

    @property
    def current_time(self) -> float:
        return self._frames_rendered / self.sample_rate

    @property
    def active_node_count(self) -> int:
        """Number of created nodes that have not been released."""
        with self.lock:
            return len(self._nodes)

    def frame_for_time(self, when: float) -> int:
        if not math.isfinite(when):
            raise ValueError(f"Scheduling time must be finite, got {when}")
        return max(0, int(math.ceil(when * self.sample_rate - 1e-9)))

    def create_oscillator(self, frequency: float = 440.0) -> OscillatorNode:
        return OscillatorNode(self, frequency)

    def create_gain(self, gain: float = 1.0) -> GainNode:
        return GainNode(self, gain)

    def create_stereo_panner(self, pan: float = 0.0) -> StereoPannerNode:
        return StereoPannerNode(self, pan)

    def create_buffer_source(
        self, buffer: Optional[DecodedMusicBuffer] = None, loop: bool = False
    ) -> AudioBufferSourceNode:
        return AudioBufferSourceNode(self, buffer, loop)

    def _register(self, node: AudioNode) -> None:
        with self.lock:
            if self.state == "closed":
                raise InvalidStateError("Cannot create nodes on a closed context.")
            self._nodes.add(node)

    def _release(self, node: AudioNode) -> None:
        with self.lock:
            self._nodes.discard(node)

    def _release_all(self) -> None:
        with self.lock:
            for node in list(self._nodes):
                node.release()

    def _render_block(self, frames: int) -> np.ndarray:
        """Pull one block from the destination and advance the clock."""
        with self.lock:
            block = self.destination.pull(self._frames_rendered, frames)
            self._frames_rendered += frames
        return block


class OfflineAudioContext(BaseAudioContext):
    """Renders a fixed number of frames as fast as possible."""

    def __init__(
        self,
        channels: int,
        length: int,
        sample_rate: int,
        block_size: int = OFFLINE_BLOCK_SIZE,
    ):
        super().__init__(sample_rate, channels)
        if length < 0:
            raise ValueError("Render length cannot be negative.")
        self.length = int(length)
        self.block_size = int(block_size)

    def start_rendering(self) -> RenderedBuffer:
        """Render the whole graph; returns only once every frame is produced.

        Raises:
            InvalidStateError: If the context has already rendered.
        """
        with self.lock:
            if self.state != "suspended":
                raise InvalidStateError("An offline context can only render once.")
            self.state = "running"

        logger.debug(
            "Offline render: %d frames, %d channel(s) at %d Hz.",
            self.length,
            self.channels,
            self.sample_rate,
        )
        output = np.zeros((self.channels, self.length), dtype=np.float32)
        for offset in range(0, self.length, self.block_size):
            frames = min(self.block_size, self.length - offset)
            output[:, offset : offset + frames] = self._render_block(frames)

        with self.lock:
            self._release_all()
            self.state = "closed"
        return RenderedBuffer(samples=output, sample_rate=self.sample_rate)
