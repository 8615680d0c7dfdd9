"""Plays tones and music side by side through independent gain stages.

    tone graph -> frequencies_gain --+
                                     +--> master -> destination
    music source -> music_gain ------+

Starting, stopping or changing the volume of one side never touches the
other.
"""

import logging
from typing import Any, Mapping, Optional, Union

from aura_harmonics.audio_graph import AudioBufferSourceNode, GainNode
from aura_harmonics.constants import (
    DEFAULT_FREQUENCIES_VOLUME,
    DEFAULT_MUSIC_VOLUME,
    DEFAULT_SAMPLE_RATE,
)
from aura_harmonics.data_types import DecodedMusicBuffer, PlaybackState, ToneVariant
from aura_harmonics.live_engine import PlaybackTarget, StateListener, ToneChannel
from aura_harmonics.music import MusicPlaybackChannel
from aura_harmonics.realtime import RealtimeAudioContext, StreamFactory
from aura_harmonics.tone_graph import ToneGraph
from aura_harmonics.validation import sanitize_volume

logger = logging.getLogger(__name__)


class Mixer:
    """Combines a tone channel and a music channel on one output."""

    def __init__(
        self,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        frequencies_volume: float = DEFAULT_FREQUENCIES_VOLUME,
        music_volume: float = DEFAULT_MUSIC_VOLUME,
        master_volume: float = 1.0,
        stream_factory: Optional[StreamFactory] = None,
        device: Optional[int] = None,
        on_state_change: Optional[StateListener] = None,
    ):
        self.target = PlaybackTarget(
            "mixer",
            sample_rate=sample_rate,
            stream_factory=stream_factory,
            device=device,
            master_volume=master_volume,
        )
        self._frequencies = ToneChannel("mixer_frequencies", on_state_change)
        self.music = MusicPlaybackChannel(
            name="mixer_music",
            target=self.target,
            volume=music_volume,
            on_state_change=on_state_change,
        )
        self._frequencies_volume = sanitize_volume(
            frequencies_volume, fallback=DEFAULT_FREQUENCIES_VOLUME
        )
        self._frequencies_gain: Optional[GainNode] = None

    @property
    def frequencies_gain(self) -> Optional[GainNode]:
        return self._frequencies_gain

    @property
    def music_gain(self) -> Optional[GainNode]:
        return self.music.gain

    @property
    def frequencies_volume(self) -> float:
        return self._frequencies_volume

    @property
    def music_volume(self) -> float:
        return self.music.volume

    @property
    def master_volume(self) -> float:
        return self.target.master_volume

    @property
    def frequencies_state(self) -> PlaybackState:
        return self._frequencies.state

    @property
    def music_state(self) -> PlaybackState:
        return self.music.state

    @property
    def state(self) -> PlaybackState:
        if PlaybackState.PLAYING in (self.frequencies_state, self.music_state):
            return PlaybackState.PLAYING
        return PlaybackState.IDLE

    @property
    def tone(self) -> Optional[ToneVariant]:
        return self._frequencies.tone

    @property
    def active_node_count(self) -> int:
        context = self.target.context
        return context.active_node_count if context is not None else 0

    def play_frequencies(self, tone: ToneVariant) -> ToneGraph:
        """Replace the tone side only; music keeps playing."""
        context = self._ensure()
        return self._frequencies.start(context, self._frequencies_gain, tone)

    def update_frequencies(
        self, changes: Union[ToneVariant, Mapping[str, Any]]
    ) -> Optional[ToneVariant]:
        return self._frequencies.update(changes)

    def stop_frequencies(self) -> None:
        self._frequencies.stop()

    def play_music(
        self, buffer: Optional[DecodedMusicBuffer] = None, loop: bool = True
    ) -> AudioBufferSourceNode:
        """Replace the music side only; tones keep playing."""
        self._ensure()
        return self.music.play(buffer, loop=loop)

    def stop_music(self) -> None:
        self.music.stop()

    def stop_all(self) -> None:
        """Tear down both sides, tones first."""
        self._frequencies.stop()
        self.music.stop()

    def set_frequencies_volume(self, volume: Any) -> float:
        self._frequencies_volume = sanitize_volume(
            volume, fallback=self._frequencies_volume
        )
        gain = self._frequencies_gain
        if gain is not None and gain.context.state != "closed":
            gain.gain.set_value_at_time(
                self._frequencies_volume, gain.context.current_time
            )
        return self._frequencies_volume

    def set_music_volume(self, volume: Any) -> float:
        return self.music.set_volume(volume)

    def set_master_volume(self, volume: Any) -> float:
        return self.target.set_master_volume(volume)

    def close(self) -> None:
        self.stop_all()
        self.music.close()
        self.target.close()
        self._frequencies_gain = None

    def _ensure(self) -> RealtimeAudioContext:
        context = self.target.ensure()
        gain = self._frequencies_gain
        if gain is None or gain.context is not context:
            self._frequencies_gain = context.create_gain(self._frequencies_volume)
            self._frequencies_gain.connect(self.target.master)
            logger.debug("Mixer buses created at %d Hz.", context.sample_rate)
        return context
