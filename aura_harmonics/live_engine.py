"""Live audition of tone graphs on the real-time output."""

import logging
from typing import Any, Callable, Mapping, Optional, Union

from aura_harmonics.audio_graph import AudioNode, BaseAudioContext, GainNode
from aura_harmonics.constants import DEFAULT_SAMPLE_RATE, DEFAULT_VOLUME
from aura_harmonics.data_types import PlaybackState, ToneVariant
from aura_harmonics.realtime import RealtimeAudioContext, StreamFactory
from aura_harmonics.tone_graph import ToneGraph, build_tone_graph
from aura_harmonics.validation import merge_tone, sanitize_tone, sanitize_volume

logger = logging.getLogger(__name__)

StateListener = Callable[[str, PlaybackState], None]


class PlaybackTarget:
    """A lazily created real-time context and master gain for one output path.

    The context is created on first use, resumed whenever it is suspended,
    recreated if it was closed, and closed explicitly by close().
    """

    def __init__(
        self,
        name: str,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        stream_factory: Optional[StreamFactory] = None,
        device: Optional[int] = None,
        master_volume: float = 1.0,
    ):
        self.name = name
        self.sample_rate = sample_rate
        self._stream_factory = stream_factory
        self._device = device
        self._context: Optional[RealtimeAudioContext] = None
        self._master: Optional[GainNode] = None
        self._master_volume = sanitize_volume(master_volume, fallback=1.0)

    @property
    def context(self) -> Optional[RealtimeAudioContext]:
        return self._context

    @property
    def master(self) -> Optional[GainNode]:
        return self._master

    @property
    def master_volume(self) -> float:
        return self._master_volume

    def ensure(self) -> RealtimeAudioContext:
        """Return a running context, creating or resuming it as needed.

        Raises:
            EngineUnavailableError: If the audio output cannot be opened.
        """
        if self._context is None or self._context.state == "closed":
            context = RealtimeAudioContext(
                sample_rate=self.sample_rate,
                device=self._device,
                stream_factory=self._stream_factory,
            )
            master = context.create_gain(self._master_volume)
            master.connect(context.destination)
            self._context, self._master = context, master
            logger.debug("Created real-time context for '%s'.", self.name)
        if self._context.state == "suspended":
            self._context.resume()
        return self._context

    def set_master_volume(self, volume: Any) -> float:
        self._master_volume = sanitize_volume(volume, fallback=self._master_volume)
        if self._context is not None and self._context.state != "closed":
            self._master.gain.set_value_at_time(
                self._master_volume, self._context.current_time
            )
        return self._master_volume

    def close(self) -> None:
        if self._context is not None:
            self._context.close()
            logger.debug("Closed real-time context for '%s'.", self.name)
        self._context = None
        self._master = None


class ToneChannel:
    """Holds at most one tone session feeding a destination node."""

    def __init__(self, name: str, on_state_change: Optional[StateListener] = None):
        self.name = name
        self._on_state_change = on_state_change
        self._graph: Optional[ToneGraph] = None
        self._state = PlaybackState.IDLE

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def graph(self) -> Optional[ToneGraph]:
        return self._graph

    @property
    def tone(self) -> Optional[ToneVariant]:
        return self._graph.tone if self._graph is not None else None

    @property
    def active_node_count(self) -> int:
        return self._graph.active_node_count if self._graph is not None else 0

    def start(
        self, context: BaseAudioContext, destination: AudioNode, tone: ToneVariant
    ) -> ToneGraph:
        """Tear down any current session, then build and start a new one."""
        with context.lock:
            self._teardown()
            graph = build_tone_graph(context, tone, destination)
            graph.start()
            self._graph = graph
        logger.info("[%s] Playing %s.", self.name, graph.tone)
        self._set_state(PlaybackState.PLAYING)
        return graph

    def update(
        self, changes: Union[ToneVariant, Mapping[str, Any]]
    ) -> Optional[ToneVariant]:
        """Reschedule the changed parameters of the running session.

        A different tone variant rebuilds the graph on the same destination.
        Returns the tone now playing, or None when idle.
        """
        graph = self._graph
        if graph is None:
            logger.debug("[%s] Ignoring parameter update while idle.", self.name)
            return None

        if isinstance(changes, Mapping):
            tone = merge_tone(graph.tone, changes)
        else:
            tone = sanitize_tone(changes, previous=graph.tone)

        if type(tone) is not type(graph.tone):
            logger.info(
                "[%s] Switching %s -> %s.",
                self.name,
                graph.tone.tone_type.value,
                tone.tone_type.value,
            )
            return self.start(graph.context, graph.destination, tone).tone

        graph.apply(tone)
        return graph.tone

    def stop(self) -> None:
        """Stop the session. A no-op when already idle."""
        if self._graph is None:
            return
        self._teardown()
        logger.info("[%s] Stopped.", self.name)
        self._set_state(PlaybackState.IDLE)

    def _teardown(self) -> None:
        if self._graph is not None:
            self._graph.teardown()
            self._graph = None

    def _set_state(self, state: PlaybackState) -> None:
        if state is self._state:
            return
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(self.name, state)


class LivePlaybackEngine:
    """Auditions one tone at a time through a master volume."""

    def __init__(
        self,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        volume: float = DEFAULT_VOLUME,
        stream_factory: Optional[StreamFactory] = None,
        device: Optional[int] = None,
        on_state_change: Optional[StateListener] = None,
        name: str = "frequencies",
    ):
        self.target = PlaybackTarget(
            name,
            sample_rate=sample_rate,
            stream_factory=stream_factory,
            device=device,
            master_volume=volume,
        )
        self._channel = ToneChannel(name, on_state_change)

    @property
    def state(self) -> PlaybackState:
        return self._channel.state

    @property
    def is_playing(self) -> bool:
        return self._channel.state is PlaybackState.PLAYING

    @property
    def tone(self) -> Optional[ToneVariant]:
        return self._channel.tone

    @property
    def graph(self) -> Optional[ToneGraph]:
        return self._channel.graph

    @property
    def volume(self) -> float:
        return self.target.master_volume

    @property
    def active_node_count(self) -> int:
        """Nodes alive in the real-time context, master gain included."""
        context = self.target.context
        return context.active_node_count if context is not None else 0

    def start(self, tone: ToneVariant) -> ToneGraph:
        """Replace whatever is playing with tone.

        Raises:
            EngineUnavailableError: If the audio output cannot be opened.
        """
        context = self.target.ensure()
        self.target.set_master_volume(self.target.master_volume)
        return self._channel.start(context, self.target.master, tone)

    def update_live_parameters(
        self, changes: Union[ToneVariant, Mapping[str, Any]]
    ) -> Optional[ToneVariant]:
        return self._channel.update(changes)

    def stop(self) -> None:
        self._channel.stop()

    def set_global_volume(self, volume: Any) -> float:
        return self.target.set_master_volume(volume)

    def close(self) -> None:
        self.stop()
        self.target.close()
