"""
Builds the oscillator/gain/pan graph for a tone variant.

The builder is the single place where tone topology and parameter values are
decided. Live playback, the mixer and the offline renderer all call
build_tone_graph(); only the destination node and the context clock differ.

Topologies:
    Isochronic: carrier -> carrier_gain -> destination
                lfo -> lfo_gain -> carrier_gain.gain
    Binaural:   left_oscillator -> left_panner (pan -1) -> destination
                right_oscillator -> right_panner (pan +1) -> destination
    Monaural:   oscillator_one -> destination
                oscillator_two -> destination
"""

import logging
from typing import Dict, List, Optional, Tuple

from aura_harmonics.audio_graph import (
    AudioNode,
    AudioParam,
    BaseAudioContext,
    OscillatorNode,
)
from aura_harmonics.constants import PAN_LEFT, PAN_RIGHT
from aura_harmonics.data_types import (
    BinauralTone,
    IsochronicTone,
    MonauralTone,
    ToneVariant,
)
from aura_harmonics.validation import sanitize_tone

logger = logging.getLogger(__name__)

ParamKey = Tuple[str, str]


def parameter_plan(tone: ToneVariant) -> Dict[ParamKey, float]:
    """Every scheduled parameter of a tone graph, keyed by (node, param)."""
    if isinstance(tone, IsochronicTone):
        return {
            ("carrier", "frequency"): tone.carrier_frequency,
            ("carrier_gain", "gain"): tone.baseline_gain,
            ("lfo", "frequency"): tone.pulse_frequency,
            ("lfo_gain", "gain"): tone.lfo_gain,
        }
    if isinstance(tone, BinauralTone):
        return {
            ("left_oscillator", "frequency"): tone.left_frequency,
            ("left_panner", "pan"): PAN_LEFT,
            ("right_oscillator", "frequency"): tone.right_frequency,
            ("right_panner", "pan"): PAN_RIGHT,
        }
    if isinstance(tone, MonauralTone):
        return {
            ("oscillator_one", "frequency"): tone.frequency_one,
            ("oscillator_two", "frequency"): tone.frequency_two,
        }
    raise TypeError(f"Unsupported tone variant: {type(tone).__name__}")


def _create_nodes(
    context: BaseAudioContext, tone: ToneVariant, destination: AudioNode
) -> Dict[str, AudioNode]:
    if isinstance(tone, IsochronicTone):
        nodes = {
            "carrier": context.create_oscillator(),
            "carrier_gain": context.create_gain(),
            "lfo": context.create_oscillator(),
            "lfo_gain": context.create_gain(),
        }
        nodes["carrier"].connect(nodes["carrier_gain"])
        nodes["carrier_gain"].connect(destination)
        # The LFO drives the carrier's own gain parameter.
        nodes["lfo"].connect(nodes["lfo_gain"])
        nodes["lfo_gain"].connect(nodes["carrier_gain"].gain)
        return nodes

    if isinstance(tone, BinauralTone):
        nodes = {
            "left_oscillator": context.create_oscillator(),
            "left_panner": context.create_stereo_panner(),
            "right_oscillator": context.create_oscillator(),
            "right_panner": context.create_stereo_panner(),
        }
        nodes["left_oscillator"].connect(nodes["left_panner"]).connect(destination)
        nodes["right_oscillator"].connect(nodes["right_panner"]).connect(destination)
        return nodes

    if isinstance(tone, MonauralTone):
        nodes = {
            "oscillator_one": context.create_oscillator(),
            "oscillator_two": context.create_oscillator(),
        }
        nodes["oscillator_one"].connect(destination)
        nodes["oscillator_two"].connect(destination)
        return nodes

    raise TypeError(f"Unsupported tone variant: {type(tone).__name__}")


class ToneGraph:
    """Owns every node built for one tone session.

    A graph is started once and torn down once; teardown stops every
    generator and disconnects and releases every node, after which the graph
    cannot be restarted.
    """

    def __init__(
        self,
        context: BaseAudioContext,
        tone: ToneVariant,
        destination: AudioNode,
        nodes: Dict[str, AudioNode],
    ):
        self.context = context
        self.tone = tone
        self.destination = destination
        self.nodes = nodes
        self._applied: Dict[ParamKey, float] = {}
        self._torn_down = False

    def __repr__(self) -> str:
        return f"ToneGraph({self.tone!r}, nodes={sorted(self.nodes)})"

    @property
    def generators(self) -> List[OscillatorNode]:
        return [node for node in self.nodes.values() if isinstance(node, OscillatorNode)]

    @property
    def is_torn_down(self) -> bool:
        return self._torn_down

    @property
    def active_node_count(self) -> int:
        return 0 if self._torn_down else len(self.nodes)

    def param(self, key: ParamKey) -> AudioParam:
        node_name, param_name = key
        return getattr(self.nodes[node_name], param_name)

    def apply(self, tone: ToneVariant, when: Optional[float] = None) -> List[ParamKey]:
        """Schedule the parameters of tone that differ from what is applied.

        Returns the keys of the parameters that were rescheduled.
        """
        if type(tone) is not type(self.tone):
            raise TypeError(
                f"Cannot apply {tone.tone_type.value} parameters to a "
                f"{self.tone.tone_type.value} graph."
            )
        tone = sanitize_tone(tone, previous=self.tone)
        when = self.context.current_time if when is None else when
        changed = []
        with self.context.lock:
            for key, value in parameter_plan(tone).items():
                if self._applied.get(key) == value:
                    continue
                self.param(key).set_value_at_time(value, when)
                self._applied[key] = value
                changed.append(key)
        self.tone = tone
        if changed:
            logger.debug("Rescheduled %s at %.4fs.", changed, when)
        return changed

    def start(self, when: Optional[float] = None) -> None:
        """Start every generator at the same instant."""
        when = self.context.current_time if when is None else when
        with self.context.lock:
            for generator in self.generators:
                generator.start(when)

    def stop(self, when: Optional[float] = None) -> None:
        """Stop every started generator at when (default: now)."""
        when = self.context.current_time if when is None else when
        with self.context.lock:
            for generator in self.generators:
                if generator.started:
                    generator.stop(when)

    def teardown(self) -> None:
        """Stop and release every node. Safe to call more than once."""
        with self.context.lock:
            if self._torn_down:
                return
            self.stop()
            for node in self.nodes.values():
                node.release()
            self._torn_down = True
        logger.debug("Tore down %s graph.", self.tone.tone_type.value)


def build_tone_graph(
    context: BaseAudioContext,
    tone: ToneVariant,
    destination: AudioNode,
    when: Optional[float] = None,
) -> ToneGraph:
    """Create, wire and schedule the nodes for tone, ending at destination.

    Generators are not started; call ToneGraph.start().
    """
    tone = sanitize_tone(tone)
    with context.lock:
        nodes = _create_nodes(context, tone, destination)
        graph = ToneGraph(context, tone, destination, nodes)
        graph.apply(tone, when)
    logger.debug("Built %s graph: %s", tone.tone_type.value, tone)
    return graph
