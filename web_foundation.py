"""
NeuralWeb Foundation - Graph store for the adaptive associative network.

Holds the neurons, synapses and learning patterns that the activation state
machine and the learning rules read and mutate.  All entities are frozen
dataclasses; every mutation goes through replace-on-match bulk updates so a
rule always computes new values from a consistent pre-update view.

Design principles:
    - Sparse by default: dict/set topology with an incidence index
    - Static seed topology is fixed at construction; only the topology grower
      adds synapses at runtime
    - Structural problems (duplicate ids, duplicate pairs, dangling static
      connections) are fatal at construction time
    - Lookups of unknown ids are recoverable and never crash the engine
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import (
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Set,
    Tuple,
)

logger = logging.getLogger("neuralweb.foundation")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class NeuralWebError(Exception):
    """Base class for all NeuralWeb errors."""


class InvariantViolation(NeuralWebError, ValueError):
    """The graph is structurally invalid (duplicate id/pair, dangling link)."""


class UnknownEntity(NeuralWebError, KeyError):
    """An id does not resolve to a neuron or synapse in the store."""


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class NeuronCategory(Enum):
    """Closed set of neuron categories.

    The value is the wire name used by exports and reports.
    """
    MEMORY = "memory"
    PROCESSING = "processing"
    CREATIVE = "creative"
    ANALYTICAL = "analytical"
    EMOTIONAL = "emotional"


class ActivationPhase(Enum):
    """Activation state machine phase."""
    IDLE = auto()
    TRANSITIONING = auto()


# ---------------------------------------------------------------------------
# Core Data Structures
# ---------------------------------------------------------------------------

PairKey = Tuple[str, str]


def pair_key(a: str, b: str) -> PairKey:
    """Order-independent key for the synapse between ``a`` and ``b``."""
    return (a, b) if a <= b else (b, a)


def experience_for(activation_count: int, step: int = 5) -> int:
    """Experience level derived from an activation count."""
    return 1 + activation_count // step


@dataclass(frozen=True)
class Neuron:
    """Node of the associative graph.

    Attributes:
        neuron_id: Unique, stable identifier.
        title: Display title, used for pattern names and reports.
        description: Display description.
        category: One of the five ``NeuronCategory`` members.
        position: Static 2D layout coordinate, passed through unchanged.
        base_connections: Static neighbour ids fixed at creation.
        adaptive_connections: Neighbour ids added by the topology grower.
        active: True for at most one neuron once an activation settles.
        activation_count: Number of completed activations of this neuron.
        strength: Reinforced on activation, decays when idle; [0.3, 1.0].
        learning_rate: Scales reinforcement magnitude; (0, 1].
        last_activated_at: Timestamp (ms) of the latest activation, 0 if never.
        experience_level: ``1 + activation_count // 5``.
        pulse_intensity: Display-only glow intensity; [0.1, 1.0].
    """

    neuron_id: str
    title: str = ""
    description: str = ""
    category: NeuronCategory = NeuronCategory.PROCESSING
    position: Tuple[float, float] = (0.0, 0.0)
    base_connections: Tuple[str, ...] = ()
    adaptive_connections: Tuple[str, ...] = ()
    active: bool = False
    activation_count: int = 0
    strength: float = 0.5
    learning_rate: float = 0.1
    last_activated_at: float = 0.0
    experience_level: int = 1
    pulse_intensity: float = 0.3

    def is_connected_to(self, other_id: str) -> bool:
        return other_id in self.base_connections or other_id in self.adaptive_connections


@dataclass(frozen=True)
class Synapse:
    """Undirected edge between two neurons carrying adaptive weights.

    ``from_id``/``to_id`` keep the orientation the synapse was created with,
    but identity is the unordered pair (see ``key``).

    Attributes:
        from_id: Endpoint the synapse was created from.
        to_id: Other endpoint.
        active: True iff incident to the currently active neuron.
        strength: Reinforced on use; [0, 1].
        usage_count: Incremented each time an endpoint is activated.
        efficiency: Reinforced on use, decays when stale; [0.1, 1.0].
        adaptive_strength: Reinforced on use, decays when stale; [0.1, 1.0].
        last_used_at: Timestamp (ms) of the latest reinforcement, 0 if never.
    """

    from_id: str
    to_id: str
    active: bool = False
    strength: float = 0.3
    usage_count: int = 0
    efficiency: float = 0.5
    adaptive_strength: float = 0.2
    last_used_at: float = 0.0

    @property
    def key(self) -> PairKey:
        return pair_key(self.from_id, self.to_id)

    def touches(self, neuron_id: str) -> bool:
        return self.from_id == neuron_id or self.to_id == neuron_id


@dataclass(frozen=True)
class LearningPattern:
    """Evidence for a recurring ordered transition ``from -> to``.

    Attributes:
        pattern_id: ``"<from>-<to>"``.
        participants: The two neuron ids, in transition order.
        name: ``"<from title> → <to title>"``.
        description: Human-readable description built from the categories.
        strength: Starts at 0.3, grows by 0.1 per repetition, capped at 1.0.
        discovered_at: Timestamp (ms) of first discovery; never changes.
    """

    pattern_id: str
    participants: Tuple[str, str]
    name: str = ""
    description: str = ""
    strength: float = 0.3
    discovered_at: float = 0.0


def pattern_id_for(from_id: str, to_id: str) -> str:
    return f"{from_id}-{to_id}"


# ---------------------------------------------------------------------------
# Graph Store
# ---------------------------------------------------------------------------

class GraphStore:
    """Container for neurons, synapses and learning patterns.

    Iteration order is insertion order for every collection; the topology
    grower relies on it.  Synapses are indexed by unordered pair and by
    incident neuron.
    """

    def __init__(self) -> None:
        self.neurons: Dict[str, Neuron] = {}
        self.synapses: Dict[PairKey, Synapse] = {}
        self.patterns: Dict[str, LearningPattern] = {}

        # neuron_id -> pair keys of incident synapses
        self._incident: Dict[str, Set[PairKey]] = {}
        # pairs that belong to the static seed topology
        self._static_pairs: Set[PairKey] = set()

    # -----------------------------------------------------------------------
    # Construction
    # -----------------------------------------------------------------------

    @classmethod
    def from_topology(
        cls,
        neurons: Iterable[Neuron],
        synapse_factory: Callable[[str, str], Synapse],
    ) -> "GraphStore":
        """Build a store from neurons and their static connection lists.

        Each neuron's ``base_connections`` produce one synapse per unordered
        pair (first occurrence wins the orientation).  Fails fast if any
        static connection names an unknown neuron.

        Args:
            neurons: Seed neurons in layout order.
            synapse_factory: Called as ``factory(from_id, to_id)`` for every
                new static pair.

        Raises:
            InvariantViolation: On duplicate ids, self-loops or dangling
                static connections.
        """
        store = cls()
        neuron_list = list(neurons)
        for neuron in neuron_list:
            store.add_neuron(neuron)

        for neuron in neuron_list:
            for other_id in neuron.base_connections:
                if other_id not in store.neurons:
                    raise InvariantViolation(
                        f"Static connection {neuron.neuron_id} -> {other_id} "
                        f"points to an unknown neuron"
                    )

        for neuron in neuron_list:
            for other_id in neuron.base_connections:
                if store.has_synapse(neuron.neuron_id, other_id):
                    continue
                store.add_synapse(synapse_factory(neuron.neuron_id, other_id), static=True)

        logger.debug(
            "Built graph store: %d neurons, %d synapses",
            len(store.neurons), len(store.synapses),
        )
        return store

    def add_neuron(self, neuron: Neuron) -> Neuron:
        if neuron.neuron_id in self.neurons:
            raise InvariantViolation(f"Neuron {neuron.neuron_id} already exists")
        self.neurons[neuron.neuron_id] = neuron
        self._incident[neuron.neuron_id] = set()
        return neuron

    def add_synapse(self, synapse: Synapse, static: bool = False) -> Synapse:
        """Register a synapse.

        Raises:
            InvariantViolation: Self-loop, unknown endpoint, or the pair
                already has a synapse in either direction.
        """
        if synapse.from_id == synapse.to_id:
            raise InvariantViolation(f"Self-connection on {synapse.from_id} not allowed")
        for endpoint in (synapse.from_id, synapse.to_id):
            if endpoint not in self.neurons:
                raise InvariantViolation(f"Synapse endpoint {endpoint} not found")
        key = synapse.key
        if key in self.synapses:
            raise InvariantViolation(
                f"Synapse between {synapse.from_id} and {synapse.to_id} already exists"
            )
        self.synapses[key] = synapse
        self._incident[synapse.from_id].add(key)
        self._incident[synapse.to_id].add(key)
        if static:
            self._static_pairs.add(key)
        return synapse

    def remove_synapse(self, a: str, b: str) -> None:
        key = pair_key(a, b)
        syn = self.synapses.pop(key, None)
        if syn is None:
            raise UnknownEntity(f"No synapse between {a} and {b}")
        self._incident.get(syn.from_id, set()).discard(key)
        self._incident.get(syn.to_id, set()).discard(key)
        self._static_pairs.discard(key)

    def remove_adaptive_synapses(self) -> int:
        """Drop every synapse that is not part of the static topology."""
        adaptive = [key for key in self.synapses if key not in self._static_pairs]
        for a, b in adaptive:
            self.remove_synapse(a, b)
        return len(adaptive)

    # -----------------------------------------------------------------------
    # Lookup
    # -----------------------------------------------------------------------

    def has_neuron(self, neuron_id: str) -> bool:
        return neuron_id in self.neurons

    def has_synapse(self, a: str, b: str) -> bool:
        return pair_key(a, b) in self.synapses

    def get_neuron(self, neuron_id: str) -> Neuron:
        neuron = self.neurons.get(neuron_id)
        if neuron is None:
            raise UnknownEntity(f"Neuron {neuron_id} not found")
        return neuron

    def find_neuron(self, neuron_id: str) -> Optional[Neuron]:
        return self.neurons.get(neuron_id)

    def get_synapse(self, a: str, b: str) -> Synapse:
        syn = self.synapses.get(pair_key(a, b))
        if syn is None:
            raise UnknownEntity(f"No synapse between {a} and {b}")
        return syn

    def find_synapse(self, a: str, b: str) -> Optional[Synapse]:
        return self.synapses.get(pair_key(a, b))

    def incident_synapses(self, neuron_id: str) -> List[Synapse]:
        """Synapses touching ``neuron_id``, in store order."""
        keys = self._incident.get(neuron_id, set())
        return [syn for key, syn in self.synapses.items() if key in keys]

    def is_adaptive(self, synapse: Synapse) -> bool:
        """True iff the synapse was grown at runtime rather than seeded."""
        return synapse.key not in self._static_pairs

    def active_neuron_ids(self) -> List[str]:
        return [nid for nid, n in self.neurons.items() if n.active]

    def iter_neurons(self) -> Iterator[Neuron]:
        return iter(list(self.neurons.values()))

    def iter_synapses(self) -> Iterator[Synapse]:
        return iter(list(self.synapses.values()))

    # -----------------------------------------------------------------------
    # Replace-on-match updates
    # -----------------------------------------------------------------------

    def update_neurons(
        self,
        predicate: Callable[[Neuron], bool],
        update: Callable[[Neuron], Neuron],
    ) -> int:
        """Replace every neuron matching ``predicate`` with ``update(neuron)``.

        Returns:
            Number of neurons replaced.
        """
        count = 0
        for nid, neuron in list(self.neurons.items()):
            if not predicate(neuron):
                continue
            new = update(neuron)
            if new.neuron_id != nid:
                raise InvariantViolation(f"Update changed neuron id {nid} -> {new.neuron_id}")
            self.neurons[nid] = new
            count += 1
        return count

    def update_synapses(
        self,
        predicate: Callable[[Synapse], bool],
        update: Callable[[Synapse], Synapse],
    ) -> int:
        """Replace every synapse matching ``predicate`` with ``update(synapse)``."""
        count = 0
        for key, syn in list(self.synapses.items()):
            if not predicate(syn):
                continue
            new = update(syn)
            if new.key != key:
                raise InvariantViolation(f"Update changed synapse pair {key} -> {new.key}")
            self.synapses[key] = new
            count += 1
        return count

    def replace_neuron(self, neuron: Neuron) -> None:
        if neuron.neuron_id not in self.neurons:
            raise UnknownEntity(f"Neuron {neuron.neuron_id} not found")
        self.neurons[neuron.neuron_id] = neuron

    def set_active(self, neuron_id: Optional[str]) -> None:
        """Mark ``neuron_id`` and its incident synapses active, all else inactive.

        ``None`` clears every flag.
        """
        self.update_neurons(
            lambda n: n.active != (n.neuron_id == neuron_id),
            lambda n: replace(n, active=n.neuron_id == neuron_id),
        )
        self.update_synapses(
            lambda s: s.active != (neuron_id is not None and s.touches(neuron_id)),
            lambda s: replace(s, active=neuron_id is not None and s.touches(neuron_id)),
        )

    # -----------------------------------------------------------------------
    # Patterns
    # -----------------------------------------------------------------------

    def put_pattern(self, pattern: LearningPattern) -> None:
        self.patterns[pattern.pattern_id] = pattern

    def clear_patterns(self) -> None:
        self.patterns.clear()

    def __repr__(self) -> str:
        return (
            f"GraphStore(neurons={len(self.neurons)}, synapses={len(self.synapses)}, "
            f"patterns={len(self.patterns)})"
        )
