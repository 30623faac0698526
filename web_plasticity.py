"""
NeuralWeb Plasticity - Pluggable learning rules run after each activation.

Three rules run in order once an activation settles:

    1. ``ReinforcementRule``  strengthens the activated neuron and its
       synapses, decays idle neurons and stale synapses.
    2. ``PatternDiscovery``   counts ordered ``previous -> activated``
       transitions as learning patterns.
    3. ``TopologyGrower``     sprouts adaptive synapses between neurons whose
       recent activations coincide.

Each rule receives the shared ``GraphStore`` and an ``ActivationEvent`` and
returns a list of ``(event_type, kwargs)`` outcomes for the engine to emit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

from web_config import LearningConfig, PatternConfig, TopologyConfig
from web_foundation import (
    GraphStore,
    LearningPattern,
    Neuron,
    Synapse,
    experience_for,
    pattern_id_for,
)

logger = logging.getLogger("neuralweb.plasticity")

Outcome = Tuple[str, Dict[str, Any]]


@dataclass(frozen=True)
class ActivationEvent:
    """A settled activation handed to the learning rules.

    Attributes:
        activated_id: Neuron that just became active.
        previous_id: Neuron active before the transition, if any.
        now: Timestamp (ms) at which the activation settled.
    """

    activated_id: str
    previous_id: Optional[str]
    now: float


class LearningRule:
    """Base class for pluggable learning rules.

    Subclass and override ``apply`` to create custom rules.
    """

    def apply(self, store: GraphStore, event: ActivationEvent) -> List[Outcome]:
        raise NotImplementedError


class ReinforcementRule(LearningRule):
    """Activation reinforcement with idle decay.

    Activated neuron:
        activation_count += 1, experience recomputed,
        strength += learning_rate × reinforcement_factor (≤ 1.0),
        pulse_intensity += pulse_boost (≤ 1.0), last_activated_at = now.
    Other neurons idle longer than ``neuron_idle_ms``:
        strength −= decay (≥ floor), pulse_intensity −= decay (≥ floor).
    Incident synapses:
        usage_count += 1, efficiency/adaptive_strength/strength boosted
        (≤ 1.0), last_used_at = now.
    Other synapses unused for longer than ``synapse_stale_ms``:
        efficiency and adaptive_strength decay (≥ synapse_floor).

    Every entity is replaced at most once per call, and each replacement is
    computed from that entity's pre-update state.
    """

    def __init__(self, config: Optional[LearningConfig] = None):
        self.config = config or LearningConfig()

    def apply(self, store: GraphStore, event: ActivationEvent) -> List[Outcome]:
        cfg = self.config
        now = event.now
        target = event.activated_id

        def reinforce_neuron(n: Neuron) -> Neuron:
            count = n.activation_count + 1
            return replace(
                n,
                activation_count=count,
                experience_level=experience_for(count, cfg.experience_step),
                strength=min(1.0, n.strength + n.learning_rate * cfg.reinforcement_factor),
                last_activated_at=now,
                pulse_intensity=min(1.0, n.pulse_intensity + cfg.pulse_boost),
            )

        def decay_neuron(n: Neuron) -> Neuron:
            return replace(
                n,
                strength=max(cfg.neuron_strength_floor, n.strength - cfg.neuron_strength_decay),
                pulse_intensity=max(cfg.pulse_floor, n.pulse_intensity - cfg.pulse_decay),
            )

        def reinforce_synapse(s: Synapse) -> Synapse:
            return replace(
                s,
                usage_count=s.usage_count + 1,
                efficiency=min(1.0, s.efficiency + cfg.synapse_efficiency_boost),
                adaptive_strength=min(1.0, s.adaptive_strength + cfg.synapse_adaptive_boost),
                strength=min(1.0, s.strength + cfg.synapse_strength_boost),
                last_used_at=now,
            )

        def decay_synapse(s: Synapse) -> Synapse:
            return replace(
                s,
                efficiency=max(cfg.synapse_floor, s.efficiency - cfg.synapse_efficiency_decay),
                adaptive_strength=max(
                    cfg.synapse_floor, s.adaptive_strength - cfg.synapse_adaptive_decay
                ),
            )

        store.update_neurons(lambda n: n.neuron_id == target, reinforce_neuron)
        decayed = store.update_neurons(
            lambda n: n.neuron_id != target and now - n.last_activated_at > cfg.neuron_idle_ms,
            decay_neuron,
        )
        used = store.update_synapses(lambda s: s.touches(target), reinforce_synapse)
        stale = store.update_synapses(
            lambda s: not s.touches(target) and now - s.last_used_at > cfg.synapse_stale_ms,
            decay_synapse,
        )
        logger.debug(
            "Reinforced %s: %d synapses used, %d neurons decayed, %d synapses decayed",
            target, used, decayed, stale,
        )
        return []


class PatternDiscovery(LearningRule):
    """Frequency counter over ordered transitions.

    ``A -> B`` and ``B -> A`` are distinct patterns.  A repeated transition
    strengthens the existing pattern by ``increment`` (capped at 1.0); a new
    one is recorded at ``initial_strength``.
    """

    def __init__(self, config: Optional[PatternConfig] = None):
        self.config = config or PatternConfig()

    def observe(
        self, store: GraphStore, from_id: str, to_id: str, now: float
    ) -> List[Outcome]:
        """Record one ``from_id -> to_id`` transition."""
        pid = pattern_id_for(from_id, to_id)
        existing = store.patterns.get(pid)
        if existing is not None:
            strengthened = replace(
                existing, strength=min(1.0, existing.strength + self.config.increment)
            )
            store.put_pattern(strengthened)
            logger.debug("Pattern %s strengthened to %.2f", pid, strengthened.strength)
            return [("pattern_reinforced", {"pattern": strengthened})]

        source = store.find_neuron(from_id)
        dest = store.find_neuron(to_id)
        if source is None or dest is None:
            logger.debug("Pattern %s skipped: unknown neuron", pid)
            return []

        pattern = LearningPattern(
            pattern_id=pid,
            participants=(from_id, to_id),
            name=f"{source.title} → {dest.title}",
            description=(
                f"Learned pathway between {source.category.value} "
                f"and {dest.category.value} processing"
            ),
            strength=self.config.initial_strength,
            discovered_at=now,
        )
        store.put_pattern(pattern)
        logger.info("Discovered pattern %s (%s)", pid, pattern.name)
        return [("pattern_discovered", {"pattern": pattern})]

    def apply(self, store: GraphStore, event: ActivationEvent) -> List[Outcome]:
        if event.previous_id is None or event.previous_id == event.activated_id:
            return []
        return self.observe(store, event.previous_id, event.activated_id, event.now)


class TopologyGrower(LearningRule):
    """Sprout adaptive synapses between co-activated neurons.

    Once a neuron has at least ``min_activations`` activations, every other
    neuron with at least as many whose last activation lies within
    ``co_activation_window_ms`` is a candidate.  Candidates are taken greedily
    in store order until the neuron holds ``max_adaptive_connections``
    adaptive connections; later candidates are starved.  A candidate already
    linked by a base or adaptive connection, or by a synapse in either
    direction, is skipped.
    """

    def __init__(self, config: Optional[TopologyConfig] = None):
        self.config = config or TopologyConfig()

    def candidates(self, store: GraphStore, neuron: Neuron) -> List[Neuron]:
        cfg = self.config
        return [
            other for other in store.iter_neurons()
            if other.neuron_id != neuron.neuron_id
            and other.activation_count >= cfg.min_activations
            and abs(other.last_activated_at - neuron.last_activated_at)
            < cfg.co_activation_window_ms
        ]

    def grow(self, store: GraphStore, neuron_id: str) -> List[Synapse]:
        """Sprout adaptive synapses from ``neuron_id``.

        Returns:
            The synapses created, in creation order.
        """
        cfg = self.config
        neuron = store.find_neuron(neuron_id)
        if neuron is None or neuron.activation_count < cfg.min_activations:
            return []

        adaptive = list(neuron.adaptive_connections)
        sprouted: List[Synapse] = []
        for other in self.candidates(store, neuron):
            if len(adaptive) >= cfg.max_adaptive_connections:
                break
            if neuron.is_connected_to(other.neuron_id) or other.neuron_id in adaptive:
                continue
            if store.has_synapse(neuron_id, other.neuron_id):
                continue
            syn = store.add_synapse(Synapse(
                from_id=neuron_id,
                to_id=other.neuron_id,
                active=False,
                strength=cfg.synapse_strength,
                usage_count=0,
                efficiency=cfg.synapse_efficiency,
                adaptive_strength=cfg.synapse_adaptive_strength,
                last_used_at=0.0,
            ))
            adaptive.append(other.neuron_id)
            sprouted.append(syn)

        if sprouted:
            store.replace_neuron(replace(neuron, adaptive_connections=tuple(adaptive)))
            logger.info(
                "Sprouted %d adaptive synapse(s) from %s: %s",
                len(sprouted), neuron_id, ", ".join(s.to_id for s in sprouted),
            )
        return sprouted

    def apply(self, store: GraphStore, event: ActivationEvent) -> List[Outcome]:
        return [
            ("synapse_sprouted", {"synapse": syn})
            for syn in self.grow(store, event.activated_id)
        ]


def default_rules(
    learning: Optional[LearningConfig] = None,
    pattern: Optional[PatternConfig] = None,
    topology: Optional[TopologyConfig] = None,
) -> List[LearningRule]:
    """The standard rule pipeline, in execution order."""
    return [
        ReinforcementRule(learning),
        PatternDiscovery(pattern),
        TopologyGrower(topology),
    ]
