"""
Seed topology for the NeuralWeb network.

Thirteen neurons with fixed positions, content and static connection lists.
Synapses are derived from the connection lists (one per unordered pair).
The random parts of the initial distribution (synapse strengths, adaptive
strengths, reset strengths) come from a numpy ``RandomState`` so a seeded
engine is reproducible.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, List

import numpy as np

from web_foundation import (
    GraphStore,
    InvariantViolation,
    Neuron,
    NeuronCategory,
    Synapse,
)

ROOT_NEURON_ID = "welcome"

# Static content, layout and starting weights of each seed neuron
SEED_NEURONS: List[Dict[str, Any]] = [
    {
        "id": "welcome", "position": (400, 300),
        "title": "Welcome to the Neural Web",
        "description": "You are now inside a digital consciousness. "
                       "Each neuron contains unique experiences and knowledge.",
        "category": NeuronCategory.PROCESSING,
        "connections": ("creativity", "memory", "logic"),
        "pulse": 1.0, "learning_rate": 0.1, "strength": 1.0,
    },
    {
        "id": "creativity", "position": (200, 150),
        "title": "Creative Cortex",
        "description": "Where imagination flows like electric dreams. "
                       "Art, music, and innovation spark here.",
        "category": NeuronCategory.CREATIVE,
        "connections": ("welcome", "emotion", "memory", "inspiration"),
        "pulse": 0.3, "learning_rate": 0.15, "strength": 0.8,
    },
    {
        "id": "memory", "position": (600, 150),
        "title": "Memory Palace",
        "description": "Vast archives of experiences, knowledge, and forgotten "
                       "dreams stored in crystalline structures.",
        "category": NeuronCategory.MEMORY,
        "connections": ("welcome", "creativity", "logic", "learning"),
        "pulse": 0.5, "learning_rate": 0.12, "strength": 0.9,
    },
    {
        "id": "logic", "position": (500, 450),
        "title": "Logic Engine",
        "description": "Pure reasoning and computational power. "
                       "Where problems dissolve into elegant solutions.",
        "category": NeuronCategory.ANALYTICAL,
        "connections": ("welcome", "memory", "emotion", "calculation"),
        "pulse": 0.4, "learning_rate": 0.08, "strength": 0.95,
    },
    {
        "id": "emotion", "position": (150, 400),
        "title": "Emotional Core",
        "description": "The heart of consciousness. "
                       "Where feelings create colors that paint all experiences.",
        "category": NeuronCategory.EMOTIONAL,
        "connections": ("creativity", "logic", "intuition", "empathy"),
        "pulse": 0.6, "learning_rate": 0.18, "strength": 0.85,
    },
    {
        "id": "intuition", "position": (700, 350),
        "title": "Intuitive Nexus",
        "description": "Beyond logic lies knowing. "
                       "Where patterns emerge from chaos and wisdom whispers.",
        "category": NeuronCategory.PROCESSING,
        "connections": ("emotion", "memory", "future", "insight"),
        "pulse": 0.7, "learning_rate": 0.14, "strength": 0.75,
    },
    {
        "id": "future", "position": (400, 100),
        "title": "Future Sight",
        "description": "Probability cascades and potential timelines. "
                       "Where tomorrow takes shape.",
        "category": NeuronCategory.ANALYTICAL,
        "connections": ("intuition", "creativity", "planning"),
        "pulse": 0.2, "learning_rate": 0.1, "strength": 0.7,
    },
    {
        "id": "inspiration", "position": (100, 200),
        "title": "Inspiration Hub",
        "description": "Where sudden insights and breakthrough moments "
                       "are born from the void.",
        "category": NeuronCategory.CREATIVE,
        "connections": ("creativity", "future"),
        "pulse": 0.4, "learning_rate": 0.2, "strength": 0.6,
    },
    {
        "id": "learning", "position": (650, 250),
        "title": "Learning Center",
        "description": "Adaptive pathways that grow stronger with each "
                       "new experience and discovery.",
        "category": NeuronCategory.MEMORY,
        "connections": ("memory", "logic"),
        "pulse": 0.5, "learning_rate": 0.25, "strength": 0.8,
    },
    {
        "id": "calculation", "position": (550, 500),
        "title": "Calculation Matrix",
        "description": "Pure mathematical processing where numbers "
                       "dance in perfect harmony.",
        "category": NeuronCategory.ANALYTICAL,
        "connections": ("logic", "planning"),
        "pulse": 0.3, "learning_rate": 0.06, "strength": 0.9,
    },
    {
        "id": "empathy", "position": (50, 350),
        "title": "Empathy Network",
        "description": "Understanding others through shared emotional "
                       "resonance and connection.",
        "category": NeuronCategory.EMOTIONAL,
        "connections": ("emotion", "insight"),
        "pulse": 0.6, "learning_rate": 0.16, "strength": 0.75,
    },
    {
        "id": "insight", "position": (750, 400),
        "title": "Insight Generator",
        "description": "Where deep understanding emerges from the synthesis "
                       "of knowledge and experience.",
        "category": NeuronCategory.PROCESSING,
        "connections": ("intuition", "empathy"),
        "pulse": 0.7, "learning_rate": 0.13, "strength": 0.8,
    },
    {
        "id": "planning", "position": (450, 550),
        "title": "Strategic Planning",
        "description": "Orchestrating complex sequences of actions "
                       "toward desired outcomes.",
        "category": NeuronCategory.ANALYTICAL,
        "connections": ("future", "calculation"),
        "pulse": 0.4, "learning_rate": 0.09, "strength": 0.85,
    },
]


def seed_neurons(now: float, root_id: str = ROOT_NEURON_ID) -> List[Neuron]:
    """Create the seed neurons; the root starts active with one activation."""
    neurons = []
    for entry in SEED_NEURONS:
        is_root = entry["id"] == root_id
        neurons.append(Neuron(
            neuron_id=entry["id"],
            title=entry["title"],
            description=entry["description"],
            category=entry["category"],
            position=entry["position"],
            base_connections=tuple(entry["connections"]),
            active=is_root,
            activation_count=1 if is_root else 0,
            strength=1.0 if is_root else entry["strength"],
            learning_rate=entry["learning_rate"],
            last_activated_at=now if is_root else 0.0,
            pulse_intensity=entry["pulse"],
        ))
    if not any(n.neuron_id == root_id for n in neurons):
        raise InvariantViolation(f"Root neuron {root_id} is not part of the seed topology")
    return neurons


def initial_synapse(
    from_id: str,
    to_id: str,
    now: float,
    rng: np.random.RandomState,
    root_id: str = ROOT_NEURON_ID,
) -> Synapse:
    """Static synapse with its initial (partly random) weights."""
    touches_root = root_id in (from_id, to_id)
    return Synapse(
        from_id=from_id,
        to_id=to_id,
        active=touches_root,
        strength=float(rng.random_sample() * 0.5 + 0.3),
        usage_count=1 if touches_root else 0,
        efficiency=0.5,
        adaptive_strength=float(rng.random_sample() * 0.3 + 0.2),
        last_used_at=now if touches_root else 0.0,
    )


def build_seed_store(
    now: float,
    rng: np.random.RandomState,
    root_id: str = ROOT_NEURON_ID,
) -> GraphStore:
    """Graph store populated with the seed topology."""
    return GraphStore.from_topology(
        seed_neurons(now, root_id),
        lambda a, b: initial_synapse(a, b, now, rng, root_id),
    )


def restore_initial_distribution(
    store: GraphStore,
    now: float,
    rng: np.random.RandomState,
    root_id: str = ROOT_NEURON_ID,
) -> None:
    """Reset adaptive fields in place, keeping ids and static topology.

    Non-root strengths are redrawn in [0.6, 0.9); adaptive connections and
    adaptive synapses are removed; patterns are cleared.  The root ends up
    active with one activation and full strength.
    """
    pulses = {entry["id"]: entry["pulse"] for entry in SEED_NEURONS}
    store.remove_adaptive_synapses()
    store.clear_patterns()

    def reset_neuron(n: Neuron) -> Neuron:
        is_root = n.neuron_id == root_id
        return replace(
            n,
            active=is_root,
            activation_count=1 if is_root else 0,
            strength=1.0 if is_root else float(rng.random_sample() * 0.3 + 0.6),
            experience_level=1,
            adaptive_connections=(),
            last_activated_at=now if is_root else 0.0,
            pulse_intensity=pulses.get(n.neuron_id, n.pulse_intensity),
        )

    def reset_synapse(s: Synapse) -> Synapse:
        touches_root = s.touches(root_id)
        return replace(
            s,
            active=touches_root,
            strength=float(rng.random_sample() * 0.5 + 0.3),
            usage_count=1 if touches_root else 0,
            efficiency=0.5,
            adaptive_strength=float(rng.random_sample() * 0.3 + 0.2),
            last_used_at=now if touches_root else 0.0,
        )

    store.update_neurons(lambda n: True, reset_neuron)
    store.update_synapses(lambda s: True, reset_synapse)
