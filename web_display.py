"""
Display helpers for hosts that render a NeuralWeb network.

None of this is called by the engine.  The category accents implement the
adaptive theme (the dominant category picks the palette) and the pulse
oscillator drives the decorative glow from a host-owned animation clock.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Dict, Tuple

from web_foundation import GraphStore, Neuron, NeuronCategory

TWO_PI = math.pi * 2


@dataclass(frozen=True)
class Accent:
    primary: str
    secondary: str
    particle: str
    rgb: Tuple[int, int, int]


CATEGORY_ACCENTS: Dict[NeuronCategory, Accent] = {
    NeuronCategory.MEMORY: Accent("#3b82f6", "#60a5fa", "#93c5fd", (59, 130, 246)),
    NeuronCategory.CREATIVE: Accent("#ec4899", "#f472b6", "#f9a8d4", (236, 72, 153)),
    NeuronCategory.ANALYTICAL: Accent("#f59e0b", "#fbbf24", "#fcd34d", (245, 158, 11)),
    NeuronCategory.EMOTIONAL: Accent("#ef4444", "#f87171", "#fca5a5", (239, 68, 68)),
    NeuronCategory.PROCESSING: Accent("#10b981", "#34d399", "#6ee7b7", (16, 185, 129)),
}


def accent_for(category: NeuronCategory) -> Accent:
    return CATEGORY_ACCENTS[category]


def neuron_color(neuron: Neuron, glow: float = 1.0) -> str:
    """CSS ``rgba()`` colour for a neuron, dimmer when inactive."""
    r, g, b = accent_for(neuron.category).rgb
    intensity = neuron.pulse_intensity * neuron.strength * glow
    opacity = intensity if neuron.active else max(0.2, intensity * 0.5)
    return f"rgba({r}, {g}, {b}, {opacity:.3f})"


# ── Pulse oscillator ───────────────────────────────────────────────────


def advance_wave(wave: float, speed: float = 1.0) -> float:
    """Next animation phase; wraps at 2π."""
    return (wave + 0.02 * speed) % TWO_PI


def pulse_frame(neuron: Neuron, wave: float) -> float:
    """Glow intensity for one frame, in [0.1, 1.0]."""
    if neuron.active:
        base = 0.8 + math.sin(wave * 3) * 0.3
    else:
        base = 0.3 + math.sin(wave + neuron.position[0] * 0.01) * 0.2
    modulation = neuron.strength * 0.2 + neuron.experience_level * 0.05
    return max(0.1, min(1.0, base + modulation))


def animate_pulses(store: GraphStore, wave: float) -> None:
    """Write one frame of pulse intensities into the store."""
    store.update_neurons(
        lambda n: True,
        lambda n: replace(n, pulse_intensity=pulse_frame(n, wave)),
    )
