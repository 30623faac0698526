"""
NeuralWeb Export - Immutable network snapshots and their encodings.

A ``NetworkSnapshot`` captures every neuron, synapse and learning pattern
plus derived analytics.  It can be encoded as:

    - JSON (``encode_json`` / ``decode_json``), machine readable
    - msgpack (``encode_msgpack`` / ``decode_msgpack``), compact binary
    - a plain-text report (``render_report``), human readable

Both structured encodings are lossless: decoding yields a snapshot equal to
the one encoded.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple, Union

import msgpack
import numpy as np

from web_foundation import (
    LearningPattern,
    NeuralWebError,
    Neuron,
    NeuronCategory,
    Synapse,
)

logger = logging.getLogger("neuralweb.export")

FORMAT_VERSION = "1.0"

_EXTENSIONS = {"json": "json", "msgpack": "msgpack", "text": "txt"}


class SnapshotDecodeError(NeuralWebError, ValueError):
    """A structured payload could not be decoded into a snapshot."""


# ---------------------------------------------------------------------------
# Snapshot values
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Analytics:
    """Derived network statistics.

    Attributes:
        total_neurons: Number of neurons.
        total_synapses: Number of synapses (static and adaptive).
        total_interactions: ``activate()`` calls on known neurons since start/reset.
        total_patterns: Number of learning patterns.
        average_strength: Mean neuron strength.
        total_experience: Sum of neuron experience levels.
        session_time: Session seconds counted by the host's tick.
        dominant_category: Category with the highest summed activation count;
            ``PROCESSING`` on a tie or when every count is zero.
    """

    total_neurons: int = 0
    total_synapses: int = 0
    total_interactions: int = 0
    total_patterns: int = 0
    average_strength: float = 0.0
    total_experience: int = 0
    session_time: int = 0
    dominant_category: NeuronCategory = NeuronCategory.PROCESSING


@dataclass(frozen=True)
class NetworkSnapshot:
    """Point-in-time, immutable copy of the engine state."""

    version: str
    exported_at: str
    neurons: Tuple[Neuron, ...]
    synapses: Tuple[Synapse, ...]
    learning_patterns: Tuple[LearningPattern, ...]
    analytics: Analytics

    def neuron(self, neuron_id: str) -> Optional[Neuron]:
        for n in self.neurons:
            if n.neuron_id == neuron_id:
                return n
        return None

    def pattern(self, pattern_id: str) -> Optional[LearningPattern]:
        for p in self.learning_patterns:
            if p.pattern_id == pattern_id:
                return p
        return None


def dominant_category(neurons: Iterable[Neuron]) -> NeuronCategory:
    totals = {category: 0 for category in NeuronCategory}
    for n in neurons:
        totals[n.category] += n.activation_count
    best = max(totals.values())
    leaders = [category for category, count in totals.items() if count == best]
    if best == 0 or len(leaders) > 1:
        return NeuronCategory.PROCESSING
    return leaders[0]


def compute_analytics(
    neurons: Tuple[Neuron, ...],
    synapses: Tuple[Synapse, ...],
    patterns: Tuple[LearningPattern, ...],
    total_interactions: int = 0,
    session_time: int = 0,
) -> Analytics:
    strengths = [n.strength for n in neurons]
    return Analytics(
        total_neurons=len(neurons),
        total_synapses=len(synapses),
        total_interactions=total_interactions,
        total_patterns=len(patterns),
        average_strength=float(np.mean(strengths)) if strengths else 0.0,
        total_experience=int(sum(n.experience_level for n in neurons)),
        session_time=session_time,
        dominant_category=dominant_category(neurons),
    )


def build_snapshot(
    neurons: Iterable[Neuron],
    synapses: Iterable[Synapse],
    patterns: Iterable[LearningPattern],
    total_interactions: int = 0,
    session_time: int = 0,
    now_ms: Optional[float] = None,
    version: str = FORMAT_VERSION,
) -> NetworkSnapshot:
    """Assemble a snapshot and its analytics from store contents."""
    neuron_t = tuple(neurons)
    synapse_t = tuple(synapses)
    pattern_t = tuple(patterns)
    if now_ms is None:
        stamp = datetime.now(timezone.utc)
    else:
        stamp = datetime.fromtimestamp(now_ms / 1000.0, tz=timezone.utc)
    return NetworkSnapshot(
        version=version,
        exported_at=stamp.isoformat(),
        neurons=neuron_t,
        synapses=synapse_t,
        learning_patterns=pattern_t,
        analytics=compute_analytics(
            neuron_t, synapse_t, pattern_t, total_interactions, session_time
        ),
    )


# ---------------------------------------------------------------------------
# Structured encoding
# ---------------------------------------------------------------------------

def _serialize_neuron(n: Neuron) -> Dict[str, Any]:
    return {
        "id": n.neuron_id,
        "title": n.title,
        "description": n.description,
        "category": n.category.value,
        "position": list(n.position),
        "base_connections": list(n.base_connections),
        "adaptive_connections": list(n.adaptive_connections),
        "active": n.active,
        "activation_count": n.activation_count,
        "strength": n.strength,
        "learning_rate": n.learning_rate,
        "last_activated_at": n.last_activated_at,
        "experience_level": n.experience_level,
        "pulse_intensity": n.pulse_intensity,
    }


def _serialize_synapse(s: Synapse) -> Dict[str, Any]:
    return {
        "from": s.from_id,
        "to": s.to_id,
        "active": s.active,
        "strength": s.strength,
        "usage_count": s.usage_count,
        "efficiency": s.efficiency,
        "adaptive_strength": s.adaptive_strength,
        "last_used_at": s.last_used_at,
    }


def _serialize_pattern(p: LearningPattern) -> Dict[str, Any]:
    return {
        "id": p.pattern_id,
        "name": p.name,
        "description": p.description,
        "neurons": list(p.participants),
        "strength": p.strength,
        "discovered_at": p.discovered_at,
    }


def snapshot_to_dict(snapshot: NetworkSnapshot) -> Dict[str, Any]:
    a = snapshot.analytics
    return {
        "version": snapshot.version,
        "exportDate": snapshot.exported_at,
        "networkState": {
            "neurons": [_serialize_neuron(n) for n in snapshot.neurons],
            "synapses": [_serialize_synapse(s) for s in snapshot.synapses],
            "learningPatterns": [_serialize_pattern(p) for p in snapshot.learning_patterns],
        },
        "analytics": {
            "totalNeurons": a.total_neurons,
            "totalSynapses": a.total_synapses,
            "totalInteractions": a.total_interactions,
            "totalPatterns": a.total_patterns,
            "averageStrength": a.average_strength,
            "totalExperience": a.total_experience,
            "sessionTime": a.session_time,
            "dominantCategory": a.dominant_category.value,
        },
    }


def snapshot_from_dict(data: Dict[str, Any]) -> NetworkSnapshot:
    """Rebuild a snapshot from ``snapshot_to_dict`` output.

    Raises:
        SnapshotDecodeError: On missing keys, unknown categories or an
            unsupported version.
    """
    if not isinstance(data, dict):
        raise SnapshotDecodeError(f"Expected a mapping, got {type(data).__name__}")
    version = data.get("version")
    if version != FORMAT_VERSION:
        raise SnapshotDecodeError(f"Unsupported snapshot version {version!r}")
    try:
        state = data["networkState"]
        neurons = tuple(
            Neuron(
                neuron_id=nd["id"],
                title=nd["title"],
                description=nd["description"],
                category=NeuronCategory(nd["category"]),
                position=tuple(nd["position"]),
                base_connections=tuple(nd["base_connections"]),
                adaptive_connections=tuple(nd["adaptive_connections"]),
                active=nd["active"],
                activation_count=nd["activation_count"],
                strength=nd["strength"],
                learning_rate=nd["learning_rate"],
                last_activated_at=nd["last_activated_at"],
                experience_level=nd["experience_level"],
                pulse_intensity=nd["pulse_intensity"],
            )
            for nd in state["neurons"]
        )
        synapses = tuple(
            Synapse(
                from_id=sd["from"],
                to_id=sd["to"],
                active=sd["active"],
                strength=sd["strength"],
                usage_count=sd["usage_count"],
                efficiency=sd["efficiency"],
                adaptive_strength=sd["adaptive_strength"],
                last_used_at=sd["last_used_at"],
            )
            for sd in state["synapses"]
        )
        patterns = tuple(
            LearningPattern(
                pattern_id=pd["id"],
                participants=tuple(pd["neurons"]),
                name=pd["name"],
                description=pd["description"],
                strength=pd["strength"],
                discovered_at=pd["discovered_at"],
            )
            for pd in state["learningPatterns"]
        )
        ad = data["analytics"]
        analytics = Analytics(
            total_neurons=ad["totalNeurons"],
            total_synapses=ad["totalSynapses"],
            total_interactions=ad["totalInteractions"],
            total_patterns=ad["totalPatterns"],
            average_strength=ad["averageStrength"],
            total_experience=ad["totalExperience"],
            session_time=ad["sessionTime"],
            dominant_category=NeuronCategory(ad["dominantCategory"]),
        )
        return NetworkSnapshot(
            version=version,
            exported_at=data["exportDate"],
            neurons=neurons,
            synapses=synapses,
            learning_patterns=patterns,
            analytics=analytics,
        )
    except (KeyError, TypeError) as exc:
        raise SnapshotDecodeError(f"Malformed snapshot payload: {exc}") from exc
    except ValueError as exc:
        raise SnapshotDecodeError(f"Invalid snapshot value: {exc}") from exc


def encode_json(snapshot: NetworkSnapshot) -> str:
    return json.dumps(snapshot_to_dict(snapshot), indent=2, ensure_ascii=False)


def decode_json(text: Union[str, bytes]) -> NetworkSnapshot:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SnapshotDecodeError(f"Invalid JSON: {exc}") from exc
    return snapshot_from_dict(data)


def encode_msgpack(snapshot: NetworkSnapshot) -> bytes:
    return msgpack.packb(snapshot_to_dict(snapshot), use_bin_type=True)


def decode_msgpack(payload: bytes) -> NetworkSnapshot:
    try:
        data = msgpack.unpackb(payload, raw=False)
    except (msgpack.UnpackException, ValueError) as exc:
        raise SnapshotDecodeError(f"Invalid msgpack payload: {exc}") from exc
    return snapshot_from_dict(data)


# ---------------------------------------------------------------------------
# Human-readable report
# ---------------------------------------------------------------------------

def _percent(value: float, digits: int = 0) -> str:
    return f"{value * 100:.{digits}f}%"


def format_session_time(seconds: int) -> str:
    return f"{seconds // 60}:{seconds % 60:02d}"


def render_report(snapshot: NetworkSnapshot) -> str:
    """Plain-text report of a snapshot; patterns sorted by strength."""
    a = snapshot.analytics
    neuron_lines = [
        f"{n.title} ({n.category.value}): Level {n.experience_level}, "
        f"Strength {_percent(n.strength)}, Activations {n.activation_count}"
        for n in snapshot.neurons
    ]
    pattern_lines = [
        f"{p.name}: {p.description}, Strength {_percent(p.strength)}, "
        f"Discovered {datetime.fromtimestamp(p.discovered_at / 1000.0, tz=timezone.utc):%Y-%m-%d %H:%M:%S}"
        for p in sorted(snapshot.learning_patterns, key=lambda p: p.strength, reverse=True)
    ]
    lines = [
        "NEURAL NETWORK EXPORT",
        "===================",
        f"Date: {snapshot.exported_at}",
        f"Session Time: {format_session_time(a.session_time)}",
        "",
        "ANALYTICS",
        "---------",
        f"Total Neurons: {a.total_neurons}",
        f"Total Synapses: {a.total_synapses}",
        f"Total Interactions: {a.total_interactions}",
        f"Discovered Patterns: {a.total_patterns}",
        f"Average Network Strength: {_percent(a.average_strength, 1)}",
        f"Total Experience: {a.total_experience}",
        f"Dominant Neuron Type: {a.dominant_category.value}",
        "",
        "NEURONS",
        "-------",
        *neuron_lines,
        "",
        "DISCOVERED PATTERNS",
        "------------------",
        *pattern_lines,
    ]
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# File output
# ---------------------------------------------------------------------------

def default_filename(fmt: str, now_ms: float) -> str:
    return f"neural-network-export-{int(now_ms)}.{_EXTENSIONS[fmt]}"


def write_export(
    snapshot: NetworkSnapshot,
    path: Union[str, Path],
    fmt: str = "json",
) -> Path:
    """Write ``snapshot`` to ``path`` as ``json``, ``msgpack`` or ``text``.

    If ``path`` is an existing directory a default file name is used inside it.

    Returns:
        The path written.
    """
    if fmt not in _EXTENSIONS:
        raise ValueError(f"Unknown export format: {fmt}")
    target = Path(path).expanduser()
    if target.is_dir():
        stamp = datetime.fromisoformat(snapshot.exported_at).timestamp() * 1000.0
        target = target / default_filename(fmt, stamp)
    target.parent.mkdir(parents=True, exist_ok=True)

    if fmt == "msgpack":
        target.write_bytes(encode_msgpack(snapshot))
    elif fmt == "json":
        target.write_text(encode_json(snapshot), encoding="utf-8")
    else:
        target.write_text(render_report(snapshot), encoding="utf-8")

    logger.info("Exported network snapshot (%s) to %s", fmt, target)
    return target
