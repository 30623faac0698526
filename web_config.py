"""
NeuralWeb Configuration: Centralized tunables for the learning engine.

Provides a single ``WebConfig`` dataclass that groups every tuneable
parameter of the engine (reinforcement, pattern discovery, topology growth,
activation, export) into sections.  Configuration can be loaded from a dict
of overrides, a JSON file, or left at the built-in defaults.

Usage::

    from web_config import WebConfig, load_web_config

    # Defaults
    cfg = load_web_config()

    # With overrides
    cfg = load_web_config({"activation": {"settle_delay_ms": 0}})

    # From JSON file
    cfg = load_web_config(config_path="~/.neuralweb/config.json")
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from web_foundation import NeuralWebError

logger = logging.getLogger("neuralweb.config")

OVERLAP_POLICIES = ("queue", "ignore")
EXPORT_FORMATS = ("json", "msgpack", "text")


class ConfigError(NeuralWebError, ValueError):
    """A configuration value is out of range."""


# ── Section dataclasses ────────────────────────────────────────────────


@dataclass
class LearningConfig:
    """Reinforcement and decay constants applied on every activation."""

    reinforcement_factor: float = 0.1
    pulse_boost: float = 0.05
    experience_step: int = 5

    neuron_idle_ms: float = 30_000.0
    neuron_strength_decay: float = 0.01
    neuron_strength_floor: float = 0.3
    pulse_decay: float = 0.01
    pulse_floor: float = 0.1

    synapse_efficiency_boost: float = 0.05
    synapse_adaptive_boost: float = 0.03
    synapse_strength_boost: float = 0.02
    synapse_stale_ms: float = 45_000.0
    synapse_efficiency_decay: float = 0.01
    synapse_adaptive_decay: float = 0.005
    synapse_floor: float = 0.1


@dataclass
class PatternConfig:
    """Pattern discovery constants."""

    initial_strength: float = 0.3
    increment: float = 0.1


@dataclass
class TopologyConfig:
    """Adaptive topology growth constants."""

    min_activations: int = 3
    co_activation_window_ms: float = 10_000.0
    max_adaptive_connections: int = 2
    synapse_strength: float = 0.3
    synapse_efficiency: float = 0.3
    synapse_adaptive_strength: float = 0.2


@dataclass
class ActivationConfig:
    """Activation state machine settings."""

    settle_delay_ms: float = 300.0
    root_neuron_id: str = "welcome"
    overlap_policy: str = "queue"
    learning_enabled: bool = True


@dataclass
class ExportConfig:
    """Export and event-log settings."""

    default_format: str = "json"
    log_dir: str = "~/.neuralweb/logs/"
    max_log_size_mb: int = 10
    backup_count: int = 5


# ── Top-level config ───────────────────────────────────────────────────


@dataclass
class WebConfig:
    """Top-level NeuralWeb configuration.

    Use ``load_web_config()`` to create an instance with user overrides
    applied and validated.
    """

    learning: LearningConfig = field(default_factory=LearningConfig)
    pattern: PatternConfig = field(default_factory=PatternConfig)
    topology: TopologyConfig = field(default_factory=TopologyConfig)
    activation: ActivationConfig = field(default_factory=ActivationConfig)
    export: ExportConfig = field(default_factory=ExportConfig)


_SECTIONS = ("learning", "pattern", "topology", "activation", "export")


# ── Factory ────────────────────────────────────────────────────────────


def _apply_overrides(obj: Any, overrides: Dict[str, Any]) -> None:
    """Apply a dict of overrides to a dataclass instance (in-place)."""
    for key, value in overrides.items():
        if hasattr(obj, key):
            setattr(obj, key, value)
        else:
            logger.debug("Ignoring unknown config key %s.%s", type(obj).__name__, key)


def validate_config(cfg: WebConfig) -> WebConfig:
    """Reject values the engine cannot run with.

    Raises:
        ConfigError: On the first invalid value found.
    """
    if cfg.activation.overlap_policy not in OVERLAP_POLICIES:
        raise ConfigError(
            f"overlap_policy must be one of {OVERLAP_POLICIES}, "
            f"got {cfg.activation.overlap_policy!r}"
        )
    if cfg.activation.settle_delay_ms < 0:
        raise ConfigError("settle_delay_ms must be >= 0")
    if cfg.export.default_format not in EXPORT_FORMATS:
        raise ConfigError(
            f"default_format must be one of {EXPORT_FORMATS}, "
            f"got {cfg.export.default_format!r}"
        )
    if cfg.topology.max_adaptive_connections < 0:
        raise ConfigError("max_adaptive_connections must be >= 0")
    if cfg.topology.co_activation_window_ms < 0:
        raise ConfigError("co_activation_window_ms must be >= 0")
    if cfg.learning.experience_step < 1:
        raise ConfigError("experience_step must be >= 1")
    if not 0.0 <= cfg.learning.neuron_strength_floor <= 1.0:
        raise ConfigError("neuron_strength_floor must lie in [0, 1]")
    if not 0.0 <= cfg.learning.synapse_floor <= 1.0:
        raise ConfigError("synapse_floor must lie in [0, 1]")
    return cfg


def load_web_config(
    overrides: Optional[Dict[str, Any]] = None,
    config_path: Optional[str] = None,
) -> WebConfig:
    """Create a ``WebConfig`` with defaults, optionally overridden.

    Override precedence (highest wins):
        1. ``overrides`` dict argument
        2. ``config_path`` JSON file
        3. Built-in defaults

    Args:
        overrides: Dict keyed by section name (``learning``, ``pattern``,
            ``topology``, ``activation``, ``export``) whose values are dicts
            of field→value pairs.
        config_path: Path to a JSON file with the same structure as
            ``overrides``.

    Returns:
        Fully populated, validated ``WebConfig``.

    Raises:
        ConfigError: If the merged configuration is invalid.
    """
    cfg = WebConfig()

    # Layer 1: JSON file
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            try:
                with open(p) as f:
                    file_data = json.load(f)
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("Failed to load NeuralWeb config from %s: %s", p, exc)
            else:
                for section in _SECTIONS:
                    if section in file_data:
                        _apply_overrides(getattr(cfg, section), file_data[section])
        else:
            logger.debug("No config file at %s, using defaults", p)

    # Layer 2: dict overrides (win over file)
    if overrides is not None:
        for section in _SECTIONS:
            if section in overrides:
                _apply_overrides(getattr(cfg, section), overrides[section])

    return validate_config(cfg)
