"""
NeuralWeb Monitoring: Health summary and rotating event log.

Two monitoring layers:

1. ``health_context()``: one-line natural language summary of engine state
   (e.g. "NeuralWeb: 13 neurons, 21 synapses, 2 patterns, active memory").
2. ``WebEventLogger``: rotating file logger writing one JSON object per
   engine event to ``~/.neuralweb/logs/events.log``.

Usage::

    from web_monitoring import WebEventLogger, health_context
    events = WebEventLogger(config)
    events.attach(engine)
    print(health_context(engine))
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import time
from dataclasses import asdict, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from web_config import WebConfig

logger = logging.getLogger("neuralweb.monitoring")

ENGINE_EVENTS = (
    "activated",
    "pattern_discovered",
    "pattern_reinforced",
    "synapse_sprouted",
    "reset",
    "exported",
)


# ── Health context (Layer 1) ───────────────────────────────────────────


def health_context(engine: Any) -> str:
    """Human-readable status string for a ``NeuralWebEngine``."""
    store = engine.store
    parts = [
        f"NeuralWeb: {len(store.neurons):,} neurons",
        f"{len(store.synapses):,} synapses",
        f"{len(store.patterns):,} patterns",
    ]
    adaptive = sum(1 for s in store.synapses.values() if store.is_adaptive(s))
    if adaptive:
        parts.append(f"{adaptive} adaptive")
    if engine.active_neuron_id is not None:
        parts.append(f"active {engine.active_neuron_id}")
    if engine.is_transitioning:
        parts.append("transitioning")
    parts.append("learning on" if engine.learning_enabled else "learning paused")
    return ", ".join(parts)


# ── Rotating event logger (Layer 2) ───────────────────────────────────


def _jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return {k: _jsonable(v) for k, v in asdict(value).items()}
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value


class WebEventLogger:
    """Rotating file logger for engine events.

    Args:
        config: ``WebConfig`` whose ``export`` section supplies the log
            directory and rotation limits.
        log_dir: Overrides ``config.export.log_dir``.
    """

    def __init__(self, config: Optional[WebConfig] = None, log_dir: Optional[str] = None) -> None:
        self._cfg = (config or WebConfig()).export
        self._log_dir = Path(log_dir or self._cfg.log_dir).expanduser()
        self._logger = logging.getLogger(f"neuralweb.events.{id(self)}")
        self._logger.propagate = False
        self._handler: Optional[logging.Handler] = None
        self._setup_handler()

    @property
    def log_path(self) -> Path:
        return self._log_dir / "events.log"

    def _setup_handler(self) -> None:
        """Configure rotating file handler."""
        self._log_dir.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            str(self.log_path),
            maxBytes=self._cfg.max_log_size_mb * 1024 * 1024,
            backupCount=self._cfg.backup_count,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        self._logger.addHandler(handler)
        self._logger.setLevel(logging.INFO)
        self._handler = handler

    def log_event(self, event_type: str, data: Dict[str, Any]) -> None:
        """Write a structured event to the log."""
        event = {
            "timestamp": time.time(),
            "event": event_type,
            "data": _jsonable(data),
        }
        self._logger.info(json.dumps(event, default=str, ensure_ascii=False))

    def attach(self, engine: Any) -> None:
        """Subscribe to every engine event."""
        for event_type in ENGINE_EVENTS:
            engine.register_event_handler(
                event_type,
                lambda _t=event_type, **kwargs: self.log_event(_t, kwargs),
            )
        logger.info("Event log attached at %s", self.log_path)

    def close(self) -> None:
        if self._handler is not None:
            self._logger.removeHandler(self._handler)
            self._handler.close()
            self._handler = None
