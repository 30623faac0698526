"""
NeuralWeb Engine - Activation state machine and the public engine API.

The engine is an explicitly constructed state object; nothing is held in
module-level singletons.  A presentation layer drives it through:

    - ``activate(neuron_id)``           request an activation
    - ``set_learning_enabled(flag)``    toggle the learning rules
    - ``reset()``                       restore the initial distribution
    - ``export_snapshot()``             immutable snapshot with analytics

Activation is two-phase: the request clears every active flag and schedules
a settle after ``settle_delay_ms``; the settle marks the new neuron and its
synapses active and runs the learning rules.  Only one transition is in
flight at a time.  Requests arriving mid-transition are queued (or dropped,
with ``overlap_policy="ignore"``) so the rules always see the matching
``(previous, activated)`` pair.

Scheduling is delegated to a host-supplied callable
``scheduler(delay_ms, callback)``.  ``immediate_scheduler`` settles inline,
which suits headless use; ``DeferredScheduler`` holds callbacks until the
host runs them from its own timer or frame loop.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple, Union

import numpy as np

from web_config import WebConfig, validate_config
from web_export import (
    NetworkSnapshot,
    build_snapshot,
    encode_json,
    encode_msgpack,
    render_report,
    write_export,
)
from web_foundation import ActivationPhase, GraphStore
from web_plasticity import ActivationEvent, LearningRule, default_rules
from web_seed import build_seed_store, restore_initial_distribution

logger = logging.getLogger("neuralweb.engine")

Scheduler = Callable[[float, Callable[[], None]], None]
Clock = Callable[[], float]


def wall_clock_ms() -> float:
    return time.time() * 1000.0


def immediate_scheduler(delay_ms: float, callback: Callable[[], None]) -> None:
    """Run ``callback`` right away, ignoring the delay."""
    callback()


class DeferredScheduler:
    """Collects scheduled callbacks until the host runs them.

    Suited to hosts that own a timer or frame loop: call ``run_pending()``
    once the settle delay has elapsed.
    """

    def __init__(self) -> None:
        self._pending: Deque[Tuple[float, Callable[[], None]]] = deque()

    def __call__(self, delay_ms: float, callback: Callable[[], None]) -> None:
        self._pending.append((delay_ms, callback))

    def __len__(self) -> int:
        return len(self._pending)

    def run_pending(self) -> int:
        """Run every pending callback, including ones scheduled meanwhile.

        Returns:
            Number of callbacks run.
        """
        ran = 0
        while self._pending:
            _, callback = self._pending.popleft()
            callback()
            ran += 1
        return ran

    def run_next(self) -> bool:
        if not self._pending:
            return False
        _, callback = self._pending.popleft()
        callback()
        return True


# ---------------------------------------------------------------------------
# Activation State Machine
# ---------------------------------------------------------------------------

class ActivationStateMachine:
    """``Idle(active) -> Transitioning(from, to) -> Idle(to)``.

    Args:
        store: Graph store whose active flags are managed.
        on_settle: Called as ``on_settle(activated_id, previous_id)`` once a
            transition settles.
        settle_delay_ms: Delay handed to the scheduler.
        scheduler: ``scheduler(delay_ms, callback)``.
        overlap_policy: ``"queue"`` or ``"ignore"`` for requests received
            while a transition is in flight.
        initial_active_id: Neuron active before the first request.
    """

    def __init__(
        self,
        store: GraphStore,
        on_settle: Callable[[str, Optional[str]], None],
        settle_delay_ms: float = 300.0,
        scheduler: Optional[Scheduler] = None,
        overlap_policy: str = "queue",
        initial_active_id: Optional[str] = None,
    ):
        self.store = store
        self.settle_delay_ms = settle_delay_ms
        self.overlap_policy = overlap_policy
        self._on_settle = on_settle
        self._scheduler = scheduler or immediate_scheduler

        self.phase = ActivationPhase.IDLE
        self.current_active_id: Optional[str] = initial_active_id
        self.transition: Optional[Tuple[Optional[str], str]] = None
        self._queue: Deque[str] = deque()
        # Bumped on every new transition and on force(); stale settles are dropped
        self._generation = 0

    @property
    def queued(self) -> List[str]:
        return list(self._queue)

    def request(self, neuron_id: str) -> bool:
        """Ask for ``neuron_id`` to become active.

        Returns:
            False if the request was dropped (unknown id, or overlap under the
            ``ignore`` policy), True if it started or was queued.
        """
        if not self.store.has_neuron(neuron_id):
            logger.warning("Ignoring activation of unknown neuron %r", neuron_id)
            return False
        if self.phase is ActivationPhase.TRANSITIONING:
            if self.overlap_policy == "ignore":
                logger.warning(
                    "Dropping activation of %s: transition %s in flight",
                    neuron_id, self.transition,
                )
                return False
            self._queue.append(neuron_id)
            logger.debug("Queued activation of %s behind %s", neuron_id, self.transition)
            return True
        self._begin(neuron_id)
        return True

    def _begin(self, neuron_id: str) -> None:
        previous = self.current_active_id
        self.store.set_active(None)
        self.phase = ActivationPhase.TRANSITIONING
        self.transition = (previous, neuron_id)
        self._generation += 1
        generation = self._generation
        logger.debug("Transitioning %s -> %s", previous, neuron_id)
        self._scheduler(self.settle_delay_ms, lambda: self._settle_if_current(generation))

    def _settle_if_current(self, generation: int) -> None:
        if generation != self._generation:
            return
        self.settle()

    def settle(self) -> bool:
        """Complete the in-flight transition, then start the next queued one.

        Returns:
            False if nothing was in flight.
        """
        if self.phase is not ActivationPhase.TRANSITIONING or self.transition is None:
            return False
        previous, target = self.transition
        self.store.set_active(target)
        self.current_active_id = target
        generation = self._generation
        # Still TRANSITIONING here: requests made from on_settle go through the overlap policy
        self._on_settle(target, previous)
        if generation != self._generation:
            return True
        self.phase = ActivationPhase.IDLE
        self.transition = None

        while self._queue and self.phase is ActivationPhase.IDLE:
            self._begin(self._queue.popleft())
        return True

    def force(self, neuron_id: str) -> None:
        """Make ``neuron_id`` active at once, discarding pending work."""
        dropped = len(self._queue) + (1 if self.transition else 0)
        self._queue.clear()
        self._generation += 1
        self.transition = None
        self.phase = ActivationPhase.IDLE
        self.store.set_active(neuron_id)
        self.current_active_id = neuron_id
        if dropped:
            logger.debug("Forced %s active, discarded %d pending activation(s)", neuron_id, dropped)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class NeuralWebEngine:
    """Adaptive learning state engine over the seed topology.

    Args:
        config: ``WebConfig``; defaults when None.
        clock: Returns the current time in milliseconds.
        scheduler: Settle-delay scheduler (see module docstring).
        random_seed: Seed for the random parts of the initial distribution.
    """

    def __init__(
        self,
        config: Optional[WebConfig] = None,
        clock: Optional[Clock] = None,
        scheduler: Optional[Scheduler] = None,
        random_seed: Optional[int] = None,
    ):
        self.config = validate_config(config or WebConfig())
        self._clock = clock or wall_clock_ms
        self._rng = np.random.RandomState(random_seed)
        self.root_id = self.config.activation.root_neuron_id

        self.store = build_seed_store(self._clock(), self._rng, self.root_id)
        self._learning_enabled = self.config.activation.learning_enabled
        self._rules: List[LearningRule] = default_rules(
            self.config.learning, self.config.pattern, self.config.topology
        )
        self._event_handlers: Dict[str, List[Callable]] = {}

        self.total_interactions = 0
        self.session_time = 0

        self.machine = ActivationStateMachine(
            self.store,
            self._on_settle,
            settle_delay_ms=self.config.activation.settle_delay_ms,
            scheduler=scheduler,
            overlap_policy=self.config.activation.overlap_policy,
            initial_active_id=self.root_id,
        )

    # -----------------------------------------------------------------------
    # Mutation entry points
    # -----------------------------------------------------------------------

    def activate(self, neuron_id: str) -> None:
        """Request activation of ``neuron_id``; unknown ids are a no-op.

        Every call on a known neuron counts as an interaction, including
        requests dropped by the ``ignore`` overlap policy.
        """
        if not self.store.has_neuron(neuron_id):
            logger.warning("Ignoring activation of unknown neuron %r", neuron_id)
            return
        self.total_interactions += 1
        self.machine.request(neuron_id)

    def set_learning_enabled(self, enabled: bool) -> None:
        self._learning_enabled = bool(enabled)
        logger.info("Learning %s", "enabled" if self._learning_enabled else "disabled")

    @property
    def learning_enabled(self) -> bool:
        return self._learning_enabled

    def reset(self) -> None:
        """Restore the initial distribution and reactivate the root neuron.

        Ids and static topology are kept.  Adaptive synapses, patterns,
        interaction count and session time are cleared; pending activations
        are discarded.  The root is activated directly, without a
        reinforcement pass.
        """
        now = self._clock()
        restore_initial_distribution(self.store, now, self._rng, self.root_id)
        self.machine.force(self.root_id)
        self.total_interactions = 0
        self.session_time = 0
        logger.info("Network reset; %s active", self.root_id)
        self._emit("reset")

    def tick_session(self, seconds: int = 1) -> int:
        """Advance the session-time counter shown in analytics."""
        self.session_time += seconds
        return self.session_time

    def set_learning_rules(self, rules: List[LearningRule]) -> None:
        """Replace the learning rule pipeline (run in list order)."""
        self._rules = list(rules)

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    @property
    def active_neuron_id(self) -> Optional[str]:
        return self.machine.current_active_id

    @property
    def phase(self) -> ActivationPhase:
        return self.machine.phase

    @property
    def is_transitioning(self) -> bool:
        return self.machine.phase is ActivationPhase.TRANSITIONING

    def export_snapshot(self) -> NetworkSnapshot:
        return build_snapshot(
            self.store.neurons.values(),
            self.store.synapses.values(),
            self.store.patterns.values(),
            total_interactions=self.total_interactions,
            session_time=self.session_time,
            now_ms=self._clock(),
        )

    def export(self, fmt: Optional[str] = None) -> Union[str, bytes]:
        """Encode a fresh snapshot as ``json``, ``msgpack`` or ``text``."""
        fmt = fmt or self.config.export.default_format
        snapshot = self.export_snapshot()
        if fmt == "json":
            payload: Union[str, bytes] = encode_json(snapshot)
        elif fmt == "msgpack":
            payload = encode_msgpack(snapshot)
        elif fmt == "text":
            payload = render_report(snapshot)
        else:
            raise ValueError(f"Unknown export format: {fmt}")
        self._emit("exported", fmt=fmt)
        return payload

    def save_export(self, path: Union[str, Path], fmt: Optional[str] = None) -> Path:
        fmt = fmt or self.config.export.default_format
        target = write_export(self.export_snapshot(), path, fmt)
        self._emit("exported", fmt=fmt)
        return target

    # -----------------------------------------------------------------------
    # Learning
    # -----------------------------------------------------------------------

    def _on_settle(self, activated_id: str, previous_id: Optional[str]) -> None:
        outcomes: List[Tuple[str, Dict[str, Any]]] = []
        if self._learning_enabled:
            event = ActivationEvent(activated_id, previous_id, self._clock())
            for rule in self._rules:
                outcomes.extend(rule.apply(self.store, event))
        else:
            logger.debug("Learning disabled; skipping rules for %s", activated_id)

        # Handlers run only once every rule has finished with this activation
        for event_type, payload in outcomes:
            self._emit(event_type, **payload)
        self._emit("activated", neuron_id=activated_id, previous_id=previous_id)

    # -----------------------------------------------------------------------
    # Event System
    # -----------------------------------------------------------------------

    def register_event_handler(self, event_type: str, callback: Callable) -> None:
        """Subscribe to ``activated``, ``pattern_discovered``,
        ``pattern_reinforced``, ``synapse_sprouted``, ``reset`` or ``exported``.
        """
        self._event_handlers.setdefault(event_type, []).append(callback)

    def _emit(self, event_type: str, **kwargs: Any) -> None:
        for cb in self._event_handlers.get(event_type, []):
            cb(**kwargs)

    def __repr__(self) -> str:
        return (
            f"NeuralWebEngine(active={self.active_neuron_id}, "
            f"interactions={self.total_interactions}, {self.store!r})"
        )
