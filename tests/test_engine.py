"""Tests for the activation state machine and the engine API.

Covers:
- two-phase activation with immediate and deferred scheduling
- overlap policies (queue / ignore) and previous/activated pairing
- end-to-end learning on the seed topology (patterns, growth, decay)
- reset, learning toggle, unknown ids, events
- invariants under long random activation sequences
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from web_config import load_web_config
from web_engine import (
    ActivationStateMachine,
    DeferredScheduler,
    NeuralWebEngine,
    immediate_scheduler,
)
from web_export import decode_json, decode_msgpack
from web_foundation import ActivationPhase, GraphStore, Neuron, NeuronCategory, Synapse
from web_plasticity import ReinforcementRule
from web_seed import ROOT_NEURON_ID

T0 = 1_000_000.0


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(clock):
    return NeuralWebEngine(clock=clock, random_seed=42)


def _activate_all(engine, clock, ids, step_ms=1000.0):
    for nid in ids:
        clock.advance(step_ms)
        engine.activate(nid)


class TestStateMachine:

    def _store(self):
        return GraphStore.from_topology(
            [Neuron("a", base_connections=("b",), active=True), Neuron("b"), Neuron("c")],
            lambda x, y: Synapse(x, y),
        )

    def test_request_clears_then_settles(self):
        store = self._store()
        settled = []
        sched = DeferredScheduler()
        machine = ActivationStateMachine(
            store, lambda t, p: settled.append((t, p)),
            scheduler=sched, initial_active_id="a",
        )
        assert machine.request("b")
        assert machine.phase is ActivationPhase.TRANSITIONING
        assert machine.transition == ("a", "b")
        assert store.active_neuron_ids() == []
        assert len(sched) == 1

        assert sched.run_next()
        assert machine.phase is ActivationPhase.IDLE
        assert store.active_neuron_ids() == ["b"]
        assert store.get_synapse("a", "b").active
        assert settled == [("b", "a")]

    def test_delay_passed_to_scheduler(self):
        delays = []
        machine = ActivationStateMachine(
            self._store(), lambda t, p: None,
            settle_delay_ms=300.0,
            scheduler=lambda delay, cb: delays.append(delay),
        )
        machine.request("c")
        assert delays == [300.0]

    def test_settle_without_transition(self):
        machine = ActivationStateMachine(self._store(), lambda t, p: None)
        assert machine.settle() is False

    def test_queue_preserves_pairs(self):
        settled = []
        sched = DeferredScheduler()
        machine = ActivationStateMachine(
            self._store(), lambda t, p: settled.append((t, p)),
            scheduler=sched, initial_active_id="a",
        )
        machine.request("b")
        machine.request("c")
        machine.request("a")
        assert machine.queued == ["c", "a"]
        assert sched.run_pending() == 3
        assert settled == [("b", "a"), ("c", "b"), ("a", "c")]

    def test_force_discards_pending_settle(self):
        store = self._store()
        settled = []
        sched = DeferredScheduler()
        machine = ActivationStateMachine(
            store, lambda t, p: settled.append(t), scheduler=sched, initial_active_id="a",
        )
        machine.request("b")
        machine.request("c")
        machine.force("a")
        sched.run_pending()
        assert settled == []
        assert machine.queued == []
        assert store.active_neuron_ids() == ["a"]

    def test_request_during_settle_is_queued(self):
        store = self._store()
        settled, queued_seen = [], []
        machine = None

        def on_settle(target, previous):
            settled.append((target, previous))
            if target == "b":
                machine.request("c")
                queued_seen.append(list(machine.queued))
                assert machine.phase is ActivationPhase.TRANSITIONING

        machine = ActivationStateMachine(store, on_settle, initial_active_id="a")
        machine.request("b")
        assert queued_seen == [["c"]]
        assert settled == [("b", "a"), ("c", "b")]
        assert machine.phase is ActivationPhase.IDLE
        assert store.active_neuron_ids() == ["c"]

    def test_immediate_scheduler_runs_inline(self):
        calls = []
        immediate_scheduler(300.0, lambda: calls.append(1))
        assert calls == [1]


class TestActivation:

    def test_initial_state(self, engine):
        assert engine.active_neuron_id == ROOT_NEURON_ID
        assert engine.phase is ActivationPhase.IDLE
        assert engine.total_interactions == 0
        assert engine.store.active_neuron_ids() == [ROOT_NEURON_ID]

    def test_activate_marks_single_neuron(self, engine, clock):
        _activate_all(engine, clock, ["creativity"])
        assert engine.active_neuron_id == "creativity"
        assert engine.store.active_neuron_ids() == ["creativity"]
        active_synapses = [s for s in engine.store.synapses.values() if s.active]
        assert active_synapses and all(s.touches("creativity") for s in active_synapses)
        assert engine.total_interactions == 1

    def test_creativity_then_memory(self, engine, clock):
        _activate_all(engine, clock, ["creativity", "memory"])
        store = engine.store
        assert store.get_neuron("creativity").activation_count == 1
        assert store.get_neuron("memory").activation_count == 1
        assert set(store.patterns) == {"welcome-creativity", "creativity-memory"}
        pattern = store.patterns["creativity-memory"]
        assert pattern.strength == pytest.approx(0.3)
        assert pattern.name == "Creative Cortex → Memory Palace"
        assert store.get_synapse("creativity", "memory").usage_count == 2
        assert store.get_synapse("welcome", "creativity").usage_count == 2
        assert engine.total_interactions == 2

    def test_repeated_transition_strengthens_pattern(self, engine, clock):
        _activate_all(engine, clock, ["logic", "memory", "logic", "memory"])
        assert engine.store.patterns["logic-memory"].strength == pytest.approx(0.4)
        assert engine.store.patterns["memory-logic"].strength == pytest.approx(0.3)

    def test_self_transition_has_no_pattern(self, engine, clock):
        _activate_all(engine, clock, ["logic", "logic"])
        assert set(engine.store.patterns) == {"welcome-logic"}
        assert engine.store.get_neuron("logic").activation_count == 2

    def test_unknown_id_is_noop(self, engine, clock):
        before = engine.export_snapshot()
        clock.advance(1000)
        engine.activate("nonexistent")
        assert engine.total_interactions == 0
        assert engine.active_neuron_id == ROOT_NEURON_ID
        after = engine.export_snapshot()
        assert after.neurons == before.neurons
        assert after.synapses == before.synapses


class TestDeferredSettle:

    def test_transition_in_flight(self, clock):
        sched = DeferredScheduler()
        engine = NeuralWebEngine(clock=clock, scheduler=sched, random_seed=1)
        engine.activate("logic")
        assert engine.is_transitioning
        assert engine.store.active_neuron_ids() == []
        sched.run_pending()
        assert not engine.is_transitioning
        assert engine.active_neuron_id == "logic"

    def test_overlap_queued(self, clock):
        sched = DeferredScheduler()
        engine = NeuralWebEngine(clock=clock, scheduler=sched, random_seed=1)
        engine.activate("logic")
        engine.activate("memory")
        assert engine.machine.queued == ["memory"]
        assert engine.total_interactions == 2
        sched.run_pending()
        assert engine.active_neuron_id == "memory"
        assert set(engine.store.patterns) == {"welcome-logic", "logic-memory"}

    def test_overlap_ignored(self, clock):
        cfg = load_web_config({"activation": {"overlap_policy": "ignore"}})
        sched = DeferredScheduler()
        engine = NeuralWebEngine(cfg, clock=clock, scheduler=sched, random_seed=1)
        engine.activate("logic")
        engine.activate("memory")
        assert engine.total_interactions == 2
        sched.run_pending()
        assert engine.active_neuron_id == "logic"
        assert set(engine.store.patterns) == {"welcome-logic"}
        assert engine.store.get_neuron("memory").activation_count == 0

    def test_reset_discards_pending(self, clock):
        sched = DeferredScheduler()
        engine = NeuralWebEngine(clock=clock, scheduler=sched, random_seed=1)
        engine.activate("logic")
        engine.reset()
        sched.run_pending()
        assert engine.active_neuron_id == ROOT_NEURON_ID
        assert engine.store.get_neuron("logic").activation_count == 0
        assert engine.store.patterns == {}


class TestTopologyGrowth:

    def test_emotion_then_memory(self, engine, clock):
        _activate_all(engine, clock, ["emotion"] * 3 + ["memory"] * 3)
        store = engine.store
        assert store.get_neuron("memory").adaptive_connections == ("emotion",)
        assert store.get_neuron("emotion").adaptive_connections == ()
        assert len(store.synapses) == 22
        assert store.is_adaptive(store.get_synapse("memory", "emotion"))

    def test_cap_and_starvation(self, engine, clock):
        sequence = ["emotion"] * 3 + ["future"] * 3 + ["insight"] * 3 + ["calculation"] * 3
        _activate_all(engine, clock, sequence)
        store = engine.store
        assert store.get_neuron("future").adaptive_connections == ("emotion",)
        assert store.get_neuron("insight").adaptive_connections == ("emotion", "future")
        assert store.get_neuron("calculation").adaptive_connections == ("emotion", "future")
        assert not store.has_synapse("calculation", "insight")
        assert len(store.synapses) == 26

    def test_outside_window_no_growth(self, engine, clock):
        _activate_all(engine, clock, ["emotion"] * 3)
        _activate_all(engine, clock, ["memory"] * 3, step_ms=20_000.0)
        assert engine.store.get_neuron("memory").adaptive_connections == ()

    def test_sprout_events(self, engine, clock):
        sprouted = []
        engine.register_event_handler(
            "synapse_sprouted", lambda synapse: sprouted.append(synapse.key)
        )
        _activate_all(engine, clock, ["emotion"] * 3 + ["memory"] * 3)
        assert sprouted == [("emotion", "memory")]


class TestDecay:

    def test_idle_neuron_decays(self, engine, clock):
        _activate_all(engine, clock, ["creativity"])
        creativity = engine.store.get_neuron("creativity")
        assert creativity.strength == pytest.approx(0.815)
        clock.advance(31_000)
        engine.activate("memory")
        assert engine.store.get_neuron("creativity").strength == pytest.approx(0.805)

    def test_never_activated_neurons_decay_each_time(self, engine, clock):
        _activate_all(engine, clock, ["creativity", "memory"])
        assert engine.store.get_neuron("logic").strength == pytest.approx(0.93)

    def test_stale_synapse_decays(self, engine, clock):
        _activate_all(engine, clock, ["creativity", "memory"])
        syn = engine.store.get_synapse("logic", "calculation")
        assert syn.efficiency == pytest.approx(0.48)


class TestLearningToggle:

    def test_disabled_learning_only_moves_activation(self, engine, clock):
        engine.set_learning_enabled(False)
        assert not engine.learning_enabled
        _activate_all(engine, clock, ["creativity"])
        assert engine.active_neuron_id == "creativity"
        assert engine.store.get_neuron("creativity").activation_count == 0
        assert engine.store.patterns == {}

    def test_reenable(self, engine, clock):
        engine.set_learning_enabled(False)
        _activate_all(engine, clock, ["creativity"])
        engine.set_learning_enabled(True)
        _activate_all(engine, clock, ["memory"])
        assert set(engine.store.patterns) == {"creativity-memory"}

    def test_disabled_from_config(self, clock):
        cfg = load_web_config({"activation": {"learning_enabled": False}})
        engine = NeuralWebEngine(cfg, clock=clock, random_seed=0)
        assert not engine.learning_enabled


class TestReset:

    def test_reset_restores_seed_state(self, engine, clock):
        _activate_all(engine, clock, ["emotion"] * 3 + ["memory"] * 3)
        engine.tick_session(12)
        engine.reset()
        store = engine.store
        assert engine.total_interactions == 0
        assert engine.session_time == 0
        assert store.patterns == {}
        assert len(store.synapses) == 21
        assert engine.active_neuron_id == ROOT_NEURON_ID
        root = store.get_neuron(ROOT_NEURON_ID)
        assert root.activation_count == 1
        assert root.strength == 1.0
        for n in store.neurons.values():
            assert n.adaptive_connections == ()
            if n.neuron_id != ROOT_NEURON_ID:
                assert n.activation_count == 0
                assert 0.6 <= n.strength < 0.9

    def test_reset_event(self, engine):
        calls = []
        engine.register_event_handler("reset", lambda: calls.append(True))
        engine.reset()
        assert calls == [True]

    def test_learning_after_reset(self, engine, clock):
        _activate_all(engine, clock, ["logic"])
        engine.reset()
        _activate_all(engine, clock, ["memory"])
        assert set(engine.store.patterns) == {"welcome-memory"}


class TestEvents:

    def test_activated_event(self, engine, clock):
        seen = []
        engine.register_event_handler(
            "activated", lambda neuron_id, previous_id: seen.append((neuron_id, previous_id))
        )
        _activate_all(engine, clock, ["logic", "memory"])
        assert seen == [("logic", "welcome"), ("memory", "logic")]

    def test_activate_from_activated_handler(self, engine, clock, monkeypatch):
        applied = []
        original = ReinforcementRule.apply

        def recording_apply(rule, store, event):
            applied.append((event.previous_id, event.activated_id))
            return original(rule, store, event)

        monkeypatch.setattr(ReinforcementRule, "apply", recording_apply)

        def chain(neuron_id, previous_id):
            if neuron_id == "creativity":
                engine.activate("memory")

        engine.register_event_handler("activated", chain)
        _activate_all(engine, clock, ["creativity"])
        assert applied == [("welcome", "creativity"), ("creativity", "memory")]
        assert engine.active_neuron_id == "memory"
        assert set(engine.store.patterns) == {"welcome-creativity", "creativity-memory"}
        assert engine.total_interactions == 2

    def test_handler_activation_dropped_when_ignoring(self, clock):
        cfg = load_web_config({"activation": {"overlap_policy": "ignore"}})
        engine = NeuralWebEngine(cfg, clock=clock, random_seed=42)
        engine.register_event_handler(
            "activated", lambda neuron_id, previous_id: engine.activate("memory")
        )
        _activate_all(engine, clock, ["creativity"])
        assert engine.active_neuron_id == "creativity"
        assert set(engine.store.patterns) == {"welcome-creativity"}
        assert engine.total_interactions == 2

    def test_pattern_events(self, engine, clock):
        discovered, reinforced = [], []
        engine.register_event_handler(
            "pattern_discovered", lambda pattern: discovered.append(pattern.pattern_id)
        )
        engine.register_event_handler(
            "pattern_reinforced", lambda pattern: reinforced.append(pattern.pattern_id)
        )
        _activate_all(engine, clock, ["logic", "memory", "logic", "memory"])
        assert discovered == ["welcome-logic", "logic-memory", "memory-logic"]
        assert reinforced == ["logic-memory"]

    def test_export_event(self, engine):
        formats = []
        engine.register_event_handler("exported", lambda fmt: formats.append(fmt))
        engine.export("text")
        assert formats == ["text"]


class TestExport:

    def test_fresh_analytics(self, engine):
        a = engine.export_snapshot().analytics
        assert a.total_neurons == 13
        assert a.total_synapses == 21
        assert a.total_interactions == 0
        assert a.total_patterns == 0
        assert a.total_experience == 13
        assert a.dominant_category is NeuronCategory.PROCESSING
        strengths = [n.strength for n in engine.store.neurons.values()]
        assert a.average_strength == pytest.approx(np.mean(strengths))

    def test_dominant_category_follows_activity(self, engine, clock):
        _activate_all(engine, clock, ["emotion"] * 3)
        assert engine.export_snapshot().analytics.dominant_category is NeuronCategory.EMOTIONAL

    def test_session_time(self, engine):
        engine.tick_session()
        engine.tick_session(4)
        assert engine.export_snapshot().analytics.session_time == 5

    def test_json_round_trip(self, engine, clock):
        _activate_all(engine, clock, ["creativity", "memory", "logic"])
        assert decode_json(engine.export("json")) == engine.export_snapshot()

    def test_msgpack_round_trip(self, engine, clock):
        _activate_all(engine, clock, ["emotion"] * 3 + ["memory"] * 3)
        payload = engine.export("msgpack")
        assert isinstance(payload, bytes)
        assert decode_msgpack(payload) == engine.export_snapshot()

    def test_default_format_is_json(self, engine):
        assert isinstance(engine.export(), str)
        assert engine.export().lstrip().startswith("{")

    def test_unknown_format(self, engine):
        with pytest.raises(ValueError):
            engine.export("yaml")

    def test_snapshot_is_detached(self, engine, clock):
        snap = engine.export_snapshot()
        _activate_all(engine, clock, ["logic"])
        assert snap.neuron("logic").activation_count == 0
        assert snap.neuron(ROOT_NEURON_ID).active

    def test_save_export(self, engine, tmp_path):
        target = engine.save_export(tmp_path, "text")
        assert target.parent == tmp_path
        assert target.name.endswith(".txt")
        assert "NEURAL NETWORK EXPORT" in target.read_text(encoding="utf-8")


class TestInvariantsUnderRandomUse:

    @pytest.mark.parametrize("seed", [0, 7, 123])
    def test_bounds_hold(self, seed):
        rng = np.random.RandomState(seed)
        clock = FakeClock()
        engine = NeuralWebEngine(clock=clock, random_seed=seed)
        ids = list(engine.store.neurons)
        for _ in range(300):
            clock.advance(float(rng.randint(0, 60_000)))
            engine.activate(ids[rng.randint(len(ids))])
            if rng.random_sample() < 0.02:
                engine.reset()

        store = engine.store
        assert len(store.active_neuron_ids()) == 1
        for n in store.neurons.values():
            assert 0.3 <= n.strength <= 1.0
            assert 0.1 <= n.pulse_intensity <= 1.0
            assert n.experience_level == 1 + n.activation_count // 5
            assert len(n.adaptive_connections) <= 2
            assert not set(n.adaptive_connections) & set(n.base_connections)
            for other in n.adaptive_connections:
                assert store.has_synapse(n.neuron_id, other)
        for s in store.synapses.values():
            assert 0.0 <= s.strength <= 1.0
            assert 0.1 <= s.efficiency <= 1.0
            assert 0.1 <= s.adaptive_strength <= 1.0
            assert s.from_id != s.to_id
        for p in store.patterns.values():
            assert 0.3 <= p.strength <= 1.0
