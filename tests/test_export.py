"""Tests for snapshots, analytics and the JSON / msgpack / text encodings."""

import json
import os
import sys

import msgpack
import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from web_export import (
    FORMAT_VERSION,
    SnapshotDecodeError,
    build_snapshot,
    decode_json,
    decode_msgpack,
    default_filename,
    dominant_category,
    encode_json,
    encode_msgpack,
    format_session_time,
    render_report,
    snapshot_to_dict,
    write_export,
)
from web_foundation import LearningPattern, Neuron, NeuronCategory
from web_seed import build_seed_store

NOW = 1_000_000.0


@pytest.fixture
def snapshot():
    store = build_seed_store(NOW, np.random.RandomState(0))
    patterns = [
        LearningPattern("welcome-logic", ("welcome", "logic"), "Welcome to the Neural Web → Logic Engine",
                        "Learned pathway between processing and analytical processing", 0.3, NOW),
        LearningPattern("logic-memory", ("logic", "memory"), "Logic Engine → Memory Palace",
                        "Learned pathway between analytical and memory processing", 0.7, NOW + 1000),
    ]
    return build_snapshot(
        store.neurons.values(), store.synapses.values(), patterns,
        total_interactions=4, session_time=125, now_ms=NOW,
    )


class TestDominantCategory:

    def test_single_leader(self):
        neurons = [
            Neuron("a", category=NeuronCategory.MEMORY, activation_count=4),
            Neuron("b", category=NeuronCategory.CREATIVE, activation_count=2),
            Neuron("c", category=NeuronCategory.CREATIVE, activation_count=1),
        ]
        assert dominant_category(neurons) is NeuronCategory.MEMORY

    def test_sum_per_category(self):
        neurons = [
            Neuron("a", category=NeuronCategory.MEMORY, activation_count=2),
            Neuron("b", category=NeuronCategory.CREATIVE, activation_count=2),
            Neuron("c", category=NeuronCategory.CREATIVE, activation_count=1),
        ]
        assert dominant_category(neurons) is NeuronCategory.CREATIVE

    def test_tie_falls_back_to_processing(self):
        neurons = [
            Neuron("a", category=NeuronCategory.MEMORY, activation_count=2),
            Neuron("b", category=NeuronCategory.EMOTIONAL, activation_count=2),
        ]
        assert dominant_category(neurons) is NeuronCategory.PROCESSING

    def test_no_activity(self):
        assert dominant_category([Neuron("a", category=NeuronCategory.MEMORY)]) is (
            NeuronCategory.PROCESSING
        )


class TestSnapshot:

    def test_analytics(self, snapshot):
        a = snapshot.analytics
        assert a.total_neurons == 13
        assert a.total_synapses == 21
        assert a.total_interactions == 4
        assert a.total_patterns == 2
        assert a.session_time == 125
        assert a.average_strength == pytest.approx(np.mean([n.strength for n in snapshot.neurons]))

    def test_exported_at_from_clock(self, snapshot):
        assert snapshot.exported_at == "1970-01-01T00:16:40+00:00"
        assert snapshot.version == FORMAT_VERSION

    def test_lookup_helpers(self, snapshot):
        assert snapshot.neuron("logic").title == "Logic Engine"
        assert snapshot.neuron("ghost") is None
        assert snapshot.pattern("logic-memory").strength == 0.7
        assert snapshot.pattern("ghost") is None

    def test_empty_snapshot(self):
        snap = build_snapshot([], [], [], now_ms=0.0)
        assert snap.analytics.average_strength == 0.0
        assert snap.analytics.total_neurons == 0


class TestStructuredEncoding:

    def test_envelope_keys(self, snapshot):
        data = snapshot_to_dict(snapshot)
        assert set(data) == {"version", "exportDate", "networkState", "analytics"}
        assert set(data["networkState"]) == {"neurons", "synapses", "learningPatterns"}
        assert data["analytics"]["dominantCategory"] == "processing"
        neuron = data["networkState"]["neurons"][0]
        assert neuron["id"] == "welcome"
        assert neuron["category"] == "processing"
        synapse = data["networkState"]["synapses"][0]
        assert (synapse["from"], synapse["to"]) == ("welcome", "creativity")

    def test_json_round_trip(self, snapshot):
        assert decode_json(encode_json(snapshot)) == snapshot

    def test_json_is_readable(self, snapshot):
        text = encode_json(snapshot)
        assert "Logic Engine → Memory Palace" in text
        assert json.loads(text)["version"] == "1.0"

    def test_msgpack_round_trip(self, snapshot):
        assert decode_msgpack(encode_msgpack(snapshot)) == snapshot

    def test_invalid_json(self):
        with pytest.raises(SnapshotDecodeError):
            decode_json("{not json")

    def test_wrong_version(self, snapshot):
        data = snapshot_to_dict(snapshot)
        data["version"] = "2.0"
        with pytest.raises(SnapshotDecodeError, match="version"):
            decode_json(json.dumps(data))

    def test_missing_key(self, snapshot):
        data = snapshot_to_dict(snapshot)
        del data["networkState"]["synapses"]
        with pytest.raises(SnapshotDecodeError):
            decode_json(json.dumps(data))

    def test_unknown_category(self, snapshot):
        data = snapshot_to_dict(snapshot)
        data["networkState"]["neurons"][0]["category"] = "mystical"
        with pytest.raises(SnapshotDecodeError):
            decode_json(json.dumps(data))

    def test_invalid_msgpack(self):
        with pytest.raises(SnapshotDecodeError):
            decode_msgpack(b"\xc1")

    def test_msgpack_not_a_mapping(self):
        with pytest.raises(SnapshotDecodeError):
            decode_msgpack(msgpack.packb([1, 2, 3]))

    def test_decode_error_is_value_error(self):
        assert issubclass(SnapshotDecodeError, ValueError)


class TestReport:

    def test_sections(self, snapshot):
        report = render_report(snapshot)
        for heading in ("NEURAL NETWORK EXPORT", "ANALYTICS", "NEURONS", "DISCOVERED PATTERNS"):
            assert heading in report

    def test_analytics_lines(self, snapshot):
        report = render_report(snapshot)
        assert "Session Time: 2:05" in report
        assert "Total Neurons: 13" in report
        assert "Total Interactions: 4" in report
        assert "Discovered Patterns: 2" in report
        assert "Dominant Neuron Type: processing" in report

    def test_neuron_line(self, snapshot):
        report = render_report(snapshot)
        assert "Welcome to the Neural Web (processing): Level 1, Strength 100%, Activations 1" in report

    def test_patterns_sorted_by_strength(self, snapshot):
        report = render_report(snapshot)
        assert report.index("Logic Engine → Memory Palace") < report.index(
            "Welcome to the Neural Web → Logic Engine"
        )
        assert "Strength 70%" in report

    def test_session_time_format(self):
        assert format_session_time(0) == "0:00"
        assert format_session_time(59) == "0:59"
        assert format_session_time(3601) == "60:01"


class TestWriteExport:

    def test_default_filename(self):
        assert default_filename("json", 1234.9) == "neural-network-export-1234.json"
        assert default_filename("text", 5) == "neural-network-export-5.txt"

    def test_directory_target(self, snapshot, tmp_path):
        target = write_export(snapshot, tmp_path, "json")
        assert target == tmp_path / "neural-network-export-1000000.json"
        assert decode_json(target.read_text(encoding="utf-8")) == snapshot

    def test_file_target_creates_parents(self, snapshot, tmp_path):
        target = write_export(snapshot, tmp_path / "nested" / "net.msgpack", "msgpack")
        assert target.exists()
        assert decode_msgpack(target.read_bytes()) == snapshot

    def test_text_target(self, snapshot, tmp_path):
        target = write_export(snapshot, tmp_path / "report.txt", "text")
        assert target.read_text(encoding="utf-8").startswith("NEURAL NETWORK EXPORT")

    def test_unknown_format(self, snapshot, tmp_path):
        with pytest.raises(ValueError):
            write_export(snapshot, tmp_path, "yaml")
