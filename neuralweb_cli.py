#!/usr/bin/env python3
"""
neuralweb_cli.py: Replay a sequence of activations headlessly.

Builds an engine on the seed topology, activates the given neurons in order
on a simulated clock, then prints or saves the resulting export.

Usage:
    python3 neuralweb_cli.py creativity memory memory logic
    python3 neuralweb_cli.py emotion emotion emotion --format json --output out.json
    python3 neuralweb_cli.py logic --step-ms 45000 --no-learning --seed 7
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import List, Optional

from web_config import EXPORT_FORMATS, ConfigError, load_web_config
from web_engine import NeuralWebEngine
from web_monitoring import health_context

logger = logging.getLogger("neuralweb.cli")


class SimulatedClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: float) -> None:
        self.now = start_ms

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


def replay(
    neuron_ids: List[str],
    step_ms: float = 1000.0,
    learning: bool = True,
    seed: Optional[int] = None,
    config_path: Optional[str] = None,
) -> NeuralWebEngine:
    """Run ``neuron_ids`` through a fresh engine, ``step_ms`` apart."""
    cfg = load_web_config(config_path=config_path)
    clock = SimulatedClock(time.time() * 1000.0)
    engine = NeuralWebEngine(cfg, clock=clock, random_seed=seed)
    engine.set_learning_enabled(learning)
    for nid in neuron_ids:
        clock.advance(step_ms)
        engine.tick_session(max(1, int(step_ms // 1000)))
        engine.activate(nid)
    logger.info("Replayed %d activation(s): %s", len(neuron_ids), health_context(engine))
    return engine


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Replay neuron activations and export the learned network"
    )
    parser.add_argument(
        "neurons",
        nargs="*",
        help="Neuron ids to activate, in order",
    )
    parser.add_argument(
        "--step-ms",
        type=float,
        default=1000.0,
        help="Simulated milliseconds between activations",
    )
    parser.add_argument(
        "--format",
        choices=EXPORT_FORMATS,
        default="text",
        help="Export format",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Write the export to this file or directory instead of stdout",
    )
    parser.add_argument(
        "--no-learning",
        action="store_true",
        help="Activate without running the learning rules",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for the initial distribution",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log learning events",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        engine = replay(
            args.neurons,
            step_ms=args.step_ms,
            learning=not args.no_learning,
            seed=args.seed,
            config_path=args.config,
        )
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    if args.output:
        target = engine.save_export(args.output, args.format)
        print(f"Export written to {target}")
        return 0

    if args.format == "msgpack":
        logger.error("msgpack output needs --output")
        return 2

    sys.stdout.write(engine.export(args.format))
    if args.format == "json":
        sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
