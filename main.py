"""
3D Boids Simulation - headless runner
=====================================

Runs the flocking engine without a window and reports throughput.
Rendering lives outside this package; it consumes `FlockSimulation.snapshot()`.

Usage:
    python main.py                          # Defaults from config/boids.py
    python main.py --agents 20k --ticks 300 # Override population and length
    python main.py --threads 4 --seed 7     # Fixed worker count and seed
    python main.py --boundary avoid         # Steer away from walls instead of wrapping
"""

import argparse
import time

import numpy as np

from boids import FlockSimulation, FlockError
from config import boids as config


def parse_number(value: str) -> int:
    """Parse number with optional suffix (k, m, K, M)."""
    value = value.strip().lower()
    multipliers = {'k': 1_000, 'm': 1_000_000}

    for suffix, mult in multipliers.items():
        if value.endswith(suffix):
            return int(float(value[:-1]) * mult)

    return int(value)


def run(sim: FlockSimulation, count: int, ticks: int, report_every: int) -> float:
    """Initialise `count` agents, advance `ticks` ticks and return the peak speed seen."""
    state = sim.initialize(count)
    peak_speed = 0.0

    start = time.perf_counter()
    window_start = start
    for tick in range(1, ticks + 1):
        state = sim.step(state)
        if count:
            peak_speed = max(peak_speed, float(np.linalg.norm(state.velocities, axis=1).max()))

        if report_every and tick % report_every == 0:
            now = time.perf_counter()
            rate = report_every / (now - window_start)
            window_start = now
            print(f"[Run] Tick {tick:,}/{ticks:,}  |  {rate:.1f} ticks/s  |  {rate * count:,.0f} agent-updates/s")

    elapsed = time.perf_counter() - start
    if ticks:
        print(f"[Run] {ticks:,} ticks in {elapsed:.2f}s ({ticks / elapsed:.1f} ticks/s)")
    return peak_speed


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Headless 3D boids flocking simulation")
    parser.add_argument("--agents", "-n", type=str, help="Number of agents (e.g., 5000, 20k)")
    parser.add_argument("--ticks", "-t", type=int, default=config.RUN["ticks"], help="Ticks to simulate")
    parser.add_argument("--report-every", type=int, default=config.RUN["report_every"], help="Ticks between reports (0 = off)")
    parser.add_argument("--threads", type=int, help="Worker threads (default: all)")
    parser.add_argument("--seed", type=int, help="Initialisation seed")
    parser.add_argument("--boundary", choices=["wrap", "avoid", "none"], help="Boundary handling")
    args = parser.parse_args(argv)

    count = config.SIMULATION["count"]
    if args.agents:
        try:
            count = parse_number(args.agents)
        except (ValueError, OverflowError):
            print(f"[Run] Invalid agents value: {args.agents}")
            return 2

    overrides = {"max_agents": max(count, 1)}
    if args.threads is not None:
        overrides["workers"] = args.threads
    if args.seed is not None:
        overrides["seed"] = args.seed
    if args.boundary:
        overrides["boundary_mode"] = args.boundary

    try:
        sim = FlockSimulation.from_config(**overrides)
        peak_speed = run(sim, count, args.ticks, args.report_every)
    except FlockError as e:
        print(f"[Run] Error: {e}")
        return 1

    print(f"[Run] Peak speed {peak_speed:.4f} (limit {sim.max_speed})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
