"""
Flocking simulation step driver.

One tick:
1. Build   - copy positions to scratch, rebuild the spatial hash (single thread)
2. Compute - per agent, query neighbours and accumulate steering (prange)
3. Integrate - per agent, update velocity/position into the next buffer (prange)
4. Swap    - the next buffer becomes current

Every parallel task reads only the frozen current buffer and the finished hash,
and writes only its own slot of the next buffer.
"""

import numpy as np
import numba
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from numba import njit, prange

from config import boids as config
from .boid import AgentBuffer, BOUNDARY_MODES, clamp_speeds, integrate_agents
from .errors import CapacityError, ConfigurationError
from .snapshot import pack_snapshot, SNAPSHOT_STRIDE
from .spatial_hash import SpatialHash, query_table
from .steering import total_steering


INIT_CHUNK_SIZE = 4096  # Agents per independent initialisation generator


class SimulationPhase(Enum):
    IDLE = "idle"
    BUILDING = "building"
    COMPUTING = "computing"
    INTEGRATED = "integrated"


# ============================================================================
# NUMBA JIT-COMPILED COMPUTE PHASE
# ============================================================================

@njit(parallel=True, cache=True)
def compute_steering(
    positions: np.ndarray,
    velocities: np.ndarray,
    num_agents: int,
    spacing: float,
    table_size: int,
    cell_start: np.ndarray,
    cell_entries: np.ndarray,
    neighbour_radius: float,
    separation_weight: float,
    alignment_weight: float,
    cohesion_weight: float,
    max_force: float,
    separation_radius: float,
    neighbour_scratch: np.ndarray,
    bucket_marks: np.ndarray,
    next_accelerations: np.ndarray
):
    """
    Accumulate steering for every agent into `next_accelerations`.

    Agents are split into one contiguous chunk per scratch row so each worker
    owns a private neighbour list and bucket-mark row. Per-agent results do
    not depend on chunking.
    """
    num_chunks = neighbour_scratch.shape[0]
    chunk = (num_agents + num_chunks - 1) // num_chunks
    separation_radius_sq = separation_radius * separation_radius

    for c in prange(num_chunks):
        neighbours = neighbour_scratch[c]
        marks = bucket_marks[c]
        stop = min(num_agents, (c + 1) * chunk)

        for i in range(c * chunk, stop):
            px = positions[i, 0]
            py = positions[i, 1]
            pz = positions[i, 2]

            found = query_table(
                positions, px, py, pz, neighbour_radius,
                spacing, table_size, cell_start, cell_entries, marks, neighbours
            )

            # Drop the agent itself, keeping scan order
            count = 0
            for k in range(found):
                j = neighbours[k]
                if j != i:
                    neighbours[count] = j
                    count += 1

            fx, fy, fz = total_steering(
                px, py, pz, positions, velocities, neighbours, count,
                separation_weight, alignment_weight, cohesion_weight, max_force,
                separation_radius_sq
            )

            next_accelerations[i, 0] += fx
            next_accelerations[i, 1] += fy
            next_accelerations[i, 2] += fz


# ============================================================================
# VALIDATION HELPERS
# ============================================================================

def _require_positive(name: str, value) -> float:
    if not value > 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return float(value)


def _require_non_negative(name: str, value) -> float:
    if not value >= 0:
        raise ConfigurationError(f"{name} must be non-negative, got {value}")
    return float(value)


def _as_bounds(bounding_size) -> np.ndarray:
    try:
        bounds = np.broadcast_to(np.asarray(bounding_size, dtype=np.float64), (3,)).copy()
    except ValueError as e:
        raise ConfigurationError(f"bounding_size must be a scalar or 3 values, got {bounding_size}") from e
    if not np.all(bounds > 0):
        raise ConfigurationError(f"bounding_size must be positive on every axis, got {bounding_size}")
    return bounds


# ============================================================================
# FLOCK SIMULATION CLASS
# ============================================================================

class FlockSimulation:
    """
    Double-buffered flocking simulation over a fixed-capacity population.

    `step` writes into whichever owned buffer is not the one being read, so a
    buffer returned by `step` is overwritten two ticks later. Copy it if it
    must outlive that.

    Besides the two buffers, every worker keeps a neighbour list of
    max_agents int64 and a bucket-mark row of 2 * max_agents + 1 int32, about
    workers * max_agents * 16 bytes of scratch in total. Lower `workers` to
    trade throughput for memory at large capacities.

    `on_phase`, if given, is called with each SimulationPhase as `step`
    enters it (BUILDING, COMPUTING, INTEGRATED, then IDLE).
    """

    def __init__(
        self,
        max_agents: int,
        cell_size: float,
        neighbour_radius: float,
        max_speed: float,
        max_force: float,
        bounding_size,
        separation_weight: float = 1.5,
        alignment_weight: float = 1.0,
        cohesion_weight: float = 1.0,
        separation_radius: float = None,
        boundary_mode: str = "wrap",
        wall_margin: float = 50.0,
        wall_force: float = 0.5,
        initial_speed: float = 2.0,
        workers: int = None,
        seed: int = None,
        verbose: bool = True,
        on_phase=None
    ):
        if not max_agents > 0:
            raise ConfigurationError(f"max_agents must be positive, got {max_agents}")
        self.max_agents = int(max_agents)
        self.cell_size = _require_positive("cell_size", cell_size)
        self.neighbour_radius = _require_positive("neighbour_radius", neighbour_radius)
        self.max_speed = _require_positive("max_speed", max_speed)
        self.max_force = _require_positive("max_force", max_force)
        self.bounds = _as_bounds(bounding_size)

        # Flocking parameters
        self.separation_weight = _require_non_negative("separation_weight", separation_weight)
        self.alignment_weight = _require_non_negative("alignment_weight", alignment_weight)
        self.cohesion_weight = _require_non_negative("cohesion_weight", cohesion_weight)
        if separation_radius is None:
            separation_radius = self.neighbour_radius
        if not 0 < separation_radius <= self.neighbour_radius:
            raise ConfigurationError(
                f"separation_radius must be in (0, neighbour_radius={self.neighbour_radius}], "
                f"got {separation_radius}"
            )
        self.separation_radius = float(separation_radius)

        # Boundary handling
        if boundary_mode not in BOUNDARY_MODES:
            raise ConfigurationError(
                f"boundary_mode must be one of {sorted(BOUNDARY_MODES)}, got {boundary_mode!r}"
            )
        self.boundary_mode = boundary_mode
        self.wall_margin = _require_non_negative("wall_margin", wall_margin)
        self.wall_force = _require_non_negative("wall_force", wall_force)
        self.initial_speed = _require_non_negative("initial_speed", initial_speed)

        max_workers = numba.config.NUMBA_NUM_THREADS
        if workers is None:
            workers = max_workers
        if not 1 <= workers <= max_workers:
            raise ConfigurationError(f"workers must be between 1 and {max_workers}, got {workers}")
        self.workers = int(workers)
        self.seed = seed
        self.verbose = verbose
        self.on_phase = on_phase

        # Spatial hash and reusable scratch arrays
        self.spatial_hash = SpatialHash(self.cell_size, self.max_agents)
        self._scratch_positions = np.zeros((self.max_agents, 3), dtype=np.float64)
        self._neighbour_scratch = np.zeros((self.workers, self.max_agents), dtype=np.int64)
        self._bucket_marks = self.spatial_hash.new_bucket_marks(self.workers)

        # Double buffer
        self._front = None
        self._back = None
        self.current = None

        self.tick = 0
        self.phase = SimulationPhase.IDLE

        if self.verbose:
            print(
                f"[Boids] Engine ready: capacity {self.max_agents:,}, cell {self.cell_size}, "
                f"radius {self.neighbour_radius}, {self.workers} workers"
            )

    @classmethod
    def from_config(cls, **overrides) -> "FlockSimulation":
        """Build a simulation from `config.boids`, with keyword overrides."""
        settings = {k: v for k, v in config.SIMULATION.items() if k != "count"}
        settings.update(config.STEERING)
        settings["boundary_mode"] = config.BOUNDARY["mode"]
        settings["wall_margin"] = config.BOUNDARY["wall_margin"]
        settings["wall_force"] = config.BOUNDARY["wall_force"]
        settings.update(overrides)
        return cls(**settings)

    def initialize(self, count: int, bounding_size=None) -> AgentBuffer:
        """
        Create a random population.

        Positions are uniform in [0, size] per axis, velocity components uniform
        in [-initial_speed, initial_speed] and then speed-clamped. Each chunk of
        INIT_CHUNK_SIZE agents draws from its own generator spawned from the
        run seed, so the result depends on (seed, count) only.
        """
        if count < 0:
            raise ConfigurationError(f"count must be non-negative, got {count}")
        if count > self.max_agents:
            raise CapacityError(f"{count:,} agents exceed capacity of {self.max_agents:,}")

        bounds = self.bounds if bounding_size is None else _as_bounds(bounding_size)
        positions = np.empty((count, 3), dtype=np.float64)
        velocities = np.empty((count, 3), dtype=np.float64)

        starts = range(0, count, INIT_CHUNK_SIZE)
        generators = np.random.SeedSequence(self.seed).spawn(len(starts))

        def fill(start, seed_seq):
            rng = np.random.default_rng(seed_seq)
            stop = min(start + INIT_CHUNK_SIZE, count)
            n = stop - start
            positions[start:stop] = rng.uniform(0.0, bounds, size=(n, 3))
            velocities[start:stop] = rng.uniform(-self.initial_speed, self.initial_speed, size=(n, 3))

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            list(pool.map(fill, starts, generators))

        clamp_speeds(velocities, self.max_speed)

        buffer = AgentBuffer(positions, velocities)
        self._front = buffer
        self._back = None
        self.current = buffer
        self.tick = 0

        if self.verbose:
            print(f"[Boids] Initialized {count:,} agents")
        return buffer

    def _next_buffer(self, current: AgentBuffer) -> AgentBuffer:
        count = len(current)
        for candidate in (self._back, self._front):
            if candidate is not None and candidate is not current and len(candidate) == count:
                target = candidate
                break
        else:
            target = AgentBuffer.empty(count)

        if target is not self._front:
            self._back = self._front
            self._front = target
        return target

    def _enter_phase(self, phase: SimulationPhase):
        self.phase = phase
        if self.on_phase is not None:
            self.on_phase(phase)

    def step(self, current: AgentBuffer) -> AgentBuffer:
        """
        Advance `current` by one tick and return the next-state buffer.

        `current` is only read. Calling again with the same input gives the
        same output.
        """
        count = len(current)
        if count > self.max_agents:
            raise CapacityError(
                f"{count:,} agents exceed capacity of {self.max_agents:,}; "
                f"build a new simulation with a larger max_agents"
            )

        target = self._next_buffer(current)
        numba.set_num_threads(self.workers)

        try:
            self._enter_phase(SimulationPhase.BUILDING)
            positions = self._scratch_positions[:count]
            np.copyto(positions, current.positions)
            self.spatial_hash.build(positions)
            target.accelerations.fill(0.0)

            self._enter_phase(SimulationPhase.COMPUTING)
            compute_steering(
                positions,
                current.velocities,
                count,
                self.spatial_hash.spacing,
                self.spatial_hash.table_size,
                self.spatial_hash.cell_start,
                self.spatial_hash.cell_entries,
                self.neighbour_radius,
                self.separation_weight,
                self.alignment_weight,
                self.cohesion_weight,
                self.max_force,
                self.separation_radius,
                self._neighbour_scratch,
                self._bucket_marks,
                target.accelerations
            )

            integrate_agents(
                positions,
                current.velocities,
                target.positions,
                target.velocities,
                target.accelerations,
                count,
                self.max_speed,
                BOUNDARY_MODES[self.boundary_mode],
                self.bounds,
                self.wall_margin,
                self.wall_force
            )
            self._enter_phase(SimulationPhase.INTEGRATED)

            self.current = target
            self.tick += 1
        finally:
            self._enter_phase(SimulationPhase.IDLE)

        return target

    def snapshot(self) -> np.ndarray:
        """Read-only stride-8 snapshot of the latest completed state."""
        if self.current is None:
            return np.zeros((0, SNAPSHOT_STRIDE), dtype=np.float32)
        return pack_snapshot(self.current.positions, self.current.velocities)
