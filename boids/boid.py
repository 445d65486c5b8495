"""Agent state: single boid records, flat agent buffers and integration kernels."""

import math
import numpy as np
from dataclasses import dataclass, field
from numba import njit, prange

from .errors import ConfigurationError
from .snapshot import pack_snapshot


BOUNDARY_NONE = 0
BOUNDARY_WRAP = 1
BOUNDARY_AVOID = 2

BOUNDARY_MODES = {
    "none": BOUNDARY_NONE,
    "wrap": BOUNDARY_WRAP,
    "avoid": BOUNDARY_AVOID,
}


# ============================================================================
# NUMBA JIT-COMPILED KINEMATICS
# ============================================================================

@njit(cache=True)
def limit_magnitude(x: float, y: float, z: float, limit: float):
    """Scale (x, y, z) down to `limit` length if it is longer."""
    mag = math.sqrt(x * x + y * y + z * z)
    if mag > limit:
        scale = limit / mag
        rx, ry, rz = x * scale, y * scale, z * scale
        # Rounding can leave the result an ulp past the limit
        while math.sqrt(rx * rx + ry * ry + rz * rz) > limit:
            scale = np.nextafter(scale, 0.0)
            rx, ry, rz = x * scale, y * scale, z * scale
        return rx, ry, rz
    return x, y, z


@njit(parallel=True, cache=True)
def clamp_speeds(velocities: np.ndarray, max_speed: float):
    """Limit every row of `velocities` to `max_speed` in place."""
    for i in prange(velocities.shape[0]):
        vx, vy, vz = limit_magnitude(velocities[i, 0], velocities[i, 1], velocities[i, 2], max_speed)
        velocities[i, 0] = vx
        velocities[i, 1] = vy
        velocities[i, 2] = vz


@njit(cache=True)
def wrap_coordinate(value: float, dimension: float) -> float:
    """Teleport a coordinate that left [0, dimension] to the opposite face."""
    if value < 0.0:
        return dimension
    if value > dimension:
        return 0.0
    return value


@njit(cache=True)
def wall_avoidance(value: float, dimension: float, margin: float, force: float) -> float:
    """Steering along one axis pushing a coordinate back inside the margin."""
    if value < margin:
        return (margin - value) * force
    if value > dimension - margin:
        return (dimension - margin - value) * force
    return 0.0


@njit(parallel=True, cache=True)
def integrate_agents(
    positions: np.ndarray,
    velocities: np.ndarray,
    next_positions: np.ndarray,
    next_velocities: np.ndarray,
    next_accelerations: np.ndarray,
    num_agents: int,
    max_speed: float,
    boundary_mode: int,
    bounds: np.ndarray,
    wall_margin: float,
    wall_force: float
):
    """
    Advance every agent by one tick.

    Reads the previous frame from `positions`/`velocities` and the accumulated
    steering from `next_accelerations`; writes only slot i of the next buffer.
    """
    for i in prange(num_agents):
        ax = next_accelerations[i, 0]
        ay = next_accelerations[i, 1]
        az = next_accelerations[i, 2]

        if boundary_mode == BOUNDARY_AVOID:
            ax += wall_avoidance(positions[i, 0], bounds[0], wall_margin, wall_force)
            ay += wall_avoidance(positions[i, 1], bounds[1], wall_margin, wall_force)
            az += wall_avoidance(positions[i, 2], bounds[2], wall_margin, wall_force)

        vx, vy, vz = limit_magnitude(
            velocities[i, 0] + ax,
            velocities[i, 1] + ay,
            velocities[i, 2] + az,
            max_speed
        )

        px = positions[i, 0] + vx
        py = positions[i, 1] + vy
        pz = positions[i, 2] + vz

        if boundary_mode == BOUNDARY_WRAP:
            px = wrap_coordinate(px, bounds[0])
            py = wrap_coordinate(py, bounds[1])
            pz = wrap_coordinate(pz, bounds[2])

        next_velocities[i, 0] = vx
        next_velocities[i, 1] = vy
        next_velocities[i, 2] = vz
        next_positions[i, 0] = px
        next_positions[i, 1] = py
        next_positions[i, 2] = pz

        next_accelerations[i, 0] = 0.0
        next_accelerations[i, 1] = 0.0
        next_accelerations[i, 2] = 0.0


# ============================================================================
# BOID RECORD
# ============================================================================

@dataclass(eq=False)
class Boid:
    """
    A single boid (bird-oid object) in the simulation.

    Attributes:
        position: 3D position vector
        velocity: 3D velocity vector
        acceleration: 3D acceleration vector (reset each tick)
        max_speed: Maximum velocity magnitude
    """
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    acceleration: np.ndarray = field(default_factory=lambda: np.zeros(3))
    max_speed: float = 5.0

    def __post_init__(self):
        self.position = np.array(self.position, dtype=np.float64)
        self.velocity = np.array(self.velocity, dtype=np.float64)
        self.acceleration = np.array(self.acceleration, dtype=np.float64)

    def apply_force(self, force: np.ndarray):
        """Add a force to the boid's acceleration."""
        self.acceleration += force

    def integrate(self):
        """Update velocity and position from the accumulated acceleration."""
        vx, vy, vz = limit_magnitude(
            self.velocity[0] + self.acceleration[0],
            self.velocity[1] + self.acceleration[1],
            self.velocity[2] + self.acceleration[2],
            self.max_speed
        )
        self.velocity = np.array([vx, vy, vz])
        self.position = self.position + self.velocity

        # Reset acceleration for next tick
        self.acceleration = np.zeros(3)

    def wrap_bounds(self, width: float, height: float, depth: float):
        """Wrap the position around the [0, width] x [0, height] x [0, depth] box."""
        for axis, dimension in enumerate((width, height, depth)):
            self.position[axis] = wrap_coordinate(self.position[axis], dimension)


# ============================================================================
# AGENT BUFFER
# ============================================================================

def _as_vectors(name: str, values, count=None) -> np.ndarray:
    array = np.ascontiguousarray(values, dtype=np.float64)
    if array.ndim != 2 or array.shape[1] != 3:
        raise ConfigurationError(f"{name} must have shape (n, 3), got {array.shape}")
    if count is not None and array.shape[0] != count:
        raise ConfigurationError(f"{name} has {array.shape[0]} rows, expected {count}")
    return array


@dataclass(eq=False)
class AgentBuffer:
    """
    Struct-of-arrays state for a whole population.

    Attributes:
        positions: (n, 3) float64 positions
        velocities: (n, 3) float64 velocities
        accelerations: (n, 3) float64 transient force accumulator
    """
    positions: np.ndarray
    velocities: np.ndarray
    accelerations: np.ndarray = None

    def __post_init__(self):
        self.positions = _as_vectors("positions", self.positions)
        count = self.positions.shape[0]
        self.velocities = _as_vectors("velocities", self.velocities, count)
        if self.accelerations is None:
            self.accelerations = np.zeros((count, 3), dtype=np.float64)
        else:
            self.accelerations = _as_vectors("accelerations", self.accelerations, count)

    @classmethod
    def empty(cls, count: int) -> "AgentBuffer":
        """Allocate a zeroed buffer for `count` agents."""
        return cls(
            np.zeros((count, 3), dtype=np.float64),
            np.zeros((count, 3), dtype=np.float64),
        )

    @classmethod
    def from_boids(cls, boids) -> "AgentBuffer":
        boids = list(boids)
        if not boids:
            return cls.empty(0)
        return cls(
            np.stack([b.position for b in boids]),
            np.stack([b.velocity for b in boids]),
            np.stack([b.acceleration for b in boids]),
        )

    def __len__(self) -> int:
        return self.positions.shape[0]

    @property
    def count(self) -> int:
        return self.positions.shape[0]

    def boid(self, index: int, max_speed: float = 5.0) -> Boid:
        """Copy one agent out as a `Boid` record."""
        return Boid(
            position=self.positions[index].copy(),
            velocity=self.velocities[index].copy(),
            acceleration=self.accelerations[index].copy(),
            max_speed=max_speed,
        )

    def copy(self) -> "AgentBuffer":
        return AgentBuffer(
            self.positions.copy(),
            self.velocities.copy(),
            self.accelerations.copy(),
        )

    def snapshot(self) -> np.ndarray:
        """Packed stride-8 float32 view for renderers."""
        return pack_snapshot(self.positions, self.velocities)
