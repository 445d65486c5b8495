"""Reynolds steering rules (separation, alignment, cohesion)."""

import math
import numpy as np
from numba import njit

from .boid import limit_magnitude


# ============================================================================
# NUMBA JIT-COMPILED RULES
# ============================================================================
#
# Every rule walks `neighbours[:count]` in order, so sums are reproducible for
# a fixed neighbour list. The caller excludes the agent itself.

@njit(cache=True)
def separation(
    px: float, py: float, pz: float,
    positions: np.ndarray,
    neighbours: np.ndarray,
    count: int,
    separation_radius_sq: float
):
    """
    Sum of offsets to the agent from each neighbour within the separation
    radius; points away from the crowd.
    """
    sx, sy, sz = 0.0, 0.0, 0.0
    for k in range(count):
        j = neighbours[k]
        dx = px - positions[j, 0]
        dy = py - positions[j, 1]
        dz = pz - positions[j, 2]
        if dx * dx + dy * dy + dz * dz <= separation_radius_sq:
            sx += dx
            sy += dy
            sz += dz
    return sx, sy, sz


@njit(cache=True)
def alignment(velocities: np.ndarray, neighbours: np.ndarray, count: int):
    """Mean neighbour velocity."""
    if count == 0:
        return 0.0, 0.0, 0.0

    ax, ay, az = 0.0, 0.0, 0.0
    for k in range(count):
        j = neighbours[k]
        ax += velocities[j, 0]
        ay += velocities[j, 1]
        az += velocities[j, 2]
    return ax / count, ay / count, az / count


@njit(cache=True)
def cohesion(
    px: float, py: float, pz: float,
    positions: np.ndarray,
    neighbours: np.ndarray,
    count: int
):
    """Offset from the agent to the neighbour centroid."""
    if count == 0:
        return 0.0, 0.0, 0.0

    cx, cy, cz = 0.0, 0.0, 0.0
    for k in range(count):
        j = neighbours[k]
        cx += positions[j, 0]
        cy += positions[j, 1]
        cz += positions[j, 2]
    return cx / count - px, cy / count - py, cz / count - pz


@njit(cache=True)
def total_steering(
    px: float, py: float, pz: float,
    positions: np.ndarray,
    velocities: np.ndarray,
    neighbours: np.ndarray,
    count: int,
    separation_weight: float,
    alignment_weight: float,
    cohesion_weight: float,
    max_force: float,
    separation_radius_sq: float
):
    """Weighted sum of the three rules, each clamped to `max_force` first."""
    if count == 0:
        return 0.0, 0.0, 0.0

    sx, sy, sz = separation(px, py, pz, positions, neighbours, count, separation_radius_sq)
    sx, sy, sz = limit_magnitude(sx, sy, sz, max_force)

    ax, ay, az = alignment(velocities, neighbours, count)
    ax, ay, az = limit_magnitude(ax, ay, az, max_force)

    cx, cy, cz = cohesion(px, py, pz, positions, neighbours, count)
    cx, cy, cz = limit_magnitude(cx, cy, cz, max_force)

    return (
        sx * separation_weight + ax * alignment_weight + cx * cohesion_weight,
        sy * separation_weight + ay * alignment_weight + cy * cohesion_weight,
        sz * separation_weight + az * alignment_weight + cz * cohesion_weight,
    )


# ============================================================================
# STEERING BEHAVIOUR CLASS
# ============================================================================

def _as_rows(values) -> np.ndarray:
    array = np.ascontiguousarray(values, dtype=np.float64)
    return array.reshape(-1, 3)


class SteeringBehaviour:
    """
    Steering rules evaluated against an explicit neighbour set.

    Takes neighbour positions/velocities as (k, 3) arrays and runs the same
    kernels the simulation uses per agent.
    """

    def __init__(
        self,
        separation_weight: float = 1.5,
        alignment_weight: float = 1.0,
        cohesion_weight: float = 1.0,
        max_force: float = math.inf,
        separation_radius: float = math.inf
    ):
        self.separation_weight = float(separation_weight)
        self.alignment_weight = float(alignment_weight)
        self.cohesion_weight = float(cohesion_weight)
        self.max_force = float(max_force)
        self.separation_radius = float(separation_radius)

    def separation(self, position, neighbour_positions) -> np.ndarray:
        rows = _as_rows(neighbour_positions)
        px, py, pz = (float(c) for c in position)
        return np.array(separation(
            px, py, pz, rows, np.arange(len(rows)), len(rows), self.separation_radius ** 2
        ))

    def alignment(self, neighbour_velocities) -> np.ndarray:
        rows = _as_rows(neighbour_velocities)
        return np.array(alignment(rows, np.arange(len(rows)), len(rows)))

    def cohesion(self, position, neighbour_positions) -> np.ndarray:
        rows = _as_rows(neighbour_positions)
        px, py, pz = (float(c) for c in position)
        return np.array(cohesion(px, py, pz, rows, np.arange(len(rows)), len(rows)))

    def total_steering(self, position, neighbour_positions, neighbour_velocities) -> np.ndarray:
        """Combined steering acceleration; zero when there are no neighbours."""
        positions = _as_rows(neighbour_positions)
        velocities = _as_rows(neighbour_velocities)
        px, py, pz = (float(c) for c in position)
        return np.array(total_steering(
            px, py, pz,
            positions,
            velocities,
            np.arange(len(positions)),
            len(positions),
            self.separation_weight,
            self.alignment_weight,
            self.cohesion_weight,
            self.max_force,
            self.separation_radius ** 2
        ))
