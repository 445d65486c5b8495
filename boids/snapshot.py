"""Read-only render snapshots of agent state."""

import numpy as np

SNAPSHOT_STRIDE = 8
DEFAULT_HEADING = (0.0, 0.0, 1.0)
MIN_HEADING_SPEED_SQ = 0.01


def pack_snapshot(positions: np.ndarray, velocities: np.ndarray) -> np.ndarray:
    """
    Pack agent state into a flat float32 array for a renderer.

    Layout per agent (stride 8): px, py, pz, 1.0, vx, vy, vz, 0.0.
    The returned array is marked read-only.

    Args:
        positions: (n, 3) agent positions
        velocities: (n, 3) agent velocities

    Returns:
        (n, 8) float32 array
    """
    count = positions.shape[0]
    packed = np.zeros((count, SNAPSHOT_STRIDE), dtype=np.float32)
    packed[:, 0:3] = positions
    packed[:, 3] = 1.0
    packed[:, 4:7] = velocities
    packed.flags.writeable = False
    return packed


def headings(snapshot: np.ndarray) -> np.ndarray:
    """
    Unit travel directions for orienting instanced meshes.

    Agents slower than sqrt(MIN_HEADING_SPEED_SQ) keep DEFAULT_HEADING.
    """
    velocities = snapshot[:, 4:7].astype(np.float64)
    speed_sq = np.einsum("ij,ij->i", velocities, velocities)
    moving = speed_sq > MIN_HEADING_SPEED_SQ

    result = np.tile(np.array(DEFAULT_HEADING, dtype=np.float64), (snapshot.shape[0], 1))
    result[moving] = velocities[moving] / np.sqrt(speed_sq[moving])[:, None]
    return result
