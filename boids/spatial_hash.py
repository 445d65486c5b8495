"""
Uniform-grid spatial hash for radius neighbour queries.

Positions are bucketed by integer grid cell. Cells are hashed into a table of
2x the agent capacity, and the table is laid out CSR-style:

- cell_start[h] .. cell_start[h + 1] is the slice of cell_entries holding the
  agent indices whose cell hashes to h
- cell_start[table_size] == number of agents indexed

Distinct cells may share a bucket; queries filter by exact distance so
collisions cost time, never correctness.
"""

import math
import numpy as np
from numba import njit

from .errors import CapacityError, ConfigurationError


HASH_PRIME_X = 92837111
HASH_PRIME_Y = 689287499
HASH_PRIME_Z = 283923481

MAX_QUERY_STAMP = 2147483647  # int32 marks wrap here and are cleared


# ============================================================================
# NUMBA JIT-COMPILED HASH TABLE FUNCTIONS
# ============================================================================

@njit(cache=True)
def int_coord(value: float, spacing: float) -> int:
    """Integer grid coordinate of one axis."""
    return int(math.floor(value / spacing))


@njit(cache=True)
def hash_cell(xi: int, yi: int, zi: int, table_size: int) -> int:
    """Hash integer cell coordinates to a bucket in [0, table_size)."""
    h = (xi * HASH_PRIME_X) ^ (yi * HASH_PRIME_Y) ^ (zi * HASH_PRIME_Z)
    # Fold to signed 32 bits
    h = ((h + 2147483648) & 0xFFFFFFFF) - 2147483648
    return abs(h) % table_size


@njit(cache=True)
def hash_position(x: float, y: float, z: float, spacing: float, table_size: int) -> int:
    return hash_cell(
        int_coord(x, spacing),
        int_coord(y, spacing),
        int_coord(z, spacing),
        table_size
    )


@njit(cache=True)
def build_table(
    positions: np.ndarray,
    num_objects: int,
    spacing: float,
    table_size: int,
    cell_start: np.ndarray,
    cell_entries: np.ndarray
):
    """
    Counting-sort agent indices into buckets.

    Single-threaded: the decrement-and-place pass races if split across threads.
    """
    for h in range(table_size + 1):
        cell_start[h] = 0

    # Count agents per bucket
    for i in range(num_objects):
        h = hash_position(positions[i, 0], positions[i, 1], positions[i, 2], spacing, table_size)
        cell_start[h] += 1

    # Running totals, cell_start[h] becomes the end of bucket h
    start = 0
    for h in range(table_size):
        start += cell_start[h]
        cell_start[h] = start
    cell_start[table_size] = start

    # Fill entries, each decrement walks an end back to its start
    for i in range(num_objects):
        h = hash_position(positions[i, 0], positions[i, 1], positions[i, 2], spacing, table_size)
        cell_start[h] -= 1
        cell_entries[cell_start[h]] = i


@njit(cache=True)
def next_query_stamp(bucket_marks: np.ndarray, table_size: int) -> int:
    """
    Advance the stamp kept in `bucket_marks[table_size]`.

    A bucket is visited by the current query when its mark equals the stamp,
    so the marks never need clearing between queries.
    """
    stamp = bucket_marks[table_size] + 1
    if stamp >= MAX_QUERY_STAMP:
        bucket_marks[:] = 0
        stamp = 1
    bucket_marks[table_size] = stamp
    return stamp


@njit(cache=True)
def scan_entries(
    positions: np.ndarray,
    px: float,
    py: float,
    pz: float,
    max_dist_sq: float,
    cell_entries: np.ndarray,
    begin: int,
    end: int,
    out: np.ndarray,
    found: int
) -> int:
    """Append entries[begin:end] within range to `out`; returns the new count."""
    for k in range(begin, end):
        j = cell_entries[k]
        dx = positions[j, 0] - px
        dy = positions[j, 1] - py
        dz = positions[j, 2] - pz
        if dx * dx + dy * dy + dz * dz <= max_dist_sq:
            out[found] = j
            found += 1
    return found


@njit(cache=True)
def query_table(
    positions: np.ndarray,
    px: float,
    py: float,
    pz: float,
    max_dist: float,
    spacing: float,
    table_size: int,
    cell_start: np.ndarray,
    cell_entries: np.ndarray,
    bucket_marks: np.ndarray,
    out: np.ndarray
) -> int:
    """
    Write indices of agents within `max_dist` of (px, py, pz) into `out`.

    Cells are scanned in x, y, z order and each bucket is visited once even
    when several covered cells hash to it, so no index is reported twice.
    When the query covers at least as many cells as there are buckets, every
    bucket is scanned once in table order instead.

    `bucket_marks` is int32 scratch of length table_size + 1 owned by the
    caller; one array must not be shared by concurrent queries.
    Returns the number of indices written.
    """
    min_x = int_coord(px - max_dist, spacing)
    min_y = int_coord(py - max_dist, spacing)
    min_z = int_coord(pz - max_dist, spacing)
    max_x = int_coord(px + max_dist, spacing)
    max_y = int_coord(py + max_dist, spacing)
    max_z = int_coord(pz + max_dist, spacing)

    max_dist_sq = max_dist * max_dist
    num_cells = float(max_x - min_x + 1) * float(max_y - min_y + 1) * float(max_z - min_z + 1)

    if num_cells >= table_size:
        return scan_entries(
            positions, px, py, pz, max_dist_sq,
            cell_entries, 0, cell_start[table_size], out, 0
        )

    stamp = next_query_stamp(bucket_marks, table_size)
    found = 0

    for xi in range(min_x, max_x + 1):
        for yi in range(min_y, max_y + 1):
            for zi in range(min_z, max_z + 1):
                h = hash_cell(xi, yi, zi, table_size)
                if bucket_marks[h] == stamp:
                    continue
                bucket_marks[h] = stamp

                found = scan_entries(
                    positions, px, py, pz, max_dist_sq,
                    cell_entries, cell_start[h], cell_start[h + 1], out, found
                )

    return found


# ============================================================================
# SPATIAL HASH CLASS
# ============================================================================

class SpatialHash:
    """
    Spatial hash sized once for `max_num_objects` agents and rebuilt every tick.

    The backing arrays are reused across builds. `build` must finish before any
    `query`. `query` reuses one set of bucket marks, so concurrent callers go
    through `query_table` with their own row from `new_bucket_marks`.
    """

    def __init__(self, spacing: float, max_num_objects: int):
        if max_num_objects <= 0:
            raise ConfigurationError(f"max_num_objects must be positive, got {max_num_objects}")
        if not spacing > 0:
            raise ConfigurationError(f"spacing must be positive, got {spacing}")

        self.spacing = float(spacing)
        self.max_num_objects = int(max_num_objects)
        self.table_size = 2 * self.max_num_objects
        self.cell_start = np.zeros(self.table_size + 1, dtype=np.int64)
        self.cell_entries = np.zeros(self.max_num_objects, dtype=np.int64)
        self.num_objects = 0
        self.bucket_marks = self.new_bucket_marks()

    def new_bucket_marks(self, rows: int = None) -> np.ndarray:
        """
        Zeroed int32 visit marks for `query_table`, one row per concurrent caller.

        The last slot of each row holds that row's running query stamp.
        """
        shape = self.table_size + 1 if rows is None else (rows, self.table_size + 1)
        return np.zeros(shape, dtype=np.int32)

    def int_coord(self, position) -> tuple:
        return tuple(int_coord(float(c), self.spacing) for c in position)

    def hash_coords(self, position) -> int:
        """Bucket index of the cell containing `position`."""
        xi, yi, zi = self.int_coord(position)
        return hash_cell(xi, yi, zi, self.table_size)

    def bucket(self, h: int) -> np.ndarray:
        """Agent indices stored in bucket `h`."""
        return self.cell_entries[self.cell_start[h]:self.cell_start[h + 1]]

    def build(self, positions: np.ndarray):
        """Index every row of `positions`."""
        num_objects = positions.shape[0]
        if num_objects > self.max_num_objects:
            raise CapacityError(
                f"{num_objects:,} agents exceed spatial hash capacity of {self.max_num_objects:,}"
            )

        build_table(
            positions,
            num_objects,
            self.spacing,
            self.table_size,
            self.cell_start,
            self.cell_entries
        )
        self.num_objects = num_objects

    def query(self, positions: np.ndarray, point, max_dist: float) -> np.ndarray:
        """
        Indices of all indexed agents within `max_dist` of `point`.

        Args:
            positions: The positions the table was built from
            point: Query center
            max_dist: Query radius (inclusive)

        Returns:
            int64 array of agent indices in cell-scan order. The agent at
            `point`, if any, is included.
        """
        if max_dist < 0:
            raise ConfigurationError(f"max_dist must be non-negative, got {max_dist}")
        if positions.shape[0] < self.num_objects:
            raise ConfigurationError(
                f"positions has {positions.shape[0]} rows but {self.num_objects} agents are indexed"
            )

        out = np.empty(self.num_objects, dtype=np.int64)
        found = query_table(
            positions,
            float(point[0]), float(point[1]), float(point[2]),
            float(max_dist),
            self.spacing,
            self.table_size,
            self.cell_start,
            self.cell_entries,
            self.bucket_marks,
            out
        )
        return out[:found]

    @staticmethod
    def brute_force_query(positions: np.ndarray, point, max_dist: float) -> np.ndarray:
        """O(n) reference query over every agent."""
        offsets = positions - np.asarray(point, dtype=np.float64)
        dist_sq = np.einsum("ij,ij->i", offsets, offsets)
        return np.nonzero(dist_sq <= max_dist * max_dist)[0]
