from __future__ import annotations

import numpy as np
import pytest

from boids import SteeringBehaviour

ORIGIN = np.zeros(3)
NO_NEIGHBOURS = np.zeros((0, 3))


def test_zero_neighbours_give_zero_steering():
    steering = SteeringBehaviour(max_force=0.05)
    assert np.array_equal(steering.total_steering(ORIGIN, NO_NEIGHBOURS, NO_NEIGHBOURS), np.zeros(3))
    assert np.array_equal(steering.separation(ORIGIN, NO_NEIGHBOURS), np.zeros(3))
    assert np.array_equal(steering.alignment(NO_NEIGHBOURS), np.zeros(3))
    assert np.array_equal(steering.cohesion(ORIGIN, NO_NEIGHBOURS), np.zeros(3))


def test_separation_points_away_from_single_neighbour():
    result = SteeringBehaviour().separation(ORIGIN, [[1.0, 0.0, 0.0]])
    assert np.any(result != 0.0)
    assert result[0] < 0.0


def test_separation_scales_with_crowd():
    steering = SteeringBehaviour()
    one = steering.separation(ORIGIN, [[1.0, 0.0, 0.0]])
    two = steering.separation(ORIGIN, [[1.0, 0.0, 0.0], [1.0, 0.0, 0.0]])
    assert np.allclose(two, 2.0 * one)


def test_separation_skips_neighbours_outside_separation_radius():
    steering = SteeringBehaviour(separation_radius=2.0)
    result = steering.separation(ORIGIN, [[1.0, 0.0, 0.0], [0.0, 3.0, 0.0]])
    assert np.array_equal(result, [-1.0, 0.0, 0.0])


def test_separation_radius_is_inclusive():
    steering = SteeringBehaviour(separation_radius=2.0)
    assert np.array_equal(steering.separation(ORIGIN, [[0.0, 0.0, 2.0]]), [0.0, 0.0, -2.0])


def test_alignment_is_mean_velocity():
    result = SteeringBehaviour().alignment([[1.0, 0.0, 0.0], [0.0, 2.0, 0.0]])
    assert np.allclose(result, [0.5, 1.0, 0.0])


def test_cohesion_points_toward_centroid():
    position = np.array([1.0, 1.0, 1.0])
    result = SteeringBehaviour().cohesion(position, [[3.0, 1.0, 1.0], [3.0, 3.0, 1.0]])
    assert np.allclose(result, [2.0, 1.0, 0.0])


def test_each_rule_is_clamped_to_max_force_before_weighting():
    steering = SteeringBehaviour(separation_weight=1.5, alignment_weight=1.0, cohesion_weight=1.0, max_force=0.05)
    neighbour_positions = [[1.0, 0.0, 0.0]]
    neighbour_velocities = [[0.0, 3.0, 0.0]]

    result = steering.total_steering(ORIGIN, neighbour_positions, neighbour_velocities)

    # separation (-1,0,0) -> -0.05 * 1.5, cohesion (1,0,0) -> 0.05, alignment (0,3,0) -> 0.05
    assert np.allclose(result, [-0.025, 0.05, 0.0])


def test_weights_scale_rules():
    neighbour_positions = [[0.0, 0.0, 2.0]]
    neighbour_velocities = [[0.0, 0.0, 0.0]]
    only_cohesion = SteeringBehaviour(separation_weight=0.0, alignment_weight=0.0, cohesion_weight=2.0)

    result = only_cohesion.total_steering(ORIGIN, neighbour_positions, neighbour_velocities)

    assert np.allclose(result, [0.0, 0.0, 4.0])


def test_coincident_neighbour_gives_finite_steering():
    steering = SteeringBehaviour(max_force=0.05)
    result = steering.total_steering(ORIGIN, [[0.0, 0.0, 0.0]], [[0.0, 0.0, 0.0]])
    assert np.all(np.isfinite(result))
    assert np.array_equal(result, np.zeros(3))


@pytest.mark.parametrize("count", [1, 5, 40])
def test_total_steering_magnitude_is_bounded(rng, count):
    steering = SteeringBehaviour(1.5, 1.0, 1.0, max_force=0.1)
    result = steering.total_steering(
        rng.normal(size=3),
        rng.normal(scale=10.0, size=(count, 3)),
        rng.normal(scale=10.0, size=(count, 3)),
    )
    assert np.linalg.norm(result) <= 0.1 * (1.5 + 1.0 + 1.0) + 1e-12
