from __future__ import annotations

import numpy as np
import pytest

from boids import AgentBuffer, Boid, ConfigurationError
from boids.boid import clamp_speeds, limit_magnitude, wall_avoidance, wrap_coordinate


def test_apply_force_accumulates_until_integrate():
    boid = Boid(max_speed=10.0)
    boid.apply_force(np.array([1.0, 0.0, 0.0]))
    boid.apply_force(np.array([0.0, 2.0, 0.0]))
    assert np.array_equal(boid.acceleration, [1.0, 2.0, 0.0])

    boid.integrate()

    assert np.array_equal(boid.velocity, [1.0, 2.0, 0.0])
    assert np.array_equal(boid.position, [1.0, 2.0, 0.0])
    assert np.array_equal(boid.acceleration, np.zeros(3))


def test_integrate_clamps_magnitude_not_components():
    boid = Boid(velocity=[4.0, 4.0, 4.0], max_speed=5.0)
    boid.integrate()

    assert np.linalg.norm(boid.velocity) == pytest.approx(5.0)
    # Direction is kept, so a componentwise clamp at 5 would have left (4, 4, 4)
    assert boid.velocity[0] == pytest.approx(boid.velocity[1])
    assert boid.velocity[0] == pytest.approx(5.0 / np.sqrt(3.0))


def test_integrate_leaves_slow_velocity_untouched():
    boid = Boid(position=[1.0, 1.0, 1.0], velocity=[0.5, 0.0, -0.5], max_speed=5.0)
    boid.integrate()
    assert np.array_equal(boid.velocity, [0.5, 0.0, -0.5])
    assert np.array_equal(boid.position, [1.5, 1.0, 0.5])


def test_wrap_bounds_teleports_to_opposite_face():
    boid = Boid(position=[-0.1, 10.5, 5.0])
    boid.wrap_bounds(10.0, 10.0, 10.0)
    assert np.array_equal(boid.position, [10.0, 0.0, 5.0])


def test_wrap_bounds_ignores_exact_boundary_values():
    boid = Boid(position=[0.0, 10.0, 10.0])
    boid.wrap_bounds(10.0, 10.0, 20.0)
    assert np.array_equal(boid.position, [0.0, 10.0, 10.0])


def test_wrap_coordinate_edges():
    assert wrap_coordinate(0.0, 5.0) == 0.0
    assert wrap_coordinate(5.0, 5.0) == 5.0
    assert wrap_coordinate(-1e-9, 5.0) == 5.0
    assert wrap_coordinate(5.0 + 1e-9, 5.0) == 0.0


def test_limit_magnitude_handles_zero_vector():
    assert limit_magnitude(0.0, 0.0, 0.0, 1.0) == (0.0, 0.0, 0.0)


def test_limit_magnitude_never_exceeds_limit(rng):
    vectors = rng.normal(scale=3.0, size=(2000, 3))
    for x, y, z in vectors:
        rx, ry, rz = limit_magnitude(x, y, z, 0.7)
        assert np.sqrt(rx * rx + ry * ry + rz * rz) <= 0.7


def test_clamp_speeds_bounds_every_row_exactly(rng):
    velocities = rng.uniform(-2.0, 2.0, size=(2000, 3))
    slow = np.linalg.norm(velocities, axis=1) <= 0.7
    untouched = velocities[slow].copy()

    clamp_speeds(velocities, 0.7)

    assert np.all(np.linalg.norm(velocities, axis=1) <= 0.7)
    assert np.array_equal(velocities[slow], untouched)


def test_wall_avoidance_pushes_inward():
    assert wall_avoidance(10.0, 100.0, 50.0, 0.5) == pytest.approx(20.0)
    assert wall_avoidance(95.0, 100.0, 50.0, 0.5) == pytest.approx(-22.5)
    assert wall_avoidance(50.0, 200.0, 50.0, 0.5) == 0.0


def test_agent_buffer_defaults_accelerations_to_zero():
    buffer = AgentBuffer(np.ones((4, 3)), np.zeros((4, 3)))
    assert len(buffer) == 4
    assert buffer.count == 4
    assert buffer.accelerations.shape == (4, 3)
    assert not buffer.accelerations.any()


def test_agent_buffer_rejects_bad_shapes():
    with pytest.raises(ConfigurationError):
        AgentBuffer(np.zeros((4, 2)), np.zeros((4, 2)))
    with pytest.raises(ConfigurationError):
        AgentBuffer(np.zeros((4, 3)), np.zeros((3, 3)))


def test_agent_buffer_round_trips_boids():
    boids = [
        Boid(position=[1.0, 2.0, 3.0], velocity=[0.1, 0.0, 0.0]),
        Boid(position=[4.0, 5.0, 6.0], velocity=[0.0, 0.2, 0.0]),
    ]
    buffer = AgentBuffer.from_boids(boids)

    second = buffer.boid(1)
    assert np.array_equal(second.position, [4.0, 5.0, 6.0])
    assert np.array_equal(second.velocity, [0.0, 0.2, 0.0])

    second.position[0] = 99.0
    assert buffer.positions[1, 0] == 4.0


def test_agent_buffer_from_no_boids_is_empty():
    assert len(AgentBuffer.from_boids([])) == 0
