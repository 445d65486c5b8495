import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)


@pytest.fixture
def make_sim():
    from boids import FlockSimulation

    def factory(**overrides):
        settings = dict(
            max_agents=64,
            cell_size=5.0,
            neighbour_radius=5.0,
            max_speed=5.0,
            max_force=0.05,
            bounding_size=100.0,
            boundary_mode="none",
            seed=7,
            verbose=False,
        )
        settings.update(overrides)
        return FlockSimulation(**settings)

    return factory
