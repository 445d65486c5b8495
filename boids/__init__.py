"""3D boids flocking engine: spatial hashing, steering rules and the tick driver."""

from .boid import AgentBuffer, Boid
from .errors import CapacityError, ConfigurationError, FlockError
from .simulation import FlockSimulation, SimulationPhase
from .snapshot import headings, pack_snapshot
from .spatial_hash import SpatialHash
from .steering import SteeringBehaviour

__all__ = [
    "AgentBuffer",
    "Boid",
    "CapacityError",
    "ConfigurationError",
    "FlockError",
    "FlockSimulation",
    "SimulationPhase",
    "SpatialHash",
    "SteeringBehaviour",
    "headings",
    "pack_snapshot",
]
