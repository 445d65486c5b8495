"""Configuration for the 3D boids flocking engine."""

SIMULATION = {
    "count": 5000,
    "max_agents": 5000,            # Spatial hash capacity (table size is 2x this)
    "cell_size": 25.0,             # Grid resolution, keep close to neighbour_radius
    "neighbour_radius": 25.0,      # How far boids can see neighbours
    "max_speed": 5.0,
    "max_force": 0.05,
    "bounding_size": (1000.0, 600.0, 600.0),
    "initial_speed": 2.0,          # Initial velocity components in [-v, v]
    "workers": None,               # None = numba default thread count
    "seed": None,
}

STEERING = {
    "separation_weight": 1.5,      # Avoid crowding
    "alignment_weight": 1.0,       # Match neighbour velocities
    "cohesion_weight": 1.0,        # Move toward group center
    "separation_radius": 15.0,     # Only closer neighbours push apart
}

BOUNDARY = {
    "mode": "wrap",                # "wrap", "avoid" or "none"
    "wall_margin": 50.0,           # Distance from a face to start turning
    "wall_force": 0.5,
}

RUN = {
    "ticks": 500,
    "report_every": 100,
}
