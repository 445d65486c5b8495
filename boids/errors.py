"""Errors raised by the flocking engine."""


class FlockError(Exception):
    """Base class for flocking engine errors."""


class ConfigurationError(FlockError, ValueError):
    """Invalid construction parameter or malformed agent buffer."""


class CapacityError(FlockError, ValueError):
    """Population exceeds the capacity the spatial hash was sized for."""
