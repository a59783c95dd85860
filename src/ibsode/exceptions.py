"""
Exception hierarchy for ibsode.

Every error raised on purpose by the package derives from
:class:`SimulationError`, so callers can catch a single base class.
"""


class SimulationError(Exception):
    """Base exception class for simulation errors."""
    pass


class ConfigurationError(SimulationError):
    """Raised when a configuration cannot be loaded or repaired."""
    pass


class LatticeInputError(SimulationError):
    """Raised when the twiss header or optics table is incomplete or inconsistent."""
    pass


class EquilibriumError(SimulationError):
    """Raised when the radiation equilibrium cannot be computed."""
    pass


class UnsupportedModelError(SimulationError):
    """Raised when no growth-rate evaluator is registered for a model id."""
    pass


class GrowthRateError(SimulationError):
    """Raised when a growth-rate evaluator fails or returns non-finite rates."""
    pass


class NumericalDegeneracyError(SimulationError):
    """Raised when the beam state degenerates (non-positive or non-finite values)."""
    pass
