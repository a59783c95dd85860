"""
ibsode emittance integrators.

This package advances the beam moments (ex, ey, sigs, sige) of a stored
bunch under radiation damping, quantum excitation and intrabeam scattering
until they settle or a fixed number of steps is done.

Key Components:
- IBSIntegrator: Integration core shared by both entry points
- StepSizeEstimator: Step size and step budget from the physical timescales
- ConvergenceMonitor: Termination predicate of the loop
- DerivativeScheme / RelaxationScheme: One-step update rules
- EvolutionMonitor: Callback interface for progress reporting

Example Usage:
    from ibsode.simulators import evolve_to_equilibrium, BeamState

    result = evolve_to_equilibrium(
        header, twiss_columns, ([400], [2.0]),
        BeamState(t=0.0, ex=5e-9, ey=5e-11, sigs=3e-3),
        model=4, particle_number=1e10,
    )
    print(result.converged, result.final_state)
"""

from .types import (
    # Enums
    IntegrationScheme,
    StopReason,

    # Data models
    ThresholdPolicy,
    FixedStepPolicy,
    IntegrationConfig,
    BeamState,
    BeamHistory,
    EvolutionResult,

    # Exceptions
    SimulationError,
    ConfigurationError,
    LatticeInputError,
    EquilibriumError,
    UnsupportedModelError,
    GrowthRateError,
    NumericalDegeneracyError,
)

from .base import EvolutionMonitor, ProgressMonitor
from .step_size import StepSizeEstimator
from .convergence import ConvergenceMonitor
from .schemes import DerivativeScheme, RelaxationScheme, SteppingScheme, create_scheme
from .integrator import IBSIntegrator, evolve_fixed_steps, evolve_to_equilibrium

# Public API
__all__ = [
    # Core classes
    "IBSIntegrator",
    "StepSizeEstimator",
    "ConvergenceMonitor",
    "SteppingScheme",
    "DerivativeScheme",
    "RelaxationScheme",
    "create_scheme",

    # Entry points
    "evolve_to_equilibrium",
    "evolve_fixed_steps",

    # Monitoring
    "EvolutionMonitor",
    "ProgressMonitor",

    # Types and enums
    "IntegrationScheme",
    "StopReason",

    # Data models
    "ThresholdPolicy",
    "FixedStepPolicy",
    "IntegrationConfig",
    "BeamState",
    "BeamHistory",
    "EvolutionResult",

    # Exceptions
    "SimulationError",
    "ConfigurationError",
    "LatticeInputError",
    "EquilibriumError",
    "UnsupportedModelError",
    "GrowthRateError",
    "NumericalDegeneracyError",
]

# Initialize logging for the package
import logging
logging.getLogger(__name__).addHandler(logging.NullHandler())
