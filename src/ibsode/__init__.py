"""
ibsode - Intrabeam scattering and radiation damping emittance evolution

Integrates the horizontal and vertical emittances, bunch length and energy
spread of a stored bunch under synchrotron radiation damping, quantum
excitation and intrabeam scattering.
"""

import logging

from .exceptions import (
    SimulationError,
    ConfigurationError,
    LatticeInputError,
    EquilibriumError,
    UnsupportedModelError,
    GrowthRateError,
    NumericalDegeneracyError,
)
from .optics import LatticeSummary, TwissTable, RFConfiguration, EquilibriumParameters, compute_equilibrium
from .growth_rates import GrowthRates, GrowthRateContext, GrowthRateRegistry, IBSModel, default_registry
from .simulators import (
    BeamHistory,
    BeamState,
    EvolutionMonitor,
    EvolutionResult,
    IBSIntegrator,
    IntegrationConfig,
    IntegrationScheme,
    ProgressMonitor,
    StopReason,
    evolve_fixed_steps,
    evolve_to_equilibrium,
)

__version__ = "0.1.0"

__all__ = [
    'LatticeSummary',
    'TwissTable',
    'RFConfiguration',
    'EquilibriumParameters',
    'compute_equilibrium',
    'GrowthRates',
    'GrowthRateContext',
    'GrowthRateRegistry',
    'IBSModel',
    'default_registry',
    'BeamHistory',
    'BeamState',
    'EvolutionMonitor',
    'EvolutionResult',
    'IBSIntegrator',
    'IntegrationConfig',
    'IntegrationScheme',
    'ProgressMonitor',
    'StopReason',
    'evolve_fixed_steps',
    'evolve_to_equilibrium',
    'SimulationError',
    'ConfigurationError',
    'LatticeInputError',
    'EquilibriumError',
    'UnsupportedModelError',
    'GrowthRateError',
    'NumericalDegeneracyError',
]

logging.getLogger(__name__).addHandler(logging.NullHandler())
