"""
Optics and radiation data structures for ibsode.

Machine description, radiation integrals, RF relations and the radiation
equilibrium consumed by the emittance integrators.
"""

from .lattice import LatticeSummary, TwissTable
from .radiation import RadiationIntegrals, radiation_integrals_per_element
from .longitudinal import (
    RFConfiguration,
    radiation_loss_per_turn,
    sige_from_rf_and_sigs,
    sige_from_sigs,
    sigs_from_sige,
    slip_factor,
    synchronous_phase,
    synchrotron_tune,
)
from .equilibrium import EquilibriumParameters, compute_equilibrium, coupled_vertical_target

__all__ = [
    'LatticeSummary',
    'TwissTable',
    'RadiationIntegrals',
    'radiation_integrals_per_element',
    'RFConfiguration',
    'radiation_loss_per_turn',
    'sige_from_rf_and_sigs',
    'sige_from_sigs',
    'sigs_from_sige',
    'slip_factor',
    'synchronous_phase',
    'synchrotron_tune',
    'EquilibriumParameters',
    'compute_equilibrium',
    'coupled_vertical_target',
]
