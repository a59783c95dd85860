"""
Physical constants used throughout ibsode.

Values come from ``scipy.constants`` (CODATA). Masses are kept in GeV to
match the units of MAD-X twiss headers.
"""

import math

from scipy import constants as _codata

CLIGHT = _codata.c
"""Speed of light in m/s."""

ELECTRON_MASS_GEV = _codata.physical_constants["electron mass energy equivalent in MeV"][0] * 1e-3
PROTON_MASS_GEV = _codata.physical_constants["proton mass energy equivalent in MeV"][0] * 1e-3

CLASSICAL_ELECTRON_RADIUS = _codata.physical_constants["classical electron radius"][0]

# Classical radius of a unit-charge particle with the proton mass
CLASSICAL_PROTON_RADIUS = CLASSICAL_ELECTRON_RADIUS * ELECTRON_MASS_GEV / PROTON_MASS_GEV

HBAR_C_EV_M = _codata.hbar * _codata.c / _codata.e
"""Reduced Planck constant times c in eV·m."""

CQ_PREFACTOR = 55.0 / (32.0 * math.sqrt(3.0))

# Hard safety cap on adaptive integration steps
MAX_STEPS = 10000

# Initial guess for the synchronous phase search, in degrees
SYNCHRONOUS_PHASE_GUESS_DEG = 173.0
SYNCHRONOUS_PHASE_TOLERANCE = 1.0e-6


def quantum_constant(mass_gev: float) -> float:
    """
    Quantum excitation constant Cq = 55/(32 sqrt 3) * hbar c / (m c^2).

    Args:
        mass_gev: Particle rest energy in GeV

    Returns:
        Cq in m (3.832e-13 m for electrons)
    """
    return CQ_PREFACTOR * HBAR_C_EV_M / (mass_gev * 1e9)
