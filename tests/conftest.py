"""
Shared fixtures: a small isomagnetic 3 GeV electron ring.

The ring has 48 cells of one 2 m sector bend followed by a 3 m drift
(240 m circumference) with constant optics, which makes the radiation
integrals easy to check by hand.
"""

import math

import numpy as np
import pytest

from ibsode.constants import ELECTRON_MASS_GEV
from ibsode.growth_rates import GrowthRateContext, GrowthRateRegistry, GrowthRates
from ibsode.optics import LatticeSummary, RFConfiguration, TwissTable, compute_equilibrium

N_CELLS = 48
BEND_LENGTH = 2.0
DRIFT_LENGTH = 3.0
BEND_ANGLE = 2.0 * math.pi / N_CELLS
ENERGY_GEV = 3.0

# Model id used for stub evaluators in custom registries
STUB_MODEL = 99


@pytest.fixture
def header():
    """MAD-X style twiss header of the test ring."""
    return {
        "GAMMA": ENERGY_GEV / ELECTRON_MASS_GEV,
        "PC": math.sqrt(ENERGY_GEV**2 - ELECTRON_MASS_GEV**2),
        "GAMMATR": 11.3,
        "MASS": ELECTRON_MASS_GEV,
        "CHARGE": -1.0,
        "Q1": 12.2,
        "Q2": 8.3,
        "LENGTH": N_CELLS * (BEND_LENGTH + DRIFT_LENGTH),
    }


@pytest.fixture
def twiss_columns():
    """Optics columns of the test ring, one bend and one drift per cell."""
    lengths = np.tile([BEND_LENGTH, DRIFT_LENGTH], N_CELLS)
    n = len(lengths)
    return {
        "S": np.cumsum(lengths),
        "L": lengths,
        "BETX": np.full(n, 5.0),
        "BETY": np.full(n, 10.0),
        "ALFX": np.zeros(n),
        "ALFY": np.zeros(n),
        "DX": np.full(n, 0.3),
        "DPX": np.zeros(n),
        "ANGLE": np.tile([BEND_ANGLE, 0.0], N_CELLS),
        "K1L": np.zeros(n),
    }


@pytest.fixture
def lattice(header):
    return LatticeSummary.from_header(header)


@pytest.fixture
def twiss(twiss_columns):
    return TwissTable.from_columns(twiss_columns)


@pytest.fixture
def rf():
    return RFConfiguration(harmonics=[400], voltages=[2.0])


@pytest.fixture
def equilibrium(lattice, twiss, rf):
    return compute_equilibrium(lattice, twiss, rf)


@pytest.fixture
def context(lattice, twiss, equilibrium):
    return GrowthRateContext(
        lattice=lattice,
        twiss=twiss,
        particle_number=1e10,
        tau_x=equilibrium.tau_x,
        tau_y=equilibrium.tau_y,
        tau_s=equilibrium.tau_s,
    )


@pytest.fixture
def beam(equilibrium):
    """Realistic beam moments near the natural equilibrium: (ex, ey, sigs, sige)."""
    return equilibrium.ex0, 0.01 * equilibrium.ex0, equilibrium.sigs_inf, equilibrium.sige0


@pytest.fixture
def stub_registry():
    """Factory of registries holding one stub model that always returns the given rates."""
    def make(rates: GrowthRates) -> GrowthRateRegistry:
        registry = GrowthRateRegistry()
        registry.register(STUB_MODEL, lambda ex, ey, sigs, sige, context: rates)
        return registry
    return make


@pytest.fixture
def zero_registry(stub_registry):
    return stub_registry(GrowthRates.zero())
