"""
Coulomb logarithm for intrabeam scattering.

:func:`coulomb_log` follows the MAD-X ``twclog`` prescription: the maximum
impact parameter is the smaller of the horizontal beam size and the Debye
length, the minimum one the larger of the classical distance of closest
approach and the quantum diffraction limit, all evaluated with ring-averaged
optics.

:func:`tailcut_coulomb_log` removes the rare large-angle collisions that
happen less than once per damping time by raising the minimum impact
parameter element by element, which yields one logarithm per element.
"""

from typing import Tuple
import logging
import math

import numpy as np

from ..constants import CLIGHT, HBAR_C_EV_M
from ..optics.lattice import LatticeSummary, TwissTable

logger = logging.getLogger(__name__)

# Coulomb constant e^2/(4 pi eps0) in eV·m
_COULOMB_EV_M = 1.44e-9

# sqrt(eps0 / e) factor of the Debye length for T in eV and n in m^-3
_DEBYE_FACTOR = 7434.0


def _transverse_energy(lattice: LatticeSummary, ex: float, mean_betx: float) -> float:
    """Transverse kinetic energy in eV, as used by MAD-X."""
    return 5.0e8 * (lattice.gamma * lattice.energy - lattice.mass) * (ex / mean_betx)


def _impact_parameters(
    lattice: LatticeSummary,
    particle_number: float,
    ex: float,
    sigx: np.ndarray,
    sigy: np.ndarray,
    sigs: float,
    mean_betx: float,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Maximum and minimum impact parameters and the particle density.

    Returns:
        Tuple ``(bmax, bmin, density)`` in m, m and m^-3
    """
    etrans = _transverse_energy(lattice, ex, mean_betx)
    temperature = 2.0 * etrans

    density = particle_number / (8.0 * math.pi**1.5 * sigx * sigy * sigs)
    debye = _DEBYE_FACTOR * np.sqrt(temperature / density) / abs(lattice.charge)

    rmin_classical = _COULOMB_EV_M * lattice.charge**2 / temperature
    rmin_quantum = HBAR_C_EV_M / (2.0 * math.sqrt(2.0 * etrans * lattice.mass * 1e9))

    bmax = np.minimum(sigx, debye)
    bmin = np.maximum(rmin_classical, rmin_quantum) * np.ones_like(bmax)
    return bmax, bmin, density


def coulomb_log(
    lattice: LatticeSummary,
    twiss: TwissTable,
    particle_number: float,
    ex: float,
    ey: float,
    sigs: float,
    sige: float,
) -> float:
    """
    Ring-averaged Coulomb logarithm ln(bmax / bmin).

    Args:
        lattice: Machine parameters
        twiss: Ring optics
        particle_number: Bunch population
        ex: Horizontal emittance in m
        ey: Vertical emittance in m
        sigs: Bunch length in m
        sige: Relative energy spread

    Returns:
        The dimensionless Coulomb logarithm
    """
    mean_betx = twiss.average(twiss.betx)
    mean_bety = twiss.average(twiss.bety)
    mean_dx = twiss.average(twiss.dx)
    mean_dy = twiss.average(twiss.dy)

    sigx = np.atleast_1d(math.sqrt(ex * mean_betx + (mean_dx * sige) ** 2))
    sigy = np.atleast_1d(math.sqrt(ey * mean_bety + (mean_dy * sige) ** 2))

    bmax, bmin, _ = _impact_parameters(lattice, particle_number, ex, sigx, sigy, sigs, mean_betx)
    return float(np.log(bmax[0] / bmin[0]))


def tailcut_coulomb_log(
    lattice: LatticeSummary,
    twiss: TwissTable,
    particle_number: float,
    ex: float,
    ey: float,
    sigs: float,
    sige: float,
    damping_time: float,
) -> np.ndarray:
    """
    Coulomb logarithm of every element with the distribution tails cut.

    Collisions with impact parameters so small that they occur less than
    once per damping time do not contribute to the core growth. In the beam
    frame that sets bmin >= sqrt(gamma / (pi n beta c sigma_x' tau)).

    Args:
        damping_time: Damping time defining the cut, in s (the horizontal
            one is used by the built-in models)

    Returns:
        Per-element logarithms, clipped at zero
    """
    mean_betx = twiss.average(twiss.betx)
    sigx = np.sqrt(ex * twiss.betx + (twiss.dx * sige) ** 2)
    sigy = np.sqrt(ey * twiss.bety + (twiss.dy * sige) ** 2)

    bmax, bmin, density = _impact_parameters(lattice, particle_number, ex, sigx, sigy, sigs, mean_betx)

    if math.isfinite(damping_time) and damping_time > 0:
        divergence = np.sqrt(ex / twiss.betx)
        btail = np.sqrt(lattice.gamma / (math.pi * density * lattice.beta * CLIGHT * divergence * damping_time))
        bmin = np.maximum(bmin, btail)

    return np.clip(np.log(bmax / bmin), 0.0, None)
