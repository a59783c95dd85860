"""
Nagaitsev intrabeam scattering growth rates.

Implementation of S. Nagaitsev, PRST-AB 8, 064403 (2005): the
Bjorken-Mtingwa integrals are written in closed form with the symmetric
elliptic integral R_D (``scipy.special.elliprd``), which makes the model
fast enough to re-evaluate at every integration step. Vertical dispersion
is neglected.
"""

from typing import Tuple, Union
import logging
import math

import numpy as np
from scipy.special import elliprd

from ..constants import CLIGHT
from ..optics.lattice import TwissTable
from .coulomb_log import coulomb_log, tailcut_coulomb_log
from .types import GrowthRateContext, GrowthRates

logger = logging.getLogger(__name__)


def dispersion_phase(betx: np.ndarray, alfx: np.ndarray, dx: np.ndarray, dpx: np.ndarray) -> np.ndarray:
    """phi = D' + alpha D / beta, the dispersion slope term of the BM matrices."""
    return dpx + alfx * dx / betx


def nagaitsev_integrands(
    twiss: TwissTable, gamma: float, ex: float, ey: float, sige: float
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Per-element integrands of Nagaitsev's Eqs. (30)-(32).

    Returns:
        Tuple ``(ix, iy, iz)`` of arrays, one value per element
    """
    betx, bety, dx = twiss.betx, twiss.bety, twiss.dx
    sigx = np.sqrt(betx * ex + (dx * sige) ** 2)
    sigy = np.sqrt(bety * ey + (twiss.dy * sige) ** 2)
    phix = dispersion_phase(betx, twiss.alfx, dx, twiss.dpx)

    ax = betx / ex
    ay = bety / ey
    a_s = ax * (dx**2 / betx**2 + phix**2) + 1.0 / sige**2
    a1 = 0.5 * (ax + gamma**2 * a_s)
    a2 = 0.5 * (ax - gamma**2 * a_s)
    root = np.sqrt(a2**2 + gamma**2 * ax**2 * phix**2)

    # Eigenvalues of the BM L matrix
    lambda_1 = ay
    lambda_2 = a1 + root
    lambda_3 = a1 - root

    r1 = elliprd(1.0 / lambda_2, 1.0 / lambda_3, 1.0 / lambda_1) / lambda_1
    r2 = elliprd(1.0 / lambda_3, 1.0 / lambda_1, 1.0 / lambda_2) / lambda_2
    r3 = 3.0 * np.sqrt(lambda_1 * lambda_2 / lambda_3) - lambda_1 * r1 / lambda_3 - lambda_2 * r2 / lambda_3

    sp = 0.5 * gamma**2 * (2.0 * r1 - r2 * (1.0 - 3.0 * a2 / root) - r3 * (1.0 + 3.0 * a2 / root))
    sx = 0.5 * (2.0 * r1 - r2 * (1.0 + 3.0 * a2 / root) - r3 * (1.0 - 3.0 * a2 / root))
    sxp = 3.0 * gamma**2 * phix**2 * ax * (r3 - r2) / root

    size = sigx * sigy
    ix = betx / size * (sx + sp * (dx**2 / betx**2 + phix**2) + sxp)
    iy = bety / size * (r2 + r3 - 2.0 * r1)
    iz = sp / size
    return ix, iy, iz


def nagaitsev_rates(
    ex: float,
    ey: float,
    sigs: float,
    sige: float,
    context: GrowthRateContext,
    log: Union[float, np.ndarray],
) -> GrowthRates:
    """
    Growth rates from the Nagaitsev integrals with a given Coulomb logarithm.

    Args:
        log: Scalar Coulomb logarithm or one value per element
    """
    lattice = context.lattice
    twiss = context.twiss
    ix, iy, iz = nagaitsev_integrands(twiss, lattice.gamma, ex, ey, sige)

    weights = twiss.weights
    circumference = np.sum(weights)
    constant = (
        context.particle_number * context.r0**2 * CLIGHT
        / (12.0 * math.pi * lattice.beta**3 * lattice.gamma**5 * sigs)
    )

    def ring_integral(values):
        return float(np.sum(values * log * weights) / circumference)

    # Emittance and sige^2 rates halved into amplitude rates
    aex = 0.5 * constant * ring_integral(ix) / ex
    aey = 0.5 * constant * ring_integral(iy) / ey
    aes = 0.5 * constant * ring_integral(iz) / sige**2
    return GrowthRates(aes, aex, aey)


def nagaitsev(ex: float, ey: float, sigs: float, sige: float, context: GrowthRateContext) -> GrowthRates:
    """Nagaitsev rates with the MAD-X Coulomb logarithm."""
    log = coulomb_log(context.lattice, context.twiss, context.particle_number, ex, ey, sigs, sige)
    return nagaitsev_rates(ex, ey, sigs, sige, context, log)


def nagaitsev_tailcut(ex: float, ey: float, sigs: float, sige: float, context: GrowthRateContext) -> GrowthRates:
    """Nagaitsev rates with the tail-cut Coulomb logarithm of every element."""
    log = tailcut_coulomb_log(
        context.lattice, context.twiss, context.particle_number, ex, ey, sigs, sige, context.tau_x
    )
    return nagaitsev_rates(ex, ey, sigs, sige, context, log)
