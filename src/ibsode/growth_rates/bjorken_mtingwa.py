"""
Bjorken-Mtingwa family of intrabeam scattering growth rates.

The general form (Kubo, Mtingwa, Wolski, PRST-AB 8, 081001 (2005)) is

    1/T_i = 4 pi A (log) < int_0^inf dl l^(1/2) / det(L + l I)^(1/2)
            * { Tr L_i Tr (L + l I)^-1 - 3 Tr [L_i (L + l I)^-1] } >

with A = r0^2 c N / (64 pi^2 beta^3 gamma^4 ex ey sigs sige) and the
symmetric matrices L = L_p + L_x + L_y built from the local optics. Each
element's L is diagonalized once per evaluation, which turns the traces into
sums over eigenvalues; the lambda integral is done in log(lambda) with
``scipy.integrate.quad_vec`` for all elements and planes at once.

The variants differ in which dispersion terms enter L, whether the optics
are averaged over each element and how the Coulomb logarithm is formed.
The Conte-Martini models use the high-energy closed form of K. Bane
(EPAC 2002), to which the general integral reduces when gamma^2 sige^2 is
large compared to the transverse angular spreads.
"""

from typing import Tuple, Union
import logging
import math

import numpy as np
from scipy import integrate

from ..constants import CLIGHT
from ..optics.lattice import TwissTable
from .coulomb_log import coulomb_log, tailcut_coulomb_log
from .nagaitsev import dispersion_phase
from .types import GrowthRateContext, GrowthRates

logger = logging.getLogger(__name__)

# Extent of the log(lambda) integration beyond the eigenvalue range
_LOG_MARGIN_LOW = 25.0
_LOG_MARGIN_HIGH = 45.0


def bm_matrices(
    twiss: TwissTable,
    gamma: float,
    ex: float,
    ey: float,
    sige: float,
    vertical_dispersion: bool = True,
    dispersion_slope: bool = True,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Build the plane matrices L_p, L_x, L_y of every element.

    Coordinates are ordered (x', delta, y').

    Args:
        twiss: Optics at the evaluation points
        gamma: Relativistic gamma
        ex, ey, sige: Current beam state
        vertical_dispersion: Include the vertical dispersion terms
        dispersion_slope: Include D' (through phi and H); if False the
            dispersion invariant reduces to D^2/beta

    Returns:
        Tuple of three arrays of shape (n, 3, 3)
    """
    n = twiss.n_elements
    betx, bety = twiss.betx, twiss.bety

    if dispersion_slope:
        phix = dispersion_phase(betx, twiss.alfx, twiss.dx, twiss.dpx)
        hx = twiss.curly_h_x()
    else:
        phix = np.zeros(n)
        hx = twiss.dx**2 / betx

    if vertical_dispersion and dispersion_slope:
        phiy = dispersion_phase(bety, twiss.alfy, twiss.dy, twiss.dpy)
        hy = twiss.curly_h_y()
    elif vertical_dispersion:
        phiy = np.zeros(n)
        hy = twiss.dy**2 / bety
    else:
        phiy = np.zeros(n)
        hy = np.zeros(n)

    l_p = np.zeros((n, 3, 3))
    l_p[:, 1, 1] = gamma**2 / sige**2

    l_x = np.zeros((n, 3, 3))
    scale_x = betx / ex
    l_x[:, 0, 0] = scale_x
    l_x[:, 0, 1] = l_x[:, 1, 0] = -gamma * phix * scale_x
    l_x[:, 1, 1] = gamma**2 * hx / ex

    l_y = np.zeros((n, 3, 3))
    scale_y = bety / ey
    l_y[:, 2, 2] = scale_y
    l_y[:, 1, 2] = l_y[:, 2, 1] = -gamma * phiy * scale_y
    l_y[:, 1, 1] = gamma**2 * hy / ey

    return l_p, l_x, l_y


def bm_integrals(l_p: np.ndarray, l_x: np.ndarray, l_y: np.ndarray) -> np.ndarray:
    """
    Evaluate the lambda integrals of the three planes for every element.

    Returns:
        Array of shape (3, n), planes ordered (p, x, y)
    """
    total = l_p + l_x + l_y
    mu, vectors = np.linalg.eigh(total)

    planes = np.stack([l_p, l_x, l_y])
    traces = np.trace(planes, axis1=2, axis2=3)
    # Diagonal of V^T L_i V for each plane, element and eigenvector
    projected = np.einsum("nak,pnab,nbk->pnk", vectors, planes, vectors)
    numerators = traces[:, :, None] - 3.0 * projected

    positive = mu[mu > 0]
    if positive.size == 0:
        raise ValueError("BM matrix has no positive eigenvalue")
    u_low = math.log(positive.min()) - _LOG_MARGIN_LOW
    u_high = math.log(positive.max()) + _LOG_MARGIN_HIGH

    def integrand(u):
        lam = math.exp(u)
        shifted = mu + lam
        prefactor = lam * math.sqrt(lam) / np.sqrt(np.prod(shifted, axis=1))
        return prefactor[None, :] * np.sum(numerators / shifted[None, :, :], axis=2)

    value, _ = integrate.quad_vec(integrand, u_low, u_high, epsrel=1e-7)
    return value


def bjorken_mtingwa_rates(
    ex: float,
    ey: float,
    sigs: float,
    sige: float,
    context: GrowthRateContext,
    twiss: TwissTable,
    log: Union[float, np.ndarray],
    vertical_dispersion: bool = True,
    dispersion_slope: bool = True,
) -> GrowthRates:
    """
    Ring-averaged BM growth rates for the given optics and Coulomb logarithm.

    Args:
        twiss: Optics at the evaluation points (may differ from context.twiss)
        log: Scalar Coulomb logarithm or one value per element
    """
    lattice = context.lattice
    gamma = lattice.gamma
    l_p, l_x, l_y = bm_matrices(twiss, gamma, ex, ey, sige, vertical_dispersion, dispersion_slope)
    values = bm_integrals(l_p, l_x, l_y)

    constant = (
        context.r0**2 * CLIGHT * context.particle_number
        / (64.0 * math.pi**2 * lattice.beta**3 * gamma**4 * ex * ey * sigs * sige)
    )
    weights = twiss.weights
    averages = np.sum(values * log * weights, axis=1) / np.sum(weights)
    aes, aex, aey = 4.0 * math.pi * constant * averages
    return GrowthRates(float(aes), float(aex), float(aey))


def _madx_log(ex, ey, sigs, sige, context):
    return coulomb_log(context.lattice, context.twiss, context.particle_number, ex, ey, sigs, sige)


def _tailcut_log(ex, ey, sigs, sige, context, twiss=None):
    return tailcut_coulomb_log(
        context.lattice, twiss if twiss is not None else context.twiss,
        context.particle_number, ex, ey, sigs, sige, context.tau_x,
    )


def madx(ex: float, ey: float, sigs: float, sige: float, context: GrowthRateContext) -> GrowthRates:
    """BM rates including vertical dispersion, as computed by MAD-X."""
    log = _madx_log(ex, ey, sigs, sige, context)
    return bjorken_mtingwa_rates(ex, ey, sigs, sige, context, context.twiss, log)


def madx_tailcut(ex: float, ey: float, sigs: float, sige: float, context: GrowthRateContext) -> GrowthRates:
    log = _tailcut_log(ex, ey, sigs, sige, context)
    return bjorken_mtingwa_rates(ex, ey, sigs, sige, context, context.twiss, log)


def madx_averaged(ex: float, ey: float, sigs: float, sige: float, context: GrowthRateContext) -> GrowthRates:
    """MAD-X rates with optics averaged between element entrance and exit."""
    log = _madx_log(ex, ey, sigs, sige, context)
    return bjorken_mtingwa_rates(ex, ey, sigs, sige, context, context.twiss.averaged(), log)


def bjorken_mtingwa2(ex: float, ey: float, sigs: float, sige: float, context: GrowthRateContext) -> GrowthRates:
    """BM rates with horizontal dispersion only and the dispersion slope neglected."""
    log = _madx_log(ex, ey, sigs, sige, context)
    return bjorken_mtingwa_rates(
        ex, ey, sigs, sige, context, context.twiss, log,
        vertical_dispersion=False, dispersion_slope=False,
    )


def bjorken_mtingwa(ex: float, ey: float, sigs: float, sige: float, context: GrowthRateContext) -> GrowthRates:
    """BM rates with horizontal dispersion and its slope."""
    log = _madx_log(ex, ey, sigs, sige, context)
    return bjorken_mtingwa_rates(
        ex, ey, sigs, sige, context, context.twiss, log, vertical_dispersion=False
    )


def bjorken_mtingwa_tailcut(
    ex: float, ey: float, sigs: float, sige: float, context: GrowthRateContext
) -> GrowthRates:
    log = _tailcut_log(ex, ey, sigs, sige, context)
    return bjorken_mtingwa_rates(
        ex, ey, sigs, sige, context, context.twiss, log, vertical_dispersion=False
    )


def _bane_g(alpha: np.ndarray) -> np.ndarray:
    """Bane's fit g(alpha) = alpha^(0.021 - 0.044 ln alpha), with g(alpha) = g(1/alpha)."""
    alpha = np.where(alpha > 1.0, 1.0 / alpha, alpha)
    return alpha ** (0.021 - 0.044 * np.log(alpha))


def conte_martini_rates(
    ex: float,
    ey: float,
    sigs: float,
    sige: float,
    context: GrowthRateContext,
    log: Union[float, np.ndarray],
) -> GrowthRates:
    """
    High-energy growth rates with horizontal dispersion.

    1/T_p = r0^2 c N (log) / (16 gamma^3 ex^3/4 ey^3/4 sigs sige^3)
            < sigH g(a/b) (betx bety)^-1/4 >
    1/T_x = sige^2 / ex < ... H_x >
    """
    lattice = context.lattice
    twiss = context.twiss
    gamma = lattice.gamma

    hx = twiss.curly_h_x()
    sigh = 1.0 / np.sqrt(1.0 / sige**2 + hx / ex)
    a = sigh / gamma * np.sqrt(twiss.betx / ex)
    b = sigh / gamma * np.sqrt(twiss.bety / ey)
    kernel = sigh * _bane_g(a / b) * (twiss.betx * twiss.bety) ** -0.25 * log

    constant = (
        context.r0**2 * CLIGHT * context.particle_number
        / (16.0 * gamma**3 * ex**0.75 * ey**0.75 * sigs * sige**3)
    )
    weights = twiss.weights
    total = np.sum(weights)
    aes = constant * float(np.sum(kernel * weights) / total)
    aex = constant * sige**2 / ex * float(np.sum(kernel * hx * weights) / total)
    return GrowthRates(aes, aex, 0.0)


def conte_martini(ex: float, ey: float, sigs: float, sige: float, context: GrowthRateContext) -> GrowthRates:
    log = _madx_log(ex, ey, sigs, sige, context)
    return conte_martini_rates(ex, ey, sigs, sige, context, log)


def conte_martini_tailcut(
    ex: float, ey: float, sigs: float, sige: float, context: GrowthRateContext
) -> GrowthRates:
    log = _tailcut_log(ex, ey, sigs, sige, context)
    return conte_martini_rates(ex, ey, sigs, sige, context, log)
