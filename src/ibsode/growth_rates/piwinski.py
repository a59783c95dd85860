"""
Piwinski intrabeam scattering growth rates.

The rates follow Piwinski's formalism in the notation of K. Bane (EPAC
2002), with the scattering function

    f(a, b, q) = 8 pi int_0^1 (1 - 3u^2) / (P Q)
                 * {2 ln[q/2 (1/P + 1/Q)] - 0.577...} du,
    P^2 = a^2 + (1 - a^2) u^2,  Q^2 = b^2 + (1 - b^2) u^2.

Three variants are provided: a smooth-ring approximation, the
element-by-element form with D^2/beta, and the modified form where D^2/beta
is replaced by the dispersion invariant H.
"""

from typing import Tuple
import logging
import math

import numpy as np
from scipy import integrate

from ..constants import CLIGHT
from .types import GrowthRateContext, GrowthRates

logger = logging.getLogger(__name__)

EULER_GAMMA = 0.5772156649015329


def scattering_function(a: np.ndarray, b: np.ndarray, q: np.ndarray) -> np.ndarray:
    """
    Evaluate Piwinski's f(a, b, q) for arrays of arguments.

    Args:
        a, b, q: Arrays of equal shape

    Returns:
        Array of f values with the shape of ``a``
    """
    a2 = a**2
    b2 = b**2

    def integrand(u):
        p = np.sqrt(a2 + (1.0 - a2) * u**2)
        qq = np.sqrt(b2 + (1.0 - b2) * u**2)
        return (1.0 - 3.0 * u**2) / (p * qq) * (2.0 * np.log(0.5 * q * (1.0 / p + 1.0 / qq)) - EULER_GAMMA)

    value, _ = integrate.quad_vec(integrand, 0.0, 1.0, epsrel=1e-8)
    return 8.0 * math.pi * value


def piwinski_rates(
    context: GrowthRateContext,
    ex: float,
    ey: float,
    sigs: float,
    sige: float,
    betx: np.ndarray,
    bety: np.ndarray,
    dispersion_x: np.ndarray,
    dispersion_y: np.ndarray,
    dy: np.ndarray,
    weights: np.ndarray,
) -> GrowthRates:
    """
    Ring-averaged Piwinski growth rates.

    Args:
        context: Run-constant inputs
        ex, ey, sigs, sige: Current beam state
        betx, bety: Beta functions at the evaluation points
        dispersion_x, dispersion_y: Dispersion terms (D^2/beta or H) per point
        dy: Vertical dispersion, used for the vertical beam size
        weights: Integration weights of the evaluation points

    Returns:
        Amplitude growth rates
    """
    lattice = context.lattice
    gamma = lattice.gamma
    beta = lattice.beta
    r0 = context.r0

    sigh = 1.0 / np.sqrt(1.0 / sige**2 + dispersion_x / ex + dispersion_y / ey)
    a = sigh / gamma * np.sqrt(betx / ex)
    b = sigh / gamma * np.sqrt(bety / ey)
    sigy = np.sqrt(ey * bety + (dy * sige) ** 2)
    q = sigh * beta * np.sqrt(2.0 * sigy / r0)

    n = len(a)
    f_values = scattering_function(
        np.concatenate([a, 1.0 / a, 1.0 / b]),
        np.concatenate([b, b / a, a / b]),
        np.concatenate([q, q / a, q / b]),
    )
    fp, fx, fy = f_values[:n], f_values[n:2 * n], f_values[2 * n:]

    constant = (
        r0**2 * CLIGHT * context.particle_number
        / (64.0 * math.pi**2 * beta**3 * gamma**4 * ex * ey * sigs * sige)
    )
    total = np.sum(weights)

    def ring_average(values):
        return float(np.sum(values * weights) / total)

    aes = constant * ring_average(sigh**2 / sige**2 * fp)
    aex = constant * ring_average(fx + dispersion_x * sigh**2 / ex * fp)
    aey = constant * ring_average(fy + dispersion_y * sigh**2 / ey * fp)
    return GrowthRates(aes, aex, aey)


def _smooth_optics(context: GrowthRateContext) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    lattice = context.lattice
    radius = lattice.average_radius
    betx = np.array([radius / lattice.q1])
    bety = np.array([radius / lattice.vertical_tune])
    dx = np.array([radius / lattice.gammatr**2])
    return betx, bety, dx


def piwinski_smooth(ex: float, ey: float, sigs: float, sige: float, context: GrowthRateContext) -> GrowthRates:
    """
    Piwinski rates in the smooth approximation.

    The ring is replaced by a uniform machine with beta = R/Q and
    dispersion D = R/gammatr^2; the optics table is not used.
    """
    betx, bety, dx = _smooth_optics(context)
    zero = np.zeros(1)
    return piwinski_rates(
        context, ex, ey, sigs, sige, betx, bety, dx**2 / betx, zero, zero, np.ones(1)
    )


def piwinski_lattice(ex: float, ey: float, sigs: float, sige: float, context: GrowthRateContext) -> GrowthRates:
    """Element-by-element Piwinski rates with D^2/beta dispersion terms."""
    twiss = context.twiss
    return piwinski_rates(
        context, ex, ey, sigs, sige,
        twiss.betx, twiss.bety,
        twiss.dx**2 / twiss.betx, twiss.dy**2 / twiss.bety,
        twiss.dy, twiss.weights,
    )


def piwinski_lattice_modified(
    ex: float, ey: float, sigs: float, sige: float, context: GrowthRateContext
) -> GrowthRates:
    """Element-by-element Piwinski rates with the dispersion invariants H."""
    twiss = context.twiss
    return piwinski_rates(
        context, ex, ey, sigs, sige,
        twiss.betx, twiss.bety,
        twiss.curly_h_x(), twiss.curly_h_y(),
        twiss.dy, twiss.weights,
    )
