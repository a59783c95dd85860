"""
Type definitions shared by the IBS growth-rate models.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Tuple
import math

from ..optics.lattice import LatticeSummary, TwissTable


class IBSModel(IntEnum):
    """
    Identifiers of the built-in growth-rate models.

    The integer values are the model ids accepted by the integrators.
    """

    PIWINSKI_SMOOTH = 1
    PIWINSKI_LATTICE = 2
    PIWINSKI_LATTICE_MODIFIED = 3
    NAGAITSEV = 4
    NAGAITSEV_TAILCUT = 5
    MADX = 6
    MADX_TAILCUT = 7
    BJORKEN_MTINGWA2 = 8
    BJORKEN_MTINGWA = 9
    BJORKEN_MTINGWA_TAILCUT = 10
    CONTE_MARTINI = 11
    CONTE_MARTINI_TAILCUT = 12
    MADX_AVERAGED = 13


@dataclass(frozen=True)
class GrowthRates:
    """
    IBS amplitude growth rates in 1/s.

    ``aex`` and ``aey`` are the growth rates of the transverse beam sizes,
    i.e. half the emittance growth rates; ``aes`` is the growth rate of the
    energy spread. Values are ordered (longitudinal, horizontal, vertical).
    """
    aes: float
    aex: float
    aey: float

    @classmethod
    def zero(cls) -> "GrowthRates":
        return cls(0.0, 0.0, 0.0)

    def as_tuple(self) -> Tuple[float, float, float]:
        return self.aes, self.aex, self.aey

    def timescales(self) -> Tuple[float, float, float]:
        """Growth times 1/|a| in s; a vanishing rate has an infinite timescale."""
        return tuple(1.0 / abs(rate) if rate != 0 else math.inf for rate in self.as_tuple())

    def is_finite(self) -> bool:
        return all(math.isfinite(rate) for rate in self.as_tuple())


@dataclass(frozen=True)
class GrowthRateContext:
    """
    Run-constant inputs of a growth-rate evaluation.

    Attributes:
        lattice: Machine parameters
        twiss: Ring optics
        particle_number: Bunch population
        tau_x: Horizontal damping time in s, used for tail cuts
        tau_y: Vertical damping time in s
        tau_s: Longitudinal damping time in s
    """
    lattice: LatticeSummary
    twiss: TwissTable
    particle_number: float
    tau_x: float = math.inf
    tau_y: float = math.inf
    tau_s: float = math.inf

    @property
    def r0(self) -> float:
        """Classical particle radius in m."""
        return self.lattice.classical_radius


# Signature of a growth-rate model: (ex, ey, sigs, sige, context) -> GrowthRates
GrowthRateEvaluator = Callable[[float, float, float, float, GrowthRateContext], GrowthRates]
