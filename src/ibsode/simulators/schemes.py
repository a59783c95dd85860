"""
Update rules of the emittance integrators.

Both schemes advance (ex, ey, sige) by one step from the growth rates of the
current state and derive the bunch length of the new state from its energy
spread. The previous state is never modified.
"""

from abc import ABC, abstractmethod
from typing import Dict, Tuple, Type, Union
import logging

from ..exceptions import NumericalDegeneracyError
from ..growth_rates.types import GrowthRates
from ..optics.equilibrium import EquilibriumParameters
from ..optics.lattice import LatticeSummary
from ..optics.longitudinal import sigs_from_sige
from .types import BeamState, IntegrationScheme

logger = logging.getLogger(__name__)


class SteppingScheme(ABC):
    """
    Abstract base class of a one-step update rule.

    Args:
        equilibrium: Radiation equilibrium of the ring
        lattice: Machine parameters, used to derive the bunch length
    """

    scheme: IntegrationScheme

    def __init__(self, equilibrium: EquilibriumParameters, lattice: LatticeSummary):
        self.equilibrium = equilibrium
        self.lattice = lattice

    def adjust_step(self, dt: float, rates: GrowthRates, adaptive: bool) -> float:
        """Return the step size actually used for this step."""
        return dt

    @abstractmethod
    def update(self, state: BeamState, rates: GrowthRates, dt: float) -> Tuple[float, float, float]:
        """Return the new (ex, ey, sige) after a step of size ``dt``."""
        pass

    def advance(self, state: BeamState, rates: GrowthRates, dt: float) -> BeamState:
        """
        Build the next beam state.

        Raises:
            NumericalDegeneracyError: If the new state is not finite and positive
        """
        ex, ey, sige = self.update(state, rates, dt)
        sigs = sigs_from_sige(sige, self.lattice.gamma, self.lattice.gammatr, self.equilibrium.omega_s)
        return BeamState(t=state.t + dt, ex=ex, ey=ey, sigs=sigs, sige=sige).validate_physical()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(scheme='{self.scheme.value}')"


class DerivativeScheme(SteppingScheme):
    """
    Explicit Euler step of the damping and growth equations.

        dex/dt = -(ex - ex0) 2/tau_x + 2 aex ex
        dey/dt = -(ey - ey0_coupled) 2/tau_y + 2 aey ey
        dsige/dt = -(sige - sige0) / tau_s + aes sige
    """

    scheme = IntegrationScheme.DERIVATIVE

    def derivatives(self, state: BeamState, rates: GrowthRates) -> Tuple[float, float, float]:
        """Time derivatives (dex/dt, dey/dt, dsige/dt) at ``state``."""
        eq = self.equilibrium
        dexdt = -(state.ex - eq.ex0) * 2.0 / eq.tau_x + state.ex * 2.0 * rates.aex
        deydt = -(state.ey - eq.ey0_coupled) * 2.0 / eq.tau_y + state.ey * 2.0 * rates.aey
        dsigedt = -(state.sige - eq.sige0) / eq.tau_s + state.sige * rates.aes
        return dexdt, deydt, dsigedt

    def update(self, state: BeamState, rates: GrowthRates, dt: float) -> Tuple[float, float, float]:
        dexdt, deydt, dsigedt = self.derivatives(state, rates)
        return state.ex + dt * dexdt, state.ey + dt * deydt, state.sige + dt * dsigedt


class RelaxationScheme(SteppingScheme):
    """
    Relaxation towards the IBS-modified equilibrium.

    Each plane relaxes to its radiation equilibrium scaled by
    1 / (1 - tau * a), the steady state of the damping and growth equation
    for frozen growth rates. Adaptive runs use four times the derivative
    step; fixed runs halve the step whenever a tau * a product reaches one.
    """

    scheme = IntegrationScheme.RELAXATION

    ADAPTIVE_STEP_FACTOR = 4.0

    def ratios(self, rates: GrowthRates) -> Tuple[float, float, float]:
        eq = self.equilibrium
        return eq.tau_x * rates.aex, eq.tau_y * rates.aey, eq.tau_s * rates.aes

    def factors(self, rates: GrowthRates) -> Tuple[float, float, float]:
        """
        Relaxation factors (xfactor, yfactor, sfactor) = 1 / (1 - tau * a).

        Raises:
            NumericalDegeneracyError: If a tau * a product equals one
        """
        factors = []
        for plane, ratio in zip(('x', 'y', 's'), self.ratios(rates)):
            denominator = 1.0 - ratio
            if denominator == 0:
                raise NumericalDegeneracyError(
                    f"Relaxation factor of plane {plane} diverges: tau * a = {ratio}"
                )
            factors.append(1.0 / denominator)
        return tuple(factors)

    def adjust_step(self, dt: float, rates: GrowthRates, adaptive: bool) -> float:
        if adaptive:
            return dt * self.ADAPTIVE_STEP_FACTOR
        if any(ratio >= 1.0 for ratio in self.ratios(rates)):
            logger.debug(f"tau * a >= 1 with ratios {self.ratios(rates)}, halving step to {dt / 2.0:.4e} s")
            return dt / 2.0
        return dt

    def update(self, state: BeamState, rates: GrowthRates, dt: float) -> Tuple[float, float, float]:
        eq = self.equilibrium
        xfactor, yfactor, sfactor = self.factors(rates)
        coupling = eq.coupling
        ex = state.ex + dt * (xfactor * eq.ex0 - state.ex)
        ey = state.ey + dt * (((1.0 - coupling) * yfactor + coupling * xfactor) * eq.ey0_coupled - state.ey)
        sige = state.sige + dt * (sfactor * eq.sige0 - state.sige)
        return ex, ey, sige


SCHEMES: Dict[IntegrationScheme, Type[SteppingScheme]] = {
    IntegrationScheme.DERIVATIVE: DerivativeScheme,
    IntegrationScheme.RELAXATION: RelaxationScheme,
}


def create_scheme(
    scheme: Union[IntegrationScheme, str],
    equilibrium: EquilibriumParameters,
    lattice: LatticeSummary,
) -> SteppingScheme:
    """Instantiate the stepping scheme selected by ``scheme`` ("rlx" or "der")."""
    return SCHEMES[IntegrationScheme(scheme)](equilibrium, lattice)
