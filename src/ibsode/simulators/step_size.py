"""
Step size and step budget from the fastest and slowest physical timescales.
"""

from typing import Tuple
import logging
import math

from ..constants import MAX_STEPS
from ..growth_rates.types import GrowthRates
from ..optics.equilibrium import EquilibriumParameters

logger = logging.getLogger(__name__)

# Upper bound on the slowest timescale in s
SLOWEST_TIMESCALE_CAP = 1.0


class StepSizeEstimator:
    """
    Derive integration step sizes from damping times and IBS growth times.

    The timescale set of a state is (tau_x, tau_y, tau_s, 1/aes, 1/aex,
    1/aey). A vanishing growth rate contributes an infinite timescale and a
    negative one its magnitude.
    """

    def __init__(self, equilibrium: EquilibriumParameters):
        self.equilibrium = equilibrium

    def timescales(self, rates: GrowthRates) -> Tuple[float, ...]:
        return self.equilibrium.damping_times + rates.timescales()

    def fastest(self, rates: GrowthRates) -> float:
        """Shortest timescale currently active, in s."""
        return min(self.timescales(rates))

    def slowest(self, rates: GrowthRates) -> float:
        """Longest finite timescale, capped at one second."""
        finite = [tau for tau in self.timescales(rates) if math.isfinite(tau)]
        return min(max(finite), SLOWEST_TIMESCALE_CAP)

    def step_budget(self, rates: GrowthRates, cap: int = MAX_STEPS) -> int:
        """
        Maximum number of adaptive steps, from the initial growth rates.

        Args:
            rates: Growth rates of the initial state
            cap: Hard upper bound on the budget

        Returns:
            max(1, min(int(10 * slowest / fastest), cap))
        """
        budget = int(10.0 * self.slowest(rates) / self.fastest(rates))
        budget = max(1, min(budget, cap))
        logger.debug(
            f"Step budget {budget} (slowest={self.slowest(rates):.4e} s, fastest={self.fastest(rates):.4e} s)"
        )
        return budget

    def adaptive_step(self, rates: GrowthRates) -> float:
        """Half the fastest timescale of the current state."""
        return self.fastest(rates) / 2.0
