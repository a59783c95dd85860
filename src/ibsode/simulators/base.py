"""
Monitoring interface for the emittance integrators.

Monitors receive callbacks at the start, at every step and at the end of a
run. They are the only diagnostic channel of the integrators: the numerical
core produces no output of its own, and a run without monitors has no
observable side effects beyond its result.
"""

from abc import ABC, abstractmethod
from typing import Optional
import logging
import time

from ..growth_rates.types import GrowthRates
from ..optics.equilibrium import EquilibriumParameters
from .types import BeamState, EvolutionResult, IntegrationConfig

logger = logging.getLogger(__name__)


class EvolutionMonitor(ABC):
    """
    Abstract base class for integration monitoring and callbacks.

    Monitors must not modify the objects they are handed.
    """

    @abstractmethod
    def on_start(self, config: IntegrationConfig, equilibrium: EquilibriumParameters,
                 rates: GrowthRates, step_budget: int):
        """Called once the equilibrium and the initial growth rates are known."""
        pass

    @abstractmethod
    def on_step(self, step: int, state: BeamState, rates: GrowthRates, dt: float):
        """Called after each accepted integration step."""
        pass

    @abstractmethod
    def on_complete(self, result: EvolutionResult):
        """Called when the run finishes."""
        pass

    @abstractmethod
    def on_error(self, error: Exception):
        """Called when an error aborts the run."""
        pass


def format_line(key: str, value: float, units: str = "") -> str:
    """Format one ``key : value (units)`` summary line."""
    return f"{key:<20s} : {value:20.6e} ({units})"


class ProgressMonitor(EvolutionMonitor):
    """Log the equilibrium summary, periodic progress and the final beam state."""

    def __init__(self, log_every: int = 100, show_progress: bool = True):
        self.log_every = log_every
        self.show_progress = show_progress
        self.start_time: Optional[float] = None
        self.step_budget = 0

    def on_start(self, config: IntegrationConfig, equilibrium: EquilibriumParameters,
                 rates: GrowthRates, step_budget: int):
        self.start_time = time.time()
        self.step_budget = step_budget
        if not self.show_progress:
            return

        logger.info("Radiation Damping and Longitudinal Parameters")
        logger.info("=============================================")
        for key, value, units in equilibrium.summary_rows():
            logger.info(format_line(key, value, units))

        tau_s, tau_x, tau_y = rates.timescales()
        logger.info(format_line("Initial tau_ibs_x", tau_x, "s"))
        logger.info(format_line("Initial tau_ibs_y", tau_y, "s"))
        logger.info(format_line("Initial tau_ibs_s", tau_s, "s"))
        logger.info(f"Model {config.model}, scheme {config.scheme}, step budget {step_budget}")

    def on_step(self, step: int, state: BeamState, rates: GrowthRates, dt: float):
        if self.show_progress and step % self.log_every == 0:
            elapsed = time.time() - self.start_time if self.start_time else 0
            progress = (step / self.step_budget) * 100 if self.step_budget else 0.0
            logger.info(
                f"Progress: {progress:.1f}% (step {step}/{self.step_budget}, t={state.t:.4e} s, "
                f"dt={dt:.3e} s, {elapsed:.1f}s elapsed)"
            )

    def on_complete(self, result: EvolutionResult):
        if not self.show_progress:
            return
        final = result.final_state
        tau_s, tau_x, tau_y = result.rates.timescales()
        logger.info(f"Integration finished after {result.steps} steps ({result.stop_reason})")
        logger.info(format_line("Final ex", final.ex, "m"))
        logger.info(format_line("Final ey", final.ey, "m"))
        logger.info(format_line("Final sigs", final.sigs, "m"))
        logger.info(format_line("Final tau_ibs_x", tau_x, "s"))
        logger.info(format_line("Final tau_ibs_y", tau_y, "s"))
        logger.info(format_line("Final tau_ibs_s", tau_s, "s"))

    def on_error(self, error: Exception):
        logger.error(f"Integration error: {error}")
