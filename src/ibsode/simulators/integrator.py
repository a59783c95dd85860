"""
Time integration of the beam moments under radiation damping and IBS.

:class:`IBSIntegrator` is the single integration core. It computes the
radiation equilibrium once, evaluates the IBS growth rates at the current
beam state at every step, advances the state with the configured scheme and
stops according to the configured stopping policy. The two entry points
:func:`evolve_to_equilibrium` and :func:`evolve_fixed_steps` only differ in
the stopping policy they build.
"""

from typing import Iterable, List, Mapping, Optional, Sequence, Tuple, Union
import logging

import pandas as pd

from ..exceptions import ConfigurationError, NumericalDegeneracyError, SimulationError
from ..growth_rates.registry import GrowthRateRegistry, default_registry
from ..growth_rates.types import GrowthRateContext, GrowthRates
from ..models.validators import THRESHOLD_DEFAULT
from ..optics.equilibrium import EquilibriumParameters, compute_equilibrium
from ..optics.lattice import LatticeSummary, TwissTable
from ..optics.longitudinal import RFConfiguration, sige_from_rf_and_sigs
from .base import EvolutionMonitor, ProgressMonitor
from .convergence import ConvergenceMonitor
from .schemes import SteppingScheme, create_scheme
from .step_size import StepSizeEstimator
from .types import BeamHistory, BeamState, EvolutionResult, IntegrationConfig, StopReason

logger = logging.getLogger(__name__)

LatticeInput = Union[LatticeSummary, Mapping]
TwissInput = Union[TwissTable, Mapping, pd.DataFrame]
RFInput = Union[RFConfiguration, Tuple[Sequence[float], Sequence[float]], Mapping]
InitialInput = Union[BeamHistory, BeamState]


class IBSIntegrator:
    """
    Integrate ex, ey, sigs and sige until the stopping policy is met.

    Args:
        config: Integration configuration
        registry: Growth-rate registry; the package default registry if None
        monitors: Callbacks notified during the run. A ProgressMonitor is
            added when ``config.debug_output`` is set.
    """

    def __init__(
        self,
        config: IntegrationConfig,
        registry: Optional[GrowthRateRegistry] = None,
        monitors: Optional[Iterable[EvolutionMonitor]] = None,
    ):
        self.config = config
        self.registry = registry if registry is not None else default_registry
        self.monitors: List[EvolutionMonitor] = list(monitors or [])
        if config.debug_output and not any(isinstance(m, ProgressMonitor) for m in self.monitors):
            self.monitors.append(ProgressMonitor())

    def add_monitor(self, monitor: EvolutionMonitor):
        """Add a monitoring callback."""
        self.monitors.append(monitor)
        logger.debug(f"Added monitor: {type(monitor).__name__}")

    def remove_monitor(self, monitor: EvolutionMonitor):
        """Remove a monitoring callback."""
        if monitor in self.monitors:
            self.monitors.remove(monitor)
            logger.debug(f"Removed monitor: {type(monitor).__name__}")

    def _notify_monitors(self, event: str, *args, **kwargs):
        """Notify all registered monitors of an event."""
        for monitor in self.monitors:
            try:
                getattr(monitor, f'on_{event}')(*args, **kwargs)
            except Exception as e:
                logger.warning(f"Monitor {type(monitor).__name__} error in on_{event}: {e}")

    def seed_history(
        self,
        initial: InitialInput,
        lattice: LatticeSummary,
        rf: RFConfiguration,
        equilibrium: EquilibriumParameters,
    ) -> BeamHistory:
        """
        Return the history the run appends to.

        A BeamHistory is used as is and must hold only its seed. A seed
        without energy spread, bare or inside a history, gets the spread
        matched to its bunch length in the RF bucket.

        Raises:
            ConfigurationError: If a history with more than one state is passed
            NumericalDegeneracyError: If the seed is not finite and positive
        """
        if isinstance(initial, BeamHistory):
            if len(initial) != 1:
                raise ConfigurationError(
                    f"Initial history must hold exactly one state, got {len(initial)}"
                )
            history = initial
        else:
            history = BeamHistory(initial)

        seed = history.seed
        if seed.sige is None:
            sige = sige_from_rf_and_sigs(seed.sigs, lattice, rf, equilibrium.phi_s)
            logger.debug(f"Initial energy spread matched to sigs={seed.sigs:.6e} m: sige={sige:.6e}")
            history.complete_seed(sige)

        history.seed.validate_physical()
        return history

    def _evaluate(self, state: BeamState, context: GrowthRateContext) -> GrowthRates:
        return self.registry.evaluate(self.config.model, state.ex, state.ey, state.sigs, state.sige, context)

    def run(
        self,
        lattice: LatticeInput,
        twiss: TwissInput,
        rf: RFInput,
        initial: InitialInput,
    ) -> EvolutionResult:
        """
        Run the integration.

        Args:
            lattice: LatticeSummary or header mapping
            twiss: TwissTable, column mapping or DataFrame
            rf: RFConfiguration or ``(harmonics, voltages)`` pair
            initial: Seed state, or a history holding only the seed; a
                history is extended in place

        Returns:
            EvolutionResult whose history holds the seed and one state per step

        Raises:
            UnsupportedModelError: If the configured model is not registered
            EquilibriumError: If the radiation equilibrium cannot be computed
            GrowthRateError: If a growth-rate evaluation fails
            NumericalDegeneracyError: If the beam state degenerates
        """
        config = self.config
        try:
            self.registry.get(config.model)

            lattice = LatticeSummary.coerce(lattice)
            twiss = TwissTable.coerce(twiss)
            rf = RFConfiguration.coerce(rf)

            equilibrium = compute_equilibrium(lattice, twiss, rf, coupling=config.coupling)
            history = self.seed_history(initial, lattice, rf, equilibrium)
            context = GrowthRateContext(
                lattice=lattice,
                twiss=twiss,
                particle_number=config.particle_number,
                tau_x=equilibrium.tau_x,
                tau_y=equilibrium.tau_y,
                tau_s=equilibrium.tau_s,
            )
            scheme = create_scheme(config.scheme, equilibrium, lattice)
            estimator = StepSizeEstimator(equilibrium)

            state = history.last
            rates = self._evaluate(state, context)

            dt = None
            if config.is_adaptive:
                budget = estimator.step_budget(rates, cap=config.stopping.max_steps)
            else:
                budget = config.stopping.nsteps
                dt = config.stopping.stepsize
            convergence = ConvergenceMonitor(config.stopping, budget)

            logger.debug(f"Starting {scheme!r} with model {config.model}, step budget {budget}")
            self._notify_monitors('start', config, equilibrium, rates, budget)

            reason, step, rates = self._integrate(history, context, scheme, estimator, convergence, rates, dt)

            result = EvolutionResult(
                history=history,
                equilibrium=equilibrium,
                rates=rates,
                steps=step,
                step_budget=budget,
                converged=reason == StopReason.CONVERGED,
                stop_reason=reason,
            )
            self._notify_monitors('complete', result)
            return result

        except SimulationError as e:
            self._notify_monitors('error', e)
            raise

    def _integrate(
        self,
        history: BeamHistory,
        context: GrowthRateContext,
        scheme: SteppingScheme,
        estimator: StepSizeEstimator,
        convergence: ConvergenceMonitor,
        rates: GrowthRates,
        dt: Optional[float],
    ) -> Tuple[StopReason, int, GrowthRates]:
        """
        Step until the convergence monitor stops the run; at least one step is taken.

        ``dt`` is the caller step of a fixed run and None in adaptive runs,
        where the step follows the current growth rates.
        """
        adaptive = self.config.is_adaptive
        state = history.last
        step = 0
        while True:
            if step > 0:
                rates = self._evaluate(state, context)

            if adaptive:
                step_dt = scheme.adjust_step(estimator.adaptive_step(rates), rates, adaptive=True)
            else:
                # The fixed-mode halving persists for the following steps
                dt = scheme.adjust_step(dt, rates, adaptive=False)
                step_dt = dt

            state = scheme.advance(state, rates, step_dt)
            try:
                history.append(state)
            except ValueError as e:
                raise NumericalDegeneracyError(f"Step of {step_dt:.3e} s does not advance time: {e}") from e
            step += 1
            self._notify_monitors('step', step, state, rates, step_dt)

            reason = convergence.check(history, step)
            if reason is not None:
                logger.debug(f"Stopped after {step} steps: {reason.value}")
                return reason, step, rates


def evolve_to_equilibrium(
    lattice: LatticeInput,
    twiss: TwissInput,
    rf: RFInput,
    initial: InitialInput,
    model: int,
    particle_number: float,
    coupling_percentage: int = 0,
    threshold: float = THRESHOLD_DEFAULT,
    scheme: str = "der",
    debug_output: bool = False,
    registry: Optional[GrowthRateRegistry] = None,
    monitors: Optional[Iterable[EvolutionMonitor]] = None,
) -> EvolutionResult:
    """
    Integrate until ex, ey and sigs change by less than ``threshold`` per step.

    The step size follows the fastest damping or growth timescale and the
    number of steps is bounded by a budget derived from the initial rates.
    Whether the threshold was reached is reported in ``result.converged``.

    Args:
        lattice: LatticeSummary or header mapping
        twiss: TwissTable or column mapping
        rf: RFConfiguration or ``(harmonics, voltages)`` pair
        initial: Seed BeamState or a BeamHistory holding only the seed
        model: Growth-rate model id
        particle_number: Bunch population
        coupling_percentage: Betatron coupling in percent, 0 outside [0, 100]
        threshold: Relative change threshold, 1e-4 outside [1e-6, 1]
        scheme: "rlx" or "der"; anything else falls back to "der"
        debug_output: Log the equilibrium summary and progress
        registry: Growth-rate registry, the default one if None
        monitors: Additional monitoring callbacks

    Returns:
        EvolutionResult of the run
    """
    config = IntegrationConfig.adaptive(
        model=model,
        particle_number=particle_number,
        threshold=threshold,
        coupling_percentage=coupling_percentage,
        scheme=scheme,
        debug_output=debug_output,
    )
    return IBSIntegrator(config, registry=registry, monitors=monitors).run(lattice, twiss, rf, initial)


def evolve_fixed_steps(
    lattice: LatticeInput,
    twiss: TwissInput,
    rf: RFInput,
    initial: InitialInput,
    model: int,
    particle_number: float,
    nsteps: int,
    stepsize: float,
    coupling_percentage: int = 0,
    scheme: str = "der",
    debug_output: bool = False,
    registry: Optional[GrowthRateRegistry] = None,
    monitors: Optional[Iterable[EvolutionMonitor]] = None,
) -> EvolutionResult:
    """
    Integrate exactly ``nsteps`` steps of size ``stepsize`` seconds.

    The history of the result holds ``nsteps + 1`` states. With the
    relaxation scheme the step is halved whenever a damping time times
    growth rate product reaches one.
    """
    config = IntegrationConfig.fixed(
        model=model,
        particle_number=particle_number,
        nsteps=nsteps,
        stepsize=stepsize,
        coupling_percentage=coupling_percentage,
        scheme=scheme,
        debug_output=debug_output,
    )
    return IBSIntegrator(config, registry=registry, monitors=monitors).run(lattice, twiss, rf, initial)
