"""
Type definitions and data structures for the emittance integrators.

This module contains the integration configuration with its stopping
policies, the beam state and history containers, the run result and the
exception classes raised by the simulators.
"""

from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Annotated, Dict, Iterator, List, Literal, Optional, Sequence, Tuple, Union
import logging
import math

import numpy as np
import pandas as pd
import yaml
from pydantic import Field, ValidationError, field_validator

from ..constants import MAX_STEPS
from ..exceptions import (
    ConfigurationError,
    EquilibriumError,
    GrowthRateError,
    LatticeInputError,
    NumericalDegeneracyError,
    SimulationError,
    UnsupportedModelError,
)
from ..growth_rates.types import GrowthRates
from ..models.base import PhysicsBaseModel
from ..models.validators import (
    THRESHOLD_DEFAULT,
    sanitize_choice,
    sanitize_coupling_percentage,
    sanitize_threshold,
)
from ..optics.equilibrium import EquilibriumParameters

logger = logging.getLogger(__name__)


class IntegrationScheme(str, Enum):
    """
    Update rule applied at every integration step.

    RELAXATION relaxes each quantity towards its IBS-modified equilibrium;
    DERIVATIVE takes an explicit Euler step of the damping/growth ODEs.
    """

    RELAXATION = "rlx"
    DERIVATIVE = "der"


class StopReason(str, Enum):
    """Why an integration run ended."""

    CONVERGED = "converged"      # Relative changes fell below the threshold
    STEP_BUDGET = "step_budget"  # Adaptive step budget exhausted without convergence
    STEP_COUNT = "step_count"    # Requested number of fixed steps done


class ThresholdPolicy(PhysicsBaseModel):
    """Stop when ex, ey and sigs all change by less than ``threshold`` in one step."""
    kind: Literal["threshold"] = "threshold"
    threshold: float = Field(default=THRESHOLD_DEFAULT, description="Relative change threshold")
    max_steps: int = Field(default=MAX_STEPS, ge=1, le=MAX_STEPS, description="Hard cap on the step budget")

    @field_validator('threshold')
    @classmethod
    def clamp_threshold(cls, v):
        """Out-of-range thresholds fall back to the default instead of failing."""
        return sanitize_threshold(v)


class FixedStepPolicy(PhysicsBaseModel):
    """Run exactly ``nsteps`` steps of size ``stepsize``."""
    kind: Literal["fixed"] = "fixed"
    nsteps: int = Field(ge=1, description="Number of integration steps")
    stepsize: float = Field(gt=0, description="Step size in s")


StoppingPolicy = Annotated[Union[ThresholdPolicy, FixedStepPolicy], Field(discriminator="kind")]


class IntegrationConfig(PhysicsBaseModel):
    """
    Configuration of one emittance integration run.

    Out-of-range coupling percentages and unknown scheme names are repaired
    with a logged warning rather than rejected.
    """
    model: int = Field(description="Growth-rate model id (1-13 for the built-in models)")
    particle_number: float = Field(gt=0, description="Number of particles in the bunch")
    coupling_percentage: int = Field(default=0, description="Betatron coupling in percent")
    scheme: IntegrationScheme = Field(default=IntegrationScheme.DERIVATIVE, validate_default=True,
                                      description="Update rule")
    stopping: StoppingPolicy = Field(default_factory=ThresholdPolicy, description="Stopping policy")
    debug_output: bool = Field(default=False, description="Log progress and summaries")

    @field_validator('scheme', mode='before')
    @classmethod
    def default_unknown_scheme(cls, v):
        return sanitize_choice(v, [s.value for s in IntegrationScheme], IntegrationScheme.DERIVATIVE.value,
                               "integration scheme")

    @field_validator('coupling_percentage')
    @classmethod
    def clamp_coupling(cls, v):
        return sanitize_coupling_percentage(v)

    @classmethod
    def adaptive(cls, model: int, particle_number: float, threshold: float = THRESHOLD_DEFAULT,
                 **kwargs) -> "IntegrationConfig":
        """Configuration for a run until convergence."""
        return cls(model=model, particle_number=particle_number,
                   stopping=ThresholdPolicy(threshold=threshold), **kwargs)

    @classmethod
    def fixed(cls, model: int, particle_number: float, nsteps: int, stepsize: float,
              **kwargs) -> "IntegrationConfig":
        """Configuration for a run of a fixed number of steps."""
        return cls(model=model, particle_number=particle_number,
                   stopping=FixedStepPolicy(nsteps=nsteps, stepsize=stepsize), **kwargs)

    @property
    def coupling(self) -> float:
        """Coupling fraction in [0, 1]."""
        return self.coupling_percentage / 100.0

    @property
    def is_adaptive(self) -> bool:
        return isinstance(self.stopping, ThresholdPolicy)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "IntegrationConfig":
        """
        Load a configuration from a YAML file.

        Raises:
            ConfigurationError: If the file cannot be read or is not a valid configuration
        """
        path = Path(path)
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Could not read configuration {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration {path} must contain a mapping, got {type(data).__name__}")

        try:
            return cls.from_dict(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration in {path}: {e}") from e

    def to_yaml(self, path: Union[str, Path]):
        """Write the configuration to a YAML file."""
        with open(path, 'w') as f:
            yaml.safe_dump(self.to_yaml_dict(), f, sort_keys=False)


@dataclass(frozen=True)
class BeamState:
    """
    Beam moments at one instant.

    Attributes:
        t: Time in s
        ex: Horizontal emittance in m
        ey: Vertical emittance in m
        sigs: RMS bunch length in m
        sige: Relative energy spread; None means "match to sigs" and is only
            accepted for an initial state
    """
    t: float
    ex: float
    ey: float
    sigs: float
    sige: Optional[float] = None

    @property
    def sige2(self) -> Optional[float]:
        return self.sige**2 if self.sige is not None else None

    @classmethod
    def from_series(
        cls,
        t: Sequence[float],
        ex: Sequence[float],
        ey: Sequence[float],
        sigs: Sequence[float],
        sige: Optional[Sequence[float]] = None,
    ) -> "BeamState":
        """
        Build an initial state from single-entry series.

        Raises:
            ValueError: If a series does not hold exactly one value
        """
        series = {'t': t, 'ex': ex, 'ey': ey, 'sigs': sigs}
        if sige is not None:
            series['sige'] = sige
        wrong = {name: len(values) for name, values in series.items() if len(values) != 1}
        if wrong:
            raise ValueError(f"Initial series must hold exactly one value each, got lengths {wrong}")
        return cls(**{name: float(values[0]) for name, values in series.items()})

    def with_sige(self, sige: float) -> "BeamState":
        return replace(self, sige=sige)

    def validate_physical(self) -> "BeamState":
        """
        Check that every beam moment is finite and positive.

        Raises:
            NumericalDegeneracyError: If ex, ey, sigs or sige is non-positive or not finite
        """
        for name in ('ex', 'ey', 'sigs', 'sige'):
            value = getattr(self, name)
            if value is None or not math.isfinite(value) or value <= 0:
                raise NumericalDegeneracyError(f"Beam state degenerated at t={self.t:.6e} s: {name}={value}")
        return self


class BeamHistory:
    """
    Append-only record of beam states, one per accepted integration step.

    Index 0 holds the initial condition. States can be appended but never
    removed or replaced, and time must increase strictly. A seed without
    energy spread is accepted; its spread must be filled in with
    :meth:`complete_seed` before the first state is appended.

    NOT a Pydantic model because it grows during a run.
    """

    COLUMNS = ('t', 'ex', 'ey', 'sigs', 'sige', 'sige2')

    def __init__(self, seed: BeamState):
        self._states: List[BeamState] = [seed]

    def complete_seed(self, sige: float) -> BeamState:
        """
        Fill in the energy spread of a seed created without one.

        Raises:
            ValueError: If states were already appended or the seed has an energy spread
        """
        if len(self._states) != 1 or self._states[0].sige is not None:
            raise ValueError("Only the energy spread of a lone seed without one can be set")
        self._states[0] = self._states[0].with_sige(sige)
        return self._states[0]

    def append(self, state: BeamState):
        """
        Append the state of the next step.

        Raises:
            ValueError: If time does not increase or the seed has no energy spread
        """
        if self._states[0].sige is None:
            raise ValueError("The seed energy spread must be set before appending states")
        if not state.t > self._states[-1].t:
            raise ValueError(f"Time must increase strictly: {state.t} <= {self._states[-1].t}")
        self._states.append(state)

    def __len__(self) -> int:
        return len(self._states)

    def __getitem__(self, index: int) -> BeamState:
        return self._states[index]

    def __iter__(self) -> Iterator[BeamState]:
        return iter(list(self._states))

    @property
    def seed(self) -> BeamState:
        return self._states[0]

    @property
    def last(self) -> BeamState:
        return self._states[-1]

    @property
    def states(self) -> Tuple[BeamState, ...]:
        return tuple(self._states)

    def series(self, name: str) -> np.ndarray:
        """Values of one column (``t, ex, ey, sigs, sige`` or ``sige2``) as an array."""
        if name not in self.COLUMNS:
            raise KeyError(f"Unknown series {name!r}, expected one of {self.COLUMNS}")
        return np.array([getattr(state, name) for state in self._states], dtype=float)

    @property
    def t(self) -> np.ndarray:
        return self.series('t')

    @property
    def ex(self) -> np.ndarray:
        return self.series('ex')

    @property
    def ey(self) -> np.ndarray:
        return self.series('ey')

    @property
    def sigs(self) -> np.ndarray:
        return self.series('sigs')

    @property
    def sige(self) -> np.ndarray:
        return self.series('sige')

    @property
    def sige2(self) -> np.ndarray:
        return self.series('sige2')

    def relative_changes(self) -> Tuple[float, float, float]:
        """
        Relative changes of ex, ey and sigs over the last step.

        Returns:
            Tuple of |x_n - x_{n-1}| / x_{n-1}; zeros for a history of length 1
        """
        if len(self._states) < 2:
            return 0.0, 0.0, 0.0
        previous, current = self._states[-2], self._states[-1]
        return tuple(
            abs((getattr(current, name) - getattr(previous, name)) / getattr(previous, name))
            for name in ('ex', 'ey', 'sigs')
        )

    def to_dataframe(self) -> pd.DataFrame:
        """Return the history as a pandas DataFrame, one row per state."""
        return pd.DataFrame({name: self.series(name) for name in self.COLUMNS})

    def to_csv(self, path: Union[str, Path]):
        """
        Write the ``t, ex, ey, sigs`` columns to a CSV file.

        Args:
            path: Output file path
        """
        self.to_dataframe()[['t', 'ex', 'ey', 'sigs']].to_csv(path, index=False)
        logger.info(f"Wrote {len(self)} beam states to {path}")


class EvolutionResult(PhysicsBaseModel):
    """
    Outcome of one integration run.

    ``converged`` tells whether the relative-change criterion was met; a run
    that stopped on its step budget or step count reports False.
    """
    history: BeamHistory = Field(description="Beam states, seed included")
    equilibrium: EquilibriumParameters = Field(description="Radiation equilibrium of the ring")
    rates: GrowthRates = Field(description="Growth rates evaluated at the last step")
    steps: int = Field(ge=0, description="Number of integration steps taken")
    step_budget: int = Field(ge=1, description="Maximum number of steps allowed for the run")
    converged: bool = Field(description="Whether the convergence threshold was reached")
    stop_reason: StopReason = Field(description="Why the run ended")

    @property
    def final_state(self) -> BeamState:
        return self.history.last

    def to_dataframe(self) -> pd.DataFrame:
        return self.history.to_dataframe()

    def summary(self) -> Dict[str, float]:
        """Final beam state and IBS growth times."""
        final = self.final_state
        tau_s, tau_x, tau_y = self.rates.timescales()
        return {
            'steps': self.steps,
            'converged': self.converged,
            'stop_reason': self.stop_reason,
            't': final.t,
            'ex': final.ex,
            'ey': final.ey,
            'sigs': final.sigs,
            'sige': final.sige,
            'tau_ibs_x': tau_x,
            'tau_ibs_y': tau_y,
            'tau_ibs_s': tau_s,
        }


__all__ = [
    'IntegrationScheme',
    'StopReason',
    'ThresholdPolicy',
    'FixedStepPolicy',
    'StoppingPolicy',
    'IntegrationConfig',
    'BeamState',
    'BeamHistory',
    'EvolutionResult',
    'SimulationError',
    'ConfigurationError',
    'LatticeInputError',
    'EquilibriumError',
    'UnsupportedModelError',
    'GrowthRateError',
    'NumericalDegeneracyError',
]
