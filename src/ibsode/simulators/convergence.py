"""
Termination predicate of the integration loop.
"""

from typing import Optional, Tuple
import logging

from .types import BeamHistory, FixedStepPolicy, StopReason, ThresholdPolicy

logger = logging.getLogger(__name__)


class ConvergenceMonitor:
    """
    Decide after each step whether an integration run is finished.

    With a ThresholdPolicy the run stops once ex, ey and sigs all changed by
    no more than the threshold over the last step, or when the step budget
    is used up. Convergence is checked first, so a run converging on its
    last budgeted step reports CONVERGED. With a FixedStepPolicy the run
    stops after exactly ``nsteps`` steps.

    Args:
        policy: Stopping policy of the run
        budget: Step budget of an adaptive run; ignored for fixed runs
    """

    def __init__(self, policy, budget: Optional[int] = None):
        self.policy = policy
        if isinstance(policy, FixedStepPolicy):
            self.budget = policy.nsteps
        else:
            self.budget = budget if budget is not None else policy.max_steps

    @staticmethod
    def relative_changes(history: BeamHistory) -> Tuple[float, float, float]:
        return history.relative_changes()

    def check(self, history: BeamHistory, step: int) -> Optional[StopReason]:
        """
        Evaluate the stopping condition after ``step`` steps.

        Returns:
            The StopReason if the run is finished, None otherwise
        """
        if isinstance(self.policy, ThresholdPolicy):
            changes = self.relative_changes(history)
            if all(change <= self.policy.threshold for change in changes):
                logger.debug(f"Converged after {step} steps, relative changes {changes}")
                return StopReason.CONVERGED
            if step >= self.budget:
                logger.debug(f"Step budget of {self.budget} exhausted, relative changes {changes}")
                return StopReason.STEP_BUDGET
            return None

        if step >= self.budget:
            return StopReason.STEP_COUNT
        return None
