"""
Plots of the beam moment evolution.
"""

from typing import Any, Optional, Tuple
import logging

import matplotlib.pyplot as plt
from matplotlib.figure import Figure

from ..optics.equilibrium import EquilibriumParameters
from ..simulators.types import BeamHistory

logger = logging.getLogger(__name__)


class EvolutionPlotter:
    """Reusable component for plotting the evolution of ex, ey, sigs and sige."""

    def __init__(self, figsize: Tuple[float, float] = (10, 9)):
        """
        Initialize evolution plotter.

        Args:
            figsize: Figure size (width, height) in inches
        """
        self.figsize = figsize
        self.fig = None
        self.axes = None

    def create_figure(self) -> Tuple[Figure, Any]:
        """Create matplotlib figure with three stacked subplots."""
        self.fig, self.axes = plt.subplots(3, 1, figsize=self.figsize, sharex=True)
        return self.fig, self.axes

    def plot(self, history: BeamHistory, equilibrium: Optional[EquilibriumParameters] = None,
             title: Optional[str] = None):
        """
        Plot emittances, bunch length and energy spread against time.

        Args:
            history: Beam history of an integration run
            equilibrium: If given, the radiation equilibrium values are drawn
                as dashed reference lines
            title: Optional title for the plot
        """
        if self.axes is None:
            self.create_figure()

        for ax in self.axes:
            ax.clear()

        ax1, ax2, ax3 = self.axes
        t = history.t

        # Emittances
        ax1.plot(t, history.ex, 'b-', label='ex', linewidth=2)
        ax1.plot(t, history.ey, 'r-', label='ey', linewidth=2)
        ax1.set_ylabel('Emittance [m]', fontsize=11)
        ax1.set_yscale('log')

        # Bunch length
        ax2.plot(t, history.sigs, 'g-', label='sigs', linewidth=2)
        ax2.set_ylabel('Bunch length [m]', fontsize=11)

        # Energy spread
        ax3.plot(t, history.sige, 'm-', label='sige', linewidth=2)
        ax3.set_ylabel('Energy spread', fontsize=11)
        ax3.set_xlabel('Time [s]', fontsize=11)

        if equilibrium is not None:
            ax1.axhline(equilibrium.ex0, color='b', linestyle='--', alpha=0.6, label='ex0')
            ax1.axhline(equilibrium.ey0_coupled, color='r', linestyle='--', alpha=0.6, label='ey0 coupled')
            ax2.axhline(equilibrium.sigs_inf, color='g', linestyle='--', alpha=0.6, label='sigs_inf')
            ax3.axhline(equilibrium.sige0, color='m', linestyle='--', alpha=0.6, label='sige0')

        for ax in self.axes:
            ax.legend(loc='best', fontsize=10)
            ax.grid(True, alpha=0.3)

        if title is None:
            final = history.last
            title = f'Beam evolution ({len(history)} states, ex={final.ex:.3e} m, ey={final.ey:.3e} m)'
        ax1.set_title(title, fontsize=12, fontweight='bold')

        if self.fig is not None:
            self.fig.tight_layout()


def plot_evolution(history: BeamHistory, equilibrium: Optional[EquilibriumParameters] = None,
                   figsize: Tuple[float, float] = (10, 9)) -> Figure:
    """
    Plot a beam history and return the figure.

    Args:
        history: Beam history of an integration run
        equilibrium: Optional radiation equilibrium drawn as reference lines
        figsize: Figure size (width, height) in inches

    Returns:
        matplotlib Figure with emittance, bunch length and energy spread panels
    """
    plotter = EvolutionPlotter(figsize=figsize)
    plotter.plot(history, equilibrium)
    logger.debug(f"Plotted {len(history)} beam states")
    return plotter.fig
