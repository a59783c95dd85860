"""
ibsode Visualization Module

Matplotlib plots of integration results.
"""

from .evolution_plot import EvolutionPlotter, plot_evolution

__all__ = [
    'EvolutionPlotter',
    'plot_evolution',
]
