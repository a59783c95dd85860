"""
IBS growth-rate models for ibsode.

Thirteen interchangeable models, selected by integer id through
:class:`GrowthRateRegistry`:

- 1-3: Piwinski (smooth, lattice, modified lattice)
- 4-5: Nagaitsev (with and without tail cut)
- 6, 7, 13: MAD-X Bjorken-Mtingwa (plain, tail cut, averaged optics)
- 8-10: Bjorken-Mtingwa variants
- 11-12: Conte-Martini (with and without tail cut)
"""

from .types import GrowthRateContext, GrowthRateEvaluator, GrowthRates, IBSModel
from .coulomb_log import coulomb_log, tailcut_coulomb_log
from .registry import GrowthRateRegistry, default_registry

__all__ = [
    'GrowthRateContext',
    'GrowthRateEvaluator',
    'GrowthRates',
    'IBSModel',
    'coulomb_log',
    'tailcut_coulomb_log',
    'GrowthRateRegistry',
    'default_registry',
]
