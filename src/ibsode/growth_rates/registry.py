"""
Growth-rate model registry for ibsode.

Every IBS model is a plain function ``(ex, ey, sigs, sige, context) ->
GrowthRates`` registered once under an integer model id. The integrators
look models up here for both the initial and the per-step evaluation, so
adding a model never requires touching the integration loop.
"""

from typing import Any, Dict, List, Optional
import logging
import math

from ..exceptions import GrowthRateError, UnsupportedModelError
from . import bjorken_mtingwa, nagaitsev, piwinski
from .types import GrowthRateContext, GrowthRateEvaluator, GrowthRates, IBSModel

logger = logging.getLogger(__name__)


class GrowthRateRegistry:
    """
    Registry mapping model ids to growth-rate evaluators.

    Instances are independent, so a caller (or a test) can build a registry
    with custom evaluators without touching the package-wide default one.
    """

    def __init__(self):
        self._evaluators: Dict[int, GrowthRateEvaluator] = {}
        self._metadata: Dict[int, Dict[str, Any]] = {}

    def register(
        self,
        model: int,
        evaluator: GrowthRateEvaluator,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        """
        Register a growth-rate evaluator.

        Args:
            model: Integer model id
            evaluator: Callable returning GrowthRates
            metadata: Optional description of the model

        Raises:
            ValueError: If the evaluator is not callable
        """
        if not callable(evaluator):
            raise ValueError(f"Evaluator for model {model} must be callable")

        model = int(model)
        if model in self._evaluators:
            logger.warning(f"Model {model} is already registered, overwriting")

        self._evaluators[model] = evaluator
        self._metadata[model] = metadata or {}
        logger.debug(f"Registered growth-rate model {model}: {getattr(evaluator, '__name__', evaluator)}")

    def unregister(self, model: int):
        """Remove a model from the registry."""
        model = int(model)
        if model in self._evaluators:
            del self._evaluators[model]
            self._metadata.pop(model, None)
            logger.debug(f"Unregistered growth-rate model {model}")
        else:
            logger.warning(f"Model {model} not found in registry")

    def get(self, model: int) -> GrowthRateEvaluator:
        """
        Get the evaluator of a model.

        Raises:
            UnsupportedModelError: If the model id is not registered
        """
        try:
            key = int(model)
        except (TypeError, ValueError):
            key = None
        if key not in self._evaluators:
            raise UnsupportedModelError(
                f"Unsupported growth-rate model {model!r}. Available models: {self.list_models()}"
            )
        return self._evaluators[key]

    def evaluate(self, model: int, ex: float, ey: float, sigs: float, sige: float,
                 context: GrowthRateContext) -> GrowthRates:
        """
        Evaluate a model at the given beam state.

        Raises:
            UnsupportedModelError: If the model id is not registered
            GrowthRateError: If the evaluator fails or returns non-finite rates
        """
        evaluator = self.get(model)
        try:
            rates = evaluator(ex, ey, sigs, sige, context)
        except (ArithmeticError, ValueError) as e:
            raise GrowthRateError(f"Growth-rate model {model} failed: {e}") from e

        if not isinstance(rates, GrowthRates):
            rates = GrowthRates(*rates)
        if not rates.is_finite():
            raise GrowthRateError(
                f"Growth-rate model {model} returned non-finite rates {rates.as_tuple()} "
                f"at ex={ex:.6e}, ey={ey:.6e}, sigs={sigs:.6e}, sige={sige:.6e}"
            )
        return rates

    def list_models(self) -> List[int]:
        return sorted(self._evaluators)

    def get_model_info(self, model: int) -> Dict[str, Any]:
        evaluator = self.get(model)
        return {
            'model': int(model),
            'function': getattr(evaluator, '__name__', repr(evaluator)),
            'metadata': self._metadata.get(int(model), {}),
        }

    def __contains__(self, model) -> bool:
        try:
            return int(model) in self._evaluators
        except (TypeError, ValueError):
            return False

    def copy(self) -> "GrowthRateRegistry":
        """Return an independent registry with the same entries."""
        clone = GrowthRateRegistry()
        clone._evaluators = dict(self._evaluators)
        clone._metadata = {key: dict(value) for key, value in self._metadata.items()}
        return clone


_BUILTIN_MODELS = {
    IBSModel.PIWINSKI_SMOOTH: (piwinski.piwinski_smooth, "Piwinski, smooth ring approximation"),
    IBSModel.PIWINSKI_LATTICE: (piwinski.piwinski_lattice, "Piwinski, element by element"),
    IBSModel.PIWINSKI_LATTICE_MODIFIED: (piwinski.piwinski_lattice_modified, "Piwinski with H-function"),
    IBSModel.NAGAITSEV: (nagaitsev.nagaitsev, "Nagaitsev elliptic integrals"),
    IBSModel.NAGAITSEV_TAILCUT: (nagaitsev.nagaitsev_tailcut, "Nagaitsev with tail cut"),
    IBSModel.MADX: (bjorken_mtingwa.madx, "Bjorken-Mtingwa with vertical dispersion (MAD-X)"),
    IBSModel.MADX_TAILCUT: (bjorken_mtingwa.madx_tailcut, "MAD-X with tail cut"),
    IBSModel.BJORKEN_MTINGWA2: (bjorken_mtingwa.bjorken_mtingwa2, "Bjorken-Mtingwa, D' neglected"),
    IBSModel.BJORKEN_MTINGWA: (bjorken_mtingwa.bjorken_mtingwa, "Bjorken-Mtingwa"),
    IBSModel.BJORKEN_MTINGWA_TAILCUT: (bjorken_mtingwa.bjorken_mtingwa_tailcut, "Bjorken-Mtingwa with tail cut"),
    IBSModel.CONTE_MARTINI: (bjorken_mtingwa.conte_martini, "Conte-Martini, high-energy form"),
    IBSModel.CONTE_MARTINI_TAILCUT: (bjorken_mtingwa.conte_martini_tailcut, "Conte-Martini with tail cut"),
    IBSModel.MADX_AVERAGED: (bjorken_mtingwa.madx_averaged, "MAD-X with element-averaged optics"),
}


def _register_builtin_models(registry: GrowthRateRegistry):
    for model, (evaluator, description) in _BUILTIN_MODELS.items():
        registry.register(model, evaluator, {'name': model.name, 'description': description})


default_registry = GrowthRateRegistry()
_register_builtin_models(default_registry)
