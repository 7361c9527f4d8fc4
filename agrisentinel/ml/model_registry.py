"""
Model Registry

Maps configured model names to adapter factories. The active set is chosen by
configuration (PipelineSettings.active_models), never by subclassing.
"""
import glob
import logging
import os
from typing import Callable, Dict, Iterable, List, Optional

from agrisentinel.config import get_settings
from agrisentinel.ml.model_adapters import (
    DroughtIndexModel,
    FrostRiskModel,
    HeatStressModel,
    PestPressureModel,
    Predictor,
    RainfallExcessModel,
    SklearnClassifierModel,
)

logger = logging.getLogger(__name__)

PredictorFactory = Callable[[], Predictor]


class ModelRegistry:
    """Registry of available model adapters and their historical accuracy"""

    def __init__(self):
        self._factories: Dict[str, PredictorFactory] = {}
        self._accuracy: Dict[str, float] = {}

    def register(self, name: str, factory: PredictorFactory, accuracy: Optional[float] = None):
        self._factories[name] = factory
        if accuracy is not None:
            self.set_accuracy(name, accuracy)

    def set_accuracy(self, name: str, accuracy: float):
        """Historical accuracy is maintained externally and pushed in here"""
        self._accuracy[name] = min(max(float(accuracy), 0.0), 1.0)

    @property
    def names(self) -> List[str]:
        return sorted(self._factories)

    @property
    def accuracy_weights(self) -> Dict[str, float]:
        return dict(self._accuracy)

    def build(self, names: Iterable[str]) -> List[Predictor]:
        """Instantiate the configured active set, skipping unknown names"""
        models = []
        for name in names:
            factory = self._factories.get(name)
            if factory is None:
                logger.warning(f"Unknown model '{name}' in active set, skipping")
                continue
            models.append(factory())
        logger.info(f"Built {len(models)} active models: {[m.model_id for m in models]}")
        return models


def create_default_registry() -> ModelRegistry:
    """Registry with the built-in agronomic index models"""
    registry = ModelRegistry()
    registry.register("drought_index", DroughtIndexModel, accuracy=0.78)
    registry.register("heat_stress", HeatStressModel, accuracy=0.72)
    registry.register("frost_risk", FrostRiskModel, accuracy=0.81)
    registry.register("pest_pressure", PestPressureModel, accuracy=0.64)
    registry.register("rainfall_excess", RainfallExcessModel, accuracy=0.69)
    return registry


def register_trained_models(registry: ModelRegistry, model_dir: str) -> List[str]:
    """
    Register every trained classifier pickle found in model_dir.

    Models are registered under their file name; they only run when that name
    is also in the active set.
    """
    registered = []
    for model_path in sorted(glob.glob(os.path.join(model_dir, "*.pkl"))):
        model = SklearnClassifierModel(model_path)
        model.load_model()
        if model.model is None:
            continue
        registry.register(model.model_id, lambda model=model: model, accuracy=model.accuracy)
        registered.append(model.model_id)

    if registered:
        logger.info(f"Registered trained models from {model_dir}: {registered}")
    return registered


# Singleton instance
_registry_instance = None


def get_model_registry() -> ModelRegistry:
    """Get singleton ModelRegistry instance"""
    global _registry_instance
    if _registry_instance is None:
        _registry_instance = create_default_registry()
        model_dir = get_settings().model_dir
        if model_dir:
            register_trained_models(_registry_instance, model_dir)
    return _registry_instance
