"""
ML service.

Owns one instance of each model. Built once at process start and handed to
whatever needs predictions; every call is a synchronous, stateless transform
apart from the price regressor's per-crop parameters.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

import numpy as np
import pandas as pd

from agriml.config import Settings
from agriml.crop_model import CropModel
from agriml.envelope import CROP_ACCURACY, DROUGHT_ACCURACY, FLOOD_ACCURACY, MODEL_VERSION
from agriml.errors import UnknownModelTypeError
from agriml.price_model import ALGORITHMS, PriceModel, PriceRegressor
from agriml.retrain import retrain_all_models
from agriml.risk_models import drought_model, flood_model
from agriml.schemas import (
    CropPrediction,
    HazardType,
    PriceMethod,
    PricePrediction,
    RiskPrediction,
)

logger = logging.getLogger(__name__)


class MLService:
    def __init__(self, settings: Settings, rng: Optional[np.random.Generator] = None):
        self.settings = settings
        self.rng = rng if rng is not None else np.random.default_rng(settings.price_random_seed)
        self.price_model = PriceModel(
            self.rng,
            PriceRegressor(settings.regression_iterations, settings.regression_learning_rate),
            history_points=settings.price_history_points,
        )
        self.reload_models()

    def reload_models(self) -> None:
        """Rebuild the flood, drought and crop models from whatever artifacts are on disk."""
        logger.info("Loading models from %s", self.settings.model_dir)
        self.flood_model = flood_model(self.settings.flood_artifact)
        self.drought_model = drought_model(self.settings.drought_artifact)
        self.crop_model = CropModel(self.settings.crop_artifact)

    def predict_flood(self, features: Mapping[str, Any], now: Optional[datetime] = None) -> RiskPrediction:
        return self.flood_model.predict(features, now)

    def predict_drought(self, features: Mapping[str, Any], now: Optional[datetime] = None) -> RiskPrediction:
        return self.drought_model.predict(features, now)

    def recommend_crops(self, features: Mapping[str, Any], now: Optional[datetime] = None) -> CropPrediction:
        return self.crop_model.predict(features, now)

    def predict_price(
        self,
        crop: str,
        inputs: Mapping[str, Any],
        days_ahead: int = 30,
        method: PriceMethod = PriceMethod.HEURISTIC,
        history: Optional[pd.DataFrame] = None,
        now: Optional[datetime] = None,
    ) -> PricePrediction:
        return self.price_model.predict(crop, inputs, days_ahead, method, history, now)

    def model_status(self) -> Dict[str, Any]:
        return {
            "flood": {
                "mode": self.flood_model.mode.value,
                "features": len(self.flood_model.features),
            },
            "drought": {
                "mode": self.drought_model.mode.value,
                "features": len(self.drought_model.features),
            },
            "crop": {
                "mode": self.crop_model.mode.value,
                "features": len(self.crop_model.features),
                "crops": len(self.crop_model.crops),
            },
            "price": {
                "models": self.price_model.regressor.summary(),
            },
        }

    def model_info(self, model_type: str) -> Dict[str, Any]:
        if model_type == HazardType.FLOOD.value:
            return {
                "name": "Flood Prediction Model",
                "version": MODEL_VERSION,
                "algorithm": self.flood_model.algorithm,
                "mode": self.flood_model.mode.value,
                "features": self.flood_model.features,
                "accuracy": FLOOD_ACCURACY,
                "description": "Predicts flood risk based on weather and geographical factors",
            }
        if model_type == HazardType.DROUGHT.value:
            return {
                "name": "Drought Prediction Model",
                "version": MODEL_VERSION,
                "algorithm": self.drought_model.algorithm,
                "mode": self.drought_model.mode.value,
                "features": self.drought_model.features,
                "accuracy": DROUGHT_ACCURACY,
                "description": "Predicts drought conditions using climate and environmental data",
            }
        if model_type == HazardType.CROP.value:
            return {
                "name": "Crop Recommendation Model",
                "version": MODEL_VERSION,
                "algorithm": self.crop_model.algorithm,
                "mode": self.crop_model.mode.value,
                "features": self.crop_model.features,
                "crops": self.crop_model.crops,
                "accuracy": CROP_ACCURACY,
                "description": "Recommends optimal crops based on soil and climate conditions",
            }
        if model_type == HazardType.PRICE.value:
            return {
                "name": "Price Prediction Model",
                "version": MODEL_VERSION,
                "algorithm": [ALGORITHMS[method] for method in PriceMethod],
                "features": self.price_model.features,
                "models": self.price_model.regressor.summary(),
                "description": "Predicts crop prices using market and economic indicators",
            }
        raise UnknownModelTypeError(model_type)

    def retrain_models(self, data: pd.DataFrame) -> Dict[str, Any]:
        logger.info("Retraining models on %d rows", len(data))
        results = retrain_all_models(data, self.settings.model_dir)
        self.reload_models()
        return results
