"""Crop recommendation from soil and climate readings."""
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, List, Mapping, NamedTuple, Optional, Tuple

import pandas as pd

from agriml.envelope import CROP_ACCURACY, CROP_WINDOW_DAYS, build_model_info, build_timeframe
from agriml.features import with_defaults
from agriml.risk_models import load_artifact
from agriml.schemas import CropPrediction, CropRecommendation, ModelMode

logger = logging.getLogger(__name__)

RULE_BASED_ALGORITHM = "Rule-Based Classification"
TRAINED_ALGORITHM = "CatBoost Classification"

CROP_FEATURES = ["temperature", "humidity", "ph", "rainfall", "nitrogen", "phosphorus", "potassium"]
CROPS = ["maize", "cassava", "yam", "cocoa", "rice", "sorghum", "millet", "groundnut"]

CROP_DEFAULTS = {
    "temperature": 25,
    "humidity": 70,
    "ph": 6.5,
    "rainfall": 800,
    "nitrogen": 50,
    "phosphorus": 25,
    "potassium": 40,
}

TOP_K = 3


class CropScore(NamedTuple):
    crop: str
    probability: float
    confidence: float


@dataclass(frozen=True)
class CropRule:
    """Appends ``scores`` when ``low <= features[feature] <= high``."""

    feature: str
    low: Optional[float]
    high: Optional[float]
    scores: Tuple[CropScore, ...]

    def matches(self, features: Mapping[str, Any]) -> bool:
        value = features.get(self.feature)
        if value is None:
            return False
        if self.low is not None and value < self.low:
            return False
        if self.high is not None and value > self.high:
            return False
        return True


CROP_RULES = [
    CropRule("ph", 5.5, 7.0, (CropScore("maize", 0.85, 0.8), CropScore("sorghum", 0.78, 0.75))),
    CropRule("rainfall", 1000, None, (CropScore("cassava", 0.9, 0.85),)),
    CropRule("temperature", 25, 30, (CropScore("yam", 0.82, 0.78),)),
]


def recommend(features: Mapping[str, Any]) -> List[CropScore]:
    """Evaluate every rule independently; highest confidence first."""
    recommendations: List[CropScore] = []
    for rule in CROP_RULES:
        if rule.matches(features):
            recommendations.extend(rule.scores)
    return sorted(recommendations, key=lambda rec: rec.confidence, reverse=True)


def crop_reasons(features: Mapping[str, Any]) -> List[str]:
    reasons = []
    temperature = features.get("temperature")
    humidity = features.get("humidity")
    ph = features.get("ph")
    rainfall = features.get("rainfall")

    if temperature is not None and 20 <= temperature <= 30:
        reasons.append("Optimal temperature range")
    if humidity is not None and 60 <= humidity <= 80:
        reasons.append("Suitable humidity levels")
    if ph is not None and 6.0 <= ph <= 7.5:
        reasons.append("Good soil pH")
    if rainfall is not None and rainfall >= 500:
        reasons.append("Adequate rainfall")

    return reasons or ["Based on environmental conditions"]


class CropModel:
    def __init__(self, artifact_path: Optional[Path] = None):
        self.features = CROP_FEATURES
        self.crops = CROPS
        self.artifact_path = artifact_path
        self.classifier = load_artifact(artifact_path)
        self.mode = ModelMode.TRAINED if self.classifier is not None else ModelMode.RULE_BASED
        logger.info("crop model ready in %s mode", self.mode.value)

    @property
    def algorithm(self) -> str:
        return TRAINED_ALGORITHM if self.mode is ModelMode.TRAINED else RULE_BASED_ALGORITHM

    def _classify(self, features: Mapping[str, Any]) -> List[CropScore]:
        row = with_defaults(CROP_DEFAULTS, features)
        frame = pd.DataFrame([[float(row[name]) for name in self.features]], columns=self.features)
        probs = self.classifier.predict_proba(frame)[0]
        ranked = sorted(zip(self.classifier.classes_, probs), key=lambda item: item[1], reverse=True)
        return [CropScore(str(crop), float(p), float(p)) for crop, p in ranked[:TOP_K]]

    def scores(self, features: Mapping[str, Any]) -> List[CropScore]:
        if self.mode is ModelMode.TRAINED:
            return self._classify(features)
        return recommend(features)

    def predict(self, features: Mapping[str, Any], now: Optional[datetime] = None) -> CropPrediction:
        reasons = crop_reasons(features)
        recommendations = [
            CropRecommendation(
                crop=rec.crop,
                suitability=rec.probability,
                confidence=rec.confidence,
                reasons=reasons,
            )
            for rec in self.scores(features)
        ]
        return CropPrediction(
            recommendations=recommendations,
            timeframe=build_timeframe(CROP_WINDOW_DAYS, now),
            model_info=build_model_info(self.algorithm, self.features, CROP_ACCURACY),
            mode=self.mode,
        )
