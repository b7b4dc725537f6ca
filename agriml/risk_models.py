"""
Flood and drought risk scorers.

A scorer turns a feature vector into a clamped score in [0, 1], a severity
label and a step-function confidence. It runs in one of two modes fixed at
construction: ``trained`` when an XGBoost artifact is present in the model
directory, ``rule_based`` (hand-weighted sum) otherwise.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Tuple

import joblib
import pandas as pd

from agriml.envelope import (
    DROUGHT_ACCURACY,
    DROUGHT_WINDOW_DAYS,
    FLOOD_ACCURACY,
    FLOOD_WINDOW_DAYS,
    build_model_info,
    build_timeframe,
)
from agriml.errors import ModelLoadError
from agriml.features import capped, excess, inverse_capped, inverse_ratio, ratio, with_defaults
from agriml.schemas import HazardType, ModelMode, RiskPrediction, Severity

logger = logging.getLogger(__name__)

RULE_BASED_ALGORITHM = "Rule-Based Weighted Scoring"
TRAINED_ALGORITHM = "Gradient Boosted Trees"


class RiskScore(NamedTuple):
    probability: float
    severity: Severity
    confidence: float


@dataclass(frozen=True)
class SeverityThresholds:
    high: float
    medium: float

    def classify(self, score: float) -> Severity:
        if score > self.high:
            return Severity.HIGH
        if score > self.medium:
            return Severity.MEDIUM
        return Severity.LOW


@dataclass(frozen=True)
class ConfidenceSteps:
    high: float
    medium: float
    values: Tuple[float, float, float] = (0.9, 0.75, 0.6)

    def confidence(self, score: float) -> float:
        if score > self.high:
            return self.values[0]
        if score > self.medium:
            return self.values[1]
        return self.values[2]


def clamp(score: float) -> float:
    return max(0.0, min(1.0, score))


# Flood

FLOOD_FEATURES = [
    "rainfall_24h", "rainfall_7d", "rainfall_30d",
    "temperature", "humidity", "pressure",
    "elevation", "slope", "soil_type",
    "river_distance", "drainage_density",
    "ndvi", "land_cover",
]

FLOOD_DEFAULTS = {
    "rainfall_24h": 0,
    "rainfall_7d": 0,
    "rainfall_30d": 100,
    "temperature": 25,
    "humidity": 60,
    "pressure": 1013,
    "elevation": 200,
    "slope": 5,
    "soil_type": 2,
    "river_distance": 5000,
    "drainage_density": 2,
    "ndvi": 0.6,
    "land_cover": 3,
}

CLAY_SOIL = 1

FLOOD_SEVERITY = SeverityThresholds(high=0.7, medium=0.4)
FLOOD_CONFIDENCE = ConfidenceSteps(high=0.7, medium=0.4)


def flood_rule_score(features: Mapping[str, Any]) -> float:
    """Unclamped weighted flood score."""
    f = with_defaults(FLOOD_DEFAULTS, features)
    score = 0.0

    # Heavy rain dominates
    score += capped(f["rainfall_24h"], 100) * 0.3
    score += capped(f["rainfall_7d"], 300) * 0.2

    # Low, flat ground close to a river
    score += inverse_capped(f["elevation"], 500) * 0.15
    score += inverse_capped(f["slope"], 10) * 0.1
    score += inverse_capped(f["river_distance"], 2000) * 0.1

    score += capped(f["drainage_density"], 5) * 0.05
    score += 0.05 if f["soil_type"] == CLAY_SOIL else 0.0
    score += (1 - f["ndvi"]) * 0.05
    return score


# Drought

DROUGHT_FEATURES = [
    "temperature_avg", "temperature_max", "temperature_min",
    "rainfall_30d", "rainfall_60d", "rainfall_90d",
    "humidity", "evapotranspiration",
    "soil_moisture", "groundwater_level",
    "ndvi", "vhi",
    "season", "elevation",
]

DROUGHT_DEFAULTS = {
    "temperature_avg": 25,
    "temperature_max": 35,
    "temperature_min": 15,
    "rainfall_30d": 50,
    "rainfall_60d": 120,
    "rainfall_90d": 200,
    "humidity": 60,
    "evapotranspiration": 5,
    "soil_moisture": 40,
    "groundwater_level": 20,
    "ndvi": 0.4,
    "vhi": 0.5,
    "season": 1,
    "elevation": 300,
}

DROUGHT_SEVERITY = SeverityThresholds(high=0.6, medium=0.4)
DROUGHT_CONFIDENCE = ConfidenceSteps(high=0.7, medium=0.3)


def drought_rule_score(features: Mapping[str, Any]) -> float:
    """Unclamped weighted drought score."""
    f = with_defaults(DROUGHT_DEFAULTS, features)
    score = 0.0

    # Heat
    score += excess(f["temperature_avg"], 30, 15) * 0.2
    score += excess(f["temperature_max"], 40, 10) * 0.1

    # Rain deficit
    score += inverse_capped(f["rainfall_30d"], 100) * 0.2
    score += inverse_capped(f["rainfall_60d"], 200) * 0.15
    score += inverse_capped(f["rainfall_90d"], 300) * 0.1

    # Dry air and evaporation
    score += inverse_ratio(f["humidity"], 100) * 0.05
    score += ratio(f["evapotranspiration"], 10) * 0.05

    # Soil and groundwater
    score += inverse_ratio(f["soil_moisture"], 60) * 0.1
    score += inverse_ratio(f["groundwater_level"], 50) * 0.05

    # Vegetation health
    score += (1 - f["ndvi"]) * 0.05
    score += (1 - f["vhi"]) * 0.05
    return score


def load_artifact(path: Optional[Path]) -> Optional[Any]:
    """Load a joblib artifact, or return None when there is none on disk."""
    if path is None or not Path(path).exists():
        return None
    try:
        return joblib.load(path)
    except Exception as e:
        raise ModelLoadError(f"Could not load model artifact {path}: {e}") from e


class RiskModel:
    def __init__(
        self,
        hazard: HazardType,
        features: List[str],
        defaults: Dict[str, Any],
        rule: Callable[[Mapping[str, Any]], float],
        severity: SeverityThresholds,
        confidence: ConfidenceSteps,
        accuracy: float,
        window_days: int,
        artifact_path: Optional[Path] = None,
    ):
        self.hazard = hazard
        self.features = features
        self.defaults = defaults
        self.rule = rule
        self.severity = severity
        self.confidence = confidence
        self.accuracy = accuracy
        self.window_days = window_days
        self.artifact_path = artifact_path

        self.estimator = load_artifact(artifact_path)
        self.mode = ModelMode.TRAINED if self.estimator is not None else ModelMode.RULE_BASED
        logger.info("%s model ready in %s mode", hazard.value, self.mode.value)

    @property
    def algorithm(self) -> str:
        return TRAINED_ALGORITHM if self.mode is ModelMode.TRAINED else RULE_BASED_ALGORITHM

    def feature_frame(self, features: Mapping[str, Any]) -> pd.DataFrame:
        row = with_defaults(self.defaults, features)
        return pd.DataFrame([[float(row[name]) for name in self.features]], columns=self.features)

    def raw_score(self, features: Mapping[str, Any]) -> float:
        if self.mode is ModelMode.TRAINED:
            return float(self.estimator.predict(self.feature_frame(features))[0])
        return self.rule(features)

    def score(self, features: Mapping[str, Any]) -> RiskScore:
        probability = clamp(self.raw_score(features))
        return RiskScore(
            probability=probability,
            severity=self.severity.classify(probability),
            confidence=self.confidence.confidence(probability),
        )

    def predict(self, features: Mapping[str, Any], now: Optional[datetime] = None) -> RiskPrediction:
        result = self.score(features)
        logger.debug("%s score=%.3f severity=%s", self.hazard.value, result.probability, result.severity.value)
        return RiskPrediction(
            type=self.hazard,
            prediction=result.severity,
            probability=result.probability,
            confidence=result.confidence,
            severity=result.severity,
            timeframe=build_timeframe(self.window_days, now),
            model_info=build_model_info(self.algorithm, self.features, self.accuracy),
            mode=self.mode,
        )


def flood_model(artifact_path: Optional[Path] = None) -> RiskModel:
    return RiskModel(
        hazard=HazardType.FLOOD,
        features=FLOOD_FEATURES,
        defaults=FLOOD_DEFAULTS,
        rule=flood_rule_score,
        severity=FLOOD_SEVERITY,
        confidence=FLOOD_CONFIDENCE,
        accuracy=FLOOD_ACCURACY,
        window_days=FLOOD_WINDOW_DAYS,
        artifact_path=artifact_path,
    )


def drought_model(artifact_path: Optional[Path] = None) -> RiskModel:
    return RiskModel(
        hazard=HazardType.DROUGHT,
        features=DROUGHT_FEATURES,
        defaults=DROUGHT_DEFAULTS,
        rule=drought_rule_score,
        severity=DROUGHT_SEVERITY,
        confidence=DROUGHT_CONFIDENCE,
        accuracy=DROUGHT_ACCURACY,
        window_days=DROUGHT_WINDOW_DAYS,
        artifact_path=artifact_path,
    )
