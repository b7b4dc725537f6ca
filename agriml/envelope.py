"""Packaging of raw model output into timeframe + model metadata."""
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from agriml.schemas import ModelInfo, Timeframe

MODEL_VERSION = "1.0"

# Validity window per hazard, in days. Price uses the caller's horizon.
FLOOD_WINDOW_DAYS = 7
DROUGHT_WINDOW_DAYS = 30
CROP_WINDOW_DAYS = 90

# Display constants, not measured on any evaluation set
FLOOD_ACCURACY = 0.85
DROUGHT_ACCURACY = 0.82
CROP_ACCURACY = 0.78


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_timeframe(days: int, now: Optional[datetime] = None) -> Timeframe:
    start = now or utcnow()
    return Timeframe(start_date=start, end_date=start + timedelta(days=days))


def build_model_info(algorithm: str, features: List[str], accuracy: Optional[float]) -> ModelInfo:
    return ModelInfo(
        version=MODEL_VERSION,
        algorithm=algorithm,
        features=list(features),
        accuracy=accuracy,
    )
