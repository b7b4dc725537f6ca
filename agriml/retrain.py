# agriml/retrain.py

import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple

import joblib
import pandas as pd
import xgboost as xgb
from catboost import CatBoostClassifier
from sklearn.model_selection import train_test_split

from agriml.config import CROP_ARTIFACT, DROUGHT_ARTIFACT, FLOOD_ARTIFACT
from agriml.crop_model import CROP_FEATURES
from agriml.errors import TrainingDataError
from agriml.risk_models import DROUGHT_FEATURES, FLOOD_FEATURES

logger = logging.getLogger(__name__)

FLOOD_TARGET = "flood_risk_score"
DROUGHT_TARGET = "drought_risk_score"
CROP_TARGET = "crop"

MIN_ROWS = 10

Frame = Tuple[pd.DataFrame, pd.Series]
Fitted = Tuple[Any, Dict[str, Any]]


def _training_frame(data: pd.DataFrame, features: List[str], target: str) -> Optional[Frame]:
    """Feature/target split, or None when the CSV has no target for this model."""
    if target not in data.columns:
        return None
    missing = [name for name in features if name not in data.columns]
    if missing:
        raise TrainingDataError(f"Missing feature columns for '{target}': {missing}")
    rows = data.dropna(subset=features + [target])
    if len(rows) < MIN_ROWS:
        raise TrainingDataError(f"Need at least {MIN_ROWS} complete rows for '{target}', got {len(rows)}")
    return rows[features].astype(float), rows[target]


def _flood_frame(data: pd.DataFrame) -> Optional[Frame]:
    return _training_frame(data, FLOOD_FEATURES, FLOOD_TARGET)


def _drought_frame(data: pd.DataFrame) -> Optional[Frame]:
    return _training_frame(data, DROUGHT_FEATURES, DROUGHT_TARGET)


def _crop_frame(data: pd.DataFrame) -> Optional[Frame]:
    frame = _training_frame(data, CROP_FEATURES, CROP_TARGET)
    if frame is None:
        return None
    X, y = frame
    y = y.astype(str)
    if y.nunique() < 2:
        raise TrainingDataError("Crop training data needs at least two distinct crops")
    return X, y


#  Risk scorers: XGBoost regressor on the clamped score
def _fit_risk(X: pd.DataFrame, y: pd.Series) -> Fitted:
    X_train, X_test, y_train, y_test = train_test_split(X, y, test_size=0.2, random_state=42)
    model = xgb.XGBRegressor(
        n_estimators=200,
        learning_rate=0.05,
        max_depth=6,
        subsample=0.8,
        colsample_bytree=0.8,
        random_state=42,
    )
    model.fit(X_train, y_train.astype(float))
    holdout_r2 = float(model.score(X_test, y_test.astype(float)))
    return model, {"rows": len(X), "holdout_r2": holdout_r2}


#  Crop recommender: CatBoost classifier over crop labels
def _fit_crop(X: pd.DataFrame, y: pd.Series) -> Fitted:
    X_train, X_test, y_train, y_test = train_test_split(X, y, test_size=0.2, random_state=42)
    model = CatBoostClassifier(iterations=200, random_seed=42, verbose=0, allow_writing_files=False)
    model.fit(X_train, y_train)
    holdout_accuracy = float(model.score(X_test, y_test))
    return model, {"rows": len(X), "holdout_accuracy": holdout_accuracy}


class TrainingJob(NamedTuple):
    name: str
    artifact: str
    frame: Callable[[pd.DataFrame], Optional[Frame]]
    fit: Callable[[pd.DataFrame, pd.Series], Fitted]


JOBS = [
    TrainingJob("flood", FLOOD_ARTIFACT, _flood_frame, _fit_risk),
    TrainingJob("drought", DROUGHT_ARTIFACT, _drought_frame, _fit_risk),
    TrainingJob("crop", CROP_ARTIFACT, _crop_frame, _fit_crop),
]


def save_artifact(model: Any, path: Path) -> None:
    """Dump to a sibling temp file, then rename it over ``path``."""
    tmp_path = path.with_name(path.name + ".tmp")
    joblib.dump(model, tmp_path)
    os.replace(tmp_path, path)


# Trigger all retrains
def retrain_all_models(data: pd.DataFrame, model_dir: Path) -> Dict[str, Any]:
    """
    Fit every model whose target column is present; the rest are reported as skipped.

    All frames are validated and all models fitted before any artifact is
    written, so a bad column for one model leaves every artifact on disk as it was.
    """
    model_dir = Path(model_dir)

    frames = {job.name: job.frame(data) for job in JOBS}
    if all(frame is None for frame in frames.values()):
        raise TrainingDataError(
            f"No target column found; expected one of {[FLOOD_TARGET, DROUGHT_TARGET, CROP_TARGET]}"
        )

    fitted = {
        job.name: job.fit(*frames[job.name])
        for job in JOBS
        if frames[job.name] is not None
    }

    model_dir.mkdir(parents=True, exist_ok=True)
    results: Dict[str, Any] = {}
    for job in JOBS:
        if job.name not in fitted:
            results[job.name] = "skipped"
            continue
        model, metrics = fitted[job.name]
        path = model_dir / job.artifact
        save_artifact(model, path)
        logger.info("Saved %s model to %s (%s)", job.name, path, metrics)
        results[job.name] = {**metrics, "artifact": str(path)}

    logger.info("Retrain finished: %s", {name: r if r == "skipped" else "trained" for name, r in results.items()})
    return results
