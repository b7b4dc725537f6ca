import numpy as np
import pandas as pd
import pytest
from fastapi.testclient import TestClient

from agriml.config import Settings
from agriml.crop_model import CROP_FEATURES
from agriml.ml_service import MLService
from agriml.repository import PredictionStore
from agriml.risk_models import (
    DROUGHT_FEATURES,
    FLOOD_FEATURES,
    clamp,
    drought_rule_score,
    flood_rule_score,
)
from main import create_app


def make_training_frame(rows: int = 60, seed: int = 0) -> pd.DataFrame:
    """Random readings labelled by the rule-based scorers."""
    rng = np.random.default_rng(seed)
    data = {
        # flood
        "rainfall_24h": rng.uniform(0, 200, rows),
        "rainfall_7d": rng.uniform(0, 400, rows),
        "rainfall_30d": rng.uniform(0, 600, rows),
        "temperature": rng.uniform(15, 35, rows),
        "humidity": rng.uniform(30, 95, rows),
        "pressure": rng.uniform(990, 1030, rows),
        "elevation": rng.uniform(0, 800, rows),
        "slope": rng.uniform(0, 15, rows),
        "soil_type": rng.integers(1, 4, rows),
        "river_distance": rng.uniform(0, 6000, rows),
        "drainage_density": rng.uniform(0, 5, rows),
        "ndvi": rng.uniform(0, 1, rows),
        "land_cover": rng.integers(1, 6, rows),
        # drought
        "temperature_avg": rng.uniform(18, 42, rows),
        "temperature_max": rng.uniform(25, 48, rows),
        "temperature_min": rng.uniform(5, 20, rows),
        "rainfall_60d": rng.uniform(0, 300, rows),
        "rainfall_90d": rng.uniform(0, 400, rows),
        "evapotranspiration": rng.uniform(1, 10, rows),
        "soil_moisture": rng.uniform(5, 60, rows),
        "groundwater_level": rng.uniform(5, 50, rows),
        "vhi": rng.uniform(0, 1, rows),
        "season": rng.integers(1, 5, rows),
        # crop
        "ph": rng.uniform(4.5, 8.0, rows),
        "rainfall": rng.uniform(300, 1600, rows),
        "nitrogen": rng.uniform(10, 90, rows),
        "phosphorus": rng.uniform(5, 50, rows),
        "potassium": rng.uniform(10, 80, rows),
    }
    frame = pd.DataFrame(data)
    records = frame.to_dict("records")
    frame["flood_risk_score"] = [clamp(flood_rule_score(r)) for r in records]
    frame["drought_risk_score"] = [clamp(drought_rule_score(r)) for r in records]
    frame["crop"] = ["maize", "cassava", "millet"] * (rows // 3) + ["maize"] * (rows % 3)
    assert set(FLOOD_FEATURES + DROUGHT_FEATURES + CROP_FEATURES) <= set(frame.columns)
    return frame


@pytest.fixture
def settings(tmp_path):
    return Settings(
        model_dir=tmp_path / "models",
        database_url=f"sqlite:///{tmp_path / 'predictions.db'}",
        price_random_seed=1234,
    )


@pytest.fixture
def service(settings):
    return MLService(settings)


@pytest.fixture
def store(settings):
    store = PredictionStore(settings.database_url)
    yield store
    store.close()


@pytest.fixture
def client(settings, service, store):
    app = create_app(settings=settings, service=service, store=store)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def training_frame():
    return make_training_frame()
