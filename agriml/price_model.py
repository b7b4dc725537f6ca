"""
Crop price forecasting.

Two paths:
- heuristic: current price scaled by the demand/supply ratio and a random
  trend drawn from an injected numpy Generator
- regression: least-squares fit over historical points by gradient descent,
  refitted from scratch whenever history is supplied
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, NamedTuple, Optional

import numpy as np
import pandas as pd
import torch
from sklearn.preprocessing import StandardScaler

from agriml.envelope import build_model_info, build_timeframe, utcnow
from agriml.errors import ModelNotTrainedError, TrainingDataError
from agriml.schemas import PriceForecast, PriceMethod, PricePrediction

logger = logging.getLogger(__name__)

PRICE_FEATURES = [
    "historical_price", "supply", "demand", "season",
    "weather_impact", "fuel_price", "exchange_rate",
]
MULTIVARIATE_FEATURES = ["supply", "demand", "season", "weather_impact", "fuel_price", "exchange_rate"]
LINEAR_FEATURES = ["day"]

DEFAULT_PRICE = 200
DEFAULT_VOLUME = 1000

HEURISTIC_FACTORS = ["Supply-demand", "Seasonality", "Fuel cost"]
LINEAR_FACTORS = ["Historical trend"]
MULTIVARIATE_FACTORS = ["Supply-demand", "Seasonality", "Weather impact", "Fuel cost", "Exchange rate"]

ALGORITHMS = {
    PriceMethod.HEURISTIC: "Supply-Demand Heuristic",
    PriceMethod.LINEAR: "Linear Regression",
    PriceMethod.MULTIVARIATE: "Multivariate Linear Regression",
}

BASE_PRICES = {
    "maize": 200,
    "rice": 300,
    "wheat": 250,
    "cassava": 150,
    "yam": 180,
    "cocoa": 2500,
    "coffee": 1200,
    "cotton": 800,
    "groundnut": 400,
    "soybean": 350,
    "tomato": 120,
    "pepper": 200,
    "onion": 100,
}

MULTIVARIATE_DEFAULTS = {
    "supply": DEFAULT_VOLUME,
    "demand": DEFAULT_VOLUME,
    "season": 1,
    "weather_impact": 0,
    "fuel_price": 100,
    "exchange_rate": 1,
}


class PriceEstimate(NamedTuple):
    current_price: float
    predicted_price: float
    change: float
    change_direction: str
    confidence: float
    factors: List[str]


def change_direction(diff: float) -> str:
    return "increase" if diff > 0 else "decrease"


def heuristic_price(inputs: Mapping[str, Any], rng: np.random.Generator) -> PriceEstimate:
    base = inputs.get("historical_price") or DEFAULT_PRICE
    supply_demand = (inputs.get("demand") or DEFAULT_VOLUME) / (inputs.get("supply") or DEFAULT_VOLUME)
    # trend in [-0.12, 0.18)
    trend = (rng.random() - 0.4) * 0.3

    predicted = base * supply_demand * (1 + trend)
    diff = predicted - base
    return PriceEstimate(
        current_price=float(base),
        predicted_price=float(predicted),
        change=abs(float(diff)),
        change_direction=change_direction(diff),
        confidence=0.7 + rng.random() * 0.2,
        factors=list(HEURISTIC_FACTORS),
    )


def base_price(crop: str) -> float:
    return BASE_PRICES.get(crop, DEFAULT_PRICE)


def generate_price_history(
    crop: str,
    num_points: int,
    rng: np.random.Generator,
    end: Optional[datetime] = None,
) -> pd.DataFrame:
    """Synthetic daily series: seasonal swing, noise and a slow upward drift."""
    base = base_price(crop)
    end = end or utcnow()
    rows = []
    for i in range(num_points):
        seasonal = math.sin((i / num_points) * 2 * math.pi) * 0.2
        noise = (rng.random() - 0.5) * 0.3
        drift = i / num_points * 0.1
        price = base * (1 + seasonal + noise + drift)
        rows.append({
            "date": end - timedelta(days=num_points - i),
            "price": max(price, base * 0.5),
            "supply": 800 + rng.random() * 400,
            "demand": 900 + rng.random() * 300,
            "season": i // max(num_points // 4, 1),
            "weather_impact": rng.random() - 0.5,
            "fuel_price": 90 + rng.random() * 40,
            "exchange_rate": 0.9 + rng.random() * 0.4,
        })
    return pd.DataFrame(rows)


@dataclass
class FittedPrice:
    method: PriceMethod
    features: List[str]
    x_scaler: StandardScaler
    y_scaler: StandardScaler
    weights: np.ndarray
    bias: float
    last_day: float
    last_price: float
    data_points: int
    r2: float
    trained_at: datetime = field(default_factory=utcnow)

    def evaluate(self, x: np.ndarray) -> np.ndarray:
        scaled = self.x_scaler.transform(x) @ self.weights + self.bias
        return self.y_scaler.inverse_transform(scaled.reshape(-1, 1)).ravel()

    def summary(self) -> Dict[str, Any]:
        return {
            "trained": True,
            "method": self.method.value,
            "features": self.features,
            "data_points": self.data_points,
            "r2": self.r2,
            "trained_at": self.trained_at.isoformat(),
        }


def _design_matrix(history: pd.DataFrame, method: PriceMethod) -> np.ndarray:
    if method is PriceMethod.LINEAR:
        return history[["day"]].to_numpy(dtype=np.float64)
    return history[MULTIVARIATE_FEATURES].to_numpy(dtype=np.float64)


def _r_squared(actual: np.ndarray, fitted: np.ndarray) -> float:
    ss_res = float(np.sum((actual - fitted) ** 2))
    ss_tot = float(np.sum((actual - actual.mean()) ** 2))
    if ss_tot == 0:
        return 1.0 if ss_res == 0 else 0.0
    return max(0.0, min(1.0, 1 - ss_res / ss_tot))


class PriceRegressor:
    """Per-crop least-squares price models fitted by plain gradient descent."""

    def __init__(self, iterations: int = 1000, learning_rate: float = 0.01):
        self.iterations = iterations
        self.learning_rate = learning_rate
        self.models: Dict[str, FittedPrice] = {}

    def has_model(self, crop: str) -> bool:
        return crop in self.models

    def fit(self, crop: str, history: pd.DataFrame, method: PriceMethod = PriceMethod.LINEAR) -> FittedPrice:
        """Train on ``history`` and keep the result as the crop's model."""
        fitted = self.train(crop, history, method)
        self.models[crop] = fitted
        return fitted

    def train(self, crop: str, history: pd.DataFrame, method: PriceMethod = PriceMethod.LINEAR) -> FittedPrice:
        """Fit parameters without registering them."""
        if method is PriceMethod.HEURISTIC:
            raise ValueError("The heuristic price path has nothing to fit")
        missing = {"date", "price"} - set(history.columns)
        if missing:
            raise TrainingDataError(f"Price history is missing columns: {sorted(missing)}")
        if len(history) < 2:
            raise TrainingDataError(f"Need at least 2 historical points to fit '{crop}', got {len(history)}")

        data = history.copy()
        for name, default in MULTIVARIATE_DEFAULTS.items():
            if name not in data.columns:
                data[name] = default
        data["date"] = pd.to_datetime(data["date"], utc=True)
        data = data.sort_values("date").reset_index(drop=True)
        first_date = data["date"].iloc[0]
        data["day"] = (data["date"] - first_date).dt.total_seconds() / 86400.0

        x = _design_matrix(data, method)
        y = data["price"].to_numpy(dtype=np.float64)

        x_scaler = StandardScaler().fit(x)
        y_scaler = StandardScaler().fit(y.reshape(-1, 1))
        x_tensor = torch.tensor(x_scaler.transform(x), dtype=torch.float32)
        y_tensor = torch.tensor(y_scaler.transform(y.reshape(-1, 1)), dtype=torch.float32)

        model = torch.nn.Linear(x.shape[1], 1)
        torch.nn.init.zeros_(model.weight)
        torch.nn.init.zeros_(model.bias)
        criterion = torch.nn.MSELoss()
        optimizer = torch.optim.SGD(model.parameters(), lr=self.learning_rate)

        for _ in range(self.iterations):
            optimizer.zero_grad()
            loss = criterion(model(x_tensor), y_tensor)
            loss.backward()
            optimizer.step()

        fitted = FittedPrice(
            method=method,
            features=list(LINEAR_FEATURES if method is PriceMethod.LINEAR else MULTIVARIATE_FEATURES),
            x_scaler=x_scaler,
            y_scaler=y_scaler,
            weights=model.weight.detach().numpy().astype(np.float64).ravel(),
            bias=float(model.bias.detach().item()),
            last_day=float(data["day"].iloc[-1]),
            last_price=float(y[-1]),
            data_points=len(data),
            r2=0.0,
        )
        fitted.r2 = _r_squared(y, fitted.evaluate(x))
        logger.info("Fitted %s price model for %s on %d points (r2=%.3f, loss=%.5f)",
                    method.value, crop, len(data), fitted.r2, loss.item())
        return fitted

    def predict(self, crop: str, inputs: Mapping[str, Any], days_ahead: int) -> PriceEstimate:
        fitted = self.models.get(crop)
        if fitted is None:
            raise ModelNotTrainedError(crop)
        return self.forecast(fitted, inputs, days_ahead)

    @staticmethod
    def forecast(fitted: FittedPrice, inputs: Mapping[str, Any], days_ahead: int) -> PriceEstimate:
        if fitted.method is PriceMethod.LINEAR:
            x = np.array([[fitted.last_day + days_ahead]], dtype=np.float64)
            factors = LINEAR_FACTORS
        else:
            row = [inputs.get(name, MULTIVARIATE_DEFAULTS[name]) for name in MULTIVARIATE_FEATURES]
            x = np.array([row], dtype=np.float64)
            factors = MULTIVARIATE_FACTORS

        current = inputs.get("historical_price") or fitted.last_price
        predicted = float(fitted.evaluate(x)[0])
        diff = predicted - current
        return PriceEstimate(
            current_price=float(current),
            predicted_price=predicted,
            change=abs(diff),
            change_direction=change_direction(diff),
            confidence=fitted.r2,
            factors=list(factors),
        )

    def summary(self) -> Dict[str, Dict[str, Any]]:
        return {crop: fitted.summary() for crop, fitted in self.models.items()}


class PriceModel:
    def __init__(self, rng: np.random.Generator, regressor: Optional[PriceRegressor] = None,
                 history_points: int = 200):
        self.rng = rng
        self.regressor = regressor or PriceRegressor()
        self.history_points = history_points
        self.features = PRICE_FEATURES

    def estimate(
        self,
        crop: str,
        inputs: Mapping[str, Any],
        days_ahead: int,
        method: PriceMethod = PriceMethod.HEURISTIC,
        history: Optional[pd.DataFrame] = None,
    ) -> PriceEstimate:
        if method is PriceMethod.HEURISTIC:
            return heuristic_price(inputs, self.rng)

        if history is not None:
            fitted = self.regressor.train(crop, history, method)
        else:
            fitted = self.regressor.models.get(crop)
            if fitted is None or fitted.method is not method:
                fitted = self.fit_synthetic(crop, method)
        return self.regressor.forecast(fitted, inputs, days_ahead)

    def fit_synthetic(self, crop: str, method: PriceMethod) -> FittedPrice:
        """Fit on a generated series; only crops with a known base price are kept."""
        logger.info("No %s price history for %s, fitting on a synthetic series", method.value, crop)
        history = generate_price_history(crop, self.history_points, self.rng)
        if crop in BASE_PRICES:
            return self.regressor.fit(crop, history, method)
        return self.regressor.train(crop, history, method)

    def predict(
        self,
        crop: str,
        inputs: Mapping[str, Any],
        days_ahead: int = 30,
        method: PriceMethod = PriceMethod.HEURISTIC,
        history: Optional[pd.DataFrame] = None,
        now: Optional[datetime] = None,
    ) -> PricePrediction:
        estimate = self.estimate(crop, inputs, days_ahead, method, history)
        return PricePrediction(
            crop=crop,
            prediction=PriceForecast(
                current_price=estimate.current_price,
                predicted_price=estimate.predicted_price,
                change=estimate.change,
                change_direction=estimate.change_direction,
            ),
            confidence=estimate.confidence,
            timeframe=build_timeframe(days_ahead, now),
            factors=estimate.factors,
            model_info=build_model_info(ALGORITHMS[method], self.features, estimate.confidence),
            method=method,
        )
