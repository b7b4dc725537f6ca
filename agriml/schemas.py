from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class HazardType(str, Enum):
    FLOOD = "flood"
    DROUGHT = "drought"
    CROP = "crop"
    PRICE = "price"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ModelMode(str, Enum):
    TRAINED = "trained"
    RULE_BASED = "rule_based"


class PriceMethod(str, Enum):
    HEURISTIC = "heuristic"
    LINEAR = "linear"
    MULTIVARIATE = "multivariate"


class PredictionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    VALIDATED = "validated"
    INVALIDATED = "invalidated"


class Location(BaseModel):
    country: str = "unknown"
    region: str = "unknown"
    lat: Optional[float] = None
    lng: Optional[float] = None


class Timeframe(BaseModel):
    start_date: datetime
    end_date: datetime


class ModelInfo(BaseModel):
    version: str
    algorithm: str
    features: List[str]
    accuracy: Optional[float] = None


# Requests: field defaults are the values the scorers fall back to

class FloodRequest(BaseModel):
    rainfall_24h: float = 0
    rainfall_7d: float = 0
    rainfall_30d: float = 100
    temperature: float = 25
    humidity: float = 60
    pressure: float = 1013
    elevation: float = 200
    slope: float = 5
    soil_type: int = 2            # 1 = clay
    river_distance: float = 5000  # metres
    drainage_density: float = 2
    ndvi: float = 0.6
    land_cover: int = 3
    location: Optional[Location] = None


class DroughtRequest(BaseModel):
    temperature_avg: float = 25
    temperature_max: float = 35
    temperature_min: float = 15
    rainfall_30d: float = 50
    rainfall_60d: float = 120
    rainfall_90d: float = 200
    humidity: float = 60
    evapotranspiration: float = 5
    soil_moisture: float = 40
    groundwater_level: float = 20
    ndvi: float = 0.4
    vhi: float = 0.5
    season: int = 1
    elevation: float = 300
    location: Optional[Location] = None


class CropRequest(BaseModel):
    temperature: float = 25
    humidity: float = 70
    ph: float = 6.5
    rainfall: float = 800
    nitrogen: float = 50
    phosphorus: float = 25
    potassium: float = 40
    location: Optional[Location] = None


class PricePoint(BaseModel):
    date: datetime
    price: float
    supply: float = 1000
    demand: float = 1000
    season: int = 1
    weather_impact: float = 0
    fuel_price: float = 100
    exchange_rate: float = 1


class PriceRequest(BaseModel):
    crop: str
    historical_price: Optional[float] = Field(None, gt=0)
    supply: float = Field(1000, gt=0)
    demand: float = Field(1000, ge=0)
    season: int = 1
    weather_impact: float = 0
    fuel_price: float = 100
    exchange_rate: float = 1
    days_ahead: int = Field(30, ge=1)
    method: PriceMethod = PriceMethod.HEURISTIC
    history: Optional[List[PricePoint]] = None
    location: Optional[Location] = None


# Responses

class RiskPrediction(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    type: HazardType
    prediction: Severity
    probability: float
    confidence: float
    severity: Severity
    timeframe: Timeframe
    model_info: ModelInfo
    mode: ModelMode


class CropRecommendation(BaseModel):
    crop: str
    suitability: float
    confidence: float
    reasons: List[str]


class CropPrediction(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    type: HazardType = HazardType.CROP
    recommendations: List[CropRecommendation]
    timeframe: Timeframe
    model_info: ModelInfo
    mode: ModelMode


class PriceForecast(BaseModel):
    current_price: float
    predicted_price: float
    change: float
    change_direction: str  # "increase" or "decrease"


class PricePrediction(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    type: HazardType = HazardType.PRICE
    crop: str
    prediction: PriceForecast
    confidence: float
    timeframe: Timeframe
    factors: List[str]
    model_info: ModelInfo
    method: PriceMethod


class ValidationRequest(BaseModel):
    actual_value: Any = None
    accuracy: float = Field(..., ge=0, le=1)
    validated_by: Optional[str] = None


class PredictionValidation(BaseModel):
    actual_value: Any = None
    accuracy: float
    validated_at: datetime
    validated_by: Optional[str] = None


class PredictionValue(BaseModel):
    value: Any = None
    confidence: float
    severity: Optional[Severity] = None


class PredictionRecord(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    id: str
    type: HazardType
    location: Location
    prediction: PredictionValue
    timeframe: Timeframe
    model_info: ModelInfo
    input_data: Dict[str, Any]
    status: PredictionStatus = PredictionStatus.ACTIVE
    validation: Optional[PredictionValidation] = None
    created_at: datetime
    updated_at: datetime
