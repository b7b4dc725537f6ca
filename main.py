import io
from datetime import timedelta
from typing import List, Optional

import pandas as pd
from fastapi import FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agriml.config import Settings
from agriml.envelope import utcnow
from agriml.errors import (
    MLServiceError,
    ModelLoadError,
    ModelNotTrainedError,
    PredictionNotFoundError,
    TrainingDataError,
    UnknownModelTypeError,
)
from agriml.logger import setup_logging
from agriml.ml_service import MLService
from agriml.repository import PredictionStore
from agriml.schemas import (
    CropRequest,
    DroughtRequest,
    FloodRequest,
    HazardType,
    PredictionRecord,
    PriceRequest,
    ValidationRequest,
)

ERROR_STATUS = {
    ModelNotTrainedError: 409,
    ModelLoadError: 500,
    UnknownModelTypeError: 400,
    PredictionNotFoundError: 404,
    TrainingDataError: 400,
}

PRICE_REQUEST_ONLY = {"crop", "days_ahead", "method", "history", "location"}


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[MLService] = None,
    store: Optional[PredictionStore] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    logger = setup_logging(settings.log_level, settings.log_file)

    app = FastAPI(title="Agri ML backend")
    app.state.ml_service = service or MLService(settings)
    app.state.store = store or PredictionStore(settings.database_url)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
        max_age=600,  # Cache preflight requests for 10 minutes
    )

    @app.exception_handler(MLServiceError)
    async def ml_error_handler(request: Request, exc: MLServiceError):
        status = ERROR_STATUS.get(type(exc), 500)
        if status >= 500:
            logger.exception("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
        return JSONResponse(status_code=status, content={"error": str(exc)})

    @app.get("/")
    def read_root():
        return {"message": "Agri ML backend is live and running!"}

    @app.post("/predict/flood", response_model=PredictionRecord)
    def predict_flood(payload: FloodRequest, request: Request):
        features = payload.model_dump(exclude={"location"})
        result = request.app.state.ml_service.predict_flood(features)
        return request.app.state.store.create(result, features, payload.location)

    @app.post("/predict/drought", response_model=PredictionRecord)
    def predict_drought(payload: DroughtRequest, request: Request):
        features = payload.model_dump(exclude={"location"})
        result = request.app.state.ml_service.predict_drought(features)
        return request.app.state.store.create(result, features, payload.location)

    @app.post("/predict/crops", response_model=PredictionRecord)
    def predict_crops(payload: CropRequest, request: Request):
        features = payload.model_dump(exclude={"location"})
        result = request.app.state.ml_service.recommend_crops(features)
        return request.app.state.store.create(result, features, payload.location)

    @app.post("/predict/price", response_model=PredictionRecord)
    def predict_price(payload: PriceRequest, request: Request):
        inputs = payload.model_dump(exclude=PRICE_REQUEST_ONLY)
        history = None
        if payload.history:
            history = pd.DataFrame([point.model_dump() for point in payload.history])
        result = request.app.state.ml_service.predict_price(
            payload.crop, inputs, payload.days_ahead, payload.method, history
        )
        return request.app.state.store.create(result, {**inputs, "crop": payload.crop}, payload.location)

    @app.get("/predictions", response_model=List[PredictionRecord])
    def list_predictions(
        request: Request,
        type: Optional[HazardType] = None,
        country: Optional[str] = None,
        region: Optional[str] = None,
        active_only: bool = True,
        limit: int = 10,
    ):
        repository = request.app.state.store
        repository.expire()
        return repository.list(type, country, region, active_only, limit)

    @app.get("/predictions/high-risk", response_model=List[PredictionRecord])
    def high_risk_predictions(request: Request, hours: int = 24, min_confidence: float = 0.7):
        since = utcnow() - timedelta(hours=hours)
        return request.app.state.store.high_risk(since, min_confidence)

    @app.put("/predictions/{prediction_id}/validate", response_model=PredictionRecord)
    def validate_prediction(prediction_id: str, payload: ValidationRequest, request: Request):
        return request.app.state.store.validate(
            prediction_id, payload.actual_value, payload.accuracy, payload.validated_by
        )

    @app.get("/ml/status")
    def ml_status(request: Request):
        return {"models": request.app.state.ml_service.model_status()}

    @app.get("/ml/models/{model_type}/info")
    def ml_model_info(model_type: str, request: Request):
        return request.app.state.ml_service.model_info(model_type)

    @app.post("/ml/retrain")
    def retrain(request: Request, file: UploadFile = File(...)):
        if not file.filename.endswith(".csv"):
            return JSONResponse(status_code=400, content={"error": "File must be a CSV."})

        try:
            content = file.file.read()
            df = pd.read_csv(io.BytesIO(content))
            results = request.app.state.ml_service.retrain_models(df)
        except TrainingDataError as e:
            return JSONResponse(status_code=400, content={"error": str(e)})
        except Exception as e:
            logger.exception("Retrain failed")
            return JSONResponse(status_code=500, content={"error": str(e)})
        return {"message": "Models retrained successfully with uploaded dataset.", "results": results}

    return app


app = create_app()
