"""Errors raised by the prediction layer."""


class MLServiceError(Exception):
    """Base class for prediction service errors."""


class ModelNotTrainedError(MLServiceError):
    """A price regression was asked to predict for a key it was never fitted on."""

    def __init__(self, key: str):
        super().__init__(f"No model available for '{key}', fit it before predicting")
        self.key = key


class ModelLoadError(MLServiceError):
    """A model artifact exists on disk but could not be loaded."""


class UnknownModelTypeError(MLServiceError):
    def __init__(self, model_type: str):
        super().__init__(f"Invalid model type: {model_type}")
        self.model_type = model_type


class PredictionNotFoundError(MLServiceError):
    def __init__(self, prediction_id: str):
        super().__init__(f"Prediction not found: {prediction_id}")
        self.prediction_id = prediction_id


class TrainingDataError(MLServiceError):
    """Uploaded training data cannot be used to fit a model."""
