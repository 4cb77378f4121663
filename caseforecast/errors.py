"""errors.py — Exception taxonomy for the forecasting engine."""
from __future__ import annotations


class ForecastingError(Exception):
    """Base class. `error_code` is what the request layer reports to callers."""
    error_code = "FORECASTING_ERROR"


class InsufficientDataError(ForecastingError):
    """Too few points to build a series or fit the requested order."""
    error_code = "INSUFFICIENT_DATA"

    def __init__(self, message: str, required: int | None = None, available: int | None = None):
        super().__init__(message)
        self.required = required
        self.available = available


class InvalidParameterError(ForecastingError, ValueError):
    """Malformed order, non-positive horizon, negative counts, bad granularity."""
    error_code = "INVALID_ORDER"


class InvalidInputError(InvalidParameterError):
    """Metric inputs that are empty, mismatched, or too short."""
    error_code = "INVALID_INPUT"


class ModelTrainingFailure(ForecastingError):
    """The estimator did not converge or the differenced series is degenerate."""
    error_code = "TRAINING_FAILED"

    def __init__(self, message: str, order=None):
        super().__init__(message)
        self.order = order
