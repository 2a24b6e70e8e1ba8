"""HTTP middleware: correlation ids, metrics, validation and error handling."""
from .correlation import CorrelationIdMiddleware, get_correlation_id
from .error_handler import ErrorHandlerMiddleware, register_exception_handlers
from .metrics import MetricsMiddleware
from .validation import ValidationMiddleware

__all__ = [
    "CorrelationIdMiddleware",
    "get_correlation_id",
    "ErrorHandlerMiddleware",
    "register_exception_handlers",
    "MetricsMiddleware",
    "ValidationMiddleware",
]
