"""Shared utilities for configuration, logging, and error handling"""

from src.utils.errors import (
    AttributionAppError,
    AuthError,
    ErrorKind,
    JobAlreadyRunningError,
    JobTimeoutError,
    StorageError,
    TransientUpstreamError,
    UpstreamAPIError,
    ValidationError,
)
from src.utils.retry import linear_backoff_retry

__all__ = [
    "AttributionAppError",
    "AuthError",
    "ErrorKind",
    "JobAlreadyRunningError",
    "JobTimeoutError",
    "StorageError",
    "TransientUpstreamError",
    "UpstreamAPIError",
    "ValidationError",
    "linear_backoff_retry",
]
