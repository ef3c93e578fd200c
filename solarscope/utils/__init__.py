"""Utility modules."""

from .logging_config import (
    get_logger,
    setup_logging,
    ensure_logging,
    SolarScopeFormatter,
    FileFormatter,
)
from .retry import (
    retry_with_backoff,
    is_retryable,
    RetryConfig,
    DEFAULT_RETRY_CONFIG,
)
from .validation import (
    validate_address,
    validate_coordinates,
    validate_imagery_request,
    validate_polygon,
    ValidationError,
)

__all__ = [
    # Logging
    "get_logger",
    "setup_logging",
    "ensure_logging",
    "SolarScopeFormatter",
    "FileFormatter",
    # Retry
    "retry_with_backoff",
    "is_retryable",
    "RetryConfig",
    "DEFAULT_RETRY_CONFIG",
    # Validation
    "validate_address",
    "validate_coordinates",
    "validate_imagery_request",
    "validate_polygon",
    "ValidationError",
]
