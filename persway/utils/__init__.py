"""
Utility modules for Persway.
"""
from .logging_config import setup_logging
from .rate_limiter import RateLimiter
from .errors import (
    ErrorCode,
    error_response,
    exception_response,
    bad_request,
    unauthorized,
    not_found,
    internal_error
)
from .exceptions import (
    PerswayError,
    NotFoundError,
    ValidationError,
    SizeLimitExceededError,
    MetafieldError,
    RateLimitError,
    SecondaryWriteFailure,
    ShopifyError
)
