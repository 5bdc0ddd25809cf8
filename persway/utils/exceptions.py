"""
Custom exceptions for Persway business logic.

These exceptions provide more specific error handling than generic Exception,
allowing for better error messages and appropriate HTTP status codes.
"""


class PerswayError(Exception):
    """Base exception for all Persway business logic errors."""

    status_code = 500

    def __init__(self, message: str, code: str = "PERSWAY_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(PerswayError):
    """Resource not found."""

    status_code = 404

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with ID {identifier} not found"
        super().__init__(message, f"{resource.upper()}_NOT_FOUND")


class ValidationError(PerswayError):
    """Invalid input data."""

    status_code = 400

    def __init__(self, message: str, field: str = None, field_errors: dict = None):
        self.field = field
        self.field_errors = field_errors or {}
        code = f"INVALID_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(message, code)


class SizeLimitExceededError(PerswayError):
    """Serialized metafield value is over its soft size ceiling."""

    status_code = 413

    def __init__(self, label: str, size_kb: float, limit_kb: float):
        self.label = label
        self.size_kb = size_kb
        self.limit_kb = limit_kb
        message = f"{label} size ({size_kb:.2f}KB) exceeds limit of {limit_kb}KB"
        super().__init__(message, "SIZE_LIMIT_EXCEEDED")


class MetafieldError(PerswayError):
    """Metafield read or write rejected by Shopify."""

    status_code = 502

    def __init__(self, message: str, code: str = None, field=None):
        self.field = field
        super().__init__(message, code or "METAFIELD_ERROR")


class RateLimitError(PerswayError):
    """Outbound Admin API budget exhausted for the current window."""

    status_code = 429

    def __init__(self, message: str, retry_after_ms: int = None):
        self.retry_after_ms = retry_after_ms
        super().__init__(message, "RATE_LIMITED")


class SecondaryWriteFailure(PerswayError):
    """Bookkeeping write that accompanies a primary write failed."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(message, "SECONDARY_WRITE_FAILED")


class ShopifyError(PerswayError):
    """Error communicating with Shopify API."""

    status_code = 502

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(message, "SHOPIFY_ERROR")
